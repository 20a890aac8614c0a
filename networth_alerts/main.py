"""
Main application entry point.
"""

import logging
import signal

from dotenv import load_dotenv

load_dotenv()

from networth_alerts.app import NetWorthAlertsApp
from networth_alerts.database.connection import Database

logger = logging.getLogger(__name__)


def main():
    """Scheduler entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Net worth alert scheduler")
    parser.add_argument(
        "--config", default="config.yaml", help="Path to config file"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument(
        "--once", action="store_true", help="Run a single tick and exit"
    )

    args = parser.parse_args()

    # Load config
    from networth_alerts.config import load_config

    config = load_config(args.config)

    # Setup logging
    log_level = logging.DEBUG if args.debug else config.advanced.log_level.upper()
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Initialize database
    db = Database(config.database.path)
    db.initialize()

    app = NetWorthAlertsApp(db=db, config=config)

    if not app.transport.is_configured:
        logger.warning("Email transport not configured - ticks will be skipped")

    try:
        if args.once:
            result = app.scheduler.run_tick()
            logger.info(f"Tick finished: {result}")
        else:
            def _shutdown(signum, frame):
                logger.info(f"Received signal {signum}, stopping scheduler")
                app.scheduler.stop()

            signal.signal(signal.SIGINT, _shutdown)
            signal.signal(signal.SIGTERM, _shutdown)
            app.scheduler.run_forever()
    finally:
        db.close()


if __name__ == "__main__":
    main()
