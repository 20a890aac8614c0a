"""
HTML email bodies for alerts and monthly snapshots.
"""

from decimal import Decimal
from html import escape
from typing import Optional

from networth_alerts.database.models import MonthlySnapshot

COLOR_UP = "#28a745"
COLOR_DOWN = "#dc3545"


def format_money(value: Decimal) -> str:
    """Format an amount as whole dollars, e.g. -$1,250."""
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.0f}"


def _layout(title: str, subtitle: str, content: str) -> str:
    return f"""
<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: Georgia, 'Times New Roman', serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background-color: #1a3c34; color: #d4a843; padding: 20px; text-align: center; }}
        .content {{ padding: 30px 20px; background-color: #faf8f5; }}
        .stat {{ text-align: center; margin: 20px 0; }}
        .stat-value {{ font-size: 28px; font-weight: bold; color: #1a3c34; }}
        .stat-label {{ font-size: 14px; color: #666; }}
        .footer {{ padding: 20px; text-align: center; font-size: 12px; color: #666; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>{title}</h1>
            <p>{subtitle}</p>
        </div>
        <div class="content">
{content}
        </div>
        <div class="footer">
            <p>This is an automated message from Net Worth Tracker.</p>
            <p>You can manage your notification preferences in Settings.</p>
        </div>
    </div>
</body>
</html>
"""


def _stat(value: str, label: str, color: Optional[str] = None) -> str:
    style = f' style="color: {color};"' if color else ""
    return f"""            <div class="stat">
                <div class="stat-value"{style}>{value}</div>
                <div class="stat-label">{label}</div>
            </div>"""


def render_net_worth_alert(
    previous: Decimal,
    current: Decimal,
    percent_change: Decimal,
    threshold: Decimal,
) -> tuple[str, str]:
    """Build subject and body for a net worth change alert."""
    delta = current - previous
    direction = "up" if delta >= 0 else "down"
    color = COLOR_UP if delta >= 0 else COLOR_DOWN
    subject = f"Net worth alert: {direction} {percent_change:.1f}%"

    content = "\n".join([
        _stat(format_money(current), "Current Net Worth"),
        _stat(
            f"{format_money(delta)} ({percent_change:.1f}%)",
            f"Change since {format_money(previous)}",
            color,
        ),
        f"            <p>Your net worth moved by more than your {threshold}% alert threshold.</p>",
    ])
    return subject, _layout("Net Worth Alert", f"Your net worth is {direction}", content)


def render_cash_runway_alert(
    runway_months: Decimal,
    threshold_months: int,
    liquid_balance: Decimal,
    monthly_burn: Decimal,
) -> tuple[str, str]:
    """Build subject and body for a low cash runway alert."""
    subject = f"Cash runway alert: {runway_months:.1f} months left"

    content = "\n".join([
        _stat(f"{runway_months:.1f} months", "Estimated Cash Runway", COLOR_DOWN),
        f"            <p><strong>Liquid balance:</strong> {format_money(liquid_balance)}</p>",
        f"            <p><strong>Estimated monthly burn:</strong> {format_money(monthly_burn)}</p>",
        f"            <p>This is below your alert threshold of {threshold_months} months.</p>",
    ])
    return subject, _layout("Cash Runway Alert", "Your cash is running low", content)


def render_snapshot(snapshot: MonthlySnapshot) -> tuple[str, str]:
    """Build subject and body for a monthly snapshot email."""
    month_label = snapshot.month.strftime("%B %Y")
    subject = f"Your Monthly Financial Snapshot - {month_label}"

    up = snapshot.net_worth_delta >= 0
    arrow = "&#8593;" if up else "&#8595;"
    change = f"{arrow} {format_money(abs(snapshot.net_worth_delta))}"
    if snapshot.net_worth_delta_percent is not None:
        change += f" ({abs(snapshot.net_worth_delta_percent):.1f}%)"

    parts = [
        _stat(format_money(snapshot.net_worth), "Net Worth"),
        _stat(change, "Change from Last Month", COLOR_UP if up else COLOR_DOWN),
        "            <hr />",
        f"            <p><strong>Assets:</strong> {format_money(snapshot.total_assets)}</p>",
        f"            <p><strong>Liabilities:</strong> {format_money(snapshot.total_liabilities)}</p>",
    ]
    if snapshot.biggest_contributor_name:
        sign = "+" if snapshot.biggest_contributor_positive else "-"
        parts.append(
            f"            <p><strong>Biggest Contributor:</strong> "
            f"{escape(snapshot.biggest_contributor_name)} "
            f"({sign}{format_money(snapshot.biggest_contributor_delta)})</p>"
        )
    parts.append("            <hr />")
    parts.append(f"            <p><em>{escape(snapshot.interpretation)}</em></p>")

    return subject, _layout("Monthly Financial Snapshot", month_label, "\n".join(parts))
