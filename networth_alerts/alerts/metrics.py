"""
Financial figures derived from accounts and balance history.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Iterable

from networth_alerts.database.models import Account, AccountCategory, BalanceRecord

DAYS_PER_MONTH = Decimal(30)


@dataclass
class Totals:
    """Asset, liability and net worth totals."""

    total_assets: Decimal
    total_liabilities: Decimal

    @property
    def net_worth(self) -> Decimal:
        return self.total_assets - self.total_liabilities


@dataclass
class Contributor:
    """Account with the largest effect on net worth over a period."""

    name: str
    delta: Decimal  # absolute value
    positive: bool


def compute_totals(accounts: Iterable[Account]) -> Totals:
    """Sum current balances of assets and liabilities."""
    assets = Decimal("0")
    liabilities = Decimal("0")
    for account in accounts:
        if account.is_asset:
            assets += account.current_balance
        else:
            liabilities += account.current_balance
    return Totals(total_assets=assets, total_liabilities=liabilities)


def percent_change(current: Decimal, baseline: Decimal) -> Optional[Decimal]:
    """Absolute change relative to |baseline|, in percent. None for a zero baseline."""
    if baseline == 0:
        return None
    return abs(current - baseline) * 100 / abs(baseline)


def _baseline_record(
    history: list[BalanceRecord], window_start: datetime
) -> Optional[BalanceRecord]:
    """Latest record at or before the window start, else the earliest one after it."""
    before = [r for r in history if r.recorded_at <= window_start]
    if before:
        return max(before, key=lambda r: r.recorded_at)
    if history:
        return min(history, key=lambda r: r.recorded_at)
    return None


def estimate_monthly_burn(
    accounts: Iterable[Account],
    history_by_account: dict[int, list[BalanceRecord]],
    now: datetime,
    window_days: int = 90,
    liquid_categories: Iterable[AccountCategory] = (AccountCategory.BANKING,),
) -> Decimal:
    """
    Estimate how much liquid cash is consumed per month.

    Each liquid account contributes the decline from its baseline balance to
    its current balance, scaled to a 30 day month. The decline is divided by
    the elapsed time or the window length, whichever is longer, so a small
    dip in a short history does not read as a steep burn. A positive result
    is a burn; zero or negative means balances are flat or growing.
    """
    liquid = set(liquid_categories)
    window_start = now - timedelta(days=window_days)
    burn = Decimal("0")

    for account in accounts:
        if account.category not in liquid:
            continue

        baseline = _baseline_record(history_by_account.get(account.id, []), window_start)
        if baseline is None:
            continue

        elapsed_days = Decimal((now - baseline.recorded_at).total_seconds()) / 86400
        if elapsed_days <= 0:
            continue

        # Young histories are spread over the whole window
        span_days = max(elapsed_days, Decimal(window_days))
        decline = baseline.balance - account.current_balance
        burn += decline * DAYS_PER_MONTH / span_days

    return burn


def liquid_balance(
    accounts: Iterable[Account],
    liquid_categories: Iterable[AccountCategory] = (AccountCategory.BANKING,),
) -> Decimal:
    liquid = set(liquid_categories)
    return sum(
        (a.current_balance for a in accounts if a.category in liquid),
        Decimal("0"),
    )


def runway_months(balance: Decimal, monthly_burn: Decimal) -> Optional[Decimal]:
    """Months of cash left, None when there is no burn (infinite runway)."""
    if monthly_burn <= 0:
        return None
    if balance <= 0:
        return Decimal("0")
    return balance / monthly_burn


def find_biggest_contributor(
    accounts: Iterable[Account],
    history_by_account: dict[int, list[BalanceRecord]],
    period_start: datetime,
) -> Optional[Contributor]:
    """
    Find the account whose balance moved net worth the most since period_start.

    The baseline is the latest record strictly before period_start, falling
    back to the current balance. Liability increases count as negative.
    """
    biggest: Optional[Account] = None
    biggest_effect = Decimal("0")

    for account in accounts:
        history = history_by_account.get(account.id, [])
        earlier = [r for r in history if r.recorded_at < period_start]
        if earlier:
            baseline = max(earlier, key=lambda r: r.recorded_at).balance
        else:
            baseline = account.current_balance

        effect = account.current_balance - baseline
        if account.is_liability:
            effect = -effect

        if abs(effect) > abs(biggest_effect):
            biggest = account
            biggest_effect = effect

    if biggest is None:
        return None
    return Contributor(
        name=biggest.name,
        delta=abs(biggest_effect),
        positive=biggest_effect >= 0,
    )


def build_interpretation(
    net_worth_delta: Decimal,
    net_worth_delta_percent: Optional[Decimal],
    contributor: Optional[Contributor],
    has_previous: bool = True,
) -> str:
    """Summarize a month in one or two sentences."""
    if not has_previous:
        text = "This is your first monthly snapshot."
    elif net_worth_delta == 0:
        return "Your net worth remained stable this month."
    else:
        direction = "increased" if net_worth_delta > 0 else "decreased"
        text = f"Your net worth {direction} by ${abs(net_worth_delta):,.0f}"
        if net_worth_delta_percent is not None:
            text += f" ({abs(net_worth_delta_percent):.1f}%)"
        text += " this month."

    if contributor is not None and contributor.delta > 0:
        verb = "led the gains" if contributor.positive else "drove the decline"
        text += f" {contributor.name} {verb}."

    return text
