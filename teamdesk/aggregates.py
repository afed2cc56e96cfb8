"""
Dashboard and performance arithmetic over already-loaded records.
"""
from datetime import datetime, timedelta
from typing import List, Optional

from teamdesk import schemas
from teamdesk.models import utc_now


def calculate_dashboard_stats(
    performances: List[schemas.Performance],
    teams: List[schemas.Team],
    users: List[schemas.User],
    expenses: List[schemas.SlotExpense],
    winnings: List[schemas.Winning],
    now: Optional[datetime] = None,
) -> schemas.DashboardStats:
    """Fold the dashboard inputs into one summary. Empty inputs give zeros."""
    now = now or utc_now()
    total_matches = len(performances)
    total_kills = sum(p.kills or 0 for p in performances)
    total_damage = sum(p.damage or 0 for p in performances)
    total_survival = sum(p.survival_time or 0 for p in performances)
    total_placement = sum(p.placement or 0 for p in performances)

    total_expense = sum(e.total or 0 for e in expenses)
    total_winnings = sum(w.amount_won or 0 for w in winnings)

    week_ago = now - timedelta(days=7)
    today_matches = sum(1 for p in performances if p.created_at.date() == now.date())
    week_matches = sum(1 for p in performances if p.created_at >= week_ago)

    return schemas.DashboardStats(
        total_matches=total_matches,
        total_kills=total_kills,
        avg_damage=_ratio(total_damage, total_matches),
        avg_survival=_ratio(total_survival, total_matches),
        kd_ratio=_ratio(total_kills, total_matches),
        total_expense=total_expense,
        total_profit_loss=total_winnings - total_expense,
        active_teams=sum(1 for t in teams if t.status == "active"),
        active_players=sum(1 for u in users if u.role == "player" and u.status == "active"),
        today_matches=today_matches,
        week_matches=week_matches,
        avg_placement=_ratio(total_placement, total_matches),
    )


def summarize_performances(performances: List[schemas.Performance]) -> schemas.PerformanceSummary:
    """Match averages; a first-place finish counts as a win."""
    if not performances:
        return schemas.PerformanceSummary()

    total_matches = len(performances)
    total_kills = sum(p.kills or 0 for p in performances)
    wins = sum(1 for p in performances if p.placement == 1)

    return schemas.PerformanceSummary(
        total_matches=total_matches,
        avg_kills=total_kills / total_matches,
        avg_damage=sum(p.damage or 0 for p in performances) / total_matches,
        avg_placement=sum(p.placement or 0 for p in performances) / total_matches,
        # Approximate K/D: every non-winning match counts as one death
        kd_ratio=total_kills / max(total_matches - wins, 1),
        win_rate=wins / total_matches * 100,
    )


def _ratio(total: float, count: int) -> float:
    return total / count if count > 0 else 0
