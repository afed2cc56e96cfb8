"""Cache key builders.

Keys look like ``namespace:segment:field=value``. Filter fields are always
emitted in the order they are passed here, and ``None`` filters are left
out, so the same filters always produce the same key. Invalidation rules
rely on the ``field=value`` segments, see ``invalidation.py``.
"""
from typing import Any, Optional


def build_key(namespace: str, *segments: str, **filters: Any) -> str:
    parts = [namespace, *segments]
    parts.extend(f"{field}={value}" for field, value in filters.items() if value is not None)
    if len(parts) == 1:
        parts.append("all")
    return ":".join(str(p) for p in parts)


class CacheKeys:
    """Key builders for every cached read path."""

    # Teams
    @staticmethod
    def teams(role: Optional[str] = None, user_id: Optional[int] = None) -> str:
        return build_key("teams", role=role, user=user_id)

    @staticmethod
    def team_by_id(team_id: int) -> str:
        return build_key("teams", id=team_id)

    # Users
    @staticmethod
    def users(team_id: Optional[int] = None, role: Optional[str] = None) -> str:
        return build_key("users", team=team_id, role=role)

    @staticmethod
    def user_profile(user_id: int) -> str:
        return build_key("profile", user=user_id)

    # Performances
    @staticmethod
    def performances(
        team_id: Optional[int] = None,
        player_id: Optional[int] = None,
        days: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> str:
        return build_key("performances", team=team_id, player=player_id, days=days, limit=limit)

    # Financial
    @staticmethod
    def expenses(team_id: Optional[int] = None) -> str:
        return build_key("expenses", team=team_id)

    @staticmethod
    def winnings(team_id: Optional[int] = None) -> str:
        return build_key("winnings", team=team_id)

    # Dashboard and computed stats
    @staticmethod
    def dashboard_stats(user_id: int, timeframe: str) -> str:
        return build_key("dashboard", "stats", user=user_id, timeframe=timeframe)

    @staticmethod
    def team_performance(team_id: int, days: int) -> str:
        return build_key("teamperf", team=team_id, days=days)

    @staticmethod
    def player_stats(player_id: int, days: int) -> str:
        return build_key("playerstats", player=player_id, days=days)
