"""
Core cache data structures.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class CacheCategory(Enum):
    """Categories of data with different caching behaviors."""
    TEAMS = "teams"                 # 5 minutes, SWR
    USERS = "users"                 # 2 minutes, SWR
    ROLES = "roles"                 # 10 minutes, no SWR
    PERMISSIONS = "permissions"     # 10 minutes, no SWR
    PERFORMANCES = "performances"   # 30 seconds, SWR
    SLOTS = "slots"                 # 1 minute, SWR
    EXPENSES = "expenses"           # 1 minute, SWR
    WINNINGS = "winnings"           # 1 minute, SWR
    DASHBOARD = "dashboard"         # 15 seconds, SWR
    ANALYTICS = "analytics"         # 30 seconds, SWR
    PROFILE = "profile"             # 2 minutes, SWR
    TEAM_STATS = "team_stats"       # 45 seconds, SWR
    PLAYER_STATS = "player_stats"   # 45 seconds, SWR

    @classmethod
    def coerce(cls, value: Union["CacheCategory", str]) -> "CacheCategory":
        """Accept either a member or its string value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown cache category: {value!r}") from None


@dataclass(frozen=True)
class CategoryPolicy:
    """Caching rules shared by every key of one category."""
    ttl_seconds: float
    max_entries: int
    stale_while_revalidate: bool


@dataclass(frozen=True)
class CacheEntry:
    """
    A cached value with the timestamps needed for freshness checks.

    Entries are never mutated; a refresh replaces the whole entry.
    """
    key: str
    data: Any
    stored_at: float
    expires_at: float
    category: CacheCategory

    @property
    def ttl_seconds(self) -> float:
        """TTL that was in force when the entry was written."""
        return self.expires_at - self.stored_at

    def age(self, now: float) -> float:
        return now - self.stored_at

    def ttl_remaining(self, now: float) -> float:
        return self.expires_at - now

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at

    def is_usable_stale(self, now: float, policy: CategoryPolicy) -> bool:
        """Past expiry but still inside the one-TTL grace window."""
        return (
            policy.stale_while_revalidate
            and self.expires_at <= now < self.expires_at + self.ttl_seconds
        )

    def is_prunable(self, now: float) -> bool:
        """Doubly expired: no longer worth keeping around at all."""
        return now > self.expires_at + self.ttl_seconds
