"""
Category policy table: TTL, size bound and stale-while-revalidate per category.
"""
from types import MappingProxyType
from typing import Mapping, Union

from .core import CacheCategory, CategoryPolicy


MINUTE = 60

# Policy table by category (TTL in seconds)
POLICY_TABLE: Mapping[CacheCategory, CategoryPolicy] = MappingProxyType({
    # Static/semi-static data
    CacheCategory.TEAMS: CategoryPolicy(
        ttl_seconds=5 * MINUTE, max_entries=100, stale_while_revalidate=True,
    ),
    CacheCategory.USERS: CategoryPolicy(
        ttl_seconds=2 * MINUTE, max_entries=500, stale_while_revalidate=True,
    ),
    CacheCategory.ROLES: CategoryPolicy(
        ttl_seconds=10 * MINUTE, max_entries=50, stale_while_revalidate=False,
    ),
    CacheCategory.PERMISSIONS: CategoryPolicy(
        ttl_seconds=10 * MINUTE, max_entries=50, stale_while_revalidate=False,
    ),
    # Dynamic data
    CacheCategory.PERFORMANCES: CategoryPolicy(
        ttl_seconds=30, max_entries=1000, stale_while_revalidate=True,
    ),
    CacheCategory.SLOTS: CategoryPolicy(
        ttl_seconds=MINUTE, max_entries=200, stale_while_revalidate=True,
    ),
    CacheCategory.EXPENSES: CategoryPolicy(
        ttl_seconds=MINUTE, max_entries=200, stale_while_revalidate=True,
    ),
    CacheCategory.WINNINGS: CategoryPolicy(
        ttl_seconds=MINUTE, max_entries=200, stale_while_revalidate=True,
    ),
    # Aggregations
    CacheCategory.DASHBOARD: CategoryPolicy(
        ttl_seconds=15, max_entries=50, stale_while_revalidate=True,
    ),
    CacheCategory.ANALYTICS: CategoryPolicy(
        ttl_seconds=30, max_entries=100, stale_while_revalidate=True,
    ),
    # User-specific data
    CacheCategory.PROFILE: CategoryPolicy(
        ttl_seconds=2 * MINUTE, max_entries=100, stale_while_revalidate=True,
    ),
    # Computed stats
    CacheCategory.TEAM_STATS: CategoryPolicy(
        ttl_seconds=45, max_entries=100, stale_while_revalidate=True,
    ),
    CacheCategory.PLAYER_STATS: CategoryPolicy(
        ttl_seconds=45, max_entries=500, stale_while_revalidate=True,
    ),
})


def get_policy(
    category: Union[CacheCategory, str],
    table: Mapping[CacheCategory, CategoryPolicy] = POLICY_TABLE,
) -> CategoryPolicy:
    """
    Look up the policy for a category.

    Args:
        category: Category member or its string value
        table: Policy table to consult (defaults to the process-wide one)

    Raises:
        ValueError: Unknown category string
        KeyError: Category missing from the table
    """
    category = CacheCategory.coerce(category)
    try:
        return table[category]
    except KeyError:
        raise KeyError(f"No cache policy configured for {category.value}") from None
