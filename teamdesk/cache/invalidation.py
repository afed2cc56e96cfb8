"""
Write-event to cache-pattern mapping.

Each write event maps to a tuple of rules. Adding a rule here is all it
takes to purge more keys when that event happens.
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern, Tuple, Union

logger = logging.getLogger("cache.invalidation")


class WriteEvent(Enum):
    """Domain writes that make cached reads outdated."""
    TEAM_UPDATED = "team_updated"
    USER_UPDATED = "user_updated"
    PERFORMANCE_RECORDED = "performance_recorded"
    FINANCES_UPDATED = "finances_updated"


@dataclass(frozen=True)
class Namespace:
    """Every key in a namespace."""
    namespace: str

    def compile(self, params: Dict[str, Any]) -> Optional[Pattern[str]]:
        return re.compile(f"^{re.escape(self.namespace)}:")


@dataclass(frozen=True)
class Scoped:
    """Keys in a namespace carrying ``field=<params[param]>``."""
    namespace: str
    field: str
    param: str

    def compile(self, params: Dict[str, Any]) -> Optional[Pattern[str]]:
        value = params.get(self.param)
        if value is None:
            return None
        return re.compile(
            f"^{re.escape(self.namespace)}:(?:[^:]*:)*"
            f"{re.escape(self.field)}={re.escape(str(value))}(?::|$)"
        )


@dataclass(frozen=True)
class Tagged:
    """Keys in any namespace carrying ``field=<params[param]>``."""
    field: str
    param: str

    def compile(self, params: Dict[str, Any]) -> Optional[Pattern[str]]:
        value = params.get(self.param)
        if value is None:
            return None
        return re.compile(f"(?:^|:){re.escape(self.field)}={re.escape(str(value))}(?::|$)")


Rule = Union[Namespace, Scoped, Tagged]


INVALIDATION_RULES: Dict[WriteEvent, Tuple[Rule, ...]] = {
    WriteEvent.TEAM_UPDATED: (
        Namespace("teams"),
        Namespace("dashboard"),
        Tagged("team", "team_id"),
    ),
    WriteEvent.USER_UPDATED: (
        Namespace("users"),
        Scoped("profile", "user", "user_id"),
        Tagged("user", "user_id"),
        Namespace("dashboard"),
    ),
    WriteEvent.PERFORMANCE_RECORDED: (
        Namespace("performances"),
        Namespace("dashboard"),
        Namespace("analytics"),
        Scoped("teamperf", "team", "team_id"),
        Scoped("playerstats", "player", "player_id"),
    ),
    WriteEvent.FINANCES_UPDATED: (
        Namespace("expenses"),
        Namespace("winnings"),
        Namespace("dashboard"),
    ),
}


def patterns_for(
    event: WriteEvent,
    rules: Optional[Dict[WriteEvent, Tuple[Rule, ...]]] = None,
    **params: Any,
) -> List[Pattern[str]]:
    """
    Compile the patterns a write event should purge.

    Rules that need a parameter which was not supplied are skipped.
    """
    table = INVALIDATION_RULES if rules is None else rules
    patterns = []
    for rule in table.get(event, ()):
        pattern = rule.compile(params)
        if pattern is not None:
            patterns.append(pattern)
    return patterns


def apply_invalidation(cache, event: WriteEvent, **params: Any) -> int:
    """
    Purge everything a write event makes outdated.

    Args:
        cache: Anything with ``invalidate(pattern) -> int``
        event: The write that happened
        **params: Values rules refer to (team_id, user_id, player_id)

    Returns:
        Total number of entries removed
    """
    removed = sum(cache.invalidate(p) for p in patterns_for(event, **params))
    logger.info(f"{event.value}: invalidated {removed} entries")
    return removed
