"""
Read-through caching with per-category TTL, request coalescing,
stale-while-revalidate and pattern invalidation.
"""
from .core import CacheCategory, CacheEntry, CategoryPolicy
from .policies import POLICY_TABLE, get_policy
from .store import CacheStore
from .coalescer import RequestCoalescer
from .manager import CacheManager, get_cache_manager, reset_cache_manager
from .keys import CacheKeys, build_key
from .invalidation import (
    INVALIDATION_RULES,
    Namespace,
    Scoped,
    Tagged,
    WriteEvent,
    apply_invalidation,
    patterns_for,
)

__all__ = [
    # Core types
    "CacheCategory",
    "CacheEntry",
    "CategoryPolicy",
    # Policies
    "POLICY_TABLE",
    "get_policy",
    # Store and coalescing
    "CacheStore",
    "RequestCoalescer",
    # Manager
    "CacheManager",
    "get_cache_manager",
    "reset_cache_manager",
    # Keys and invalidation
    "CacheKeys",
    "build_key",
    "INVALIDATION_RULES",
    "Namespace",
    "Scoped",
    "Tagged",
    "WriteEvent",
    "apply_invalidation",
    "patterns_for",
]
