"""
Cached data access for the dashboard.

Every read builds a deterministic cache key, wraps the database query in a
fetch closure and hands both to the cache with the entity's category.
Every write commits first, then purges what the write made outdated.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from teamdesk import crud, schemas
from teamdesk.aggregates import calculate_dashboard_stats, summarize_performances
from teamdesk.cache import (
    CacheCategory,
    CacheKeys,
    CacheManager,
    WriteEvent,
    apply_invalidation,
)
from teamdesk.models import utc_now

logger = logging.getLogger("data_service")

SCOPED_ROLES = ("coach", "player")


def _columns(row) -> Dict[str, Any]:
    """Plain column values of an ORM row, without touching relationships."""
    return {c.name: getattr(row, c.name) for c in row.__table__.columns}


class DataService:
    """
    Read-through data access for teams, users, performances and finances.

    Usage:
        service = DataService(cache=CacheManager(), session_factory=SessionLocal)
        teams = service.get_teams(user_role="coach", user_id=7)
    """

    def __init__(
        self,
        cache: CacheManager,
        session_factory: Callable[[], Any],
        cache_enabled: bool = True,
        fanout_workers: int = 5,
        now: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            cache: Cache every read goes through
            session_factory: Returns a new SQLAlchemy session
            cache_enabled: False calls the database on every read
            fanout_workers: Threads used by composite reads
            now: Wall clock for day-window filters and dashboard counts
        """
        self._cache = cache
        self._session_factory = session_factory
        self._cache_enabled = cache_enabled
        self._fanout_workers = fanout_workers
        self._now = now

    @property
    def cache(self) -> CacheManager:
        return self._cache

    def _cached(self, key: str, fetch_fn: Callable[[], Any], category: CacheCategory) -> Any:
        if not self._cache_enabled:
            return fetch_fn()
        return self._cache.get(key, fetch_fn, category)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.05, max=0.5),
        retry=retry_if_exception_type(OperationalError),
        reraise=True,
    )
    def _query(self, fn: Callable[[Any], Any]) -> Any:
        """Run fn(db) in a fresh session, retrying transient connection errors."""
        with self._session_factory() as db:
            return fn(db)

    # ===== TEAMS =====

    def get_teams(
        self,
        user_role: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> List[schemas.Team]:
        """All teams, or only their own team for coaches and players."""
        scoped = user_role in SCOPED_ROLES and user_id is not None
        key = CacheKeys.teams(role=user_role, user_id=user_id) if scoped else CacheKeys.teams()

        def load(db) -> List[schemas.Team]:
            team_id = None
            if scoped:
                user = crud.get_user_by_id(db, user_id)
                if user is None or user.team_id is None:
                    return []
                team_id = user.team_id
            return [schemas.Team.model_validate(t) for t in crud.get_teams(db, team_id=team_id)]

        return self._cached(key, lambda: self._query(load), CacheCategory.TEAMS)

    def get_team_by_id(self, team_id: int) -> Optional[schemas.Team]:
        def load(db) -> Optional[schemas.Team]:
            team = crud.get_team_by_id(db, team_id)
            return schemas.Team.model_validate(team) if team else None

        return self._cached(
            CacheKeys.team_by_id(team_id), lambda: self._query(load), CacheCategory.TEAMS
        )

    # ===== USERS =====

    def get_users(
        self,
        team_id: Optional[int] = None,
        role: Optional[str] = None,
    ) -> List[schemas.User]:
        def load(db) -> List[schemas.User]:
            return [
                schemas.User.model_validate(u)
                for u in crud.get_users(db, team_id=team_id, role=role)
            ]

        return self._cached(
            CacheKeys.users(team_id=team_id, role=role),
            lambda: self._query(load),
            CacheCategory.USERS,
        )

    def get_user_profile(self, user_id: int) -> Optional[schemas.User]:
        def load(db) -> Optional[schemas.User]:
            user = crud.get_user_by_id(db, user_id)
            return schemas.User.model_validate(user) if user else None

        return self._cached(
            CacheKeys.user_profile(user_id), lambda: self._query(load), CacheCategory.PROFILE
        )

    # ===== PERFORMANCES =====

    def get_performances(
        self,
        team_id: Optional[int] = None,
        player_id: Optional[int] = None,
        days: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[schemas.Performance]:
        def load(db) -> List[schemas.Performance]:
            rows = crud.get_performances(
                db, team_id=team_id, player_id=player_id, days=days, limit=limit, now=self._now()
            )
            return [schemas.Performance.model_validate(p) for p in rows]

        return self._cached(
            CacheKeys.performances(team_id=team_id, player_id=player_id, days=days, limit=limit),
            lambda: self._query(load),
            CacheCategory.PERFORMANCES,
        )

    # ===== FINANCES =====

    def get_expenses(self, team_id: Optional[int] = None) -> List[schemas.SlotExpense]:
        def load(db) -> List[schemas.SlotExpense]:
            try:
                rows = crud.get_expenses(db, team_id=team_id)
                return [schemas.SlotExpense.model_validate(r) for r in rows]
            except SQLAlchemyError as e:
                # Fallback to simple query if joins fail
                logger.warning(f"Joined expense query failed, using plain query: {e}")
                db.rollback()
                rows = crud.get_expenses(db, team_id=team_id, with_relations=False)
                return [schemas.SlotExpense.model_validate(_columns(r)) for r in rows]

        return self._cached(
            CacheKeys.expenses(team_id), lambda: self._query(load), CacheCategory.EXPENSES
        )

    def get_winnings(self, team_id: Optional[int] = None) -> List[schemas.Winning]:
        def load(db) -> List[schemas.Winning]:
            try:
                rows = crud.get_winnings(db, team_id=team_id)
                return [schemas.Winning.model_validate(r) for r in rows]
            except SQLAlchemyError as e:
                logger.warning(f"Joined winnings query failed, using plain query: {e}")
                db.rollback()
                rows = crud.get_winnings(db, team_id=team_id, with_relations=False)
                return [schemas.Winning.model_validate(_columns(r)) for r in rows]

        return self._cached(
            CacheKeys.winnings(team_id), lambda: self._query(load), CacheCategory.WINNINGS
        )

    # ===== AGGREGATES =====

    def get_dashboard_stats(self, user_id: int, timeframe: str = "30") -> schemas.DashboardStats:
        """
        Organization-wide dashboard numbers for the last `timeframe` days.

        The five inputs load in parallel. An input that fails is logged and
        counted as empty, so the dashboard shows the best data available.

        Raises:
            ValueError: timeframe is not a whole number of days
        """
        days = int(timeframe)

        def load() -> schemas.DashboardStats:
            parts = self._gather({
                "performances": lambda: self.get_performances(days=days, limit=1000),
                "teams": self.get_teams,
                "users": self.get_users,
                "expenses": self.get_expenses,
                "winnings": self.get_winnings,
            })
            return calculate_dashboard_stats(now=self._now(), **parts)

        return self._cached(
            CacheKeys.dashboard_stats(user_id, timeframe), load, CacheCategory.DASHBOARD
        )

    def _gather(self, loaders: Dict[str, Callable[[], List[Any]]]) -> Dict[str, List[Any]]:
        results: Dict[str, List[Any]] = {}
        with ThreadPoolExecutor(
            max_workers=self._fanout_workers,
            thread_name_prefix="dashboard-fanout",
        ) as pool:
            futures = {pool.submit(fn): name for name, fn in loaders.items()}
            for future in as_completed(futures):
                name = futures[future]
                try:
                    results[name] = future.result()
                except Exception as e:
                    logger.warning(f"Dashboard input '{name}' failed, using empty data: {e}")
                    results[name] = []
        return results

    def get_team_performance(self, team_id: int, days: int = 30) -> schemas.PerformanceSummary:
        def load() -> schemas.PerformanceSummary:
            return summarize_performances(self.get_performances(team_id=team_id, days=days))

        return self._cached(
            CacheKeys.team_performance(team_id, days), load, CacheCategory.TEAM_STATS
        )

    def get_player_stats(self, player_id: int, days: int = 30) -> schemas.PerformanceSummary:
        def load() -> schemas.PerformanceSummary:
            return summarize_performances(self.get_performances(player_id=player_id, days=days))

        return self._cached(
            CacheKeys.player_stats(player_id, days), load, CacheCategory.PLAYER_STATS
        )

    def preload_essential_data(self, user_id: int, user_role: str) -> threading.Thread:
        """Load the reads most screens need, in the background. Returns the worker thread."""
        loaders = [
            lambda: self.get_teams(user_role, user_id),
            lambda: self.get_user_profile(user_id),
            lambda: self.get_users(role="player"),
            lambda: self.get_performances(days=7, limit=100),
        ]

        def run():
            logger.info(f"Preloading essential data for user {user_id}")
            for load in loaders:
                try:
                    load()
                except Exception as e:
                    logger.warning(f"Preload step failed: {e}")
            logger.info("Essential data preloaded")

        worker = threading.Thread(target=run, name="preload", daemon=True)
        worker.start()
        return worker

    # ===== WRITES =====

    def update_team(self, team_id: int, **changes) -> Optional[schemas.Team]:
        with self._session_factory() as db:
            team = crud.update_team(db, team_id, **changes)
            result = schemas.Team.model_validate(team) if team else None
        if result is not None:
            apply_invalidation(self._cache, WriteEvent.TEAM_UPDATED, team_id=team_id)
        return result

    def update_user(self, user_id: int, **changes) -> Optional[schemas.User]:
        with self._session_factory() as db:
            user = crud.update_user(db, user_id, **changes)
            result = schemas.User.model_validate(user) if user else None
        if result is not None:
            apply_invalidation(
                self._cache, WriteEvent.USER_UPDATED, user_id=user_id, team_id=result.team_id
            )
        return result

    def record_performance(self, performance: schemas.PerformanceCreate) -> schemas.Performance:
        with self._session_factory() as db:
            result = schemas.Performance.model_validate(crud.create_performance(db, performance))
        apply_invalidation(
            self._cache,
            WriteEvent.PERFORMANCE_RECORDED,
            team_id=result.team_id,
            player_id=result.player_id,
        )
        return result

    def record_expense(self, expense: schemas.ExpenseCreate) -> schemas.SlotExpense:
        with self._session_factory() as db:
            row = crud.create_expense(db, expense)
            result = schemas.SlotExpense.model_validate(_columns(row))
        apply_invalidation(self._cache, WriteEvent.FINANCES_UPDATED, team_id=result.team_id)
        return result

    def record_winning(self, winning: schemas.WinningCreate) -> schemas.Winning:
        with self._session_factory() as db:
            row = crud.create_winning(db, winning)
            result = schemas.Winning.model_validate(_columns(row))
        apply_invalidation(self._cache, WriteEvent.FINANCES_UPDATED, team_id=result.team_id)
        return result

    # ===== CACHE =====

    def clear_cache(self) -> int:
        return self._cache.clear()

    def get_cache_stats(self) -> Dict[str, Any]:
        return self._cache.stats()
