"""
Tests for cached data access over a seeded SQLite database.
"""
import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from teamdesk import crud, schemas
from teamdesk.cache import CacheKeys
from teamdesk.data_service import DataService
from teamdesk.models import utc_now

from conftest import NOW


class CountingSessionFactory:
    """Wraps a session factory and counts opened sessions."""

    def __init__(self, factory):
        self.factory = factory
        self.opened = 0

    def __call__(self):
        self.opened += 1
        return self.factory()


@pytest.fixture
def counting_factory(session_factory):
    return CountingSessionFactory(session_factory)


@pytest.fixture
def counted_service(cache, counting_factory):
    return DataService(cache=cache, session_factory=counting_factory, now=lambda: NOW)


# ===== TEAMS =====

def test_get_teams_returns_all_sorted_by_name(service):
    teams = service.get_teams()
    assert [t.name for t in teams] == ["Alpha", "Bravo", "Charlie"]
    assert isinstance(teams[0], schemas.Team)


def test_get_teams_is_served_from_cache_on_repeat(counted_service, counting_factory):
    counted_service.get_teams()
    counted_service.get_teams()
    assert counting_factory.opened == 1


def test_coach_only_sees_own_team(service):
    teams = service.get_teams(user_role="coach", user_id=2)
    assert [t.name for t in teams] == ["Alpha"]
    assert service.cache.peek(CacheKeys.teams(role="coach", user_id=2)) is not None


def test_player_without_team_sees_no_teams(service):
    assert service.get_teams(user_role="player", user_id=6) == []


def test_admin_sees_everything_even_with_user_id(service):
    assert len(service.get_teams(user_role="admin", user_id=1)) == 3


def test_get_team_by_id(service):
    assert service.get_team_by_id(2).name == "Bravo"
    assert service.get_team_by_id(999) is None


# ===== USERS =====

def test_get_users_filters_by_team_and_role(service):
    assert [u.id for u in service.get_users(team_id=1)] == [4, 3, 2]
    assert [u.id for u in service.get_users(role="player")] == [6, 5, 4, 3]
    assert [u.id for u in service.get_users(team_id=1, role="player")] == [4, 3]


def test_get_user_profile(service):
    assert service.get_user_profile(3).email == "pia@example.com"
    assert service.get_user_profile(999) is None


# ===== PERFORMANCES & FINANCES =====

def test_get_performances_filters(service):
    assert [p.id for p in service.get_performances(team_id=1)] == [2, 1, 3, 5]
    assert [p.id for p in service.get_performances(player_id=3, days=30)] == [1, 3]
    assert len(service.get_performances(days=7)) == 3
    assert len(service.get_performances(limit=2)) == 2


def test_get_expenses_includes_team_and_slot(service):
    expenses = service.get_expenses()
    assert [e.id for e in expenses] == [2, 1]
    alpha_expense = expenses[1]
    assert alpha_expense.team.name == "Alpha"
    assert alpha_expense.slot.organizer == "Night Cup"
    assert [e.id for e in service.get_expenses(team_id=2)] == [2]


def test_get_expenses_falls_back_when_join_fails(service, monkeypatch):
    unpatched = crud.get_expenses

    def flaky(db, team_id=None, with_relations=True):
        if with_relations:
            raise SQLAlchemyError("join failed")
        return unpatched(db, team_id=team_id, with_relations=False)

    monkeypatch.setattr(crud, "get_expenses", flaky)
    expenses = service.get_expenses(team_id=1)

    assert [e.total for e in expenses] == [200]
    assert expenses[0].team is None


def test_get_winnings(service):
    winnings = service.get_winnings()
    assert [w.amount_won for w in winnings] == [500]
    assert winnings[0].team.name == "Alpha"


# ===== AGGREGATES =====

def test_dashboard_stats(service):
    stats = service.get_dashboard_stats(user_id=1, timeframe="30")

    assert stats.total_matches == 4
    assert stats.total_kills == 10
    assert stats.avg_damage == pytest.approx(275)
    assert stats.avg_survival == pytest.approx(13.75)
    assert stats.kd_ratio == pytest.approx(2.5)
    assert stats.avg_placement == pytest.approx(4)
    assert stats.total_expense == 250
    assert stats.total_profit_loss == 250
    assert stats.active_teams == 2
    assert stats.active_players == 3
    assert stats.today_matches == 2
    assert stats.week_matches == 3


def test_dashboard_stats_survives_failing_inputs(service, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("expenses table locked"))

    monkeypatch.setattr(service, "get_expenses", broken)
    stats = service.get_dashboard_stats(user_id=1)

    assert stats.total_expense == 0
    assert stats.total_profit_loss == 500
    assert stats.total_matches == 4


def test_dashboard_rejects_non_numeric_timeframe(service):
    with pytest.raises(ValueError):
        service.get_dashboard_stats(user_id=1, timeframe="month")


def test_team_performance(service):
    summary = service.get_team_performance(1, days=30)

    assert summary.total_matches == 3
    assert summary.avg_kills == pytest.approx(10 / 3)
    assert summary.avg_damage == pytest.approx(1000 / 3)
    assert summary.avg_placement == pytest.approx(2)
    assert summary.kd_ratio == pytest.approx(10)
    assert summary.win_rate == pytest.approx(200 / 3)


def test_team_performance_without_matches_is_zero(service):
    assert service.get_team_performance(3) == schemas.PerformanceSummary()


def test_player_stats(service):
    summary = service.get_player_stats(3, days=30)
    assert summary.total_matches == 2
    assert summary.win_rate == pytest.approx(50)


def test_preload_warms_common_reads(service):
    worker = service.preload_essential_data(user_id=2, user_role="coach")
    worker.join(timeout=5)

    assert service.cache.peek(CacheKeys.user_profile(2)) is not None
    assert service.cache.peek(CacheKeys.users(role="player")) is not None
    assert service.cache.peek(CacheKeys.performances(days=7, limit=100)) is not None


# ===== WRITES & INVALIDATION =====

def test_record_performance_refreshes_dependent_reads(service):
    assert service.get_team_performance(1).total_matches == 3
    before = service.get_dashboard_stats(user_id=1)

    created = service.record_performance(schemas.PerformanceCreate(
        team_id=1, player_id=4, match_number=4, placement=1, kills=6, damage=600,
    ))

    assert created.id is not None
    assert service.get_team_performance(1).total_matches == 4
    assert service.get_dashboard_stats(user_id=1).total_kills == before.total_kills + 6


def test_update_team_invalidates_team_reads(service):
    assert service.get_team_by_id(2).name == "Bravo"
    assert service.get_users(team_id=2)

    service.update_team(2, name="Bravo Esports")

    assert service.get_team_by_id(2).name == "Bravo Esports"
    assert "Bravo Esports" in [t.name for t in service.get_teams()]


def test_update_missing_team_returns_none(service):
    assert service.update_team(999, name="Ghost") is None


def test_update_user_invalidates_profile(service):
    assert service.get_user_profile(3).status == "active"
    service.update_user(3, status="benched")
    assert service.get_user_profile(3).status == "benched"


def test_record_expense_and_winning_update_finances(service):
    before = service.get_dashboard_stats(user_id=1)

    expense = service.record_expense(schemas.ExpenseCreate(team_id=2, rate=25, number_of_slots=4))
    service.record_winning(schemas.WinningCreate(team_id=2, position=2, amount_won=300))

    assert expense.total == 100
    after = service.get_dashboard_stats(user_id=1)
    assert after.total_expense == before.total_expense + 100
    assert after.total_profit_loss == before.total_profit_loss + 200


# ===== CACHE BEHAVIOUR =====

def test_disabled_cache_always_queries(cache, counting_factory):
    service = DataService(
        cache=cache, session_factory=counting_factory, cache_enabled=False, now=lambda: NOW
    )
    service.get_teams()
    service.get_teams()

    assert counting_factory.opened == 2
    assert len(cache) == 0


def test_database_failure_propagates_and_is_not_cached(cache):
    attempts = []

    def dead_database():
        attempts.append(1)
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    service = DataService(cache=cache, session_factory=dead_database)

    with pytest.raises(OperationalError):
        service.get_teams()
    assert len(attempts) == 3
    assert len(cache) == 0


def test_cache_stats_and_clear(service):
    service.get_teams()
    service.get_users()
    assert service.get_cache_stats()["total_entries"] == 2

    assert service.clear_cache() == 2
    assert service.get_cache_stats()["total_entries"] == 0


def test_record_performance_is_stamped_with_naive_utc(service):
    created = service.record_performance(schemas.PerformanceCreate(
        team_id=2, player_id=5, match_number=7, placement=3, kills=2,
    ))

    assert created.created_at.tzinfo is None
    assert abs((utc_now() - created.created_at).total_seconds()) < 60
