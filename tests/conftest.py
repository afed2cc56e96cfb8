"""
Shared fixtures: fake clock, isolated caches, seeded SQLite database.
"""
import time
from datetime import date, datetime, timedelta

import pytest

from teamdesk.cache import CacheManager
from teamdesk.data_service import DataService
from teamdesk.db import init_db, make_engine, make_session_factory
from teamdesk.models import Performance, Slot, SlotExpense, Team, User, Winning

NOW = datetime(2026, 3, 10, 12, 0, 0)


class FakeClock:
    """Manually advanced time source (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> bool:
    """Poll until predicate() is true or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    manager = CacheManager(clock=clock, max_revalidation_workers=2)
    yield manager
    manager.shutdown()


def seed(db):
    alpha = Team(id=1, name="Alpha", tier="T1", status="active", created_at=NOW - timedelta(days=90))
    bravo = Team(id=2, name="Bravo", tier="T2", status="active", created_at=NOW - timedelta(days=80))
    charlie = Team(id=3, name="Charlie", tier="T3", status="inactive", created_at=NOW - timedelta(days=70))
    db.add_all([alpha, bravo, charlie])

    db.add_all([
        User(id=1, name="Ada Admin", email="admin@example.com", role="admin",
             created_at=NOW - timedelta(days=60)),
        User(id=2, name="Cole Coach", email="coach@example.com", role="coach", team_id=1,
             created_at=NOW - timedelta(days=50)),
        User(id=3, name="Pia Player", email="pia@example.com", role="player", team_id=1,
             created_at=NOW - timedelta(days=40)),
        User(id=4, name="Pax Player", email="pax@example.com", role="player", team_id=1,
             created_at=NOW - timedelta(days=30)),
        User(id=5, name="Pim Player", email="pim@example.com", role="player", team_id=2,
             status="inactive", created_at=NOW - timedelta(days=20)),
        User(id=6, name="Free Agent", email="free@example.com", role="player",
             created_at=NOW - timedelta(days=10)),
    ])

    db.add_all([
        Performance(id=1, team_id=1, player_id=3, match_number=1, placement=1, kills=5,
                    damage=500, survival_time=20, created_at=NOW - timedelta(hours=1)),
        Performance(id=2, team_id=1, player_id=4, match_number=1, placement=1, kills=3,
                    damage=300, survival_time=20, created_at=NOW - timedelta(hours=1)),
        Performance(id=3, team_id=1, player_id=3, match_number=2, placement=4, kills=2,
                    damage=200, survival_time=10, created_at=NOW - timedelta(days=3)),
        Performance(id=4, team_id=2, player_id=5, match_number=1, placement=10, kills=0,
                    damage=100, survival_time=5, created_at=NOW - timedelta(days=20)),
        Performance(id=5, team_id=1, player_id=3, match_number=3, placement=2, kills=4,
                    damage=400, survival_time=15, created_at=NOW - timedelta(days=60)),
    ])

    db.add(Slot(id=1, team_id=1, organizer="Night Cup", time_range="20:00-22:00",
                date=date(2026, 3, 8), number_of_slots=2, slot_rate=100))
    db.add_all([
        SlotExpense(id=1, team_id=1, slot_id=1, rate=100, number_of_slots=2, total=200,
                    created_at=NOW - timedelta(days=2)),
        SlotExpense(id=2, team_id=2, rate=50, number_of_slots=1, total=50,
                    created_at=NOW - timedelta(days=1)),
    ])
    db.add(Winning(id=1, team_id=1, slot_id=1, position=1, amount_won=500,
                   created_at=NOW - timedelta(days=2)))
    db.commit()


@pytest.fixture
def session_factory(tmp_path):
    # File-backed so fan-out threads each get their own connection
    engine = make_engine(f"sqlite:///{tmp_path / 'teamdesk-test.db'}")
    init_db(bind=engine)
    factory = make_session_factory(engine)
    with factory() as db:
        seed(db)
    yield factory
    engine.dispose()


@pytest.fixture
def service(cache, session_factory):
    return DataService(cache=cache, session_factory=session_factory, now=lambda: NOW)
