"""
Team Desk - Main FastAPI Application
Dashboard reads go through the read-through cache; writes purge it
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query

from config.settings import settings
from teamdesk import schemas
from teamdesk.cache import get_cache_manager, reset_cache_manager
from teamdesk.data_service import DataService
from teamdesk.db import SessionLocal, init_db

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("main")

APP_VERSION = "v0.1.0"
APP_NAME = "Team Desk"

_data_service: Optional[DataService] = None


def get_data_service() -> DataService:
    """Wire the process-wide data service on first use."""
    global _data_service
    if _data_service is None:
        _data_service = DataService(
            cache=get_cache_manager(),
            session_factory=SessionLocal,
            cache_enabled=settings.cache_enabled,
            fanout_workers=settings.dashboard_fanout_workers,
        )
    return _data_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _data_service
    init_db()
    yield
    _data_service = None
    reset_cache_manager()


app = FastAPI(
    title=APP_NAME,
    description="Role-based team management dashboard",
    version=APP_VERSION,
    lifespan=lifespan,
)


def _load(what: str, fetch: Callable[[], Any]) -> Any:
    """Run a read; a failed load becomes a 502 naming what could not be loaded."""
    try:
        return fetch()
    except HTTPException:
        raise
    except Exception as e:
        logger.warning(f"Failed to load {what}: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to load {what}")


@app.get("/health")
def health():
    """Health check endpoint"""
    return {"status": "ok", "version": APP_VERSION}


# ===== TEAMS =====

@app.get("/teams", response_model=List[schemas.Team])
def list_teams(
    role: Optional[str] = None,
    user_id: Optional[int] = None,
    service: DataService = Depends(get_data_service),
):
    return _load("teams", lambda: service.get_teams(user_role=role, user_id=user_id))


@app.get("/teams/{team_id}", response_model=schemas.Team)
def team_detail(team_id: int, service: DataService = Depends(get_data_service)):
    team = _load("team", lambda: service.get_team_by_id(team_id))
    if team is None:
        raise HTTPException(status_code=404, detail="Team not found")
    return team


@app.get("/teams/{team_id}/performance", response_model=schemas.PerformanceSummary)
def team_performance(
    team_id: int,
    days: int = Query(30, ge=1, le=365),
    service: DataService = Depends(get_data_service),
):
    return _load("team performance", lambda: service.get_team_performance(team_id, days))


# ===== USERS & PLAYERS =====

@app.get("/users", response_model=List[schemas.User])
def list_users(
    team_id: Optional[int] = None,
    role: Optional[str] = None,
    service: DataService = Depends(get_data_service),
):
    return _load("users", lambda: service.get_users(team_id=team_id, role=role))


@app.get("/players/{player_id}/stats", response_model=schemas.PerformanceSummary)
def player_stats(
    player_id: int,
    days: int = Query(30, ge=1, le=365),
    service: DataService = Depends(get_data_service),
):
    return _load("player stats", lambda: service.get_player_stats(player_id, days))


# ===== PERFORMANCES =====

@app.get("/performances", response_model=List[schemas.Performance])
def list_performances(
    team_id: Optional[int] = None,
    player_id: Optional[int] = None,
    days: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    service: DataService = Depends(get_data_service),
):
    return _load(
        "performances",
        lambda: service.get_performances(
            team_id=team_id, player_id=player_id, days=days, limit=limit
        ),
    )


@app.post("/performances", response_model=schemas.Performance, status_code=201)
def record_performance(
    performance: schemas.PerformanceCreate,
    service: DataService = Depends(get_data_service),
):
    return service.record_performance(performance)


# ===== DASHBOARD =====

@app.get("/dashboard/stats", response_model=schemas.DashboardStats)
def dashboard_stats(
    user_id: int,
    timeframe: int = Query(30, ge=1, le=365),
    service: DataService = Depends(get_data_service),
):
    return _load("dashboard", lambda: service.get_dashboard_stats(user_id, str(timeframe)))


# ===== CACHE =====

@app.get("/cache/stats")
def cache_stats(service: DataService = Depends(get_data_service)):
    return service.get_cache_stats()


@app.post("/cache/clear")
def cache_clear(service: DataService = Depends(get_data_service)):
    return {"cleared": service.clear_cache()}
