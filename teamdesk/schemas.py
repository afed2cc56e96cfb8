"""
Pydantic schemas for API request/response models
Cached values are always schemas, never ORM rows bound to a session
"""
from pydantic import BaseModel
from typing import Optional
from datetime import date as date_type, datetime


# ===== TEAM SCHEMAS =====

class TeamRef(BaseModel):
    """Minimal team info embedded in other records"""
    id: int
    name: str

    class Config:
        from_attributes = True


class Team(TeamRef):
    """Team response"""
    tier: Optional[str] = None
    status: str = "active"
    coach_id: Optional[int] = None
    created_at: Optional[datetime] = None


# ===== USER SCHEMAS =====

class User(BaseModel):
    """User response"""
    id: int
    name: str
    email: str
    role: str
    status: str = "active"
    team_id: Optional[int] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ===== PERFORMANCE SCHEMAS =====

class PerformanceBase(BaseModel):
    """Fields supplied when recording a performance"""
    team_id: int
    player_id: int
    match_number: int
    slot: Optional[int] = None
    map: Optional[str] = None
    placement: Optional[int] = None
    kills: int = 0
    assists: int = 0
    damage: float = 0
    survival_time: float = 0
    added_by: Optional[int] = None

    class Config:
        from_attributes = True


class PerformanceCreate(PerformanceBase):
    """Request body for recording a performance"""
    pass


class Performance(PerformanceBase):
    """Performance response"""
    id: int
    created_at: datetime


# ===== FINANCE SCHEMAS =====

class Slot(BaseModel):
    """Slot info embedded in expenses and winnings"""
    id: int
    organizer: str
    time_range: Optional[str] = None
    date: date_type
    number_of_slots: int
    slot_rate: float
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class ExpenseCreate(BaseModel):
    team_id: int
    slot_id: Optional[int] = None
    rate: float
    number_of_slots: int = 1


class SlotExpense(BaseModel):
    """Slot expense response, team and slot included when the join succeeds"""
    id: int
    team_id: int
    slot_id: Optional[int] = None
    rate: float
    number_of_slots: int
    total: float
    created_at: datetime
    team: Optional[TeamRef] = None
    slot: Optional[Slot] = None

    class Config:
        from_attributes = True


class WinningCreate(BaseModel):
    team_id: int
    slot_id: Optional[int] = None
    position: Optional[int] = None
    amount_won: float


class Winning(BaseModel):
    """Winning response, team and slot included when the join succeeds"""
    id: int
    team_id: int
    slot_id: Optional[int] = None
    position: Optional[int] = None
    amount_won: float
    created_at: datetime
    team: Optional[TeamRef] = None
    slot: Optional[Slot] = None

    class Config:
        from_attributes = True


# ===== AGGREGATE SCHEMAS =====

class DashboardStats(BaseModel):
    """Organization-wide numbers shown on the dashboard"""
    total_matches: int = 0
    total_kills: int = 0
    avg_damage: float = 0
    avg_survival: float = 0
    kd_ratio: float = 0
    total_expense: float = 0
    total_profit_loss: float = 0
    active_teams: int = 0
    active_players: int = 0
    today_matches: int = 0
    week_matches: int = 0
    avg_placement: float = 0


class PerformanceSummary(BaseModel):
    """Match averages for one team or one player"""
    total_matches: int = 0
    avg_kills: float = 0
    avg_damage: float = 0
    avg_placement: float = 0
    kd_ratio: float = 0
    win_rate: float = 0
