"""
CRUD operations (Create, Read, Update, Delete)
Database query functions for teams, users, performances and finances
"""
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session, joinedload

from teamdesk import schemas
from teamdesk.models import Performance, SlotExpense, Team, User, Winning, utc_now


# ===== TEAMS =====

def get_teams(db: Session, team_id: Optional[int] = None) -> List[Team]:
    """
    Get teams ordered by name, optionally just one team
    """
    query = db.query(Team)
    if team_id is not None:
        query = query.filter(Team.id == team_id)
    return query.order_by(Team.name).all()


def get_team_by_id(db: Session, team_id: int) -> Optional[Team]:
    """
    Get a specific team by ID
    """
    return db.query(Team).filter(Team.id == team_id).first()


def update_team(db: Session, team_id: int, **changes) -> Optional[Team]:
    """
    Apply column changes to a team and commit
    """
    team = get_team_by_id(db, team_id)
    if team is None:
        return None
    for name, value in changes.items():
        setattr(team, name, value)
    db.commit()
    db.refresh(team)
    return team


# ===== USERS =====

def get_users(
    db: Session,
    team_id: Optional[int] = None,
    role: Optional[str] = None,
) -> List[User]:
    """
    Get users, newest first
    - team_id: members of one team
    - role: only this role
    """
    query = db.query(User)
    if team_id is not None:
        query = query.filter(User.team_id == team_id)
    if role:
        query = query.filter(User.role == role)
    return query.order_by(desc(User.created_at), desc(User.id)).all()


def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def update_user(db: Session, user_id: int, **changes) -> Optional[User]:
    """
    Apply column changes to a user and commit
    """
    user = get_user_by_id(db, user_id)
    if user is None:
        return None
    for name, value in changes.items():
        setattr(user, name, value)
    db.commit()
    db.refresh(user)
    return user


# ===== PERFORMANCES =====

def get_performances(
    db: Session,
    team_id: Optional[int] = None,
    player_id: Optional[int] = None,
    days: Optional[int] = None,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[Performance]:
    """
    Get performances, newest first
    - days: only those recorded in the last N days
    """
    query = db.query(Performance)
    if team_id is not None:
        query = query.filter(Performance.team_id == team_id)
    if player_id is not None:
        query = query.filter(Performance.player_id == player_id)
    if days:
        cutoff = (now or utc_now()) - timedelta(days=days)
        query = query.filter(Performance.created_at >= cutoff)
    query = query.order_by(desc(Performance.created_at), desc(Performance.id))
    if limit:
        query = query.limit(limit)
    return query.all()


def create_performance(db: Session, performance: schemas.PerformanceCreate) -> Performance:
    row = Performance(**performance.model_dump())
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


# ===== FINANCES =====

def get_expenses(
    db: Session,
    team_id: Optional[int] = None,
    with_relations: bool = True,
) -> List[SlotExpense]:
    """
    Get slot expenses, newest first, with team and slot eagerly loaded
    """
    query = db.query(SlotExpense)
    if with_relations:
        query = query.options(joinedload(SlotExpense.team), joinedload(SlotExpense.slot))
    if team_id is not None:
        query = query.filter(SlotExpense.team_id == team_id)
    return query.order_by(desc(SlotExpense.created_at), desc(SlotExpense.id)).all()


def create_expense(db: Session, expense: schemas.ExpenseCreate) -> SlotExpense:
    row = SlotExpense(
        **expense.model_dump(),
        total=expense.rate * expense.number_of_slots,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def get_winnings(
    db: Session,
    team_id: Optional[int] = None,
    with_relations: bool = True,
) -> List[Winning]:
    """
    Get winnings, newest first, with team and slot eagerly loaded
    """
    query = db.query(Winning)
    if with_relations:
        query = query.options(joinedload(Winning.team), joinedload(Winning.slot))
    if team_id is not None:
        query = query.filter(Winning.team_id == team_id)
    return query.order_by(desc(Winning.created_at), desc(Winning.id)).all()


def create_winning(db: Session, winning: schemas.WinningCreate) -> Winning:
    row = Winning(**winning.model_dump())
    db.add(row)
    db.commit()
    db.refresh(row)
    return row
