"""
Database models for the team-management dashboard
SQLAlchemy ORM models for teams, users, performances, slots and finances
"""
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, Float, String, Date, DateTime, ForeignKey
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Team(Base):
    """
    Team entity - one roster competing under the organization
    """
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False, index=True)
    tier = Column(String, nullable=True)
    status = Column(String, nullable=False, default="active")
    coach_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    # Relationships
    members = relationship("User", back_populates="team")
    performances = relationship("Performance", back_populates="team")

    def __repr__(self):
        return f"<Team(id={self.id}, name='{self.name}', status='{self.status}')>"


class User(Base):
    """
    User entity - admins, managers, coaches, analysts and players
    Players and coaches belong to at most one team
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    role = Column(String, nullable=False, default="player", index=True)
    status = Column(String, nullable=False, default="active")
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=True, index=True)
    avatar_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    # Relationships
    team = relationship("Team", back_populates="members")

    def __repr__(self):
        return f"<User(id={self.id}, name='{self.name}', role='{self.role}')>"


class Performance(Base):
    """
    Performance entity - one player's result in one match
    """
    __tablename__ = "performances"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    player_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    match_number = Column(Integer, nullable=False)
    slot = Column(Integer, nullable=True)
    map = Column(String, nullable=True)
    placement = Column(Integer, nullable=True)
    kills = Column(Integer, default=0)
    assists = Column(Integer, default=0)
    damage = Column(Float, default=0)
    survival_time = Column(Float, default=0)
    added_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False, index=True)

    # Relationships
    team = relationship("Team", back_populates="performances")

    def __repr__(self):
        return f"<Performance(id={self.id}, player_id={self.player_id}, kills={self.kills})>"


class Slot(Base):
    """
    Slot entity - booked scrim/tournament slots
    """
    __tablename__ = "slots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    organizer = Column(String, nullable=False)
    time_range = Column(String, nullable=True)
    date = Column(Date, nullable=False)
    number_of_slots = Column(Integer, nullable=False, default=1)
    slot_rate = Column(Float, nullable=False, default=0)
    notes = Column(String, nullable=True)

    def __repr__(self):
        return f"<Slot(id={self.id}, organizer='{self.organizer}', date={self.date})>"


class SlotExpense(Base):
    """
    Slot expense entity - money paid for slots
    """
    __tablename__ = "slot_expenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    slot_id = Column(Integer, ForeignKey("slots.id"), nullable=True)
    rate = Column(Float, nullable=False, default=0)
    number_of_slots = Column(Integer, nullable=False, default=1)
    total = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    # Relationships
    team = relationship("Team")
    slot = relationship("Slot")

    def __repr__(self):
        return f"<SlotExpense(id={self.id}, team_id={self.team_id}, total={self.total})>"


class Winning(Base):
    """
    Winning entity - prize money earned in a slot
    """
    __tablename__ = "winnings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    slot_id = Column(Integer, ForeignKey("slots.id"), nullable=True)
    position = Column(Integer, nullable=True)
    amount_won = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    # Relationships
    team = relationship("Team")
    slot = relationship("Slot")

    def __repr__(self):
        return f"<Winning(id={self.id}, team_id={self.team_id}, amount_won={self.amount_won})>"
