"""
SQLAlchemy ORM models for the persistent portal store.
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    ForeignKey,
    Enum as SQLEnum,
)
from sqlalchemy.orm import relationship

from tcm_portal.database import Base
from tcm_portal.models.schemas import UserRole


class User(Base):
    """Portal user: a customer-service agent or a client."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole, values_callable=lambda e: [m.value for m in e]), nullable=False)

    # Relationships
    logs = relationship("DailyLog", back_populates="user", cascade="all, delete-orphan")


class DailyLog(Base):
    """One day of client-reported meals, sleep and habits."""

    __tablename__ = "daily_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(String(32), nullable=False, index=True)  # YYYY-MM-DD
    breakfast_img = Column(Text, nullable=True)
    lunch_img = Column(Text, nullable=True)
    dinner_img = Column(Text, nullable=True)
    sleep_start = Column(String(16), nullable=True)
    sleep_end = Column(String(16), nullable=True)
    water_cups = Column(Integer, nullable=True)
    coffee = Column(Integer, default=0, nullable=False)  # 0 / 1
    notes = Column(Text, nullable=True)

    # Relationships
    user = relationship("User", back_populates="logs")


class Report(Base):
    """Saved AI report; ``content`` holds the report as JSON text."""

    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)
    client_name = Column(String(255), nullable=False)
    client_phone = Column(String(64), nullable=False)
    diagnosis = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(String(40), nullable=False, index=True)  # ISO-8601
