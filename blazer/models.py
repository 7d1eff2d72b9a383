from __future__ import annotations

import uuid
from datetime import UTC, date, datetime

from sqlalchemy import (
    Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(UTC)


_ACTIVE_STATES_SQL = "venture_state IN ('committed', 'executing', 'reviewed')"


class Idea(Base):
    __tablename__ = "ideas"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(30), default="candidate")  # candidate | north_star | archived
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    ventures: Mapped[list[Venture]] = relationship("Venture", back_populates="idea")


class Venture(Base):
    __tablename__ = "ventures"
    __table_args__ = (
        # At most one venture per user in an active state
        Index(
            "uq_ventures_one_active_per_user", "user_id", unique=True,
            sqlite_where=text(_ACTIVE_STATES_SQL),
            postgresql_where=text(_ACTIVE_STATES_SQL),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    idea_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("ideas.id"), nullable=True)
    name: Mapped[str] = mapped_column(String(300), default="My Venture")
    status: Mapped[str] = mapped_column(String(20), default="active")  # active | paused | archived
    venture_state: Mapped[str] = mapped_column(String(20), default="inactive", nullable=False)
    commitment_window_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    commitment_start_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    commitment_end_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    success_metric: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[str] = mapped_column("metadata", Text, default="{}")
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __mapper_args__ = {"version_id_col": version}

    idea: Mapped[Idea | None] = relationship("Idea", back_populates="ventures")
    daily_tasks: Mapped[list[VentureDailyTask]] = relationship(
        "VentureDailyTask", back_populates="venture", cascade="all, delete-orphan",
    )
    checkins: Mapped[list[VentureDailyCheckin]] = relationship(
        "VentureDailyCheckin", back_populates="venture", cascade="all, delete-orphan",
    )


class VentureDailyTask(Base):
    __tablename__ = "venture_daily_tasks"
    __table_args__ = (UniqueConstraint("venture_id", "task_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    venture_id: Mapped[str] = mapped_column(String(36), ForeignKey("ventures.id"), nullable=False)
    task_date: Mapped[date] = mapped_column(Date, nullable=False)
    tasks_json: Mapped[str] = mapped_column(Text, default="[]")  # [{"title": ..., "completed": bool}]
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    venture: Mapped[Venture] = relationship("Venture", back_populates="daily_tasks")


class VentureDailyCheckin(Base):
    __tablename__ = "venture_daily_checkins"
    __table_args__ = (UniqueConstraint("venture_id", "checkin_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    venture_id: Mapped[str] = mapped_column(String(36), ForeignKey("ventures.id"), nullable=False)
    checkin_date: Mapped[date] = mapped_column(Date, nullable=False)
    completion_status: Mapped[str] = mapped_column(String(10), nullable=False)  # yes | partial | no
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    reflection: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    venture: Mapped[Venture] = relationship("Venture", back_populates="checkins")
