"""Durable relational store.

Secondary to the expiring store for anything live: it owns teachers, tasks,
session records, the quota ledger and, once a session is saved, a mirror of
its roster and submissions.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import NullPool

from lara.config import Settings
from lara.models import utcnow

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class Teacher(Base):
    __tablename__ = "teachers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    tier: Mapped[str] = mapped_column(String(32), default="starter")
    ai_calls_used: Mapped[int] = mapped_column(Integer, default=0)
    ai_calls_reset: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    teacher_id: Mapped[str] = mapped_column(ForeignKey("teachers.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(255))
    prompt: Mapped[str] = mapped_column(Text)
    task_code: Mapped[str] = mapped_column(String(16), unique=True, index=True)
    universal_expectations: Mapped[bool] = mapped_column(Boolean, default=True)
    success_criteria: Mapped[list[str]] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(String(16), default="active", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class TaskSession(Base):
    __tablename__ = "task_sessions"
    __table_args__ = (
        Index(
            "uq_task_sessions_live_task",
            "task_id",
            unique=True,
            sqlite_where=text("is_live = 1"),
            postgresql_where=text("is_live"),
        ),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    task_id: Mapped[str] = mapped_column(ForeignKey("tasks.id", ondelete="CASCADE"), index=True)
    teacher_id: Mapped[str] = mapped_column(ForeignKey("teachers.id", ondelete="CASCADE"), index=True)
    is_live: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    data_persisted: Mapped[bool] = mapped_column(Boolean, default=False)
    data_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    total_students: Mapped[int] = mapped_column(Integer, default=0)
    submissions: Mapped[int] = mapped_column(Integer, default=0)
    feedbacks_generated: Mapped[int] = mapped_column(Integer, default=0)
    feedback_sent: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class StudentRecord(Base):
    __tablename__ = "students"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    session_id: Mapped[str] = mapped_column(ForeignKey("task_sessions.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(32), default="active", index=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class SubmissionRecord(Base):
    __tablename__ = "student_submissions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    student_id: Mapped[str] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), index=True)
    session_id: Mapped[str] = mapped_column(ForeignKey("task_sessions.id", ondelete="CASCADE"), index=True)
    content: Mapped[str] = mapped_column(Text)
    previous_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    time_elapsed: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    revision_count: Mapped[int] = mapped_column(Integer, default=0)
    is_revision: Mapped[bool] = mapped_column(Boolean, default=False)
    feedback_status: Mapped[str] = mapped_column(String(16), default="pending", index=True)
    validation_warnings: Mapped[list[str]] = mapped_column(JSON, default=list)
    selected_next_step_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    detection_result: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class FeedbackRecord(Base):
    __tablename__ = "submission_feedback"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    submission_id: Mapped[str] = mapped_column(
        ForeignKey("student_submissions.id", ondelete="CASCADE"), unique=True
    )
    goal: Mapped[str] = mapped_column(Text)
    mastery_achieved: Mapped[bool] = mapped_column(Boolean, default=False)
    strengths: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    growth_areas: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    next_steps: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class AiUsageLog(Base):
    __tablename__ = "ai_usage_logs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    teacher_id: Mapped[str] = mapped_column(ForeignKey("teachers.id", ondelete="CASCADE"), index=True)
    task_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    operation: Mapped[str] = mapped_column(String(64))
    student_count: Mapped[int] = mapped_column(Integer, default=1)
    model: Mapped[str] = mapped_column(String(128))
    validation_warnings: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


class Database:
    """Owns the async engine and session factory for the durable store."""

    def __init__(self, url: str, echo: bool = False, use_null_pool: bool = False):
        options: dict[str, Any] = {"echo": echo}
        if use_null_pool:
            options["poolclass"] = NullPool
        else:
            options["pool_pre_ping"] = True
        self.engine = create_async_engine(url, **options)
        self.sessionmaker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.DATABASE_URL,
            echo=settings.DEBUG,
            use_null_pool=settings.ENVIRONMENT == "test",
        )

    def session(self) -> AsyncSession:
        return self.sessionmaker()

    async def create_all(self) -> None:
        """Create tables if they don't exist. Production deployments migrate instead."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
