"""SQLAlchemy ORM schema for Strand.

Defines all database tables: sessions, events, app_states, user_states,
_strand_meta.

Events are stored as their full JSON serialization plus the columns needed
for filtering and ordering. The domain ``Event`` model is the source of
truth for the payload shape.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import (
    JSON,
    Float,
    ForeignKeyConstraint,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all Strand ORM models."""

    pass


class SessionRow(Base):
    """A session header with its session-scoped state."""

    __tablename__ = "sessions"

    app_name: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    state_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    initial_state_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    create_time: Mapped[float] = mapped_column(Float, nullable=False)
    update_time: Mapped[float] = mapped_column(Float, nullable=False)


class EventRow(Base):
    """One appended event. ``seq`` preserves append order within a session."""

    __tablename__ = "events"

    app_name: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    session_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    invocation_id: Mapped[str] = mapped_column(String(128), nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    branch: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    timestamp: Mapped[float] = mapped_column(Float, nullable=False)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        ForeignKeyConstraint(
            ["app_name", "user_id", "session_id"],
            ["sessions.app_name", "sessions.user_id", "sessions.id"],
            ondelete="CASCADE",
        ),
        Index("ix_events_session_seq", "app_name", "user_id", "session_id", "seq"),
        Index("ix_events_invocation", "invocation_id"),
    )


class AppStateRow(Base):
    """State shared by every session of an app (``app:`` keys, unprefixed)."""

    __tablename__ = "app_states"

    app_name: Mapped[str] = mapped_column(String(128), primary_key=True)
    state_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    update_time: Mapped[float] = mapped_column(Float, nullable=False)


class UserStateRow(Base):
    """State shared by every session of a user (``user:`` keys, unprefixed)."""

    __tablename__ = "user_states"

    app_name: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    state_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    update_time: Mapped[float] = mapped_column(Float, nullable=False)


class StrandMetaRow(Base):
    """Key/value metadata about the database itself (schema version)."""

    __tablename__ = "_strand_meta"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
