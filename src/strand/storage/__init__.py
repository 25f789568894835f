"""SQLAlchemy-backed persistence for sessions, events and scoped state."""

from strand.storage.engine import create_session_factory, create_strand_engine, init_db

__all__ = ["create_session_factory", "create_strand_engine", "init_db"]
