"""AgentSession model: one row per agent run."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String

from charis.db.base import Base


class SessionState:
    """Lifecycle values for AgentSession.state."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"
    CANCELLED = "cancelled"

    TERMINAL = frozenset({COMPLETED, FAILED, CANCELLED})


class AgentSession(Base):
    """Records one autonomous agent run.

    state transitions running -> completed | failed | cancelled. ``paused`` is a
    valid value for user-facing tooling but the agent loop never writes it.
    progress never decreases within a run; completed_at is written once, by
    finalization.

    Python-level defaults are set explicitly in __init__ so that in-memory model
    instances behave correctly without a DB round-trip.
    """

    __tablename__ = "agent_sessions"

    # UUID passed from caller context, not autoincrement
    id = Column(String(255), primary_key=True)
    user_id = Column(String(255), nullable=False, index=True)

    state = Column(String(50), nullable=False, default=SessionState.RUNNING)
    progress = Column(Integer, nullable=False, default=0)
    current_step = Column(String(255), nullable=True)
    title = Column(String(500), nullable=True)

    # model, started_at, duration_ms, plan, iterations, brand_name, error
    metadata_ = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __init__(self, **kwargs: object) -> None:
        kwargs.setdefault("state", SessionState.RUNNING)
        kwargs.setdefault("progress", 0)
        kwargs.setdefault("metadata_", {})
        super().__init__(**kwargs)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "state": self.state,
            "progress": self.progress,
            "current_step": self.current_step,
            "title": self.title,
            "metadata": self.metadata_ or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
