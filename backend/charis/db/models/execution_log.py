"""ExecutionLog model: append-only audit trail of agent steps."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from charis.db.base import Base


class LogStatus:
    """Status values for ExecutionLog.status."""

    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    TERMINAL = frozenset({COMPLETED, FAILED})


class ExecutionLog(Base):
    """One row per step transition. Insert-only; rows are never updated.

    A ``started`` row is followed by exactly one ``completed`` or ``failed`` row
    with the same ``input_data.step_id``. ``skipped`` rows stand alone.
    """

    __tablename__ = "agent_execution_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String(255), nullable=False, index=True)

    step_name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False)
    tool_name = Column(String(100), nullable=True)

    # Tool arguments plus UI hints: tool_icon, progress_percent, sub_step, step_id
    input_data = Column(JSON, nullable=True)
    output_data = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    duration_ms = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "step_name": self.step_name,
            "status": self.status,
            "tool_name": self.tool_name,
            "input_data": self.input_data,
            "output_data": self.output_data,
            "error_message": self.error_message,
            "duration_ms": self.duration_ms,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
