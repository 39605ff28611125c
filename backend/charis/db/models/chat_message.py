"""ChatMessage model: visible conversation transcript of a session."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, String, Text

from charis.db.base import Base


class ChatMessage(Base):
    __tablename__ = "agent_chat_messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String(255), nullable=False, index=True)

    role = Column(String(20), nullable=False)  # user | assistant | system
    content = Column(Text, nullable=False, default="")
    # Assistant rows start True and flip to False exactly once, at finalization
    is_streaming = Column(Boolean, nullable=False, default=False)
    metadata_ = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "role": self.role,
            "content": self.content,
            "is_streaming": self.is_streaming,
            "metadata": self.metadata_ or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
