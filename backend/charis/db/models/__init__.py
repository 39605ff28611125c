"""Re-export all models so Base.metadata sees them."""

from charis.db.models.agent_session import AgentSession, SessionState
from charis.db.models.audit_report import AuditReport
from charis.db.models.chat_message import ChatMessage
from charis.db.models.execution_log import ExecutionLog, LogStatus

__all__ = [
    "AgentSession",
    "AuditReport",
    "ChatMessage",
    "ExecutionLog",
    "LogStatus",
    "SessionState",
]
