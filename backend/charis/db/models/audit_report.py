"""AuditReport model: reports persisted by the synthesize_report tool."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, String, Text

from charis.db.base import Base


class AuditReport(Base):
    __tablename__ = "ad_audit_reports"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String(255), nullable=True, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    brand_name = Column(String(255), nullable=False)
    status = Column(String(50), nullable=True, default="completed")
    report_data = Column(JSON, nullable=False)
    report_url = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    completed_at = Column(DateTime(timezone=True), nullable=True)
