"""
Database table definitions and it stores:
- Audit events emitted by planning, controllers and reporters
Main purpose:
Optional persistent backing for the audit sink.
"""



from sqlalchemy import String, Text, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from typing import Optional
from planner_core.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AuditEvent(Base):
    __tablename__ = "audit_events"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    correlation_id: Mapped[Optional[str]] = mapped_column(String, index=True, nullable=True)
    severity: Mapped[str] = mapped_column(String, default="info")  # info|warning|error
    message: Mapped[str] = mapped_column(Text)
    payload: Mapped[str] = mapped_column(Text, default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
Index("ix_audit_events_corr_created", AuditEvent.correlation_id, AuditEvent.created_at)
