# planner_core/db/repo.py

import json
from typing import Any, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from planner_core.db.models import AuditEvent


def _serialize_sqlite_value(value: Any) -> Any:
    """
    SQLite cannot bind dict/list directly into TEXT parameters.
    Convert dict/list to JSON string so commit never fails.
    """
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return value


async def add_audit_event(db: AsyncSession, ev: AuditEvent) -> AuditEvent:
    ev.payload = _serialize_sqlite_value(ev.payload) or "{}"
    db.add(ev)
    await db.commit()
    await db.refresh(ev)
    return ev


async def list_audit_events(db: AsyncSession, correlation_id: Optional[str] = None) -> list[AuditEvent]:
    stmt = select(AuditEvent)
    if correlation_id is not None:
        stmt = stmt.where(AuditEvent.correlation_id == correlation_id)
    res = await db.execute(stmt.order_by(AuditEvent.created_at))
    return list(res.scalars().all())


async def purge_audit_events(db: AsyncSession, correlation_id: str) -> None:
    await db.execute(delete(AuditEvent).where(AuditEvent.correlation_id == correlation_id))
    await db.commit()
