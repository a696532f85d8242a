"""
Audit trail for planning decisions.
What it records:
- Plan evaluation scores, dedupe / repetition-guard results
- Hierarchy expansion and enrichment
- Mid-run adaptations and verification verdicts
- Self-improvement notes, memory summaries, checkpoint briefs

The sink is passed into each call. None means "no audit". Planner and
controller passes go through `record`, which logs and drops sink errors, so a
broken sink never changes a plan. Reporters use `emit` inside their own
try-block; for them an audit fault is a failed report.
"""


import json
from typing import Any, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from planner_core.core.ids import new_id
from planner_core.core.logging import get_logger
from planner_core.db.models import AuditEvent
from planner_core.db.repo import add_audit_event
from planner_core.llm.schemas import Severity

log = get_logger("agent.tracer")


class AuditSink(Protocol):
    async def append(
        self,
        correlation_id: Optional[str],
        severity: Severity,
        message: str,
        metadata: dict[str, Any],
    ) -> None: ...


class NullAuditSink:
    async def append(self, correlation_id, severity, message, metadata) -> None:
        return None


class LoggingAuditSink:
    """Writes audit records through the package logger."""

    _LEVELS = {"info": 20, "warning": 30, "error": 40}

    def __init__(self, name: str = "audit"):
        self._log = get_logger(name)

    async def append(self, correlation_id, severity, message, metadata) -> None:
        self._log.log(
            self._LEVELS.get(severity, 20),
            f"[{correlation_id or '-'}] {message} {json.dumps(metadata, ensure_ascii=False, default=str)}",
        )


class SqlAuditSink:
    """Persists audit records as AuditEvent rows via an async session factory."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    async def append(self, correlation_id, severity, message, metadata) -> None:
        ev = AuditEvent(
            id=new_id("audit"),
            correlation_id=correlation_id,
            severity=severity,
            message=message,
            payload=json.dumps(metadata, ensure_ascii=False, default=str),
        )
        async with self._sessionmaker() as db:
            await add_audit_event(db, ev)


async def emit(
    sink: Optional[AuditSink],
    correlation_id: Optional[str],
    severity: Severity,
    message: str,
    metadata: dict[str, Any],
) -> None:
    """Append to ``sink`` if there is one. Errors propagate to the caller's try-block."""
    if sink is None:
        return
    await sink.append(correlation_id, severity, message, metadata)


async def record(
    sink: Optional[AuditSink],
    correlation_id: Optional[str],
    severity: Severity,
    message: str,
    metadata: dict[str, Any],
) -> None:
    """Like ``emit``, but an unavailable sink is a no-op (logged)."""
    try:
        await emit(sink, correlation_id, severity, message, metadata)
    except Exception as e:
        log.warning(f"Audit append dropped ({message}): {e}. run_id={correlation_id}")
