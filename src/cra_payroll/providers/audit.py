"""Append-only audit trail of provider invocations.

Every remote authority attempt and every local fallback calculation is
recorded. Audit writes are best-effort: a failing sink is logged and the
calculation carries on.
"""

from __future__ import annotations

import asyncio
import logging
import re
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from cra_payroll.calculators.types import DeductionResult, PayEvent
from cra_payroll.providers.base import DeductionProvider, ProviderTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_QUERY_LIMIT = 1000


class AuditOperation(str, Enum):
    CALC = "calc"
    PING = "ping"


class AuditStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"


def mask_sin(sin: str | None) -> str | None:
    """Redact a SIN down to its last three digits: 'XXX XXX 789'."""
    if not sin:
        return None
    digits = re.sub(r"\D", "", sin)
    return f"XXX XXX {digits[-3:]}"


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex}"


@dataclass(frozen=True)
class AuditEntry:
    """One provider invocation."""

    employee_id: str
    operation: AuditOperation
    provider: str
    status: AuditStatus
    duration_ms: int
    request: dict[str, Any] = field(default_factory=dict)
    response_meta: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@runtime_checkable
class AuditSink(Protocol):
    """Append-only destination for audit entries."""

    def record(self, entry: AuditEntry) -> None:
        ...

    def query(
        self,
        employee_id: str | None = None,
        operation: AuditOperation | None = None,
        status: AuditStatus | None = None,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> list[AuditEntry]:
        ...


def matches(
    entry: AuditEntry,
    employee_id: str | None,
    operation: AuditOperation | None,
    status: AuditStatus | None,
    from_time: datetime | None,
    to_time: datetime | None,
) -> bool:
    if employee_id is not None and entry.employee_id != employee_id:
        return False
    if operation is not None and entry.operation != operation:
        return False
    if status is not None and entry.status != status:
        return False
    if from_time is not None and entry.timestamp < from_time:
        return False
    if to_time is not None and entry.timestamp > to_time:
        return False
    return True


class InMemoryAuditSink:
    """Thread-safe in-process audit sink."""

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()

    def record(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def query(
        self,
        employee_id: str | None = None,
        operation: AuditOperation | None = None,
        status: AuditStatus | None = None,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> list[AuditEntry]:
        """Matching entries, newest first."""
        with self._lock:
            entries = list(self._entries)
        found = [e for e in entries if matches(e, employee_id, operation, status, from_time, to_time)]
        found.reverse()
        return found[:limit]

    @property
    def entries(self) -> list[AuditEntry]:
        with self._lock:
            return list(self._entries)


def record_best_effort(sink: AuditSink | None, entry: AuditEntry) -> None:
    """Write entry to sink, logging and swallowing any sink failure."""
    if sink is None:
        return
    try:
        sink.record(entry)
    except Exception:
        logger.exception(
            "Audit sink failed for employee %s (%s/%s)",
            entry.employee_id,
            entry.provider,
            entry.status.value,
        )


async def record_off_loop(sink: AuditSink | None, entry: AuditEntry) -> None:
    """record_best_effort in a worker thread, off the event loop."""
    if sink is None:
        return
    await asyncio.to_thread(record_best_effort, sink, entry)


def masked_event_payload(event: PayEvent) -> dict[str, Any]:
    """Canonical event fields with the SIN masked."""
    payload = event.to_canonical_dict()
    payload["sin"] = mask_sin(event.sin)
    return payload


class AuditedProvider:
    """Decorator recording every invocation of the wrapped provider."""

    def __init__(self, inner: DeductionProvider, sink: AuditSink | None):
        self.inner = inner
        self.sink = sink

    @property
    def provider_name(self) -> str:
        return self.inner.provider_name

    async def calculate(self, event: PayEvent) -> DeductionResult:
        started = time.perf_counter()
        status = AuditStatus.SUCCESS
        error: str | None = None
        try:
            return await self.inner.calculate(event)
        except ProviderTimeoutError as e:
            status, error = AuditStatus.TIMEOUT, str(e)
            raise
        except Exception as e:
            status, error = AuditStatus.ERROR, str(e)
            raise
        finally:
            await record_off_loop(
                self.sink,
                AuditEntry(
                    employee_id=event.employee_id,
                    operation=AuditOperation.CALC,
                    provider=self.provider_name,
                    status=status,
                    duration_ms=int((time.perf_counter() - started) * 1000),
                    request=masked_event_payload(event),
                    error=error,
                ),
            )
