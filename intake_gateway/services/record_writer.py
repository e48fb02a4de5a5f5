"""
Call/Event Record Writer
Persists calls, transcripts, tool invocations and alert outcomes through a StorageSink
"""

import asyncio
import weakref
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from intake_gateway.core.config import Settings, settings as default_settings
from intake_gateway.core.exceptions import ValidationError
from intake_gateway.core.logging import get_logger, mask_phone
from intake_gateway.db.base import StorageSink
from intake_gateway.db.models import (
    CALLS_TABLE,
    NOTIFICATIONS_TABLE,
    TOOL_CALLS_TABLE,
    TRANSCRIPTS_TABLE,
    CallRecordDB,
    CallTranscriptDB,
    NotificationOutcomeDB,
    ToolCallDB,
)
from intake_gateway.models.call import CallRecord, CallStatus, TranscriptEntry, utcnow
from intake_gateway.models.notification import DeliveryReport
from intake_gateway.reliability import CircuitRegistry, RetryPolicy, retry_with_backoff, with_timeout

logger = get_logger(__name__)

T = TypeVar("T")

STORAGE_CIRCUIT = "storage"


def _validation_error(e: PydanticValidationError) -> ValidationError:
    errors = [f"{'.'.join(str(p) for p in err['loc']) or 'record'}: {err['msg']}" for err in e.errors()]
    return ValidationError("Invalid call record", errors=errors)


class RecordWriter:
    """
    Writes records to storage.

    Every storage operation runs as retry(circuit(timeout(op))). Updates of
    one call are serialised by a per-call lock; different calls never wait
    on each other.
    """

    def __init__(
        self,
        storage: StorageSink,
        circuits: CircuitRegistry,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = 10.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.storage = storage
        self.circuits = circuits
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.timeout = timeout
        self._sleep = sleep
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    @classmethod
    def from_settings(
        cls,
        storage: StorageSink,
        circuits: CircuitRegistry,
        config: Optional[Settings] = None,
        **overrides,
    ) -> "RecordWriter":
        config = config or default_settings
        values = {
            "retry_policy": RetryPolicy.from_settings(config),
            "timeout": config.downstream_timeout_seconds,
        }
        values.update(overrides)
        return cls(storage, circuits, **values)

    def _lock_for(self, call_id: str) -> asyncio.Lock:
        lock = self._locks.get(call_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[call_id] = lock
        return lock

    async def _run(self, operation_name: str, operation: Callable[[], Awaitable[T]]) -> T:
        breaker = self.circuits.get(STORAGE_CIRCUIT)

        async def attempt() -> T:
            return await breaker.call(
                lambda: with_timeout(operation(), self.timeout, dependency=STORAGE_CIRCUIT)
            )

        return await retry_with_backoff(
            attempt,
            policy=self.retry_policy,
            operation_name=operation_name,
            sleep=self._sleep,
        )

    # ==================== Call Records ====================

    @staticmethod
    def _to_row(record: CallRecord) -> Dict[str, Any]:
        classification = record.classification
        row = CallRecordDB(
            call_id=record.call_id,
            status=record.status.value,
            assistant_id=record.assistant_id,
            customer_phone=record.customer_phone,
            started_at=record.started_at,
            ended_at=record.ended_at,
            duration_seconds=record.duration_seconds,
            transcript=record.transcript,
            summary=record.summary,
            intake=record.intake.model_dump(exclude_none=True) if record.intake else None,
            priority=classification.tier.value if classification else None,
            priority_reason=classification.reason if classification else None,
            sla_seconds=classification.sla_seconds if classification else None,
            classification=classification.model_dump(mode="json") if classification else None,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
        return row.model_dump(mode="json")

    @staticmethod
    def _from_row(row: Dict[str, Any]) -> CallRecord:
        return CallRecord.model_validate({
            key: row.get(key)
            for key in (
                "call_id", "status", "assistant_id", "customer_phone", "started_at",
                "ended_at", "duration_seconds", "transcript", "summary", "intake",
                "classification", "created_at", "updated_at",
            )
            if row.get(key) is not None
        })

    @staticmethod
    def merge(existing: Optional[CallRecord], update: CallRecord) -> CallRecord:
        """
        Merge an update into the stored record.

        Fields explicitly set on the update win when not None; intake fields
        are merged one by one. started_at keeps the earliest known value, so a
        replayed or late call-started cannot move it. An ended call never goes
        back to an earlier status.
        """
        if existing is None:
            return update

        data = existing.model_dump()
        for field in update.model_fields_set:
            value = getattr(update, field)
            if value is None or field in ("call_id", "created_at"):
                continue
            if field == "started_at":
                # earliest known start wins and never lands after the end
                if existing.started_at is not None:
                    data["started_at"] = min(existing.started_at, value)
                elif existing.ended_at is None or value <= existing.ended_at:
                    data["started_at"] = value
                continue
            if field == "intake" and existing.intake is not None:
                merged_intake = existing.intake.model_dump()
                merged_intake.update(value.model_dump(exclude_none=True))
                data["intake"] = merged_intake
                continue
            data[field] = value.model_dump() if hasattr(value, "model_dump") else value

        if existing.status == CallStatus.ENDED:
            data["status"] = CallStatus.ENDED
        data["updated_at"] = utcnow()

        try:
            return CallRecord.model_validate(data)
        except PydanticValidationError as e:
            raise _validation_error(e)

    async def get_call(self, call_id: str) -> Optional[CallRecord]:
        """Get a call record by call_id"""
        rows = await self._run(
            f"select {CALLS_TABLE} {call_id}",
            lambda: self.storage.select(CALLS_TABLE, {"call_id": call_id}, limit=1),
        )
        return self._from_row(rows[0]) if rows else None

    async def upsert_call(self, record: CallRecord) -> CallRecord:
        """
        Create or merge a call record

        Returns:
            The record as stored
        Raises:
            ValidationError: If the merged record violates ended_at >= started_at
        """
        async with self._lock_for(record.call_id):
            existing = await self.get_call(record.call_id)
            merged = self.merge(existing, record)
            row = self._to_row(merged)
            await self._run(
                f"upsert {CALLS_TABLE} {record.call_id}",
                lambda: self.storage.upsert(CALLS_TABLE, row, on_conflict="call_id"),
            )
        logger.info(f"Call {record.call_id} stored (status={merged.status.value})")
        return merged

    # ==================== Transcripts ====================

    async def append_transcript(
        self,
        call_id: str,
        role: str,
        text: str,
        confidence: Optional[float] = None,
        timestamp: Optional[datetime] = None,
    ) -> TranscriptEntry:
        """Append one utterance to a call's transcript"""
        entry = TranscriptEntry(
            call_id=call_id,
            role=role,
            text=text,
            confidence=confidence,
            timestamp=timestamp or utcnow(),
        )
        row = CallTranscriptDB(
            call_id=entry.call_id,
            role=entry.role,
            content=entry.text,
            confidence=entry.confidence,
            timestamp=entry.timestamp,
        ).model_dump(mode="json")
        await self._run(
            f"insert {TRANSCRIPTS_TABLE} {call_id}",
            lambda: self.storage.insert(TRANSCRIPTS_TABLE, row),
        )
        return entry

    # ==================== Tool Calls ====================

    async def log_tool_call(
        self,
        call_id: Optional[str],
        tool_call_id: str,
        name: str,
        arguments: Dict[str, Any],
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        """Record one tool invocation and its outcome"""
        row = ToolCallDB(
            tool_call_id=tool_call_id,
            call_id=call_id,
            function_name=name,
            arguments=arguments,
            result=result,
            error=error,
            duration_ms=duration_ms,
        ).model_dump(mode="json")
        await self._run(
            f"upsert {TOOL_CALLS_TABLE} {tool_call_id}",
            lambda: self.storage.upsert(TOOL_CALLS_TABLE, row, on_conflict="tool_call_id"),
        )

    # ==================== Notifications ====================

    async def record_notification(self, report: DeliveryReport) -> None:
        """Record the terminal outcome of an alert"""
        row = NotificationOutcomeDB(
            job_id=report.job_id,
            call_id=report.correlation_id,
            priority=report.priority,
            status=report.status.value,
            delivered=len(report.successes),
            failed=len(report.failures),
            attempts=report.total_attempts,
            errors={mask_phone(o.recipient): o.error or "" for o in report.failures},
            completed_at=report.completed_at,
        ).model_dump(mode="json")
        await self._run(
            f"upsert {NOTIFICATIONS_TABLE} {report.job_id}",
            lambda: self.storage.upsert(NOTIFICATIONS_TABLE, row, on_conflict="job_id"),
        )
