"""
Tests for the record writer and storage adapters
"""

import asyncio
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import httpx

from intake_gateway.core.exceptions import CircuitOpenError, StorageError, ValidationError
from intake_gateway.db import CALLS_TABLE, NOTIFICATIONS_TABLE, TOOL_CALLS_TABLE, TRANSCRIPTS_TABLE
from intake_gateway.db.adapters.supabase import SupabaseStorage
from intake_gateway.models.call import CallRecord, CallStatus, StructuredIntake
from intake_gateway.models.notification import DeliveryReport, RecipientOutcome
from intake_gateway.models.rules import PriorityClassification, PriorityTier
from intake_gateway.reliability import RetryPolicy
from intake_gateway.services.record_writer import RecordWriter

from .conftest import RecordingSleep

STARTED = datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc)


def _writer(storage, circuits, sleep=None):
    return RecordWriter(
        storage,
        circuits,
        retry_policy=RetryPolicy(max_attempts=3, base_delay=0.5, jitter=False),
        timeout=1.0,
        sleep=sleep or RecordingSleep(),
    )


class TestMerge:
    """Tests for RecordWriter.merge"""

    def test_new_record(self):
        """Test a record with nothing stored is taken as is"""
        record = CallRecord(call_id="c1", started_at=STARTED)
        assert RecordWriter.merge(None, record) is record

    def test_update_keeps_unset_fields(self):
        """Test fields missing from the update keep their stored values"""
        existing = CallRecord(call_id="c1", assistant_id="asst-1", customer_phone="+15145559876", started_at=STARTED)
        update = CallRecord(call_id="c1", status=CallStatus.ENDED, ended_at=STARTED + timedelta(minutes=5))

        merged = RecordWriter.merge(existing, update)

        assert merged.status == CallStatus.ENDED
        assert merged.assistant_id == "asst-1"
        assert merged.customer_phone == "+15145559876"
        assert merged.created_at == existing.created_at

    def test_intake_merged_per_field(self):
        """Test intake fields are merged one by one"""
        existing = CallRecord(call_id="c1", intake=StructuredIntake(customer_name="Marie", address="123 rue A"))
        update = CallRecord(call_id="c1", intake=StructuredIntake(address="456 rue B", service_type="debouchage"))

        intake = RecordWriter.merge(existing, update).intake

        assert intake.customer_name == "Marie"
        assert intake.address == "456 rue B"
        assert intake.service_type == "debouchage"

    def test_ended_never_downgraded(self):
        """Test a late call-started does not reopen an ended call"""
        existing = CallRecord(call_id="c1", status=CallStatus.ENDED, started_at=STARTED)
        update = CallRecord(call_id="c1", status=CallStatus.IN_PROGRESS)
        assert RecordWriter.merge(existing, update).status == CallStatus.ENDED

    def test_started_at_keeps_earliest(self):
        """Test a later start time from a replayed event does not move the start"""
        existing = CallRecord(call_id="c1", status=CallStatus.ENDED, started_at=STARTED,
                              ended_at=STARTED + timedelta(minutes=6))
        update = CallRecord(call_id="c1", started_at=STARTED + timedelta(hours=2))

        merged = RecordWriter.merge(existing, update)

        assert merged.started_at == STARTED
        assert merged.status == CallStatus.ENDED

    def test_started_at_corrected_by_earlier_value(self):
        """Test the platform start time replaces a later locally assigned one"""
        existing = CallRecord(call_id="c1", started_at=STARTED + timedelta(seconds=3))
        update = CallRecord(call_id="c1", status=CallStatus.ENDED, started_at=STARTED,
                            ended_at=STARTED + timedelta(minutes=6))
        assert RecordWriter.merge(existing, update).started_at == STARTED

    def test_late_start_after_end_ignored(self):
        """Test a start later than the stored end is not applied"""
        existing = CallRecord(call_id="c1", status=CallStatus.ENDED, ended_at=STARTED)
        update = CallRecord(call_id="c1", started_at=STARTED + timedelta(minutes=1))
        assert RecordWriter.merge(existing, update).started_at is None

    def test_time_order_enforced(self):
        """Test a merge ending before the start is rejected"""
        existing = CallRecord(call_id="c1", started_at=STARTED)
        update = CallRecord(call_id="c1", ended_at=STARTED - timedelta(minutes=1))
        with pytest.raises(ValidationError):
            RecordWriter.merge(existing, update)


class TestRecordWriter:
    """Tests for RecordWriter against in-memory storage"""

    @pytest.mark.asyncio
    async def test_upsert_and_get(self, storage, circuits):
        """Test a stored call round-trips with its classification"""
        writer = _writer(storage, circuits)
        classification = PriorityClassification(tier=PriorityTier.P1, reason="urgence_immediate", sla_seconds=0)
        await writer.upsert_call(CallRecord(
            call_id="c1",
            started_at=STARTED,
            intake=StructuredIntake(customer_name="Marie", postal_code="j4k 1a1"),
            classification=classification,
        ))

        stored = await writer.get_call("c1")
        rows = await storage.select(CALLS_TABLE, {"call_id": "c1"})

        assert stored.classification.tier == PriorityTier.P1
        assert stored.intake.postal_code == "J4K1A1"
        assert rows[0]["priority"] == "P1"
        assert rows[0]["sla_seconds"] == 0

    @pytest.mark.asyncio
    async def test_lifecycle_single_row(self, storage, circuits):
        """Test start then end of a call updates one row"""
        writer = _writer(storage, circuits)
        await writer.upsert_call(CallRecord(call_id="c1", started_at=STARTED, customer_phone="+15145559876"))
        await writer.upsert_call(CallRecord(call_id="c1", status=CallStatus.ENDED,
                                            ended_at=STARTED + timedelta(minutes=3)))

        assert storage.count(CALLS_TABLE) == 1
        stored = await writer.get_call("c1")
        assert stored.status == CallStatus.ENDED
        assert stored.customer_phone == "+15145559876"

    @pytest.mark.asyncio
    async def test_concurrent_updates_serialised(self, storage, circuits):
        """Test concurrent updates of one call do not lose fields"""
        writer = _writer(storage, circuits)
        await asyncio.gather(
            writer.upsert_call(CallRecord(call_id="c1", assistant_id="asst-1")),
            writer.upsert_call(CallRecord(call_id="c1", customer_phone="+15145559876")),
            writer.upsert_call(CallRecord(call_id="c1", summary="Drain bouché")),
        )
        stored = await writer.get_call("c1")
        assert (stored.assistant_id, stored.customer_phone, stored.summary) == (
            "asst-1", "+15145559876", "Drain bouché"
        )

    @pytest.mark.asyncio
    async def test_append_transcript(self, storage, circuits):
        """Test each utterance is one row"""
        writer = _writer(storage, circuits)
        await writer.append_transcript("c1", "user", "Allo", confidence=0.9)
        await writer.append_transcript("c1", "assistant", "Bonjour")

        rows = await storage.select(TRANSCRIPTS_TABLE, {"call_id": "c1"})
        assert [r["content"] for r in rows] == ["Allo", "Bonjour"]

    @pytest.mark.asyncio
    async def test_log_tool_call(self, storage, circuits):
        """Test tool invocations are keyed by their id"""
        writer = _writer(storage, circuits)
        await writer.log_tool_call("c1", "t1", "calculateQuote", {"serviceType": "debouchage"},
                                   result={"min_price": 35000}, duration_ms=3)
        await writer.log_tool_call("c1", "t1", "calculateQuote", {"serviceType": "debouchage"},
                                   result={"min_price": 35000}, duration_ms=4)

        rows = await storage.select(TOOL_CALLS_TABLE)
        assert len(rows) == 1
        assert rows[0]["duration_ms"] == 4

    @pytest.mark.asyncio
    async def test_record_notification_masks_numbers(self, storage, circuits):
        """Test failed recipients are stored masked"""
        writer = _writer(storage, circuits)
        report = DeliveryReport(job_id="j1", priority="P1", correlation_id="c1", outcomes=[
            RecipientOutcome(recipient="+15145550001", success=True, attempts=1),
            RecipientOutcome(recipient="+15145550002", success=False, attempts=3, error="busy"),
        ])
        await writer.record_notification(report)

        row = (await storage.select(NOTIFICATIONS_TABLE, {"job_id": "j1"}))[0]
        assert row["status"] == "partial"
        assert row["attempts"] == 4
        assert row["errors"] == {"***0002": "busy"}

    @pytest.mark.asyncio
    async def test_transient_storage_errors_retried(self, storage, circuits):
        """Test storage failures are retried with backoff"""
        sleep = RecordingSleep()
        writer = _writer(storage, circuits, sleep=sleep)
        original = storage.insert
        storage.insert = AsyncMock(side_effect=[StorageError("insert", "unavailable", 503), None])

        await writer.append_transcript("c1", "user", "Allo")

        assert storage.insert.await_count == 2
        assert sleep.delays == [0.5]
        storage.insert = original

    @pytest.mark.asyncio
    async def test_open_storage_circuit(self, storage, circuits):
        """Test writes fail fast while the storage circuit is open"""
        breaker = circuits.get("storage")
        for _ in range(breaker.config.failure_threshold):
            await breaker.record_failure()

        with pytest.raises(CircuitOpenError):
            await _writer(storage, circuits).append_transcript("c1", "user", "Allo")
        assert storage.count(TRANSCRIPTS_TABLE) == 0


class TestSupabaseStorage:
    """Tests for the Supabase REST adapter"""

    @pytest.mark.asyncio
    async def test_upsert_request(self):
        """Test upserts post to the table with on_conflict and merge preference"""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(201, json=[{"call_id": "c1", "status": "ended"}])

        adapter = SupabaseStorage("https://demo.supabase.co", "service-key",
                                  transport=httpx.MockTransport(handler))
        assert await adapter.connect() is True

        row = await adapter.upsert(CALLS_TABLE, {"call_id": "c1", "status": "ended"}, on_conflict="call_id")
        await adapter.disconnect()

        request = seen["request"]
        assert row["status"] == "ended"
        assert request.method == "POST"
        assert request.url.path == "/rest/v1/vapi_calls"
        assert request.url.params["on_conflict"] == "call_id"
        assert "merge-duplicates" in request.headers["prefer"]
        assert request.headers["apikey"] == "service-key"

    @pytest.mark.asyncio
    async def test_select_filters(self):
        """Test equality filters use PostgREST syntax"""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=[])

        adapter = SupabaseStorage("https://demo.supabase.co", "service-key",
                                  transport=httpx.MockTransport(handler))
        await adapter.connect()
        assert await adapter.select(CALLS_TABLE, {"call_id": "c1"}, limit=1) == []
        await adapter.disconnect()

        assert seen["params"] == {"select": "*", "call_id": "eq.c1", "limit": "1"}

    @pytest.mark.asyncio
    async def test_http_error_carries_status(self):
        """Test HTTP failures become StorageError with the upstream status"""
        adapter = SupabaseStorage("https://demo.supabase.co", "service-key",
                                  transport=httpx.MockTransport(lambda r: httpx.Response(503, text="down")))
        await adapter.connect()

        with pytest.raises(StorageError) as exc_info:
            await adapter.insert(TRANSCRIPTS_TABLE, {"call_id": "c1"})
        await adapter.disconnect()

        assert exc_info.value.upstream_status == 503
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_not_connected(self):
        """Test operations before connect raise StorageError"""
        adapter = SupabaseStorage("https://demo.supabase.co", "service-key")
        with pytest.raises(StorageError):
            await adapter.select(CALLS_TABLE)
