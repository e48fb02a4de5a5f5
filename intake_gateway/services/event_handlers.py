"""
Event Handlers
One handler per inbound event type
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from intake_gateway.core.config import Settings, settings as default_settings
from intake_gateway.core.exceptions import CircuitOpenError, DownstreamError, ValidationError
from intake_gateway.core.logging import get_logger
from intake_gateway.models.call import CallRecord, CallStatus, StructuredIntake
from intake_gateway.models.events import (
    CallEndedEvent,
    CallStartedEvent,
    FunctionCallEvent,
    HealthCheckEvent,
    MessageEvent,
    ToolCallsEvent,
    TranscriptEvent,
)
from intake_gateway.models.notification import DeliveryReport, NotificationJob
from intake_gateway.models.rules import PriorityClassification
from intake_gateway.services.dispatcher import EventDispatcher
from intake_gateway.services.notification_service import (
    NotificationFanOut,
    delivery_policy_for,
    render_alert,
)
from intake_gateway.services.record_writer import RecordWriter
from intake_gateway.services.rules import classify_priority
from intake_gateway.services.tool_calls import ToolCallProcessor

logger = get_logger(__name__)


def _coerce_status(value: Optional[str], default: CallStatus) -> CallStatus:
    try:
        return CallStatus(value) if value else default
    except ValueError:
        logger.warning(f"Unknown call status '{value}', using {default.value}")
        return default


def _build_record(**fields) -> CallRecord:
    try:
        return CallRecord(**fields)
    except PydanticValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc']) or 'call'}: {err['msg']}" for err in e.errors()]
        raise ValidationError("Invalid call record", field="call", errors=errors)


def _parse_intake(call_id: str, data: Dict[str, Any]) -> StructuredIntake:
    """
    Build the intake from extracted call data, dropping fields that fail
    validation instead of rejecting the call.
    """
    try:
        return StructuredIntake.model_validate(data)
    except PydanticValidationError:
        pass

    kept: Dict[str, Any] = {}
    for key, value in data.items():
        try:
            StructuredIntake.model_validate({key: value})
        except PydanticValidationError as e:
            logger.warning(f"Call {call_id}: dropping structuredData.{key}: {e.errors()[0]['msg']}")
            continue
        kept[key] = value
    return StructuredIntake.model_validate(kept)


class EventHandlers:
    """
    Handlers for every event type, sharing the record writer, the alert
    fan-out and the tool-call processor.
    """

    def __init__(
        self,
        record_writer: RecordWriter,
        fanout: NotificationFanOut,
        tool_processor: ToolCallProcessor,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.record_writer = record_writer
        self.fanout = fanout
        self.tool_processor = tool_processor
        self.config = config or default_settings
        self._clock = clock

    def dispatcher(self) -> EventDispatcher:
        return EventDispatcher({
            "health-check": self.handle_health_check,
            "call-started": self.handle_call_started,
            "call-ended": self.handle_call_ended,
            "transcript": self.handle_transcript,
            "message": self.handle_message,
            "tool-calls": self.handle_tool_calls,
            "function-call": self.handle_tool_calls,
        })

    async def handle_health_check(self, event: HealthCheckEvent) -> Dict[str, Any]:
        return {
            "success": True,
            "type": event.type,
            "status": "healthy",
            "timestamp": self._clock().isoformat(),
            "version": self.config.app_version,
        }

    async def handle_call_started(self, event: CallStartedEvent) -> Dict[str, Any]:
        call = event.call
        record = _build_record(
            call_id=call.id,
            status=_coerce_status(call.status, CallStatus.IN_PROGRESS),
            assistant_id=call.assistant_id,
            customer_phone=call.caller_number,
            started_at=call.started_at or event.timestamp or self._clock(),
        )
        stored = await self.record_writer.upsert_call(record)
        logger.info(f"Call started: {call.id}")
        return {"success": True, "type": event.type, "callId": call.id, "status": stored.status.value}

    async def handle_call_ended(self, event: CallEndedEvent) -> Dict[str, Any]:
        call = event.call
        analysis = call.analysis
        intake = None
        if analysis and analysis.structured_data:
            intake = _parse_intake(call.id, analysis.structured_data)

        summary = call.summary or (analysis.summary if analysis else None)
        classification = classify_priority(
            [
                intake.description if intake else None,
                intake.service_type if intake else None,
                summary,
                call.transcript,
            ],
            intake.estimated_value if intake else None,
        )

        record = _build_record(
            call_id=call.id,
            status=CallStatus.ENDED,
            assistant_id=call.assistant_id,
            customer_phone=(intake.customer_phone if intake else None) or call.caller_number,
            started_at=call.started_at,
            ended_at=call.ended_at or event.timestamp or self._clock(),
            duration_seconds=call.duration,
            transcript=call.transcript,
            summary=summary,
            intake=intake,
            classification=classification,
        )

        stored = True
        try:
            await self.record_writer.upsert_call(record)
        except (DownstreamError, CircuitOpenError) as e:
            # The alert still goes out when storage is unavailable
            stored = False
            logger.error(f"Could not store ended call {call.id}: {e.message}")

        logger.info(
            f"Call ended: {call.id} classified {classification.tier.value} ({classification.reason})"
        )
        response: Dict[str, Any] = {
            "success": True,
            "type": event.type,
            "callId": call.id,
            "classification": classification.model_dump(mode="json"),
            "stored": stored,
        }

        notification = await self._alert_staff(call.id, classification, intake, record)
        if notification is not None:
            response["notification"] = notification
        return response

    async def _alert_staff(
        self,
        call_id: str,
        classification: PriorityClassification,
        intake: Optional[StructuredIntake],
        record: CallRecord,
    ) -> Optional[Dict[str, Any]]:
        tier = classification.tier.value
        if tier not in self.config.alert_priority_tiers:
            return None

        recipients = self.config.alert_recipients[:self.config.sms_max_recipients]
        if not recipients:
            logger.warning(f"{tier} call {call_id} not alerted: no SMS recipients configured")
            return None

        body = render_alert(
            tier,
            {
                "name": intake.customer_name if intake else None,
                "phone": record.customer_phone,
                "service": intake.service_type if intake else None,
                "address": intake.address if intake else None,
                "description": (intake.description if intake else None) or record.summary,
            },
            company=self.config.company_name,
            max_length=self.config.sms_max_length,
        )
        job = NotificationJob(recipients=recipients, body=body, priority=tier, correlation_id=call_id)
        policy = delivery_policy_for(tier)

        async def on_complete(report: DeliveryReport):
            if not report.meets(policy):
                logger.error(
                    f"{tier} alert for call {call_id} did not meet delivery policy "
                    f"'{policy.value}': {report.status.value}"
                )
            await self.record_writer.record_notification(report)

        report = await self.fanout.deliver_within(
            job, self.config.notification_grace_seconds, on_complete=on_complete
        )
        if report is None:
            return {"jobId": job.job_id, "status": "pending", "policy": policy.value}

        summary = report.summary()
        summary.update({"policy": policy.value, "policyMet": report.meets(policy)})
        return summary

    async def handle_transcript(self, event: TranscriptEvent) -> Dict[str, Any]:
        transcript = event.transcript
        await self.record_writer.append_transcript(
            call_id=event.call.id,
            role=transcript.role,
            text=transcript.transcript,
            confidence=transcript.confidence,
            timestamp=transcript.timestamp or event.timestamp,
        )
        return {"success": True, "type": event.type, "callId": event.call.id}

    async def handle_message(self, event: MessageEvent) -> Dict[str, Any]:
        message = event.message
        await self.record_writer.append_transcript(
            call_id=event.call.id,
            role=message.role,
            text=message.message,
            timestamp=message.timestamp or event.timestamp,
        )
        return {"success": True, "type": event.type, "callId": event.call.id}

    async def handle_tool_calls(self, event: Union[ToolCallsEvent, FunctionCallEvent]) -> Dict[str, Any]:
        """Handles both tool-calls and function-call events"""
        results = await self.tool_processor.process(event.call_id, event.tool_calls)
        return {
            "success": True,
            "type": event.type,
            "callId": event.call_id,
            "results": results,
        }
