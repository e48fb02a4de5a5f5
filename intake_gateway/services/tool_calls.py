"""
Tool-Call Processor
Runs the functions the voice agent invokes during a call
"""

import re
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from intake_gateway.core.config import Settings, settings as default_settings
from intake_gateway.core.logging import get_logger
from intake_gateway.models.events import ToolCallInvocation
from intake_gateway.models.notification import NotificationJob
from intake_gateway.models.rules import PriorityTier
from intake_gateway.reliability import BoundedTaskRunner
from intake_gateway.services.notification_service import (
    NotificationFanOut,
    delivery_policy_for,
    render_alert,
)
from intake_gateway.services.record_writer import RecordWriter
from intake_gateway.services.rules import (
    calculate_quote,
    classify_priority,
    evaluate_scheduling,
    validate_service,
)

logger = get_logger(__name__)

PHONE_PATTERN = r"^\+?[1-9]\d{1,14}$"

INVALID_ARGUMENTS = "invalid_arguments"
FUNCTION_NOT_FOUND = "function_not_found"
FUNCTION_FAILED = "function_failed"


# ==================== Argument models ====================

class ToolArguments(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ValidateServiceArgs(ToolArguments):
    service: str = Field(..., min_length=1, max_length=500)


class CalculateQuoteArgs(ToolArguments):
    service_type: str = Field(..., min_length=1, alias="serviceType")
    location: Optional[str] = Field(default=None, validation_alias=AliasChoices("location", "zone"))
    urgency: Optional[str] = Field(default=None, validation_alias=AliasChoices("urgency", "priority"))


class ClassifyPriorityArgs(ToolArguments):
    description: str = Field(..., min_length=1, max_length=1000)
    estimated_value: Optional[float] = Field(default=None, ge=0, alias="estimatedValue")


class EvaluateSchedulingArgs(ToolArguments):
    service_type: str = Field(..., min_length=1, alias="serviceType")
    priority: Optional[PriorityTier] = None
    urgency: Optional[str] = None


class SendSmsAlertArgs(ToolArguments):
    message: Optional[str] = Field(default=None, min_length=1, max_length=1600)
    phone_numbers: Optional[List[str]] = Field(default=None, alias="phoneNumbers", max_length=10)
    priority: PriorityTier
    customer_info: Optional[Dict[str, Any]] = Field(default=None, alias="customerInfo")

    @field_validator("phone_numbers")
    @classmethod
    def check_phone_numbers(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        for number in v:
            if not re.match(PHONE_PATTERN, number):
                raise ValueError(f"invalid phone number: {number}")
        return v


ToolFunc = Callable[[Any], Awaitable[Dict[str, Any]]]


class ToolCallProcessor:
    """
    Executes tool invocations from the closed set of supported functions.

    Every invocation yields exactly one response, either
    {"toolCallId", "result"} or {"toolCallId", "error", "message"}.
    Invocations of one event run concurrently and independently.
    """

    def __init__(
        self,
        fanout: NotificationFanOut,
        record_writer: Optional[RecordWriter] = None,
        config: Optional[Settings] = None,
        concurrency: Optional[int] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.fanout = fanout
        self.record_writer = record_writer
        self.config = config or default_settings
        self.runner = BoundedTaskRunner(concurrency=concurrency or self.config.tool_call_concurrency)
        self._clock = clock
        self._functions: Dict[str, Tuple[Type[ToolArguments], ToolFunc]] = {
            "validateServiceRequest": (ValidateServiceArgs, self._validate_service_request),
            "calculateQuote": (CalculateQuoteArgs, self._calculate_quote),
            "classifyPriority": (ClassifyPriorityArgs, self._classify_priority),
            "evaluateScheduling": (EvaluateSchedulingArgs, self._evaluate_scheduling),
            "sendSMSAlert": (SendSmsAlertArgs, self._send_sms_alert),
        }

    @property
    def function_names(self) -> List[str]:
        return list(self._functions)

    # ==================== Functions ====================

    async def _validate_service_request(self, args: ValidateServiceArgs) -> Dict[str, Any]:
        validation = validate_service(args.service)
        result = validation.model_dump(mode="json")
        result["accepted"] = validation.accepted
        return result

    async def _calculate_quote(self, args: CalculateQuoteArgs) -> Dict[str, Any]:
        quote = calculate_quote(
            args.service_type,
            zone=args.location,
            urgency=args.urgency,
            at=self._clock(),
            currency=self.config.quote_currency,
            tz=self.config.business_timezone,
        )
        return quote.model_dump(mode="json")

    async def _classify_priority(self, args: ClassifyPriorityArgs) -> Dict[str, Any]:
        return classify_priority(args.description, args.estimated_value).model_dump(mode="json")

    async def _evaluate_scheduling(self, args: EvaluateSchedulingArgs) -> Dict[str, Any]:
        urgency = args.priority.value if args.priority else args.urgency
        return evaluate_scheduling(args.service_type, urgency).model_dump(mode="json")

    async def _send_sms_alert(self, args: SendSmsAlertArgs) -> Dict[str, Any]:
        priority = args.priority.value
        recipients = args.phone_numbers or self.config.alert_recipients
        recipients = recipients[:self.config.sms_max_recipients]
        if not recipients:
            logger.warning(f"{priority} SMS alert requested but no recipients are configured")
            return {"sent": False, "priority": priority, "reason": "no_recipients"}

        body = args.message or render_alert(
            priority,
            args.customer_info,
            company=self.config.company_name,
            max_length=self.config.sms_max_length,
        )
        job = NotificationJob(recipients=recipients, body=body, priority=priority)
        policy = delivery_policy_for(priority)

        on_complete = self.record_writer.record_notification if self.record_writer else None
        report = await self.fanout.deliver_within(
            job, self.config.notification_grace_seconds, on_complete=on_complete
        )
        if report is None:
            return {"sent": None, "priority": priority, "jobId": job.job_id, "status": "pending"}

        result = report.summary()
        result.update({"sent": report.meets(policy), "priority": priority, "policy": policy.value})
        return result

    # ==================== Dispatch ====================

    @staticmethod
    def _error(tool_call_id: str, error: str, message: str) -> Dict[str, Any]:
        return {"toolCallId": tool_call_id, "error": error, "message": message}

    @staticmethod
    def _describe(e: PydanticValidationError, default: str) -> str:
        return "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or default}: {err['msg']}" for err in e.errors()
        )

    async def _execute(self, invocation: ToolCallInvocation) -> Dict[str, Any]:
        try:
            function = invocation.resolve_function()
        except PydanticValidationError as e:
            details = self._describe(e, "function")
            logger.warning(f"Malformed tool call {invocation.id}: {details}")
            return self._error(invocation.id, INVALID_ARGUMENTS, details)

        name = function.name
        entry = self._functions.get(name)
        if entry is None:
            logger.warning(f"Unknown tool function: {name}")
            return self._error(invocation.id, FUNCTION_NOT_FOUND, f"Unknown function: {name}")

        args_model, func = entry
        try:
            args = args_model.model_validate(function.arguments)
        except PydanticValidationError as e:
            details = self._describe(e, "arguments")
            logger.warning(f"Invalid arguments for {name}: {details}")
            return self._error(invocation.id, INVALID_ARGUMENTS, details)

        try:
            result = await func(args)
        except Exception as e:
            logger.exception(f"Tool function {name} failed: {e}")
            return self._error(invocation.id, FUNCTION_FAILED, f"{name} failed")

        return {"toolCallId": invocation.id, "result": result}

    @staticmethod
    def _logged_call(invocation: ToolCallInvocation) -> Tuple[str, Dict[str, Any]]:
        """Name and arguments to store, raw when the function object is malformed"""
        try:
            function = invocation.resolve_function()
        except PydanticValidationError:
            raw = invocation.raw_arguments
            return invocation.function_name or "unknown", ({} if raw is None else {"raw": raw})
        return function.name, function.arguments

    async def _process_one(self, call_id: Optional[str], invocation: ToolCallInvocation) -> Dict[str, Any]:
        started = time.monotonic()
        response = await self._execute(invocation)
        duration_ms = int((time.monotonic() - started) * 1000)

        if self.record_writer:
            name, arguments = self._logged_call(invocation)
            try:
                await self.record_writer.log_tool_call(
                    call_id=call_id,
                    tool_call_id=invocation.id,
                    name=name,
                    arguments=arguments,
                    result=response.get("result"),
                    error=response.get("error"),
                    duration_ms=duration_ms,
                )
            except Exception as e:
                logger.error(f"Failed to log tool call {invocation.id}: {e}")

        return response

    async def process(
        self,
        call_id: Optional[str],
        invocations: List[ToolCallInvocation],
    ) -> List[Dict[str, Any]]:
        """
        Process all invocations of one event

        Returns:
            One response per invocation, in input order
        """
        results = await self.runner.map(invocations, lambda inv: self._process_one(call_id, inv))
        responses = []
        for invocation, task_result in zip(invocations, results):
            if task_result.success:
                responses.append(task_result.value)
            else:
                responses.append(self._error(invocation.id, FUNCTION_FAILED, str(task_result.error)))
        logger.info(f"Processed {len(responses)} tool call(s) for call {call_id}")
        return responses
