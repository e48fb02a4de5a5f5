"""
Inbound webhook event models

Each event type of the voice platform is a pydantic model; WebhookEvent is
the discriminated union over the closed set of types.
"""

import json
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator


EVENT_TYPES = (
    "health-check",
    "call-started",
    "call-ended",
    "transcript",
    "tool-calls",
    "function-call",
    "message",
)


class PayloadModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CallAnalysis(PayloadModel):
    """End-of-call analysis produced by the voice agent"""
    summary: Optional[str] = None
    structured_data: Optional[Dict[str, Any]] = Field(default=None, alias="structuredData")
    sentiment: Optional[str] = None


class CustomerInfo(PayloadModel):
    number: Optional[str] = None
    name: Optional[str] = None


class CallInfo(PayloadModel):
    """Call object embedded in most events"""
    id: str = Field(..., min_length=1)
    assistant_id: Optional[str] = Field(default=None, alias="assistantId")
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    customer: Optional[CustomerInfo] = None
    status: Optional[str] = None
    started_at: Optional[datetime] = Field(default=None, alias="startedAt")
    ended_at: Optional[datetime] = Field(default=None, alias="endedAt")
    duration: Optional[float] = Field(default=None, ge=0)
    transcript: Optional[str] = None
    summary: Optional[str] = None
    analysis: Optional[CallAnalysis] = None

    @property
    def caller_number(self) -> Optional[str]:
        if self.customer and self.customer.number:
            return self.customer.number
        return self.phone_number


class EndedCallInfo(CallInfo):
    status: str = Field(..., min_length=1)


class TranscriptPayload(PayloadModel):
    role: str = Field(..., min_length=1)
    transcript: str = Field(..., min_length=1)
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    timestamp: Optional[datetime] = None


class MessagePayload(PayloadModel):
    role: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    timestamp: Optional[datetime] = None


class ToolFunction(PayloadModel):
    name: str = Field(..., min_length=1)
    arguments: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("arguments", mode="before")
    @classmethod
    def decode_arguments(cls, v: Any) -> Any:
        """The platform may send arguments as a JSON-encoded string"""
        if v is None or v == "":
            return {}
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError as e:
                raise ValueError(f"arguments is not valid JSON: {e.msg}")
        return v


class ToolCallInvocation(PayloadModel):
    """
    One function the voice agent asks the backend to run.

    Only the id is checked with the event; the function object is kept raw
    and resolved per invocation so one bad entry cannot fail its siblings.
    """
    id: str = Field(..., min_length=1, validation_alias=AliasChoices("toolCallId", "id"))
    function: Any = None

    @property
    def function_name(self) -> Optional[str]:
        if isinstance(self.function, dict):
            name = self.function.get("name")
            return name if isinstance(name, str) else None
        return None

    @property
    def raw_arguments(self) -> Any:
        if isinstance(self.function, dict):
            return self.function.get("arguments")
        return None

    def resolve_function(self) -> ToolFunction:
        """Validate the function object, decoding string arguments"""
        return ToolFunction.model_validate(self.function)


class EventBase(PayloadModel):
    timestamp: Optional[datetime] = None

    @property
    def call_id(self) -> Optional[str]:
        call = getattr(self, "call", None)
        return call.id if call else None


class HealthCheckEvent(EventBase):
    type: Literal["health-check"]


class CallStartedEvent(EventBase):
    type: Literal["call-started"]
    call: CallInfo


class CallEndedEvent(EventBase):
    type: Literal["call-ended"]
    call: EndedCallInfo


class TranscriptEvent(EventBase):
    type: Literal["transcript"]
    call: CallInfo
    transcript: TranscriptPayload


class ToolCallsEvent(EventBase):
    type: Literal["tool-calls"]
    call: CallInfo
    tool_calls: List[ToolCallInvocation] = Field(..., alias="toolCalls")


class FunctionCallEvent(EventBase):
    type: Literal["function-call"]
    call: Optional[CallInfo] = None
    tool_calls: List[ToolCallInvocation] = Field(..., alias="toolCalls", min_length=1)


class MessageEvent(EventBase):
    type: Literal["message"]
    call: CallInfo
    message: MessagePayload


WebhookEvent = Annotated[
    Union[
        HealthCheckEvent,
        CallStartedEvent,
        CallEndedEvent,
        TranscriptEvent,
        ToolCallsEvent,
        FunctionCallEvent,
        MessageEvent,
    ],
    Field(discriminator="type"),
]

webhook_event_adapter: TypeAdapter = TypeAdapter(WebhookEvent)


def unwrap_envelope(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return the event object from a payload.

    The platform wraps events as {"message": {"type": ...}}; flat payloads
    carry "type" at the top level and are returned unchanged.
    """
    if "type" not in payload and isinstance(payload.get("message"), dict):
        inner = payload["message"]
        if "type" in inner:
            return inner
    return payload
