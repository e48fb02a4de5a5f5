"""Data models for the Intake Gateway"""

from .call import (
    CallStatus,
    CallRecord,
    StructuredIntake,
    TranscriptEntry
)

from .rules import (
    ServiceDecision,
    ServiceReason,
    ServiceValidation,
    PriorityTier,
    PriorityClassification,
    TimeBand,
    QuoteFactors,
    QuoteEstimate,
    SchedulingWindow
)

from .notification import (
    DeliveryPolicy,
    DeliveryStatus,
    NotificationJob,
    RecipientOutcome,
    DeliveryReport
)

from .events import (
    EVENT_TYPES,
    WebhookEvent,
    HealthCheckEvent,
    CallStartedEvent,
    CallEndedEvent,
    TranscriptEvent,
    ToolCallsEvent,
    FunctionCallEvent,
    MessageEvent,
    ToolCallInvocation
)

__all__ = [
    # Call models
    "CallStatus",
    "CallRecord",
    "StructuredIntake",
    "TranscriptEntry",
    # Rule results
    "ServiceDecision",
    "ServiceReason",
    "ServiceValidation",
    "PriorityTier",
    "PriorityClassification",
    "TimeBand",
    "QuoteFactors",
    "QuoteEstimate",
    "SchedulingWindow",
    # Notifications
    "DeliveryPolicy",
    "DeliveryStatus",
    "NotificationJob",
    "RecipientOutcome",
    "DeliveryReport",
    # Events
    "EVENT_TYPES",
    "WebhookEvent",
    "HealthCheckEvent",
    "CallStartedEvent",
    "CallEndedEvent",
    "TranscriptEvent",
    "ToolCallsEvent",
    "FunctionCallEvent",
    "MessageEvent",
    "ToolCallInvocation"
]
