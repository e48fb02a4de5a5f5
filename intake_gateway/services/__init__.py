"""Services for the Intake Gateway"""

from .dispatcher import EventDispatcher, parse_event
from .event_handlers import EventHandlers
from .notification_service import NotificationFanOut, render_alert, delivery_policy_for
from .record_writer import RecordWriter
from .tool_calls import ToolCallProcessor
from .telephony.sms_gateway import SmsGateway, TwilioSmsGateway, DryRunSmsGateway, create_sms_gateway

__all__ = [
    "EventDispatcher",
    "parse_event",
    "EventHandlers",
    "NotificationFanOut",
    "render_alert",
    "delivery_policy_for",
    "RecordWriter",
    "ToolCallProcessor",
    "SmsGateway",
    "TwilioSmsGateway",
    "DryRunSmsGateway",
    "create_sms_gateway",
]
