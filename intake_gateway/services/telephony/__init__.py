"""Outbound SMS adapters"""

from .sms_gateway import (
    SendResult,
    SmsGateway,
    TwilioSmsGateway,
    DryRunSmsGateway,
    create_sms_gateway,
)

__all__ = [
    "SendResult",
    "SmsGateway",
    "TwilioSmsGateway",
    "DryRunSmsGateway",
    "create_sms_gateway",
]
