"""
SMS Gateway Adapters
Outbound text messages for staff alerts
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
import uuid

from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client
from twilio.base.exceptions import TwilioRestException

from intake_gateway.core.config import Settings, settings as default_settings
from intake_gateway.core.exceptions import ConfigurationError
from intake_gateway.core.logging import get_logger, mask_phone

logger = get_logger(__name__)


@dataclass
class SendResult:
    """Outcome reported by the gateway for one message"""
    success: bool
    provider_id: Optional[str] = None
    error: Optional[str] = None
    status_code: Optional[int] = None


class SmsGateway(ABC):
    """Opaque send(recipient, body) interface over an SMS provider"""

    name = "sms_gateway"

    @abstractmethod
    async def send(self, recipient: str, body: str) -> SendResult:
        """
        Send one message.

        Provider-reported failures are returned as SendResult(success=False);
        transport failures may raise.
        """
        pass


class TwilioSmsGateway(SmsGateway):
    """
    SMS through the Twilio REST API.

    The SDK runs in a worker thread that cancellation cannot stop, so the
    HTTP client carries its own timeout. Delivery is at least once: a send
    Twilio accepted after the caller gave up is retried and may reach the
    recipient twice.
    """

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        client: Optional[Client] = None,
        http_timeout: Optional[float] = None,
    ):
        self.account_sid = account_sid or default_settings.twilio_account_sid
        self.auth_token = auth_token or default_settings.twilio_auth_token
        self.from_number = from_number or default_settings.twilio_from_number
        self.http_timeout = http_timeout or default_settings.twilio_http_timeout_seconds
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            if not self.account_sid or not self.auth_token:
                raise ConfigurationError("Twilio credentials are not configured", "twilio_account_sid")
            self._client = Client(
                self.account_sid,
                self.auth_token,
                http_client=TwilioHttpClient(timeout=self.http_timeout),
            )
        return self._client

    async def send(self, recipient: str, body: str) -> SendResult:
        if not self.from_number:
            raise ConfigurationError("Twilio sender number is not configured", "twilio_from_number")

        try:
            # The Twilio SDK is synchronous
            message = await asyncio.to_thread(
                self.client.messages.create,
                to=recipient,
                from_=self.from_number,
                body=body,
            )
        except TwilioRestException as e:
            logger.error(f"Twilio rejected SMS to {mask_phone(recipient)}: HTTP {e.status} {e.msg}")
            return SendResult(success=False, error=str(e.msg), status_code=e.status)

        logger.info(f"SMS sent: {message.sid} to {mask_phone(recipient)}")
        return SendResult(success=True, provider_id=message.sid)


class DryRunSmsGateway(SmsGateway):
    """Logs messages instead of sending them, used when Twilio is not configured"""

    def __init__(self):
        self.sent = []

    async def send(self, recipient: str, body: str) -> SendResult:
        provider_id = f"dryrun-{uuid.uuid4().hex[:12]}"
        self.sent.append((recipient, body))
        logger.info(f"[dry-run] SMS to {mask_phone(recipient)} ({len(body)} chars)")
        return SendResult(success=True, provider_id=provider_id)


def create_sms_gateway(config: Optional[Settings] = None) -> SmsGateway:
    """Twilio when credentials are configured, otherwise dry-run"""
    config = config or default_settings
    if config.twilio_configured:
        return TwilioSmsGateway(
            account_sid=config.twilio_account_sid,
            auth_token=config.twilio_auth_token,
            from_number=config.twilio_from_number,
            http_timeout=min(config.twilio_http_timeout_seconds, config.downstream_timeout_seconds),
        )
    logger.warning("Twilio not configured, SMS alerts will be logged only")
    return DryRunSmsGateway()
