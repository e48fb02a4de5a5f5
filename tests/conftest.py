"""
Pytest configuration and fixtures
"""

import os
import json
import pytest
from typing import Dict, List, Union

# Set test environment variables before importing app modules
os.environ.setdefault("VAPI_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("SMS_ALERT_RECIPIENTS", "+15145550001,+15145550002,+15145550003")
os.environ.setdefault("RETRY_JITTER", "false")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")

from fastapi.testclient import TestClient

from intake_gateway.api.middleware.webhook_security import sign_payload
from intake_gateway.core.config import Settings
from intake_gateway.db.adapters.memory import InMemoryStorage
from intake_gateway.reliability import CircuitRegistry, RetryPolicy
from intake_gateway.services.telephony.sms_gateway import SendResult, SmsGateway

WEBHOOK_SECRET = "test-webhook-secret"
RECIPIENTS = ["+15145550001", "+15145550002", "+15145550003"]
WEBHOOK_URL = "/api/v1/webhooks/vapi"


class FakeClock:
    """Monotonic clock advanced by hand"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class ScriptedSmsGateway(SmsGateway):
    """
    SMS gateway replaying a scripted sequence of outcomes per recipient.

    Each script entry is a SendResult or an exception to raise; once the
    script is exhausted every send succeeds.
    """

    def __init__(self, script: Dict[str, List[Union[SendResult, Exception]]] = None):
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.calls: List[tuple] = []

    async def send(self, recipient: str, body: str) -> SendResult:
        self.calls.append((recipient, body))
        queue = self.script.get(recipient)
        if queue:
            outcome = queue.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return SendResult(success=True, provider_id=f"SM{len(self.calls):04d}")

    def calls_to(self, recipient: str) -> int:
        return sum(1 for r, _ in self.calls if r == recipient)


class RecordingSleep:
    """Non-blocking sleep that records requested delays"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


@pytest.fixture
def test_settings():
    """Settings isolated from the process environment"""
    return Settings(
        _env_file=None,
        vapi_webhook_secret=WEBHOOK_SECRET,
        sms_alert_recipients=",".join(RECIPIENTS),
        alert_priorities="P1,P2",
        environment="test",
        retry_max_attempts=3,
        retry_base_delay=0.5,
        retry_jitter=False,
        notification_grace_seconds=5.0,
        downstream_timeout_seconds=5.0,
        supabase_url=None,
        supabase_service_key=None,
        twilio_account_sid=None,
        twilio_auth_token=None,
        twilio_from_number=None,
    )


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def no_sleep():
    return RecordingSleep()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def sms_gateway():
    return ScriptedSmsGateway()


@pytest.fixture
def circuits(test_settings, fake_clock):
    return CircuitRegistry.from_settings(test_settings, clock=fake_clock)


@pytest.fixture
def retry_policy():
    return RetryPolicy(max_attempts=3, base_delay=0.5, jitter=False)


@pytest.fixture
def app_factory(test_settings, storage, sms_gateway, no_sleep):
    """Build an app wired to in-memory storage and the scripted gateway"""
    from intake_gateway.main import create_app

    def factory(config: Settings = None, gateway: SmsGateway = None):
        return create_app(
            config=config or test_settings,
            storage=storage,
            sms_gateway=gateway or sms_gateway,
            sleep=no_sleep,
        )

    return factory


@pytest.fixture
def test_client(app_factory):
    """Fixture for test client"""
    with TestClient(app_factory()) as client:
        yield client


@pytest.fixture
def post_event(test_client):
    """Post a signed event to the webhook endpoint"""

    def post(payload, secret: str = WEBHOOK_SECRET, client: TestClient = None, headers: dict = None):
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
        request_headers = {
            "content-type": "application/json",
            "x-vapi-signature": sign_payload(body, secret),
        }
        request_headers.update(headers or {})
        return (client or test_client).post(WEBHOOK_URL, content=body, headers=request_headers)

    return post


@pytest.fixture
def call_ended_payload():
    """Call-ended event for an emergency call"""
    return {
        "message": {
            "type": "call-ended",
            "call": {
                "id": "call-123",
                "assistantId": "asst-1",
                "status": "ended",
                "startedAt": "2026-03-02T14:00:00Z",
                "endedAt": "2026-03-02T14:06:30Z",
                "duration": 390,
                "customer": {"number": "+15145559876"},
                "transcript": "Bonjour, j'ai une inondation au sous-sol.",
                "analysis": {
                    "summary": "Client avec inondation au sous-sol",
                    "structuredData": {
                        "nom": "Marie Tremblay",
                        "telephone": "+15145559876",
                        "adresse": "123 rue Principale, Longueuil",
                        "codePostal": "j4k 1a1",
                        "serviceType": "debouchage",
                        "description": "Inondation au sous-sol, refoulement d'égout",
                    },
                },
            },
        }
    }
