"""
Notification Fan-Out Service

Handles:
- Rendering staff alert messages
- Sending one alert to many recipients with bounded concurrency
- Per-recipient retry, circuit breaking and timeouts
- Background continuation when delivery outlasts the response grace period
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from jinja2 import Template

from intake_gateway.core.config import Settings, settings as default_settings
from intake_gateway.core.exceptions import IntakeGatewayException, SmsDeliveryError
from intake_gateway.core.logging import get_logger, mask_phone
from intake_gateway.models.notification import (
    DeliveryPolicy,
    DeliveryReport,
    NotificationJob,
    RecipientOutcome,
)
from intake_gateway.reliability import (
    BoundedTaskRunner,
    CircuitRegistry,
    RetryPolicy,
    retry_with_backoff,
    with_timeout,
)
from intake_gateway.services.telephony.sms_gateway import SendResult, SmsGateway

logger = get_logger(__name__)

SMS_CIRCUIT = "sms_gateway"

PRIORITY_MARKERS = {"P1": "🚨", "P2": "⚡", "P3": "📞", "P4": "📝"}

ALERT_TEMPLATE = Template(
    "{{ marker }} {{ priority }} - {{ company }}\n"
    "Client: {{ name or 'Inconnu' }}\n"
    "Tél: {{ phone or 'Inconnu' }}\n"
    "Service: {{ service or 'À préciser' }}\n"
    "Adresse: {{ address or 'À confirmer' }}\n"
    "Description: {{ description or 'Voir appel' }}"
)


def render_alert(
    priority: str,
    customer: Optional[Dict[str, Any]] = None,
    company: str = "Drain Fortin",
    max_length: int = 1600,
) -> str:
    """Render the staff alert body, truncated to one SMS payload"""
    customer = customer or {}
    body = ALERT_TEMPLATE.render(
        marker=PRIORITY_MARKERS.get(priority, "📝"),
        priority=priority,
        company=company,
        name=customer.get("name"),
        phone=customer.get("phone"),
        service=customer.get("service"),
        address=customer.get("address"),
        description=customer.get("description"),
    )
    return body[:max_length]


def delivery_policy_for(priority: str) -> DeliveryPolicy:
    """Emergencies need one reachable person, other alerts need everyone"""
    return DeliveryPolicy.AT_LEAST_ONE if priority == "P1" else DeliveryPolicy.ALL


class NotificationFanOut:
    """
    Delivers a NotificationJob to every recipient.

    Each send is wrapped as retry(circuit(timeout(gateway.send))). One
    recipient failing never stops the others; the outcome is a
    DeliveryReport with one entry per recipient.
    """

    def __init__(
        self,
        gateway: SmsGateway,
        circuits: CircuitRegistry,
        retry_policy: Optional[RetryPolicy] = None,
        concurrency: int = 5,
        send_timeout: Optional[float] = 10.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.gateway = gateway
        self.circuits = circuits
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.runner = BoundedTaskRunner(concurrency=concurrency)
        self.send_timeout = send_timeout
        self._sleep = sleep
        self._background: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        gateway: SmsGateway,
        circuits: CircuitRegistry,
        config: Optional[Settings] = None,
        **overrides,
    ) -> "NotificationFanOut":
        config = config or default_settings
        values = {
            "retry_policy": RetryPolicy.from_settings(config),
            "concurrency": config.notification_concurrency,
            "send_timeout": config.downstream_timeout_seconds,
        }
        values.update(overrides)
        return cls(gateway, circuits, **values)

    @property
    def pending(self) -> int:
        """Number of fan-outs still running in the background"""
        return sum(1 for task in self._background if not task.done())

    async def _send_one(self, job: NotificationJob, recipient: str) -> RecipientOutcome:
        breaker = self.circuits.get(SMS_CIRCUIT)

        async def send_via_gateway() -> SendResult:
            result = await with_timeout(
                self.gateway.send(recipient, job.body),
                self.send_timeout,
                dependency=SMS_CIRCUIT,
            )
            if not result.success:
                raise SmsDeliveryError(result.error or "unknown error", result.status_code)
            return result

        async def attempt() -> SendResult:
            job.attempts[recipient] = job.attempts.get(recipient, 0) + 1
            return await breaker.call(send_via_gateway)

        try:
            result = await retry_with_backoff(
                attempt,
                policy=self.retry_policy,
                operation_name=f"SMS {job.job_id} to {mask_phone(recipient)}",
                sleep=self._sleep,
            )
        except IntakeGatewayException as e:
            job.last_errors[recipient] = e.message
            return RecipientOutcome(
                recipient=recipient,
                success=False,
                attempts=job.attempts.get(recipient, 0),
                error=e.message,
                error_code=e.error_code,
            )
        except Exception as e:
            job.last_errors[recipient] = str(e)
            return RecipientOutcome(
                recipient=recipient,
                success=False,
                attempts=job.attempts.get(recipient, 0),
                error=str(e) or e.__class__.__name__,
                error_code="SEND_FAILED",
            )

        return RecipientOutcome(
            recipient=recipient,
            success=True,
            attempts=job.attempts[recipient],
            provider_id=result.provider_id,
        )

    async def deliver(self, job: NotificationJob) -> DeliveryReport:
        """
        Send the job to all recipients and wait for every outcome

        Returns:
            DeliveryReport with one outcome per distinct recipient
        """
        recipients: List[str] = list(dict.fromkeys(job.recipients))
        logger.info(f"Dispatching {job.priority} alert {job.job_id} to {len(recipients)} recipient(s)")

        results = await self.runner.map(recipients, lambda r: self._send_one(job, r))

        outcomes = []
        for recipient, task_result in zip(recipients, results):
            if task_result.success:
                outcomes.append(task_result.value)
            else:
                outcomes.append(RecipientOutcome(
                    recipient=recipient,
                    success=False,
                    attempts=job.attempts.get(recipient, 0),
                    error=str(task_result.error),
                    error_code="SEND_FAILED",
                ))

        report = DeliveryReport(
            job_id=job.job_id,
            priority=job.priority,
            correlation_id=job.correlation_id,
            outcomes=outcomes,
        )
        log = logger.info if not report.failures else logger.warning
        log(
            f"Alert {job.job_id} {report.status.value}: "
            f"{len(report.successes)} delivered, {len(report.failures)} failed, "
            f"{report.total_attempts} attempt(s)"
        )
        return report

    async def _deliver_and_record(
        self,
        job: NotificationJob,
        on_complete: Optional[Callable[[DeliveryReport], Awaitable[Any]]],
    ) -> DeliveryReport:
        report = await self.deliver(job)
        if on_complete:
            try:
                await on_complete(report)
            except Exception as e:
                logger.error(f"Failed to record outcome of alert {job.job_id}: {e}")
        return report

    async def deliver_within(
        self,
        job: NotificationJob,
        grace_seconds: float,
        on_complete: Optional[Callable[[DeliveryReport], Awaitable[Any]]] = None,
    ) -> Optional[DeliveryReport]:
        """
        Deliver, waiting at most grace_seconds for the outcome

        Returns:
            The DeliveryReport, or None when delivery continues in the background.
            on_complete receives the report in both cases.
        """
        task = asyncio.create_task(self._deliver_and_record(job, on_complete))
        # tracked before awaiting so a cancelled caller leaves it drainable
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=grace_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                f"Alert {job.job_id} still sending after {grace_seconds}s, continuing in background"
            )
            return None

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for background fan-outs, used at shutdown"""
        if not self._background:
            return
        logger.info(f"Waiting for {len(self._background)} background alert(s)")
        pending = list(self._background)
        done, not_done = await asyncio.wait(pending, timeout=timeout)
        for task in not_done:
            logger.error("Background alert did not finish before shutdown, cancelling")
            task.cancel()
