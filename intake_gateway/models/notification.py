"""
Data models for staff alert notifications
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from .call import utcnow


class DeliveryPolicy(str, Enum):
    """How many recipients must receive an alert for it to count as delivered"""
    ALL = "all"
    AT_LEAST_ONE = "at_least_one"


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    PARTIAL = "partial"
    EXHAUSTED = "exhausted"


class NotificationJob(BaseModel):
    """An alert to send to a set of recipients"""
    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    recipients: List[str] = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    priority: str = Field(default="P4")
    correlation_id: Optional[str] = Field(default=None, description="Call id the alert relates to")
    created_at: datetime = Field(default_factory=utcnow)

    # Per-recipient bookkeeping, filled in during delivery
    attempts: Dict[str, int] = Field(default_factory=dict)
    last_errors: Dict[str, str] = Field(default_factory=dict)

    @property
    def attempt_count(self) -> int:
        return sum(self.attempts.values())


class RecipientOutcome(BaseModel):
    """Terminal delivery outcome for one recipient"""
    recipient: str
    success: bool
    attempts: int = 0
    provider_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class DeliveryReport(BaseModel):
    """Terminal outcome of a NotificationJob"""
    job_id: str
    priority: str
    correlation_id: Optional[str] = None
    outcomes: List[RecipientOutcome] = Field(default_factory=list)
    completed_at: datetime = Field(default_factory=utcnow)

    @property
    def successes(self) -> List[RecipientOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failures(self) -> List[RecipientOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def total_attempts(self) -> int:
        return sum(o.attempts for o in self.outcomes)

    @property
    def status(self) -> DeliveryStatus:
        if self.outcomes and not self.failures:
            return DeliveryStatus.DELIVERED
        if self.successes:
            return DeliveryStatus.PARTIAL
        return DeliveryStatus.EXHAUSTED

    def meets(self, policy: DeliveryPolicy) -> bool:
        if policy == DeliveryPolicy.AT_LEAST_ONE:
            return bool(self.successes)
        return self.status == DeliveryStatus.DELIVERED

    def summary(self) -> Dict:
        """Compact form used in webhook responses, phone numbers excluded"""
        return {
            "jobId": self.job_id,
            "status": self.status.value,
            "delivered": len(self.successes),
            "failed": len(self.failures),
            "attempts": self.total_attempts,
        }
