"""
Result models for the business rule engine
"""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class ServiceDecision(str, Enum):
    """Whether a requested service is offered"""
    ACCEPTED = "accepted"
    REFUSED = "refused"
    RESTRICTED = "restricted"


class ServiceReason(str, Enum):
    SERVICE_AVAILABLE = "service_available"
    SERVICE_NOT_OFFERED = "service_not_offered"
    REQUIRES_ASSESSMENT = "requires_assessment"
    UNRECOGNIZED_SERVICE = "unrecognized_service"


class ServiceValidation(BaseModel):
    """Outcome of validating a requested service"""
    service: str = Field(..., description="Service as requested by the caller")
    decision: ServiceDecision
    reason: ServiceReason
    message: str

    @property
    def accepted(self) -> bool:
        return self.decision == ServiceDecision.ACCEPTED


class PriorityTier(str, Enum):
    """Urgency tier, P1 being the most urgent"""
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"
    P4 = "P4"


class PriorityClassification(BaseModel):
    """Urgency tier with its response-time target"""
    tier: PriorityTier
    reason: str = Field(..., description="Short machine-readable reason")
    sla_seconds: int = Field(..., ge=0, description="Target response time")
    escalation_required: bool = False


class TimeBand(str, Enum):
    """Time-of-day band used for quote surcharges"""
    BUSINESS_HOURS = "business_hours"
    AFTER_HOURS = "after_hours"
    OVERNIGHT = "overnight"


class QuoteFactors(BaseModel):
    """Inputs that produced a quote, in cents and percent"""
    base_min: int
    base_max: int
    zone: Optional[str] = None
    zone_surcharge: int = 0
    time_band: TimeBand = TimeBand.BUSINESS_HOURS
    time_rate_percent: int = 0
    urgency_rate_percent: int = 0
    floor: int = 0


class QuoteEstimate(BaseModel):
    """Price range for a service, amounts in cents"""
    service_type: str
    min_price: int = Field(..., ge=0)
    max_price: int = Field(..., ge=0)
    currency: str = "CAD"
    factors: QuoteFactors
    message: str

    @property
    def min_dollars(self) -> int:
        return self.min_price // 100

    @property
    def max_dollars(self) -> int:
        return self.max_price // 100


class SchedulingWindow(BaseModel):
    """Textual availability window, never a calendar date"""
    service_type: str
    window: str
    assessment_required: bool = False
    message: str
    requirements: List[str] = Field(default_factory=list)
