"""
Data models for call records
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from .rules import PriorityClassification


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CallStatus(str, Enum):
    """Status of a call as reported by the voice platform"""
    QUEUED = "queued"
    RINGING = "ringing"
    IN_PROGRESS = "in-progress"
    FORWARDING = "forwarding"
    ENDED = "ended"


class StructuredIntake(BaseModel):
    """Customer details extracted by the voice agent at the end of a call"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    customer_name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("customer_name", "nom", "name", "customerName")
    )
    customer_phone: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("customer_phone", "telephone", "phone", "phoneNumber")
    )
    email: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("email", "courriel")
    )
    address: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("address", "adresse")
    )
    postal_code: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("postal_code", "codePostal", "postalCode")
    )
    description: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("description", "probleme")
    )
    service_type: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("service_type", "serviceType", "service")
    )
    preferred_schedule: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("preferred_schedule", "preferredSchedule", "disponibilite")
    )
    estimated_value: Optional[float] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("estimated_value", "estimatedValue")
    )
    zone: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("zone", "location", "secteur")
    )
    urgency: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("urgency", "urgence")
    )

    @field_validator("postal_code")
    @classmethod
    def normalize_postal_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.upper().replace(" ", "")


class CallRecord(BaseModel):
    """Complete record of a call, keyed by call_id"""
    call_id: str = Field(..., min_length=1, description="Voice platform call identifier")
    status: CallStatus = Field(default=CallStatus.IN_PROGRESS)
    assistant_id: Optional[str] = None
    customer_phone: Optional[str] = None

    # Timestamps
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[float] = Field(default=None, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Content
    transcript: Optional[str] = None
    summary: Optional[str] = None
    intake: Optional[StructuredIntake] = None
    classification: Optional[PriorityClassification] = None

    @field_validator("started_at", "ended_at", "created_at", "updated_at")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @model_validator(mode="after")
    def check_time_order(self) -> "CallRecord":
        if self.started_at and self.ended_at and self.ended_at < self.started_at:
            raise ValueError("ended_at must not be earlier than started_at")
        return self


class TranscriptEntry(BaseModel):
    """One utterance of a call conversation"""
    call_id: str
    role: str
    text: str
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)
