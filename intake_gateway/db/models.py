"""
Database Models

Row shapes of the persisted tables, shared by every storage adapter.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field

from intake_gateway.models.call import utcnow

CALLS_TABLE = "vapi_calls"
TRANSCRIPTS_TABLE = "call_transcripts"
TOOL_CALLS_TABLE = "tool_calls"
NOTIFICATIONS_TABLE = "notification_outcomes"


class CallRecordDB(BaseModel):
    """Row of vapi_calls, keyed by call_id"""
    model_config = ConfigDict(from_attributes=True)

    call_id: str
    status: str
    assistant_id: Optional[str] = None
    customer_phone: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    transcript: Optional[str] = None
    summary: Optional[str] = None
    intake: Optional[Dict[str, Any]] = None
    priority: Optional[str] = None
    priority_reason: Optional[str] = None
    sla_seconds: Optional[int] = None
    classification: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CallTranscriptDB(BaseModel):
    """Row of call_transcripts"""
    model_config = ConfigDict(from_attributes=True)

    call_id: str
    role: str
    content: str
    confidence: Optional[float] = None
    timestamp: datetime = Field(default_factory=utcnow)


class ToolCallDB(BaseModel):
    """Row of tool_calls, keyed by tool_call_id"""
    model_config = ConfigDict(from_attributes=True)

    tool_call_id: str
    call_id: Optional[str] = None
    function_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    duration_ms: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)


class NotificationOutcomeDB(BaseModel):
    """Row of notification_outcomes, keyed by job_id"""
    model_config = ConfigDict(from_attributes=True)

    job_id: str
    call_id: Optional[str] = None
    priority: str
    status: str
    delivered: int = 0
    failed: int = 0
    attempts: int = 0
    errors: Dict[str, str] = Field(default_factory=dict)
    completed_at: datetime = Field(default_factory=utcnow)

