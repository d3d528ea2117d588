from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from askai.services.ai.sentiment.contracts import Sentiment
from askai.services.orchestrator.contracts import FailureReason, FlowState

HELPER_DEFAULT_QUERY = "How can I help you?"


class AskStatus(str, Enum):
    ANSWERED = "answered"
    FAILED = "failed"
    IGNORED = "ignored"


class HelperAskRequest(BaseModel):
    widget_id: str = Field(default="default", min_length=1, max_length=64)
    query: str = Field(default=HELPER_DEFAULT_QUERY, max_length=2000)


class SearchAskRequest(BaseModel):
    widget_id: str = Field(default="default", min_length=1, max_length=64)
    query: str = Field(..., max_length=2000)


class NotificationOut(BaseModel):
    title: str
    description: str
    variant: str
    duration_ms: int


class AskResponse(BaseModel):
    status: AskStatus
    state: FlowState
    response: Optional[str] = None
    sentiment: Optional[Sentiment] = None
    reason: Optional[FailureReason] = None
    message: Optional[str] = None
    notifications: List[NotificationOut] = Field(default_factory=list)


class WidgetStateOut(BaseModel):
    widget_id: str
    variant: str
    state: FlowState
    busy: bool
    notifications: List[NotificationOut] = Field(default_factory=list)


class InteractionOut(BaseModel):
    id: str
    query: str
    response: str
    sentiment: Optional[Sentiment] = None
    created_at: Optional[datetime] = None


class InteractionListResponse(BaseModel):
    items: List[InteractionOut]
