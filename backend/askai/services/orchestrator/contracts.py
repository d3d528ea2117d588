"""States, outcomes and the failure taxonomy of query flows."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Union

from askai.services.ai.sentiment.contracts import Sentiment


class FlowVariant(str, Enum):
    HELPER = "helper"  # floating helper widget, canned answer + sentiment
    SEARCH = "search"  # header search box, remote answer


class FlowState(str, Enum):
    IDLE = "IDLE"
    AWAITING_CLASSIFICATION = "AWAITING_CLASSIFICATION"
    AWAITING_ANSWER = "AWAITING_ANSWER"
    PERSISTING = "PERSISTING"
    SETTLED_SUCCESS = "SETTLED_SUCCESS"
    SETTLED_FAILURE = "SETTLED_FAILURE"


ACTIVE_STATES = frozenset(
    {
        FlowState.AWAITING_CLASSIFICATION,
        FlowState.AWAITING_ANSWER,
        FlowState.PERSISTING,
    }
)


class FailureReason(str, Enum):
    NO_ANSWER_RECEIVED = "NO_ANSWER_RECEIVED"
    TRANSPORT_FAILURE = "TRANSPORT_FAILURE"
    PERSIST_FAILED = "PERSIST_FAILED"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    BUSY = "BUSY"


class Requester(Protocol):
    """Whoever submits a query. Signed-out callers are passed as ``None``."""

    id: str
    access_token: Optional[str]


class FlowError(Exception):
    """Base for collaborator failures that end a flow."""

    reason: FailureReason = FailureReason.TRANSPORT_FAILURE
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class TransportFailure(FlowError):
    reason = FailureReason.TRANSPORT_FAILURE
    default_message = "Failed to get AI response. Please try again."


class NoAnswerReceived(FlowError):
    reason = FailureReason.NO_ANSWER_RECEIVED
    default_message = "No response received from AI"


class PersistFailed(FlowError):
    reason = FailureReason.PERSIST_FAILED
    default_message = "Failed to store the response. Please try again."


class Unauthenticated(FlowError):
    reason = FailureReason.UNAUTHENTICATED
    default_message = "Please sign in to save your questions."


@dataclass(frozen=True)
class InteractionRecord:
    """The durable tuple logged once per completed flow."""

    user_id: Optional[str]
    query: str
    response: str
    sentiment: Optional[Sentiment] = None

    def __post_init__(self) -> None:
        if not self.query or not self.query.strip():
            raise ValueError("InteractionRecord.query must be non-empty")
        if self.response is None:
            raise ValueError("InteractionRecord.response must be a string")


@dataclass(frozen=True)
class Answered:
    response: str
    sentiment: Optional[Sentiment] = None


@dataclass(frozen=True)
class Failed:
    reason: FailureReason
    message: str


Outcome = Union[Answered, Failed]
