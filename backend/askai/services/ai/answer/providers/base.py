"""Abstract base for all answer providers."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any, Optional

from askai.services.orchestrator.contracts import NoAnswerReceived


@dataclass(frozen=True)
class AnswerResult:
    """Immutable result returned by every provider."""

    answer: str
    provider: str
    latency_ms: float = 0.0


def extract_answer(data: Any) -> str:
    """Pull ``answer`` out of a provider payload or raise ``NoAnswerReceived``."""
    answer = data.get("answer") if isinstance(data, dict) else None
    if not isinstance(answer, str) or not answer.strip():
        raise NoAnswerReceived()
    return answer


class BaseAnswerProvider(abc.ABC):
    """Contract that every answer provider must implement."""

    name: str = "base"

    @abc.abstractmethod
    async def generate(
        self,
        query: str,
        *,
        user_id: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> AnswerResult:
        """Return an ``AnswerResult`` or raise ``TransportFailure`` / ``NoAnswerReceived``."""
