"""Mock provider with deterministic answers for local runs and tests."""

from __future__ import annotations

import time
from typing import Optional

from .base import AnswerResult, BaseAnswerProvider


class MockAnswerProvider(BaseAnswerProvider):
    name = "mock"

    async def generate(
        self,
        query: str,
        *,
        user_id: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> AnswerResult:
        t0 = time.monotonic()
        answer = f"Here is what I found about: {query}"
        elapsed = (time.monotonic() - t0) * 1000
        return AnswerResult(answer=answer, provider=self.name, latency_ms=round(elapsed, 2))
