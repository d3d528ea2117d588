"""Supabase edge-function provider (``generate-ai-response``)."""

from __future__ import annotations

import logging
import time
from typing import Optional

import httpx

from askai.services.orchestrator.contracts import TransportFailure

from .base import AnswerResult, BaseAnswerProvider, extract_answer

logger = logging.getLogger(__name__)


class SupabaseFunctionProvider(BaseAnswerProvider):
    name = "supabase"

    def __init__(
        self,
        *,
        supabase_url: str,
        anon_key: str,
        function_name: str,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = f"{supabase_url.rstrip('/')}/functions/v1/{function_name}"
        self._anon_key = anon_key
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def url(self) -> str:
        return self._url

    async def generate(
        self,
        query: str,
        *,
        user_id: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> AnswerResult:
        t0 = time.monotonic()
        # Signed-in calls run with the user's session, like the browser client does.
        bearer = access_token or self._anon_key

        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds, transport=self._transport) as client:
                resp = await client.post(
                    self._url,
                    headers={
                        "apikey": self._anon_key,
                        "Authorization": f"Bearer {bearer}",
                        "Content-Type": "application/json",
                    },
                    json={"query": query, "userId": user_id},
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Answer function returned %s: %s",
                exc.response.status_code,
                exc.response.text[:200],
            )
            raise TransportFailure() from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Answer function call failed: %s", exc)
            raise TransportFailure() from exc

        answer = extract_answer(data)
        elapsed = (time.monotonic() - t0) * 1000
        return AnswerResult(answer=answer, provider=self.name, latency_ms=round(elapsed, 2))
