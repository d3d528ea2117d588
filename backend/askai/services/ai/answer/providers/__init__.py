"""Provider factory: returns the right answer provider or falls back to mock."""

from __future__ import annotations

import logging

from askai.core.config import get_settings

from .base import AnswerResult, BaseAnswerProvider
from .mock import MockAnswerProvider

logger = logging.getLogger(__name__)

__all__ = ["get_answer_provider", "AnswerResult", "BaseAnswerProvider", "MockAnswerProvider"]


def get_answer_provider(provider_name: str | None = None) -> BaseAnswerProvider:
    """Return an answer provider for *provider_name* (defaults to ``ANSWER_PROVIDER``).

    If Supabase is not configured we fall back to ``MockAnswerProvider``.
    """
    settings = get_settings()
    name = (provider_name or settings.answer_provider).lower().strip()

    if name == "mock":
        return MockAnswerProvider()

    if name == "supabase":
        if not settings.supabase_configured:
            logger.warning("SUPABASE_URL / SUPABASE_KEY not set – falling back to mock")
            return MockAnswerProvider()
        from .supabase_function import SupabaseFunctionProvider

        return SupabaseFunctionProvider(
            supabase_url=settings.supabase_url,
            anon_key=settings.supabase_key or settings.supabase_service_role_key,
            function_name=settings.answer_function_name,
            timeout_seconds=settings.answer_timeout_seconds,
        )

    logger.warning("Unknown answer provider %r – falling back to mock", name)
    return MockAnswerProvider()
