"""Query sentiment classification.

Classifies the tone of a user query as POSITIVE / NEGATIVE with the shared
sentiment model. Classification is best-effort annotation: every failure
(model load, inference, malformed output) comes back as
``ClassificationUnavailable`` and is only logged.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any

from .contracts import (
    MAX_SENTIMENT_INPUT_CHARS,
    ClassificationOutcome,
    ClassificationResult,
    ClassificationUnavailable,
    label_for_score,
)
from .model import SentimentModelHandle

logger = logging.getLogger(__name__)


def _top_item(raw: Any) -> Any:
    """Pipelines return a list of ranked items; only the first one counts."""
    if isinstance(raw, list):
        if not raw:
            return None
        first = raw[0]
        # top_k / return_all_scores style output nests one more level
        if isinstance(first, list):
            return first[0] if first else None
        return first
    return raw


def _extract_score(item: Any) -> float | None:
    if not isinstance(item, dict):
        return None
    raw_score = item.get("score")
    if isinstance(raw_score, bool):
        return None
    try:
        score = float(raw_score)
    except (TypeError, ValueError):
        return None
    if math.isnan(score) or not 0.0 <= score <= 1.0:
        return None
    return score


class SentimentClassifier:
    def __init__(self, handle: SentimentModelHandle, *, enabled: bool = True) -> None:
        self.handle = handle
        self.enabled = enabled

    async def classify(self, text: str) -> ClassificationOutcome:
        if not self.enabled:
            return ClassificationUnavailable("disabled")

        prepared = (text or "").strip()[:MAX_SENTIMENT_INPUT_CHARS]
        if not prepared:
            return ClassificationUnavailable("empty input")

        try:
            pipe = await self.handle.get()
        except Exception:
            logger.warning("Sentiment model %s failed to load", self.handle.model_id, exc_info=True)
            return ClassificationUnavailable("model load failed")

        try:
            raw = await asyncio.to_thread(pipe, prepared)
        except Exception:
            logger.warning("Sentiment inference failed", exc_info=True)
            return ClassificationUnavailable("inference failed")

        score = _extract_score(_top_item(raw))
        if score is None:
            logger.warning("Sentiment: malformed model output %r", raw)
            return ClassificationUnavailable("malformed output")

        return ClassificationResult(label=label_for_score(score), score=score)
