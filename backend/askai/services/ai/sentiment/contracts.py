"""Contracts for query sentiment classification."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

SENTIMENT_THRESHOLD = 0.5

# Keeps inference latency bounded for pasted walls of text.
MAX_SENTIMENT_INPUT_CHARS = 1000


class Sentiment(str, Enum):
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"


def label_for_score(score: float) -> Sentiment:
    """Map a raw model score onto the two-valued sentiment domain.

    Only the score is trusted; the label the model reported is ignored.
    """
    return Sentiment.POSITIVE if score >= SENTIMENT_THRESHOLD else Sentiment.NEGATIVE


@dataclass(frozen=True)
class ClassificationResult:
    """Immutable sentiment classification result."""

    label: Sentiment
    score: float  # 0.0–1.0


@dataclass(frozen=True)
class ClassificationUnavailable:
    """Classification could not be produced (load, inference or output failure)."""

    reason: str


ClassificationOutcome = Union[ClassificationResult, ClassificationUnavailable]
