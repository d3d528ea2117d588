"""Lazily loaded sentiment model shared by every flow in the process.

The handle is owned by the application lifespan (``acquire`` on startup,
``release`` on shutdown). The pipeline itself is only loaded on the first
``get()``; concurrent first callers await the same load task, so the model
is fetched once no matter how many flows race for it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

PipelineFactory = Callable[..., Any]


def _transformers_pipeline(task: str, *, model: str) -> Any:
    from transformers import pipeline

    return pipeline(task, model=model)


def _consume_exception(task: asyncio.Task) -> None:
    # Marks a failed load as retrieved even when every waiting caller was cancelled.
    if not task.cancelled():
        task.exception()


class SentimentModelHandle:
    task = "sentiment-analysis"

    def __init__(self, model_id: str, *, pipeline_factory: Optional[PipelineFactory] = None) -> None:
        self.model_id = model_id
        self._factory = pipeline_factory or _transformers_pipeline
        self._pipeline: Any = None
        self._loading: Optional[asyncio.Task] = None
        self._refs = 0
        self.load_count = 0

    @property
    def loaded(self) -> bool:
        return self._pipeline is not None

    @property
    def refs(self) -> int:
        return self._refs

    @property
    def loading(self) -> bool:
        return self._loading is not None

    def acquire(self) -> "SentimentModelHandle":
        self._refs += 1
        return self

    def release(self) -> None:
        if self._refs <= 0:
            logger.warning("Sentiment model handle released more times than acquired")
            return
        self._refs -= 1
        # An in-flight load sees refs == 0 when it finishes and discards its result.
        if self._refs == 0 and self._pipeline is not None:
            logger.info("Sentiment model %s unloaded (no remaining owners)", self.model_id)
            self._pipeline = None

    async def get(self) -> Any:
        """Return the loaded pipeline, loading it on first use."""
        if self._pipeline is not None:
            return self._pipeline

        if self._loading is None:
            self._loading = asyncio.ensure_future(self._load())
            self._loading.add_done_callback(_consume_exception)
        return await asyncio.shield(self._loading)

    async def _load(self) -> Any:
        self.load_count += 1
        logger.info("Loading sentiment model %s (attempt %d)", self.model_id, self.load_count)
        try:
            pipe = await asyncio.to_thread(self._factory, self.task, model=self.model_id)
        finally:
            # A failed load is not cached: the next caller starts a fresh attempt.
            if self._loading is asyncio.current_task():
                self._loading = None
        if self._refs > 0:
            self._pipeline = pipe
        else:
            logger.info("Sentiment model %s loaded after its last owner released it; discarding", self.model_id)
        return pipe
