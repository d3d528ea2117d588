"""Query orchestration for the helper widget and the header search box.

One ``QueryOrchestrator`` drives one widget instance. A flow runs its stages
strictly in order and stops at the first failure:

    IDLE -> AWAITING_CLASSIFICATION | AWAITING_ANSWER -> PERSISTING -> SETTLED_*

- HELPER flows classify the query, answer with the canned assistance text and
  persist ``(user, query, canned, sentiment)``.
- SEARCH flows ask the remote answer service and persist
  ``(user, query, answer, None)``. Classification is off unless
  ``SEARCH_CLASSIFY_QUERIES`` is set.

Every flow reports exactly one notification. A stored-but-failed write shows
the error, never the answer. Classification failures only degrade the
sentiment to ``None``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from askai.core.config import DEFAULT_HELPER_RESPONSE
from askai.services.ai.answer.providers.base import BaseAnswerProvider
from askai.services.ai.sentiment.contracts import ClassificationResult, Sentiment
from askai.services.ai.sentiment.service import SentimentClassifier
from askai.services.interaction_store import InteractionStore
from askai.services.notifier import (
    ANSWER_TOAST_MS,
    DEFAULT_TOAST_MS,
    ERROR_TOAST_MS,
    NotificationKind,
    Notifier,
)

from .contracts import (
    ACTIVE_STATES,
    Answered,
    Failed,
    FailureReason,
    FlowError,
    FlowState,
    FlowVariant,
    InteractionRecord,
    Outcome,
    PersistFailed,
    Requester,
    TransportFailure,
)

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "A request is already in progress."

_SUCCESS_TITLES = {
    FlowVariant.HELPER: "AI Helper",
    FlowVariant.SEARCH: "AI Response",
}
_FAILURE_TITLES = {
    FlowVariant.HELPER: "Error",
    FlowVariant.SEARCH: "AI Service Error",
}


class QueryOrchestrator:
    def __init__(
        self,
        variant: FlowVariant,
        *,
        classifier: SentimentClassifier,
        answer_provider: Optional[BaseAnswerProvider],
        store: InteractionStore,
        notifier: Notifier,
        canned_response: str = DEFAULT_HELPER_RESPONSE,
        classify_search_queries: bool = False,
    ) -> None:
        if variant == FlowVariant.SEARCH and answer_provider is None:
            raise ValueError("SEARCH flows need an answer provider")
        self.variant = variant
        self.classifier = classifier
        self.answer_provider = answer_provider
        self.store = store
        self.notifier = notifier
        self.canned_response = canned_response
        self.classify_search_queries = classify_search_queries
        self.state = FlowState.IDLE
        self.last_outcome: Optional[Outcome] = None

    @property
    def busy(self) -> bool:
        return self.state in ACTIVE_STATES

    async def submit(self, query: str, user: Optional[Requester]) -> Optional[Outcome]:
        """Run one flow for *query*.

        Returns ``None`` for blank input (nothing happens) and ``Failed(BUSY)``
        while another flow of this widget is still running; neither of those
        touches a collaborator, the state or the notifier.
        """
        text = (query or "").strip()
        if not text:
            logger.debug("Ignoring blank %s query", self.variant.value)
            return None

        if self.busy:
            logger.info("Rejecting %s query: flow already in state %s", self.variant.value, self.state.value)
            return Failed(reason=FailureReason.BUSY, message=BUSY_MESSAGE)

        try:
            if self.variant == FlowVariant.HELPER:
                outcome = await self._run_helper(text, user)
            else:
                outcome = await self._run_search(text, user)
        except FlowError as exc:
            logger.warning(
                "%s flow failed in %s: %s (%s)",
                self.variant.value,
                self.state.value,
                exc.reason.value,
                exc.message,
            )
            outcome = Failed(reason=exc.reason, message=exc.message)
        except asyncio.CancelledError:
            logger.info("%s flow cancelled during %s", self.variant.value, self.state.value)
            self.state = FlowState.SETTLED_FAILURE
            raise
        except Exception:
            logger.exception("Unexpected error in %s flow during %s", self.variant.value, self.state.value)
            wrapped = PersistFailed() if self.state == FlowState.PERSISTING else TransportFailure()
            outcome = Failed(reason=wrapped.reason, message=wrapped.message)

        self._settle(outcome)
        return outcome

    async def _classify(self, text: str) -> Optional[Sentiment]:
        self.state = FlowState.AWAITING_CLASSIFICATION
        result = await self.classifier.classify(text)
        if isinstance(result, ClassificationResult):
            return result.label
        logger.info("Sentiment unavailable for %s query: %s", self.variant.value, result.reason)
        return None

    async def _persist(self, record: InteractionRecord) -> str:
        self.state = FlowState.PERSISTING
        return await self.store.append(record)

    async def _run_helper(self, text: str, user: Optional[Requester]) -> Outcome:
        sentiment = await self._classify(text)
        response = self.canned_response

        await self._persist(
            InteractionRecord(
                user_id=user.id if user else None,
                query=text,
                response=response,
                sentiment=sentiment,
            )
        )
        return Answered(response=response, sentiment=sentiment)

    async def _run_search(self, text: str, user: Optional[Requester]) -> Outcome:
        sentiment = None
        if self.classify_search_queries:
            sentiment = await self._classify(text)

        self.state = FlowState.AWAITING_ANSWER
        result = await self.answer_provider.generate(
            text,
            user_id=user.id if user else None,
            access_token=user.access_token if user else None,
        )
        logger.info("Answer received from %s in %.0fms", result.provider, result.latency_ms)

        await self._persist(
            InteractionRecord(
                user_id=user.id if user else None,
                query=text,
                response=result.answer,
                sentiment=sentiment,
            )
        )
        return Answered(response=result.answer, sentiment=sentiment)

    def _settle(self, outcome: Outcome) -> None:
        if isinstance(outcome, Answered):
            self.state = FlowState.SETTLED_SUCCESS
            self.notifier.notify(
                NotificationKind.SUCCESS,
                outcome.response,
                ANSWER_TOAST_MS if self.variant == FlowVariant.SEARCH else DEFAULT_TOAST_MS,
                title=_SUCCESS_TITLES[self.variant],
            )
        else:
            self.state = FlowState.SETTLED_FAILURE
            self.notifier.notify(
                NotificationKind.ERROR,
                outcome.message,
                ERROR_TOAST_MS,
                title=_FAILURE_TITLES[self.variant],
            )
        self.last_outcome = outcome
