"""Database plumbing and the service container the routes depend on.

The container owns the sentiment model handle, so tests swap in a stub
classifier by building their own container instead of patching globals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from askai.core.config import Settings
from askai.services.ai.answer.providers import BaseAnswerProvider, get_answer_provider
from askai.services.ai.sentiment.model import PipelineFactory, SentimentModelHandle
from askai.services.ai.sentiment.service import SentimentClassifier
from askai.services.interaction_store import InteractionStore, build_interaction_store
from askai.services.notifier import Notifier
from askai.services.orchestrator.contracts import FlowVariant
from askai.services.orchestrator.registry import OrchestratorRegistry
from askai.services.orchestrator.service import QueryOrchestrator

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    connect_args: dict[str, object] = {}

    if database_url.startswith("sqlite"):
        # Store writes run in worker threads, so the connection must be usable across threads.
        connect_args = {"check_same_thread": False, "timeout": 30}

    engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)

    if database_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, _connection_record) -> None:  # type: ignore[no-untyped-def]
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.close()

    return engine


def build_session_factory(settings: Settings) -> Optional[sessionmaker]:
    if not settings.database_url:
        return None
    return sessionmaker(autocommit=False, autoflush=False, bind=build_engine(settings.database_url))


@dataclass
class ServiceContainer:
    model_handle: SentimentModelHandle
    classifier: SentimentClassifier
    answer_provider: BaseAnswerProvider
    store: InteractionStore
    registry: OrchestratorRegistry

    def close(self) -> None:
        self.model_handle.release()


def build_container(
    settings: Settings,
    *,
    store: Optional[InteractionStore] = None,
    answer_provider: Optional[BaseAnswerProvider] = None,
    model_handle: Optional[SentimentModelHandle] = None,
    pipeline_factory: Optional[PipelineFactory] = None,
    session_factory: Optional[sessionmaker] = None,
) -> ServiceContainer:
    handle = model_handle or SentimentModelHandle(settings.sentiment_model, pipeline_factory=pipeline_factory)
    handle.acquire()

    classifier = SentimentClassifier(handle, enabled=settings.enable_sentiment)
    provider = answer_provider or get_answer_provider()
    if store is None:
        store = build_interaction_store(
            settings,
            session_factory=session_factory or build_session_factory(settings),
        )

    def _make_orchestrator(variant: FlowVariant, notifier: Notifier) -> QueryOrchestrator:
        return QueryOrchestrator(
            variant,
            classifier=classifier,
            answer_provider=provider,
            store=store,
            notifier=notifier,
            canned_response=settings.helper_canned_response,
            classify_search_queries=settings.search_classify_queries,
        )

    logger.info(
        "Service container ready: answers=%s store=%s sentiment=%s",
        provider.name,
        store.name,
        settings.sentiment_model if settings.enable_sentiment else "disabled",
    )
    return ServiceContainer(
        model_handle=handle,
        classifier=classifier,
        answer_provider=provider,
        store=store,
        registry=OrchestratorRegistry(_make_orchestrator, max_widgets=settings.max_widgets),
    )


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(503, "Service is starting up")
    return container

