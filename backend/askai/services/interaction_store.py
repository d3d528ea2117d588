"""Append-only storage of answered queries (``ai_responses``).

Two backends share one contract:

- ``SqlInteractionStore`` writes through SQLAlchemy (SQLite in tests,
  Postgres in production).
- ``SupabaseInteractionStore`` writes through the Supabase REST client.

``append`` refuses records without an owner (``Unauthenticated``) before any
I/O and wraps every backend error in ``PersistFailed``. There is no update or
delete path.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from askai.core.config import Settings
from askai.models.interaction import AiResponse
from askai.services.ai.sentiment.contracts import Sentiment
from askai.services.orchestrator.contracts import InteractionRecord, PersistFailed, Unauthenticated

logger = logging.getLogger(__name__)

TABLE_NAME = "ai_responses"
MAX_LIST_LIMIT = 200


@dataclass(frozen=True)
class StoredInteraction:
    id: str
    user_id: str
    query: str
    response: str
    sentiment: Optional[Sentiment]
    created_at: Optional[datetime] = None


def _require_owner(record: InteractionRecord) -> str:
    user_id = (record.user_id or "").strip()
    if not user_id:
        raise Unauthenticated()
    return user_id


def _row_values(record: InteractionRecord, user_id: str) -> dict[str, Any]:
    return {
        "user_id": user_id,
        "query": record.query,
        "response": record.response,
        "sentiment": record.sentiment.value if record.sentiment else None,
    }


def _parse_sentiment(value: Any) -> Optional[Sentiment]:
    if not value:
        return None
    try:
        return Sentiment(str(value).upper())
    except ValueError:
        return None


class InteractionStore(abc.ABC):
    name: str = "base"

    async def append(self, record: InteractionRecord) -> str:
        """Persist *record* once and return the storage-assigned id."""
        user_id = _require_owner(record)
        try:
            record_id = await asyncio.to_thread(self._insert, _row_values(record, user_id))
        except Exception as exc:
            logger.warning("Failed to store interaction for user=%s via %s", user_id, self.name, exc_info=True)
            raise PersistFailed() from exc
        logger.info("Stored interaction %s for user=%s via %s", record_id, user_id, self.name)
        return record_id

    async def list_recent(self, user_id: str, *, limit: int = 50) -> list[StoredInteraction]:
        if not user_id:
            raise Unauthenticated()
        limit = max(1, min(int(limit), MAX_LIST_LIMIT))
        return await asyncio.to_thread(self._select_recent, user_id, limit)

    @abc.abstractmethod
    def _insert(self, values: dict[str, Any]) -> str:
        """Blocking insert; runs in a worker thread."""

    @abc.abstractmethod
    def _select_recent(self, user_id: str, limit: int) -> list[StoredInteraction]:
        """Blocking read of the newest records of *user_id*."""


class SqlInteractionStore(InteractionStore):
    name = "sql"

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def _insert(self, values: dict[str, Any]) -> str:
        db = self._session_factory()
        try:
            row = AiResponse(**values)
            db.add(row)
            db.commit()
            db.refresh(row)
            return str(row.id)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _select_recent(self, user_id: str, limit: int) -> list[StoredInteraction]:
        db = self._session_factory()
        try:
            rows = (
                db.execute(
                    select(AiResponse)
                    .where(AiResponse.user_id == user_id)
                    .order_by(desc(AiResponse.created_at), desc(AiResponse.id))
                    .limit(limit)
                )
                .scalars()
                .all()
            )
        finally:
            db.close()
        return [
            StoredInteraction(
                id=str(row.id),
                user_id=str(row.user_id),
                query=row.query,
                response=row.response or "",
                sentiment=_parse_sentiment(row.sentiment),
                created_at=row.created_at,
            )
            for row in rows
        ]


class SupabaseInteractionStore(InteractionStore):
    name = "supabase"

    def __init__(self, client: Any) -> None:
        self._client = client

    def _insert(self, values: dict[str, Any]) -> str:
        result = self._client.table(TABLE_NAME).insert(values).execute()
        data = getattr(result, "data", None) or []
        if not data:
            raise RuntimeError("Supabase insert returned no rows")
        return str(data[0].get("id", ""))

    def _select_recent(self, user_id: str, limit: int) -> list[StoredInteraction]:
        result = (
            self._client.table(TABLE_NAME)
            .select("id, user_id, query, response, sentiment, created_at")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        out = []
        for item in getattr(result, "data", None) or []:
            created_raw = item.get("created_at")
            try:
                created_at = datetime.fromisoformat(created_raw) if created_raw else None
            except ValueError:
                created_at = None
            out.append(
                StoredInteraction(
                    id=str(item.get("id", "")),
                    user_id=str(item.get("user_id", "")),
                    query=item.get("query") or "",
                    response=item.get("response") or "",
                    sentiment=_parse_sentiment(item.get("sentiment")),
                    created_at=created_at,
                )
            )
        return out


def get_supabase_client(settings: Settings):
    from supabase import create_client

    if not settings.supabase_configured:
        raise RuntimeError("Supabase credentials are not configured")
    return create_client(settings.supabase_url, settings.supabase_service_role_key or settings.supabase_key)


def build_interaction_store(
    settings: Settings,
    *,
    session_factory: Optional[Callable[[], Session]] = None,
) -> InteractionStore:
    if settings.interactions_backend == "supabase":
        return SupabaseInteractionStore(get_supabase_client(settings))
    if settings.interactions_backend != "sql":
        logger.warning("Unknown INTERACTIONS_BACKEND %r – using sql", settings.interactions_backend)
    if session_factory is None:
        raise RuntimeError("DATABASE_URL is not configured")
    return SqlInteractionStore(session_factory)
