from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from askai.services.ai.sentiment.contracts import Sentiment
from askai.services.interaction_store import (
    MAX_LIST_LIMIT,
    SqlInteractionStore,
    SupabaseInteractionStore,
    build_interaction_store,
)
from askai.services.orchestrator.contracts import InteractionRecord, PersistFailed, Unauthenticated
from tests.conftest import OTHER_USER_ID, USER_ID, make_settings


def _record(user_id=USER_ID, query="hello", response="hi there", sentiment=Sentiment.POSITIVE):
    return InteractionRecord(user_id=user_id, query=query, response=response, sentiment=sentiment)


# ---------------------------------------------------------------------------
# InteractionRecord
# ---------------------------------------------------------------------------


def test_record_rejects_blank_query():
    with pytest.raises(ValueError):
        InteractionRecord(user_id=USER_ID, query="  ", response="x")


def test_record_rejects_missing_response():
    with pytest.raises(ValueError):
        InteractionRecord(user_id=USER_ID, query="q", response=None)


def test_record_allows_empty_response_text():
    record = InteractionRecord(user_id=USER_ID, query="q", response="")
    assert record.response == ""


# ---------------------------------------------------------------------------
# SQL backend
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_sql_append_and_list(session_factory):
    store = SqlInteractionStore(session_factory)

    first_id = await store.append(_record(query="first"))
    second_id = await store.append(_record(query="second", sentiment=None))
    await store.append(_record(user_id=OTHER_USER_ID, query="not mine"))

    assert first_id != second_id
    rows = await store.list_recent(USER_ID)
    assert {r.query for r in rows} == {"first", "second"}
    by_query = {r.query: r for r in rows}
    assert by_query["first"].sentiment == Sentiment.POSITIVE
    assert by_query["second"].sentiment is None
    assert all(r.user_id == USER_ID for r in rows)
    assert all(r.created_at is not None for r in rows)


@pytest.mark.asyncio
async def test_sql_append_without_owner_does_no_io(session_factory):
    factory = MagicMock(side_effect=session_factory)
    store = SqlInteractionStore(factory)

    with pytest.raises(Unauthenticated):
        await store.append(_record(user_id=None))
    with pytest.raises(Unauthenticated):
        await store.append(_record(user_id="   "))

    factory.assert_not_called()


@pytest.mark.asyncio
async def test_sql_backend_error_becomes_persist_failed():
    session = MagicMock()
    session.commit.side_effect = RuntimeError("database is locked")
    store = SqlInteractionStore(lambda: session)

    with pytest.raises(PersistFailed) as excinfo:
        await store.append(_record())

    assert excinfo.value.message == "Failed to store the response. Please try again."
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    session.rollback.assert_called_once()
    session.close.assert_called_once()


@pytest.mark.asyncio
async def test_list_recent_requires_user(session_factory):
    store = SqlInteractionStore(session_factory)
    with pytest.raises(Unauthenticated):
        await store.list_recent("")


@pytest.mark.asyncio
async def test_list_recent_clamps_limit(session_factory):
    store = SqlInteractionStore(session_factory)
    for i in range(3):
        await store.append(_record(query=f"q{i}"))

    assert len(await store.list_recent(USER_ID, limit=2)) == 2
    assert len(await store.list_recent(USER_ID, limit=0)) == 1
    assert len(await store.list_recent(USER_ID, limit=MAX_LIST_LIMIT + 500)) == 3


# ---------------------------------------------------------------------------
# Supabase backend
# ---------------------------------------------------------------------------


def _supabase_client(data):
    client = MagicMock()
    table = client.table.return_value
    table.insert.return_value.execute.return_value = SimpleNamespace(data=data)
    return client, table


@pytest.mark.asyncio
async def test_supabase_append_inserts_row():
    client, table = _supabase_client([{"id": "abc-123"}])
    store = SupabaseInteractionStore(client)

    record_id = await store.append(_record(sentiment=Sentiment.NEGATIVE))

    assert record_id == "abc-123"
    client.table.assert_called_with("ai_responses")
    table.insert.assert_called_once_with(
        {"user_id": USER_ID, "query": "hello", "response": "hi there", "sentiment": "NEGATIVE"}
    )


@pytest.mark.asyncio
async def test_supabase_empty_insert_result_is_persist_failed():
    client, _ = _supabase_client([])
    store = SupabaseInteractionStore(client)

    with pytest.raises(PersistFailed):
        await store.append(_record())


@pytest.mark.asyncio
async def test_supabase_client_error_is_persist_failed():
    client = MagicMock()
    client.table.side_effect = ConnectionError("supabase unreachable")
    store = SupabaseInteractionStore(client)

    with pytest.raises(PersistFailed):
        await store.append(_record())


@pytest.mark.asyncio
async def test_supabase_list_recent_parses_rows():
    client = MagicMock()
    query = client.table.return_value.select.return_value.eq.return_value.order.return_value.limit.return_value
    query.execute.return_value = SimpleNamespace(
        data=[
            {
                "id": "r1",
                "user_id": USER_ID,
                "query": "q",
                "response": "a",
                "sentiment": "negative",
                "created_at": "2026-01-05T10:00:00+00:00",
            },
            {"id": "r2", "user_id": USER_ID, "query": "q2", "response": None, "sentiment": "???", "created_at": "bad"},
        ]
    )
    store = SupabaseInteractionStore(client)

    rows = await store.list_recent(USER_ID, limit=5)

    assert [r.id for r in rows] == ["r1", "r2"]
    assert rows[0].sentiment == Sentiment.NEGATIVE
    assert rows[0].created_at.year == 2026
    assert rows[1].sentiment is None
    assert rows[1].response == ""
    assert rows[1].created_at is None
    client.table.return_value.select.return_value.eq.assert_called_once_with("user_id", USER_ID)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def test_build_sql_store(session_factory):
    store = build_interaction_store(make_settings(), session_factory=session_factory)
    assert isinstance(store, SqlInteractionStore)


def test_build_sql_store_without_database_fails():
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        build_interaction_store(make_settings(), session_factory=None)


def test_unknown_backend_falls_back_to_sql(session_factory):
    store = build_interaction_store(make_settings(interactions_backend="Redis"), session_factory=session_factory)
    assert isinstance(store, SqlInteractionStore)


def test_supabase_backend_without_credentials_fails():
    settings = make_settings(interactions_backend="supabase", supabase_url="", supabase_key="")
    with pytest.raises(RuntimeError, match="Supabase credentials"):
        build_interaction_store(settings)


def test_supabase_backend_prefers_service_role_key():
    settings = make_settings(
        interactions_backend="supabase",
        supabase_url="https://project.supabase.co",
        supabase_key="anon-key",
        supabase_service_role_key="service-key",
    )
    with patch("supabase.create_client") as create_client:
        store = build_interaction_store(settings)

    create_client.assert_called_once_with("https://project.supabase.co", "service-key")
    assert isinstance(store, SupabaseInteractionStore)


def test_supabase_url_without_key_is_not_configured():
    settings = make_settings(supabase_url="https://project.supabase.co", supabase_key="", supabase_service_role_key="")
    assert settings.supabase_configured is False
    with pytest.raises(RuntimeError, match="Supabase credentials"):
        build_interaction_store(settings.model_copy(update={"interactions_backend": "supabase"}))
