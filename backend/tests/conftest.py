import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx
import jwt
import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from askai.core.config import Settings, get_settings
from askai.models.interaction import Base
from askai.services.ai.answer.providers.base import AnswerResult, BaseAnswerProvider, extract_answer
from askai.services.interaction_store import InteractionStore, StoredInteraction
from askai.utils.rate_limit import rate_limiter

TEST_JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"
USER_ID = "00000000-0000-0000-0000-000000000001"
OTHER_USER_ID = "00000000-0000-0000-0000-000000000002"


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    # Tests mutate env vars; never leak a cached Settings instance across tests.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    rate_limiter.reset()
    yield
    rate_limiter.reset()


class FakePipeline:
    """Stands in for a transformers sentiment pipeline."""

    def __init__(self, output: Any = None, *, score: float = 0.9, label: str = "POSITIVE", error: Exception | None = None):
        self.output = output if output is not None else [{"label": label, "score": score}]
        self.error = error
        self.inputs: list[str] = []

    def __call__(self, text: str):
        self.inputs.append(text)
        if self.error is not None:
            raise self.error
        return self.output


class FakePipelineFactory:
    """Counts model loads; optionally slow or failing."""

    def __init__(self, pipeline: Optional[FakePipeline] = None, *, error: Exception | None = None, delay: float = 0.0):
        self.pipeline = pipeline or FakePipeline()
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, str]] = []

    def __call__(self, task: str, *, model: str):
        self.calls.append((task, model))
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.pipeline


class StubAnswerProvider(BaseAnswerProvider):
    name = "stub"

    def __init__(self, payload: Any = None, *, error: Exception | None = None, gate: asyncio.Event | None = None):
        self.payload = {"answer": "42"} if payload is None else payload
        self.error = error
        self.gate = gate
        self.calls: list[dict] = []

    async def generate(self, query, *, user_id=None, access_token=None):
        self.calls.append({"query": query, "user_id": user_id, "access_token": access_token})
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return AnswerResult(answer=extract_answer(self.payload), provider=self.name)


class RecordingStore(InteractionStore):
    name = "recording"

    def __init__(self, *, error: Exception | None = None):
        self.error = error
        self.rows: list[dict] = []
        self.insert_attempts = 0

    def _insert(self, values):
        self.insert_attempts += 1
        if self.error is not None:
            raise self.error
        self.rows.append(dict(values))
        return f"row-{len(self.rows)}"

    def _select_recent(self, user_id, limit):
        rows = [r for r in self.rows if r["user_id"] == user_id][::-1][:limit]
        return [
            StoredInteraction(
                id=f"row-{i}",
                user_id=r["user_id"],
                query=r["query"],
                response=r["response"],
                sentiment=None,
            )
            for i, r in enumerate(rows, 1)
        ]


@pytest.fixture
def pipeline_factory():
    return FakePipelineFactory()


@pytest.fixture
def answer_provider():
    return StubAnswerProvider()


@pytest.fixture
def recording_store():
    return RecordingStore()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine)
    Base.metadata.drop_all(engine)
    engine.dispose()


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": "",
        "answer_provider": "mock",
        "interactions_backend": "sql",
        "rate_limit_ask_enabled": False,
    }
    values.update(overrides)
    return Settings(**values)


def build_auth_header(sub: str = USER_ID, *, secret: str = TEST_JWT_SECRET, audience: str = "authenticated") -> dict:
    payload = {
        "sub": sub,
        "email": "tests@example.com",
        "aud": audience,
        "iat": int(datetime.now(timezone.utc).timestamp()),
        "exp": int((datetime.now(timezone.utc) + timedelta(hours=1)).timestamp()),
    }
    token = jwt.encode(payload, secret, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_env(monkeypatch):
    monkeypatch.setenv("SUPABASE_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("SUPABASE_JWT_AUDIENCE", "authenticated")
    monkeypatch.setenv("RATE_LIMIT_ASK_ENABLED", "false")
    get_settings.cache_clear()


@pytest.fixture
def make_container(pipeline_factory, answer_provider, recording_store):
    from askai.core.dependencies import build_container

    built = []

    def _make(**kwargs):
        settings = kwargs.pop("settings", None) or make_settings()
        kwargs.setdefault("pipeline_factory", pipeline_factory)
        kwargs.setdefault("answer_provider", answer_provider)
        kwargs.setdefault("store", recording_store)
        container = build_container(settings, **kwargs)
        built.append(container)
        return container

    yield _make
    for container in built:
        container.close()


@pytest_asyncio.fixture
async def client(auth_env, make_container):
    """In-process ASGI client wired to a container of stubs."""
    from askai.main import app

    previous = getattr(app.state, "container", None)
    app.state.container = make_container()

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        c.container = app.state.container
        yield c

    app.state.container = previous
