import os
import tempfile
import datetime
import uuid

_tmp_dir = tempfile.mkdtemp(prefix="financeai-tests-")
_db_path = os.path.join(_tmp_dir, "test.db")

# Settings are read at import time, so the environment goes first
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_db_path}"
os.environ["AUTH_JWT_SECRET"] = "test-secret"
os.environ["AUTH_JWT_AUDIENCE"] = "authenticated"
os.environ["LLM_PROVIDER"] = "gemini"
os.environ["GEMINI_API_KEY"] = "test-key"
os.environ["CONVERSATION_STORE"] = "memory"

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

from financeai.core.database import Base, get_db
from financeai.core.llm import LLMError
from financeai.core.resilience import RetryPolicy
from financeai.main import app
from financeai.features.chat.service import AIChatService
from financeai.features.chat.store import InMemoryConversationStore
from financeai.features.reports.service import AIReportService
from financeai.features.imports.service import AIImportService

sync_engine = create_engine(f"sqlite:///{_db_path}")
test_engine = create_async_engine(os.environ["DATABASE_URL"], poolclass=NullPool)
TestSessionLocal = async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


async def override_get_db():
    async with TestSessionLocal() as session:
        yield session


class FakeLLM:
    """Scripted stand-in for LLMService.

    Each call consumes the next scripted outcome (a string is returned, an
    exception is raised); once the script runs out ``default`` is used.
    """

    model = "fake-model"

    def __init__(self, *outcomes, default="Here is some advice."):
        self.outcomes = list(outcomes)
        self.default = default
        self.prompts = []
        self.healthy = True

    async def generate_response(self, prompt, system_prompt=None, temperature=None, response_format=None, timeout=30.0):
        self.prompts.append(prompt)
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome is None:
            raise LLMError("fake llm has no scripted response")
        return outcome

    async def health_check(self):
        return self.healthy

    @property
    def calls(self):
        return len(self.prompts)


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make_token(user_id, secret="test-secret", expires_in=3600, **claims):
    payload = {
        "sub": str(user_id),
        "aud": "authenticated",
        "exp": datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(seconds=expires_in),
        "email": "user@example.com",
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def auth_headers(user_id):
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def client(fake_llm, sleeper):
    """TestClient over a fresh database with AI services backed by ``fake_llm``.

    The lifespan is not entered, so no real LLM client is built.
    """
    Base.metadata.drop_all(sync_engine)
    Base.metadata.create_all(sync_engine)

    policy = RetryPolicy()
    app.dependency_overrides[get_db] = override_get_db
    app.state.chat_service = AIChatService(fake_llm, InMemoryConversationStore(), policy, sleep=sleeper)
    app.state.report_service = AIReportService(fake_llm, policy, sleep=sleeper)
    app.state.import_service = AIImportService(fake_llm, RetryPolicy(jitter=1.0), sleep=sleeper)

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()
    for name in ("chat_service", "report_service", "import_service"):
        if hasattr(app.state, name):
            delattr(app.state, name)
