import copy
import json
import os
import uuid
from typing import Any, Dict, List, Optional

# Settings are read at import time; configure before importing the app
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("SQLITE_MODE", "true")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["AUTO_CREATE_TABLES"] = "false"

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import medichat.models  # noqa: F401
from medichat.core.config import settings
from medichat.core.dependencies import get_chat_service, get_dashboard_service, get_document_service
from medichat.db.database import Base, get_db
from medichat.main import app
from medichat.services.chat_service import ChatService
from medichat.services.dashboard_service import DashboardService
from medichat.services.document_service import DocumentService
from medichat.services.extraction_service import ExtractionService
from medichat.services.storage_service import ObjectStorage, StorageError


# ---------------------------------------------------------------------------
# Fakes for the external collaborators
# ---------------------------------------------------------------------------


def text_reply(content: str) -> Dict[str, Any]:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def tool_reply(*calls, content: Optional[str] = None) -> Dict[str, Any]:
    """A completion requesting the given (name, arguments) tool calls"""
    tool_calls = []
    for index, (name, arguments) in enumerate(calls):
        tool_calls.append(
            {
                "id": f"call_{uuid.uuid4().hex[:8]}_{index}",
                "type": "function",
                "function": {
                    "name": name,
                    "arguments": arguments if isinstance(arguments, str) else json.dumps(arguments),
                },
            }
        )
    return {
        "choices": [
            {"message": {"role": "assistant", "content": content, "tool_calls": tool_calls}}
        ]
    }


class FakeLLM:
    """Scripted stand-in for LLMClient; records every call it receives"""

    def __init__(self, responses: Optional[List[Any]] = None, default: Optional[Dict] = None):
        self.responses = list(responses or [])
        self.default = default or text_reply("ok")
        self.calls: List[Dict[str, Any]] = []

    async def chat_completion(self, messages, model, temperature=0, tools=None, tool_choice=None):
        self.calls.append(
            {
                "messages": copy.deepcopy(messages),
                "model": model,
                "temperature": temperature,
                "tools": tools,
                "tool_choice": tool_choice,
            }
        )
        if not self.responses:
            return self.default
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class InMemoryStorage(ObjectStorage):
    def __init__(self, fail_puts: bool = False):
        self.objects: Dict[str, bytes] = {}
        self.fail_puts = fail_puts

    async def put_object(self, key, data, content_type=None):
        if self.fail_puts:
            raise StorageError("storage offline")
        self.objects[key] = data
        return {"key": key, "size_bytes": len(data)}

    async def get_object_buffer(self, key):
        if key not in self.objects:
            raise StorageError(f"missing {key}")
        return self.objects[key]


def build_pdf(*objects: str) -> bytes:
    """Minimal PDF with a valid xref table; object 1 must be the catalog"""
    out = b"%PDF-1.4\n"
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n{body}\nendobj\n".encode()
    xref_at = len(out)
    out += f"xref\n0 {len(objects) + 1}\n0000000000 65535 f \n".encode()
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode()
    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref_at}\n%%EOF\n"
    ).encode()
    return out


# Page tree whose /Kids is a number instead of an array
BROKEN_PAGE_TREE_PDF = build_pdf(
    "<< /Type /Catalog /Pages 2 0 R >>",
    "<< /Type /Pages /Kids 5 /Count 1 >>",
)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'medichat-test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Services wired to fakes
# ---------------------------------------------------------------------------


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def document_service(llm, storage):
    return DocumentService(storage=storage, extraction=ExtractionService(llm, model="test-extract"))


@pytest.fixture
def chat_service(llm, document_service):
    return ChatService(llm=llm, documents=document_service, model="test-chat")


@pytest.fixture
def dashboard_service(llm):
    return DashboardService(llm=llm, model="test-dashboard")


# ---------------------------------------------------------------------------
# Identities and HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
def patient_id():
    return uuid.uuid4()


@pytest.fixture
def physician_id():
    return uuid.uuid4()


def make_token(user_id) -> str:
    return jwt.encode({"sub": str(user_id)}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def auth_headers(user_id) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
async def client(session_factory, document_service, chat_service, dashboard_service):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_document_service] = lambda: document_service
    app.dependency_overrides[get_chat_service] = lambda: chat_service
    app.dependency_overrides[get_dashboard_service] = lambda: dashboard_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
