"""
Pytest configuration and fixtures for the botdesk test suite.
"""

import os
import tempfile
from pathlib import Path

# Logging is configured on first import of botdesk; keep log files out of the repo
os.environ.setdefault("LOG_DIR", str(Path(tempfile.gettempdir()) / "botdesk-test-logs"))

import json
from typing import Any, Callable, Dict, List

import httpx
import pytest
import pytest_asyncio

from botdesk.core.config_manager import ConfigManager
from botdesk.db.database import Database
from botdesk.db.storage import Storage


PROVIDER_KEY_ENVS = ("ANTHROPIC_API_KEY", "GOOGLE_AI_API_KEY", "OPENROUTER_API_KEY", "DATABASE_URL")


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Vendor keys and database overrides from the developer shell must not leak in."""
    for name in PROVIDER_KEY_ENVS:
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'botdesk.db'}"


@pytest.fixture
def make_config(tmp_path: Path, database_url: str) -> Callable[..., ConfigManager]:
    """Build a ConfigManager over an empty config dir with the given overrides."""
    def _make(**overrides: Any) -> ConfigManager:
        merged = {"database": {"url": database_url}}
        merged.update(overrides)
        return ConfigManager(config_dir=str(tmp_path / "config"), overrides=merged)
    return _make


@pytest.fixture
def config_manager(make_config) -> ConfigManager:
    return make_config()


@pytest_asyncio.fixture
async def database(database_url: str):
    db = Database(database_url)
    await db.init_db()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def storage(database: Database) -> Storage:
    return Storage(database)


@pytest.fixture
def bot_payload() -> Callable[..., Dict[str, Any]]:
    """Chatbot row data for Storage.create_chatbot."""
    def _payload(model: str = "claude-3-7-sonnet-20250219", provider: str = "anthropic", **settings: Any) -> Dict[str, Any]:
        bot_settings = {
            "initial_message": "Olá!",
            "system_prompt": "Você é um assistente da loja.",
            "model": model,
            "provider": provider,
            "temperature": 0.5,
            "max_tokens": 256,
            "api_keys": {},
        }
        bot_settings.update(settings)
        return {"name": "Loja Bot", "description": "Atendimento", "settings": bot_settings}
    return _payload


class RecordingTransport:
    """httpx MockTransport handler that records requests and replays responses.

    ``routes`` maps a substring of the request URL to a callable returning
    an ``httpx.Response``; the first matching route wins.
    """

    def __init__(self):
        self.routes: List = []
        self.requests: List[httpx.Request] = []

    def add(self, url_part: str, responder: Callable[[httpx.Request], Any]):
        self.routes.append((url_part, responder))
        return self

    def json_bodies(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests if request.content]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for url_part, responder in self.routes:
            if url_part in str(request.url):
                result = responder(request)
                if hasattr(result, "__await__"):
                    result = await result
                return result
        return httpx.Response(404, json={"error": {"message": f"no route for {request.url}"}})


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest_asyncio.fixture
async def http_client(transport: RecordingTransport):
    """Async client whose vendor traffic goes to the recording transport."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(transport)) as client:
        yield client


def anthropic_reply(text: str = "Olá, como posso ajudar?", input_tokens: int = 12, output_tokens: int = 8):
    return lambda request: httpx.Response(200, json={
        "id": "msg_01",
        "type": "message",
        "role": "assistant",
        "model": "claude-3-7-sonnet-20250219",
        "content": [{"type": "text", "text": text}],
        "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
    })


def gemini_stream(*texts: str, total_tokens: int = 21):
    """SSE body with one chunk per text piece; usage on the last chunk."""
    def _respond(request: httpx.Request) -> httpx.Response:
        lines = []
        for index, text in enumerate(texts):
            chunk: Dict[str, Any] = {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}
            if index == len(texts) - 1:
                chunk["usageMetadata"] = {"totalTokenCount": total_tokens}
            lines.append(f"data: {json.dumps(chunk)}\n\n")
        return httpx.Response(200, content="".join(lines).encode(), headers={"content-type": "text/event-stream"})
    return _respond


def openrouter_reply(text: str = "Resposta", total_tokens: int = 30):
    return lambda request: httpx.Response(200, json={
        "id": "gen-1",
        "model": "openai/gpt-3.5-turbo",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": text}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 20, "completion_tokens": 10, "total_tokens": total_tokens},
    })


def vendor_error(status_code: int, message: str):
    return lambda request: httpx.Response(status_code, json={"error": {"type": "error", "message": message}})


pytest.anthropic_reply = anthropic_reply
pytest.gemini_stream = gemini_stream
pytest.openrouter_reply = openrouter_reply
pytest.vendor_error = vendor_error
