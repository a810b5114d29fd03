"""Shared fixtures: settings and a fake hosted search/LLM API."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from autorag_chat.api.main import create_app
from autorag_chat.api.routes.chat import get_chat_pipeline
from autorag_chat.config import Settings
from autorag_chat.core.rag import ChatPipeline

SSE_BODY = b'data: {"response":"Hi"}\n\ndata: {"response":" there"}\n\ndata: [DONE]\n\n'


def make_document(file_id: str, filename: str, score: float, *texts: str) -> dict:
    return {
        "file_id": file_id,
        "filename": filename,
        "score": score,
        "attributes": {},
        "content": [{"id": f"{file_id}-{i}", "type": "text", "text": t} for i, t in enumerate(texts)],
    }


class FakeWorkersAI:
    """Stand-in for the AutoRAG search and LLM run endpoints.

    ``llm_responses`` holds one (status, body) pair per expected LLM call;
    an exception instance as the body is raised instead.
    """

    def __init__(self, documents=None, search_status=200, search_error=None, llm_responses=None):
        self.documents = documents if documents is not None else []
        self.search_status = search_status
        self.search_error = search_error
        self.llm_responses = list(llm_responses or [(200, SSE_BODY)])
        self.search_requests: list[dict] = []
        self.llm_requests: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        if request.url.path.endswith("/search"):
            self.search_requests.append(payload)
            if self.search_error is not None:
                raise self.search_error
            return httpx.Response(
                self.search_status,
                json={"success": True, "result": {"data": self.documents}},
            )

        self.llm_requests.append(payload)
        status, body = self.llm_responses.pop(0)
        if isinstance(body, Exception):
            raise body
        return httpx.Response(
            status,
            stream=httpx.ByteStream(body),
            headers={"content-type": "text/event-stream", "x-provider": "workers-ai"},
        )


@pytest.fixture
def settings():
    """Settings independent of the environment and any .env file."""
    return Settings(
        _env_file=None,
        workers_ai_account_id="acct",
        workers_ai_api_token="token",
        autorag_index="test-index",
        retry_notice_delay=0,
        retry_base_delay=0,
    )


@pytest.fixture
def make_client(settings, tmp_path):
    """Build a TestClient whose pipeline talks to a FakeWorkersAI."""

    def _make(
        fake_api: FakeWorkersAI,
        raise_server_exceptions: bool = True,
        static_dir=None,
    ) -> TestClient:
        app = create_app(static_dir=static_dir or tmp_path / "missing-public")
        pipeline = ChatPipeline(settings, transport=httpx.MockTransport(fake_api))
        app.dependency_overrides[get_chat_pipeline] = lambda: pipeline
        return TestClient(app, raise_server_exceptions=raise_server_exceptions)

    return _make


@pytest.fixture
def fake_api():
    """Factory for FakeWorkersAI instances."""
    return FakeWorkersAI


@pytest.fixture
def document():
    """Factory for search result documents."""
    return make_document


@pytest.fixture
def sse_body():
    return SSE_BODY
