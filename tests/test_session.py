"""Tests for the chat session and its retry controller."""

import asyncio
import json

import httpx
import pytest

from autorag_chat.client.errors import ERROR_MESSAGES, ChatError, ErrorKind, classify_error
from autorag_chat.client.session import ChatSession

RAG_HEADERS = {
    "content-type": "text/event-stream",
    "x-rag-documents": "2",
    "x-rag-average-score": "0.600",
    "x-processing-time": "42ms",
    "x-request-id": "req_1_abcdef",
}


class RecordingAssistantMessage:
    def __init__(self):
        self.contents: list[str] = []
        self.statuses: list[tuple[str, str]] = []
        self.metadata = None

    async def update_content(self, text):
        self.contents.append(text)

    async def set_status(self, state, text):
        self.statuses.append((state, text))

    async def show_metadata(self, metadata):
        self.metadata = metadata


class RecordingView:
    def __init__(self):
        self.messages: list[tuple[str, str]] = []
        self.assistant_messages: list[RecordingAssistantMessage] = []

    async def add_message(self, role, content, message_id):
        self.messages.append((role, content))

    async def start_assistant_message(self, message_id):
        message = RecordingAssistantMessage()
        self.assistant_messages.append(message)
        return message


class FakeChatEndpoint:
    """Replays one queued response per request and records request bodies."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.bodies: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(json.loads(request.content))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def ok_response(body: bytes = b'data: {"response":"Hi"}\n\ndata: {"response":" there"}\n\n'):
    return httpx.Response(200, content=body, headers=RAG_HEADERS)


def run_session(settings, endpoint, *messages, before_send=None):
    """Send messages through a fresh session and wait for every retry."""
    view = RecordingView()

    async def _run():
        session = ChatSession(settings, view, transport=httpx.MockTransport(endpoint))
        if before_send:
            before_send(session)
        results = [await session.send(message) for message in messages]
        await session.wait_for_retries()
        await session.close()
        return session, results

    session, results = asyncio.run(_run())
    return session, view, results


class TestChatSessionSuccess:
    """Tests for successful exchanges."""

    def test_streams_and_records_reply(self, settings):
        """Test that the reply is rendered as it accumulates and added to history."""
        endpoint = FakeChatEndpoint(ok_response())

        session, view, results = run_session(settings, endpoint, "hello")

        assert results == [True]
        assistant = view.assistant_messages[0]
        assert assistant.contents[-1] == "Hi there"
        assert assistant.statuses[-1] == (
            "found",
            "Enhanced with 2 documents (avg. relevance: 0.60)",
        )
        assert assistant.metadata.request_id == "req_1_abcdef"
        assert assistant.metadata.processing_time == "42ms"
        assert [(m["role"], m["content"]) for m in session.history] == [
            ("user", "hello"),
            ("assistant", "Hi there"),
        ]
        assert view.messages == [("user", "hello")]
        assert session.retry_attempts == 0
        assert not session.is_processing

    def test_request_body(self, settings):
        """Test the outbound request body."""
        endpoint = FakeChatEndpoint(ok_response())

        def configure(session):
            session.system_prompt = "  Be brief.  "
            session.history.append({"role": "assistant", "content": "Welcome"})

        run_session(settings, endpoint, "hello", before_send=configure)

        assert endpoint.bodies == [
            {
                "messages": [
                    {"role": "assistant", "content": "Welcome"},
                    {"role": "user", "content": "hello"},
                ],
                "systemPrompt": "Be brief.",
                "ragSettings": {"maxResults": 5, "scoreThreshold": 0.1, "rewriteQuery": True},
            }
        ]

    def test_conversation_grows(self, settings):
        """Test that later requests carry the earlier turns."""
        endpoint = FakeChatEndpoint(ok_response())

        session, _, _ = run_session(settings, endpoint, "first", "second")

        assert [m["content"] for m in endpoint.bodies[1]["messages"]] == [
            "first",
            "Hi there",
            "second",
        ]
        assert len(session.history) == 4

    def test_blank_message_ignored(self, settings):
        """Test that blank input sends nothing."""
        endpoint = FakeChatEndpoint(ok_response())

        _, view, results = run_session(settings, endpoint, "   ")

        assert results == [False]
        assert endpoint.bodies == []
        assert view.messages == []

    def test_send_while_processing_is_noop(self, settings):
        """Test the single in-flight exchange gate."""
        endpoint = FakeChatEndpoint(ok_response())

        def busy(session):
            session.is_processing = True

        session, view, results = run_session(settings, endpoint, "hello", before_send=busy)

        assert results == [False]
        assert endpoint.bodies == []
        assert session.history == []


class TestChatSessionRetry:
    """Tests for error rendering and automatic retries."""

    def test_upstream_unavailable_is_retried(self, settings):
        """Test that a 503 shows an error, a retry notice, then the answer."""
        endpoint = FakeChatEndpoint(httpx.Response(503), ok_response())

        session, view, results = run_session(settings, endpoint, "hello")

        assert results == [False]
        assert ("assistant", ERROR_MESSAGES[ErrorKind.UPSTREAM_UNAVAILABLE]) in view.messages
        assert ("assistant", "Retrying... (attempt 1 of 3)") in view.messages
        assert view.assistant_messages[-1].contents[-1] == "Hi there"
        assert session.retry_attempts == 0
        assert [(m["role"], m["content"]) for m in session.history] == [
            ("user", "hello"),
            ("assistant", "Hi there"),
        ]

    def test_retry_resends_identical_body(self, settings):
        """Test that a retried exchange sends exactly the same request body."""
        endpoint = FakeChatEndpoint(httpx.Response(429), ok_response())

        run_session(settings, endpoint, "hello")

        assert len(endpoint.bodies) == 2
        assert endpoint.bodies[0] == endpoint.bodies[1]

    def test_empty_stream_is_retried(self, settings):
        """Test that a 200 without any text counts as a failure and is retried."""
        endpoint = FakeChatEndpoint(ok_response(b"data: [DONE]\n\n"), ok_response())

        session, view, results = run_session(settings, endpoint, "hello")

        assert results == [False]
        assert view.assistant_messages[0].statuses[-1] == ("error", "Error processing response")
        assert ("assistant", ERROR_MESSAGES[ErrorKind.NO_RESPONSE_CONTENT]) in view.messages
        assert len(endpoint.bodies) == 2
        assert session.history[-1]["content"] == "Hi there"

    def test_network_error_is_retried(self, settings):
        """Test that a connection failure is retried."""
        request = httpx.Request("POST", settings.chat_api_url)
        endpoint = FakeChatEndpoint(httpx.ConnectError("refused", request=request), ok_response())

        _, view, _ = run_session(settings, endpoint, "hello")

        assert ("assistant", ERROR_MESSAGES[ErrorKind.NETWORK]) in view.messages
        assert len(endpoint.bodies) == 2

    @pytest.mark.parametrize(
        "failure,kind",
        [
            (httpx.Response(400), ErrorKind.UNKNOWN),
            (httpx.Response(500), ErrorKind.UNKNOWN),
            (httpx.ReadTimeout("timed out"), ErrorKind.TIMEOUT),
        ],
    )
    def test_non_retryable_errors(self, settings, failure, kind):
        """Test that timeouts and other errors are shown but not retried."""
        endpoint = FakeChatEndpoint(failure, ok_response())

        session, view, _ = run_session(settings, endpoint, "hello")

        assert len(endpoint.bodies) == 1
        assert view.messages[-1] == ("assistant", ERROR_MESSAGES[kind])
        assert session.retry_attempts == 0

    def test_retry_budget_is_bounded_and_resets(self, settings):
        """Test that at most three retries happen and the budget then resets."""
        endpoint = FakeChatEndpoint(httpx.Response(503))

        session, view, _ = run_session(settings, endpoint, "hello")

        assert len(endpoint.bodies) == 4
        notices = [content for _, content in view.messages if content.startswith("Retrying")]
        assert notices == [
            "Retrying... (attempt 1 of 3)",
            "Retrying... (attempt 2 of 3)",
            "Retrying... (attempt 3 of 3)",
        ]
        assert session.retry_attempts == 0
        assert [m["role"] for m in session.history] == ["user"]

    def test_close_cancels_pending_retry(self, settings):
        """Test that closing the session cancels scheduled retries."""
        slow = settings.model_copy(update={"retry_notice_delay": 60, "retry_base_delay": 60})
        endpoint = FakeChatEndpoint(httpx.Response(503), ok_response())
        view = RecordingView()

        async def _run():
            session = ChatSession(slow, view, transport=httpx.MockTransport(endpoint))
            await session.send("hello")
            await session.close()
            await session.wait_for_retries()

        asyncio.run(_run())

        assert len(endpoint.bodies) == 1
        assert not any(content.startswith("Retrying") for _, content in view.messages)

    def test_new_message_cancels_pending_retry(self, settings):
        """Test that sending a message drops the pending retry of the failed one."""
        slow = settings.model_copy(update={"retry_notice_delay": 60, "retry_base_delay": 60})
        endpoint = FakeChatEndpoint(httpx.Response(503), ok_response())
        view = RecordingView()

        async def _run():
            session = ChatSession(slow, view, transport=httpx.MockTransport(endpoint))
            await session.send("first")
            assert session.retry_attempts == 1
            await session.send("second")
            await session.wait_for_retries()
            await session.close()
            return session

        session = asyncio.run(_run())

        assert len(endpoint.bodies) == 2
        assert [m["content"] for m in endpoint.bodies[1]["messages"]] == ["first", "second"]
        assert [(m["role"], m["content"]) for m in session.history] == [
            ("user", "first"),
            ("user", "second"),
            ("assistant", "Hi there"),
        ]
        assert session.retry_attempts == 0
        assert not any(content.startswith("Retrying") for _, content in view.messages)

    def test_error_status_marks_assistant_message(self, settings):
        """Test that a non-2xx response leaves the assistant message in the error state."""
        endpoint = FakeChatEndpoint(httpx.Response(400))

        _, view, _ = run_session(settings, endpoint, "hello")

        assert view.assistant_messages[0].statuses == [("error", "Error processing response")]


class TestClassifyError:
    """Tests for classify_error."""

    @pytest.mark.parametrize(
        "message,kind",
        [
            ("HTTP 503: Service Unavailable", ErrorKind.UPSTREAM_UNAVAILABLE),
            ("HTTP 502: Bad Gateway", ErrorKind.UPSTREAM_UNAVAILABLE),
            ("HTTP 429: Too Many Requests", ErrorKind.RATE_LIMITED),
            ("NetworkError when attempting to fetch resource.", ErrorKind.NETWORK),
            ("Failed to fetch", ErrorKind.NETWORK),
            ("Request timeout", ErrorKind.TIMEOUT),
            ("Something else", ErrorKind.UNKNOWN),
        ],
    )
    def test_message_fallback(self, message, kind):
        """Test substring classification of foreign exceptions."""
        assert classify_error(RuntimeError(message)).kind is kind

    def test_chat_error_kept(self):
        """Test that structured errors keep their kind."""
        error = ChatError.from_status(429, "Too Many Requests")

        assert classify_error(error) is error
        assert error.retryable
        assert str(error) == "HTTP 429: Too Many Requests"

    def test_httpx_errors_by_type(self):
        """Test that httpx exceptions are classified by type."""
        request = httpx.Request("GET", "https://example.com")

        assert classify_error(httpx.ConnectTimeout("slow", request=request)).kind is ErrorKind.TIMEOUT
        assert classify_error(httpx.ConnectError("down", request=request)).kind is ErrorKind.NETWORK
