"""Chat session: sends exchanges, renders the stream and retries failures."""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from autorag_chat.client.errors import ChatError, ErrorKind, classify_error
from autorag_chat.client.stream import ChatResponseMetadata, StreamConsumer, rag_status
from autorag_chat.config import Settings

logger = logging.getLogger(__name__)


class AssistantMessageView(Protocol):
    """A streamed assistant message being rendered."""

    async def update_content(self, text: str) -> None: ...

    async def set_status(self, state: str, text: str) -> None: ...

    async def show_metadata(self, metadata: ChatResponseMetadata) -> None: ...


class ChatView(Protocol):
    """Where a chat session renders its messages."""

    async def add_message(self, role: str, content: str, message_id: str) -> None: ...

    async def start_assistant_message(self, message_id: str) -> AssistantMessageView: ...


class ChatSession:
    """One conversation with the chat endpoint.

    Owns the conversation history, the single in-flight exchange gate and
    the retry budget. Retry timers are tasks owned by the session and are
    cancelled by ``close()``.
    """

    def __init__(
        self,
        settings: Settings,
        view: ChatView,
        system_prompt: str = "",
        history: list[dict[str, Any]] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the session.

        Args:
            settings: Client settings (endpoint, retry policy, RAG settings).
            view: Renderer for messages.
            system_prompt: Custom system prompt; empty uses the server default.
            history: Initial history, e.g. a greeting message.
            transport: Optional httpx transport, used to stub the endpoint.
        """
        self.settings = settings
        self.view = view
        self.system_prompt = system_prompt
        self.history: list[dict[str, Any]] = list(history or [])
        self.is_processing = False
        self.retry_attempts = 0
        self.message_id_counter = 0
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.client_timeout),
            transport=transport,
        )
        self._retry_tasks: set[asyncio.Task] = set()

    def next_message_id(self) -> str:
        self.message_id_counter += 1
        return f"msg_{int(time.time() * 1000)}_{self.message_id_counter}"

    def build_request_body(self) -> dict[str, Any]:
        """Request body for the current history."""
        return {
            "messages": [
                {"role": msg["role"], "content": msg["content"]} for msg in self.history
            ],
            "systemPrompt": self.system_prompt.strip() or None,
            "ragSettings": {
                "maxResults": self.settings.rag_max_results,
                "scoreThreshold": self.settings.rag_score_threshold,
                "rewriteQuery": self.settings.rag_rewrite_query,
            },
        }

    async def send(self, message: str) -> bool:
        """Send a user message and render the streamed answer.

        A send while another exchange is in flight is ignored. A pending
        retry of an earlier message is cancelled and the retry budget starts
        over.

        Returns:
            True when the exchange completed with content.
        """
        message = message.strip()
        if not message or self.is_processing:
            return False

        await self._cancel_retries()
        self.retry_attempts = 0
        self.is_processing = True
        await self.view.add_message("user", message, self.next_message_id())
        self.history.append(
            {
                "role": "user",
                "content": message,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )
        return await self._exchange(message)

    async def _retry(self, message: str) -> bool:
        # The user turn is already in the history
        if self.is_processing:
            return False
        self.is_processing = True
        return await self._exchange(message)

    async def _exchange(self, message: str) -> bool:
        error: ChatError | None = None
        try:
            await self._stream_reply()
            self.retry_attempts = 0
        except (ChatError, httpx.HTTPError) as e:
            error = classify_error(e)
            logger.error("Chat request failed (attempt %d): %s", self.retry_attempts + 1, e)
            await self.view.add_message("assistant", error.user_message, self.next_message_id())
        finally:
            self.is_processing = False

        if error is None:
            return True
        self._handle_retry(error, message)
        return False

    async def _stream_reply(self) -> None:
        assistant = await self.view.start_assistant_message(self.next_message_id())
        body = self.build_request_body()
        logger.info(
            "Sending chat request (messages=%d, has_system_prompt=%s)",
            len(body["messages"]),
            body["systemPrompt"] is not None,
        )

        async with self.client.stream("POST", self.settings.chat_api_url, json=body) as response:
            if not response.is_success:
                await assistant.set_status("error", "Error processing response")
                raise ChatError.from_status(response.status_code, response.reason_phrase)

            await assistant.set_status("searching", "Processing with AI...")
            consumer = StreamConsumer()
            try:
                async for chunk in response.aiter_bytes():
                    if consumer.feed(chunk):
                        await assistant.update_content(consumer.text)
                if consumer.finish():
                    await assistant.update_content(consumer.text)
            except httpx.HTTPError:
                await assistant.set_status("error", "Error processing response")
                raise

            metadata = ChatResponseMetadata.from_headers(response.headers)

        await assistant.show_metadata(metadata)
        await assistant.set_status(*rag_status(metadata))

        if not consumer.has_content:
            await assistant.set_status("error", "Error processing response")
            raise ChatError(ErrorKind.NO_RESPONSE_CONTENT, "No response content received")

        self.history.append(
            {
                "role": "assistant",
                "content": consumer.text,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "metadata": metadata,
            }
        )

    def _handle_retry(self, error: ChatError, message: str) -> None:
        max_attempts = self.settings.max_retry_attempts
        if not error.retryable or self.retry_attempts >= max_attempts:
            self.retry_attempts = 0
            return

        self.retry_attempts += 1
        attempt = self.retry_attempts
        logger.info("Preparing retry attempt %d...", attempt)
        self._schedule(self._retry_notice(attempt, max_attempts))
        self._schedule(self._delayed_retry(message, self.settings.retry_base_delay * attempt))

    def _schedule(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)

    async def _retry_notice(self, attempt: int, max_attempts: int) -> None:
        await asyncio.sleep(self.settings.retry_notice_delay)
        await self.view.add_message(
            "assistant",
            f"Retrying... (attempt {attempt} of {max_attempts})",
            self.next_message_id(),
        )

    async def _delayed_retry(self, message: str, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._retry(message)

    async def wait_for_retries(self) -> None:
        """Wait until no retry is pending, including retries of retries."""
        while self._retry_tasks:
            await asyncio.gather(*list(self._retry_tasks))

    async def _cancel_retries(self) -> None:
        for task in list(self._retry_tasks):
            task.cancel()
        await asyncio.gather(*self._retry_tasks, return_exceptions=True)

    async def close(self) -> None:
        """Cancel pending retries and close the HTTP client."""
        await self._cancel_retries()
        await self.client.aclose()
