"""Client-side error kinds and their retry policy."""

from enum import Enum

import httpx


class ErrorKind(str, Enum):
    """Why a chat exchange failed, as seen by the client."""

    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    TIMEOUT = "timeout"
    NO_RESPONSE_CONTENT = "no_response_content"
    UNKNOWN = "unknown"


RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.UPSTREAM_UNAVAILABLE,
        ErrorKind.RATE_LIMITED,
        ErrorKind.NETWORK,
        ErrorKind.NO_RESPONSE_CONTENT,
    }
)

ERROR_MESSAGES = {
    ErrorKind.UPSTREAM_UNAVAILABLE: (
        "The AI service is temporarily unavailable. Please try again in a moment."
    ),
    ErrorKind.RATE_LIMITED: "Too many requests. Please wait a moment before trying again.",
    ErrorKind.NETWORK: "Network connection issue. Please check your connection and try again.",
    ErrorKind.TIMEOUT: "Request timed out. Please try again with a shorter message.",
    ErrorKind.NO_RESPONSE_CONTENT: (
        "I didn't receive a response from the AI service. Please try again."
    ),
    ErrorKind.UNKNOWN: "I apologize, but I encountered an error processing your request.",
}


class ChatError(Exception):
    """A failed chat exchange with a structured kind."""

    def __init__(self, kind: ErrorKind, message: str, status_code: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    @property
    def user_message(self) -> str:
        return ERROR_MESSAGES[self.kind]

    @classmethod
    def from_status(cls, status_code: int, reason: str = "") -> "ChatError":
        """Error for a non-2xx response from the chat endpoint."""
        if status_code in (502, 503):
            kind = ErrorKind.UPSTREAM_UNAVAILABLE
        elif status_code == 429:
            kind = ErrorKind.RATE_LIMITED
        else:
            kind = ErrorKind.UNKNOWN
        return cls(kind, f"HTTP {status_code}: {reason}".rstrip(), status_code=status_code)


def _kind_from_message(message: str) -> ErrorKind:
    if "HTTP 503" in message or "HTTP 502" in message:
        return ErrorKind.UPSTREAM_UNAVAILABLE
    if "HTTP 429" in message:
        return ErrorKind.RATE_LIMITED
    if "NetworkError" in message or "Failed to fetch" in message:
        return ErrorKind.NETWORK
    if "timeout" in message.lower():
        return ErrorKind.TIMEOUT
    return ErrorKind.UNKNOWN


def classify_error(exc: BaseException) -> ChatError:
    """Map any exception from a chat exchange to a ``ChatError``.

    httpx exceptions are mapped by type; other exceptions fall back to
    matching their message text.
    """
    if isinstance(exc, ChatError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return ChatError(ErrorKind.TIMEOUT, str(exc) or "Request timeout")
    if isinstance(exc, httpx.TransportError):
        return ChatError(ErrorKind.NETWORK, str(exc) or type(exc).__name__)
    message = str(exc)
    return ChatError(_kind_from_message(message), message)
