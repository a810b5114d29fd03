"""Chat client: stream consumption and retrying sessions."""

from autorag_chat.client.errors import ChatError, ErrorKind, classify_error
from autorag_chat.client.session import ChatSession
from autorag_chat.client.stream import ChatResponseMetadata, StreamConsumer

__all__ = [
    "ChatError",
    "ChatResponseMetadata",
    "ChatSession",
    "ErrorKind",
    "StreamConsumer",
    "classify_error",
]
