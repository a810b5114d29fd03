"""Incremental decoding of the chat endpoint's streamed response."""

import codecs
import json
import logging
from dataclasses import dataclass
from typing import Mapping

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data: "
_CONTROL_PREFIXES = ("data:", "event:", "id:", "retry:", ":")


def parse_line(line: str) -> str | None:
    """Extract the text fragment carried by one stream line.

    Returns:
        The fragment, or None when the line carries no text.
    """
    if not line.strip() or line.startswith(":"):
        return None

    payload = line[len(SSE_DATA_PREFIX):] if line.startswith(SSE_DATA_PREFIX) else line
    try:
        data = json.loads(payload)
    except ValueError:
        logger.debug("Failed to parse response chunk: %r", line)
        if line.startswith(_CONTROL_PREFIXES):
            return None
        # Plain text fallback
        return line

    if isinstance(data, dict):
        fragment = data.get("response")
        if isinstance(fragment, str) and fragment:
            return fragment
    return None


class StreamConsumer:
    """Accumulates text fragments from SSE or JSON-lines byte chunks.

    Multi-byte characters and lines may span chunks; an incomplete final
    line is parsed when the stream ends.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self.text = ""
        self.fragment_count = 0

    @property
    def has_content(self) -> bool:
        return self.fragment_count > 0

    def _consume(self, lines: list[str]) -> list[str]:
        fragments = []
        for line in lines:
            fragment = parse_line(line.rstrip("\r"))
            if fragment is not None:
                fragments.append(fragment)
        self.text += "".join(fragments)
        self.fragment_count += len(fragments)
        return fragments

    def feed(self, chunk: bytes) -> list[str]:
        """Decode a chunk and return the fragments completed by it."""
        self._pending += self._decoder.decode(chunk)
        *lines, self._pending = self._pending.split("\n")
        return self._consume(lines)

    def finish(self) -> list[str]:
        """Flush the decoder and parse any unterminated last line."""
        self._pending += self._decoder.decode(b"", final=True)
        last, self._pending = self._pending, ""
        return self._consume([last])


@dataclass
class ChatResponseMetadata:
    """Retrieval diagnostics reported in the response headers."""

    rag_used: bool
    documents_found: int
    average_score: float
    processing_time: str | None = None
    request_id: str | None = None
    fallback_used: bool = False

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "ChatResponseMetadata":
        documents = headers.get("X-RAG-Documents")
        try:
            documents_found = int(documents or "0")
        except ValueError:
            documents_found = 0
        try:
            average_score = float(headers.get("X-RAG-Average-Score") or "0")
        except ValueError:
            average_score = 0.0
        fallback_used = headers.get("X-Fallback-Used") == "true"

        return cls(
            # A fallback answer was generated without the retrieved documents
            rag_used=documents is not None and documents != "0" and not fallback_used,
            documents_found=documents_found,
            average_score=average_score,
            processing_time=headers.get("X-Processing-Time"),
            request_id=headers.get("X-Request-ID"),
            fallback_used=fallback_used,
        )


def rag_status(metadata: ChatResponseMetadata) -> tuple[str, str]:
    """Return the (state, text) of the knowledge base indicator."""
    if metadata.rag_used and metadata.documents_found > 0:
        plural = "s" if metadata.documents_found != 1 else ""
        return (
            "found",
            f"Enhanced with {metadata.documents_found} document{plural} "
            f"(avg. relevance: {metadata.average_score:.2f})",
        )
    return "not-found", "Using general knowledge (no relevant documents found)"
