"""Data models shared by the chat pipeline stages."""

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal, TypedDict

if TYPE_CHECKING:
    from autorag_chat.api.models import ChatRequest

MessageRole = Literal["system", "user", "assistant"]


class ChatMessage(TypedDict):
    """A message in the conversation history."""

    role: MessageRole
    content: str


@dataclass(frozen=True)
class RAGConfig:
    """Retrieval settings for one request."""

    index: str
    max_results: int
    score_threshold: float
    rewrite_query: bool


@dataclass
class RAGSource:
    """A retrieved document that contributed to the context."""

    filename: str
    score: float
    relevant_text: str


@dataclass
class RAGContext:
    """Knowledge base context built from one search call.

    Attributes:
        context_text: Rendered document blocks, empty when nothing usable came back
        document_count: Length of the raw result array returned by the search
        average_score: Summed score of shape-valid documents over ``document_count``
        sources: Usable documents, in result order
    """

    context_text: str = ""
    document_count: int = 0
    average_score: float = 0.0
    sources: list[RAGSource] = field(default_factory=list)

    @property
    def has_context(self) -> bool:
        return len(self.context_text) > 0


@dataclass
class RAGFailure:
    """Why a search degraded to an empty context."""

    attempted: bool
    error: str
    fallback_used: bool = True
    query: str | None = None


@dataclass
class RetrievalOutcome:
    """Result of the retrieval step.

    The step never fails: ``failure`` is set when ``context`` is the empty
    context substituted for a failed or malformed search.
    """

    context: RAGContext
    failure: RAGFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass
class EnhancedSystemPrompt:
    """System prompt after merging the base prompt with retrieved context."""

    prompt: str
    has_rag_context: bool
    context_summary: str
    token_estimate: int


@dataclass(frozen=True)
class RequestContext:
    """Per-request attribution data used for logging and error reports."""

    user_message: str
    rag_settings: RAGConfig
    start_time: float
    request_id: str
    system_prompt: str | None = None


class ProcessingStage(str, Enum):
    """Pipeline stage in which a failure happened."""

    VALIDATION = "validation"
    AUTORAG = "autorag"
    CONTEXT_BUILDING = "context_building"
    SYSTEM_PROMPT = "system_prompt"
    LLM = "llm"
    STREAMING = "streaming"


class ProcessingError(Exception):
    """A pipeline failure attributed to a stage and a request."""

    def __init__(
        self,
        stage: ProcessingStage,
        message: str,
        context: RequestContext,
        recoverable: bool = False,
        fallback_action: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.stage = stage
        self.message = message
        self.context = context
        self.recoverable = recoverable
        self.fallback_action = fallback_action
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "stage": self.stage.value,
            "message": self.message,
            "context": asdict(self.context),
            "recoverable": self.recoverable,
        }
        if self.fallback_action:
            data["fallbackAction"] = self.fallback_action
        data.update(self.details)
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, default=str)


@dataclass
class ValidationResult:
    """Outcome of validating an inbound chat request."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    sanitized_input: "ChatRequest | None" = None
