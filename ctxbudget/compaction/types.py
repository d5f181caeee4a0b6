"""Types for the compaction system."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Union

Role = Literal["system", "user", "assistant"]


class ToolPhase(str, Enum):
    """Lifecycle phase of a tool call. A call is in exactly one phase."""

    REQUESTED = "requested"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TextOutput:
    """Plain text result of a tool call."""

    text: str
    kind: Literal["text"] = "text"


@dataclass(frozen=True)
class ImageOutput:
    """Base64 image result of a tool call (usually a screenshot)."""

    data: str
    media_type: str = "image/png"
    kind: Literal["image"] = "image"


ToolOutput = Union[TextOutput, ImageOutput]


@dataclass(frozen=True)
class TextPart:
    """A text part of a message."""

    text: str
    kind: Literal["text"] = "text"


@dataclass(frozen=True)
class ToolCallPart:
    """
    A tool call part of a message.

    The phase decides which payload fields may be set:

    - requested: input only
    - completed: output (input may be kept), no error
    - failed: error_text, no output
    """

    name: str
    phase: ToolPhase
    input: Any = None
    output: ToolOutput | None = None
    error_text: str | None = None
    call_id: str | None = None
    kind: Literal["tool"] = "tool"

    def __post_init__(self) -> None:
        if self.phase is ToolPhase.REQUESTED:
            if self.output is not None or self.error_text is not None:
                raise ValueError(f"requested tool call '{self.name}' cannot carry output or error")
        elif self.phase is ToolPhase.COMPLETED:
            if self.output is None:
                raise ValueError(f"completed tool call '{self.name}' needs an output")
            if self.error_text is not None:
                raise ValueError(f"completed tool call '{self.name}' cannot carry an error")
        elif self.phase is ToolPhase.FAILED:
            if not self.error_text:
                raise ValueError(f"failed tool call '{self.name}' needs error_text")
            if self.output is not None:
                raise ValueError(f"failed tool call '{self.name}' cannot carry output")

    @property
    def has_image(self) -> bool:
        return isinstance(self.output, ImageOutput)


Part = Union[TextPart, ToolCallPart]


@dataclass(frozen=True)
class Message:
    """
    A conversation message.

    Messages are immutable once appended to a conversation; compaction builds
    replacement messages instead of editing these in place.
    """

    role: Role
    parts: tuple[Part, ...] = ()
    id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def text(self) -> str:
        """Concatenated text parts."""
        return "\n".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def tool_calls(self) -> list[ToolCallPart]:
        return [p for p in self.parts if isinstance(p, ToolCallPart)]

    @property
    def is_summary(self) -> bool:
        return bool(self.metadata.get("summary"))

    @classmethod
    def from_text(cls, role: Role, text: str, **kwargs: Any) -> "Message":
        return cls(role=role, parts=(TextPart(text),), **kwargs)


@dataclass(frozen=True)
class Budget:
    """Token budget a conversation has to fit in."""

    max_tokens: int = 100_000
    target_tokens: int = 80_000
    min_preserved_turns: int = 3

    def __post_init__(self) -> None:
        if self.max_tokens <= 0 or self.target_tokens <= 0:
            raise ValueError("token budgets must be positive")
        if self.target_tokens > self.max_tokens:
            raise ValueError(
                f"target_tokens ({self.target_tokens}) exceeds max_tokens ({self.max_tokens})"
            )
        if self.min_preserved_turns < 1:
            raise ValueError("min_preserved_turns must be at least 1")


@dataclass(frozen=True)
class CostBreakdown:
    """
    Token cost of a conversation.

    image_tokens is a subset of tool_tokens. total_tokens also includes the
    fixed per-message overhead, so it is not simply text + tool.
    """

    total_tokens: int = 0
    text_tokens: int = 0
    tool_tokens: int = 0
    image_tokens: int = 0


@dataclass(frozen=True)
class ConversationCost:
    """Result of estimate_conversation_cost."""

    total_tokens: int
    image_tokens: int
    needs_optimization: bool
    breakdown: CostBreakdown


class Strategy(str, Enum):
    """Compaction approach picked from the shape of the overage."""

    NONE = "none"
    AGGRESSIVE_IMAGE_REMOVAL = "aggressive_image_removal"
    HYBRID_OPTIMIZATION = "hybrid_optimization"
    AGGRESSIVE_TRUNCATION = "aggressive_truncation"
    GENTLE_OPTIMIZATION = "gentle_optimization"
    MINIMAL_CLEANUP = "minimal_cleanup"


@dataclass(frozen=True)
class StrategyDecision:
    """A strategy plus the reason it was chosen."""

    strategy: Strategy
    reason: str
    reduction_ratio: float = 0.0
    image_ratio: float = 0.0


@dataclass
class OptimizationResult:
    """Result of an optimization call."""

    messages: list[Message]
    decision: StrategyDecision | None
    tokens_before: int | None = None
    tokens_after: int | None = None
    before: CostBreakdown | None = None
    after: CostBreakdown | None = None
    processors: list[str] = field(default_factory=list)
    warning: str | None = None
    used_fallback: bool = False

    @property
    def strategy(self) -> Strategy | None:
        return self.decision.strategy if self.decision else None


# Constants
TRUNCATION_MARKER = "\n... (truncated)"
IMAGE_PLACEHOLDER = "[screenshot omitted: {tool}]"
SUMMARY_MESSAGE_ID = "conversation-summary"
