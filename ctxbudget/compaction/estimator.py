"""Token estimation for conversations."""

import asyncio
import json
import math
import threading
from typing import Any, Callable, Iterable

import tiktoken
from loguru import logger

from ctxbudget.compaction.types import (
    ConversationCost,
    CostBreakdown,
    ImageOutput,
    Message,
    TextOutput,
    TextPart,
    ToolCallPart,
    ToolPhase,
)
from ctxbudget.config.schema import EstimatorConfig

EncoderFactory = Callable[[str], Any]


def image_payload_kb(data: str) -> float:
    """Decoded size in KB of a base64 payload."""
    return (len(data) * 3 / 4) / 1024


class TokenEstimator:
    """
    Converts conversation content into token counts.

    Text goes through the tiktoken encoder once warm_up() has loaded it.
    Until then, or when loading or encoding fails, text is costed with a
    chars-per-token heuristic. Estimation never fails for the caller.
    """

    def __init__(
        self,
        config: EstimatorConfig | None = None,
        encoder_factory: EncoderFactory | None = None,
    ):
        self.config = config or EstimatorConfig()
        self._encoder_factory = encoder_factory or tiktoken.get_encoding
        self._encoder: Any = None
        self._encoder_failed = False

    @property
    def encoder_available(self) -> bool:
        return self._encoder is not None

    async def warm_up(self) -> bool:
        """
        Load the encoder, bounded by the configured timeout.

        Returns:
            True if the precise encoder is available.
        """
        if self._encoder is not None:
            return True
        if self._encoder_failed:
            return False

        try:
            self._encoder = await asyncio.wait_for(
                self._load_in_background(),
                timeout=self.config.load_timeout_seconds,
            )
            logger.debug(f"Loaded tokenizer encoding {self.config.encoding_name}")
        except asyncio.TimeoutError:
            self._encoder_failed = True
            logger.warning(
                f"Tokenizer load timed out after {self.config.load_timeout_seconds}s, "
                f"using chars/{self.config.chars_per_token} heuristic"
            )
        except Exception as e:
            self._encoder_failed = True
            logger.warning(f"Tokenizer unavailable ({e}), using chars/{self.config.chars_per_token} heuristic")

        return self._encoder is not None

    def _load_in_background(self) -> asyncio.Future:
        """
        Run the encoder factory in a daemon thread.

        Loop shutdown never joins the thread, so a stalled download cannot
        outlive the timeout for the caller.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        name = self.config.encoding_name

        def resolve(result: Any, error: Exception | None) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

        def load() -> None:
            result, error = None, None
            try:
                result = self._encoder_factory(name)
            except Exception as e:
                error = e
            try:
                loop.call_soon_threadsafe(resolve, result, error)
            except RuntimeError:
                logger.debug(f"Tokenizer {name} finished loading after its event loop closed")

        threading.Thread(target=load, name=f"tokenizer-{name}", daemon=True).start()
        return future

    def cleanup(self) -> None:
        """Drop the encoder so the next warm_up() loads it again."""
        self._encoder = None
        self._encoder_failed = False

    def heuristic_tokens(self, text: str) -> int:
        return math.ceil(len(text) / self.config.chars_per_token)

    def count_text(self, text: str) -> int:
        """Count tokens in a text string."""
        if not text:
            return 0
        if self._encoder is None:
            return self.heuristic_tokens(text)
        try:
            return len(self._encoder.encode(text))
        except Exception as e:
            logger.warning(f"Tokenizer encode failed, using heuristic: {e}")
            return self.heuristic_tokens(text)

    def image_tokens(self, data: str) -> int:
        """Token cost of a base64 image, proportional to its payload size."""
        return round(image_payload_kb(data) * self.config.image_tokens_per_kb)

    def tool_call_cost(self, part: ToolCallPart) -> tuple[int, int]:
        """
        Token cost of a tool call.

        Returns:
            Tuple of (tokens, image_tokens). image_tokens is included in tokens.
        """
        cfg = self.config
        tokens = 0
        image_tokens = 0

        try:
            tokens += self.count_text(part.name)

            if part.input is not None:
                try:
                    tokens += self.count_text(json.dumps(part.input, ensure_ascii=False))
                except (TypeError, ValueError) as e:
                    logger.warning(f"Failed to serialize input of tool '{part.name}': {e}")
                    tokens += cfg.input_fallback_tokens

            tokens += cfg.tool_overhead_tokens

            if part.phase is ToolPhase.COMPLETED:
                output = part.output
                if isinstance(output, ImageOutput):
                    image_tokens = self.image_tokens(output.data)
                    tokens += image_tokens + cfg.image_metadata_tokens
                elif isinstance(output, TextOutput):
                    tokens += self.count_text(output.text) + cfg.text_output_overhead_tokens
            elif part.phase is ToolPhase.FAILED:
                tokens += self.count_text(part.error_text or "") + cfg.error_overhead_tokens
            else:
                tokens += cfg.requested_state_tokens
        except Exception as e:
            logger.warning(f"Failed to cost tool call '{part.name}': {e}")
            return cfg.tool_fallback_tokens, 0

        return tokens, image_tokens

    def message_breakdown(self, message: Message) -> CostBreakdown:
        text_tokens = 0
        tool_tokens = 0
        image_tokens = 0

        for part in message.parts:
            if isinstance(part, TextPart):
                text_tokens += self.count_text(part.text)
            elif isinstance(part, ToolCallPart):
                tokens, images = self.tool_call_cost(part)
                tool_tokens += tokens
                image_tokens += images

        return CostBreakdown(
            total_tokens=text_tokens + tool_tokens + self.config.message_overhead_tokens,
            text_tokens=text_tokens,
            tool_tokens=tool_tokens,
            image_tokens=image_tokens,
        )

    def message_tokens(self, message: Message) -> int:
        return self.message_breakdown(message).total_tokens

    def breakdown(self, messages: Iterable[Message]) -> CostBreakdown:
        """Cost breakdown of a whole conversation."""
        total = text = tool = image = 0
        for message in messages:
            b = self.message_breakdown(message)
            total += b.total_tokens
            text += b.text_tokens
            tool += b.tool_tokens
            image += b.image_tokens
        return CostBreakdown(total_tokens=total, text_tokens=text, tool_tokens=tool, image_tokens=image)

    def fallback_breakdown(self, messages: Iterable[Message]) -> CostBreakdown:
        """
        Character-count estimate used when measuring itself blew up.

        Assumes a 50/20/30 text/tool/image split of the total.
        """
        cfg = self.config
        total_chars = 0.0

        for message in messages:
            for part in message.parts:
                if isinstance(part, TextPart):
                    total_chars += len(part.text)
                elif isinstance(part, ToolCallPart):
                    tool_chars = 50 + len(part.name)
                    if part.input is not None:
                        try:
                            tool_chars += len(json.dumps(part.input, ensure_ascii=False))
                        except (TypeError, ValueError):
                            tool_chars += 100
                    if isinstance(part.output, ImageOutput):
                        tool_chars += image_payload_kb(part.output.data) * cfg.fallback_image_chars_per_kb
                    elif isinstance(part.output, TextOutput):
                        tool_chars += len(part.output.text)
                    elif part.error_text:
                        tool_chars += len(part.error_text)
                    total_chars += tool_chars

        total = math.ceil(total_chars / cfg.chars_per_token)
        return CostBreakdown(
            total_tokens=total,
            text_tokens=round(total * 0.5),
            tool_tokens=round(total * 0.2),
            image_tokens=round(total * 0.3),
        )


_default_estimator: TokenEstimator | None = None


def get_default_estimator() -> TokenEstimator:
    """Process-wide estimator sharing one encoder."""
    global _default_estimator
    if _default_estimator is None:
        _default_estimator = TokenEstimator()
    return _default_estimator


async def estimate_conversation_cost(
    messages: list[Message],
    budget_threshold: int = 80_000,
    estimator: TokenEstimator | None = None,
) -> ConversationCost:
    """
    Estimate the token cost of a conversation.

    Args:
        messages: Conversation to measure.
        budget_threshold: Token count above which optimization is needed.
        estimator: Estimator to use. Defaults to the process-wide one.

    Returns:
        ConversationCost with totals and a text/tool/image breakdown.
    """
    estimator = estimator or get_default_estimator()
    await estimator.warm_up()

    try:
        breakdown = estimator.breakdown(messages)
    except Exception as e:
        logger.error(f"Token analysis failed, using character estimate: {e}")
        breakdown = estimator.fallback_breakdown(messages)

    return ConversationCost(
        total_tokens=breakdown.total_tokens,
        image_tokens=breakdown.image_tokens,
        needs_optimization=breakdown.total_tokens > budget_threshold,
        breakdown=breakdown,
    )
