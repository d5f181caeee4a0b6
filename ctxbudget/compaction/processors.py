"""
Compaction processors.

Each processor takes a conversation and returns a new one; the input list
and its messages are never modified. Running a processor twice gives the
same result as running it once.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Callable

from loguru import logger

from ctxbudget.compaction.estimator import TokenEstimator
from ctxbudget.compaction.types import (
    IMAGE_PLACEHOLDER,
    SUMMARY_MESSAGE_ID,
    TRUNCATION_MARKER,
    Budget,
    Message,
    Part,
    TextOutput,
    TextPart,
    ToolCallPart,
    ToolPhase,
)
from ctxbudget.config.schema import OptimizerConfig

_WHITESPACE = re.compile(r"\s+")


@dataclass
class ProcessorContext:
    """What a processor needs besides the messages."""

    budget: Budget
    estimator: TokenEstimator
    settings: OptimizerConfig = field(default_factory=OptimizerConfig)


Processor = Callable[[list[Message], ProcessorContext], list[Message]]


# ── Images ──────────────────────────────────────────────────────────


def _without_image(part: Part) -> Part:
    if isinstance(part, ToolCallPart) and part.has_image:
        return replace(part, output=TextOutput(IMAGE_PLACEHOLDER.format(tool=part.name)))
    return part


def strip_images_outside(messages: list[Message], keep_recent: int) -> list[Message]:
    """Replace image outputs with placeholders, except in the last keep_recent messages."""
    cutoff = len(messages) - keep_recent
    result: list[Message] = []
    stripped = 0

    for index, message in enumerate(messages):
        if index >= cutoff or not any(tc.has_image for tc in message.tool_calls):
            result.append(message)
            continue
        stripped += sum(1 for tc in message.tool_calls if tc.has_image)
        result.append(replace(message, parts=tuple(_without_image(p) for p in message.parts)))

    if stripped:
        logger.debug(f"Stripped {stripped} image(s) outside the last {keep_recent} messages")
    return result


def strip_images(messages: list[Message], ctx: ProcessorContext) -> list[Message]:
    """Drop every image payload outside the preserved window."""
    return strip_images_outside(messages, ctx.budget.min_preserved_turns)


def strip_old_images(messages: list[Message], ctx: ProcessorContext) -> list[Message]:
    """Drop image payloads older than the recent image window."""
    window = max(ctx.budget.min_preserved_turns, ctx.settings.recent_image_window)
    return strip_images_outside(messages, window)


# ── Tool results ────────────────────────────────────────────────────


def _compress_part(part: Part, max_chars: int) -> Part:
    if not isinstance(part, ToolCallPart) or part.phase is not ToolPhase.COMPLETED:
        return part
    if not isinstance(part.output, TextOutput):
        return part

    text = part.output.text
    if len(text) <= max_chars or text.endswith(TRUNCATION_MARKER):
        return part
    return replace(part, output=TextOutput(text[:max_chars] + TRUNCATION_MARKER))


def compress_tool_results(messages: list[Message], ctx: ProcessorContext) -> list[Message]:
    """Cut long text tool results down to a prefix plus a truncation marker."""
    max_chars = ctx.settings.tool_result_max_chars
    result: list[Message] = []
    compressed = 0

    for message in messages:
        parts = tuple(_compress_part(p, max_chars) for p in message.parts)
        if parts == message.parts:
            result.append(message)
            continue
        compressed += sum(1 for old, new in zip(message.parts, parts) if old is not new)
        result.append(replace(message, parts=parts))

    if compressed:
        logger.debug(f"Compressed {compressed} tool result(s) to {max_chars} chars")
    return result


# ── Summarization ───────────────────────────────────────────────────


def _digest_line(message: Message, preview_chars: int) -> str | None:
    text = _WHITESPACE.sub(" ", message.text).strip()
    tools = [tc.name for tc in message.tool_calls]
    if not text and not tools:
        return None

    line = f"- {message.role}:"
    if text:
        preview = text[:preview_chars] + ("..." if len(text) > preview_chars else "")
        line += f" {preview}"
    if tools:
        line += f" (tools: {', '.join(dict.fromkeys(tools))})"
    return line


def build_summary_message(prefix: list[Message], settings: OptimizerConfig) -> Message:
    """Collapse messages into one synthetic system message."""
    count = 0
    lines: list[str] = []

    for message in prefix:
        if message.is_summary:
            count += int(message.metadata.get("summarized_count", 0))
            lines.extend(line for line in message.text.splitlines() if line.startswith("- "))
            continue
        count += 1
        line = _digest_line(message, settings.summary_preview_chars)
        if line:
            lines.append(line)

    lines = lines[-settings.summary_max_lines:]
    header = f"[Conversation summary] {count} earlier message(s) were condensed to save context."
    return Message.from_text(
        "system",
        "\n".join([header, *lines]),
        id=SUMMARY_MESSAGE_ID,
        metadata={"summary": True, "summarized_count": count},
    )


def _leading_system_prompts(messages: list[Message]) -> int:
    count = 0
    for message in messages:
        if message.role != "system" or message.is_summary:
            break
        count += 1
    return count


def summarize_old_exchanges(messages: list[Message], ctx: ProcessorContext) -> list[Message]:
    """
    Fold everything but the preserved window into one summary message.

    Leading system prompts are kept verbatim ahead of the summary.
    """
    keep = ctx.budget.min_preserved_turns
    if len(messages) <= keep:
        return messages

    prefix, recent = messages[:-keep], messages[-keep:]
    pinned = _leading_system_prompts(prefix)
    head, prefix = prefix[:pinned], prefix[pinned:]
    if not prefix or (len(prefix) == 1 and prefix[0].is_summary):
        return messages

    summary = build_summary_message(prefix, ctx.settings)
    logger.debug(f"Summarized {len(prefix)} message(s), keeping the last {keep}")
    return [*head, summary, *recent]


# ── Truncation ──────────────────────────────────────────────────────


def _is_image_only(message: Message) -> bool:
    return bool(message.parts) and all(
        isinstance(p, ToolCallPart) and p.has_image for p in message.parts
    )


def truncate_to_limit(
    messages: list[Message],
    ctx: ProcessorContext,
    limit: int,
) -> list[Message]:
    """
    Remove whole messages from the oldest end until the cost fits limit.

    Messages made only of screenshot results go first, then strict oldest
    first. The last min_preserved_turns messages are never removed.
    """
    keep = ctx.budget.min_preserved_turns
    costs = [ctx.estimator.message_tokens(m) for m in messages]
    total = sum(costs)
    remaining = list(range(len(messages)))

    while total > limit and len(remaining) > keep:
        eligible = remaining[: len(remaining) - keep]
        victim = next((i for i in eligible if _is_image_only(messages[i])), eligible[0])
        remaining.remove(victim)
        total -= costs[victim]

    removed = len(messages) - len(remaining)
    if removed:
        logger.debug(f"Truncated {removed} message(s), {total} tokens left (limit {limit})")
    return [messages[i] for i in remaining]


def truncate_to_target(messages: list[Message], ctx: ProcessorContext) -> list[Message]:
    """Drop oldest messages until the conversation reaches the target."""
    return truncate_to_limit(messages, ctx, ctx.budget.target_tokens)


def validate_budget(messages: list[Message], ctx: ProcessorContext) -> list[Message]:
    """Enforce the hard ceiling; anything between target and max is accepted."""
    return truncate_to_limit(messages, ctx, ctx.budget.max_tokens)


# ── Redundancy ──────────────────────────────────────────────────────


def _dedupe_parts(parts: tuple[Part, ...]) -> tuple[Part, ...]:
    result: list[Part] = []
    for part in parts:
        if isinstance(part, TextPart):
            if not part.text.strip():
                continue
            if result and result[-1] == part:
                continue
        result.append(part)
    return tuple(result)


def drop_redundant_parts(messages: list[Message], ctx: ProcessorContext) -> list[Message]:
    """
    Remove empty and repeated content outside the preserved window.

    Empty text parts, a text part repeating the one before it, messages left
    with no parts, and a message identical to its predecessor are dropped.
    """
    cutoff = len(messages) - ctx.budget.min_preserved_turns
    result: list[Message] = []

    for index, message in enumerate(messages):
        if index >= cutoff:
            result.append(message)
            continue

        parts = _dedupe_parts(message.parts)
        if not parts:
            continue
        if result and result[-1].role == message.role and result[-1].parts == parts:
            continue
        result.append(message if parts == message.parts else replace(message, parts=parts))

    dropped = len(messages) - len(result)
    if dropped:
        logger.debug(f"Dropped {dropped} redundant message(s)")
    return result


PROCESSORS: dict[str, Processor] = {
    "strip_images": strip_images,
    "strip_old_images": strip_old_images,
    "compress_tool_results": compress_tool_results,
    "summarize_old_exchanges": summarize_old_exchanges,
    "truncate_to_target": truncate_to_target,
    "validate_budget": validate_budget,
    "drop_redundant_parts": drop_redundant_parts,
}
