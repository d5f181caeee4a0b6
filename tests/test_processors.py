"""Tests for compaction processors."""

import pytest

from ctxbudget.compaction.processors import (
    ProcessorContext,
    compress_tool_results,
    drop_redundant_parts,
    strip_images,
    strip_old_images,
    summarize_old_exchanges,
    truncate_to_target,
    validate_budget,
)
from ctxbudget.compaction.types import (
    SUMMARY_MESSAGE_ID,
    TRUNCATION_MARKER,
    Budget,
    ImageOutput,
    Message,
    TextOutput,
    TextPart,
    ToolCallPart,
    ToolPhase,
)
from ctxbudget.config.schema import OptimizerConfig


# ── Helpers ─────────────────────────────────────────────────────────


IMAGE = "A" * 4096


def screenshot_message(index: int = 0) -> Message:
    part = ToolCallPart("screenshot", ToolPhase.COMPLETED, output=ImageOutput(IMAGE), call_id=f"c{index}")
    return Message("assistant", (part,), id=f"m{index}")


def tool_message(text: str, name: str = "bash") -> Message:
    return Message("assistant", (ToolCallPart(name, ToolPhase.COMPLETED, output=TextOutput(text)),))


def text_messages(count: int, chars: int = 40) -> list[Message]:
    roles = ("user", "assistant")
    return [Message.from_text(roles[i % 2], f"{i}".ljust(chars, "x"), id=f"m{i}") for i in range(count)]


def images_kept(messages: list[Message]) -> list[bool]:
    return [any(tc.has_image for tc in m.tool_calls) for m in messages]


@pytest.fixture
def ctx(estimator) -> ProcessorContext:
    return ProcessorContext(
        budget=Budget(max_tokens=200, target_tokens=50, min_preserved_turns=2),
        estimator=estimator,
        settings=OptimizerConfig(tool_result_max_chars=20, recent_image_window=3),
    )


# ── Images ──────────────────────────────────────────────────────────


class TestStripImages:
    def test_keeps_images_in_preserved_window(self, ctx):
        messages = [screenshot_message(i) for i in range(5)]
        result = strip_images(messages, ctx)

        assert images_kept(result) == [False, False, False, True, True]
        placeholder = result[0].tool_calls[0].output
        assert placeholder == TextOutput("[screenshot omitted: screenshot]")
        assert result[0].tool_calls[0].call_id == "c0"

    def test_input_untouched(self, ctx):
        messages = [screenshot_message(i) for i in range(5)]
        strip_images(messages, ctx)
        assert images_kept(messages) == [True] * 5

    def test_idempotent(self, ctx):
        messages = [screenshot_message(i) for i in range(5)]
        once = strip_images(messages, ctx)
        assert strip_images(once, ctx) == once

    def test_old_images_use_recent_window(self, ctx):
        messages = [screenshot_message(i) for i in range(5)]
        assert images_kept(strip_old_images(messages, ctx)) == [False, False, True, True, True]

    def test_text_messages_are_reused(self, ctx):
        messages = text_messages(4)
        result = strip_images(messages, ctx)
        assert all(a is b for a, b in zip(messages, result))


# ── Tool results ────────────────────────────────────────────────────


class TestCompressToolResults:
    def test_long_output_truncated(self, ctx):
        result = compress_tool_results([tool_message("y" * 100)], ctx)
        output = result[0].tool_calls[0].output
        assert output.text == "y" * 20 + TRUNCATION_MARKER

    def test_short_output_untouched(self, ctx):
        messages = [tool_message("short")]
        assert compress_tool_results(messages, ctx)[0] is messages[0]

    def test_requested_and_failed_untouched(self, ctx):
        messages = [
            Message("assistant", (ToolCallPart("bash", ToolPhase.REQUESTED, input={"cmd": "z" * 100}),)),
            Message("assistant", (ToolCallPart("bash", ToolPhase.FAILED, error_text="e" * 100),)),
        ]
        assert compress_tool_results(messages, ctx) == messages

    def test_image_output_untouched(self, ctx):
        messages = [screenshot_message()]
        assert compress_tool_results(messages, ctx) == messages

    def test_idempotent(self, ctx):
        once = compress_tool_results([tool_message("y" * 100)], ctx)
        assert compress_tool_results(once, ctx) == once


# ── Summarization ───────────────────────────────────────────────────


class TestSummarizeOldExchanges:
    def test_prefix_becomes_one_summary(self, ctx):
        messages = text_messages(6)
        result = summarize_old_exchanges(messages, ctx)

        assert len(result) == 3
        summary = result[0]
        assert summary.role == "system"
        assert summary.id == SUMMARY_MESSAGE_ID
        assert summary.is_summary
        assert summary.metadata["summarized_count"] == 4
        assert "4 earlier message(s)" in summary.text
        assert result[1:] == messages[-2:]

    def test_summary_mentions_tools(self, ctx):
        messages = [tool_message("ok", name="search"), *text_messages(2)]
        summary = summarize_old_exchanges(messages, ctx)[0]
        assert "(tools: search)" in summary.text

    def test_short_conversation_unchanged(self, ctx):
        messages = text_messages(2)
        assert summarize_old_exchanges(messages, ctx) is messages

    def test_idempotent(self, ctx):
        once = summarize_old_exchanges(text_messages(6), ctx)
        assert summarize_old_exchanges(once, ctx) == once

    def test_existing_summary_is_folded_in(self, ctx):
        once = summarize_old_exchanges(text_messages(6), ctx)
        extended = once + text_messages(2)
        again = summarize_old_exchanges(extended, ctx)

        assert len(again) == 3
        assert again[0].metadata["summarized_count"] == 6
        assert sum(1 for m in again if m.is_summary) == 1

    def test_leading_system_prompt_kept_verbatim(self, ctx):
        prompt = Message.from_text("system", "You are a recruiting assistant. Always answer in Chinese.")
        messages = [prompt, *text_messages(6)]
        result = summarize_old_exchanges(messages, ctx)

        assert result[0] is prompt
        assert result[1].is_summary
        assert result[1].metadata["summarized_count"] == 4
        assert "recruiting assistant" not in result[1].text
        assert result[2:] == messages[-2:]
        assert summarize_old_exchanges(result, ctx) is result

    def test_only_system_prompt_before_window_unchanged(self, ctx):
        messages = [Message.from_text("system", "prompt"), *text_messages(2)]
        assert summarize_old_exchanges(messages, ctx) is messages

    def test_line_cap(self, estimator):
        ctx = ProcessorContext(
            budget=Budget(max_tokens=200, target_tokens=50, min_preserved_turns=1),
            estimator=estimator,
            settings=OptimizerConfig(summary_max_lines=3),
        )
        summary = summarize_old_exchanges(text_messages(10), ctx)[0]
        assert len(summary.text.splitlines()) == 4
        assert "9 earlier message(s)" in summary.text


# ── Truncation ──────────────────────────────────────────────────────


class TestTruncate:
    def test_removes_oldest_until_target(self, ctx):
        # each message costs 10 + 5
        messages = text_messages(6)
        result = truncate_to_target(messages, ctx)
        assert result == messages[3:]

    def test_image_only_messages_go_first(self, estimator):
        ctx = ProcessorContext(
            budget=Budget(max_tokens=200, target_tokens=100, min_preserved_turns=2),
            estimator=estimator,
        )
        texts = text_messages(3)
        messages = [texts[0], screenshot_message(), texts[1], texts[2]]
        result = truncate_to_target(messages, ctx)
        assert result == [texts[0], texts[1], texts[2]]

    def test_never_removes_preserved_window(self, estimator):
        ctx = ProcessorContext(
            budget=Budget(max_tokens=1, target_tokens=1, min_preserved_turns=2),
            estimator=estimator,
        )
        messages = text_messages(6)
        assert truncate_to_target(messages, ctx) == messages[-2:]

    def test_validate_budget_enforces_max_only(self, estimator):
        ctx = ProcessorContext(
            budget=Budget(max_tokens=60, target_tokens=30, min_preserved_turns=2),
            estimator=estimator,
        )
        messages = text_messages(6)
        result = validate_budget(messages, ctx)
        assert result == messages[2:]
        assert estimator.breakdown(result).total_tokens == 60

    def test_under_limit_unchanged(self, estimator):
        ctx = ProcessorContext(budget=Budget(max_tokens=1000, target_tokens=500), estimator=estimator)
        messages = text_messages(6)
        assert truncate_to_target(messages, ctx) == messages


# ── Redundancy ──────────────────────────────────────────────────────


class TestDropRedundantParts:
    def test_drops_empty_and_repeated_content(self, ctx):
        hello = Message.from_text("user", "hello")
        messages = [
            hello,
            Message.from_text("user", "hello"),
            Message("assistant", (TextPart("  "),)),
            Message("assistant", (TextPart("ok"), TextPart("ok"), TextPart(""))),
            *text_messages(2),
        ]
        result = drop_redundant_parts(messages, ctx)

        assert result[0] is hello
        assert result[1] == Message("assistant", (TextPart("ok"),))
        assert result[2:] == messages[-2:]

    def test_preserved_window_untouched(self, ctx):
        messages = text_messages(2) + [Message.from_text("user", "x"), Message.from_text("user", "x")]
        result = drop_redundant_parts(messages, ctx)
        assert result[-2:] == messages[-2:]
        assert len(result) == 4

    def test_idempotent(self, ctx):
        messages = [
            Message.from_text("user", "a"),
            Message.from_text("user", "a"),
            Message("assistant", (TextPart("b"), TextPart("b"))),
            *text_messages(2),
        ]
        once = drop_redundant_parts(messages, ctx)
        assert drop_redundant_parts(once, ctx) == once
