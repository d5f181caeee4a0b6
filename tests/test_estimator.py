"""Tests for token estimation."""

import asyncio
import threading
import time

from ctxbudget.compaction.estimator import TokenEstimator, estimate_conversation_cost
from ctxbudget.compaction.types import (
    ImageOutput,
    Message,
    TextOutput,
    TextPart,
    ToolCallPart,
    ToolPhase,
)
from ctxbudget.config.schema import EstimatorConfig


# ── Helpers ─────────────────────────────────────────────────────────


class WordEncoding:
    """Stand-in encoding: one token per whitespace separated word."""

    def encode(self, text: str) -> list[str]:
        return text.split()


class BrokenEncoding:
    def encode(self, text: str) -> list[int]:
        raise ValueError("disallowed special token")


# 4096 base64 chars decode to exactly 3 KB
THREE_KB_IMAGE = "A" * 4096


def screenshot(data: str = THREE_KB_IMAGE) -> ToolCallPart:
    return ToolCallPart("screenshot", ToolPhase.COMPLETED, output=ImageOutput(data))


# ── Text ────────────────────────────────────────────────────────────


class TestCountText:
    def test_heuristic_rounds_up(self, estimator: TokenEstimator):
        assert estimator.count_text("abcdefgh") == 2
        assert estimator.count_text("abcde") == 2
        assert estimator.count_text("a") == 1

    def test_empty(self, estimator: TokenEstimator):
        assert estimator.count_text("") == 0

    def test_uses_encoder_after_warm_up(self):
        est = TokenEstimator(encoder_factory=lambda name: WordEncoding())
        assert asyncio.run(est.warm_up()) is True
        assert est.encoder_available
        assert est.count_text("one two three") == 3

    def test_encode_failure_falls_back(self):
        est = TokenEstimator(encoder_factory=lambda name: BrokenEncoding())
        asyncio.run(est.warm_up())
        assert est.count_text("abcdefgh") == 2

    def test_configurable_ratio(self):
        est = TokenEstimator(EstimatorConfig(chars_per_token=2), encoder_factory=lambda n: None)
        assert est.count_text("abcdef") == 3


class TestWarmUp:
    def test_factory_error_degrades(self):
        calls = []

        def factory(name: str):
            calls.append(name)
            raise OSError("no network")

        est = TokenEstimator(encoder_factory=factory)
        assert asyncio.run(est.warm_up()) is False
        assert asyncio.run(est.warm_up()) is False
        assert calls == ["cl100k_base"]
        assert est.count_text("abcd") == 1

    def test_slow_factory_times_out(self):
        release = threading.Event()

        def stalled(name: str):
            release.wait(5)
            return WordEncoding()

        est = TokenEstimator(EstimatorConfig(load_timeout_seconds=0.05), encoder_factory=stalled)
        messages = [Message.from_text("user", "one two three")]
        try:
            started = time.monotonic()
            cost = asyncio.run(estimate_conversation_cost(messages, 80_000, est))
            elapsed = time.monotonic() - started
        finally:
            release.set()

        # the stalled load must not keep asyncio.run from returning
        assert elapsed < 1.0
        assert not est.encoder_available
        assert cost.total_tokens == 4 + 5

    def test_cleanup_allows_retry(self):
        attempts = {"n": 0}

        def flaky(name: str):
            attempts["n"] += 1
            if attempts["n"] == 1:
                raise OSError("first load fails")
            return WordEncoding()

        est = TokenEstimator(encoder_factory=flaky)
        assert asyncio.run(est.warm_up()) is False
        est.cleanup()
        assert asyncio.run(est.warm_up()) is True


# ── Tools and images ────────────────────────────────────────────────


class TestToolCallCost:
    def test_image_tokens_from_payload_size(self, estimator: TokenEstimator):
        assert estimator.image_tokens(THREE_KB_IMAGE) == 45

    def test_requested(self, estimator: TokenEstimator):
        part = ToolCallPart("search", ToolPhase.REQUESTED, input={"q": "x"})
        # name 2 + input 3 + overhead 10 + state 2
        assert estimator.tool_call_cost(part) == (17, 0)

    def test_completed_image(self, estimator: TokenEstimator):
        # name 3 + overhead 10 + image 45 + metadata 5
        assert estimator.tool_call_cost(screenshot()) == (63, 45)

    def test_completed_text(self, estimator: TokenEstimator):
        part = ToolCallPart("bash", ToolPhase.COMPLETED, output=TextOutput("hello world!"))
        # name 1 + overhead 10 + text 3 + 3
        assert estimator.tool_call_cost(part) == (17, 0)

    def test_failed_costs_error_text(self, estimator: TokenEstimator):
        part = ToolCallPart("bash", ToolPhase.FAILED, error_text="x" * 40)
        # name 1 + overhead 10 + error 10 + 5
        assert estimator.tool_call_cost(part) == (26, 0)

    def test_unserializable_input_uses_fixed_estimate(self, estimator: TokenEstimator):
        part = ToolCallPart("bash", ToolPhase.REQUESTED, input={"handle": object()})
        # name 1 + fallback 20 + overhead 10 + state 2
        assert estimator.tool_call_cost(part) == (33, 0)


class TestBreakdown:
    def test_message_breakdown(self, estimator: TokenEstimator):
        message = Message("assistant", (TextPart("abcd"), screenshot()))
        b = estimator.message_breakdown(message)
        assert b.text_tokens == 1
        assert b.tool_tokens == 63
        assert b.image_tokens == 45
        assert b.total_tokens == 1 + 63 + 5

    def test_conversation_breakdown_sums_messages(self, estimator: TokenEstimator):
        messages = [Message.from_text("user", "a" * 8), Message.from_text("assistant", "b" * 8)]
        b = estimator.breakdown(messages)
        assert b.total_tokens == 2 * (2 + 5)
        assert b.text_tokens == 4
        assert b.image_tokens == 0


# ── estimate_conversation_cost ──────────────────────────────────────


class TestEstimateConversationCost:
    def test_tokenizer_failure_uses_char_ratio(self, estimator: TokenEstimator):
        messages = [
            Message.from_text("user", "a" * 10),
            Message.from_text("assistant", "b" * 7),
            Message.from_text("user", "c" * 4),
        ]
        cost = asyncio.run(estimate_conversation_cost(messages, 80_000, estimator))
        assert cost.total_tokens == 3 + 2 + 1 + 3 * 5
        assert cost.breakdown.text_tokens == 6
        assert cost.needs_optimization is False

    def test_needs_optimization_over_threshold(self, estimator: TokenEstimator):
        messages = [Message.from_text("user", "a" * 400)]
        cost = asyncio.run(estimate_conversation_cost(messages, 50, estimator))
        assert cost.needs_optimization is True

    def test_image_tokens_reported(self, estimator: TokenEstimator):
        messages = [Message("assistant", (screenshot(),))]
        cost = asyncio.run(estimate_conversation_cost(messages, 80_000, estimator))
        assert cost.image_tokens == 45

    def test_measurement_crash_falls_back_to_char_count(self, estimator: TokenEstimator, monkeypatch):
        def boom(messages):
            raise RuntimeError("corrupted message")

        monkeypatch.setattr(estimator, "breakdown", boom)
        messages = [Message.from_text("user", "a" * 40)]
        cost = asyncio.run(estimate_conversation_cost(messages, 80_000, estimator))
        assert cost.total_tokens == 10
        assert cost.breakdown.text_tokens == 5
        assert cost.breakdown.tool_tokens == 2
        assert cost.breakdown.image_tokens == 3
