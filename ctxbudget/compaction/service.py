"""Conversation optimizer: measure, classify, compact."""

from loguru import logger

from ctxbudget.compaction.classifier import classify
from ctxbudget.compaction.estimator import TokenEstimator, get_default_estimator
from ctxbudget.compaction.pipeline import run_pipeline
from ctxbudget.compaction.processors import ProcessorContext, strip_images_outside
from ctxbudget.compaction.types import (
    Budget,
    CostBreakdown,
    Message,
    OptimizationResult,
    Strategy,
)
from ctxbudget.config.schema import OptimizerConfig


class ConversationOptimizer:
    """
    Keeps a conversation inside its token budget.

    Handles:
    - Measuring the conversation and classifying the overage
    - Running the strategy pipeline until the target is met
    - Soft warnings when the pipeline falls short
    - A safety net when anything in the pipeline raises
    """

    def __init__(
        self,
        config: OptimizerConfig | None = None,
        estimator: TokenEstimator | None = None,
    ):
        """
        Initialize the optimizer.

        Args:
            config: Optimizer configuration.
            estimator: Token estimator. Defaults to the process-wide one.
        """
        self.config = config or OptimizerConfig()
        self.estimator = estimator or get_default_estimator()
        self._optimization_count = 0
        self._fallback_count = 0

    @property
    def budget(self) -> Budget:
        return Budget(
            max_tokens=self.config.max_output_tokens,
            target_tokens=self.config.target_tokens,
            min_preserved_turns=self.config.preserve_recent_messages,
        )

    def should_optimize(self, total_tokens: int) -> bool:
        """
        Check if a conversation of this size needs compaction.

        Args:
            total_tokens: Current total tokens of the conversation.

        Returns:
            True if the target is exceeded.
        """
        return total_tokens > self.config.target_tokens

    async def optimize(self, messages: list[Message]) -> OptimizationResult:
        """
        Fit messages into the budget.

        Never raises: an unexpected error anywhere in the pipeline is
        answered with the safety net.

        Args:
            messages: Conversation to optimize. Not modified.

        Returns:
            OptimizationResult with the (possibly) compacted messages.
        """
        await self.estimator.warm_up()

        try:
            result = self._optimize(messages)
        except Exception:
            logger.exception("Conversation optimization failed, applying safety net")
            result = self.safety_net(messages)
            self._fallback_count += 1

        self._optimization_count += 1
        return result

    def _optimize(self, messages: list[Message]) -> OptimizationResult:
        budget = self.budget
        before = self.estimator.breakdown(messages)
        decision = classify(before, budget)

        if decision.strategy is Strategy.NONE:
            return OptimizationResult(
                messages=messages,
                decision=decision,
                tokens_before=before.total_tokens,
                tokens_after=before.total_tokens,
                before=before,
                after=before,
            )

        logger.info(
            f"Optimizing context: {before.total_tokens} tokens "
            f"({before.image_tokens} image) over target {budget.target_tokens}, "
            f"strategy {decision.strategy.value}: {decision.reason}"
        )

        ctx = ProcessorContext(budget=budget, estimator=self.estimator, settings=self.config)
        run = run_pipeline(messages, decision.strategy, ctx)
        warning = self._shortfall_warning(run.after, budget)

        if warning:
            logger.warning(warning)
        else:
            logger.info(
                f"Context optimized: {run.before.total_tokens} -> {run.after.total_tokens} tokens, "
                f"{len(messages)} -> {len(run.messages)} messages via {', '.join(run.processors)}"
            )

        return OptimizationResult(
            messages=run.messages,
            decision=decision,
            tokens_before=run.before.total_tokens,
            tokens_after=run.after.total_tokens,
            before=run.before,
            after=run.after,
            processors=run.processors,
            warning=warning,
        )

    @staticmethod
    def _shortfall_warning(after: CostBreakdown, budget: Budget) -> str | None:
        if after.total_tokens > budget.max_tokens:
            return (
                f"Context still over max after optimization: "
                f"{after.total_tokens} > {budget.max_tokens} tokens"
            )
        if after.total_tokens > budget.target_tokens:
            return (
                f"Context above target after optimization: "
                f"{after.total_tokens} > {budget.target_tokens} tokens"
            )
        return None

    def safety_net(self, messages: list[Message]) -> OptimizationResult:
        """
        Conservative compaction without any token accounting.

        Keeps the most recent messages and strips images from all but the
        last preserve_recent_messages of them.
        """
        preserve = self.config.preserve_recent_messages
        keep = max(preserve, self.config.fallback_keep_messages)
        kept = strip_images_outside(messages[-keep:], preserve)

        return OptimizationResult(
            messages=kept,
            decision=None,
            warning=f"Optimization failed, kept the last {len(kept)} of {len(messages)} messages",
            used_fallback=True,
        )

    @property
    def optimization_count(self) -> int:
        """Get the number of optimization calls handled."""
        return self._optimization_count

    @property
    def fallback_count(self) -> int:
        """Get the number of calls answered by the safety net."""
        return self._fallback_count


async def optimize_conversation(
    messages: list[Message],
    config: OptimizerConfig | None = None,
    estimator: TokenEstimator | None = None,
) -> list[Message]:
    """
    Fit a conversation into the configured budget.

    Args:
        messages: Conversation to optimize.
        config: maxOutputTokens / targetTokens / preserveRecentMessages.
        estimator: Token estimator. Defaults to the process-wide one.

    Returns:
        The optimized messages; the input list itself when nothing had to change.
    """
    result = await ConversationOptimizer(config, estimator).optimize(messages)
    return result.messages
