"""Strategy pipelines and their executor."""

from dataclasses import dataclass, field

from loguru import logger

from ctxbudget.compaction.processors import PROCESSORS, ProcessorContext
from ctxbudget.compaction.types import CostBreakdown, Message, Strategy

# Gentlest first: the executor stops as soon as the target is reached
STRATEGY_PIPELINES: dict[Strategy, tuple[str, ...]] = {
    Strategy.NONE: (),
    Strategy.AGGRESSIVE_IMAGE_REMOVAL: (
        "strip_images",
        "compress_tool_results",
        "truncate_to_target",
    ),
    Strategy.HYBRID_OPTIMIZATION: (
        "strip_old_images",
        "summarize_old_exchanges",
        "compress_tool_results",
        "validate_budget",
    ),
    Strategy.AGGRESSIVE_TRUNCATION: (
        "compress_tool_results",
        "summarize_old_exchanges",
        "truncate_to_target",
    ),
    Strategy.GENTLE_OPTIMIZATION: (
        "compress_tool_results",
        "strip_old_images",
        "summarize_old_exchanges",
    ),
    Strategy.MINIMAL_CLEANUP: (
        "drop_redundant_parts",
        "compress_tool_results",
    ),
}


@dataclass
class PipelineRun:
    """Outcome of running a strategy pipeline."""

    messages: list[Message]
    before: CostBreakdown
    after: CostBreakdown
    processors: list[str] = field(default_factory=list)

    @property
    def tokens_saved(self) -> int:
        return self.before.total_tokens - self.after.total_tokens


def run_pipeline(
    messages: list[Message],
    strategy: Strategy,
    ctx: ProcessorContext,
) -> PipelineRun:
    """
    Run the processors of a strategy until the target is met.

    Cost is re-measured after every processor. A processor whose output
    costs more than its input is discarded, so the cost never goes up.

    Args:
        messages: Conversation to compact.
        strategy: Strategy whose processor chain to run.
        ctx: Budget, estimator and settings for the processors.

    Returns:
        PipelineRun with the compacted messages and before/after costs.
    """
    before = ctx.estimator.breakdown(messages)
    current = messages
    current_cost = before
    ran: list[str] = []

    for name in STRATEGY_PIPELINES[strategy]:
        if current_cost.total_tokens <= ctx.budget.target_tokens:
            break

        candidate = PROCESSORS[name](current, ctx)
        candidate_cost = ctx.estimator.breakdown(candidate)
        ran.append(name)

        if candidate_cost.total_tokens > current_cost.total_tokens:
            logger.debug(
                f"Processor {name} would grow the context "
                f"({current_cost.total_tokens} -> {candidate_cost.total_tokens}), discarded"
            )
            continue

        logger.debug(
            f"Processor {name}: {current_cost.total_tokens} -> {candidate_cost.total_tokens} tokens, "
            f"{len(current)} -> {len(candidate)} messages"
        )
        current, current_cost = candidate, candidate_cost

    return PipelineRun(messages=current, before=before, after=current_cost, processors=ran)
