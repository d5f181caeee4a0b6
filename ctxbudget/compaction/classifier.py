"""Overage classification: pick a compaction strategy from a cost breakdown."""

from ctxbudget.compaction.types import Budget, CostBreakdown, Strategy, StrategyDecision

# Thresholds of the decision table, checked in order
IMAGE_HEAVY_RATIO = 0.6
IMAGE_HEAVY_REDUCTION = 0.3
IMAGE_MIXED_RATIO = 0.3
IMAGE_MIXED_REDUCTION = 0.2
SEVERE_REDUCTION = 0.5
MODERATE_REDUCTION = 0.1


def overage_ratios(breakdown: CostBreakdown, budget: Budget) -> tuple[float, float]:
    """
    Compute (reduction_ratio, image_ratio) for a breakdown.

    reduction_ratio is the share of the total that has to go to reach the
    target; image_ratio is the share of the total spent on images.
    """
    total = breakdown.total_tokens
    if total <= 0:
        return 0.0, 0.0
    reduction_ratio = (total - budget.target_tokens) / total
    image_ratio = breakdown.image_tokens / total
    return reduction_ratio, image_ratio


def classify(breakdown: CostBreakdown, budget: Budget) -> StrategyDecision:
    """
    Select a compaction strategy. First matching rule wins.

    Args:
        breakdown: Current cost of the conversation.
        budget: Budget to fit in.

    Returns:
        StrategyDecision with the strategy and a justification.
    """
    reduction, image = overage_ratios(breakdown, budget)
    ratios = f"reduction {reduction:.1%}, images {image:.1%}"

    if reduction <= 0:
        strategy, reason = Strategy.NONE, f"within target ({breakdown.total_tokens}/{budget.target_tokens} tokens)"
    elif image > IMAGE_HEAVY_RATIO and reduction > IMAGE_HEAVY_REDUCTION:
        strategy, reason = Strategy.AGGRESSIVE_IMAGE_REMOVAL, f"image-dominated overage ({ratios})"
    elif image > IMAGE_MIXED_RATIO and reduction > IMAGE_MIXED_REDUCTION:
        strategy, reason = Strategy.HYBRID_OPTIMIZATION, f"mixed image/text overage ({ratios})"
    elif reduction > SEVERE_REDUCTION:
        strategy, reason = Strategy.AGGRESSIVE_TRUNCATION, f"severe text overage ({ratios})"
    elif reduction > MODERATE_REDUCTION:
        strategy, reason = Strategy.GENTLE_OPTIMIZATION, f"moderate overage ({ratios})"
    else:
        strategy, reason = Strategy.MINIMAL_CLEANUP, f"mild overage ({ratios})"

    return StrategyDecision(
        strategy=strategy,
        reason=reason,
        reduction_ratio=reduction,
        image_ratio=image,
    )
