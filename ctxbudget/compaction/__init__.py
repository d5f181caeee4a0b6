"""Compaction system for keeping conversations inside a token budget."""

from ctxbudget.compaction.classifier import classify
from ctxbudget.compaction.estimator import (
    TokenEstimator,
    estimate_conversation_cost,
    get_default_estimator,
)
from ctxbudget.compaction.pipeline import STRATEGY_PIPELINES, PipelineRun, run_pipeline
from ctxbudget.compaction.processors import PROCESSORS, ProcessorContext
from ctxbudget.compaction.serialization import (
    load_messages,
    dump_messages,
    message_from_dict,
    message_to_dict,
)
from ctxbudget.compaction.service import ConversationOptimizer, optimize_conversation
from ctxbudget.compaction.types import (
    Budget,
    ConversationCost,
    CostBreakdown,
    ImageOutput,
    Message,
    OptimizationResult,
    Strategy,
    StrategyDecision,
    TextOutput,
    TextPart,
    ToolCallPart,
    ToolPhase,
)

__all__ = [
    # Estimator
    "TokenEstimator",
    "estimate_conversation_cost",
    "get_default_estimator",
    # Classifier
    "classify",
    # Pipeline
    "PROCESSORS",
    "ProcessorContext",
    "STRATEGY_PIPELINES",
    "PipelineRun",
    "run_pipeline",
    # Service
    "ConversationOptimizer",
    "optimize_conversation",
    # Serialization
    "load_messages",
    "dump_messages",
    "message_from_dict",
    "message_to_dict",
    # Types
    "Budget",
    "ConversationCost",
    "CostBreakdown",
    "ImageOutput",
    "Message",
    "OptimizationResult",
    "Strategy",
    "StrategyDecision",
    "TextOutput",
    "TextPart",
    "ToolCallPart",
    "ToolPhase",
]
