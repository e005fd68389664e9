"""Routing pipeline and multi-backend result merging."""

from .pipeline import RoutingDecision, RoutingPipeline, build_pipeline
from .result_merger import (
    MERGE_STRATEGIES,
    ApiResponse,
    ChatMessage,
    MergedResult,
    MergeMode,
    MergeStrategy,
    ResultMerger,
    TaskError,
    TaskResult,
    create_custom_strategy,
    create_merge_strategy,
    create_priority_strategy,
    merge_results,
)

__all__ = [
    "RoutingDecision",
    "RoutingPipeline",
    "build_pipeline",
    "MERGE_STRATEGIES",
    "ApiResponse",
    "ChatMessage",
    "MergedResult",
    "MergeMode",
    "MergeStrategy",
    "ResultMerger",
    "TaskError",
    "TaskResult",
    "create_custom_strategy",
    "create_merge_strategy",
    "create_priority_strategy",
    "merge_results",
]
