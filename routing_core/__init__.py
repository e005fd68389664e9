"""
Routing decision layer for an AI-agent orchestrator.

Given a free-text request (English or Korean) the pipeline decides what is
being asked (intent), whether it is clear enough to act on (ambiguity), which
registered skills should handle it, and whether the same decision was made
recently (route cache). An optional A/B experiment brackets the pipeline, and
the result merger combines outputs from several execution backends.

Usage:
    ```python
    from routing_core import build_pipeline

    pipeline = build_pipeline()
    decision = await pipeline.route("org-1", "create a task in linear")
    print(decision.category, decision.confidence, decision.skills)
    ```
"""

from routing_core.errors import (
    ExperimentConfigError,
    ExperimentNotFoundError,
    RoutingCoreError,
    SkillValidationError,
)
from routing_core.intelligence import (
    analyze_request,
    detect_ambiguity,
    detect_intent,
    extract_entities,
    generate_clarification_question,
    preprocess,
)
from routing_core.orchestrator import (
    RoutingDecision,
    RoutingPipeline,
    build_pipeline,
    merge_results,
)

__version__ = "0.1.0"

__all__ = [
    # Errors
    "RoutingCoreError",
    "ExperimentConfigError",
    "ExperimentNotFoundError",
    "SkillValidationError",
    # Pure stages
    "preprocess",
    "detect_intent",
    "extract_entities",
    "analyze_request",
    "detect_ambiguity",
    "generate_clarification_question",
    # Pipeline
    "RoutingDecision",
    "RoutingPipeline",
    "build_pipeline",
    "merge_results",
]
