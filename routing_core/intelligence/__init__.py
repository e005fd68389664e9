"""
Request intelligence: preprocessing, intent, ambiguity and route caching.

Components:
- preprocess: Normalization, language detection, code/URL flags
- detect_intent / extract_entities / analyze_request: Keyword-table analysis (EN + KO)
- IntentDetector: Pattern detection with an LLM fallback for low confidence
- detect_ambiguity / generate_clarification_question: Under-specification scoring
- RouteCache: Two-tier (local + Valkey/Upstash) cache of routing decisions
"""

from .ambiguity import (
    AMBIGUITY_THRESHOLD,
    AmbiguityResult,
    ClarificationQuestion,
    detect_ambiguity,
    generate_clarification_question,
    needs_clarification,
)
from .intent_detector import (
    ExtractedEntities,
    Intent,
    IntentAction,
    RequestAnalysis,
    analyze_request,
    detect_intent,
    extract_entities,
)
from .llm_classifier import (
    AnthropicCompletionClient,
    ClassificationUnavailable,
    CompletionClient,
    IntentDetector,
    LLMIntentClassifier,
    LLMResponseCache,
    UnavailableReason,
    create_intent_detector,
)
from .preprocessor import Language, PreprocessedRequest, preprocess
from .route_cache import (
    CachedRoute,
    RouteCache,
    RouteCacheConfig,
    compute_exact_key,
    compute_fuzzy_key,
)

__all__ = [
    # Preprocessing
    "Language",
    "PreprocessedRequest",
    "preprocess",
    # Intent
    "Intent",
    "IntentAction",
    "ExtractedEntities",
    "RequestAnalysis",
    "detect_intent",
    "extract_entities",
    "analyze_request",
    # LLM fallback
    "AnthropicCompletionClient",
    "ClassificationUnavailable",
    "CompletionClient",
    "IntentDetector",
    "LLMIntentClassifier",
    "LLMResponseCache",
    "UnavailableReason",
    "create_intent_detector",
    # Ambiguity
    "AMBIGUITY_THRESHOLD",
    "AmbiguityResult",
    "ClarificationQuestion",
    "detect_ambiguity",
    "generate_clarification_question",
    "needs_clarification",
    # Route cache
    "CachedRoute",
    "RouteCache",
    "RouteCacheConfig",
    "compute_exact_key",
    "compute_fuzzy_key",
]
