"""
Routing pipeline - chains the decision stages for one request.

    A/B assign -> preprocess -> route cache -> intent (+ LLM fallback)
               -> ambiguity -> skill resolution -> route cache write-through

Stages run strictly in order within a request. A failing collaborator
(registry, completion service, shared cache) lowers decision quality but
never aborts routing.

Variant configs may override these keys for the users they cover:
- use_cache: skip the route cache entirely
- llm_fallback: enable or disable the LLM fallback
- confidence_threshold: pattern confidence needed to skip the LLM
"""

import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import structlog
from prometheus_client import Counter, Histogram

from routing_core.config import Settings, get_settings
from routing_core.experiments.ab_testing import ABResult, ABTestManager, ABVariant
from routing_core.intelligence.ambiguity import (
    AmbiguityResult,
    ClarificationQuestion,
    detect_ambiguity,
    generate_clarification_question,
)
from routing_core.intelligence.intent_detector import ExtractedEntities, Intent, extract_entities
from routing_core.intelligence.llm_classifier import IntentDetector, create_intent_detector
from routing_core.intelligence.preprocessor import PreprocessedRequest, preprocess
from routing_core.intelligence.route_cache import RouteCache, RouteCacheConfig
from routing_core.services.cache import SharedCache, create_shared_cache
from routing_core.skills.registry import InMemorySkillRegistry, SkillRegistry
from routing_core.skills.resolver import SkillResolutionResult, SkillResolver, merge_skill_names
from routing_core.utils.logging import LogContext, configure_logging, log_operation

logger = structlog.get_logger(__name__)


ROUTING_DECISIONS_TOTAL = Counter(
    "routing_decisions_total",
    "Routing decisions by producing method",
    ["method"],
)

ROUTING_DURATION = Histogram(
    "routing_decision_duration_seconds",
    "Time spent producing a routing decision",
    ["method"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

METHOD_CACHE = "cache"


@dataclass
class RoutingDecision:
    """Everything the orchestrator needs to act on, or ask about, a request."""

    request: str
    organization_id: str
    preprocessed: PreprocessedRequest
    category: str
    confidence: float
    method: str
    skills: list[str] = field(default_factory=list)
    intent: Optional[Intent] = None
    entities: ExtractedEntities = field(default_factory=ExtractedEntities)
    ambiguity: Optional[AmbiguityResult] = None
    clarification: Optional[ClarificationQuestion] = None
    skill_resolution: SkillResolutionResult = field(default_factory=SkillResolutionResult)
    from_cache: bool = False
    variant: Optional[ABVariant] = None
    experiment_id: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def needs_clarification(self) -> bool:
        return self.ambiguity is not None and self.ambiguity.is_ambiguous

    def to_dict(self) -> dict[str, Any]:
        return {
            "request": self.request,
            "organization_id": self.organization_id,
            "preprocessed": self.preprocessed.to_dict(),
            "category": self.category,
            "confidence": self.confidence,
            "method": self.method,
            "skills": list(self.skills),
            "intent": self.intent.to_dict() if self.intent else None,
            "entities": self.entities.to_dict(),
            "ambiguity": self.ambiguity.to_dict() if self.ambiguity else None,
            "clarification": self.clarification.to_dict() if self.clarification else None,
            "skill_resolution": self.skill_resolution.to_dict(),
            "from_cache": self.from_cache,
            "variant_id": self.variant.id if self.variant else None,
            "experiment_id": self.experiment_id,
        }


class RoutingPipeline:
    """Produces a RoutingDecision per request, optionally under an experiment."""

    def __init__(
        self,
        intent_detector: IntentDetector,
        skill_resolver: SkillResolver,
        route_cache: RouteCache,
        ab_manager: Optional[ABTestManager] = None,
        experiment_id: Optional[str] = None,
        ambiguity_threshold: float = 0.6,
    ):
        self.intent_detector = intent_detector
        self.skill_resolver = skill_resolver
        self.route_cache = route_cache
        self.ab_manager = ab_manager
        self.experiment_id = experiment_id
        self.ambiguity_threshold = ambiguity_threshold
        self._log = logger.bind(component="routing_pipeline")

    def _assign_variant(
        self,
        user_id: Optional[str],
        organization_id: str,
        category: Optional[str],
    ) -> Optional[ABVariant]:
        if self.ab_manager is None or self.experiment_id is None or not user_id:
            return None
        return self.ab_manager.assign_variant(
            user_id,
            self.experiment_id,
            organization_id=organization_id,
            category=category,
        )

    async def route(
        self,
        organization_id: str,
        request: str,
        user_id: Optional[str] = None,
        legacy_skills: Iterable[str] = (),
        category: Optional[str] = None,
    ) -> RoutingDecision:
        """Route one request.

        Args:
            organization_id: Organization the request belongs to
            request: Raw request text
            user_id: Caller, used for experiment assignment
            legacy_skills: Skill slugs already chosen by the caller
            category: Caller-known category, used for experiment targeting

        Returns:
            RoutingDecision
        """
        start = time.perf_counter()
        legacy_skills = list(legacy_skills)

        with LogContext(organization_id=organization_id), log_operation(
            "route_request", logger=self._log
        ) as op:
            variant = self._assign_variant(user_id, organization_id, category)
            overrides = variant.config if variant else {}
            use_cache = overrides.get("use_cache", True)

            preprocessed = preprocess(request)
            entities = extract_entities(request)
            experiment_id = self.experiment_id if variant else None

            if use_cache:
                cached = await self.route_cache.get_cached_route(organization_id, request)
                if cached is not None:
                    decision = RoutingDecision(
                        request=request,
                        organization_id=organization_id,
                        preprocessed=preprocessed,
                        category=cached.category,
                        confidence=cached.confidence,
                        method=cached.method,
                        skills=merge_skill_names(legacy_skills, cached.skills),
                        entities=entities,
                        from_cache=True,
                        variant=variant,
                        experiment_id=experiment_id,
                        user_id=user_id,
                    )
                    op["method"] = METHOD_CACHE
                    self._record_metrics(decision, start)
                    return decision

            intent, method = await self.intent_detector.detect_with_method(
                request,
                llm_fallback=overrides.get("llm_fallback"),
                confidence_threshold=overrides.get("confidence_threshold"),
            )

            ambiguity = detect_ambiguity(request, threshold=self.ambiguity_threshold)
            clarification = generate_clarification_question(request, ambiguity, entities)

            resolution = await self.skill_resolver.resolve(organization_id, request, legacy_skills)
            skills = merge_skill_names(legacy_skills, resolution.slugs)

            decision = RoutingDecision(
                request=request,
                organization_id=organization_id,
                preprocessed=preprocessed,
                category=intent.action.value,
                confidence=intent.confidence,
                method=method,
                skills=skills,
                intent=intent,
                entities=entities,
                ambiguity=ambiguity,
                clarification=clarification,
                skill_resolution=resolution,
                variant=variant,
                experiment_id=experiment_id,
                user_id=user_id,
            )

            if use_cache and not ambiguity.is_ambiguous:
                await self.route_cache.cache_route(
                    organization_id,
                    request,
                    decision.category,
                    decision.skills,
                    decision.confidence,
                    decision.method,
                )

            op["method"] = method
            op["category"] = decision.category
            self._record_metrics(decision, start)
            return decision

    @staticmethod
    def _record_metrics(decision: RoutingDecision, start: float) -> None:
        method = METHOD_CACHE if decision.from_cache else decision.method
        ROUTING_DECISIONS_TOTAL.labels(method=method).inc()
        ROUTING_DURATION.labels(method=method).observe(time.perf_counter() - start)

    def record_outcome(
        self,
        decision: RoutingDecision,
        success: bool,
        latency_ms: float,
        session_id: str = "",
        cost_cents: Optional[float] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[ABResult]:
        """Record how a routed request turned out, for its experiment variant.

        Returns:
            The recorded exposure, or None when the decision had no variant
        """
        if self.ab_manager is None or decision.variant is None or decision.experiment_id is None:
            return None

        return self.ab_manager.record_result(
            experiment_id=decision.experiment_id,
            variant_id=decision.variant.id,
            user_id=decision.user_id or "",
            session_id=session_id,
            success=success,
            latency_ms=latency_ms,
            cost_cents=cost_cents,
            category=decision.category,
            skills=decision.skills,
            metadata={"method": decision.method, "from_cache": decision.from_cache, **(metadata or {})},
        )


def build_pipeline(
    settings: Optional[Settings] = None,
    registry: Optional[SkillRegistry] = None,
    shared_cache: Optional[SharedCache] = None,
    ab_manager: Optional[ABTestManager] = None,
    experiment_id: Optional[str] = None,
) -> RoutingPipeline:
    """Configure logging and wire a RoutingPipeline from settings.

    Args:
        settings: Settings, loaded from the environment when omitted
        registry: Skill registry; an empty in-memory registry when omitted
        shared_cache: Shared cache client; built from settings when omitted
        ab_manager: Experiment manager bracketing the pipeline
        experiment_id: Experiment the pipeline assigns users into
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, json_format=settings.log_json)

    if shared_cache is None and settings.route_cache_use_shared:
        shared_cache = create_shared_cache(settings)

    if ab_manager is None and experiment_id is not None:
        ab_manager = ABTestManager(
            min_samples=settings.ab_min_samples,
            significance_level=settings.ab_significance_level,
        )

    return RoutingPipeline(
        intent_detector=create_intent_detector(settings),
        skill_resolver=SkillResolver(registry or InMemorySkillRegistry()),
        route_cache=RouteCache(RouteCacheConfig.from_settings(settings), shared_cache=shared_cache),
        ab_manager=ab_manager,
        experiment_id=experiment_id,
        ambiguity_threshold=settings.ambiguity_threshold,
    )
