"""
A/B testing for routing strategies.

Users are assigned to variants by hashing `(user_id, experiment_id)` into one
of 100 buckets. Buckets go to the control first, then to treatments in
declared order, by cumulative traffic share. Assignments are cached per user
and experiment, so repeated calls return the same variant.

Outcomes are appended to a per-experiment log. Counts, sums and sums of
squares are updated on every `record_result`; order statistics (median, p95,
p99) are computed from the log when stats are requested.

All state is process-local. Multi-process deployments need the experiment,
assignment and result maps moved to a shared store.

Usage:
    ```python
    manager = ABTestManager()
    manager.create_simple_experiment(
        "llm-threshold", "LLM threshold 0.6 vs 0.7",
        control_config={"confidence_threshold": 0.7},
        treatment_config={"confidence_threshold": 0.6},
    )
    manager.update_experiment_status("llm-threshold", ExperimentStatus.RUNNING)

    variant = manager.assign_variant("user-42", "llm-threshold")
    manager.record_result("llm-threshold", variant.id, "user-42", "session-1", success=True, latency_ms=120)
    stats = manager.get_experiment_stats("llm-threshold")
    ```
"""

import hashlib
import math
from collections import Counter as TallyCounter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

import structlog
from prometheus_client import Counter

from routing_core.errors import ExperimentConfigError, ExperimentNotFoundError
from routing_core.experiments.stats import (
    RunningStats,
    percentile,
    two_proportion_z_test,
    wilson_interval,
)

logger = structlog.get_logger(__name__)


AB_ASSIGNMENTS_TOTAL = Counter(
    "routing_ab_assignments_total",
    "Variant assignments by experiment and variant",
    ["experiment_id", "variant_id"],
)

AB_RESULTS_TOTAL = Counter(
    "routing_ab_results_total",
    "Recorded experiment exposures by outcome",
    ["experiment_id", "variant_id", "success"],
)


DEFAULT_MIN_SAMPLES = 30
DEFAULT_SIGNIFICANCE_LEVEL = 0.05
BUCKETS = 100


class ExperimentStatus(str, Enum):
    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class PrimaryMetric(str, Enum):
    SUCCESS_RATE = "success_rate"
    LATENCY_MS = "latency_ms"
    COST_CENTS = "cost_cents"
    USER_SATISFACTION = "user_satisfaction"


ALLOWED_TRANSITIONS: dict[ExperimentStatus, frozenset[ExperimentStatus]] = {
    ExperimentStatus.DRAFT: frozenset({ExperimentStatus.RUNNING}),
    ExperimentStatus.RUNNING: frozenset({ExperimentStatus.PAUSED, ExperimentStatus.COMPLETED}),
    ExperimentStatus.PAUSED: frozenset({ExperimentStatus.RUNNING, ExperimentStatus.COMPLETED}),
    ExperimentStatus.COMPLETED: frozenset(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ABVariant:
    """One arm of an experiment."""

    id: str
    name: str
    config: dict[str, Any] = field(default_factory=dict)
    traffic_percent: float = 0
    description: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "config": dict(self.config),
            "traffic_percent": self.traffic_percent,
            "description": self.description,
        }


@dataclass
class ABExperiment:
    """Experiment definition: a control, treatments, targeting and a metric."""

    id: str
    name: str
    control: ABVariant
    treatments: list[ABVariant] = field(default_factory=list)
    status: ExperimentStatus = ExperimentStatus.DRAFT
    target_user_ids: list[str] = field(default_factory=list)
    target_organization_ids: list[str] = field(default_factory=list)
    target_categories: list[str] = field(default_factory=list)
    primary_metric: PrimaryMetric = PrimaryMetric.SUCCESS_RATE
    description: Optional[str] = None
    secondary_metrics: list[str] = field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def variants(self) -> list[ABVariant]:
        return [self.control, *self.treatments]

    def get_variant(self, variant_id: str) -> ABVariant | None:
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None

    def to_dict(self) -> dict[str, Any]:
        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "control": self.control.to_dict(),
            "treatments": [t.to_dict() for t in self.treatments],
            "target_user_ids": list(self.target_user_ids),
            "target_organization_ids": list(self.target_organization_ids),
            "target_categories": list(self.target_categories),
            "primary_metric": self.primary_metric.value,
            "description": self.description,
            "secondary_metrics": list(self.secondary_metrics),
            "start_date": iso(self.start_date),
            "end_date": iso(self.end_date),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


@dataclass(frozen=True)
class VariantAssignment:
    experiment_id: str
    variant_id: str
    assigned_at: datetime


@dataclass(frozen=True)
class ABResult:
    """One recorded exposure. Never modified after it is logged."""

    experiment_id: str
    variant_id: str
    user_id: str
    session_id: str
    timestamp: datetime
    success: bool
    latency_ms: float
    cost_cents: Optional[float] = None
    category: Optional[str] = None
    skills: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class VariantStats:
    """Aggregated outcome metrics for one variant."""

    variant_id: str
    variant_name: str
    sample_size: int = 0
    success_count: int = 0
    success_rate: float = 0.0
    success_rate_ci: tuple[float, float] = (0.0, 0.0)
    avg_latency_ms: float = 0.0
    latency_stddev_ms: float = 0.0
    median_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    p99_latency_ms: float = 0.0
    avg_cost_cents: float = 0.0
    total_cost_cents: float = 0.0
    category_distribution: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "variant_id": self.variant_id,
            "variant_name": self.variant_name,
            "sample_size": self.sample_size,
            "success_count": self.success_count,
            "success_rate": self.success_rate,
            "success_rate_ci": {"lower": self.success_rate_ci[0], "upper": self.success_rate_ci[1]},
            "avg_latency_ms": self.avg_latency_ms,
            "latency_stddev_ms": self.latency_stddev_ms,
            "median_latency_ms": self.median_latency_ms,
            "p95_latency_ms": self.p95_latency_ms,
            "p99_latency_ms": self.p99_latency_ms,
            "avg_cost_cents": self.avg_cost_cents,
            "total_cost_cents": self.total_cost_cents,
            "category_distribution": dict(self.category_distribution),
        }


@dataclass
class ExperimentStats:
    """Per-variant statistics plus the significance verdict."""

    experiment_id: str
    experiment_name: str
    status: ExperimentStatus
    total_samples: int
    control_stats: VariantStats
    treatment_stats: list[VariantStats]
    p_value: float = 1.0
    is_significant: bool = False
    winner: Optional[str] = None
    first_result: Optional[datetime] = None
    last_result: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "experiment_id": self.experiment_id,
            "experiment_name": self.experiment_name,
            "status": self.status.value,
            "total_samples": self.total_samples,
            "control_stats": self.control_stats.to_dict(),
            "treatment_stats": [t.to_dict() for t in self.treatment_stats],
            "p_value": self.p_value,
            "is_significant": self.is_significant,
            "winner": self.winner,
            "first_result": self.first_result.isoformat() if self.first_result else None,
            "last_result": self.last_result.isoformat() if self.last_result else None,
        }


@dataclass
class _VariantAggregate:
    successes: int = 0
    latency: RunningStats = field(default_factory=RunningStats)
    cost: RunningStats = field(default_factory=RunningStats)
    categories: TallyCounter = field(default_factory=TallyCounter)

    def add(self, result: ABResult) -> None:
        if result.success:
            self.successes += 1
        self.latency.add(result.latency_ms)
        self.cost.add(result.cost_cents or 0.0)
        if result.category:
            self.categories[result.category] += 1


def bucket_for(user_id: str, experiment_id: str) -> int:
    """Deterministic traffic bucket in [0, 100) for a user and experiment."""
    digest = hashlib.md5(f"{user_id}:{experiment_id}".encode()).hexdigest()
    return int(digest[:8], 16) % BUCKETS


class ABTestManager:
    """Registers experiments, assigns variants and aggregates outcomes."""

    def __init__(
        self,
        min_samples: int = DEFAULT_MIN_SAMPLES,
        significance_level: float = DEFAULT_SIGNIFICANCE_LEVEL,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.min_samples = min_samples
        self.significance_level = significance_level
        self._clock = clock
        self._experiments: dict[str, ABExperiment] = {}
        self._results: dict[str, list[ABResult]] = {}
        self._aggregates: dict[str, dict[str, _VariantAggregate]] = {}
        self._assignments: dict[str, dict[str, VariantAssignment]] = {}
        self._log = logger.bind(component="ab_test_manager")

    # -------------------------------------------------------------------------
    # Experiment lifecycle
    # -------------------------------------------------------------------------

    @staticmethod
    def _validate(experiment: ABExperiment) -> None:
        seen: set[str] = set()
        for variant in experiment.variants:
            if variant.id in seen:
                raise ExperimentConfigError(f"Duplicate variant id: {variant.id}")
            seen.add(variant.id)
            if variant.traffic_percent < 0:
                raise ExperimentConfigError(
                    f"Traffic share must not be negative: {variant.id}={variant.traffic_percent}"
                )

        total = sum(v.traffic_percent for v in experiment.variants)
        if not math.isclose(total, 100):
            raise ExperimentConfigError(f"Traffic split must equal 100%, got {total}%")

    def register_experiment(self, experiment: ABExperiment) -> ABExperiment:
        """Validate and register an experiment.

        Raises:
            ExperimentConfigError: If shares do not sum to 100, a share is
                negative or variant IDs repeat
        """
        self._validate(experiment)

        now = self._clock()
        experiment.created_at = experiment.created_at or now
        experiment.updated_at = now

        if experiment.id in self._experiments:
            self._log.warning("Replacing existing experiment", experiment_id=experiment.id)

        self._experiments[experiment.id] = experiment
        self._results[experiment.id] = []
        self._aggregates[experiment.id] = {v.id: _VariantAggregate() for v in experiment.variants}
        self._assignments[experiment.id] = {}

        self._log.info(
            "Experiment registered",
            experiment_id=experiment.id,
            variants=[v.id for v in experiment.variants],
            primary_metric=experiment.primary_metric.value,
        )
        return experiment

    def create_simple_experiment(
        self,
        experiment_id: str,
        name: str,
        control_config: dict[str, Any],
        treatment_config: dict[str, Any],
        traffic_split: float = 50,
    ) -> ABExperiment:
        """Register a draft experiment with one control and one treatment."""
        return self.register_experiment(
            ABExperiment(
                id=experiment_id,
                name=name,
                control=ABVariant(
                    id=f"{experiment_id}-control",
                    name="Control",
                    config=control_config,
                    traffic_percent=traffic_split,
                ),
                treatments=[
                    ABVariant(
                        id=f"{experiment_id}-treatment",
                        name="Treatment",
                        config=treatment_config,
                        traffic_percent=100 - traffic_split,
                    )
                ],
            )
        )

    def get_experiment(self, experiment_id: str) -> ABExperiment | None:
        return self._experiments.get(experiment_id)

    def list_experiments(self, status: Optional[ExperimentStatus] = None) -> list[ABExperiment]:
        experiments = list(self._experiments.values())
        if status is None:
            return experiments
        return [e for e in experiments if e.status == ExperimentStatus(status)]

    def update_experiment_status(self, experiment_id: str, status: ExperimentStatus) -> ABExperiment:
        """Move an experiment through draft -> running -> paused/completed.

        Raises:
            ExperimentNotFoundError: If the experiment is not registered
            ExperimentConfigError: If the transition is not allowed
        """
        experiment = self._experiments.get(experiment_id)
        if experiment is None:
            raise ExperimentNotFoundError(experiment_id)

        status = ExperimentStatus(status)
        if status == experiment.status:
            return experiment
        if status not in ALLOWED_TRANSITIONS[experiment.status]:
            raise ExperimentConfigError(
                f"Invalid status transition for {experiment_id}: "
                f"{experiment.status.value} -> {status.value}"
            )

        now = self._clock()
        if status == ExperimentStatus.RUNNING and experiment.start_date is None:
            experiment.start_date = now
        if status == ExperimentStatus.COMPLETED:
            experiment.end_date = now
        previous = experiment.status
        experiment.status = status
        experiment.updated_at = now

        self._log.info(
            "Experiment status changed",
            experiment_id=experiment_id,
            previous=previous.value,
            status=status.value,
        )
        return experiment

    def delete_experiment(self, experiment_id: str) -> bool:
        self._results.pop(experiment_id, None)
        self._aggregates.pop(experiment_id, None)
        self._assignments.pop(experiment_id, None)
        return self._experiments.pop(experiment_id, None) is not None

    # -------------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------------

    @staticmethod
    def _is_targeted(
        experiment: ABExperiment,
        user_id: str,
        organization_id: Optional[str],
        category: Optional[str],
    ) -> bool:
        if experiment.target_user_ids and user_id not in experiment.target_user_ids:
            return False
        if experiment.target_organization_ids and organization_id not in experiment.target_organization_ids:
            return False
        if experiment.target_categories and category not in experiment.target_categories:
            return False
        return True

    def assign_variant(
        self,
        user_id: str,
        experiment_id: str,
        organization_id: Optional[str] = None,
        category: Optional[str] = None,
    ) -> ABVariant | None:
        """Assign a user to a variant of a running experiment.

        Returns:
            The variant, or None when the experiment is unknown, not running,
            or the user fails targeting
        """
        experiment = self._experiments.get(experiment_id)
        if experiment is None or experiment.status != ExperimentStatus.RUNNING:
            return None
        if not self._is_targeted(experiment, user_id, organization_id, category):
            return None

        assignments = self._assignments.setdefault(experiment_id, {})
        cached = assignments.get(user_id)
        if cached is not None:
            variant = experiment.get_variant(cached.variant_id)
            if variant is not None:
                return variant

        bucket = bucket_for(user_id, experiment_id)
        assigned = experiment.control
        cumulative = 0.0
        for variant in experiment.variants:
            cumulative += variant.traffic_percent
            if bucket < cumulative:
                assigned = variant
                break

        assignments[user_id] = VariantAssignment(
            experiment_id=experiment_id,
            variant_id=assigned.id,
            assigned_at=self._clock(),
        )
        AB_ASSIGNMENTS_TOTAL.labels(experiment_id=experiment_id, variant_id=assigned.id).inc()
        self._log.debug(
            "Variant assigned",
            experiment_id=experiment_id,
            user_id=user_id,
            bucket=bucket,
            variant_id=assigned.id,
        )
        return assigned

    def get_assignment(self, user_id: str, experiment_id: str) -> VariantAssignment | None:
        return self._assignments.get(experiment_id, {}).get(user_id)

    def is_in_variant(self, user_id: str, experiment_id: str, variant_id: str, **targeting: Any) -> bool:
        variant = self.assign_variant(user_id, experiment_id, **targeting)
        return variant is not None and variant.id == variant_id

    def should_use_new_routing(
        self,
        user_id: str,
        experiment_id: str,
        treatment_id: Optional[str] = None,
        **targeting: Any,
    ) -> bool:
        """True if the user is in the given treatment, or any treatment if none is given."""
        variant = self.assign_variant(user_id, experiment_id, **targeting)
        if variant is None:
            return False
        if treatment_id is not None:
            return variant.id == treatment_id
        return variant.id != self._experiments[experiment_id].control.id

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    def record_result(
        self,
        experiment_id: str,
        variant_id: str,
        user_id: str,
        session_id: str,
        success: bool,
        latency_ms: float,
        cost_cents: Optional[float] = None,
        category: Optional[str] = None,
        skills: Optional[list[str]] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> ABResult | None:
        """Append an exposure to the experiment's log.

        Returns:
            The stored ABResult, or None if the experiment or variant is unknown
        """
        experiment = self._experiments.get(experiment_id)
        if experiment is None:
            self._log.warning("Result for unknown experiment dropped", experiment_id=experiment_id)
            return None
        if experiment.get_variant(variant_id) is None:
            self._log.warning(
                "Result for unknown variant dropped",
                experiment_id=experiment_id,
                variant_id=variant_id,
            )
            return None

        result = ABResult(
            experiment_id=experiment_id,
            variant_id=variant_id,
            user_id=user_id,
            session_id=session_id,
            timestamp=self._clock(),
            success=success,
            latency_ms=latency_ms,
            cost_cents=cost_cents,
            category=category,
            skills=tuple(skills or ()),
            metadata=dict(metadata or {}),
        )
        self._results[experiment_id].append(result)
        self._aggregates[experiment_id].setdefault(variant_id, _VariantAggregate()).add(result)
        AB_RESULTS_TOTAL.labels(
            experiment_id=experiment_id, variant_id=variant_id, success=str(success).lower()
        ).inc()
        return result

    def get_results(self, experiment_id: str, limit: Optional[int] = None) -> list[ABResult]:
        """Logged results, most recent `limit` when given."""
        results = self._results.get(experiment_id, [])
        if limit:
            return results[-limit:]
        return list(results)

    def clear_results(self, experiment_id: str) -> None:
        experiment = self._experiments.get(experiment_id)
        if experiment is None:
            return
        self._results[experiment_id] = []
        self._aggregates[experiment_id] = {v.id: _VariantAggregate() for v in experiment.variants}

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    def _variant_stats(self, experiment_id: str, variant: ABVariant) -> VariantStats:
        aggregate = self._aggregates[experiment_id].get(variant.id)
        n = aggregate.latency.count if aggregate else 0
        if n == 0:
            return VariantStats(variant_id=variant.id, variant_name=variant.name)

        latencies = sorted(
            r.latency_ms for r in self._results[experiment_id] if r.variant_id == variant.id
        )
        return VariantStats(
            variant_id=variant.id,
            variant_name=variant.name,
            sample_size=n,
            success_count=aggregate.successes,
            success_rate=aggregate.successes / n,
            success_rate_ci=wilson_interval(aggregate.successes, n),
            avg_latency_ms=aggregate.latency.mean,
            latency_stddev_ms=aggregate.latency.stdev,
            median_latency_ms=percentile(latencies, 0.5),
            p95_latency_ms=percentile(latencies, 0.95),
            p99_latency_ms=percentile(latencies, 0.99),
            avg_cost_cents=aggregate.cost.mean,
            total_cost_cents=aggregate.cost.total,
            category_distribution=dict(aggregate.categories),
        )

    @staticmethod
    def _improvement(metric: PrimaryMetric, control: VariantStats, treatment: VariantStats) -> float:
        if metric == PrimaryMetric.LATENCY_MS:
            return control.avg_latency_ms - treatment.avg_latency_ms
        if metric == PrimaryMetric.COST_CENTS:
            return control.avg_cost_cents - treatment.avg_cost_cents
        return treatment.success_rate - control.success_rate

    def _significance(
        self,
        metric: PrimaryMetric,
        control: VariantStats,
        treatments: list[VariantStats],
    ) -> tuple[float, Optional[str]]:
        if control.sample_size < self.min_samples:
            return 1.0, None

        best: Optional[VariantStats] = None
        best_diff = 0.0
        for treatment in treatments:
            if treatment.sample_size < self.min_samples:
                continue
            diff = self._improvement(metric, control, treatment)
            if diff > best_diff:
                best_diff = diff
                best = treatment

        if best is None:
            return 1.0, None

        p_value = two_proportion_z_test(
            control.success_rate, control.sample_size, best.success_rate, best.sample_size
        )
        winner = best.variant_id if best.success_rate > control.success_rate else control.variant_id
        return p_value, winner

    def get_experiment_stats(self, experiment_id: str) -> ExperimentStats | None:
        """Compute per-variant statistics and the significance verdict."""
        experiment = self._experiments.get(experiment_id)
        if experiment is None:
            return None

        results = self._results.get(experiment_id, [])
        control_stats = self._variant_stats(experiment_id, experiment.control)
        treatment_stats = [self._variant_stats(experiment_id, t) for t in experiment.treatments]

        p_value, winner = self._significance(experiment.primary_metric, control_stats, treatment_stats)
        is_significant = p_value < self.significance_level

        return ExperimentStats(
            experiment_id=experiment_id,
            experiment_name=experiment.name,
            status=experiment.status,
            total_samples=len(results),
            control_stats=control_stats,
            treatment_stats=treatment_stats,
            p_value=p_value,
            is_significant=is_significant,
            winner=winner if is_significant else None,
            first_result=results[0].timestamp if results else None,
            last_result=results[-1].timestamp if results else None,
        )
