"""A/B experimentation between routing strategies."""

from .ab_testing import (
    ABExperiment,
    ABResult,
    ABTestManager,
    ABVariant,
    ExperimentStats,
    ExperimentStatus,
    PrimaryMetric,
    VariantAssignment,
    VariantStats,
    bucket_for,
)
from .stats import RunningStats, percentile, two_proportion_z_test, wilson_interval

__all__ = [
    "ABExperiment",
    "ABResult",
    "ABTestManager",
    "ABVariant",
    "ExperimentStats",
    "ExperimentStatus",
    "PrimaryMetric",
    "VariantAssignment",
    "VariantStats",
    "bucket_for",
    "RunningStats",
    "percentile",
    "two_proportion_z_test",
    "wilson_interval",
]
