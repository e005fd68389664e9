"""Exception hierarchy for the routing decision layer.

Only configuration mistakes raise. Failures of external collaborators
(registry, completion service, shared cache) are caught by the owning
component and turned into empty or default results.
"""


class RoutingCoreError(Exception):
    """Base exception for routing-core errors."""
    pass


class ExperimentConfigError(RoutingCoreError, ValueError):
    """Raised when an experiment definition or status change is invalid."""
    pass


class ExperimentNotFoundError(RoutingCoreError, KeyError):
    """Raised when an operation targets an experiment that is not registered."""

    def __init__(self, experiment_id: str):
        super().__init__(experiment_id)
        self.experiment_id = experiment_id

    def __str__(self) -> str:
        return f"Experiment not found: {self.experiment_id}"


class SkillValidationError(RoutingCoreError, ValueError):
    """Raised when a registry payload does not describe a valid skill."""

    def __init__(self, message: str, errors: list | None = None):
        super().__init__(message)
        self.errors = errors or []
