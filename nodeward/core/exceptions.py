"""Custom exception hierarchy for Nodeward.

All nodeward-specific exceptions inherit from NodewardError. Validation
errors surface synchronously to the caller; external service errors are
caught inside background tasks and degraded to a status write.
"""

from __future__ import annotations


class NodewardError(Exception):
    """Base exception for all Nodeward errors."""


class ValidationError(NodewardError):
    """Raised for invalid caller input."""


class NotFoundError(ValidationError):
    """Raised when a referenced record does not exist."""

    def __init__(self, entity: str, entity_id: int) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class ConflictError(ValidationError):
    """Raised when a uniqueness rule would be broken."""


class PreconditionError(ValidationError):
    """Raised when an operation is requested before the record is ready for it."""


class ConfigurationError(NodewardError):
    """Raised for invalid configuration or missing required settings."""


class ExternalServiceError(NodewardError):
    """Raised when the cloud API or an external tool fails."""


class CloudError(ExternalServiceError):
    """Raised when a cloud provider call fails."""

    def __init__(self, message: str, status: int = 0) -> None:
        self.status = status
        super().__init__(message)


class ProcessError(ExternalServiceError):
    """Raised when an external process cannot be started."""


class TimeoutExhausted(ExternalServiceError):  # noqa: N818
    """Raised when a poll loop or watchdog runs out of time."""


class ConsistencyViolation(NodewardError):  # noqa: N818
    """Raised when a status write would follow an edge outside the lifecycle graph."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Illegal status transition {current} -> {target}")
