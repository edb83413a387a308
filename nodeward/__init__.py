"""Nodeward - provisioning lifecycle for managed RPC nodes and explorers.

Example:
    from nodeward import App, ServerKind, load_settings

    async with App(load_settings()) as app:
        project = await app.projects.create_project("acme")
        await app.servers.create_server(project.id, ServerKind.RPC)
"""

from nodeward.api.model import ManagedServer, NetworkType, Project, ServerKind
from nodeward.app import App
from nodeward.cleanup import CleanupCoordinator, CleanupResult
from nodeward.config import Settings, load_settings
from nodeward.core.exceptions import (
    CloudError,
    ConfigurationError,
    ConflictError,
    ConsistencyViolation,
    ExternalServiceError,
    NodewardError,
    NotFoundError,
    PreconditionError,
    ProcessError,
    TimeoutExhausted,
    ValidationError,
)
from nodeward.orchestrator import ProvisioningOrchestrator
from nodeward.status import ServerStatus

__version__ = "0.1.0"

__all__ = [
    "App",
    "CleanupCoordinator",
    "CleanupResult",
    "CloudError",
    "ConfigurationError",
    "ConflictError",
    "ConsistencyViolation",
    "ExternalServiceError",
    "ManagedServer",
    "NetworkType",
    "NodewardError",
    "NotFoundError",
    "PreconditionError",
    "ProcessError",
    "Project",
    "ProvisioningOrchestrator",
    "ServerKind",
    "ServerStatus",
    "Settings",
    "TimeoutExhausted",
    "ValidationError",
    "__version__",
    "load_settings",
]
