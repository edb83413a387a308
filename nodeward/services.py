"""Request-facing operations for projects and managed servers.

Everything here validates synchronously and raises a
:class:`~nodeward.core.exceptions.ValidationError` subclass on bad input.
Long-running work (provisioning, certificates, teardown) is handed to the
background components and the call returns straight away.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from loguru import logger

from nodeward.api.model import ManagedServer, NetworkType, Project, ServerKind
from nodeward.cleanup import CleanupCoordinator
from nodeward.core.exceptions import ConflictError, NotFoundError, ValidationError
from nodeward.deploy.certificate import CertificateProvisioner
from nodeward.orchestrator import ProvisioningOrchestrator
from nodeward.store import Store

MAX_NAME_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 1000

EXPLORER_PARAMS = frozenset({"currency", "logo_url", "rpc_url", "network_link", "footer_link"})

_UPDATABLE_SERVER_FIELDS = frozenset({"description", "chain_id", "params", "network_type"})


def _check_description(description: str | None) -> None:
    if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(f"Description must not exceed {MAX_DESCRIPTION_LENGTH} characters")


def _check_name(name: str) -> str:
    name = name.strip()
    if not 1 <= len(name) <= MAX_NAME_LENGTH:
        raise ValidationError(f"Name must be between 1 and {MAX_NAME_LENGTH} characters")
    return name


def _check_params(kind: ServerKind, params: Mapping[str, Any]) -> dict[str, str]:
    if kind is ServerKind.EXPLORER:
        unknown = params.keys() - EXPLORER_PARAMS
        if unknown:
            raise ValidationError(
                f"Unknown explorer parameter(s): {', '.join(sorted(unknown))}. "
                f"Valid: {', '.join(sorted(EXPLORER_PARAMS))}"
            )
    return {str(k): str(v) for k, v in params.items() if v is not None}


def _as_network_type(value: NetworkType | str) -> NetworkType:
    try:
        return NetworkType(value)
    except ValueError:
        valid = ", ".join(n.value for n in NetworkType)
        raise ValidationError(f"Invalid network type {value!r}. Valid: {valid}") from None


class ProjectService:
    def __init__(
        self,
        projects: Store[Project],
        servers: Store[ManagedServer],
        cleanup: CleanupCoordinator,
    ) -> None:
        self._projects = projects
        self._servers = servers
        self._cleanup = cleanup
        self._log = logger.bind(component="projects")

    async def _ensure_unique_name(self, name: str, *, exclude_id: int | None = None) -> None:
        for existing in await self._projects.find_many(name=name):
            if existing.id != exclude_id:
                raise ConflictError(f"Project with name {name!r} already exists")

    async def create_project(self, name: str, description: str | None = None) -> Project:
        name = _check_name(name)
        _check_description(description)
        await self._ensure_unique_name(name)
        project = await self._projects.create(name=name, description=description)
        self._log.bind(project_id=project.id).info("Project {name} created", name=name)
        return project

    async def get_project(self, project_id: int) -> Project:
        project = await self._projects.find(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    async def list_projects(self) -> list[Project]:
        projects = await self._projects.find_many()
        return sorted(projects, key=lambda p: p.id, reverse=True)

    async def list_project_servers(self, project_id: int) -> list[ManagedServer]:
        await self.get_project(project_id)
        servers = await self._servers.find_many(owner_project_id=project_id, is_active=True)
        return sorted(servers, key=lambda s: (s.kind.value, s.id))

    async def update_project(
        self,
        project_id: int,
        *,
        name: str | None = None,
        description: str | None = None,
    ) -> Project:
        await self.get_project(project_id)
        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = _check_name(name)
            await self._ensure_unique_name(changes["name"], exclude_id=project_id)
        if description is not None:
            _check_description(description)
            changes["description"] = description
        return await self._projects.update(project_id, **changes)

    async def delete_project(self, project_id: int) -> None:
        """Accept the deletion; owned servers and the record go in the background."""
        await self.get_project(project_id)
        self._log.bind(project_id=project_id).info("Project deletion accepted")
        self._cleanup.request_delete_project(project_id)


class ServerService:
    def __init__(
        self,
        servers: Store[ManagedServer],
        projects: Store[Project],
        orchestrator: ProvisioningOrchestrator,
        certificates: CertificateProvisioner,
        cleanup: CleanupCoordinator,
    ) -> None:
        self._servers = servers
        self._projects = projects
        self._orchestrator = orchestrator
        self._certificates = certificates
        self._cleanup = cleanup
        self._log = logger.bind(component="servers")

    async def _ensure_network_free(
        self,
        project_id: int,
        network_type: NetworkType,
        *,
        exclude_id: int | None = None,
    ) -> None:
        existing = await self._servers.find_many(
            owner_project_id=project_id,
            kind=ServerKind.EXPLORER,
            network_type=network_type,
            is_active=True,
        )
        if any(server.id != exclude_id for server in existing):
            raise ConflictError(
                f"Project {project_id} already has a {network_type.value} explorer. "
                f"Only one {network_type.value} explorer is allowed per project."
            )

    async def create_server(
        self,
        project_id: int,
        kind: ServerKind,
        *,
        network_type: NetworkType | str | None = None,
        chain_id: str | None = None,
        description: str | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> ManagedServer:
        """Persist a new record in ``provisioning`` and start provisioning it.

        Returns as soon as the record exists; the instance is created in the
        background.
        """
        if await self._projects.find(project_id) is None:
            raise NotFoundError("Project", project_id)
        _check_description(description)
        clean_params = _check_params(kind, params or {})
        if network_type is not None:
            network_type = _as_network_type(network_type)

        if kind is ServerKind.EXPLORER:
            if network_type is None:
                raise ValidationError("Explorers require a network type (mainnet or testnet)")
            await self._ensure_network_free(project_id, network_type)

        server = await self._servers.create(
            owner_project_id=project_id,
            kind=kind,
            network_type=network_type,
            chain_id=chain_id,
            description=description,
            params=clean_params,
        )
        self._log.bind(server_id=server.id, kind=kind.value, project_id=project_id).info(
            "Server record created, provisioning started",
        )
        self._orchestrator.request_provision(server)
        return server

    async def get_server(self, server_id: int) -> ManagedServer:
        server = await self._servers.find(server_id)
        if server is None or not server.is_active:
            raise NotFoundError("ManagedServer", server_id)
        return server

    async def list_servers(
        self,
        *,
        kind: ServerKind | None = None,
        project_id: int | None = None,
    ) -> list[ManagedServer]:
        filters: dict[str, Any] = {"is_active": True}
        if kind is not None:
            filters["kind"] = kind
        if project_id is not None:
            filters["owner_project_id"] = project_id
        servers = await self._servers.find_many(**filters)
        return sorted(servers, key=lambda s: s.id, reverse=True)

    async def update_server(self, server_id: int, **changes: Any) -> ManagedServer:
        """Update descriptive fields. Lifecycle fields are not writable here.

        A ``network_type`` of None is ignored; an explorer always keeps one.
        """
        server = await self.get_server(server_id)
        rejected = changes.keys() - _UPDATABLE_SERVER_FIELDS
        if rejected:
            raise ValidationError(f"Field(s) not updatable: {', '.join(sorted(rejected))}")

        if "description" in changes:
            _check_description(changes["description"])
        if "params" in changes:
            changes["params"] = _check_params(server.kind, changes["params"] or {})

        if "network_type" in changes and changes["network_type"] is None:
            del changes["network_type"]
        if "network_type" in changes:
            network_type = _as_network_type(changes["network_type"])
            changes["network_type"] = network_type
            if network_type != server.network_type:
                if server.kind is not ServerKind.EXPLORER:
                    raise ValidationError("Only explorers have a network type")
                await self._ensure_network_free(
                    server.owner_project_id, network_type, exclude_id=server_id,
                )
        return await self._servers.update(server_id, **changes)

    async def delete_server(self, server_id: int, *, hard: bool = False) -> None:
        """Accept the deletion; instance and record are removed in the background."""
        await self.get_server(server_id)
        self._log.bind(server_id=server_id).info("Server deletion accepted")
        self._cleanup.request_delete_server(server_id, hard=hard)

    async def request_certificate(self, server_id: int, domain: str) -> ManagedServer:
        return await self._certificates.request_certificate(server_id, domain)
