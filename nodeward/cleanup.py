"""Teardown of managed servers and whole projects.

Deleting a server removes its cloud instance first and its record second.
The record step always runs, so a server whose instance is already gone
(or was never created) still disappears. A project is deleted only after
every owned server's teardown has settled, one failure never blocks the
others.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from nodeward.api.model import ManagedServer, Project, instance_name, instance_tag
from nodeward.config import CleanupSettings
from nodeward.core.exceptions import NotFoundError
from nodeward.infra.retry import retry
from nodeward.infra.tasks import TaskSupervisor
from nodeward.providers.provider import CloudInstanceClient
from nodeward.store import Store

if TYPE_CHECKING:
    from loguru import Logger

type InstanceLookup = Callable[[ManagedServer], Awaitable[str | None]]


@dataclass(frozen=True, slots=True)
class CleanupResult:
    server_id: int
    instance_id: str | None = None
    instance_deleted: bool = False
    record_removed: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CleanupCoordinator:
    def __init__(
        self,
        cloud: CloudInstanceClient,
        servers: Store[ManagedServer],
        projects: Store[Project],
        tasks: TaskSupervisor,
        settings: CleanupSettings,
    ) -> None:
        self._cloud = cloud
        self._servers = servers
        self._projects = projects
        self._tasks = tasks
        self._settings = settings
        self._log = logger.bind(component="cleanup")
        self._lookups: tuple[tuple[str, InstanceLookup], ...] = (
            ("stored id", self._by_stored_id),
            ("tag", self._by_tag),
            ("name", self._by_name),
        )

    # =========================================================================
    # Servers
    # =========================================================================

    def request_delete_server(self, server_id: int, *, hard: bool = False) -> asyncio.Task[CleanupResult]:
        return self._tasks.spawn(
            self.delete_server(server_id, hard=hard),
            name=f"delete-server-{server_id}",
        )

    async def delete_server(self, server_id: int, *, hard: bool = False) -> CleanupResult:
        """Delete the server's instance, then remove (hard) or deactivate its record.

        Safe to repeat: a missing instance or a missing record counts as done.
        """
        log = self._log.bind(server_id=server_id)
        server = await self._servers.find(server_id)
        if server is None:
            log.info("Record already gone, nothing to clean up")
            return CleanupResult(server_id=server_id, record_removed=True)

        log = log.bind(kind=server.kind.value)
        instance_id: str | None = None
        instance_deleted = False
        error: str | None = None

        try:
            instance_id = await self._resolve_instance(server, log)
            if instance_id is None:
                log.info("No cloud instance found")
                instance_deleted = True
            else:
                existed = await self._cloud.delete_instance(instance_id)
                instance_deleted = True
                if existed:
                    log.info("Instance {id} deleted", id=instance_id)
                else:
                    log.info("Instance {id} already gone", id=instance_id)
        except Exception as e:
            log.opt(exception=e).error("Instance deletion failed: {err}", err=e)
            error = str(e) or type(e).__name__

        record_removed = await self._remove_record(server_id, hard=hard, log=log)
        return CleanupResult(
            server_id=server_id,
            instance_id=instance_id,
            instance_deleted=instance_deleted,
            record_removed=record_removed,
            error=error,
        )

    async def _resolve_instance(self, server: ManagedServer, log: Logger) -> str | None:
        for label, lookup in self._lookups:
            try:
                found = await lookup(server)
            except Exception as e:
                log.warning("Instance lookup by {how} failed: {err}", how=label, err=e)
                continue
            if found is not None:
                log.debug("Instance resolved by {how}: {id}", how=label, id=found)
                return found
        return None

    async def _by_stored_id(self, server: ManagedServer) -> str | None:
        return server.cloud_instance_id

    async def _by_tag(self, server: ManagedServer) -> str | None:
        matches = await self._cloud.list_instances(tag=instance_tag(server.kind, server.id))
        return matches[0].id if matches else None

    async def _by_name(self, server: ManagedServer) -> str | None:
        matches = await self._cloud.list_instances(name=instance_name(server.kind, server.id))
        return matches[0].id if matches else None

    async def _remove_record(self, server_id: int, *, hard: bool, log: Logger) -> bool:
        if hard:
            removed = await self._servers.delete(server_id)
            log.info("Record {outcome}", outcome="deleted" if removed else "already deleted")
            return True
        try:
            await self._servers.update(server_id, is_active=False)
        except NotFoundError:
            log.info("Record already deleted")
            return True
        log.info("Record deactivated")
        return True

    # =========================================================================
    # Projects
    # =========================================================================

    def request_delete_project(self, project_id: int) -> asyncio.Task[bool]:
        return self._tasks.spawn(
            self.delete_project(project_id),
            name=f"delete-project-{project_id}",
        )

    async def delete_project(self, project_id: int) -> bool:
        """Tear down every owned server, then delete the project record.

        Returns whether the project record was deleted.
        """
        log = self._log.bind(project_id=project_id)
        try:
            owned = await self._servers.find_many(owner_project_id=project_id)
        except Exception:
            log.exception("Could not enumerate servers, deleting the project anyway")
            owned = []

        if owned:
            log.info("Deleting {n} server(s)", n=len(owned))
            results = await asyncio.gather(
                *(self.delete_server(server.id, hard=True) for server in owned),
                return_exceptions=True,
            )
            for server, result in zip(owned, results, strict=True):
                if isinstance(result, BaseException):
                    log.opt(exception=result).error("Teardown of server {id} crashed", id=server.id)
                elif not result.ok:
                    log.warning("Server {id} left behind: {err}", id=server.id, err=result.error)

        delete = retry(
            max_attempts=self._settings.project_delete_attempts,
            base_delay=self._settings.retry_delay,
        )(self._projects.delete)
        try:
            deleted = await delete(project_id)
        except Exception:
            log.exception("Project record could not be deleted")
            return False
        log.info("Project {outcome}", outcome="deleted" if deleted else "already deleted")
        return deleted
