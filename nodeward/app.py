"""Composition root.

Example:
    from nodeward import App, ServerKind, load_settings

    async with App(load_settings()) as app:
        project = await app.projects.create_project("acme")
        server = await app.servers.create_server(project.id, ServerKind.RPC)
        ...
        await app.servers.request_certificate(server.id, "rpc.example.com")
"""

from __future__ import annotations

from types import TracebackType

from loguru import logger

from nodeward.api.model import ManagedServer, Project
from nodeward.cleanup import CleanupCoordinator
from nodeward.config import Settings
from nodeward.deploy.certificate import CertificateProvisioner
from nodeward.deploy.configuration import ConfigurationDeployer
from nodeward.infra.process import ProcessRunner, run_streaming
from nodeward.infra.tasks import TaskSupervisor
from nodeward.observability.logging import setup_logging, teardown_logging
from nodeward.orchestrator import ProvisioningOrchestrator
from nodeward.providers.digitalocean.client import DigitalOceanClient
from nodeward.providers.provider import CloudInstanceClient
from nodeward.records import RecordWriter
from nodeward.services import ProjectService, ServerService
from nodeward.store import InMemoryStore, Store


class App:
    """Wires stores, the cloud client and background components together.

    Every collaborator can be injected; anything left out is built from
    ``settings``. Leaving the context drains background tasks for up to
    ``settings.drain_timeout`` seconds, cancels what is left, and closes
    the cloud client if the app created it.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        cloud: CloudInstanceClient | None = None,
        projects: Store[Project] | None = None,
        servers: Store[ManagedServer] | None = None,
        runner: ProcessRunner = run_streaming,
        configure_logging: bool = True,
    ) -> None:
        self.settings = settings or Settings()
        self._owns_cloud = cloud is None
        self._configure_logging = configure_logging
        self._log_handler_ids: list[int] = []

        self.cloud = cloud or DigitalOceanClient(self.settings.cloud)
        self.project_store = projects or InMemoryStore(Project)
        self.server_store = servers or InMemoryStore(ManagedServer)
        self.tasks = TaskSupervisor()
        self.writer = RecordWriter(self.server_store)

        self.deployer = ConfigurationDeployer(self.settings.deploy, self.writer, self.tasks, runner)
        self.certificates = CertificateProvisioner(
            self.server_store, self.settings.deploy, self.writer, self.tasks, runner,
        )
        self.orchestrator = ProvisioningOrchestrator(
            self.cloud,
            self.deployer,
            self.writer,
            self.tasks,
            profiles=self.settings.servers,
            cloud_config=self.settings.cloud,
            settings=self.settings.provisioning,
        )
        self.cleanup = CleanupCoordinator(
            self.cloud, self.server_store, self.project_store, self.tasks, self.settings.cleanup,
        )

        self.projects = ProjectService(self.project_store, self.server_store, self.cleanup)
        self.servers = ServerService(
            self.server_store,
            self.project_store,
            self.orchestrator,
            self.certificates,
            self.cleanup,
        )

    async def __aenter__(self) -> App:
        if self._configure_logging:
            self._log_handler_ids = setup_logging(self.settings.logging)
        logger.info("Nodeward started (region={region})", region=self.settings.cloud.region)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        logger.info("Stopping nodeward...")
        try:
            await self.tasks.drain(self.settings.drain_timeout)
        finally:
            if self._owns_cloud and isinstance(self.cloud, DigitalOceanClient):
                await self.cloud.close()
            logger.info("Nodeward stopped")
            if self._log_handler_ids:
                teardown_logging(self._log_handler_ids)
                self._log_handler_ids = []
