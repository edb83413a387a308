"""Provisioning lifecycle: create instance → wait for address → configure.

``request_provision`` is called once, right after a record is stored in
``provisioning``. Everything after that runs as one detached task whose
progress is visible only through the record:

    create_instance ──fail──► failed
         │
    record cloud_instance_id
         │
    poll get_instance (every poll_interval, poll_attempts times)
         │                       │
    active + public IPv4     exhausted ──► failed (instance kept)
         │
    ip_address, ready_to_domain_setup ──► ConfigurationDeployer (own task)
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from nodeward.api.model import ManagedServer
from nodeward.config import ProvisioningSettings, ServerProfile
from nodeward.core.exceptions import CloudError, TimeoutExhausted
from nodeward.deploy.configuration import ConfigurationDeployer
from nodeward.infra.tasks import TaskSupervisor
from nodeward.providers.digitalocean.config import DigitalOcean
from nodeward.providers.provider import CloudInstance, CloudInstanceClient, InstanceSpec
from nodeward.records import RecordWriter
from nodeward.status import ServerStatus

if TYPE_CHECKING:
    from loguru import Logger

    from nodeward.api.model import ServerKind


class _InstancePendingError(Exception):
    """Instance not yet active with a public address - retry."""


def build_instance_spec(
    server: ManagedServer,
    profile: ServerProfile,
    cloud: DigitalOcean,
) -> InstanceSpec:
    return InstanceSpec(
        name=server.instance_name,
        region=cloud.region,
        size=profile.size,
        image=profile.image,
        tags=(
            "nodeward",
            f"nodeward-{server.kind.value}",
            f"nodeward-project-{server.owner_project_id}",
            server.instance_tag,
        ),
        ssh_keys=(cloud.ssh_key_fingerprint,) if cloud.ssh_key_fingerprint else (),
    )


class ProvisioningOrchestrator:
    def __init__(
        self,
        cloud: CloudInstanceClient,
        deployer: ConfigurationDeployer,
        writer: RecordWriter,
        tasks: TaskSupervisor,
        *,
        profiles: dict[ServerKind, ServerProfile],
        cloud_config: DigitalOcean,
        settings: ProvisioningSettings,
    ) -> None:
        self._cloud = cloud
        self._deployer = deployer
        self._writer = writer
        self._tasks = tasks
        self._profiles = profiles
        self._cloud_config = cloud_config
        self._settings = settings
        self._log = logger.bind(component="orchestrator")

    def request_provision(self, server: ManagedServer) -> asyncio.Task[ManagedServer | None]:
        return self._tasks.spawn(
            self.provision(server),
            name=f"provision-{server.kind.value}-{server.id}",
        )

    async def provision(self, server: ManagedServer) -> ManagedServer | None:
        """Drive ``server`` from ``provisioning`` to ``ready_to_domain_setup`` or ``failed``.

        Never raises for cloud or store trouble: every failure ends in a
        ``failed`` status write and a log line.
        """
        log = self._log.bind(server_id=server.id, kind=server.kind.value)
        try:
            return await self._provision(server, log)
        except Exception:
            log.exception("Provisioning crashed")
            return await self._writer.transition(server.id, ServerStatus.FAILED)

    async def _provision(self, server: ManagedServer, log: Logger) -> ManagedServer | None:
        spec = build_instance_spec(server, self._profiles[server.kind], self._cloud_config)
        try:
            created = await self._cloud.create_instance(spec)
        except CloudError as e:
            log.error("Instance creation failed: {err}", err=e)
            return await self._writer.transition(server.id, ServerStatus.FAILED)

        log = log.bind(instance_id=created.id)
        log.info("Instance {name} created", name=spec.name)
        if await self._writer.record_instance(server.id, created.id) is None:
            log.warning("Record no longer accepts the instance id, abandoning provisioning")
            return None

        try:
            instance = await self._wait_until_ready(created.id, log)
        except TimeoutExhausted as e:
            log.error("{err}; instance left in place", err=e)
            return await self._writer.transition(server.id, ServerStatus.FAILED)

        ip_address = instance.public_ip
        if ip_address is None:
            log.error("Instance reported ready without a public IPv4 address")
            return await self._writer.transition(server.id, ServerStatus.FAILED)
        updated = await self._writer.transition(
            server.id, ServerStatus.READY_TO_DOMAIN_SETUP, ip_address=ip_address,
        )
        if updated is None:
            return None

        log.info("Instance active at {ip}, starting configuration", ip=ip_address)
        self._deployer.request_deploy(ip_address, updated)
        return updated

    async def _wait_until_ready(self, instance_id: str, log: Logger) -> CloudInstance:
        attempts = self._settings.poll_attempts

        def _before_sleep(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            reason = "not ready" if isinstance(exc, _InstancePendingError) else f"error: {exc}"
            log.debug(
                "Poll {n}/{total}: {reason}",
                n=state.attempt_number, total=attempts, reason=reason,
            )

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=wait_fixed(self._settings.poll_interval),
                retry=retry_if_exception_type((_InstancePendingError, CloudError)),
                before_sleep=_before_sleep,
            ):
                with attempt:
                    instance = await self._cloud.get_instance(instance_id)
                    if instance is None or not instance.is_ready:
                        raise _InstancePendingError()
                    return instance
        except RetryError as e:
            total = attempts * self._settings.poll_interval
            raise TimeoutExhausted(
                f"Instance {instance_id} not active with a public address "
                f"after {attempts} polls ({total:.0f}s)"
            ) from e

        raise AssertionError("unreachable")
