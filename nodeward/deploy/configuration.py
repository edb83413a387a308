from __future__ import annotations

import asyncio

from nodeward.api.model import ManagedServer
from nodeward.status import ServerStatus

from .ansible import PlaybookDeployer, server_vars


class ConfigurationDeployer(PlaybookDeployer):
    """Runs the kind-specific node playbook once an instance has an address.

    Exit 0 re-affirms ``ready_to_domain_setup``; a non-zero exit, a
    deployment timeout or a tool that cannot be started marks the record
    ``failed``. Callers start at most one deployment per provisioning run.
    """

    component = "configuration"

    def request_deploy(self, ip_address: str, server: ManagedServer) -> asyncio.Task[ManagedServer | None]:
        return self._tasks.spawn(
            self.deploy(ip_address, server),
            name=f"configure-{server.kind.value}-{server.id}",
        )

    async def deploy(self, ip_address: str, server: ManagedServer) -> ManagedServer | None:
        log = self._server_log(server)
        try:
            result = await self._run_playbook(
                self._settings.playbook_for(server.kind),
                ip_address,
                server_vars(server),
                timeout=self._settings.deploy_timeout,
                log=log,
            )
        except Exception:
            log.exception("Configuration deployment crashed")
            return await self._writer.transition(server.id, ServerStatus.FAILED)

        if result.ok:
            log.info("Configuration applied in {t:.0f}s", t=result.elapsed)
            return await self._writer.transition(server.id, ServerStatus.READY_TO_DOMAIN_SETUP)

        if result.timed_out:
            log.error("Configuration deployment exceeded {t}s", t=self._settings.deploy_timeout)
        else:
            log.error("Configuration playbook exited with {rc}", rc=result.returncode)
        return await self._writer.transition(server.id, ServerStatus.FAILED)
