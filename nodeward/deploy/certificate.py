from __future__ import annotations

import re

from nodeward.api.model import ManagedServer
from nodeward.config import DeploySettings
from nodeward.core.exceptions import ConflictError, NotFoundError, PreconditionError, ValidationError
from nodeward.infra.process import ProcessRunner, run_streaming
from nodeward.infra.tasks import TaskSupervisor
from nodeward.records import RecordWriter
from nodeward.status import ServerStatus
from nodeward.store import Store

from .ansible import PlaybookDeployer, server_vars

_HOSTNAME_RE = re.compile(
    r"^(?=.{1,253}$)(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?)"
    r"(?:\.[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?)+$"
)


def normalize_domain(domain: str) -> str:
    value = domain.strip().lower().rstrip(".")
    if not _HOSTNAME_RE.match(value):
        raise ValidationError(f"Invalid domain name: {domain!r}")
    return value


class CertificateProvisioner(PlaybookDeployer):
    """Points a domain at a server and issues its TLS certificate.

    The certificate playbook runs under a watchdog of
    ``certificate_timeout`` seconds. The run's outcome is computed once,
    after the process has exited or been killed, and written once:
    ``running`` on exit 0, ``ssl_failed`` otherwise.
    """

    component = "certificate"

    def __init__(
        self,
        servers: Store[ManagedServer],
        settings: DeploySettings,
        writer: RecordWriter,
        tasks: TaskSupervisor,
        runner: ProcessRunner = run_streaming,
    ) -> None:
        super().__init__(settings, writer, tasks, runner)
        self._servers = servers

    async def request_certificate(self, server_id: int, domain: str) -> ManagedServer:
        """Validate, persist ``domain`` with ``ssl_setup_started``, and start issuance.

        Raises before any write when the server is unknown, has no address
        yet, or is not in a state that accepts a domain.
        """
        domain = normalize_domain(domain)
        server = await self._servers.find(server_id)
        if server is None or not server.is_active:
            raise NotFoundError("ManagedServer", server_id)
        if not server.ip_address:
            raise PreconditionError(
                f"Server {server_id} has no IP address yet (status={server.status.value})"
            )
        if server.status is ServerStatus.SSL_SETUP_STARTED:
            raise ConflictError(f"Certificate setup already in progress for server {server_id}")

        updated = await self._writer.transition(
            server_id, ServerStatus.SSL_SETUP_STARTED, strict=True, domain=domain,
        )
        if updated is None:
            raise NotFoundError("ManagedServer", server_id)

        self._server_log(updated).info("Certificate requested for {domain}", domain=domain)
        self._tasks.spawn(self.issue(updated), name=f"certificate-{updated.kind.value}-{server_id}")
        return updated

    async def issue(self, server: ManagedServer) -> ManagedServer | None:
        log = self._server_log(server)
        if not server.ip_address or not server.domain:
            log.error("Certificate run needs both an IP address and a domain")
            return await self._writer.transition(server.id, ServerStatus.SSL_FAILED)
        extra_vars = {
            **server_vars(server),
            "domain": server.domain,
            "email": self._settings.certificate_email,
        }
        try:
            result = await self._run_playbook(
                self._settings.certificate_playbook_path,
                server.ip_address,
                extra_vars,
                timeout=self._settings.certificate_timeout,
                log=log,
            )
        except Exception:
            log.exception("Certificate issuance crashed")
            return await self._writer.transition(server.id, ServerStatus.SSL_FAILED)

        if result.ok:
            log.info("Certificate issued for {domain}", domain=server.domain)
            return await self._writer.transition(server.id, ServerStatus.RUNNING)

        if result.timed_out:
            log.error(
                "Certificate watchdog fired after {t}s, playbook killed",
                t=self._settings.certificate_timeout,
            )
        else:
            log.error("Certificate playbook exited with {rc}", rc=result.returncode)
        return await self._writer.transition(server.id, ServerStatus.SSL_FAILED)
