"""Ansible playbook execution shared by configuration and certificate deployers.

Playbooks run against a single host given as an inline inventory
(``-i "203.0.113.5,"``); parameters travel as one JSON ``--extra-vars``
document so values with spaces survive intact.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

from nodeward.api.model import ManagedServer
from nodeward.config import DeploySettings
from nodeward.infra.process import ProcessResult, ProcessRunner, run_streaming
from nodeward.infra.tasks import TaskSupervisor
from nodeward.records import RecordWriter

if TYPE_CHECKING:
    from loguru import Logger

_ANSIBLE_ENV = {
    "ANSIBLE_HOST_KEY_CHECKING": "False",
    "ANSIBLE_FORCE_COLOR": "0",
    "PYTHONUNBUFFERED": "1",
}


def playbook_command(
    settings: DeploySettings,
    playbook: Path,
    target: str,
    extra_vars: Mapping[str, Any],
) -> list[str]:
    argv = [
        settings.ansible_binary,
        "-i", f"{target},",
        "-u", settings.ssh_user,
        "--private-key", settings.key_path,
    ]
    variables = {k: v for k, v in extra_vars.items() if v is not None}
    if variables:
        argv += ["--extra-vars", json.dumps(variables, sort_keys=True)]
    argv.append(str(playbook))
    return argv


def server_vars(server: ManagedServer) -> dict[str, Any]:
    """Extra vars every playbook receives for ``server``."""
    return {
        **server.params,
        "server_id": server.id,
        "server_kind": server.kind.value,
        "network_type": server.network_type.value if server.network_type else None,
        "chain_id": server.chain_id,
    }


class PlaybookDeployer:
    """Base for components that run one playbook per request in the background."""

    component = "deploy"

    def __init__(
        self,
        settings: DeploySettings,
        writer: RecordWriter,
        tasks: TaskSupervisor,
        runner: ProcessRunner = run_streaming,
    ) -> None:
        self._settings = settings
        self._writer = writer
        self._tasks = tasks
        self._runner = runner
        self._log = logger.bind(component=self.component)

    def _server_log(self, server: ManagedServer) -> Logger:
        return self._log.bind(server_id=server.id, kind=server.kind.value)

    async def _run_playbook(
        self,
        playbook: Path,
        target: str,
        extra_vars: Mapping[str, Any],
        *,
        timeout: float | None,
        log: Logger,
    ) -> ProcessResult:
        argv = playbook_command(self._settings, playbook, target, extra_vars)
        log.info("Running {playbook} against {target}", playbook=playbook.name, target=target)
        return await self._runner(
            argv,
            timeout=timeout,
            env={**os.environ, **_ANSIBLE_ENV},
            log=log,
        )
