from __future__ import annotations

import itertools
from collections import defaultdict, deque
from collections.abc import Mapping, Sequence
from typing import Any

import pytest

from nodeward.api.model import ManagedServer, Project
from nodeward.app import App
from nodeward.cleanup import CleanupCoordinator
from nodeward.config import CleanupSettings, DeploySettings, ProvisioningSettings, Settings
from nodeward.core.exceptions import CloudError
from nodeward.deploy.certificate import CertificateProvisioner
from nodeward.deploy.configuration import ConfigurationDeployer
from nodeward.infra.process import ProcessResult
from nodeward.infra.tasks import TaskSupervisor
from nodeward.observability.logging import LogConfig
from nodeward.orchestrator import ProvisioningOrchestrator
from nodeward.providers.digitalocean.config import DigitalOcean
from nodeward.providers.provider import CloudInstance, InstanceSpec
from nodeward.records import RecordWriter
from nodeward.store import InMemoryStore

type Poll = CloudInstance | Exception | None


class FakeCloud:
    """In-memory CloudInstanceClient with scripted poll results.

    ``polls[instance_id]`` is consumed one entry per ``get_instance`` call;
    the last entry repeats once the script runs out.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1001)
        self.created: list[InstanceSpec] = []
        self.deleted: list[str] = []
        self.existing: dict[str, CloudInstance] = {}
        self.polls: dict[str, deque[Poll]] = defaultdict(deque)
        self.poll_count: dict[str, int] = defaultdict(int)
        self.create_error: Exception | None = None
        self.delete_errors: dict[str, Exception] = {}
        self.list_errors: dict[str, Exception] = {}
        self.list_calls: list[tuple[str | None, str | None]] = []

    def script(self, instance_id: str, *results: Poll) -> None:
        self.polls[instance_id].extend(results)

    def add(self, instance_id: str, name: str, *, tags: tuple[str, ...] = (), ip: str | None = None) -> CloudInstance:
        instance = CloudInstance(
            id=instance_id, name=name, status="active",
            public_ipv4=(ip,) if ip else (), tags=tags,
        )
        self.existing[instance_id] = instance
        return instance

    async def create_instance(self, spec: InstanceSpec) -> CloudInstance:
        if self.create_error is not None:
            raise self.create_error
        self.created.append(spec)
        instance = CloudInstance(id=str(next(self._ids)), name=spec.name, status="new", tags=spec.tags)
        self.existing[instance.id] = instance
        return instance

    async def get_instance(self, instance_id: str) -> CloudInstance | None:
        self.poll_count[instance_id] += 1
        script = self.polls[instance_id]
        result = script.popleft() if len(script) > 1 else (script[0] if script else self.existing.get(instance_id))
        if isinstance(result, Exception):
            raise result
        return result

    async def delete_instance(self, instance_id: str) -> bool:
        if instance_id in self.delete_errors:
            raise self.delete_errors[instance_id]
        self.deleted.append(instance_id)
        return self.existing.pop(instance_id, None) is not None

    async def list_instances(self, *, tag: str | None = None, name: str | None = None) -> list[CloudInstance]:
        self.list_calls.append((tag, name))
        key = f"tag:{tag}" if tag else f"name:{name}"
        if key in self.list_errors:
            raise self.list_errors[key]
        return [
            i for i in self.existing.values()
            if (tag is None or tag in i.tags) and (name is None or i.name == name)
        ]


def active(instance_id: str, ip: str = "203.0.113.5") -> CloudInstance:
    return CloudInstance(id=instance_id, name="", status="active", public_ipv4=(ip,))


def pending(instance_id: str) -> CloudInstance:
    return CloudInstance(id=instance_id, name="", status="new")


def cloud_error(status: int = 500) -> CloudError:
    return CloudError(f"DigitalOcean API error {status}", status=status)


class FakeRunner:
    """ProcessRunner that records argv and returns queued results (exit 0 by default)."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.results: deque[ProcessResult | Exception] = deque()

    def push(self, *, returncode: int | None = 0, timed_out: bool = False) -> None:
        self.results.append(ProcessResult(argv=(), returncode=returncode, timed_out=timed_out))

    def fail_to_start(self, error: Exception) -> None:
        self.results.append(error)

    async def __call__(
        self,
        argv: Sequence[str],
        *,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
        log: Any = None,
    ) -> ProcessResult:
        self.calls.append({"argv": list(argv), "timeout": timeout})
        result = self.results.popleft() if self.results else ProcessResult(argv=tuple(argv), returncode=0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def settings() -> Settings:
    return Settings(
        cloud=DigitalOcean(token="test-token", region="nyc3", ssh_key_fingerprint="aa:bb"),
        provisioning=ProvisioningSettings(poll_interval=0.0, poll_attempts=5),
        deploy=DeploySettings(playbook_dir="/srv/playbooks", certificate_email="ops@example.com"),
        cleanup=CleanupSettings(project_delete_attempts=3, retry_delay=0.0),
        logging=LogConfig(console=False, file=None),
        drain_timeout=5.0,
    )


@pytest.fixture
def cloud() -> FakeCloud:
    return FakeCloud()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def servers() -> InMemoryStore[ManagedServer]:
    return InMemoryStore(ManagedServer)


@pytest.fixture
def projects() -> InMemoryStore[Project]:
    return InMemoryStore(Project)


@pytest.fixture
def tasks() -> TaskSupervisor:
    return TaskSupervisor()


@pytest.fixture
def writer(servers: InMemoryStore[ManagedServer]) -> RecordWriter:
    return RecordWriter(servers)


@pytest.fixture
def deployer(settings: Settings, writer: RecordWriter, tasks: TaskSupervisor, runner: FakeRunner) -> ConfigurationDeployer:
    return ConfigurationDeployer(settings.deploy, writer, tasks, runner)


@pytest.fixture
def certificates(
    servers: InMemoryStore[ManagedServer],
    settings: Settings,
    writer: RecordWriter,
    tasks: TaskSupervisor,
    runner: FakeRunner,
) -> CertificateProvisioner:
    return CertificateProvisioner(servers, settings.deploy, writer, tasks, runner)


@pytest.fixture
def orchestrator(
    cloud: FakeCloud,
    deployer: ConfigurationDeployer,
    writer: RecordWriter,
    tasks: TaskSupervisor,
    settings: Settings,
) -> ProvisioningOrchestrator:
    return ProvisioningOrchestrator(
        cloud,
        deployer,
        writer,
        tasks,
        profiles=settings.servers,
        cloud_config=settings.cloud,
        settings=settings.provisioning,
    )


@pytest.fixture
def cleanup(
    cloud: FakeCloud,
    servers: InMemoryStore[ManagedServer],
    projects: InMemoryStore[Project],
    tasks: TaskSupervisor,
    settings: Settings,
) -> CleanupCoordinator:
    return CleanupCoordinator(cloud, servers, projects, tasks, settings.cleanup)


@pytest.fixture
async def app(settings: Settings, cloud: FakeCloud, runner: FakeRunner):
    async with App(settings, cloud=cloud, runner=runner, configure_logging=False) as a:
        yield a
