"""TOML-based service configuration.

Loads ~/.nodeward/defaults.toml (global) and nodeward.toml (project),
merges them, and builds the frozen :class:`Settings` tree every component
is constructed from.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from nodeward.api.model import ServerKind
from nodeward.core.exceptions import ConfigurationError
from nodeward.observability.logging import LogConfig
from nodeward.providers.digitalocean.config import DigitalOcean

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".nodeward" / "defaults.toml"
PROJECT_CONFIG_NAME = "nodeward.toml"


@dataclass(frozen=True, slots=True)
class ServerProfile:
    size: str
    image: str = "ubuntu-24-04-x64"


DEFAULT_PROFILES: dict[ServerKind, ServerProfile] = {
    ServerKind.RPC: ServerProfile(size="s-4vcpu-8gb"),
    ServerKind.EXPLORER: ServerProfile(size="s-4vcpu-16gb"),
}


@dataclass(frozen=True, slots=True)
class ProvisioningSettings:
    poll_interval: float = 10.0
    poll_attempts: int = 30


@dataclass(frozen=True, slots=True)
class DeploySettings:
    """Where the Ansible playbooks live and how they are invoked.

    ``deploy_timeout`` bounds the configuration run; ``None`` (or 0 in TOML)
    waits for the playbook however long it takes. ``certificate_timeout``
    is the certificate watchdog.
    """

    ansible_binary: str = "ansible-playbook"
    playbook_dir: str = "playbooks"
    rpc_playbook: str = "rpc.yml"
    explorer_playbook: str = "explorer.yml"
    certificate_playbook: str = "certificate.yml"
    ssh_user: str = "root"
    private_key_path: str = "~/.ssh/id_ed25519"
    deploy_timeout: float | None = 1800.0
    certificate_timeout: float = 600.0
    certificate_email: str | None = None

    def playbook_for(self, kind: ServerKind) -> Path:
        name = self.rpc_playbook if kind is ServerKind.RPC else self.explorer_playbook
        return Path(self.playbook_dir) / name

    @property
    def certificate_playbook_path(self) -> Path:
        return Path(self.playbook_dir) / self.certificate_playbook

    @property
    def key_path(self) -> str:
        return str(Path(self.private_key_path).expanduser())


@dataclass(frozen=True, slots=True)
class CleanupSettings:
    project_delete_attempts: int = 3
    retry_delay: float = 1.0


@dataclass(frozen=True, slots=True)
class Settings:
    cloud: DigitalOcean = field(default_factory=DigitalOcean)
    servers: dict[ServerKind, ServerProfile] = field(default_factory=lambda: dict(DEFAULT_PROFILES))
    provisioning: ProvisioningSettings = field(default_factory=ProvisioningSettings)
    deploy: DeploySettings = field(default_factory=DeploySettings)
    cleanup: CleanupSettings = field(default_factory=CleanupSettings)
    logging: LogConfig = field(default_factory=LogConfig)
    drain_timeout: float = 30.0

    def profile(self, kind: ServerKind) -> ServerProfile:
        return self.servers[kind]


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    with path.open("rb") as f:
        return tomllib.load(f)


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)
    return _deep_merge(global_cfg, project_cfg)


def _build[T](cls: type[T], section: str, raw: RawConfig) -> T:
    known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    unknown = raw.keys() - known
    if unknown:
        raise ConfigurationError(
            f"Unknown key(s) in [{section}]: {', '.join(sorted(unknown))}. "
            f"Valid: {', '.join(sorted(known))}"
        )
    return cls(**raw)


def _build_profiles(raw: RawConfig) -> dict[ServerKind, ServerProfile]:
    profiles = dict(DEFAULT_PROFILES)
    for name, values in raw.items():
        try:
            kind = ServerKind(name)
        except ValueError:
            raise ConfigurationError(
                f"Unknown server kind '{name}'. Valid: {', '.join(k.value for k in ServerKind)}"
            ) from None
        merged = {"size": profiles[kind].size, "image": profiles[kind].image, **values}
        profiles[kind] = _build(ServerProfile, f"servers.{name}", merged)
    return profiles


def load_settings(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> Settings:
    raw = load_config(project_dir=project_dir, global_path=global_path)

    deploy_raw = dict(raw.get("deploy", {}))
    if deploy_raw.get("deploy_timeout") == 0:
        deploy_raw["deploy_timeout"] = None

    app_raw = raw.get("app", {})
    return Settings(
        cloud=_build(DigitalOcean, "cloud", raw.get("cloud", {})),
        servers=_build_profiles(raw.get("servers", {})),
        provisioning=_build(ProvisioningSettings, "provisioning", raw.get("provisioning", {})),
        deploy=_build(DeploySettings, "deploy", deploy_raw),
        cleanup=_build(CleanupSettings, "cleanup", raw.get("cleanup", {})),
        logging=_build(LogConfig, "logging", raw.get("logging", {})),
        drain_timeout=float(app_raw.get("drain_timeout", 30.0)),
    )
