from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from nodeward.status import ServerStatus


class ServerKind(StrEnum):
    RPC = "rpc"
    EXPLORER = "explorer"


class NetworkType(StrEnum):
    MAINNET = "mainnet"
    TESTNET = "testnet"


@dataclass(frozen=True, slots=True)
class Project:
    id: int
    name: str
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ManagedServer:
    """One logical RPC node or explorer and the cloud instance behind it.

    ``cloud_instance_id`` and ``ip_address`` start empty and are written once
    by the provisioning task. ``status`` is only written through
    :class:`nodeward.records.RecordWriter`.
    """

    id: int
    owner_project_id: int
    kind: ServerKind
    status: ServerStatus = ServerStatus.PROVISIONING
    network_type: NetworkType | None = None
    cloud_instance_id: str | None = None
    ip_address: str | None = None
    domain: str | None = None
    chain_id: str | None = None
    description: str | None = None
    params: dict[str, str] = field(default_factory=dict)
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def instance_name(self) -> str:
        return instance_name(self.kind, self.id)

    @property
    def instance_tag(self) -> str:
        return instance_tag(self.kind, self.id)


def instance_name(kind: ServerKind, server_id: int) -> str:
    """Deterministic cloud instance name, also used as a lookup fallback."""
    return f"nodeward-{kind.value}-{server_id}"


def instance_tag(kind: ServerKind, server_id: int) -> str:
    return f"nodeward-{kind.value}-server-{server_id}"
