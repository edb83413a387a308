"""DigitalOcean API response shapes."""

from __future__ import annotations

from typing import Literal, NotRequired, TypedDict

from nodeward.providers.provider import CloudInstance

type DropletStatus = Literal["new", "active", "off", "archive"]


class NetworkV4(TypedDict):
    ip_address: str
    type: Literal["public", "private"]
    netmask: NotRequired[str]
    gateway: NotRequired[str]


class Networks(TypedDict):
    v4: list[NetworkV4]
    v6: NotRequired[list[dict[str, object]]]


class DropletResponse(TypedDict):
    id: int
    name: str
    status: DropletStatus
    networks: Networks
    tags: NotRequired[list[str]]
    region: NotRequired[dict[str, object]]
    size_slug: NotRequired[str]
    created_at: NotRequired[str]


def get_public_ips(droplet: DropletResponse) -> tuple[str, ...]:
    networks = droplet.get("networks") or {"v4": []}
    return tuple(
        net["ip_address"]
        for net in networks.get("v4", [])
        if net.get("type") == "public" and net.get("ip_address")
    )


def to_instance(droplet: DropletResponse) -> CloudInstance:
    return CloudInstance(
        id=str(droplet["id"]),
        name=droplet.get("name", ""),
        status=droplet.get("status", "new"),
        public_ipv4=get_public_ips(droplet),
        tags=tuple(droplet.get("tags") or ()),
    )
