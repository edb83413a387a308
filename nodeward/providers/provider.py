from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class InstanceSpec:
    """Everything the provider needs to create one instance."""

    name: str
    region: str
    size: str
    image: str
    tags: tuple[str, ...] = ()
    ssh_keys: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CloudInstance:
    id: str
    name: str
    status: str
    public_ipv4: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def public_ip(self) -> str | None:
        return self.public_ipv4[0] if self.public_ipv4 else None

    @property
    def is_ready(self) -> bool:
        """Active and reachable on at least one public address."""
        return self.is_active and self.public_ip is not None


@runtime_checkable
class CloudInstanceClient(Protocol):
    """Interface over the compute-instance API.

    Implementations hold only configuration and an HTTP session; every
    lifecycle decision is made by the orchestration components.
    """

    async def create_instance(self, spec: InstanceSpec) -> CloudInstance:
        """Create an instance. The returned instance is usually not active yet.

        Raises
        ------
        CloudError
            If the provider rejects the request.
        """
        ...

    async def get_instance(self, instance_id: str) -> CloudInstance | None:
        """Current state of an instance, or None if it no longer exists."""
        ...

    async def delete_instance(self, instance_id: str) -> bool:
        """Destroy an instance.

        Returns
        -------
        bool
            False when the provider reports the instance as not found,
            which callers treat as already deleted.
        """
        ...

    async def list_instances(
        self, *, tag: str | None = None, name: str | None = None,
    ) -> list[CloudInstance]:
        """Instances carrying ``tag`` and/or named exactly ``name``."""
        ...
