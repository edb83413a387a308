"""Guarded writes to managed server records.

Background tasks and request handlers never call ``store.update`` with a
status directly; they go through :class:`RecordWriter`, which consults the
status graph and the set-once rule for ``cloud_instance_id``/``ip_address``.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from nodeward.api.model import ManagedServer
from nodeward.core.exceptions import ConsistencyViolation, NotFoundError
from nodeward.status import ServerStatus, check_transition, is_failure
from nodeward.store import Store

SET_ONCE_FIELDS = frozenset({"cloud_instance_id", "ip_address"})


class RecordWriter:
    def __init__(self, servers: Store[ManagedServer]) -> None:
        self._servers = servers
        self._log = logger.bind(component="records")

    async def transition(
        self,
        server_id: int,
        target: ServerStatus,
        *,
        strict: bool = False,
        **fields: Any,
    ) -> ManagedServer | None:
        """Move ``server_id`` to ``target`` and write ``fields`` in the same update.

        Returns the updated record, or None when the write was skipped: the
        record is gone, the edge is illegal, or a set-once field already
        holds a different value. With ``strict`` an illegal edge raises
        :class:`ConsistencyViolation` instead of being logged.
        """
        log = self._log.bind(server_id=server_id)
        current = await self._servers.find(server_id)
        if current is None:
            log.warning("Record gone before status {target} could be written", target=target.value)
            return None

        try:
            check_transition(current.status, target)
        except ConsistencyViolation as e:
            if strict:
                raise
            log.warning("Skipping status write: {err}", err=e)
            return None

        if not self._set_once_ok(current, fields, log):
            return None

        try:
            updated = await self._servers.update(server_id, status=target, **fields)
        except NotFoundError:
            log.warning("Record deleted while writing status {target}", target=target.value)
            return None

        if target != current.status:
            level = "WARNING" if is_failure(target) else "INFO"
            log.log(level, "Status {current} -> {target}", current=current.status.value, target=target.value)
        return updated

    async def record_instance(self, server_id: int, instance_id: str) -> ManagedServer | None:
        """Persist the cloud instance id; status stays where it is."""
        current = await self._servers.find(server_id)
        if current is None:
            self._log.bind(server_id=server_id).warning(
                "Record gone before instance {instance_id} could be recorded",
                instance_id=instance_id,
            )
            return None
        return await self.transition(server_id, current.status, cloud_instance_id=instance_id)

    def _set_once_ok(self, current: ManagedServer, fields: dict[str, Any], log: Any) -> bool:
        for name in SET_ONCE_FIELDS & fields.keys():
            existing = getattr(current, name)
            if existing is not None and existing != fields[name]:
                log.warning(
                    "Refusing to overwrite {field}={existing} with {value}",
                    field=name, existing=existing, value=fields[name],
                )
                return False
        return True
