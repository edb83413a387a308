"""Persistence boundary for projects and managed servers.

The core only talks to :class:`Store`. ``InMemoryStore`` backs tests and
single-process deployments; a database-backed store only has to honour the
same five calls.
"""

from __future__ import annotations

import dataclasses
import itertools
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from loguru import logger

from nodeward.core.exceptions import NotFoundError

_MANAGED_FIELDS = frozenset({"id", "created_at", "updated_at"})


@runtime_checkable
class Store[T](Protocol):
    """Async CRUD over one entity type.

    ``update`` ignores field names the entity does not have and raises
    :class:`NotFoundError` for an unknown id. ``delete`` returns False when
    there was nothing to delete.
    """

    async def find(self, entity_id: int) -> T | None: ...

    async def find_many(self, **filters: Any) -> list[T]: ...

    async def create(self, **fields: Any) -> T: ...

    async def update(self, entity_id: int, **fields: Any) -> T: ...

    async def delete(self, entity_id: int) -> bool: ...


class InMemoryStore[T]:
    """Dict-backed store for frozen dataclass records with an ``id`` field."""

    def __init__(self, record_type: type[T], *, entity: str | None = None) -> None:
        self._type = record_type
        self._entity = entity or record_type.__name__
        self._fields = frozenset(f.name for f in dataclasses.fields(record_type))  # type: ignore[arg-type]
        self._records: dict[int, T] = {}
        self._ids = itertools.count(1)
        self._log = logger.bind(component="store", entity=self._entity)

    def _known(self, fields: dict[str, Any]) -> dict[str, Any]:
        unknown = fields.keys() - self._fields
        if unknown:
            self._log.debug("Ignoring unknown fields {fields}", fields=sorted(unknown))
        return {k: v for k, v in fields.items() if k in self._fields and k not in _MANAGED_FIELDS}

    async def find(self, entity_id: int) -> T | None:
        return self._records.get(entity_id)

    async def find_many(self, **filters: Any) -> list[T]:
        return [
            record for record in self._records.values()
            if all(getattr(record, k, None) == v for k, v in filters.items())
        ]

    async def create(self, **fields: Any) -> T:
        now = datetime.now(UTC)
        entity_id = next(self._ids)
        record = self._type(id=entity_id, created_at=now, updated_at=now, **self._known(fields))  # type: ignore[call-arg]
        self._records[entity_id] = record
        self._log.debug("Created {entity} {id}", entity=self._entity, id=entity_id)
        return record

    async def update(self, entity_id: int, **fields: Any) -> T:
        current = self._records.get(entity_id)
        if current is None:
            raise NotFoundError(self._entity, entity_id)
        changes = self._known(fields)
        if not changes:
            return current
        record = dataclasses.replace(current, updated_at=datetime.now(UTC), **changes)  # type: ignore[type-var]
        self._records[entity_id] = record
        return record

    async def delete(self, entity_id: int) -> bool:
        return self._records.pop(entity_id, None) is not None

    def __len__(self) -> int:
        return len(self._records)
