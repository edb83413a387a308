from __future__ import annotations

import pytest

from nodeward.api.model import ManagedServer, Project, ServerKind
from nodeward.core.exceptions import NotFoundError
from nodeward.status import ServerStatus
from nodeward.store import InMemoryStore, Store

pytestmark = [pytest.mark.unit]


@pytest.mark.asyncio
async def test_create_assigns_ids_and_timestamps():
    store = InMemoryStore(Project)
    a = await store.create(name="a")
    b = await store.create(name="b")
    assert (a.id, b.id) == (1, 2)
    assert a.created_at is not None and a.created_at == a.updated_at
    assert len(store) == 2


@pytest.mark.asyncio
async def test_store_satisfies_protocol():
    assert isinstance(InMemoryStore(Project), Store)


@pytest.mark.asyncio
async def test_create_ignores_unknown_and_managed_fields():
    store = InMemoryStore(Project)
    project = await store.create(id=99, name="a", colour="blue")
    assert project.id == 1
    assert not hasattr(project, "colour")


@pytest.mark.asyncio
async def test_update_replaces_fields_and_bumps_updated_at():
    store = InMemoryStore(ManagedServer)
    server = await store.create(owner_project_id=1, kind=ServerKind.RPC)
    updated = await store.update(server.id, status=ServerStatus.FAILED, unknown="x")
    assert updated.status is ServerStatus.FAILED
    assert updated.updated_at is not None and server.updated_at is not None
    assert updated.updated_at >= server.updated_at
    assert await store.find(server.id) == updated


@pytest.mark.asyncio
async def test_update_with_only_unknown_fields_is_noop():
    store = InMemoryStore(Project)
    project = await store.create(name="a")
    assert await store.update(project.id, bogus=1) is project


@pytest.mark.asyncio
async def test_update_missing_raises_not_found():
    store = InMemoryStore(Project, entity="Project")
    with pytest.raises(NotFoundError) as exc_info:
        await store.update(42, name="x")
    assert exc_info.value.entity_id == 42


@pytest.mark.asyncio
async def test_delete_reports_whether_anything_was_removed():
    store = InMemoryStore(Project)
    project = await store.create(name="a")
    assert await store.delete(project.id) is True
    assert await store.delete(project.id) is False
    assert await store.find(project.id) is None


@pytest.mark.asyncio
async def test_find_many_filters_by_equality():
    store = InMemoryStore(ManagedServer)
    await store.create(owner_project_id=1, kind=ServerKind.RPC)
    await store.create(owner_project_id=1, kind=ServerKind.EXPLORER)
    await store.create(owner_project_id=2, kind=ServerKind.RPC)

    assert len(await store.find_many()) == 3
    assert len(await store.find_many(owner_project_id=1)) == 2
    rpc = await store.find_many(owner_project_id=1, kind=ServerKind.RPC)
    assert [s.id for s in rpc] == [1]
