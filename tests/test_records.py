from __future__ import annotations

import pytest

from nodeward.api.model import ManagedServer, ServerKind
from nodeward.core.exceptions import ConsistencyViolation
from nodeward.records import RecordWriter
from nodeward.status import ServerStatus
from nodeward.store import InMemoryStore

pytestmark = [pytest.mark.unit]


@pytest.fixture
async def server(servers: InMemoryStore[ManagedServer]) -> ManagedServer:
    return await servers.create(owner_project_id=7, kind=ServerKind.RPC)


class TestTransition:
    @pytest.mark.asyncio
    async def test_legal_edge_writes_status_and_fields(self, writer: RecordWriter, server: ManagedServer):
        updated = await writer.transition(
            server.id, ServerStatus.READY_TO_DOMAIN_SETUP, ip_address="203.0.113.5",
        )
        assert updated is not None
        assert updated.status is ServerStatus.READY_TO_DOMAIN_SETUP
        assert updated.ip_address == "203.0.113.5"

    @pytest.mark.asyncio
    async def test_illegal_edge_is_skipped(
        self, writer: RecordWriter, server: ManagedServer, servers: InMemoryStore[ManagedServer],
    ):
        assert await writer.transition(server.id, ServerStatus.RUNNING) is None
        assert (await servers.find(server.id)).status is ServerStatus.PROVISIONING

    @pytest.mark.asyncio
    async def test_illegal_edge_raises_when_strict(self, writer: RecordWriter, server: ManagedServer):
        with pytest.raises(ConsistencyViolation):
            await writer.transition(server.id, ServerStatus.RUNNING, strict=True)

    @pytest.mark.asyncio
    async def test_missing_record_is_skipped(self, writer: RecordWriter):
        assert await writer.transition(404, ServerStatus.FAILED) is None

    @pytest.mark.asyncio
    async def test_late_write_after_failure_is_rejected(
        self, writer: RecordWriter, server: ManagedServer, servers: InMemoryStore[ManagedServer],
    ):
        await writer.transition(server.id, ServerStatus.READY_TO_DOMAIN_SETUP)
        await writer.transition(server.id, ServerStatus.SSL_SETUP_STARTED)
        await writer.transition(server.id, ServerStatus.SSL_FAILED)

        assert await writer.transition(server.id, ServerStatus.RUNNING) is None
        assert (await servers.find(server.id)).status is ServerStatus.SSL_FAILED


class TestSetOnce:
    @pytest.mark.asyncio
    async def test_instance_id_recorded_without_status_change(self, writer: RecordWriter, server: ManagedServer):
        updated = await writer.record_instance(server.id, "1001")
        assert updated is not None
        assert updated.cloud_instance_id == "1001"
        assert updated.status is ServerStatus.PROVISIONING

    @pytest.mark.asyncio
    async def test_instance_id_not_overwritten(
        self, writer: RecordWriter, server: ManagedServer, servers: InMemoryStore[ManagedServer],
    ):
        await writer.record_instance(server.id, "1001")
        assert await writer.record_instance(server.id, "2002") is None
        assert (await servers.find(server.id)).cloud_instance_id == "1001"

    @pytest.mark.asyncio
    async def test_same_value_is_accepted(self, writer: RecordWriter, server: ManagedServer):
        await writer.record_instance(server.id, "1001")
        assert await writer.record_instance(server.id, "1001") is not None

    @pytest.mark.asyncio
    async def test_ip_address_not_overwritten(self, writer: RecordWriter, server: ManagedServer):
        await writer.transition(server.id, ServerStatus.READY_TO_DOMAIN_SETUP, ip_address="203.0.113.5")
        result = await writer.transition(server.id, ServerStatus.FAILED, ip_address="198.51.100.1")
        assert result is None

    @pytest.mark.asyncio
    async def test_record_instance_on_missing_record(self, writer: RecordWriter):
        assert await writer.record_instance(404, "1001") is None
