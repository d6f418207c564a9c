"""
Unit tests for GatewayManager.

Tests cover:
- Idempotent toolkit gateway provisioning (sequential and concurrent)
- Step gateway creation, recreation and deletion
- Per-step gateway configuration assembly
"""

import asyncio
import itertools
from unittest.mock import AsyncMock, Mock

import pytest

from alfred_sdk.errors import GatewayConfigError, GatewayError
from alfred_sdk.gateway.manager import GatewayManager
from alfred_sdk.schemas import StepGatewayRecord, ToolkitGatewayRecord
from alfred_sdk.stores import InMemoryConnectionStore, InMemoryGatewayStore, InMemoryWorkflowStore
from alfred_sdk.tools.composio import ComposioClient, MCPServer


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def platform():
    """Platform client double handing out srv_1, srv_2, ..."""
    counter = itertools.count(1)

    async def create_server(*args, **kwargs):
        await asyncio.sleep(0)
        n = next(counter)
        return MCPServer(id=f"srv_{n}", url=f"https://mcp.test/srv_{n}", tools=["GMAIL_SEND_EMAIL"])

    client = Mock(spec=ComposioClient)
    client.get_or_create_auth_config = AsyncMock(side_effect=lambda toolkit: f"ac_{toolkit}")
    client.create_toolkit_server = AsyncMock(side_effect=create_server)
    client.create_custom_server = AsyncMock(side_effect=create_server)
    client.delete_server = AsyncMock(return_value=None)
    return client


@pytest.fixture
def gateway_store():
    return InMemoryGatewayStore()


@pytest.fixture
def manager(platform, gateway_store, digest_workflow, gmail_connection):
    return GatewayManager(
        client=platform,
        gateways=gateway_store,
        workflows=InMemoryWorkflowStore([digest_workflow]),
        connections=InMemoryConnectionStore([gmail_connection]),
        api_key="key-1",
        user_id="user-1",
    )


# =============================================================================
# Toolkit gateways
# =============================================================================


class TestToolkitGateways:

    @pytest.mark.asyncio
    async def test_created_once_then_reused(self, manager, platform):
        first = await manager.get_or_create_toolkit_gateway("GMAIL")
        second = await manager.get_or_create_toolkit_gateway("gmail")

        assert first.toolkit == "gmail"
        assert first.auth_config_id == "ac_gmail"
        assert second.server_id == first.server_id
        platform.create_toolkit_server.assert_awaited_once_with("gmail-toolkit-mcp", ["ac_gmail"])

    @pytest.mark.asyncio
    async def test_concurrent_first_use_provisions_once(self, manager, platform):
        results = await asyncio.gather(*(manager.get_or_create_toolkit_gateway("gmail") for _ in range(5)))

        assert {r.server_id for r in results} == {"srv_1"}
        assert platform.create_toolkit_server.await_count == 1

    @pytest.mark.asyncio
    async def test_conflicting_insert_keeps_stored_record(self, gateway_store):
        winner = ToolkitGatewayRecord(toolkit="gmail", auth_config_id="ac", server_id="srv_a", url="u1")
        loser = ToolkitGatewayRecord(toolkit="gmail", auth_config_id="ac", server_id="srv_b", url="u2")

        await gateway_store.insert_toolkit_gateway(winner)
        stored = await gateway_store.insert_toolkit_gateway(loser)

        assert stored.server_id == "srv_a"

    @pytest.mark.asyncio
    async def test_requires_platform(self, gateway_store):
        manager = GatewayManager(None, gateway_store, InMemoryWorkflowStore(), InMemoryConnectionStore())
        assert not manager.enabled
        with pytest.raises(GatewayConfigError):
            await manager.get_or_create_toolkit_gateway("gmail")


# =============================================================================
# Step gateways
# =============================================================================


class TestStepGateways:

    @pytest.mark.asyncio
    async def test_create_step_gateway(self, manager, platform, gateway_store):
        tools = ["GMAIL_SEND_EMAIL", "Read", "SLACK_POST_MESSAGE"]

        record = await manager.create_step_gateway("digest-1", 2, tools)

        assert record.auth_config_ids == ["ac_gmail", "ac_slack"]
        assert record.allowed_tools == tools
        platform.create_custom_server.assert_awaited_once_with(
            name="skill-digest-1-step-2",
            tools=["GMAIL_SEND_EMAIL", "SLACK_POST_MESSAGE"],
            auth_config_ids=["ac_gmail", "ac_slack"],
        )
        assert (await gateway_store.get_step_gateway("digest-1", 2)).server_id == record.server_id

    @pytest.mark.asyncio
    async def test_no_platform_tools_rejected(self, manager, platform):
        with pytest.raises(GatewayConfigError):
            await manager.create_step_gateway("digest-1", 1, ["Read", "Write"])
        platform.create_custom_server.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_recreate_deletes_previous(self, manager, platform, gateway_store):
        first = await manager.create_step_gateway("digest-1", 1, ["GMAIL_SEND_EMAIL"])
        second = await manager.create_step_gateway("digest-1", 1, ["GMAIL_FETCH_EMAILS"])

        platform.delete_server.assert_awaited_once_with(first.server_id)
        assert second.server_id != first.server_id
        assert len(await gateway_store.list_step_gateways("digest-1")) == 1

    @pytest.mark.asyncio
    async def test_creation_failure_propagates(self, manager, platform):
        platform.create_custom_server.side_effect = GatewayError("platform down")
        with pytest.raises(GatewayError):
            await manager.create_step_gateway("digest-1", 1, ["GMAIL_SEND_EMAIL"])

    @pytest.mark.asyncio
    async def test_delete_tolerates_remote_failure(self, manager, platform, gateway_store):
        await manager.create_step_gateway("digest-1", 1, ["GMAIL_SEND_EMAIL"])
        platform.delete_server.side_effect = GatewayError("gone")

        assert await manager.delete_step_gateway("digest-1", 1) is True
        assert await gateway_store.get_step_gateway("digest-1", 1) is None

    @pytest.mark.asyncio
    async def test_delete_missing(self, manager, platform):
        assert await manager.delete_step_gateway("digest-1", 9) is False
        platform.delete_server.assert_not_awaited()


# =============================================================================
# Configuration assembly
# =============================================================================


class TestGatewayConfig:

    @pytest.mark.asyncio
    async def test_toolkit_and_step_gateways(self, manager, gateway_store):
        await gateway_store.insert_toolkit_gateway(
            ToolkitGatewayRecord(toolkit="gmail", auth_config_id="ac", server_id="srv_t", url="https://mcp.test/t")
        )
        await gateway_store.save_step_gateway(
            StepGatewayRecord(workflow_id="digest-1", step_order=1, server_id="srv_s", url="https://mcp.test/s")
        )

        config = await manager.get_gateway_config_for_step("digest-1", 1)

        assert list(config) == ["composio-gmail", "composio-step-1"]
        toolkit = config["composio-gmail"].to_engine_config()
        assert toolkit["type"] == "http"
        assert toolkit["url"] == "https://mcp.test/t?connected_account_id=ca_123"
        assert toolkit["headers"] == {"x-api-key": "key-1"}
        assert config["composio-step-1"].to_engine_config()["url"] == "https://mcp.test/s?user_id=user-1"

    @pytest.mark.asyncio
    async def test_missing_records_are_skipped(self, manager):
        assert await manager.get_gateway_config_for_step("digest-1", 1) == {}

    @pytest.mark.asyncio
    async def test_unknown_workflow_still_checks_step(self, manager, gateway_store):
        await gateway_store.save_step_gateway(
            StepGatewayRecord(workflow_id="other", step_order=3, server_id="srv_s", url="https://mcp.test/s")
        )

        config = await manager.get_gateway_config_for_step("other", 3)

        assert list(config) == ["composio-step-3"]

    @pytest.mark.asyncio
    async def test_connection_store_outage_keeps_step_gateway(self, platform, gateway_store, digest_workflow, caplog):
        connections = Mock(spec=InMemoryConnectionStore)
        connections.find_active = AsyncMock(side_effect=RuntimeError("connection store down"))
        manager = GatewayManager(
            client=platform,
            gateways=gateway_store,
            workflows=InMemoryWorkflowStore([digest_workflow]),
            connections=connections,
            api_key="key-1",
            user_id="user-1",
        )
        await gateway_store.save_step_gateway(
            StepGatewayRecord(workflow_id="digest-1", step_order=1, server_id="srv_s", url="https://mcp.test/s")
        )

        with caplog.at_level("WARNING"):
            config = await manager.get_gateway_config_for_step("digest-1", 1)

        assert list(config) == ["composio-step-1"]
        assert "connection store down" in caplog.text

    @pytest.mark.asyncio
    async def test_toolkit_catalog_outage_keeps_step_gateway(self, manager, gateway_store):
        await gateway_store.save_step_gateway(
            StepGatewayRecord(workflow_id="digest-1", step_order=1, server_id="srv_s", url="https://mcp.test/s")
        )
        gateway_store.get_toolkit_gateway = AsyncMock(side_effect=RuntimeError("catalog down"))

        config = await manager.get_gateway_config_for_step("digest-1", 1)

        assert list(config) == ["composio-step-1"]
