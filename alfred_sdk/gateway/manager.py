"""
Gateway Manager

Owns the lifecycle of platform-provisioned tool gateways:

- Toolkit gateways: one per toolkit, shared by every workflow, created
  lazily and reused thereafter.
- Step gateways: one custom gateway per (workflow, step), recreated
  whenever the step's tool set changes.

It also assembles the per-step gateway map handed to the execution engine.
"""

import asyncio
import logging
from collections import defaultdict

from alfred_sdk.errors import GatewayConfigError, GatewayError
from alfred_sdk.schemas import GatewayRef, StepGatewayRecord, ToolkitGatewayRecord
from alfred_sdk.stores import ConnectionStore, GatewayStore, WorkflowStore
from alfred_sdk.tools.composio import ComposioClient
from alfred_sdk.tools.toolkits import extract_toolkits, platform_tools

logger = logging.getLogger(__name__)


GATEWAY_AUTH_HEADER = "x-api-key"
CONNECTED_ACCOUNT_PARAM = "connected_account_id"
USER_ID_PARAM = "user_id"


def toolkit_gateway_name(toolkit: str) -> str:
    return f"composio-{toolkit}"


def step_gateway_name(step_order: int) -> str:
    return f"composio-step-{step_order}"


class GatewayManager:
    """
    Gateway lifecycle and per-step gateway configuration.

    Args:
        client: Platform client, None when the platform is not configured
        gateways: Gateway catalogs
        workflows: Workflow registry (for config assembly)
        connections: Connection catalog (for config assembly)
        api_key: Platform key sent to gateways in the auth header
        user_id: Optional platform user id added to step gateway URLs
    """

    def __init__(
        self,
        client: ComposioClient | None,
        gateways: GatewayStore,
        workflows: WorkflowStore,
        connections: ConnectionStore,
        api_key: str | None = None,
        user_id: str | None = None,
    ):
        self.client = client
        self.gateways = gateways
        self.workflows = workflows
        self.connections = connections
        self.api_key = api_key
        self.user_id = user_id
        self._toolkit_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def _require_client(self) -> ComposioClient:
        if self.client is None:
            raise GatewayConfigError("Tool-hosting platform is not configured (COMPOSIO_API_KEY)")
        return self.client

    # =========================================================================
    # Toolkit gateways
    # =========================================================================

    async def get_or_create_toolkit_gateway(self, toolkit: str) -> ToolkitGatewayRecord:
        """
        Return the stored gateway for ``toolkit``, provisioning it on first use.

        Same-process callers are serialized per toolkit. Across processes the
        store insert is conflict-aware: a losing insert returns the stored
        winner and the extra remote gateway is left orphaned.
        """
        toolkit = toolkit.lower()

        existing = await self.gateways.get_toolkit_gateway(toolkit)
        if existing is not None:
            return existing

        async with self._toolkit_locks[toolkit]:
            existing = await self.gateways.get_toolkit_gateway(toolkit)
            if existing is not None:
                return existing

            client = self._require_client()
            auth_config_id = await client.get_or_create_auth_config(toolkit)
            server = await client.create_toolkit_server(f"{toolkit}-toolkit-mcp", [auth_config_id])
            logger.info(f"Created toolkit gateway {server.id} for '{toolkit}' ({len(server.tools)} tools)")

            record = ToolkitGatewayRecord(
                toolkit=toolkit,
                auth_config_id=auth_config_id,
                server_id=server.id,
                url=server.url,
                tools=server.tools,
            )
            return await self.gateways.insert_toolkit_gateway(record)

    # =========================================================================
    # Step gateways
    # =========================================================================

    async def create_step_gateway(
        self,
        workflow_id: str,
        step_order: int,
        allowed_tools: list[str],
    ) -> StepGatewayRecord:
        """
        (Re)create the custom gateway for one step.

        Any existing gateway for the step is deleted first. The new gateway
        exposes the platform-hosted subset of ``allowed_tools``.
        """
        toolkits = extract_toolkits(allowed_tools)
        if not toolkits:
            raise GatewayConfigError(
                f"No platform toolkits referenced by tools of step {step_order}",
                detail={"allowed_tools": allowed_tools},
            )

        client = self._require_client()

        auth_config_ids = []
        for toolkit in toolkits:
            auth_config_ids.append(await client.get_or_create_auth_config(toolkit))

        await self.delete_step_gateway(workflow_id, step_order)

        server = await client.create_custom_server(
            name=f"skill-{workflow_id[:8]}-step-{step_order}",
            tools=platform_tools(allowed_tools),
            auth_config_ids=auth_config_ids,
        )
        logger.info(f"Created step gateway {server.id} for workflow {workflow_id} step {step_order}")

        record = StepGatewayRecord(
            workflow_id=workflow_id,
            step_order=step_order,
            auth_config_ids=auth_config_ids,
            server_id=server.id,
            url=server.url,
            allowed_tools=list(allowed_tools),
        )
        return await self.gateways.save_step_gateway(record)

    async def delete_step_gateway(self, workflow_id: str, step_order: int) -> bool:
        """
        Delete the step gateway if present.

        A failed remote delete is logged, the local record is removed anyway.
        """
        existing = await self.gateways.get_step_gateway(workflow_id, step_order)
        if existing is None:
            return False

        if self.client is not None:
            try:
                await self.client.delete_server(existing.server_id)
            except GatewayError as e:
                logger.warning(f"Failed to delete remote gateway {existing.server_id}: {e}")
        else:
            logger.warning(f"Platform not configured, remote gateway {existing.server_id} left in place")

        await self.gateways.delete_step_gateway(workflow_id, step_order)
        logger.info(f"Deleted step gateway for workflow {workflow_id} step {step_order}")
        return True

    # =========================================================================
    # Engine configuration
    # =========================================================================

    async def get_gateway_config_for_step(self, workflow_id: str, step_order: int) -> dict[str, GatewayRef]:
        """
        Gateway map for one step.

        Toolkit gateways of the workflow's platform-backed connections come
        first, the step gateway is merged last. Missing records and failed
        store reads are skipped, never raised.
        """
        config = await self._toolkit_gateway_refs(workflow_id)

        try:
            step_record = await self.gateways.get_step_gateway(workflow_id, step_order)
        except Exception as e:
            logger.warning(f"Step gateway catalog unavailable for workflow {workflow_id} step {step_order}: {e}")
            step_record = None

        if step_record is not None:
            query = {USER_ID_PARAM: self.user_id} if self.user_id else {}
            config[step_gateway_name(step_order)] = GatewayRef(
                url=step_record.url, headers=self._auth_headers(), query_params=query
            )

        if config:
            logger.info(f"Gateways for workflow {workflow_id} step {step_order}: {list(config)}")
        return config

    async def _toolkit_gateway_refs(self, workflow_id: str) -> dict[str, GatewayRef]:
        try:
            workflow = await self.workflows.get(workflow_id)
            if workflow is None:
                logger.warning(f"Workflow {workflow_id} not found while assembling gateway config")
                return {}
            if not workflow.connection_names:
                return {}
            connections = await self.connections.find_active(workflow.connection_names)
        except Exception as e:
            logger.warning(f"Skipping toolkit gateways for workflow {workflow_id}, store unavailable: {e}")
            return {}

        refs: dict[str, GatewayRef] = {}
        for connection in connections:
            if not connection.is_platform_backed or not connection.composio_toolkit:
                continue
            toolkit = connection.composio_toolkit.lower()
            try:
                record = await self.gateways.get_toolkit_gateway(toolkit)
            except Exception as e:
                logger.warning(f"Toolkit gateway catalog unavailable for '{toolkit}': {e}")
                continue
            if record is None:
                logger.debug(f"No toolkit gateway stored for '{toolkit}'")
                continue
            query = {}
            if connection.composio_account_id:
                query[CONNECTED_ACCOUNT_PARAM] = connection.composio_account_id
            refs[toolkit_gateway_name(toolkit)] = GatewayRef(
                url=record.url, headers=self._auth_headers(), query_params=query
            )
        return refs

    def _auth_headers(self) -> dict[str, str]:
        return {GATEWAY_AUTH_HEADER: self.api_key} if self.api_key else {}
