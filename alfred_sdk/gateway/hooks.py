"""Workflow lifecycle hooks keeping step gateways in line with each step's tools."""

import logging

from alfred_sdk.gateway.manager import GatewayManager
from alfred_sdk.schemas import StepGatewayRecord, Workflow
from alfred_sdk.tools.toolkits import step_requires_platform

logger = logging.getLogger(__name__)


class SkillLifecycleHooks:
    """
    Called by the workflow API around create, update and delete.

    Provisioning failures are logged per step and never fail the workflow
    write itself. Without a configured platform every hook is a no-op.
    """

    def __init__(self, gateways: GatewayManager):
        self.gateways = gateways

    async def after_create(self, workflow: Workflow) -> list[int]:
        """Provision gateways for steps needing platform tools. Returns provisioned orders."""
        if not self.gateways.enabled:
            return []

        provisioned = []
        for step in workflow.ordered_steps():
            if not step_requires_platform(step):
                continue
            if await self._provision(workflow.id, step.order, step.allowed_tools or []):
                provisioned.append(step.order)
        return provisioned

    async def after_update(self, workflow: Workflow) -> list[int]:
        """Recreate, or remove, each step gateway. Returns provisioned orders."""
        if not self.gateways.enabled:
            return []

        provisioned = []
        current_orders = set()
        for step in workflow.ordered_steps():
            current_orders.add(step.order)
            if step_requires_platform(step):
                if await self._provision(workflow.id, step.order, step.allowed_tools or []):
                    provisioned.append(step.order)
            else:
                await self._remove(workflow.id, step.order)

        # Steps dropped by the update
        for record in await self._stored_step_gateways(workflow.id):
            if record.step_order not in current_orders:
                await self._remove(workflow.id, record.step_order)

        return provisioned

    async def before_delete(self, workflow_id: str) -> None:
        """Tear down every step gateway of the workflow."""
        if not self.gateways.enabled:
            return

        for record in await self._stored_step_gateways(workflow_id):
            await self._remove(workflow_id, record.step_order)

    async def _provision(self, workflow_id: str, step_order: int, allowed_tools: list[str]) -> bool:
        try:
            await self.gateways.create_step_gateway(workflow_id, step_order, allowed_tools)
        except Exception as e:
            logger.error(
                f"Gateway provisioning failed for workflow {workflow_id} step {step_order}: {e}", exc_info=True
            )
            return False
        return True

    async def _remove(self, workflow_id: str, step_order: int) -> None:
        try:
            await self.gateways.delete_step_gateway(workflow_id, step_order)
        except Exception as e:
            logger.error(f"Gateway removal failed for workflow {workflow_id} step {step_order}: {e}", exc_info=True)

    async def _stored_step_gateways(self, workflow_id: str) -> list[StepGatewayRecord]:
        try:
            return await self.gateways.gateways.list_step_gateways(workflow_id)
        except Exception as e:
            logger.error(f"Could not list step gateways of workflow {workflow_id}: {e}", exc_info=True)
            return []
