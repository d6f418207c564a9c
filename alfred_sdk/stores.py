"""
Storage protocols and in-memory implementations.

The orchestration core only talks to these protocols. The API service
provides MongoDB-backed repositories that satisfy them and fall back to the
in-memory stores below when no database is configured.
"""

from __future__ import annotations

import logging
from typing import Protocol

from alfred_sdk.schemas import (
    Connection,
    StepGatewayRecord,
    ToolkitGatewayRecord,
    Workflow,
    WorkflowSummary,
    step_gateway_key,
    utc_now,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Storage Protocols
# =============================================================================


class WorkflowStore(Protocol):
    """Workflow registry."""

    async def list_summaries(self) -> list[WorkflowSummary]: ...
    async def list(self) -> list[Workflow]: ...
    async def get(self, workflow_id: str) -> Workflow | None: ...
    async def save(self, workflow: Workflow) -> Workflow: ...
    async def delete(self, workflow_id: str) -> bool: ...


class ConnectionStore(Protocol):
    """Connection catalog."""

    async def find_active(self, names: list[str]) -> list[Connection]: ...
    async def list(self) -> list[Connection]: ...
    async def get(self, name: str) -> Connection | None: ...
    async def save(self, connection: Connection) -> Connection: ...
    async def delete(self, name: str) -> bool: ...


class GatewayStore(Protocol):
    """Toolkit and step gateway catalogs."""

    async def get_toolkit_gateway(self, toolkit: str) -> ToolkitGatewayRecord | None: ...

    async def insert_toolkit_gateway(self, record: ToolkitGatewayRecord) -> ToolkitGatewayRecord:
        """Insert unless present. Returns the stored record (the existing one on conflict)."""
        ...

    async def get_step_gateway(self, workflow_id: str, step_order: int) -> StepGatewayRecord | None: ...
    async def list_step_gateways(self, workflow_id: str) -> list[StepGatewayRecord]: ...
    async def save_step_gateway(self, record: StepGatewayRecord) -> StepGatewayRecord: ...
    async def delete_step_gateway(self, workflow_id: str, step_order: int) -> bool: ...


# =============================================================================
# In-Memory Storage (Default)
# =============================================================================


class InMemoryWorkflowStore:
    """In-memory workflow registry."""

    def __init__(self, workflows: list[Workflow] | None = None):
        self._workflows: dict[str, Workflow] = {}
        for workflow in workflows or []:
            self._workflows[workflow.id] = workflow

    async def list(self) -> list[Workflow]:
        active = [w for w in self._workflows.values() if w.is_active]
        return sorted(active, key=lambda w: w.name)

    async def list_summaries(self) -> list[WorkflowSummary]:
        return [w.summary() for w in await self.list()]

    async def get(self, workflow_id: str) -> Workflow | None:
        return self._workflows.get(workflow_id)

    async def save(self, workflow: Workflow) -> Workflow:
        self._workflows[workflow.id] = workflow
        return workflow

    async def delete(self, workflow_id: str) -> bool:
        return self._workflows.pop(workflow_id, None) is not None


class InMemoryConnectionStore:
    """In-memory connection catalog."""

    def __init__(self, connections: list[Connection] | None = None):
        self._connections: dict[str, Connection] = {}
        for connection in connections or []:
            self._connections[connection.name] = connection

    async def find_active(self, names: list[str]) -> list[Connection]:
        wanted = set(names)
        return [c for c in self._connections.values() if c.is_active and c.name in wanted]

    async def list(self) -> list[Connection]:
        return sorted(self._connections.values(), key=lambda c: c.name)

    async def get(self, name: str) -> Connection | None:
        return self._connections.get(name)

    async def save(self, connection: Connection) -> Connection:
        self._connections[connection.name] = connection
        return connection

    async def delete(self, name: str) -> bool:
        return self._connections.pop(name, None) is not None


class InMemoryGatewayStore:
    """In-memory gateway catalogs."""

    def __init__(self):
        self._toolkits: dict[str, ToolkitGatewayRecord] = {}
        self._steps: dict[str, StepGatewayRecord] = {}

    async def get_toolkit_gateway(self, toolkit: str) -> ToolkitGatewayRecord | None:
        return self._toolkits.get(toolkit)

    async def insert_toolkit_gateway(self, record: ToolkitGatewayRecord) -> ToolkitGatewayRecord:
        existing = self._toolkits.get(record.toolkit)
        if existing is not None:
            logger.warning(
                f"Toolkit gateway for '{record.toolkit}' already stored, "
                f"keeping {existing.server_id}, orphaned {record.server_id}"
            )
            return existing
        self._toolkits[record.toolkit] = record
        return record

    async def get_step_gateway(self, workflow_id: str, step_order: int) -> StepGatewayRecord | None:
        return self._steps.get(step_gateway_key(workflow_id, step_order))

    async def list_step_gateways(self, workflow_id: str) -> list[StepGatewayRecord]:
        records = [r for r in self._steps.values() if r.workflow_id == workflow_id]
        return sorted(records, key=lambda r: r.step_order)

    async def save_step_gateway(self, record: StepGatewayRecord) -> StepGatewayRecord:
        record.updated_at = utc_now()
        self._steps[record.key] = record
        return record

    async def delete_step_gateway(self, workflow_id: str, step_order: int) -> bool:
        return self._steps.pop(step_gateway_key(workflow_id, step_order), None) is not None
