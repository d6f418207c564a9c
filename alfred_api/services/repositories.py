"""
Repositories.

MongoDB-backed implementations of the core store protocols. Documents are
validated into typed models on every read; malformed documents are logged
and skipped. Driver failures surface as ``StorageError``. Without a
connected database each repository delegates to the core's in-memory store.
"""

from __future__ import annotations

import logging
from abc import ABC
from contextlib import contextmanager
from typing import Any, Iterator

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from alfred_api.services.database import Database
from alfred_sdk.errors import StorageError
from alfred_sdk.schemas import (
    Connection,
    StepGatewayRecord,
    ToolkitGatewayRecord,
    Workflow,
    WorkflowSummary,
    step_gateway_key,
    utc_now,
)
from alfred_sdk.stores import InMemoryConnectionStore, InMemoryGatewayStore, InMemoryWorkflowStore

logger = logging.getLogger(__name__)


def to_document(model: BaseModel, _id: str) -> dict[str, Any]:
    doc = model.model_dump(mode="python")
    doc["_id"] = _id
    return doc


def from_document(model_cls: type[BaseModel], doc: dict[str, Any], id_field: str | None = None) -> Any:
    """Validate a stored document. Returns None (and logs) when it does not conform."""
    data = dict(doc)
    _id = data.pop("_id", None)
    if id_field and id_field not in data:
        data[id_field] = _id
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        logger.warning(f"Skipping malformed {model_cls.__name__} document {_id}: {e.error_count()} errors")
        return None


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Re-raise driver failures inside the block as ``StorageError``."""
    try:
        yield
    except PyMongoError as e:
        logger.error(f"{operation} failed: {type(e).__name__}: {e}")
        raise StorageError(f"{operation} failed: {e}") from e


# =============================================================================
# Base Repository
# =============================================================================


class BaseRepository(ABC):

    def __init__(self, db: Database | None):
        self._db = db

    @property
    def is_persistent(self) -> bool:
        return self._db is not None and self._db.is_connected


# =============================================================================
# Workflow Repository
# =============================================================================


class WorkflowRepository(BaseRepository):
    """Workflow registry."""

    def __init__(self, db: Database | None):
        super().__init__(db)
        self._memory = InMemoryWorkflowStore()

    async def list(self) -> list[Workflow]:
        if not self.is_persistent:
            return await self._memory.list()
        workflows = []
        with storage_errors("Workflow listing"):
            cursor = self._db.workflows.find({"is_active": True}).sort("name", ASCENDING)
            async for doc in cursor:
                workflow = from_document(Workflow, doc, id_field="id")
                if workflow is not None:
                    workflows.append(workflow)
        return workflows

    async def list_summaries(self) -> list[WorkflowSummary]:
        if not self.is_persistent:
            return await self._memory.list_summaries()
        summaries = []
        with storage_errors("Workflow summary listing"):
            cursor = self._db.workflows.find(
                {"is_active": True}, projection={"name": 1, "description": 1}
            ).sort("name", ASCENDING)
            async for doc in cursor:
                summary = from_document(WorkflowSummary, doc, id_field="id")
                if summary is not None:
                    summaries.append(summary)
        return summaries

    async def get(self, workflow_id: str) -> Workflow | None:
        if not self.is_persistent:
            return await self._memory.get(workflow_id)
        with storage_errors(f"Workflow read {workflow_id}"):
            doc = await self._db.workflows.find_one({"_id": workflow_id})
        return from_document(Workflow, doc, id_field="id") if doc else None

    async def get_by_name(self, name: str) -> Workflow | None:
        wanted = name.lower()
        return next((w for w in await self.list() if w.name.lower() == wanted), None)

    async def save(self, workflow: Workflow) -> Workflow:
        workflow.updated_at = utc_now()
        if not self.is_persistent:
            return await self._memory.save(workflow)
        with storage_errors(f"Workflow write {workflow.id}"):
            await self._db.workflows.replace_one(
                {"_id": workflow.id}, to_document(workflow, workflow.id), upsert=True
            )
        return workflow

    async def delete(self, workflow_id: str) -> bool:
        if not self.is_persistent:
            return await self._memory.delete(workflow_id)
        with storage_errors(f"Workflow delete {workflow_id}"):
            result = await self._db.workflows.delete_one({"_id": workflow_id})
        return result.deleted_count > 0


# =============================================================================
# Connection Repository
# =============================================================================


class ConnectionRepository(BaseRepository):
    """Connection catalog keyed by name."""

    def __init__(self, db: Database | None):
        super().__init__(db)
        self._memory = InMemoryConnectionStore()

    async def find_active(self, names: list[str]) -> list[Connection]:
        if not self.is_persistent:
            return await self._memory.find_active(names)
        with storage_errors("Connection lookup"):
            cursor = self._db.connections.find({"name": {"$in": list(names)}, "is_active": True})
            return [c async for c in self._validated(cursor)]

    async def list(self) -> list[Connection]:
        if not self.is_persistent:
            return await self._memory.list()
        with storage_errors("Connection listing"):
            cursor = self._db.connections.find({}).sort("name", ASCENDING)
            return [c async for c in self._validated(cursor)]

    async def get(self, name: str) -> Connection | None:
        if not self.is_persistent:
            return await self._memory.get(name)
        with storage_errors(f"Connection read {name}"):
            doc = await self._db.connections.find_one({"_id": name})
        return from_document(Connection, doc) if doc else None

    async def save(self, connection: Connection) -> Connection:
        if not self.is_persistent:
            return await self._memory.save(connection)
        with storage_errors(f"Connection write {connection.name}"):
            await self._db.connections.replace_one(
                {"_id": connection.name}, to_document(connection, connection.name), upsert=True
            )
        return connection

    async def delete(self, name: str) -> bool:
        if not self.is_persistent:
            return await self._memory.delete(name)
        with storage_errors(f"Connection delete {name}"):
            result = await self._db.connections.delete_one({"_id": name})
        return result.deleted_count > 0

    @staticmethod
    async def _validated(cursor: Any):
        async for doc in cursor:
            connection = from_document(Connection, doc)
            if connection is not None:
                yield connection


# =============================================================================
# Gateway Repository
# =============================================================================


class GatewayRepository(BaseRepository):
    """Toolkit and step gateway catalogs."""

    def __init__(self, db: Database | None):
        super().__init__(db)
        self._memory = InMemoryGatewayStore()

    async def get_toolkit_gateway(self, toolkit: str) -> ToolkitGatewayRecord | None:
        if not self.is_persistent:
            return await self._memory.get_toolkit_gateway(toolkit)
        with storage_errors(f"Toolkit gateway read {toolkit}"):
            doc = await self._db.toolkit_gateways.find_one({"_id": toolkit})
        return from_document(ToolkitGatewayRecord, doc) if doc else None

    async def insert_toolkit_gateway(self, record: ToolkitGatewayRecord) -> ToolkitGatewayRecord:
        """Insert, or on duplicate key return the record another writer stored first."""
        if not self.is_persistent:
            return await self._memory.insert_toolkit_gateway(record)
        with storage_errors(f"Toolkit gateway write {record.toolkit}"):
            try:
                await self._db.toolkit_gateways.insert_one(to_document(record, record.toolkit))
                return record
            except DuplicateKeyError:
                doc = await self._db.toolkit_gateways.find_one({"_id": record.toolkit})
                existing = from_document(ToolkitGatewayRecord, doc) if doc else None
                if existing is None:
                    raise
        logger.warning(
            f"Toolkit gateway for '{record.toolkit}' created concurrently, "
            f"keeping {existing.server_id}, orphaned {record.server_id}"
        )
        return existing

    async def get_step_gateway(self, workflow_id: str, step_order: int) -> StepGatewayRecord | None:
        if not self.is_persistent:
            return await self._memory.get_step_gateway(workflow_id, step_order)
        with storage_errors(f"Step gateway read {workflow_id}:{step_order}"):
            doc = await self._db.step_gateways.find_one({"_id": step_gateway_key(workflow_id, step_order)})
        return from_document(StepGatewayRecord, doc) if doc else None

    async def list_step_gateways(self, workflow_id: str) -> list[StepGatewayRecord]:
        if not self.is_persistent:
            return await self._memory.list_step_gateways(workflow_id)
        records = []
        with storage_errors(f"Step gateway listing {workflow_id}"):
            cursor = self._db.step_gateways.find({"workflow_id": workflow_id}).sort("step_order", ASCENDING)
            async for doc in cursor:
                record = from_document(StepGatewayRecord, doc)
                if record is not None:
                    records.append(record)
        return records

    async def save_step_gateway(self, record: StepGatewayRecord) -> StepGatewayRecord:
        if not self.is_persistent:
            return await self._memory.save_step_gateway(record)
        record.updated_at = utc_now()
        with storage_errors(f"Step gateway write {record.key}"):
            doc = await self._db.step_gateways.find_one_and_replace(
                {"_id": record.key},
                to_document(record, record.key),
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        return from_document(StepGatewayRecord, doc) or record

    async def delete_step_gateway(self, workflow_id: str, step_order: int) -> bool:
        if not self.is_persistent:
            return await self._memory.delete_step_gateway(workflow_id, step_order)
        with storage_errors(f"Step gateway delete {workflow_id}:{step_order}"):
            result = await self._db.step_gateways.delete_one({"_id": step_gateway_key(workflow_id, step_order)})
        return result.deleted_count > 0


# =============================================================================
# Repository Manager
# =============================================================================


class RepositoryManager:
    """All repositories over one database (or in-memory)."""

    def __init__(self, db: Database | None):
        self._db = db
        self.workflows = WorkflowRepository(db)
        self.connections = ConnectionRepository(db)
        self.gateways = GatewayRepository(db)

    @property
    def is_persistent(self) -> bool:
        return self._db is not None and self._db.is_connected

    async def ensure_indexes(self) -> None:
        if self._db is not None:
            await self._db.ensure_indexes()


def create_repository_manager(db: Database | None) -> RepositoryManager:
    return RepositoryManager(db)
