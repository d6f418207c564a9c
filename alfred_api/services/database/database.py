"""
Database access.

Usage:
    db = get_database(mongo_client, "alfred")
    await db.workflows.find_one({"_id": workflow_id})
"""

import logging
from typing import Any

from pymongo.errors import OperationFailure, PyMongoError

from alfred_api.models.collections import COLLECTIONS
from alfred_api.services.database.config import DB_NAME, INDEXES

logger = logging.getLogger(__name__)


class Database:
    """The service's collections on one MongoDB database."""

    def __init__(self, mongo_client: Any, db_name: str = DB_NAME):
        self._client = mongo_client
        self._db = mongo_client[db_name]
        self._indexes_ensured = False
        logger.info(f"Database connected: {db_name}")

    @property
    def is_connected(self) -> bool:
        return self._db is not None

    @property
    def workflows(self) -> Any:
        return self._db[COLLECTIONS.WORKFLOWS]

    @property
    def connections(self) -> Any:
        return self._db[COLLECTIONS.CONNECTIONS]

    @property
    def toolkit_gateways(self) -> Any:
        return self._db[COLLECTIONS.TOOLKIT_GATEWAYS]

    @property
    def step_gateways(self) -> Any:
        return self._db[COLLECTIONS.STEP_GATEWAYS]

    async def ping(self) -> bool:
        try:
            await self._client.admin.command("ping")
        except PyMongoError as e:
            logger.warning(f"Database ping failed: {e}")
            return False
        return True

    async def ensure_indexes(self) -> None:
        """Create every index in INDEXES once per process. Existing indexes are kept."""
        if self._indexes_ensured:
            return

        failed = []
        for spec in INDEXES:
            try:
                await self._db[spec.collection].create_index(spec.keys, name=spec.name, unique=spec.unique)
            except OperationFailure as e:
                if "already exists" in str(e).lower() or e.code == 85:
                    continue
                logger.warning(f"Index {spec.collection}.{spec.name} not created: {e}")
                failed.append(spec.name)

        self._indexes_ensured = True
        logger.info(f"Database indexes ensured ({len(INDEXES) - len(failed)}/{len(INDEXES)})")


def get_database(mongo_client: Any | None, db_name: str = DB_NAME) -> Database | None:
    """Database over ``mongo_client``, None in memory mode."""
    if mongo_client is None:
        return None
    return Database(mongo_client, db_name)
