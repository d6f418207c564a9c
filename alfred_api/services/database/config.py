"""Database name and indexes."""

from typing import NamedTuple

from alfred_api.models.collections import COLLECTIONS

DB_NAME = "alfred"


class IndexSpec(NamedTuple):
    collection: str
    name: str
    keys: list[tuple[str, int]]
    unique: bool = False


INDEXES = [
    # Registry listing: active workflows ordered by name
    IndexSpec(COLLECTIONS.WORKFLOWS, "idx_active_name", [("is_active", 1), ("name", 1)]),
    IndexSpec(COLLECTIONS.CONNECTIONS, "idx_name_active", [("name", 1), ("is_active", 1)]),
    # The toolkit insert race is settled by this unique key
    IndexSpec(COLLECTIONS.TOOLKIT_GATEWAYS, "idx_toolkit", [("toolkit", 1)], unique=True),
    IndexSpec(COLLECTIONS.STEP_GATEWAYS, "idx_workflow_step", [("workflow_id", 1), ("step_order", 1)], unique=True),
]
