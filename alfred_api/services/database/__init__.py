from alfred_api.services.database.config import DB_NAME, INDEXES, IndexSpec
from alfred_api.services.database.database import Database, get_database

__all__ = [
    "DB_NAME",
    "Database",
    "INDEXES",
    "IndexSpec",
    "get_database",
]
