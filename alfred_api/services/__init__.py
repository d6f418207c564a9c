"""
Application services.

Database and repositories, LLM service, progress broker, background task
manager and the execution-mode dispatcher.
"""

from alfred_api.services.agent_executor import AgentExecutor, ExecutionResult, format_classification
from alfred_api.services.database import DB_NAME, Database, get_database
from alfred_api.services.llm_service import LLMService, ModelTask
from alfred_api.services.progress_broker import ProgressBroker, Subscription
from alfred_api.services.repositories import (
    ConnectionRepository,
    GatewayRepository,
    RepositoryManager,
    WorkflowRepository,
    create_repository_manager,
)
from alfred_api.services.task_manager import TaskManager

__all__ = [
    # Execution
    "AgentExecutor",
    "ExecutionResult",
    "format_classification",
    # Database
    "DB_NAME",
    "Database",
    "get_database",
    # Repositories
    "RepositoryManager",
    "WorkflowRepository",
    "ConnectionRepository",
    "GatewayRepository",
    "create_repository_manager",
    # LLM
    "LLMService",
    "ModelTask",
    # Progress and tasks
    "ProgressBroker",
    "Subscription",
    "TaskManager",
]
