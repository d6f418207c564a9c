"""
Application context container.

- ``AppContext`` holds every service instance, built once by ``create``
- The context lives on ``app.state``; dependencies read it from the request
- ``shutdown`` releases tasks, clients and the database connection
- Tests build their own context and pass it to ``create_app``
"""

import logging
from dataclasses import dataclass, field
from datetime import timezone
from typing import Annotated, Any

from fastapi import Depends, Request

from alfred_api.services.agent_executor import AgentExecutor
from alfred_api.services.database import Database, get_database
from alfred_api.services.llm_service import LLMService, ModelTask
from alfred_api.services.progress_broker import ProgressBroker
from alfred_api.services.repositories import RepositoryManager, create_repository_manager
from alfred_api.services.task_manager import TaskManager
from alfred_sdk.agent.claude_engine import ClaudeAgentEngine
from alfred_sdk.agent.classifier import WorkflowClassifier
from alfred_sdk.agent.engine import AgentEngine
from alfred_sdk.agent.orchestrator import WorkflowOrchestrator
from alfred_sdk.agent.step_executor import StepExecutor
from alfred_sdk.config import AppConfig, load_config
from alfred_sdk.gateway import GatewayManager, SkillLifecycleHooks
from alfred_sdk.tools.composio import ComposioClient
from alfred_sdk.tools.connection_resolver import ConnectionResolver

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """
    Every service of the application.

    Usage:
        ```python
        ctx = await AppContext.create(load_config())
        result = await ctx.agent_executor.execute("orchestrator", prompt, request_id)
        await ctx.shutdown()
        ```
    """

    config: AppConfig

    # Infrastructure
    mongo_client: Any = field(default=None, repr=False)
    database: Database | None = None
    repositories: RepositoryManager | None = None
    llm_service: LLMService | None = None
    composio: ComposioClient | None = None

    # Core
    gateways: GatewayManager | None = None
    hooks: SkillLifecycleHooks | None = None
    resolver: ConnectionResolver | None = None
    classifier: WorkflowClassifier | None = None
    engine: AgentEngine | None = None
    step_executor: StepExecutor | None = None
    orchestrator: WorkflowOrchestrator | None = None

    # Runtime
    broker: ProgressBroker | None = None
    task_manager: TaskManager | None = None
    agent_executor: AgentExecutor | None = None

    @classmethod
    async def create(
        cls,
        config: AppConfig | None = None,
        engine: AgentEngine | None = None,
    ) -> "AppContext":
        """Build and wire every service. ``engine`` replaces the Claude engine."""
        ctx = cls(config=config or load_config())

        await ctx._init_database()
        ctx.repositories = create_repository_manager(ctx.database)
        ctx._init_services(engine)

        logger.info(
            f"AppContext initialized - database={'mongodb' if ctx.database else 'memory'}, "
            f"platform={'enabled' if ctx.composio else 'disabled'}"
        )
        return ctx

    async def _init_database(self) -> None:
        db_config = self.config.database
        if not db_config.mongodb_uri:
            logger.info("Database: memory mode (set MONGODB_URI to enable MongoDB)")
            return

        try:
            from motor.motor_asyncio import AsyncIOMotorClient

            logger.info(f"Connecting to MongoDB: {db_config.mongodb_db}")
            self.mongo_client = AsyncIOMotorClient(
                db_config.mongodb_uri,
                serverSelectionTimeoutMS=3000,
                tz_aware=True,
                tzinfo=timezone.utc,
            )
            await self.mongo_client.admin.command("ping")

            self.database = get_database(self.mongo_client, db_config.mongodb_db)
            if self.database:
                await self.database.ensure_indexes()

        except Exception as e:
            logger.warning(f"MongoDB connection failed: {e}. Falling back to memory mode.")
            if self.mongo_client is not None:
                self.mongo_client.close()
            self.mongo_client = None
            self.database = None

    def _init_services(self, engine: AgentEngine | None) -> None:
        config = self.config
        repos = self.repositories

        self.llm_service = LLMService(config.llm)

        if config.composio.enabled:
            self.composio = ComposioClient.from_config(config.composio)

        self.gateways = GatewayManager(
            client=self.composio,
            gateways=repos.gateways,
            workflows=repos.workflows,
            connections=repos.connections,
            api_key=config.composio.api_key,
            user_id=config.composio.user_id,
        )
        self.hooks = SkillLifecycleHooks(self.gateways)
        self.resolver = ConnectionResolver(repos.connections, static_connections=config.mcp_connections)
        self.classifier = WorkflowClassifier(
            repos.workflows, self.llm_service.get_llm(ModelTask.CLASSIFICATION)
        )

        self.engine = engine or ClaudeAgentEngine()
        self.step_executor = StepExecutor(
            engine=self.engine,
            resolver=self.resolver,
            gateways=self.gateways if self.gateways.enabled else None,
            config=config.agent,
        )

        self.broker = ProgressBroker(idle_timeout=config.agent.stream_idle_timeout_seconds)
        self.orchestrator = WorkflowOrchestrator(
            self.step_executor,
            progress=self.broker,
            step_delay_seconds=config.agent.step_delay_seconds,
            work_root=config.agent.work_root,
        )
        self.task_manager = TaskManager()
        self.agent_executor = AgentExecutor(
            classifier=self.classifier,
            orchestrator=self.orchestrator,
            executor=self.step_executor,
            broker=self.broker,
            config=config.agent,
        )

    async def shutdown(self) -> None:
        if self.task_manager:
            await self.task_manager.shutdown()
        if self.broker:
            await self.broker.shutdown()
        if self.composio:
            await self.composio.close()
        if self.llm_service:
            await self.llm_service.shutdown()
        if self.mongo_client:
            self.mongo_client.close()
            self.mongo_client = None
        logger.info("AppContext shutdown")


# =============================================================================
# FastAPI dependencies
# =============================================================================


def get_app_context(request: Request) -> AppContext:
    ctx = getattr(request.app.state, "context", None)
    if ctx is None:
        raise RuntimeError("AppContext not initialized")
    return ctx


def get_repository_manager(ctx: Annotated[AppContext, Depends(get_app_context)]) -> RepositoryManager:
    return ctx.repositories


def get_agent_executor(ctx: Annotated[AppContext, Depends(get_app_context)]) -> AgentExecutor:
    return ctx.agent_executor


def get_broker(ctx: Annotated[AppContext, Depends(get_app_context)]) -> ProgressBroker:
    return ctx.broker


def get_task_manager(ctx: Annotated[AppContext, Depends(get_app_context)]) -> TaskManager:
    return ctx.task_manager


def get_hooks(ctx: Annotated[AppContext, Depends(get_app_context)]) -> SkillLifecycleHooks:
    return ctx.hooks


def get_gateway_manager(ctx: Annotated[AppContext, Depends(get_app_context)]) -> GatewayManager:
    return ctx.gateways


AppContextDep = Annotated[AppContext, Depends(get_app_context)]
RepositoryManagerDep = Annotated[RepositoryManager, Depends(get_repository_manager)]
AgentExecutorDep = Annotated[AgentExecutor, Depends(get_agent_executor)]
BrokerDep = Annotated[ProgressBroker, Depends(get_broker)]
TaskManagerDep = Annotated[TaskManager, Depends(get_task_manager)]
HooksDep = Annotated[SkillLifecycleHooks, Depends(get_hooks)]
GatewayManagerDep = Annotated[GatewayManager, Depends(get_gateway_manager)]
