"""
Connection Resolver

Resolves which tool connections a workflow step uses and which tools it may
call. Tool filtering has three tiers, checked in order per allowed entry:

1. Engine builtin tools (``Read``, ``Write``, ``Bash`` ...), passed through.
2. Connection names (``github``), expanding to every tool of that connection
   whose name carries the ``github__`` prefix.
3. Exact tool names (``github__create_pr``).
"""

import logging
from collections.abc import Iterable
from typing import Any

from alfred_sdk.schemas import Connection, ResolvedConnection, Workflow, WorkflowStep
from alfred_sdk.stores import ConnectionStore

logger = logging.getLogger(__name__)


BUILTIN_TOOLS: tuple[str, ...] = (
    "Task",
    "Bash",
    "Read",
    "Write",
    "Edit",
    "Glob",
    "Grep",
    "WebFetch",
    "WebSearch",
    "TodoWrite",
    "AskUserQuestion",
    "NotebookEdit",
    "BashOutput",
    "KillShell",
)


def is_builtin_tool(name: str) -> bool:
    return name in BUILTIN_TOOLS


def resolve_connection_names(step: WorkflowStep, workflow: Workflow) -> list[str]:
    """Step-level connections, else workflow-level connections, else none."""
    if step.connection_names:
        logger.debug(f"Step {step.order}: using step-level connections {step.connection_names}")
        return list(step.connection_names)
    if workflow.connection_names:
        logger.debug(f"Step {step.order}: using workflow-level connections {workflow.connection_names}")
        return list(workflow.connection_names)
    logger.debug(f"Step {step.order}: no connections configured, builtin tools only")
    return []


def filter_tools_for_step(
    step: WorkflowStep,
    available_tools: list[str],
    connection_names: list[str],
) -> list[str]:
    """
    Apply three-tier filtering of ``step.allowed_tools`` against the available tools.

    An unset or empty allow-list leaves ``available_tools`` unchanged. Entries
    matching nothing are dropped with a warning.
    """
    if not step.allowed_tools:
        return list(available_tools)

    allowed: dict[str, None] = {}
    available = set(available_tools)

    for entry in step.allowed_tools:
        # Tier 1: builtin
        if is_builtin_tool(entry):
            allowed.setdefault(entry, None)
            continue

        # Tier 2: connection name
        if entry in connection_names:
            prefix = f"{entry}__"
            from_server = [t for t in available_tools if t.startswith(prefix)]
            if from_server:
                logger.debug(f"Step {step.order}: allowing {len(from_server)} tools from '{entry}'")
            for tool in from_server:
                allowed.setdefault(tool, None)
            continue

        # Tier 3: exact tool name
        if entry in available:
            allowed.setdefault(entry, None)
            continue

        logger.warning(f"Step {step.order}: tool '{entry}' not found in available tools or connections")

    filtered = list(allowed)
    logger.debug(f"Step {step.order}: {len(filtered)} allowed of {len(available_tools)} available tools")
    return filtered


def build_mcp_servers(connections: Iterable[ResolvedConnection]) -> dict[str, dict[str, Any]]:
    """Engine server map for locally spawned connections."""
    return {c.name: c.to_mcp_server() for c in connections if not c.platform_backed and c.command}


def resolve_connection(connection: Connection) -> ResolvedConnection | None:
    """Validate a stored connection's invocation parameters. None when unusable."""
    if connection.is_platform_backed:
        # Served through a platform gateway, nothing to spawn locally.
        return ResolvedConnection(name=connection.name, tools=list(connection.tools), platform_backed=True)
    return _resolve_params(connection.name, connection.config, connection.tools)


def _resolve_params(name: str, params: dict[str, Any], tools: list[str]) -> ResolvedConnection | None:
    command = params.get("command")
    args = params.get("args")
    if not command or not isinstance(command, str) or not isinstance(args, list):
        logger.error(f"Invalid invocation parameters for connection '{name}', skipping")
        return None
    env = params.get("env") or {}
    return ResolvedConnection(
        name=name,
        command=command,
        args=[str(a) for a in args],
        env={str(k): str(v) for k, v in env.items()} if isinstance(env, dict) else {},
        tools=list(tools),
    )


class StepConnections:
    """Resolution result for one step."""

    __slots__ = ("connection_names", "connections", "mcp_servers", "available_tools")

    def __init__(
        self,
        connection_names: list[str],
        connections: list[ResolvedConnection],
        available_tools: list[str],
    ):
        self.connection_names = connection_names
        self.connections = connections
        self.mcp_servers = build_mcp_servers(connections)
        self.available_tools = available_tools

    def __repr__(self) -> str:
        return (
            f"StepConnections(names={self.connection_names}, "
            f"servers={list(self.mcp_servers)}, tools={len(self.available_tools)})"
        )


class ConnectionResolver:
    """
    Loads connections from the catalog and filters tools per step.

    Args:
        store: Connection catalog
        static_connections: Process-level table ``{name: {command, args, env}}``
            consulted only when the catalog returns nothing for a non-empty request
    """

    def __init__(
        self,
        store: ConnectionStore,
        static_connections: dict[str, dict[str, Any]] | None = None,
    ):
        self.store = store
        self.static_connections = static_connections or {}

    async def load_connections(self, names: list[str]) -> list[ResolvedConnection]:
        """
        Load active connections by name.

        A catalog outage is logged and treated as no connections available.
        The static table is consulted only when the catalog answered with zero
        records, never after an outage.
        """
        if not names:
            return []

        try:
            records = await self.store.find_active(names)
        except Exception as e:
            logger.error(f"Connection catalog unavailable, continuing without connections: {e}")
            return []

        if not records:
            logger.warning(f"No active connections found for {names}")
            return self.load_static_connections(names)

        resolved = []
        for record in records:
            connection = resolve_connection(record)
            if connection is not None:
                resolved.append(connection)
                logger.debug(f"Loaded connection '{connection.name}' with {len(connection.tools)} tools")
        return resolved

    def load_static_connections(self, names: list[str]) -> list[ResolvedConnection]:
        resolved = []
        for name in names:
            params = self.static_connections.get(name)
            if params is None:
                continue
            connection = _resolve_params(name, params, tools=[])
            if connection is not None:
                logger.info(f"Loaded connection '{name}' from static table")
                resolved.append(connection)
        return resolved

    def static_mcp_servers(self) -> dict[str, dict[str, Any]]:
        """Every usable entry of the static table, as engine servers."""
        return build_mcp_servers(self.load_static_connections(list(self.static_connections)))

    async def resolve(self, step: WorkflowStep, workflow: Workflow) -> StepConnections:
        """Resolve connections, engine servers and filtered tools for one step."""
        names = resolve_connection_names(step, workflow)
        connections = await self.load_connections(names)
        available = [tool for c in connections for tool in c.tools]
        filtered = filter_tools_for_step(step, available, names)
        result = StepConnections(names, connections, filtered)
        logger.info(f"Resolved step {step.order}: {result!r}")
        return result
