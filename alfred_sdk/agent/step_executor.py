"""
Step Executor

Runs one workflow step (or a one-off prompt) through the execution engine:
resolves connections and gateways, builds step-scoped prompts and builtin
tool restrictions, consumes the engine's message stream under a deadline and
normalizes the outcome into a ``StepResult``.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from alfred_sdk.agent.engine import (
    AgentEngine,
    EngineRequest,
    extract_response_text,
    is_init_message,
    is_result_message,
    tool_uses,
)
from alfred_sdk.agent.prompts import (
    PromptLoader,
    build_step_system_prompt,
    build_step_user_prompt,
    build_user_prompt,
)
from alfred_sdk.config import AgentConfig
from alfred_sdk.errors import AgentError, AlfredError, ExecutionTimeoutError
from alfred_sdk.gateway.manager import GatewayManager
from alfred_sdk.schemas import Workflow, WorkflowStep
from alfred_sdk.tools.connection_resolver import ConnectionResolver

logger = logging.getLogger(__name__)


# Engine builtins a step can be denied
ENGINE_BUILTIN_TOOLS: tuple[str, ...] = (
    "Task",
    "Bash",
    "Glob",
    "Grep",
    "ExitPlanMode",
    "Read",
    "Edit",
    "Write",
    "NotebookEdit",
    "WebFetch",
    "TodoWrite",
    "WebSearch",
    "BashOutput",
    "KillShell",
    "Skill",
    "SlashCommand",
)

ToolCallback = Callable[[list[str]], None]


def build_disallowed_tools(
    allowed_tools: list[str] | None,
    global_disallowed: list[str],
    step_disallowed: list[str] | None = None,
) -> list[str]:
    """
    Builtin deny list for a step.

    - ``allowed_tools`` unset: only the global and step deny lists apply
    - ``allowed_tools`` empty: every builtin is denied
    - otherwise: builtins not named in ``allowed_tools`` are denied
    """
    if allowed_tools is None:
        denied = []
    else:
        allowed = set(allowed_tools)
        denied = [tool for tool in ENGINE_BUILTIN_TOOLS if tool not in allowed]
    return list(dict.fromkeys([*denied, *global_disallowed, *(step_disallowed or [])]))


@dataclass
class StepResult:
    """Normalized outcome of one engine call."""
    text: str
    session_id: str
    working_directory: str
    trace: list[dict[str, Any]] = field(default_factory=list)
    tools_used: list[str] = field(default_factory=list)
    duration_ms: int = 0
    cost_usd: float | None = None


class StepExecutor:
    """
    Executes single engine calls.

    Args:
        engine: Execution engine
        resolver: Connection resolver
        gateways: Gateway manager, None when platform gateways are not used
        config: Engine settings (model, timeout, global deny list)
        prompts: Prompt loader, built from ``config`` when omitted
    """

    def __init__(
        self,
        engine: AgentEngine,
        resolver: ConnectionResolver,
        gateways: GatewayManager | None,
        config: AgentConfig,
        prompts: PromptLoader | None = None,
    ):
        self.engine = engine
        self.resolver = resolver
        self.gateways = gateways
        self.config = config
        self.prompts = prompts or PromptLoader(config)

    async def execute_step(
        self,
        *,
        workflow: Workflow,
        step: WorkflowStep,
        user_prompt: str,
        request_id: str,
        working_directory: str,
        session_id: str | None = None,
        fork_session: bool = False,
        system_prompt: str | None = None,
        position: int = 1,
        total: int = 1,
        tool_free: bool = False,
        on_tools: ToolCallback | None = None,
    ) -> StepResult:
        """
        Run one workflow step.

        ``tool_free`` skips connection and gateway resolution entirely and
        denies every builtin, as used by the synthesis step.
        """
        mcp_servers: dict[str, dict[str, Any]] = {}
        if not tool_free:
            connections = await self.resolver.resolve(step, workflow)
            mcp_servers.update(connections.mcp_servers)
            if self.gateways is not None:
                gateway_config = await self.gateways.get_gateway_config_for_step(workflow.id, step.order)
                for name, ref in gateway_config.items():
                    mcp_servers[name] = ref.to_engine_config()

        base_prompt = self.prompts.system_prompt(system_prompt)
        allowed_tools = [] if tool_free else step.allowed_tools

        request = EngineRequest(
            prompt=build_step_user_prompt(user_prompt, step, is_first=position == 1),
            system_prompt=build_step_system_prompt(base_prompt, step, position, total),
            cwd=working_directory,
            mcp_servers=mcp_servers,
            disallowed_tools=build_disallowed_tools(
                allowed_tools, self.config.disallowed_tools, step.disallowed_tools
            ),
            model=self.config.model,
            resume=session_id if fork_session and session_id else None,
            fork_session=bool(fork_session and session_id),
        )

        if request.fork_session:
            logger.info(f"Step {step.order}: forking session {session_id}")
        else:
            logger.info(f"Step {step.order}: new session")
        logger.debug(
            f"Step {step.order}: servers={list(mcp_servers)} "
            f"disallowed={len(request.disallowed_tools)} cwd={working_directory}"
        )

        return await self._run(
            request,
            label=f"Step {step.order}",
            fallback_session_id=session_id or f"step-{step.order}-{request_id}",
            on_tools=on_tools,
        )

    async def run_single(
        self,
        prompt: str,
        request_id: str,
        working_directory: str,
        system_prompt: str | None = None,
        on_tools: ToolCallback | None = None,
    ) -> StepResult:
        """One-off run in a fresh session with the static connection table."""
        request = EngineRequest(
            prompt=build_user_prompt(prompt, self.prompts.user_prompt_prefix()),
            system_prompt=self.prompts.system_prompt(system_prompt),
            cwd=working_directory,
            mcp_servers=self.resolver.static_mcp_servers(),
            disallowed_tools=list(self.config.disallowed_tools),
            model=self.config.model,
        )
        return await self._run(
            request,
            label="Agent",
            fallback_session_id=f"agent-{request_id}",
            on_tools=on_tools,
        )

    async def _run(
        self,
        request: EngineRequest,
        label: str,
        fallback_session_id: str,
        on_tools: ToolCallback | None,
    ) -> StepResult:
        t_start = time.time()
        trace: list[dict[str, Any]] = []
        tools_used: list[str] = []
        state: dict[str, Any] = {"session_id": None, "result": None}

        async def consume() -> None:
            async for message in self.engine.run(request):
                trace.append(message)
                if is_init_message(message):
                    state["session_id"] = message.get("session_id")
                    logger.debug(f"{label}: engine session {state['session_id']}")
                elif is_result_message(message):
                    state["result"] = message
                else:
                    names = tool_uses(message)
                    if names:
                        tools_used.extend(names)
                        logger.info(f"{label}: tools {', '.join(names)}")
                        if on_tools is not None:
                            on_tools(names)

        timeout = self.config.step_timeout_seconds
        try:
            await asyncio.wait_for(consume(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ExecutionTimeoutError(f"{label} execution timed out after {timeout}s", timeout) from e
        except AlfredError:
            raise
        except Exception as e:
            raise AgentError(f"{label} execution failed: {e}") from e

        result = state["result"]
        text = extract_response_text(result)
        session_id = state["session_id"] or fallback_session_id

        elapsed_ms = int((time.time() - t_start) * 1000)
        cost = result.get("total_cost_usd") if result else None
        logger.info(
            f"{label} completed in {elapsed_ms / 1000:.2f}s "
            f"({len(trace)} messages, turns={result.get('num_turns') if result else None})"
        )

        return StepResult(
            text=text,
            session_id=session_id,
            working_directory=request.cwd,
            trace=trace,
            tools_used=tools_used,
            duration_ms=elapsed_ms,
            cost_usd=cost,
        )
