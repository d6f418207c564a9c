"""
Workflow Orchestrator

Runs a workflow's steps strictly in order against one shared working
directory. The first step opens a new engine session, every later step
resumes and forks the session returned by the step before it. After the last
declared step an implicit, tool-free synthesis step turns everything
gathered into one direct answer.

Run phases:

    init -> step -> ... -> step -> synthesis -> done
      \\______ any phase ______/-> failed
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from alfred_sdk.agent.prompts import build_synthesis_step
from alfred_sdk.agent.step_executor import StepExecutor, StepResult
from alfred_sdk.agent.workspace import create_working_directory
from alfred_sdk.errors import OrchestrationError
from alfred_sdk.schemas import Workflow, WorkflowStep

logger = logging.getLogger(__name__)


# =============================================================================
# Progress
# =============================================================================


class ProgressSink(Protocol):
    """Receives progress events keyed by request id. Delivery is best-effort."""

    def publish(self, request_id: str, event: dict[str, Any]) -> bool: ...


class StepStatus(str, Enum):
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"


# =============================================================================
# Run state
# =============================================================================


class RunPhase(str, Enum):
    INIT = "init"
    STEP = "step"
    SYNTHESIS = "synthesis"
    DONE = "done"
    FAILED = "failed"


RUN_TRANSITIONS: dict[RunPhase, frozenset[RunPhase]] = {
    RunPhase.INIT: frozenset({RunPhase.STEP, RunPhase.SYNTHESIS, RunPhase.FAILED}),
    RunPhase.STEP: frozenset({RunPhase.STEP, RunPhase.SYNTHESIS, RunPhase.FAILED}),
    RunPhase.SYNTHESIS: frozenset({RunPhase.DONE, RunPhase.FAILED}),
    RunPhase.DONE: frozenset(),
    RunPhase.FAILED: frozenset(),
}


@dataclass
class RunState:
    """Orchestrator-local state for one run."""
    request_id: str
    working_directory: str
    phase: RunPhase = RunPhase.INIT
    session_id: str | None = None
    trace: list[dict[str, Any]] = field(default_factory=list)

    def advance(self, phase: RunPhase) -> None:
        if phase not in RUN_TRANSITIONS[self.phase]:
            raise OrchestrationError(f"Illegal run transition {self.phase.value} -> {phase.value}")
        self.phase = phase


@dataclass
class StepReport:
    order: int
    title: str
    session_id: str
    duration_ms: int
    message_count: int
    tools_used: list[str] = field(default_factory=list)


@dataclass
class OrchestrationResult:
    text: str
    working_directory: str
    trace: list[dict[str, Any]]
    session_id: str
    steps: list[StepReport] = field(default_factory=list)


# =============================================================================
# Orchestrator
# =============================================================================


class WorkflowOrchestrator:
    """
    Sequential multi-step runner.

    Args:
        executor: Step executor
        progress: Optional progress sink
        step_delay_seconds: Pause between consecutive engine calls
        work_root: Parent directory for run working directories
    """

    def __init__(
        self,
        executor: StepExecutor,
        progress: ProgressSink | None = None,
        step_delay_seconds: float = 0.5,
        work_root: str | None = None,
    ):
        self.executor = executor
        self.progress = progress
        self.step_delay_seconds = step_delay_seconds
        self.work_root = work_root

    async def run(
        self,
        workflow: Workflow,
        user_prompt: str,
        request_id: str,
        system_prompt: str | None = None,
    ) -> OrchestrationResult:
        """
        Execute every step of ``workflow`` followed by synthesis.

        Raises:
            OrchestrationError: A step failed. Carries the failing step order
                and the working directory, which the caller cleans up.
        """
        state = RunState(
            request_id=request_id,
            working_directory=create_working_directory(request_id, self.work_root),
        )
        steps = workflow.ordered_steps()
        synthesis = build_synthesis_step(user_prompt, order=(steps[-1].order + 1) if steps else 1)
        plan = [*steps, synthesis]
        reports: list[StepReport] = []

        logger.info(
            f"Running workflow '{workflow.name}' ({len(steps)} steps + synthesis) in {state.working_directory}"
        )

        result: StepResult | None = None
        for index, step in enumerate(plan):
            is_synthesis = step is synthesis
            state.advance(RunPhase.SYNTHESIS if is_synthesis else RunPhase.STEP)

            if index > 0 and self.step_delay_seconds > 0:
                await asyncio.sleep(self.step_delay_seconds)

            result = await self._run_step(
                state, workflow, step, user_prompt, system_prompt,
                position=index + 1, total=len(plan), tool_free=is_synthesis,
            )
            state.session_id = result.session_id
            state.trace.extend(result.trace)
            reports.append(StepReport(
                order=step.order,
                title="Synthesis" if is_synthesis else step.title,
                session_id=result.session_id,
                duration_ms=result.duration_ms,
                message_count=len(result.trace),
                tools_used=result.tools_used,
            ))

        state.advance(RunPhase.DONE)
        logger.info(f"Workflow '{workflow.name}' completed, {len(state.trace)} messages traced")

        return OrchestrationResult(
            text=result.text if result else "",
            working_directory=state.working_directory,
            trace=state.trace,
            session_id=state.session_id or "",
            steps=reports,
        )

    async def _run_step(
        self,
        state: RunState,
        workflow: Workflow,
        step: WorkflowStep,
        user_prompt: str,
        system_prompt: str | None,
        position: int,
        total: int,
        tool_free: bool,
    ) -> StepResult:
        fork = position > 1
        title = "Synthesis" if tool_free else step.title
        self._publish(state.request_id, {
            "type": "step", "order": step.order, "title": title, "status": StepStatus.RUNNING.value,
        })
        t_start = time.time()

        try:
            result = await self.executor.execute_step(
                workflow=workflow,
                step=step,
                user_prompt=user_prompt,
                request_id=state.request_id,
                working_directory=state.working_directory,
                session_id=state.session_id if fork else None,
                fork_session=fork,
                system_prompt=system_prompt,
                position=position,
                total=total,
                tool_free=tool_free,
                on_tools=lambda names: self._publish(
                    state.request_id, {"type": "detail", "order": step.order, "tools": names}
                ),
            )
        except Exception as e:
            duration_ms = int((time.time() - t_start) * 1000)
            state.advance(RunPhase.FAILED)
            self._publish(state.request_id, {
                "type": "step", "order": step.order, "title": title,
                "status": StepStatus.ERROR.value, "duration_ms": duration_ms, "error": str(e),
            })
            logger.error(f"Step {step.order} of '{workflow.name}' failed after {duration_ms}ms: {e}")
            raise OrchestrationError(
                f"Workflow orchestration failed at step {step.order}: {e}",
                step_order=step.order,
                working_directory=state.working_directory,
            ) from e

        self._publish(state.request_id, {
            "type": "step", "order": step.order, "title": title,
            "status": StepStatus.COMPLETE.value, "duration_ms": result.duration_ms,
        })
        if fork:
            logger.info(f"Step {step.order} forked {state.session_id} -> {result.session_id}")
        return result

    def _publish(self, request_id: str, event: dict[str, Any]) -> None:
        if self.progress is not None:
            self.progress.publish(request_id, event)
