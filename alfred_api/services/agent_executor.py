"""
Execution-mode dispatcher.

Routes a request by mode:

- classifier: classify only, nothing executes
- orchestrator: classify, run the matched workflow, else fall back to a one-off run
- default: one-off run, no classification

Every run publishes a terminal ``complete`` or ``error`` event to the
progress broker and removes its working directory afterwards.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from alfred_api.core.logging import LogContext
from alfred_api.services.progress_broker import ProgressBroker
from alfred_sdk.agent.classifier import WorkflowClassifier
from alfred_sdk.agent.orchestrator import WorkflowOrchestrator
from alfred_sdk.agent.step_executor import StepExecutor
from alfred_sdk.agent.workspace import cleanup_working_directory, create_working_directory
from alfred_sdk.config import AgentConfig
from alfred_sdk.errors import AlfredError, OrchestrationError
from alfred_sdk.schemas import ClassificationResult, ExecutionMode, Workflow

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    text: str
    request_id: str
    mode: ExecutionMode
    classification: ClassificationResult | None = None
    workflow: Workflow | None = None
    trace: list[dict[str, Any]] = field(default_factory=list)
    session_id: str | None = None
    duration_ms: int = 0

    @property
    def workflow_id(self) -> str | None:
        return self.workflow.id if self.workflow else None


def format_classification(classification: ClassificationResult) -> str:
    reasoning = f"Reasoning: {classification.reasoning}\n" if classification.reasoning else ""

    if not classification.matched:
        return (
            "Classification Result:\n\n"
            "No matching workflow found.\n"
            f"Confidence: {classification.confidence.value}\n"
            f"{reasoning}\n"
            "In orchestrator mode, this would fall back to one-off agent execution."
        )

    workflow = classification.workflow
    return (
        "Classification Result:\n\n"
        f"Matched Workflow: {workflow.name}\n"
        f"Workflow ID: {classification.workflow_id}\n"
        f"Confidence: {classification.confidence.value}\n"
        f"{reasoning}\n"
        f"Steps: {len(workflow.steps)}\n\n"
        "No execution performed (classifier mode)."
    )


class AgentExecutor:
    """
    Mode dispatcher over classifier, orchestrator and step executor.

    Args:
        classifier: Workflow classifier
        orchestrator: Multi-step orchestrator
        executor: Step executor, used for one-off runs
        broker: Progress broker
        config: Engine settings (work root)
    """

    def __init__(
        self,
        classifier: WorkflowClassifier,
        orchestrator: WorkflowOrchestrator,
        executor: StepExecutor,
        broker: ProgressBroker,
        config: AgentConfig,
    ):
        self.classifier = classifier
        self.orchestrator = orchestrator
        self.executor = executor
        self.broker = broker
        self.config = config

    async def execute(
        self,
        mode: ExecutionMode,
        prompt: str,
        request_id: str,
        system_prompt: str | None = None,
    ) -> ExecutionResult:
        """
        Run ``prompt`` in ``mode``.

        Raises:
            AlfredError: Execution failed. An ``error`` event was published first.
        """
        mode = ExecutionMode(mode)
        t_start = time.time()
        logger.info(f"Executing in {mode.value} mode")

        try:
            if mode == ExecutionMode.CLASSIFIER:
                result = await self._classify_only(prompt, request_id)
            elif mode == ExecutionMode.ORCHESTRATOR:
                result = await self._orchestrate(prompt, request_id, system_prompt)
            else:
                result = await self._run_default(prompt, request_id, system_prompt, mode)
        except Exception as e:
            self.broker.publish(request_id, {
                "type": "error",
                "error": type(e).__name__ if isinstance(e, AlfredError) else "InternalError",
                "message": str(e),
            })
            raise

        result.duration_ms = int((time.time() - t_start) * 1000)
        self.broker.publish(request_id, {
            "type": "complete",
            "status": "completed",
            "output": result.text,
            "metadata": {
                "mode": mode.value,
                "workflow_id": result.workflow_id,
                "duration_ms": result.duration_ms,
                "message_count": len(result.trace),
            },
        })
        return result

    async def _classify_only(self, prompt: str, request_id: str) -> ExecutionResult:
        classification = await self.classifier.classify(prompt)
        return ExecutionResult(
            text=format_classification(classification),
            request_id=request_id,
            mode=ExecutionMode.CLASSIFIER,
            classification=classification,
            workflow=classification.workflow,
        )

    async def _orchestrate(
        self,
        prompt: str,
        request_id: str,
        system_prompt: str | None,
    ) -> ExecutionResult:
        classification = await self.classifier.classify(prompt)

        if not classification.matched:
            logger.info(f"No workflow match ({classification.confidence.value}), falling back to default agent")
            result = await self._run_default(prompt, request_id, system_prompt, ExecutionMode.ORCHESTRATOR)
            result.classification = classification
            return result

        workflow = classification.workflow
        logger.info(f"Workflow matched: {workflow.name} ({classification.confidence.value})")
        self.broker.publish(request_id, {
            "type": "workflow_selected",
            "workflow": workflow.name,
            "workflow_id": workflow.id,
            "steps": [{"order": s.order, "title": s.title} for s in workflow.ordered_steps()],
        })

        working_directory = None
        try:
            with LogContext(workflow=workflow.name):
                run = await self.orchestrator.run(workflow, prompt, request_id, system_prompt)
            working_directory = run.working_directory
        except OrchestrationError as e:
            working_directory = e.working_directory
            raise
        finally:
            await cleanup_working_directory(working_directory)

        return ExecutionResult(
            text=run.text,
            request_id=request_id,
            mode=ExecutionMode.ORCHESTRATOR,
            classification=classification,
            workflow=workflow,
            trace=run.trace,
            session_id=run.session_id,
        )

    async def _run_default(
        self,
        prompt: str,
        request_id: str,
        system_prompt: str | None,
        mode: ExecutionMode,
    ) -> ExecutionResult:
        working_directory = create_working_directory(request_id, self.config.work_root)
        try:
            step = await self.executor.run_single(
                prompt,
                request_id=request_id,
                working_directory=working_directory,
                system_prompt=system_prompt,
                on_tools=lambda names: self.broker.publish(request_id, {"type": "detail", "tools": names}),
            )
        finally:
            await cleanup_working_directory(working_directory)

        return ExecutionResult(
            text=step.text,
            request_id=request_id,
            mode=mode,
            trace=step.trace,
            session_id=step.session_id,
        )
