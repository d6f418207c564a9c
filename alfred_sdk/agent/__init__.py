"""Classification, step execution and orchestration."""

from alfred_sdk.agent.classifier import WorkflowClassifier
from alfred_sdk.agent.engine import AgentEngine, EngineRequest
from alfred_sdk.agent.orchestrator import (
    OrchestrationResult,
    ProgressSink,
    RunPhase,
    WorkflowOrchestrator,
)
from alfred_sdk.agent.step_executor import StepExecutor, StepResult

__all__ = [
    "AgentEngine",
    "EngineRequest",
    "OrchestrationResult",
    "ProgressSink",
    "RunPhase",
    "StepExecutor",
    "StepResult",
    "WorkflowClassifier",
    "WorkflowOrchestrator",
]
