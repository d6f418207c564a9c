"""
Workflow orchestration core.

Classifies free-text requests against registered workflows and runs a
matched workflow as a chain of forked agent sessions, resolving tool
connections and platform gateways per step.
"""

from alfred_sdk.agent.classifier import WorkflowClassifier
from alfred_sdk.agent.orchestrator import OrchestrationResult, RunPhase, WorkflowOrchestrator
from alfred_sdk.agent.step_executor import StepExecutor, StepResult
from alfred_sdk.config import AppConfig, load_config
from alfred_sdk.gateway.hooks import SkillLifecycleHooks
from alfred_sdk.gateway.manager import GatewayManager
from alfred_sdk.schemas import (
    ClassificationResult,
    Confidence,
    Connection,
    ConnectionSource,
    ExecutionMode,
    Workflow,
    WorkflowStep,
)
from alfred_sdk.tools.connection_resolver import ConnectionResolver

__all__ = [
    "AppConfig",
    "load_config",
    "Workflow",
    "WorkflowStep",
    "Connection",
    "ConnectionSource",
    "ClassificationResult",
    "Confidence",
    "ExecutionMode",
    "ConnectionResolver",
    "GatewayManager",
    "SkillLifecycleHooks",
    "WorkflowClassifier",
    "StepExecutor",
    "StepResult",
    "WorkflowOrchestrator",
    "OrchestrationResult",
    "RunPhase",
]
