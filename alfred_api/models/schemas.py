"""
API request/response models.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from alfred_sdk.schemas import (
    ClassificationResult,
    Confidence,
    ConnectionSource,
    ExecutionMode,
    WorkflowStep,
)

REQUEST_ID_PATTERN = r"^[A-Za-z0-9_-]{1,100}$"


# =============================================================================
# Webhook
# =============================================================================


class WebhookRequest(BaseModel):
    """Prompt submission."""

    prompt: str = Field(..., min_length=1, max_length=100_000, description="User prompt")
    mode: ExecutionMode = Field(default=ExecutionMode.ORCHESTRATOR, description="Execution mode")
    request_id: Optional[str] = Field(default=None, pattern=REQUEST_ID_PATTERN, description="Caller request id")
    system_prompt: Optional[str] = Field(default=None, max_length=50_000, description="System prompt override")
    run_async: bool = Field(default=False, alias="async", description="Acknowledge immediately, stream the result")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "prompt": "send me a digest of unread mail",
                "mode": "orchestrator",
                "request_id": "digest-2024-06-01",
                "async": False,
            }
        },
    )


class ClassificationInfo(BaseModel):
    workflow_id: Optional[str] = None
    workflow_name: Optional[str] = None
    confidence: Confidence = Confidence.NONE
    reasoning: Optional[str] = None

    @classmethod
    def from_result(cls, result: ClassificationResult) -> "ClassificationInfo":
        return cls(
            workflow_id=result.workflow_id,
            workflow_name=result.workflow.name if result.workflow else None,
            confidence=result.confidence,
            reasoning=result.reasoning,
        )


class WebhookResponse(BaseModel):
    response: str
    request_id: str
    mode: ExecutionMode
    classification: Optional[ClassificationInfo] = None
    workflow_id: Optional[str] = None
    workflow: Optional[str] = None
    session_id: Optional[str] = None
    duration_ms: int = 0
    trace: Optional[List[Dict[str, Any]]] = None


class AcceptedResponse(BaseModel):
    status: str = "processing"
    request_id: str
    stream_url: str


# =============================================================================
# Workflows
# =============================================================================


class WorkflowCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    steps: List[WorkflowStep] = Field(..., min_length=1)
    connection_names: Optional[List[str]] = None
    is_active: bool = True


class WorkflowUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    steps: Optional[List[WorkflowStep]] = Field(default=None, min_length=1)
    connection_names: Optional[List[str]] = None
    is_active: Optional[bool] = None


# =============================================================================
# Connections
# =============================================================================


class ConnectionCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    tools: List[str] = Field(default_factory=list)
    source: ConnectionSource = ConnectionSource.MANUAL
    command: Optional[str] = None
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    composio_toolkit: Optional[str] = None
    composio_account_id: Optional[str] = None
    is_active: bool = True


# =============================================================================
# Health
# =============================================================================


class HealthResponse(BaseModel):
    status: str = Field(..., description="healthy | degraded")
    version: str
    database: str = Field(..., description="mongodb | memory | unreachable")
    platform: str = Field(..., description="ok | disabled | unreachable")
    active_tasks: int = 0
