"""
Core data models for workflow orchestration.

Workflows, steps and connections are validated here once, at the store
boundary, so the resolver, gateway manager and orchestrator can rely on
their shape instead of re-checking raw documents at every read site.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utc_now() -> datetime:
    """Current UTC time (timezone aware)."""
    return datetime.now(timezone.utc)


class Confidence(str, Enum):
    """Classifier confidence levels."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"

    @classmethod
    def parse(cls, value: Any, default: "Confidence | None" = None) -> "Confidence | None":
        """Lenient parse of a model-supplied confidence value."""
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return default


class ConnectionSource(str, Enum):
    """Where a connection's tools are served from."""
    MANUAL = "manual"      # Locally spawned MCP server (command + args)
    COMPOSIO = "composio"  # Remote tool-hosting platform gateway


class ExecutionMode(str, Enum):
    """Request execution modes."""
    CLASSIFIER = "classifier"      # Classify only, no execution
    ORCHESTRATOR = "orchestrator"  # Classify, run workflow on match, else default
    DEFAULT = "default"            # One-off agent run, no classification


# =============================================================================
# Workflows
# =============================================================================


class WorkflowStep(BaseModel):
    """One unit of work within a workflow."""

    model_config = ConfigDict(extra="ignore")

    order: int = Field(..., ge=0, description="Execution order, unique within a workflow")
    prompt: str = Field(..., min_length=1, description="Task prompt for this step")
    guidance: str | None = Field(default=None, description="Optional extra guidance")
    allowed_tools: list[str] | None = Field(
        default=None,
        description="Tool specifiers: builtin name | connection name | exact tool name. "
                    "None means unrestricted, [] means no tools.",
    )
    disallowed_tools: list[str] = Field(default_factory=list)
    connection_names: list[str] = Field(
        default_factory=list,
        description="Step-level connections, override the workflow-level list",
    )

    @property
    def title(self) -> str:
        """Short display title."""
        first_line = self.prompt.strip().splitlines()[0] if self.prompt.strip() else ""
        return first_line if len(first_line) <= 60 else first_line[:57] + "..."


class Workflow(BaseModel):
    """An ordered sequence of steps executed against one request."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = Field(..., min_length=1)
    description: str = ""
    steps: list[WorkflowStep] = Field(default_factory=list)
    connection_names: list[str] = Field(
        default_factory=list,
        description="Workflow-level connections (fallback for steps without their own)",
    )
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("steps")
    @classmethod
    def _unique_step_orders(cls, steps: list[WorkflowStep]) -> list[WorkflowStep]:
        orders = [s.order for s in steps]
        if len(orders) != len(set(orders)):
            raise ValueError(f"Step orders must be unique, got {orders}")
        return steps

    def ordered_steps(self) -> list[WorkflowStep]:
        """Steps in execution order."""
        return sorted(self.steps, key=lambda s: s.order)

    def summary(self) -> "WorkflowSummary":
        return WorkflowSummary(id=self.id, name=self.name, description=self.description)


class WorkflowSummary(BaseModel):
    """Registry entry sent to the classifier (no step bodies)."""
    id: str
    name: str
    description: str = ""


# =============================================================================
# Connections
# =============================================================================


class Connection(BaseModel):
    """A named, reusable reference to a tool source."""

    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    name: str = Field(..., min_length=1)
    is_active: bool = True
    tools: list[str] = Field(default_factory=list)
    source: ConnectionSource = ConnectionSource.MANUAL

    # Local invocation parameters (source=manual)
    config: dict[str, Any] = Field(
        default_factory=dict,
        description="Invocation parameters: {command, args, env}",
    )

    # Tool-hosting platform (source=composio)
    composio_toolkit: str | None = None
    composio_account_id: str | None = None
    auth_status: str = "active"

    created_at: datetime = Field(default_factory=utc_now)

    @property
    def is_platform_backed(self) -> bool:
        return self.source == ConnectionSource.COMPOSIO.value


class ResolvedConnection(BaseModel):
    """A connection ready to hand to the execution engine."""

    name: str
    tools: list[str] = Field(default_factory=list)
    command: str | None = None
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    platform_backed: bool = False

    def to_mcp_server(self) -> dict[str, Any]:
        """Engine stdio server entry."""
        return {"command": self.command, "args": list(self.args), "env": dict(self.env)}


# =============================================================================
# Gateways
# =============================================================================


class ToolkitGatewayRecord(BaseModel):
    """Shared, toolkit-scoped gateway. Unique by toolkit."""

    toolkit: str
    auth_config_id: str
    server_id: str
    url: str
    tools: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class StepGatewayRecord(BaseModel):
    """Custom gateway for one workflow step. Unique by (workflow_id, step_order)."""

    workflow_id: str
    step_order: int
    auth_config_ids: list[str] = Field(default_factory=list)
    server_id: str
    url: str
    allowed_tools: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def key(self) -> str:
        return step_gateway_key(self.workflow_id, self.step_order)


def step_gateway_key(workflow_id: str, step_order: int) -> str:
    return f"{workflow_id}:{step_order}"


class GatewayRef(BaseModel):
    """
    Gateway entry consumed by the execution engine.

    Serialized shape: {"url", "type", "headers", "query_params"}.
    """

    url: str
    type: Literal["http"] = "http"
    headers: dict[str, str] = Field(default_factory=dict)
    query_params: dict[str, str] = Field(default_factory=dict)

    def to_engine_config(self) -> dict[str, Any]:
        """Render as an engine HTTP server entry, query params folded into the URL."""
        url = self.url
        if self.query_params:
            parts = urlsplit(url)
            query = dict(parse_qsl(parts.query))
            query.update(self.query_params)
            url = urlunsplit(parts._replace(query=urlencode(query)))
        return {"type": self.type, "url": url, "headers": dict(self.headers)}


# =============================================================================
# Classification
# =============================================================================


class ClassificationResult(BaseModel):
    """Outcome of matching a prompt against the workflow registry."""

    workflow_id: str | None = None
    workflow: Workflow | None = None
    confidence: Confidence = Confidence.NONE
    reasoning: str | None = None

    @model_validator(mode="after")
    def _consistent(self) -> "ClassificationResult":
        if self.workflow is not None and self.workflow_id is None:
            self.workflow_id = self.workflow.id
        return self

    @property
    def matched(self) -> bool:
        return self.workflow_id is not None and self.workflow is not None

    @classmethod
    def no_match(
        cls,
        confidence: Confidence = Confidence.NONE,
        reasoning: str | None = None,
    ) -> "ClassificationResult":
        return cls(workflow_id=None, workflow=None, confidence=confidence, reasoning=reasoning)
