"""API models: request/response schemas and collection names."""

from alfred_api.models.collections import COLLECTIONS, Collections
from alfred_api.models.schemas import (
    REQUEST_ID_PATTERN,
    AcceptedResponse,
    ClassificationInfo,
    ConnectionCreateRequest,
    HealthResponse,
    WebhookRequest,
    WebhookResponse,
    WorkflowCreateRequest,
    WorkflowUpdateRequest,
)

__all__ = [
    "COLLECTIONS",
    "Collections",
    "REQUEST_ID_PATTERN",
    "AcceptedResponse",
    "ClassificationInfo",
    "ConnectionCreateRequest",
    "HealthResponse",
    "WebhookRequest",
    "WebhookResponse",
    "WorkflowCreateRequest",
    "WorkflowUpdateRequest",
]
