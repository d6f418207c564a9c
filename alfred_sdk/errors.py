"""
Error taxonomy for workflow execution.

Every error carries a stable ``error_code`` and the HTTP status the API
layer maps it to. Underlying causes are chained with ``raise ... from``.
"""

from typing import Any


class AlfredError(Exception):
    """Base error."""

    error_code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str, detail: Any = None):
        self.message = message
        self.detail = detail
        super().__init__(message)

    @property
    def cause(self) -> BaseException | None:
        return self.__cause__


class ValidationError(AlfredError):
    """Malformed request or record."""
    error_code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(AlfredError):
    """Referenced workflow or connection does not exist."""
    error_code = "NOT_FOUND"
    status_code = 404


class AgentError(AlfredError):
    """The execution engine reported a failure."""
    error_code = "AGENT_ERROR"
    status_code = 500


class ExecutionTimeoutError(AlfredError):
    """A step exceeded its wall-clock limit."""
    error_code = "TIMEOUT"
    status_code = 504

    def __init__(self, message: str, timeout_seconds: float | None = None, detail: Any = None):
        self.timeout_seconds = timeout_seconds
        super().__init__(message, detail=detail)


class OrchestrationError(AlfredError):
    """A workflow run aborted on a failing step."""
    error_code = "ORCHESTRATION_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        step_order: int | None = None,
        working_directory: str | None = None,
        detail: Any = None,
    ):
        self.step_order = step_order
        self.working_directory = working_directory
        super().__init__(message, detail=detail)


class StorageError(AlfredError):
    """Persistence layer failure."""
    error_code = "STORAGE_ERROR"
    status_code = 500


# =============================================================================
# Tool-hosting platform errors
# =============================================================================


class GatewayError(AlfredError):
    """Remote gateway operation failed."""
    error_code = "GATEWAY_ERROR"
    status_code = 502


class PlatformConnectionError(GatewayError):
    """Tool-hosting platform unreachable."""
    error_code = "PLATFORM_UNREACHABLE"
    status_code = 503


class PlatformAuthError(GatewayError):
    """Tool-hosting platform rejected our credentials."""
    error_code = "PLATFORM_AUTH_ERROR"
    status_code = 401


class GatewayConfigError(GatewayError):
    """Gateway requested with an unusable configuration."""
    error_code = "GATEWAY_CONFIG_ERROR"
    status_code = 400
