"""
Execution engine contract.

The engine runs one agent call: it takes a prompt, a system prompt, a tool
server map and a working directory, starts a new session or resumes and
forks an existing one, and streams messages as plain dicts:

    {"type": "system", "subtype": "init", "session_id": "..."}
    {"type": "assistant", "content": [{"type": "text", "text": "..."},
                                      {"type": "tool_use", "name": "...", "input": {...}}]}
    {"type": "result", "subtype": "success" | "error_...", "result": "...",
     "errors": [...], "session_id": "...", "duration_ms": 0, "num_turns": 0,
     "total_cost_usd": 0.0}
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol

from alfred_sdk.errors import AgentError

NO_RESULT_TEXT = "Agent completed successfully but returned no result."


@dataclass
class EngineRequest:
    """Everything one engine call needs."""
    prompt: str
    system_prompt: str
    cwd: str
    mcp_servers: dict[str, dict[str, Any]] = field(default_factory=dict)
    disallowed_tools: list[str] = field(default_factory=list)
    model: str | None = None
    resume: str | None = None
    fork_session: bool = False


class AgentEngine(Protocol):
    """Language-model agent execution engine."""

    def run(self, request: EngineRequest) -> AsyncIterator[dict[str, Any]]: ...


# =============================================================================
# Message helpers
# =============================================================================


def is_init_message(message: dict[str, Any]) -> bool:
    return message.get("type") == "system" and message.get("subtype") == "init"


def is_result_message(message: dict[str, Any]) -> bool:
    return message.get("type") == "result"


def tool_uses(message: dict[str, Any]) -> list[str]:
    """Names of tools invoked in an assistant message."""
    if message.get("type") != "assistant":
        return []
    content = message.get("content")
    if not isinstance(content, list):
        return []
    return [b.get("name", "") for b in content if isinstance(b, dict) and b.get("type") == "tool_use"]


def extract_response_text(result: dict[str, Any] | None) -> str:
    """
    Text of a terminal result message.

    Raises:
        AgentError: The result reports an ``error_*`` subtype
    """
    if not result:
        return NO_RESULT_TEXT

    subtype = result.get("subtype") or ""
    if subtype.startswith("error"):
        errors = result.get("errors") or []
        detail = "\n".join(str(e) for e in errors) or result.get("result") or subtype
        raise AgentError(f"Agent execution failed: {detail}", detail={"subtype": subtype})

    if result.get("is_error"):
        raise AgentError(f"Agent execution failed: {result.get('result') or 'unknown error'}")

    text = result.get("result")
    if isinstance(text, str) and text:
        return text
    return NO_RESULT_TEXT
