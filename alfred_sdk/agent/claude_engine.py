"""
Claude Agent SDK engine adapter.

Requires the ``agent`` extra (``pip install alfred-agent[agent]``).
"""

import logging
from collections.abc import AsyncIterator
from dataclasses import asdict, is_dataclass
from typing import Any

from alfred_sdk.agent.engine import EngineRequest
from alfred_sdk.errors import AgentError

logger = logging.getLogger(__name__)


class ClaudeAgentEngine:
    """
    Runs engine requests through ``claude_agent_sdk.query``.

    Tools are never prompted for permission, the engine runs unattended.
    """

    def __init__(self, permission_mode: str = "bypassPermissions"):
        self.permission_mode = permission_mode

    async def run(self, request: EngineRequest) -> AsyncIterator[dict[str, Any]]:
        try:
            from claude_agent_sdk import ClaudeAgentOptions, query
        except ImportError as e:
            raise AgentError(
                "claude-agent-sdk is not installed, install the 'agent' extra"
            ) from e

        options = ClaudeAgentOptions(
            model=request.model,
            system_prompt=request.system_prompt,
            mcp_servers=request.mcp_servers,
            disallowed_tools=request.disallowed_tools,
            cwd=request.cwd,
            permission_mode=self.permission_mode,
            resume=request.resume,
            fork_session=request.fork_session,
        )

        async for message in query(prompt=request.prompt, options=options):
            yield message_to_dict(message)


def message_to_dict(message: Any) -> dict[str, Any]:
    """Convert an SDK message object into the engine dict shape."""
    from claude_agent_sdk import AssistantMessage, ResultMessage, SystemMessage, UserMessage

    if isinstance(message, SystemMessage):
        data = dict(message.data or {})
        return {"type": "system", "subtype": message.subtype, **data}

    if isinstance(message, AssistantMessage):
        return {
            "type": "assistant",
            "model": message.model,
            "content": [_block_to_dict(b) for b in message.content],
        }

    if isinstance(message, UserMessage):
        content = message.content
        if isinstance(content, list):
            content = [_block_to_dict(b) for b in content]
        return {"type": "user", "content": content}

    if isinstance(message, ResultMessage):
        result = {
            "type": "result",
            "subtype": message.subtype,
            "result": message.result,
            "is_error": message.is_error,
            "session_id": message.session_id,
            "duration_ms": message.duration_ms,
            "num_turns": message.num_turns,
            "total_cost_usd": message.total_cost_usd,
            "usage": message.usage,
        }
        if message.is_error and message.result:
            result["errors"] = [message.result]
        return result

    logger.debug(f"Unrecognized engine message {type(message).__name__}")
    if is_dataclass(message):
        return {"type": "unknown", **asdict(message)}
    return {"type": "unknown", "repr": repr(message)}


_BLOCK_TYPES = {
    "TextBlock": "text",
    "ThinkingBlock": "thinking",
    "ToolUseBlock": "tool_use",
    "ToolResultBlock": "tool_result",
}


def _block_to_dict(block: Any) -> dict[str, Any]:
    if isinstance(block, dict):
        return block
    block_type = _BLOCK_TYPES.get(type(block).__name__, "unknown")
    data = asdict(block) if is_dataclass(block) else {"value": repr(block)}
    return {"type": block_type, **data}
