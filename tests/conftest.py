"""
Shared fixtures: scripted engine and LLM doubles, sample workflows.
"""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest

from alfred_sdk.config import AgentConfig
from alfred_sdk.llm import ChatInvokeCompletion
from alfred_sdk.schemas import Connection, ConnectionSource, Workflow, WorkflowStep


# =============================================================================
# Engine double
# =============================================================================


def engine_messages(
    session_id: str,
    text: str,
    tools: tuple[str, ...] = (),
    subtype: str = "success",
) -> list[dict[str, Any]]:
    """init, one assistant message (with tool uses) and a result."""
    content: list[dict[str, Any]] = [{"type": "text", "text": "working"}]
    content += [{"type": "tool_use", "id": f"tu-{i}", "name": name, "input": {}} for i, name in enumerate(tools)]
    return [
        {"type": "system", "subtype": "init", "session_id": session_id},
        {"type": "assistant", "content": content},
        {
            "type": "result",
            "subtype": subtype,
            "result": text,
            "errors": ["boom"] if subtype != "success" else [],
            "session_id": session_id,
            "duration_ms": 5,
            "num_turns": 1,
            "total_cost_usd": 0.001,
        },
    ]


class FakeEngine:
    """
    Yields scripted messages per call.

    Each script entry is a message list, an exception to raise, or a
    coroutine factory to await (for timeouts). Unscripted calls answer
    ``answer {n}`` in session ``sess-{n}``.
    """

    def __init__(self, scripts: list[Any] | None = None):
        self.scripts = list(scripts or [])
        self.requests = []

    async def run(self, request):
        self.requests.append(request)
        n = len(self.requests)
        script = self.scripts.pop(0) if self.scripts else engine_messages(f"sess-{n}", f"answer {n}")

        if isinstance(script, Exception):
            raise script
        if callable(script):
            await script()
            return
        for message in script:
            yield message


class RecordingSink:
    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    def publish(self, request_id: str, event: dict[str, Any]) -> bool:
        self.events.append((request_id, event))
        return True

    def of_type(self, kind: str) -> list[dict[str, Any]]:
        return [e for _, e in self.events if e.get("type") == kind]


async def hang():
    await asyncio.sleep(10)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def agent_config(tmp_path):
    return AgentConfig(
        model="test-model",
        step_timeout_seconds=5,
        step_delay_seconds=0,
        work_root=str(tmp_path / "runs"),
        prompts_dir=str(tmp_path / "prompts"),
    )


@pytest.fixture
def llm_answering():
    """Factory: chat model double answering ``content`` to every call."""

    def factory(content: str):
        llm = Mock()
        llm.model = "test-classifier"
        llm.ainvoke = AsyncMock(return_value=ChatInvokeCompletion(content=content, model="test-classifier"))
        return llm

    return factory


@pytest.fixture
def digest_workflow():
    return Workflow(
        id="digest-1",
        name="Email Digest",
        description="Summarize unread email into a digest and send it",
        connection_names=["Gmail"],
        steps=[
            WorkflowStep(order=1, prompt="Fetch unread emails from the inbox", allowed_tools=["GMAIL_FETCH_EMAILS"]),
            WorkflowStep(order=2, prompt="Group the emails by sender and topic"),
            WorkflowStep(order=3, prompt="Write a short digest", guidance="Keep it under 200 words"),
        ],
    )


@pytest.fixture
def github_connection():
    return Connection(
        name="github",
        tools=["github__create_pr", "github__list_issues", "github__merge_pr"],
        config={"command": "npx", "args": ["-y", "@mcp/github"], "env": {"GITHUB_TOKEN": "t"}},
    )


@pytest.fixture
def gmail_connection():
    return Connection(
        name="Gmail",
        tools=["GMAIL_FETCH_EMAILS", "GMAIL_SEND_EMAIL"],
        source=ConnectionSource.COMPOSIO,
        composio_toolkit="gmail",
        composio_account_id="ca_123",
    )
