"""Unit tests for platform toolkit helpers."""

from alfred_sdk.schemas import WorkflowStep
from alfred_sdk.tools.toolkits import (
    extract_toolkits,
    get_toolkit_from_tool,
    is_platform_tool,
    platform_tools,
    step_requires_platform,
)


class TestToolkitHelpers:

    def test_is_platform_tool(self):
        assert is_platform_tool("GMAIL_FETCH_EMAILS")
        assert is_platform_tool("GOOGLECALENDAR_CREATE_EVENT")
        assert not is_platform_tool("Read")
        assert not is_platform_tool("github__create_pr")
        assert not is_platform_tool("GMAIL")

    def test_get_toolkit_from_tool(self):
        assert get_toolkit_from_tool("GMAIL_FETCH_EMAILS") == "gmail"
        assert get_toolkit_from_tool("Bash") is None

    def test_extract_toolkits_ordered_distinct(self):
        tools = ["SLACK_POST", "Read", "GMAIL_SEND_EMAIL", "SLACK_LIST_CHANNELS"]
        assert extract_toolkits(tools) == ["slack", "gmail"]
        assert extract_toolkits(None) == []

    def test_platform_tools_subset(self):
        assert platform_tools(["Read", "GMAIL_SEND_EMAIL", "GMAIL_SEND_EMAIL"]) == ["GMAIL_SEND_EMAIL"]

    def test_step_requires_platform(self):
        assert step_requires_platform(WorkflowStep(order=1, prompt="x", allowed_tools=["GMAIL_SEND_EMAIL"]))
        assert not step_requires_platform(WorkflowStep(order=1, prompt="x", allowed_tools=["Read"]))
        assert not step_requires_platform(WorkflowStep(order=1, prompt="x"))
