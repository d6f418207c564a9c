"""
Toolkit helpers for platform-hosted tools.

Platform tool names follow the ``TOOLKIT_ACTION`` convention, e.g.
``GMAIL_FETCH_EMAILS`` belongs to the ``gmail`` toolkit.
"""

import re

from alfred_sdk.schemas import WorkflowStep

PLATFORM_TOOL_PATTERN = re.compile(r"^[A-Z][A-Z0-9]*(_[A-Z0-9]+)+$")


def is_platform_tool(name: str) -> bool:
    return bool(PLATFORM_TOOL_PATTERN.match(name))


def get_toolkit_from_tool(name: str) -> str | None:
    """``GMAIL_FETCH_EMAILS`` -> ``gmail``. None for non-platform names."""
    if not is_platform_tool(name):
        return None
    return name.split("_", 1)[0].lower()


def extract_toolkits(tools: list[str] | None) -> list[str]:
    """Distinct toolkits referenced by ``tools``, in first-seen order."""
    seen: dict[str, None] = {}
    for tool in tools or []:
        toolkit = get_toolkit_from_tool(tool)
        if toolkit:
            seen.setdefault(toolkit, None)
    return list(seen)


def platform_tools(tools: list[str] | None) -> list[str]:
    """The platform-hosted subset of ``tools``, order preserved, deduplicated."""
    return list(dict.fromkeys(t for t in tools or [] if is_platform_tool(t)))


def step_requires_platform(step: WorkflowStep) -> bool:
    """True when the step names at least one platform-hosted tool."""
    return bool(extract_toolkits(step.allowed_tools))
