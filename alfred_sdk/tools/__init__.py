"""
Tool connections and the tool-hosting platform.

- ConnectionResolver: per-step connections and three-tier tool filtering
- ComposioClient: platform HTTP client for auth configs and gateway servers
- toolkits: ``TOOLKIT_ACTION`` tool name helpers
"""

from alfred_sdk.tools.composio import ComposioClient, MCPServer
from alfred_sdk.tools.connection_resolver import (
    BUILTIN_TOOLS,
    ConnectionResolver,
    StepConnections,
    filter_tools_for_step,
    resolve_connection_names,
)
from alfred_sdk.tools.toolkits import extract_toolkits, get_toolkit_from_tool, is_platform_tool

__all__ = [
    "BUILTIN_TOOLS",
    "ComposioClient",
    "ConnectionResolver",
    "MCPServer",
    "StepConnections",
    "extract_toolkits",
    "filter_tools_for_step",
    "get_toolkit_from_tool",
    "is_platform_tool",
    "resolve_connection_names",
]
