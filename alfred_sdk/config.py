"""
Configuration loading.

Values come from environment variables (after loading a ``.env`` file when
present) and fall back to defaults.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


DEFAULT_COMPOSIO_BASE_URL = "https://backend.composio.dev/api"


class DatabaseConfig(BaseModel):
    """Database settings. No URI means in-memory mode."""

    mongodb_uri: str | None = Field(default=None)
    mongodb_db: str = Field(default="alfred")


class LLMConfig(BaseModel):
    """Chat model settings."""

    openai_api_key: str | None = Field(default=None)
    openai_base_url: str | None = Field(default=None)

    default_model: str = Field(default="gpt-4o-mini")

    # Task specific override
    classifier_model: str | None = Field(default=None, description="Workflow classification model")


class ComposioConfig(BaseModel):
    """Tool-hosting platform settings. No API key means the platform is disabled."""

    api_key: str | None = Field(default=None)
    base_url: str = Field(default=DEFAULT_COMPOSIO_BASE_URL)
    user_id: str | None = Field(default=None)
    timeout: float = Field(default=30.0)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


class AgentConfig(BaseModel):
    """Execution engine settings."""

    model: str | None = Field(default=None)
    step_timeout_seconds: float = Field(default=600.0)
    step_delay_seconds: float = Field(default=0.5)
    stream_idle_timeout_seconds: float | None = Field(default=900.0, description="None waits forever")
    work_root: str = Field(default_factory=tempfile.gettempdir)
    disallowed_tools: list[str] = Field(default_factory=list, description="Global deny list")
    system_prompt: str | None = Field(default=None)
    user_prompt_prefix: str | None = Field(default=None)
    prompts_dir: str = Field(default="prompts")


class AppConfig(BaseModel):
    """Application configuration."""

    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    composio: ComposioConfig = Field(default_factory=ComposioConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)

    # Static connection table: {name: {command, args, env}}
    mcp_connections: dict[str, dict[str, Any]] = Field(default_factory=dict)


def parse_tool_list(raw: str | None) -> list[str]:
    """Split a comma separated tool list, dropping blanks."""
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def parse_mcp_connections(raw: str | None) -> dict[str, dict[str, Any]]:
    """
    Parse the ``MCP_CONNECTIONS`` JSON table.

    Malformed JSON is logged and yields an empty table.
    """
    if not raw:
        return {}
    try:
        table = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error(f"MCP_CONNECTIONS is not valid JSON: {e}")
        return {}
    if not isinstance(table, dict):
        logger.error("MCP_CONNECTIONS must be a JSON object keyed by connection name")
        return {}
    return {name: entry for name, entry in table.items() if isinstance(entry, dict)}


def load_config(env_file: str | Path | None = None) -> AppConfig:
    """
    Load configuration.

    Priority:
    1. Environment variables
    2. .env file
    3. Defaults

    Args:
        env_file: Path to a .env file, defaults to ``.env`` in the working directory

    Returns:
        AppConfig
    """
    if env_file is None:
        env_file = Path.cwd() / ".env"

    if Path(env_file).exists():
        load_dotenv(env_file)

    return AppConfig(
        environment=os.getenv("ENVIRONMENT", "development"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),

        database=DatabaseConfig(
            mongodb_uri=os.getenv("MONGODB_URI") or None,
            mongodb_db=os.getenv("MONGODB_DB", "alfred"),
        ),

        llm=LLMConfig(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_base_url=os.getenv("OPENAI_BASE_URL"),
            default_model=os.getenv("DEFAULT_MODEL", "gpt-4o-mini"),
            classifier_model=os.getenv("CLASSIFIER_MODEL"),
        ),

        composio=ComposioConfig(
            api_key=os.getenv("COMPOSIO_API_KEY") or None,
            base_url=os.getenv("COMPOSIO_BASE_URL", DEFAULT_COMPOSIO_BASE_URL),
            user_id=os.getenv("COMPOSIO_USER_ID") or None,
            timeout=float(os.getenv("COMPOSIO_TIMEOUT", "30")),
        ),

        agent=AgentConfig(
            model=os.getenv("AGENT_MODEL") or None,
            step_timeout_seconds=float(os.getenv("STEP_TIMEOUT_SECONDS", "600")),
            step_delay_seconds=float(os.getenv("STEP_DELAY_SECONDS", "0.5")),
            stream_idle_timeout_seconds=float(os.getenv("STREAM_IDLE_TIMEOUT_SECONDS", "900")) or None,
            work_root=os.getenv("WORK_ROOT") or tempfile.gettempdir(),
            disallowed_tools=parse_tool_list(os.getenv("DISALLOWED_TOOLS")),
            system_prompt=os.getenv("SYSTEM_PROMPT") or None,
            user_prompt_prefix=os.getenv("USER_PROMPT_PREFIX") or None,
            prompts_dir=os.getenv("PROMPTS_DIR", "prompts"),
        ),

        mcp_connections=parse_mcp_connections(os.getenv("MCP_CONNECTIONS")),
    )
