"""
Prompt templates and loading.

System prompt priority:
1. Explicit per-request override
2. SYSTEM_PROMPT environment variable (``AgentConfig.system_prompt``)
3. ``prompts/system.md``
4. Built-in default

User prompt prefix priority: USER_PROMPT_PREFIX, ``prompts/user.md``, none.
"""

import logging
from pathlib import Path

from alfred_sdk.config import AgentConfig
from alfred_sdk.schemas import WorkflowStep

logger = logging.getLogger(__name__)


DEFAULT_SYSTEM_PROMPT = """You are a helpful AI assistant with access to various tools through MCP servers.

Use the available tools to help answer the user's questions and complete their requests.
Be concise and clear in your responses.
If you create files, mention them in your response."""

AUTONOMY_INSTRUCTION = (
    "IMPORTANT: YOU ARE A HIGHLY AUTONOMOUS AGENT. YOU CAN MAKE DECISIONS AND INFER "
    "IF NOT ENOUGH DATA IS AVAILABLE. YOU MUST ALWAYS COMPLETE YOUR TASK WITHOUT FURTHER "
    "APPROVAL. NEVER ASK FOR CONFIRMATION, YOU ARE ON YOUR OWN."
)

STEP_SECTION_TEMPLATE = """## CURRENT WORKFLOW STEP

You are executing step {position} of {total} in a multi-step workflow.

**Task**: {task}
{guidance}
**Instructions**:
- Focus ONLY on completing this specific step
- You have access to previous conversation context
- Use only the tools available to you for this step
- Be concise and efficient
- Do not attempt to complete other workflow steps

Complete this task now."""

SYNTHESIS_PROMPT_TEMPLATE = """Based on all the information you've gathered in the previous steps, provide a complete, natural response to the user's original request: "{prompt}"

Answer the request directly, as if responding to it for the first time. Do not reference "steps", "previous work" or how the information was gathered. Include every relevant detail and result."""

SYNTHESIS_GUIDANCE = "Synthesize all previous work into one complete response"


class PromptLoader:
    """Resolves system prompt and user prefix from config and prompt files."""

    def __init__(self, config: AgentConfig):
        self.config = config
        self.prompts_dir = Path(config.prompts_dir)

    def system_prompt(self, override: str | None = None) -> str:
        if override and override.strip():
            return override.strip()
        if self.config.system_prompt:
            return self.config.system_prompt.strip()
        content = self._read("system.md")
        if content:
            logger.debug(f"Loaded system prompt from {self.prompts_dir / 'system.md'}")
            return content
        return DEFAULT_SYSTEM_PROMPT

    def user_prompt_prefix(self) -> str | None:
        if self.config.user_prompt_prefix:
            return self.config.user_prompt_prefix.strip()
        return self._read("user.md")

    def _read(self, filename: str) -> str | None:
        path = self.prompts_dir / filename
        if not path.is_file():
            return None
        content = path.read_text(encoding="utf-8").strip()
        return content or None


def build_step_system_prompt(base_prompt: str, step: WorkflowStep, position: int, total: int) -> str:
    """Base system prompt plus the current step's task, guidance and focus rules."""
    guidance = f"\n**Guidance**: {step.guidance}\n" if step.guidance else ""
    section = STEP_SECTION_TEMPLATE.format(
        position=position,
        total=total,
        task=step.prompt,
        guidance=guidance,
    )
    return f"{base_prompt}\n\n{section}"


def build_step_user_prompt(original_prompt: str, step: WorkflowStep, is_first: bool) -> str:
    """Step prompt, original request first on the first step, tools hint and autonomy last."""
    parts = [f'Original request: "{original_prompt}"\n\n{step.prompt}' if is_first else step.prompt]
    if step.allowed_tools:
        parts.append(f"Use these tools to complete your task: {', '.join(step.allowed_tools)}")
    parts.append(AUTONOMY_INSTRUCTION)
    return "\n\n".join(parts)


def build_user_prompt(prompt: str, prefix: str | None) -> str:
    return f"{prefix}\n\n{prompt}" if prefix else prompt


def build_synthesis_step(original_prompt: str, order: int) -> WorkflowStep:
    """The implicit tool-free final step."""
    return WorkflowStep(
        order=order,
        prompt=SYNTHESIS_PROMPT_TEMPLATE.format(prompt=original_prompt),
        guidance=SYNTHESIS_GUIDANCE,
        allowed_tools=[],
    )
