"""
Workflow classifier.

Maps a free-text prompt to at most one registered workflow with a single
LLM call and a strict JSON response contract. Classification never raises:
any failure degrades to "no match" so callers can fall back.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

from alfred_sdk.llm import BaseChatModel, UserMessage
from alfred_sdk.schemas import ClassificationResult, Confidence, WorkflowSummary
from alfred_sdk.stores import WorkflowStore

logger = logging.getLogger(__name__)


@dataclass
class ParsedClassification:
    """The model's answer, before registry lookup."""
    match: bool
    workflow_name: str | None
    confidence: Confidence | None  # None when absent or unrecognized
    reasoning: str | None = None


def extract_json_object(text: str) -> dict[str, Any] | None:
    """
    Extract the outermost JSON object from model output.

    Handles prose or code fences around the object by scanning from the
    first ``{`` to the last ``}``.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def parse_classification_response(text: str) -> ParsedClassification:
    data = extract_json_object(text or "")
    if data is None:
        return ParsedClassification(match=False, workflow_name=None, confidence=None)

    name = data.get("workflowName")
    reasoning = data.get("reasoning")
    return ParsedClassification(
        match=data.get("match") is True,
        workflow_name=name if isinstance(name, str) and name.strip() else None,
        confidence=Confidence.parse(data.get("confidence")),
        reasoning=reasoning if isinstance(reasoning, str) else None,
    )


class WorkflowClassifier:
    """
    LLM-backed workflow classifier.

    Args:
        workflows: Workflow registry
        llm: Chat model used for the classification call
        max_tokens: Response budget for the classification call
    """

    def __init__(self, workflows: WorkflowStore, llm: BaseChatModel, max_tokens: int = 300):
        self.workflows = workflows
        self.llm = llm
        self.max_tokens = max_tokens

    async def classify(self, prompt: str) -> ClassificationResult:
        try:
            return await self._classify(prompt)
        except Exception as e:
            logger.error(f"Classification failed, treating as no match: {e}", exc_info=True)
            return ClassificationResult.no_match()

    async def _classify(self, prompt: str) -> ClassificationResult:
        summaries = await self.workflows.list_summaries()
        if not summaries:
            logger.info("No workflows registered, skipping classification")
            return ClassificationResult.no_match()

        response = await self.llm.ainvoke(
            messages=[UserMessage(content=self._build_classification_prompt(summaries, prompt))],
            max_tokens=self.max_tokens,
        )
        parsed = parse_classification_response(response.content)

        if not parsed.match or not parsed.workflow_name:
            confidence = parsed.confidence or Confidence.NONE
            logger.info(f"No workflow match (confidence={confidence.value})")
            return ClassificationResult.no_match(confidence, parsed.reasoning)

        wanted = parsed.workflow_name.strip().lower()
        summary = next((s for s in summaries if s.name.lower() == wanted), None)
        if summary is None:
            logger.warning(f"Classifier suggested unknown workflow '{parsed.workflow_name}'")
            return ClassificationResult.no_match(
                reasoning=f"Suggested workflow '{parsed.workflow_name}' not found in registry"
            )

        # Registry listing carries no steps
        workflow = await self.workflows.get(summary.id)
        if workflow is None:
            logger.warning(f"Workflow {summary.id} disappeared before it could be loaded")
            return ClassificationResult.no_match()

        confidence = parsed.confidence or Confidence.MEDIUM
        logger.info(f"Matched workflow '{workflow.name}' (confidence={confidence.value})")
        return ClassificationResult(
            workflow_id=workflow.id,
            workflow=workflow,
            confidence=confidence,
            reasoning=parsed.reasoning,
        )

    def _build_classification_prompt(self, summaries: list[WorkflowSummary], prompt: str) -> str:
        workflow_list = "\n".join(f"- {s.name}: {s.description}" for s in summaries)

        return f"""You are a workflow classifier.

Given the user's request, determine if it matches one of the available pre-built workflows.

AVAILABLE WORKFLOWS:
{workflow_list}

USER REQUEST:
"{prompt}"

INSTRUCTIONS:
1. Analyze the user's request
2. Determine if it clearly matches one of the available workflows
3. Respond with JSON ONLY in this exact format:

{{
  "match": true/false,
  "workflowName": "exact_workflow_name" or null,
  "confidence": "high/medium/low/none",
  "reasoning": "brief explanation"
}}

RULES:
- Only match if you're confident the workflow fits the request
- Use exact workflow names from the list above
- If uncertain or the request is custom/ad-hoc, return match: false
- Confidence "high" = clearly matches, "medium" = likely matches, "low" = might match, "none" = no match"""
