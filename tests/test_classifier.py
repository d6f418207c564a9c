"""
Unit tests for WorkflowClassifier.

Tests cover:
- JSON extraction from wrapped model output
- Matching, hallucinated names and no-match answers
- Failure degradation
"""

from unittest.mock import AsyncMock

import pytest

from alfred_sdk.agent.classifier import (
    WorkflowClassifier,
    extract_json_object,
    parse_classification_response,
)
from alfred_sdk.schemas import Confidence, Workflow, WorkflowStep
from alfred_sdk.stores import InMemoryWorkflowStore


@pytest.fixture
def registry(digest_workflow):
    report = Workflow(
        id="report-1",
        name="Weekly Report",
        description="Compile the weekly sales report",
        steps=[WorkflowStep(order=1, prompt="Compile the report")],
    )
    return InMemoryWorkflowStore([digest_workflow, report])


# =============================================================================
# Response parsing
# =============================================================================


class TestResponseParsing:

    def test_extract_from_code_fence(self):
        text = 'Sure!\n```json\n{"match": true, "workflowName": "Email Digest"}\n```\nDone.'
        assert extract_json_object(text) == {"match": True, "workflowName": "Email Digest"}

    def test_extract_without_object(self):
        assert extract_json_object("no json here") is None
        assert extract_json_object("{not json}") is None

    def test_parse_defaults(self):
        parsed = parse_classification_response('{"match": false}')
        assert parsed.match is False
        assert parsed.confidence is None

    def test_parse_unknown_confidence(self):
        parsed = parse_classification_response('{"match": true, "workflowName": "X", "confidence": "certain"}')
        assert parsed.match
        assert parsed.confidence is None


# =============================================================================
# Classification
# =============================================================================


class TestWorkflowClassifier:

    @pytest.mark.asyncio
    async def test_match_returns_full_workflow(self, registry, llm_answering):
        llm = llm_answering(
            '```json\n{"match": true, "workflowName": "email digest", '
            '"confidence": "high", "reasoning": "asks for a digest"}\n```'
        )
        classifier = WorkflowClassifier(registry, llm)

        result = await classifier.classify("send me a digest of unread mail")

        assert result.matched
        assert result.workflow_id == "digest-1"
        assert len(result.workflow.steps) == 3
        assert result.confidence == Confidence.HIGH
        assert result.reasoning == "asks for a digest"

    @pytest.mark.asyncio
    async def test_prompt_lists_summaries_only(self, registry, llm_answering):
        llm = llm_answering('{"match": false, "confidence": "none"}')
        classifier = WorkflowClassifier(registry, llm)

        await classifier.classify("what's the weather")

        sent = llm.ainvoke.await_args.kwargs["messages"][0].content
        assert "- Email Digest: Summarize unread email" in sent
        assert "- Weekly Report: Compile the weekly sales report" in sent
        assert "Fetch unread emails from the inbox" not in sent
        assert '"what\'s the weather"' in sent

    @pytest.mark.asyncio
    async def test_match_without_confidence_defaults_to_medium(self, registry, llm_answering):
        classifier = WorkflowClassifier(registry, llm_answering('{"match": true, "workflowName": "Weekly Report"}'))

        result = await classifier.classify("weekly sales numbers please")

        assert result.workflow_id == "report-1"
        assert result.confidence == Confidence.MEDIUM

    @pytest.mark.asyncio
    async def test_match_keeps_explicit_none_confidence(self, registry, llm_answering):
        classifier = WorkflowClassifier(
            registry, llm_answering('{"match": true, "workflowName": "Weekly Report", "confidence": "none"}')
        )

        result = await classifier.classify("weekly sales numbers please")

        assert result.workflow_id == "report-1"
        assert result.confidence == Confidence.NONE

    @pytest.mark.asyncio
    async def test_no_match(self, registry, llm_answering):
        classifier = WorkflowClassifier(
            registry, llm_answering('{"match": false, "workflowName": null, "confidence": "low"}')
        )

        result = await classifier.classify("tell me a joke")

        assert not result.matched
        assert result.workflow_id is None
        assert result.confidence == Confidence.LOW

    @pytest.mark.asyncio
    async def test_hallucinated_name(self, registry, llm_answering):
        classifier = WorkflowClassifier(
            registry, llm_answering('{"match": true, "workflowName": "Invoice Runner", "confidence": "high"}')
        )

        result = await classifier.classify("pay the invoices")

        assert result.workflow_id is None
        assert result.confidence == Confidence.NONE
        assert "Invoice Runner" in result.reasoning

    @pytest.mark.asyncio
    async def test_unparseable_answer(self, registry, llm_answering):
        classifier = WorkflowClassifier(registry, llm_answering("I think it is the digest one"))

        result = await classifier.classify("digest")

        assert result.workflow_id is None
        assert result.confidence == Confidence.NONE

    @pytest.mark.asyncio
    async def test_llm_failure_never_raises(self, registry, llm_answering):
        llm = llm_answering("")
        llm.ainvoke = AsyncMock(side_effect=RuntimeError("rate limited"))
        classifier = WorkflowClassifier(registry, llm)

        result = await classifier.classify("send me a digest")

        assert result.workflow_id is None
        assert result.confidence == Confidence.NONE

    @pytest.mark.asyncio
    async def test_empty_registry_skips_llm(self, llm_answering):
        llm = llm_answering('{"match": true, "workflowName": "Email Digest"}')
        classifier = WorkflowClassifier(InMemoryWorkflowStore(), llm)

        result = await classifier.classify("send me a digest")

        assert not result.matched
        llm.ainvoke.assert_not_awaited()
