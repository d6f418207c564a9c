"""
Unit tests for the execution-mode dispatcher.

Tests cover:
- classifier, orchestrator and default modes
- Orchestrator fallback on no match
- Terminal progress events and working directory cleanup
"""

import os
from unittest.mock import AsyncMock, Mock

import pytest

from alfred_api.services.agent_executor import AgentExecutor, format_classification
from alfred_sdk.agent.orchestrator import OrchestrationResult
from alfred_sdk.agent.step_executor import StepResult
from alfred_sdk.errors import AgentError, OrchestrationError
from alfred_sdk.schemas import ClassificationResult, Confidence, ExecutionMode


@pytest.fixture
def matched(digest_workflow):
    return ClassificationResult(workflow=digest_workflow, confidence=Confidence.HIGH, reasoning="digest")


@pytest.fixture
def unmatched():
    return ClassificationResult.no_match(Confidence.LOW, "nothing fits")


@pytest.fixture
def run_dir(tmp_path):
    path = tmp_path / "run"
    path.mkdir()
    (path / "notes.txt").write_text("scratch")
    return str(path)


def make_dispatcher(agent_config, sink, classification=None, orchestration=None, single=None) -> AgentExecutor:
    classifier = Mock()
    classifier.classify = AsyncMock(return_value=classification)
    orchestrator = Mock()
    orchestrator.run = AsyncMock(return_value=orchestration)
    executor = Mock()
    executor.run_single = AsyncMock(return_value=single)
    return AgentExecutor(classifier, orchestrator, executor, sink, agent_config)


class TestClassifierMode:

    @pytest.mark.asyncio
    async def test_classify_only(self, agent_config, sink, matched):
        dispatcher = make_dispatcher(agent_config, sink, classification=matched)

        result = await dispatcher.execute(ExecutionMode.CLASSIFIER, "digest please", "r1")

        assert "Matched Workflow: Email Digest" in result.text
        assert "Steps: 3" in result.text
        assert result.workflow_id == "digest-1"
        dispatcher.orchestrator.run.assert_not_awaited()
        dispatcher.executor.run_single.assert_not_awaited()
        assert sink.of_type("complete")[0]["output"] == result.text

    def test_format_no_match(self, unmatched):
        text = format_classification(unmatched)
        assert "No matching workflow found." in text
        assert "Confidence: low" in text
        assert "Reasoning: nothing fits" in text


class TestOrchestratorMode:

    @pytest.mark.asyncio
    async def test_matched_runs_workflow_and_cleans_up(self, agent_config, sink, matched, run_dir):
        orchestration = OrchestrationResult(
            text="Here is your digest", working_directory=run_dir, trace=[{"type": "result"}], session_id="sess-4"
        )
        dispatcher = make_dispatcher(agent_config, sink, classification=matched, orchestration=orchestration)

        result = await dispatcher.execute("orchestrator", "digest please", "r1", system_prompt="sys")

        assert result.text == "Here is your digest"
        assert result.classification is matched
        assert result.workflow.name == "Email Digest"
        dispatcher.orchestrator.run.assert_awaited_once_with(matched.workflow, "digest please", "r1", "sys")
        assert not os.path.exists(run_dir)

        selected = sink.of_type("workflow_selected")[0]
        assert selected["workflow"] == "Email Digest"
        assert [s["order"] for s in selected["steps"]] == [1, 2, 3]
        assert sink.events[-1][1]["type"] == "complete"

    @pytest.mark.asyncio
    async def test_no_match_falls_back(self, agent_config, sink, unmatched):
        single = StepResult(text="one-off answer", session_id="s1", working_directory="")
        dispatcher = make_dispatcher(agent_config, sink, classification=unmatched, single=single)

        result = await dispatcher.execute(ExecutionMode.ORCHESTRATOR, "tell me a joke", "r1")

        assert result.text == "one-off answer"
        assert result.classification is unmatched
        assert result.workflow is None
        dispatcher.orchestrator.run.assert_not_awaited()
        assert not sink.of_type("workflow_selected")

    @pytest.mark.asyncio
    async def test_failure_publishes_error_and_cleans_up(self, agent_config, sink, matched, run_dir):
        dispatcher = make_dispatcher(agent_config, sink, classification=matched)
        dispatcher.orchestrator.run.side_effect = OrchestrationError(
            "Workflow orchestration failed at step 2: boom", step_order=2, working_directory=run_dir
        )

        with pytest.raises(OrchestrationError):
            await dispatcher.execute(ExecutionMode.ORCHESTRATOR, "digest please", "r1")

        assert not os.path.exists(run_dir)
        error = sink.of_type("error")[0]
        assert error["error"] == "OrchestrationError"
        assert not sink.of_type("complete")


class TestDefaultMode:

    @pytest.mark.asyncio
    async def test_direct_run(self, agent_config, sink):
        single = StepResult(text="hi", session_id="s1", working_directory="")
        dispatcher = make_dispatcher(agent_config, sink, single=single)

        result = await dispatcher.execute(ExecutionMode.DEFAULT, "hello", "r1")

        assert result.text == "hi"
        assert result.classification is None
        dispatcher.classifier.classify.assert_not_awaited()
        working_directory = dispatcher.executor.run_single.await_args.kwargs["working_directory"]
        assert not os.path.exists(working_directory)

    @pytest.mark.asyncio
    async def test_engine_failure(self, agent_config, sink):
        dispatcher = make_dispatcher(agent_config, sink)
        dispatcher.executor.run_single.side_effect = AgentError("engine crashed")

        with pytest.raises(AgentError):
            await dispatcher.execute(ExecutionMode.DEFAULT, "hello", "r1")

        assert sink.of_type("error") == [{"type": "error", "error": "AgentError", "message": "engine crashed"}]
