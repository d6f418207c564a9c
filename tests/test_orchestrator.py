"""
Unit tests for WorkflowOrchestrator.

Tests cover:
- End-to-end Email Digest scenario (classify, three steps, synthesis)
- Session chaining through forks
- Progress events
- Failure at a step and the run phase machine
"""

import os

import pytest

from alfred_sdk.agent.classifier import WorkflowClassifier
from alfred_sdk.agent.orchestrator import RunPhase, RunState, WorkflowOrchestrator
from alfred_sdk.agent.step_executor import ENGINE_BUILTIN_TOOLS, StepExecutor
from alfred_sdk.errors import AgentError, OrchestrationError
from alfred_sdk.schemas import Confidence
from alfred_sdk.stores import InMemoryConnectionStore, InMemoryWorkflowStore
from alfred_sdk.tools.connection_resolver import ConnectionResolver

from conftest import FakeEngine, engine_messages


def make_orchestrator(engine, agent_config, sink=None) -> WorkflowOrchestrator:
    executor = StepExecutor(
        engine=engine,
        resolver=ConnectionResolver(InMemoryConnectionStore()),
        gateways=None,
        config=agent_config,
    )
    return WorkflowOrchestrator(
        executor, progress=sink, step_delay_seconds=0, work_root=agent_config.work_root
    )


# =============================================================================
# Scenario
# =============================================================================


class TestEmailDigestScenario:

    @pytest.mark.asyncio
    async def test_classify_then_run_all_steps(self, engine, agent_config, digest_workflow, llm_answering):
        classifier = WorkflowClassifier(
            InMemoryWorkflowStore([digest_workflow]),
            llm_answering('{"match": true, "workflowName": "Email Digest", "confidence": "high"}'),
        )
        orchestrator = make_orchestrator(engine, agent_config)

        classification = await classifier.classify("send me a digest of unread mail")
        assert classification.workflow_id == "digest-1"
        assert classification.confidence in (Confidence.HIGH, Confidence.MEDIUM)

        result = await orchestrator.run(classification.workflow, "send me a digest of unread mail", "req-1")

        assert len(engine.requests) == 4
        assert result.text == "answer 4"
        assert len(result.trace) == sum(report.message_count for report in result.steps) == 12
        assert result.session_id == "sess-4"
        assert [r.order for r in result.steps] == [1, 2, 3, 4]
        assert result.steps[-1].title == "Synthesis"
        assert os.path.isdir(result.working_directory)

    @pytest.mark.asyncio
    async def test_sessions_chain_through_forks(self, engine, agent_config, digest_workflow):
        orchestrator = make_orchestrator(engine, agent_config)

        await orchestrator.run(digest_workflow, "send me a digest", "req-1")

        first, *rest = engine.requests
        assert first.resume is None and first.fork_session is False
        assert [r.resume for r in rest] == ["sess-1", "sess-2", "sess-3"]
        assert all(r.fork_session for r in rest)
        assert len({r.cwd for r in engine.requests}) == 1

    @pytest.mark.asyncio
    async def test_synthesis_is_tool_free(self, engine, agent_config, digest_workflow):
        orchestrator = make_orchestrator(engine, agent_config)

        await orchestrator.run(digest_workflow, "send me a digest", "req-1")

        synthesis = engine.requests[-1]
        assert set(ENGINE_BUILTIN_TOOLS) <= set(synthesis.disallowed_tools)
        assert synthesis.mcp_servers == {}
        assert '"send me a digest"' in synthesis.prompt

    @pytest.mark.asyncio
    async def test_progress_events(self, engine, agent_config, digest_workflow, sink):
        engine.scripts = [engine_messages("sess-1", "fetched", tools=("GMAIL_FETCH_EMAILS",))]
        orchestrator = make_orchestrator(engine, agent_config, sink)

        await orchestrator.run(digest_workflow, "send me a digest", "req-1")

        steps = sink.of_type("step")
        assert [(e["order"], e["status"]) for e in steps] == [
            (1, "running"), (1, "complete"),
            (2, "running"), (2, "complete"),
            (3, "running"), (3, "complete"),
            (4, "running"), (4, "complete"),
        ]
        assert all("duration_ms" in e for e in steps if e["status"] == "complete")
        assert sink.of_type("detail") == [{"type": "detail", "order": 1, "tools": ["GMAIL_FETCH_EMAILS"]}]
        assert {rid for rid, _ in sink.events} == {"req-1"}


# =============================================================================
# Failures
# =============================================================================


class TestOrchestrationFailure:

    @pytest.mark.asyncio
    async def test_failing_step_aborts_run(self, agent_config, digest_workflow, sink):
        engine = FakeEngine([
            engine_messages("sess-1", "ok"),
            engine_messages("sess-2", "", subtype="error_during_execution"),
        ])
        orchestrator = make_orchestrator(engine, agent_config, sink)

        with pytest.raises(OrchestrationError) as exc_info:
            await orchestrator.run(digest_workflow, "send me a digest", "req-1")

        error = exc_info.value
        assert error.step_order == 2
        assert "step 2" in error.message
        assert isinstance(error.cause, AgentError)
        assert os.path.isdir(error.working_directory)
        assert len(engine.requests) == 2
        assert sink.of_type("step")[-1]["status"] == "error"


class TestRunPhase:

    def test_legal_path(self, tmp_path):
        state = RunState(request_id="r", working_directory=str(tmp_path))
        for phase in (RunPhase.STEP, RunPhase.STEP, RunPhase.SYNTHESIS, RunPhase.DONE):
            state.advance(phase)
        assert state.phase == RunPhase.DONE

    def test_illegal_transition(self, tmp_path):
        state = RunState(request_id="r", working_directory=str(tmp_path))
        with pytest.raises(OrchestrationError):
            state.advance(RunPhase.DONE)

    def test_terminal_phases(self, tmp_path):
        state = RunState(request_id="r", working_directory=str(tmp_path), phase=RunPhase.FAILED)
        with pytest.raises(OrchestrationError):
            state.advance(RunPhase.STEP)
