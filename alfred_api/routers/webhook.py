"""
Webhook route.

POST /webhook runs a prompt in the requested mode, synchronously or as a
background task whose progress is streamed from /stream/{request_id}.
"""

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse

from alfred_api.container import AgentExecutorDep, TaskManagerDep
from alfred_api.core.correlation import correlator, generate_request_id
from alfred_api.core.exceptions import ErrorResponseModel
from alfred_api.core.logging import LogContext, get_logger
from alfred_api.models import (
    AcceptedResponse,
    ClassificationInfo,
    WebhookRequest,
    WebhookResponse,
)
from alfred_api.services.agent_executor import AgentExecutor, ExecutionResult

logger = get_logger(__name__)


def to_response(result: ExecutionResult, include_trace: bool = False) -> WebhookResponse:
    return WebhookResponse(
        response=result.text,
        request_id=result.request_id,
        mode=result.mode,
        classification=ClassificationInfo.from_result(result.classification) if result.classification else None,
        workflow_id=result.workflow_id,
        workflow=result.workflow.name if result.workflow else None,
        session_id=result.session_id,
        duration_ms=result.duration_ms,
        trace=result.trace if include_trace else None,
    )


async def run_request(executor: AgentExecutor, body: WebhookRequest, request_id: str) -> ExecutionResult:
    with correlator.scope(request_id, request_id=request_id):
        with LogContext(request_id=request_id):
            with LogContext.operation(f"{body.mode.value} run"):
                return await executor.execute(
                    body.mode,
                    body.prompt,
                    request_id=request_id,
                    system_prompt=body.system_prompt,
                )


def create_router() -> APIRouter:
    router = APIRouter(tags=["webhook"])

    @router.post(
        "/webhook",
        response_model=WebhookResponse,
        responses={
            202: {"model": AcceptedResponse, "description": "Accepted, result streamed"},
            400: {"model": ErrorResponseModel, "description": "Bad Request"},
            409: {"model": ErrorResponseModel, "description": "Request id already running"},
            500: {"model": ErrorResponseModel, "description": "Execution failed"},
            504: {"model": ErrorResponseModel, "description": "Step timed out"},
        },
        summary="Run a prompt",
    )
    async def webhook(
        body: WebhookRequest,
        executor: AgentExecutorDep,
        tasks: TaskManagerDep,
        trace: bool = False,
    ):
        request_id = body.request_id or generate_request_id()

        if body.run_async:
            try:
                await tasks.start(run_request(executor, body, request_id), tag=request_id)
            except RuntimeError as e:
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

            logger.info(f"Accepted async request {request_id} ({body.mode.value})")
            accepted = AcceptedResponse(request_id=request_id, stream_url=f"/api/v1/stream/{request_id}")
            return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=accepted.model_dump())

        result = await run_request(executor, body, request_id)
        return to_response(result, include_trace=trace)

    return router
