"""
Workflow registry routes.

Gateway lifecycle hooks run after create and update and before delete.
Hook failures are logged by the hooks and never fail the write.
"""

import uuid
from typing import Any

from fastapi import APIRouter, status
from pydantic import ValidationError as PydanticValidationError

from alfred_api.container import HooksDep, RepositoryManagerDep
from alfred_api.core.logging import get_logger
from alfred_api.models import WorkflowCreateRequest, WorkflowUpdateRequest
from alfred_sdk.errors import NotFoundError, ValidationError
from alfred_sdk.schemas import Workflow, WorkflowSummary

logger = get_logger(__name__)


def build_workflow(data: dict[str, Any]) -> Workflow:
    try:
        return Workflow.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid workflow",
            detail=[{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()],
        ) from e


def create_router() -> APIRouter:
    router = APIRouter(prefix="/workflows", tags=["workflows"])

    @router.get("", response_model=list[WorkflowSummary], summary="List active workflows")
    async def list_workflows(repos: RepositoryManagerDep):
        return await repos.workflows.list_summaries()

    @router.get("/{workflow_id}", response_model=Workflow, summary="Get a workflow")
    async def get_workflow(workflow_id: str, repos: RepositoryManagerDep):
        workflow = await repos.workflows.get(workflow_id)
        if workflow is None:
            raise NotFoundError(f"Workflow not found: {workflow_id}")
        return workflow

    @router.post("", response_model=Workflow, status_code=status.HTTP_201_CREATED, summary="Create a workflow")
    async def create_workflow(body: WorkflowCreateRequest, repos: RepositoryManagerDep, hooks: HooksDep):
        workflow = build_workflow({"id": uuid.uuid4().hex, **body.model_dump()})
        workflow = await repos.workflows.save(workflow)
        logger.info(f"Created workflow '{workflow.name}' ({workflow.id}, {len(workflow.steps)} steps)")

        provisioned = await hooks.after_create(workflow)
        if provisioned:
            logger.info(f"Provisioned step gateways for steps {provisioned}")
        return workflow

    @router.put("/{workflow_id}", response_model=Workflow, summary="Update a workflow")
    async def update_workflow(
        workflow_id: str,
        body: WorkflowUpdateRequest,
        repos: RepositoryManagerDep,
        hooks: HooksDep,
    ):
        existing = await repos.workflows.get(workflow_id)
        if existing is None:
            raise NotFoundError(f"Workflow not found: {workflow_id}")

        changes = body.model_dump(exclude_unset=True)
        workflow = build_workflow({**existing.model_dump(), **changes})
        workflow = await repos.workflows.save(workflow)
        logger.info(f"Updated workflow '{workflow.name}' ({workflow.id}): {sorted(changes)}")

        if "steps" in changes:
            await hooks.after_update(workflow)
        return workflow

    @router.delete("/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a workflow")
    async def delete_workflow(workflow_id: str, repos: RepositoryManagerDep, hooks: HooksDep):
        if await repos.workflows.get(workflow_id) is None:
            raise NotFoundError(f"Workflow not found: {workflow_id}")

        await hooks.before_delete(workflow_id)
        await repos.workflows.delete(workflow_id)
        logger.info(f"Deleted workflow {workflow_id}")

    return router
