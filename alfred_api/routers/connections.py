"""
Connection catalog routes.

Registering a platform-backed connection provisions (or reuses) the
shared gateway of its toolkit.
"""

from fastapi import APIRouter, status

from alfred_api.container import GatewayManagerDep, RepositoryManagerDep
from alfred_api.core.logging import get_logger
from alfred_api.models import ConnectionCreateRequest
from alfred_sdk.errors import NotFoundError, ValidationError
from alfred_sdk.schemas import Connection, ConnectionSource

logger = get_logger(__name__)


def create_router() -> APIRouter:
    router = APIRouter(prefix="/connections", tags=["connections"])

    @router.get("", response_model=list[Connection], summary="List connections")
    async def list_connections(repos: RepositoryManagerDep):
        return await repos.connections.list()

    @router.post("", response_model=Connection, status_code=status.HTTP_201_CREATED, summary="Register a connection")
    async def create_connection(
        body: ConnectionCreateRequest,
        repos: RepositoryManagerDep,
        gateways: GatewayManagerDep,
    ):
        if body.source == ConnectionSource.COMPOSIO:
            if not body.composio_toolkit:
                raise ValidationError("composio_toolkit is required for platform connections")
            record = await gateways.get_or_create_toolkit_gateway(body.composio_toolkit)
            logger.info(f"Connection '{body.name}' uses toolkit gateway {record.server_id}")
            config = {}
        else:
            if not body.command:
                raise ValidationError("command is required for manual connections")
            config = {"command": body.command, "args": body.args, "env": body.env}

        connection = Connection(
            name=body.name,
            is_active=body.is_active,
            tools=body.tools,
            source=body.source,
            config=config,
            composio_toolkit=body.composio_toolkit.lower() if body.composio_toolkit else None,
            composio_account_id=body.composio_account_id,
        )
        return await repos.connections.save(connection)

    @router.delete("/{name}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a connection")
    async def delete_connection(name: str, repos: RepositoryManagerDep):
        if not await repos.connections.delete(name):
            raise NotFoundError(f"Connection not found: {name}")
        logger.info(f"Deleted connection {name}")

    return router
