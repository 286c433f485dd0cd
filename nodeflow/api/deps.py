"""API dependencies for FastAPI dependency injection.

Provides database sessions, the caller identity, and service instances.
"""

from typing import Annotated, AsyncGenerator

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from nodeflow.config import settings
from nodeflow.core.orchestrator import WorkflowOrchestrator
from nodeflow.integrations import Effectors, build_effectors
from nodeflow.models.auth import TokenPayload
from nodeflow.nodes.registry import NodeRegistry, get_node_registry
from nodeflow.services.execution_service import ExecutionService
from nodeflow.services.run_dispatcher import RunDispatcher
from nodeflow.services.workflow_service import WorkflowService
from nodeflow.storage.sql import SqlExecutionStore, SqlGraphStore

logger = structlog.get_logger()

# Database engine and session
_engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
)

_async_session_maker = sessionmaker(
    _engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Security
_bearer_scheme = HTTPBearer(auto_error=False)


async def init_db() -> None:
    """Initialize database tables.

    Only call during development. Use Alembic migrations in production.
    """
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("database_initialized")


def get_session_maker() -> sessionmaker:
    """Session maker bound to the application engine."""
    return _async_session_maker


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session.

    Yields:
        AsyncSession that will be closed after use
    """
    async with _async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


# Type alias for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db_session)]


def decode_access_token(token: str) -> TokenPayload:
    """Decode and validate a JWT access token.

    Args:
        token: JWT token string

    Returns:
        Decoded token payload

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key.get_secret_value(),
            algorithms=[settings.jwt_algorithm],
        )
        return TokenPayload(**payload)
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> str:
    """Get the identity of the authenticated caller.

    Raises:
        HTTPException: If not authenticated or the token is invalid
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_data = decode_access_token(credentials.credentials)

    if not token_data.sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has no subject",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return token_data.sub


# Type alias for authenticated user dependency
CurrentUserId = Annotated[str, Depends(get_current_user_id)]


def build_run_dispatcher(
    session_maker: sessionmaker,
    effectors: Effectors | None = None,
    registry: NodeRegistry | None = None,
) -> RunDispatcher:
    """Wire SQL stores, the node registry and effectors into a dispatcher."""
    execution_store = SqlExecutionStore(session_maker)
    orchestrator = WorkflowOrchestrator(
        execution_store=execution_store,
        graph_store=SqlGraphStore(session_maker),
        registry=registry or get_node_registry(),
        effectors=effectors or build_effectors(),
    )
    return RunDispatcher(orchestrator, execution_store)


def get_run_dispatcher(request: Request) -> RunDispatcher:
    """Get the application-wide run dispatcher."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        dispatcher = build_run_dispatcher(_async_session_maker)
        request.app.state.dispatcher = dispatcher
    return dispatcher


RunDispatcherDep = Annotated[RunDispatcher, Depends(get_run_dispatcher)]


# Service dependencies
def get_workflow_service(session: DBSession) -> WorkflowService:
    """Get workflow service instance."""
    return WorkflowService(session)


def get_execution_service(
    session: DBSession,
    workflow_service: Annotated[WorkflowService, Depends(get_workflow_service)],
    dispatcher: RunDispatcherDep,
) -> ExecutionService:
    """Get execution service instance."""
    return ExecutionService(session, workflow_service, dispatcher)


def get_registry() -> NodeRegistry:
    """Get node registry instance."""
    return get_node_registry()


# Type aliases for service dependencies
WorkflowServiceDep = Annotated[WorkflowService, Depends(get_workflow_service)]
ExecutionServiceDep = Annotated[ExecutionService, Depends(get_execution_service)]
NodeRegistryDep = Annotated[NodeRegistry, Depends(get_registry)]
