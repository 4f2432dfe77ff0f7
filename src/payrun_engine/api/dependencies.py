"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payrun_engine.database import init_db
from payrun_engine.errors import ValidationError
from payrun_engine.services.run_orchestrator import RunOrchestrator


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the configured database."""
    _, factory = init_db()
    return factory


SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


async def get_db_session(factory: SessionFactory) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_orchestrator(factory: SessionFactory) -> RunOrchestrator:
    """Run orchestrator using SQL-backed providers."""
    return RunOrchestrator(factory)


async def get_tenant_id(x_tenant_id: Annotated[str | None, Header()] = None) -> UUID:
    """Extract tenant ID from header."""
    if not x_tenant_id:
        raise ValidationError("X-Tenant-ID header is required")
    try:
        return UUID(x_tenant_id)
    except ValueError:
        raise ValidationError("Invalid X-Tenant-ID format")


async def get_actor_id(x_user_id: Annotated[str | None, Header()] = None) -> UUID | None:
    """Extract the acting user from header, if present."""
    if not x_user_id:
        return None
    try:
        return UUID(x_user_id)
    except ValueError:
        raise ValidationError("Invalid X-User-ID format")


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Orchestrator = Annotated[RunOrchestrator, Depends(get_orchestrator)]
TenantId = Annotated[UUID, Depends(get_tenant_id)]
ActorId = Annotated[UUID | None, Depends(get_actor_id)]
