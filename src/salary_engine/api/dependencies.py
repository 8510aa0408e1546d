"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.calculators.types import Period
from salary_engine.database import init_db


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency.

    The request is one transaction: committed when the handler returns,
    rolled back when it raises.
    """
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_actor_id(x_actor_id: Annotated[str | None, Header()] = None) -> str | None:
    """Identity of the caller, recorded on audit events."""
    return x_actor_id.strip() if x_actor_id and x_actor_id.strip() else None


def parse_period(value: str) -> Period:
    """Parse a YYYY-MM path or query value."""
    try:
        return Period.parse(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid period '{value}', expected YYYY-MM",
        )


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
ActorId = Annotated[str | None, Depends(get_actor_id)]
