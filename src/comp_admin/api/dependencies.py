"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from comp_admin.database import init_db
from comp_admin.events import EventEmitter, QueryCache


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for the configured database."""
    _, factory = init_db()
    return factory


async def get_events(request: Request) -> AsyncGenerator[EventEmitter, None]:
    """Request-scoped emitter.

    Events are held for the whole request and reach the application's
    emitter (and so the cache) only if the request completes. A failed
    request discards them.
    """
    events = EventEmitter()
    events.forward_to(request.app.state.events)
    with events.batch():
        yield events


async def get_db_session(
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    events: Annotated[EventEmitter, Depends(get_events)],
) -> AsyncGenerator[AsyncSession, None]:
    """Session per request: committed on success, rolled back on error.

    Depends on the request emitter so the commit happens before its held
    events are released.
    """
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_cache(request: Request) -> QueryCache:
    """The application's query cache, bound to its emitter."""
    return request.app.state.cache


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Events = Annotated[EventEmitter, Depends(get_events)]
Cache = Annotated[QueryCache, Depends(get_cache)]
