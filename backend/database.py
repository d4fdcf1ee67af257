"""Database connection, session management and upsert helpers."""

from typing import AsyncGenerator, Iterable, List, Optional, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from config import settings


# Convert DATABASE_URL to async format if needed
database_url = settings.database_url
if database_url.startswith("postgresql://"):
    database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

# Create async engine
engine = create_async_engine(
    database_url,
    echo=settings.log_level == "DEBUG",
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=10,
)

# Session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def import_models():
    """Import all models to register them with Base.metadata.

    This must be called before create_all() to ensure all tables are created.
    """
    from models import event, market, outcome, event_tag, tag, bookmark, job_run  # noqa: F401


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting database sessions."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker:
    """Dependency for services that open one session per unit of work."""
    return async_session_maker


def upsert_statement(
    session: AsyncSession,
    model,
    rows: Sequence[dict],
    index_elements: List[str],
    update_columns: Optional[Iterable[str]] = None,
):
    """Build a multi-row INSERT ... ON CONFLICT for the session's dialect.

    Columns named in index_elements form the conflict target. All other
    columns present in the rows are overwritten from the incoming values,
    unless update_columns is an empty iterable, in which case conflicting
    rows are left untouched (DO NOTHING).
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        insert = postgresql.insert
    elif dialect == "sqlite":
        insert = sqlite.insert
    else:
        raise NotImplementedError(f"Upsert is not supported for dialect {dialect!r}")

    stmt = insert(model).values(list(rows))

    if update_columns is None:
        update_columns = [c for c in rows[0] if c not in index_elements]
    update_columns = list(update_columns)

    if not update_columns:
        return stmt.on_conflict_do_nothing(index_elements=index_elements)

    return stmt.on_conflict_do_update(
        index_elements=index_elements,
        set_={c: getattr(stmt.excluded, c) for c in update_columns},
    )


async def init_db():
    """Initialize database tables."""
    import_models()  # Ensure models are registered before creating tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connections."""
    await engine.dispose()
