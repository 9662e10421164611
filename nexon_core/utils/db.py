# nexon_core/utils/db.py
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker
from nexon_core.utils.config import settings
from nexon_core.utils.logger import logger


def build_engine(database_url: str | None = None) -> AsyncEngine:
    """Creates an async engine with a bounded connection timeout."""
    url = database_url or settings.database_url
    engine_kwargs = {
        "echo": settings.db_echo,
        "pool_pre_ping": True,
        "connect_args": {"timeout": settings.db_connect_timeout_s},
    }
    if not url.startswith("sqlite"):
        engine_kwargs["pool_size"] = settings.db_pool_size
        engine_kwargs["pool_timeout"] = settings.db_pool_timeout_s
    return create_async_engine(url, **engine_kwargs)


def build_session_factory(bind: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


engine = build_engine()
AsyncSessionLocal = build_session_factory(engine)


async def init_models(bind: AsyncEngine = engine) -> None:
    """Creates all tables that don't exist yet."""
    # Imported for their side effect of registering tables on Base.metadata
    from nexon_core.models.user import Base
    import nexon_core.models.mission  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema is up to date.")
