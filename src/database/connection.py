from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.config.settings import Settings
from src.database.base import Base
from src.shared.utils import LOG_LEVEL, get_logger

logger = get_logger(__name__)


class Database:
    """
    Owns the engine and session factory for one process.

    Built by the application lifespan (or by a script/test) and passed to
    whatever needs storage; nothing in the codebase keeps a module-level engine.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = async_sessionmaker(
            engine, expire_on_commit=False, class_=AsyncSession
        )

    @classmethod
    def from_url(cls, url: str, **engine_kwargs) -> "Database":
        return cls(create_async_engine(url, **engine_kwargs))

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        if not settings.DATABASE_URL:
            raise ValueError("DATABASE_URL is not set in environment variables.")

        if not settings.DATABASE_URL.startswith("postgresql"):
            return cls.from_url(settings.DATABASE_URL, echo=LOG_LEVEL == "DEBUG")

        return cls.from_url(
            settings.DATABASE_URL,
            echo=LOG_LEVEL == "DEBUG",
            # Connection pool settings
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE,
            pool_pre_ping=True,  # Validate connections before using them
            # asyncpg-specific settings
            connect_args={
                "command_timeout": settings.DB_COMMAND_TIMEOUT,
                "server_settings": {
                    "jit": "off",
                    "application_name": "educommunity_api",
                },
            },
        )

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def create_all(self, drop_first: bool = False) -> None:
        # Import models so they register with Base.metadata
        import src.database.models  # noqa: F401

        async with self.engine.begin() as conn:
            if drop_first:
                await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
