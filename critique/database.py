import os

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from critique.config import settings

# seconds a writer waits on a locked SQLite file, e.g. two concurrent draft claims
SQLITE_BUSY_TIMEOUT = 30


def _get_database_url() -> str:
    url = settings.database_url
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _sqlite_file(url: str) -> str | None:
    parsed = make_url(url)
    if not parsed.drivername.startswith("sqlite") or parsed.database in (None, "", ":memory:"):
        return None
    return parsed.database


_database_url = _get_database_url()
_sqlite_path = _sqlite_file(_database_url)

_engine_kwargs: dict = {"echo": False}
if _database_url.startswith("sqlite"):
    _engine_kwargs["connect_args"] = {"timeout": SQLITE_BUSY_TIMEOUT}
    if _sqlite_path:
        os.makedirs(os.path.dirname(os.path.abspath(_sqlite_path)), exist_ok=True)
else:
    _engine_kwargs.update(pool_size=5, max_overflow=10, pool_pre_ping=True)

engine = create_async_engine(_database_url, **_engine_kwargs)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

if _database_url.startswith("sqlite"):
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class Base(DeclarativeBase):
    pass


async def create_tables():
    async with engine.begin() as conn:
        from critique.models import session, image, analysis  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine():
    await engine.dispose()
