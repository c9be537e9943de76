from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base
import logging

from .settings.config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.async_database_url


def enable_sqlite_write_locking(engine: AsyncEngine) -> None:
    """Open every SQLite transaction with BEGIN IMMEDIATE.

    pysqlite/aiosqlite defer locking until the first write, so two unlocks can
    both read a balance of 1 before either writes. Taking the write lock at
    BEGIN serializes transactions the way row locks do on PostgreSQL.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _no_driver_begin(dbapi_connection, connection_record):
        # disable the driver's own BEGIN; we emit ours below
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str) -> AsyncEngine:
    eng = create_async_engine(url, echo=False, future=True)
    if eng.dialect.name == "sqlite":
        enable_sqlite_write_locking(eng)
    return eng


def build_session_maker(eng: AsyncEngine) -> sessionmaker:
    return sessionmaker(eng, class_=AsyncSession, expire_on_commit=False, autoflush=False)


engine = build_engine(DATABASE_URL)
async_session_maker = build_session_maker(engine)
Base = declarative_base()


async def get_db():
    async with async_session_maker() as session:
        yield session


async def init_db():
    # Only run create_all in dev, never in prod with Alembic
    if settings.RUN_DB_CREATE_ALL:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema created on %s", engine.url.render_as_string(hide_password=True))
