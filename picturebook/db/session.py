from __future__ import annotations

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from picturebook.config import Settings, get_settings
from picturebook.models import record  # noqa: F401


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _engine_options(settings: Settings) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.db_echo, "pool_pre_ping": True}
    if _is_sqlite(settings.database_url):
        # SQLite 用 NullPool，每次操作独立连接，避免 "database is locked"
        options["poolclass"] = NullPool
        options["connect_args"] = {"check_same_thread": False, "timeout": 60}
    else:
        options.update(pool_size=5, max_overflow=10, pool_timeout=30)
    return options


def _enable_wal(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_journal_mode(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def build_engine(settings: Settings) -> AsyncEngine:
    engine = create_async_engine(settings.database_url, **_engine_options(settings))
    # 内存库不支持 WAL
    if _is_sqlite(settings.database_url) and ":memory:" not in settings.database_url:
        _enable_wal(engine)
    return engine


engine: AsyncEngine = build_engine(get_settings())
async_session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def init_db(bind: AsyncEngine | None = None) -> None:
    """创建 store_records 表（已存在时跳过）"""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
