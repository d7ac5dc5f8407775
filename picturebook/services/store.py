"""键值存储。

状态机只依赖"写入后读回即为写入值"这一语义，不假设文件系统的原子 rename 等行为。
每种产物一个 namespace，值统一以 JSON 文本保存。
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import redis.asyncio as redis
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from picturebook.config import Settings
from picturebook.models.record import StoreRecord, utcnow

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    namespace: str

    async def get(self, key: str) -> Any | None: ...

    async def put(self, key: str, value: Any) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def keys(self) -> list[str]: ...


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)


class MemoryStore:
    """进程内存储（测试与本地调试用）"""

    def __init__(self, namespace: str):
        self.namespace = namespace
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def put(self, key: str, value: Any) -> None:
        self._data[key] = _dumps(value)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self) -> list[str]:
        return sorted(self._data)


class SqlStore:
    """基于 store_record 表的存储（SQLite / PostgreSQL）"""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], namespace: str):
        self.session_maker = session_maker
        self.namespace = namespace

    async def get(self, key: str) -> Any | None:
        async with self.session_maker() as session:
            record = await session.get(StoreRecord, (self.namespace, key))
            return json.loads(record.value) if record else None

    async def put(self, key: str, value: Any) -> None:
        async with self.session_maker() as session:
            record = await session.get(StoreRecord, (self.namespace, key))
            if record is None:
                record = StoreRecord(namespace=self.namespace, key=key, value=_dumps(value))
            else:
                record.value = _dumps(value)
                record.updated_at = utcnow()
            session.add(record)
            await session.commit()

    async def delete(self, key: str) -> bool:
        async with self.session_maker() as session:
            res = await session.execute(
                delete(StoreRecord).where(
                    StoreRecord.namespace == self.namespace,
                    StoreRecord.key == key,
                )
            )
            await session.commit()
            return bool(res.rowcount)

    async def keys(self) -> list[str]:
        async with self.session_maker() as session:
            res = await session.execute(
                select(StoreRecord.key)
                .where(StoreRecord.namespace == self.namespace)
                .order_by(StoreRecord.key)
            )
            return list(res.scalars().all())


class RedisStore:
    """每个 namespace 对应一个 Redis hash：{prefix}:{namespace}"""

    def __init__(self, client: redis.Redis, namespace: str, prefix: str = "picturebook"):
        self.client = client
        self.namespace = namespace
        self.hash_key = f"{prefix}:{namespace}"

    async def get(self, key: str) -> Any | None:
        raw = await self.client.hget(self.hash_key, key)
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)

    async def put(self, key: str, value: Any) -> None:
        await self.client.hset(self.hash_key, key, _dumps(value))

    async def delete(self, key: str) -> bool:
        return bool(await self.client.hdel(self.hash_key, key))

    async def keys(self) -> list[str]:
        raw_keys = await self.client.hkeys(self.hash_key)
        return sorted(k.decode("utf-8") if isinstance(k, bytes) else k for k in raw_keys)


NAMESPACES = (
    "projects",
    "phase_outputs",
    "stories_index",
    "story_templates",
    "prop_bibles",
    "prompt_templates",
    "storyboards",
    "characters",
)


@dataclass
class Stores:
    projects: KeyValueStore
    phase_outputs: KeyValueStore
    stories_index: KeyValueStore
    story_templates: KeyValueStore
    prop_bibles: KeyValueStore
    prompt_templates: KeyValueStore
    storyboards: KeyValueStore
    characters: KeyValueStore


def memory_stores() -> Stores:
    return Stores(**{ns: MemoryStore(ns) for ns in NAMESPACES})


def sql_stores(session_maker: async_sessionmaker[AsyncSession]) -> Stores:
    return Stores(**{ns: SqlStore(session_maker, ns) for ns in NAMESPACES})


def redis_stores(client: redis.Redis, prefix: str = "picturebook") -> Stores:
    return Stores(**{ns: RedisStore(client, ns, prefix) for ns in NAMESPACES})


def create_stores(
    settings: Settings,
    *,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> Stores:
    """按配置选择存储后端"""
    if settings.store_backend == "memory":
        logger.info("Using in-memory stores; data is lost on restart")
        return memory_stores()
    if settings.store_backend == "redis":
        client = redis.from_url(settings.redis_url)
        return redis_stores(client, settings.redis_key_prefix)
    if session_maker is None:
        from picturebook.db.session import async_session_maker

        session_maker = async_session_maker
    return sql_stores(session_maker)
