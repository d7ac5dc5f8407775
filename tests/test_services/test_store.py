from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from picturebook.config import Settings
from picturebook.db.session import init_db
from picturebook.services.store import (
    NAMESPACES,
    MemoryStore,
    RedisStore,
    SqlStore,
    create_stores,
    memory_stores,
    redis_stores,
)


class FakeRedis:
    """只实现 hash 相关命令，返回值与 redis.asyncio 一致（bytes）"""

    def __init__(self):
        self.hashes: dict[str, dict[str, bytes]] = {}

    async def hget(self, name, key):
        return self.hashes.get(name, {}).get(key)

    async def hset(self, name, key, value):
        self.hashes.setdefault(name, {})[key] = value.encode("utf-8")
        return 1

    async def hdel(self, name, key):
        return 1 if self.hashes.get(name, {}).pop(key, None) is not None else 0

    async def hkeys(self, name):
        return [k.encode("utf-8") for k in self.hashes.get(name, {})]


@pytest_asyncio.fixture()
async def session_maker():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture(params=["memory", "sql", "redis"])
def store_factory(request, session_maker, fake_redis):
    def factory(namespace: str):
        if request.param == "memory":
            return MemoryStore(namespace)
        if request.param == "sql":
            return SqlStore(session_maker, namespace)
        return RedisStore(fake_redis, namespace)

    return factory


@pytest.fixture()
def fake_redis():
    return FakeRedis()


class TestKeyValueStore:
    @pytest.mark.asyncio
    async def test_put_then_get(self, store_factory):
        store = store_factory("projects")
        value = {"id": "a", "phases": {"0": {"status": "review"}}, "tags": ["x", "y"]}

        await store.put("a", value)

        assert await store.get("a") == value

    @pytest.mark.asyncio
    async def test_missing_key(self, store_factory):
        assert await store_factory("projects").get("nope") is None

    @pytest.mark.asyncio
    async def test_overwrite(self, store_factory):
        store = store_factory("projects")
        await store.put("a", {"v": 1})
        await store.put("a", {"v": 2})
        assert await store.get("a") == {"v": 2}

    @pytest.mark.asyncio
    async def test_delete(self, store_factory):
        store = store_factory("projects")
        await store.put("a", [1, 2])

        assert await store.delete("a") is True
        assert await store.delete("a") is False
        assert await store.get("a") is None

    @pytest.mark.asyncio
    async def test_keys_sorted(self, store_factory):
        store = store_factory("projects")
        for key in ("b", "a", "c"):
            await store.put(key, {})
        assert await store.keys() == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_namespaces_are_isolated(self, store_factory):
        first, second = store_factory("projects"), store_factory("prop_bibles")
        await first.put("same", {"from": "projects"})

        assert await second.get("same") is None
        assert await second.keys() == []

    @pytest.mark.asyncio
    async def test_non_ascii_round_trip(self, store_factory):
        store = store_factory("characters")
        await store.put("mira", {"name": "米拉"})
        assert await store.get("mira") == {"name": "米拉"}


class TestCreateStores:
    def test_memory_backend(self):
        stores = create_stores(Settings(store_backend="memory"))
        assert isinstance(stores.projects, MemoryStore)

    def test_sql_backend_uses_given_session_maker(self, session_maker):
        stores = create_stores(Settings(store_backend="sql"), session_maker=session_maker)
        assert isinstance(stores.prop_bibles, SqlStore)
        assert stores.prop_bibles.session_maker is session_maker

    def test_redis_backend(self):
        stores = create_stores(Settings(store_backend="redis", redis_key_prefix="pb"))
        assert isinstance(stores.storyboards, RedisStore)
        assert stores.storyboards.hash_key == "pb:storyboards"

    def test_every_namespace_present(self, fake_redis):
        for stores in (memory_stores(), redis_stores(fake_redis)):
            assert {getattr(stores, ns).namespace for ns in NAMESPACES} == set(NAMESPACES)
