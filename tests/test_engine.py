from __future__ import annotations

import asyncio

import pytest

from award_explorer.core.engine import EmbeddedEngine, EngineFailure, EngineHandle
from award_explorer.core.query_compiler import parquet_relation

from conftest import FACTS_SELECT, write_parquet


class TestEngineHandle:

    @pytest.mark.asyncio
    async def test_concurrent_first_acquire_shares_one_engine(self):
        handle = EngineHandle()
        engines = await asyncio.gather(*(handle.acquire() for _ in range(5)))

        assert all(e is engines[0] for e in engines)
        assert handle.refcount == 5

        for _ in range(4):
            await handle.release()
        assert handle.is_open
        assert not engines[0].closed

        await handle.release()
        assert not handle.is_open
        assert engines[0].closed

    @pytest.mark.asyncio
    async def test_reacquire_after_close_opens_a_new_engine(self):
        handle = EngineHandle()
        first = await handle.acquire()
        await handle.release()

        second = await handle.acquire()
        assert second is not first
        assert not second.closed
        await handle.release()

    @pytest.mark.asyncio
    async def test_release_without_acquire(self):
        with pytest.raises(EngineFailure):
            await EngineHandle().release()

    @pytest.mark.asyncio
    async def test_session_context(self):
        handle = EngineHandle()
        async with handle.session() as engine:
            assert handle.refcount == 1
            conn = engine.connect()
            res = await conn.query("SELECT 42 AS answer")
            await conn.close()
            assert res.schema.fields == ["answer"]
            assert res.to_array() == [(42,)]
        assert handle.refcount == 0
        assert engine.closed


class TestFileBuffers:

    @pytest.mark.asyncio
    async def test_register_replaces_previous_bytes(self, engine, tmp_path):
        big = write_parquet(tmp_path / "big.parquet", FACTS_SELECT).read_bytes()
        small = write_parquet(tmp_path / "small.parquet", FACTS_SELECT + " LIMIT 2").read_bytes()
        relation = parquet_relation(str(engine.file_path("current.parquet")))

        conn = engine.connect()
        try:
            await engine.register_file_buffer("current.parquet", big)
            first = await conn.query(f"SELECT COUNT(*) AS c FROM {relation}")
            await engine.register_file_buffer("current.parquet", small)
            second = await conn.query(f"SELECT COUNT(*) AS c FROM {relation}")
        finally:
            await conn.close()

        assert first.to_array() == [(8,)]
        assert second.to_array() == [(2,)]

    @pytest.mark.asyncio
    async def test_drop_file(self, engine, tmp_path):
        data = write_parquet(tmp_path / "f.parquet", FACTS_SELECT).read_bytes()
        await engine.register_file_buffer("facts_related.parquet", data)
        assert engine.file_path("facts_related.parquet").exists()

        await engine.drop_file("facts_related.parquet")
        assert not engine.file_path("facts_related.parquet").exists()
        # Dropping a name that is not registered is fine
        await engine.drop_file("facts_related.parquet")

    @pytest.mark.parametrize("name", ["", "..", "../escape.parquet", "a/b.parquet", "x y.parquet"])
    def test_invalid_logical_names(self, engine, name):
        with pytest.raises(EngineFailure):
            engine.file_path(name)

    def test_slot_is_one_lock_per_name(self, engine):
        assert engine.slot("current.parquet") is engine.slot("current.parquet")
        assert engine.slot("current.parquet") is not engine.slot("facts_contracts.parquet")


class TestQueries:

    @pytest.mark.asyncio
    async def test_bad_sql_raises_engine_failure(self, engine):
        conn = engine.connect()
        try:
            with pytest.raises(EngineFailure):
                await conn.query("SELECT * FROM no_such_table")
        finally:
            await conn.close()

    @pytest.mark.asyncio
    async def test_closed_connection(self, engine):
        conn = engine.connect()
        await conn.close()
        with pytest.raises(EngineFailure):
            await conn.query("SELECT 1")

    @pytest.mark.asyncio
    async def test_closed_engine_refuses_work(self):
        engine = EmbeddedEngine.open()
        engine.close()
        assert engine.closed
        with pytest.raises(EngineFailure):
            engine.connect()
        with pytest.raises(EngineFailure):
            await engine.register_file_buffer("current.parquet", b"")
        engine.close()  # idempotent
