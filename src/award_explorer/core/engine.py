"""
Embedded DuckDB engine and its process-wide handle.

Lifecycle:
  - EngineHandle.acquire() opens the engine on first use (one readiness probe)
    and counts references; concurrent first callers share one instance.
  - EngineHandle.release() drops a reference; the last release closes the
    database and removes the buffer directory.

Connections: one DuckDB cursor per query (EmbeddedEngine.connect()). A cursor
is never shared by two in-flight queries.

File buffers: a logical name is a single slot. Registering under a name that
is in use replaces the previous bytes; `slot(name)` serializes the
register -> query -> count sequence of one caller against the others.
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

import duckdb

logger = logging.getLogger(__name__)

_LOGICAL_NAME_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")


class EngineFailure(Exception):
    """Raised when DuckDB fails to register a buffer or execute a query."""


@dataclass
class ResultSchema:
    fields: List[str] = field(default_factory=list)


@dataclass
class ResultSet:
    """Rows of one query; each row is a positional tuple or a name->value mapping."""
    schema: ResultSchema
    rows: List[Any] = field(default_factory=list)

    def to_array(self) -> List[Any]:
        return list(self.rows)


class EngineConnection:
    def __init__(self, cursor: duckdb.DuckDBPyConnection):
        self._cursor: Optional[duckdb.DuckDBPyConnection] = cursor

    def _execute(self, text: str) -> ResultSet:
        if self._cursor is None:
            raise EngineFailure("Connection is closed.")
        logger.debug("Executing query: %s", text)
        try:
            cur = self._cursor.execute(text)
            fields = [d[0] for d in (cur.description or [])]
            rows = cur.fetchall()
        except duckdb.Error as exc:
            raise EngineFailure(f"Query failed: {exc}") from exc
        return ResultSet(schema=ResultSchema(fields=fields), rows=rows)

    async def query(self, text: str) -> ResultSet:
        return await asyncio.to_thread(self._execute, text)

    async def close(self) -> None:
        cursor, self._cursor = self._cursor, None
        if cursor is not None:
            await asyncio.to_thread(cursor.close)


class EmbeddedEngine:
    def __init__(self, database: str = ":memory:", workdir: Optional[Path] = None):
        self._db = duckdb.connect(database)
        self._workdir = Path(workdir) if workdir else Path(tempfile.mkdtemp(prefix="award_explorer_"))
        self._workdir.mkdir(parents=True, exist_ok=True)
        self._slots: Dict[str, asyncio.Lock] = {}
        self._closed = False

    @classmethod
    def open(cls, database: str = ":memory:") -> "EmbeddedEngine":
        engine = cls(database)
        try:
            engine._db.execute("SELECT 1").fetchall()
        except duckdb.Error as exc:
            engine.close()
            raise EngineFailure(f"Engine readiness probe failed: {exc}") from exc
        logger.info("Embedded engine ready (buffers in %s)", engine._workdir)
        return engine

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise EngineFailure("Engine has been released.")

    # -------------------------------------------------------------------
    # File buffers
    # -------------------------------------------------------------------

    def file_path(self, logical_name: str) -> Path:
        if not _LOGICAL_NAME_RE.match(logical_name or "") or logical_name in (".", ".."):
            raise EngineFailure(f"Invalid logical file name: {logical_name!r}")
        return self._workdir / logical_name

    def _write_buffer(self, logical_name: str, data: bytes) -> None:
        target = self.file_path(logical_name)
        fd, tmp = tempfile.mkstemp(dir=self._workdir, prefix=".incoming_")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp, target)
        except OSError as exc:
            Path(tmp).unlink(missing_ok=True)
            raise EngineFailure(f"Failed to register {logical_name}: {exc}") from exc

    async def register_file_buffer(self, logical_name: str, data: bytes) -> None:
        self._check_open()
        await asyncio.to_thread(self._write_buffer, logical_name, bytes(data))
        logger.info("Registered %s (%d bytes)", logical_name, len(data))

    async def drop_file(self, logical_name: str) -> None:
        self._check_open()
        path = self.file_path(logical_name)
        await asyncio.to_thread(path.unlink, True)

    def slot(self, logical_name: str) -> asyncio.Lock:
        lock = self._slots.get(logical_name)
        if lock is None:
            lock = self._slots[logical_name] = asyncio.Lock()
        return lock

    # -------------------------------------------------------------------
    # Connections
    # -------------------------------------------------------------------

    def connect(self) -> EngineConnection:
        self._check_open()
        return EngineConnection(self._db.cursor())

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._db.close()
        finally:
            shutil.rmtree(self._workdir, ignore_errors=True)
        logger.info("Embedded engine closed")


class EngineHandle:
    """Reference-counted, lazily opened EmbeddedEngine."""

    def __init__(self, database: str = ":memory:"):
        self._database = database
        self._engine: Optional[EmbeddedEngine] = None
        self._refcount = 0
        self._lock = asyncio.Lock()

    @property
    def refcount(self) -> int:
        return self._refcount

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    async def acquire(self) -> EmbeddedEngine:
        async with self._lock:
            if self._engine is None:
                self._engine = await asyncio.to_thread(EmbeddedEngine.open, self._database)
            self._refcount += 1
            return self._engine

    async def release(self) -> None:
        async with self._lock:
            if self._refcount <= 0:
                raise EngineFailure("release() called without a matching acquire().")
            self._refcount -= 1
            if self._refcount == 0 and self._engine is not None:
                engine, self._engine = self._engine, None
                await asyncio.to_thread(engine.close)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[EmbeddedEngine]:
        engine = await self.acquire()
        try:
            yield engine
        finally:
            await self.release()


_DEFAULT_HANDLE: Optional[EngineHandle] = None


def get_engine_handle() -> EngineHandle:
    """Process-wide handle shared by explorer sessions."""
    global _DEFAULT_HANDLE
    if _DEFAULT_HANDLE is None:
        _DEFAULT_HANDLE = EngineHandle()
    return _DEFAULT_HANDLE
