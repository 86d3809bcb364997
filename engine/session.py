# engine/session.py
from __future__ import annotations
import logging
import os
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

import duckdb

from .errors import CancellationError, EngineError, ErrorKind
from .schema import ResultBatch, Schema

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """
    引擎会话配置（对 shell 核心不透明，只在创建会话时使用）：
    - database: 数据库路径，默认内存库
    - batch_size: 每批返回的行数
    - memory_limit: 引擎内存上限，如 "2GB"
    - threads: 引擎工作线程数，默认与 CPU 核数一致
    """
    database: str = ":memory:"
    batch_size: int = 8192
    memory_limit: Optional[str] = None
    threads: Optional[int] = field(default_factory=os.cpu_count)
    read_only: bool = False

    def engine_options(self) -> Dict[str, Any]:
        opts: Dict[str, Any] = {}
        if self.threads:
            opts["threads"] = int(self.threads)
        if self.memory_limit:
            opts["memory_limit"] = self.memory_limit
        return opts


# ============ 抽象接口 ============
class QueryHandle:
    """一次提交的执行：惰性产出结果批次，支持协作式取消。"""
    sql: str

    def batches(self) -> Iterator[ResultBatch]: ...
    def cancel(self) -> None: ...


class EngineSession:
    """长生命周期的引擎会话；注册的表/视图在多条语句之间保留。"""

    def submit(self, sql: str) -> QueryHandle: ...
    def close(self) -> None: ...


# ============ DuckDB 实现 ============
_PREFIX_RE = re.compile(r"^[A-Za-z ]*Error:\s*")


def map_engine_error(e: Exception) -> EngineError:
    """把 duckdb 异常映射为带分类的 EngineError。"""
    if isinstance(e, duckdb.ParserException):
        kind = ErrorKind.PARSE
    elif isinstance(e, (duckdb.CatalogException, duckdb.BinderException)):
        kind = ErrorKind.PLANNING
    else:
        kind = ErrorKind.EXECUTION
    msg = _PREFIX_RE.sub("", str(e).strip(), count=1)
    return EngineError(msg, kind)


class DuckDBQuery(QueryHandle):
    def __init__(self, conn: "duckdb.DuckDBPyConnection", sql: str, batch_size: int):
        self._conn = conn
        self.sql = sql
        self.batch_size = batch_size
        self._cancelled = threading.Event()

    def batches(self) -> Iterator[ResultBatch]:
        if self._cancelled.is_set():
            raise CancellationError()
        try:
            cur = self._conn.execute(self.sql)
            desc = cur.description
            if not desc:
                return
            schema = Schema.of([(d[0], str(d[1])) for d in desc])
            first = True
            while True:
                if self._cancelled.is_set():
                    raise CancellationError()
                rows = cur.fetchmany(self.batch_size)
                if not rows:
                    if first:
                        # 空结果也交出一个空批次，让下游拿到 schema
                        yield ResultBatch(schema, ())
                    break
                first = False
                yield ResultBatch(schema, tuple(tuple(r) for r in rows))
        except duckdb.InterruptException:
            raise CancellationError()
        except duckdb.Error as e:
            raise map_engine_error(e) from e

    def cancel(self) -> None:
        self._cancelled.set()
        try:
            self._conn.interrupt()
        except duckdb.Error as e:
            logger.debug("interrupt failed: %s", e)


class DuckDBSession(EngineSession):
    def __init__(self, config: EngineConfig):
        self.config = config
        self._conn = duckdb.connect(
            database=config.database,
            read_only=config.read_only,
            config=config.engine_options(),
        )
        logger.debug("engine session opened: %s", config.database)

    def submit(self, sql: str) -> DuckDBQuery:
        return DuckDBQuery(self._conn, sql, self.config.batch_size)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug("engine session closed")


def create_session(config: Optional[EngineConfig] = None) -> DuckDBSession:
    """创建引擎会话；失败时抛出 EngineError(kind=STARTUP)。"""
    config = config or EngineConfig()
    try:
        return DuckDBSession(config)
    except (duckdb.Error, OSError, ValueError) as e:
        raise EngineError(str(e), ErrorKind.STARTUP) from e
