import io
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import pytest

from engine.bridge import ExecutionBridge
from engine.cli.printer import Output
from engine.cli.state import SessionState, ShellConfig
from engine.errors import CancellationError, EngineError, ErrorKind
from engine.schema import ResultBatch, Schema
from engine.session import EngineSession, QueryHandle


@dataclass
class Script:
    """Canned answer for one SQL text."""
    columns: Sequence[Tuple[str, str]] = ()
    batches: List[List[tuple]] = field(default_factory=list)
    error: Optional[EngineError] = None
    error_after: int = 0        # batches delivered before the error is raised
    delay: float = 0.0          # pause before each batch
    block: bool = False         # never finishes unless cancelled
    crash: Optional[Exception] = None


class FakeQuery(QueryHandle):
    def __init__(self, sql: str, script: Script):
        self.sql = sql
        self.script = script
        self.cancelled = threading.Event()
        self.closed = False

    def batches(self):
        s = self.script
        schema = Schema.of(s.columns)
        try:
            if s.crash is not None:
                raise s.crash
            for i, rows in enumerate(s.batches):
                if s.error is not None and i >= s.error_after:
                    raise s.error
                if s.delay and self.cancelled.wait(s.delay):
                    raise CancellationError()
                yield ResultBatch(schema, tuple(tuple(r) for r in rows))
            if s.error is not None:
                raise s.error
            if s.block:
                if not self.cancelled.wait(10):
                    raise AssertionError("blocking query was never cancelled")
                raise CancellationError()
        finally:
            self.closed = True

    def cancel(self):
        self.cancelled.set()


class FakeEngine(EngineSession):
    def __init__(self):
        self.scripts = {}
        self.queries: List[FakeQuery] = []
        self.closed = False

    def script(self, sql: str, **kwargs) -> Script:
        s = Script(**kwargs)
        self.scripts[sql.strip().lower()] = s
        return s

    def submit(self, sql: str) -> FakeQuery:
        s = self.scripts.get(sql.strip().lower())
        if s is None:
            s = Script(error=EngineError(f"table not found in: {sql}", ErrorKind.PLANNING))
        q = FakeQuery(sql, s)
        self.queries.append(q)
        return q

    def close(self):
        self.closed = True


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def config(tmp_path):
    return ShellConfig(history_file=str(tmp_path / "history"), poll_interval=0.01)


@pytest.fixture
def state(fake_engine, config):
    return SessionState(engine=fake_engine, config=config)


@pytest.fixture
def sink():
    return Output(io.StringIO(), io.StringIO())


@pytest.fixture
def bridge():
    b = ExecutionBridge(poll_interval=0.01)
    yield b
    b.shutdown()
