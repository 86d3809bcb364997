# engine/bridge.py
# -*- coding: utf-8 -*-
"""
执行桥：同步的 shell 主循环 <-> 后台执行的查询。

主线程调用 execute() 得到一个事件迭代器，逐个阻塞等待：
    BatchReady(batch)   一批结果已就绪
    Completed(outcome)  终态：Success / Error / Cancelled
工作线程在线程池中拉取引擎的批次，经有界队列交给主线程。
"""
from __future__ import annotations
import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Union

from .errors import CancellationError, EngineError, ErrorKind
from .schema import ResultBatch
from .session import EngineSession, QueryHandle

logger = logging.getLogger(__name__)


class CancelToken:
    """协作式取消标记；第一次 cancel() 的原因会被保留。"""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "interrupt") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# --------------------------- 执行结果 ---------------------------

@dataclass(frozen=True)
class Success:
    row_count: int
    elapsed: float


@dataclass(frozen=True)
class Error:
    message: str
    kind: ErrorKind = ErrorKind.EXECUTION
    elapsed: float = 0.0


@dataclass(frozen=True)
class Cancelled:
    elapsed: float = 0.0
    reason: str = "interrupt"


ExecutionOutcome = Union[Success, Error, Cancelled]


@dataclass(frozen=True)
class BatchReady:
    batch: ResultBatch


@dataclass(frozen=True)
class Completed:
    outcome: ExecutionOutcome


Event = Union[BatchReady, Completed]


@dataclass(frozen=True)
class _Finished:
    """工作线程的终止信号（内部使用）。"""
    error: Optional[EngineError] = None
    cancelled: bool = False


# --------------------------- 执行桥 ---------------------------

class ExecutionBridge:
    """
    - workers: 线程池大小（同一时刻只执行一条语句，默认 1）
    - poll_interval: 等待队列时检查取消/超时的间隔（秒）
    - queue_size: 主线程与工作线程之间的批次缓冲上限
    - timeout: 语句超时（秒），None 表示不限；超时按取消处理
    """

    def __init__(self, workers: int = 1, poll_interval: float = 0.05,
                 queue_size: int = 4, timeout: Optional[float] = None,
                 clock: Callable[[], float] = time.perf_counter) -> None:
        self.poll_interval = poll_interval
        self.queue_size = max(1, queue_size)
        self.timeout = timeout
        self._clock = clock
        self._pool = ThreadPoolExecutor(max_workers=max(1, workers),
                                        thread_name_prefix="minisql-exec")

    def shutdown(self) -> None:
        self._pool.shutdown(wait=True)

    def execute(self, sql: str, engine: EngineSession, cancel: CancelToken) -> Iterator[Event]:
        """提交一条语句，按引擎产出顺序返回事件；最后一个事件总是 Completed。"""
        start = self._clock()
        try:
            handle = engine.submit(sql)
        except EngineError as e:
            yield Completed(Error(e.message, e.kind, self._clock() - start))
            return

        logger.debug("submit: %s", sql)
        channel = self._channel()
        future = self._pool.submit(self._run, handle, channel, cancel)
        rows = 0
        finished = False
        interrupted = False
        try:
            while True:
                try:
                    item = channel.get(timeout=self.poll_interval)
                except queue.Empty:
                    item = None
                except KeyboardInterrupt:
                    cancel.cancel("interrupt")
                    item = None

                if (self.timeout is not None and not cancel.cancelled
                        and self._clock() - start > self.timeout):
                    cancel.cancel("timeout")
                if cancel.cancelled and not interrupted:
                    interrupted = True
                    logger.info("cancelling statement (%s)", cancel.reason)
                    handle.cancel()

                if item is None:
                    continue
                if isinstance(item, _Finished):
                    finished = True
                    future.result()
                    elapsed = self._clock() - start
                    yield Completed(self._outcome(item, cancel, rows, elapsed))
                    return
                if cancel.cancelled:
                    # 已取消：丢弃剩余批次，直到工作线程结束
                    continue
                rows += item.batch.num_rows
                yield BatchReady(item.batch)
        finally:
            if not finished:
                # 消费方提前放弃：取消并排空队列，避免工作线程卡在 put 上
                cancel.cancel(cancel.reason or "abandoned")
                if not interrupted:
                    handle.cancel()
                self._drain(channel)
                future.result()

    def _channel(self) -> "queue.Queue":
        return queue.Queue(maxsize=self.queue_size)

    def _outcome(self, done: _Finished, cancel: CancelToken, rows: int,
                 elapsed: float) -> ExecutionOutcome:
        if cancel.cancelled or done.cancelled:
            return Cancelled(elapsed, cancel.reason or "interrupt")
        if done.error is not None:
            logger.warning("statement failed: %s", done.error)
            return Error(done.error.message, done.error.kind, elapsed)
        logger.debug("statement finished: %d rows in %.3fs", rows, elapsed)
        return Success(rows, elapsed)

    def _drain(self, channel: "queue.Queue") -> None:
        while True:
            try:
                item = channel.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            except KeyboardInterrupt:
                continue
            if isinstance(item, _Finished):
                return

    def _run(self, handle: QueryHandle, channel: "queue.Queue", cancel: CancelToken) -> None:
        """工作线程：按顺序转发批次，最后放入 _Finished。"""
        done = _Finished()
        batches = None
        try:
            batches = handle.batches()
            for batch in batches:
                if cancel.cancelled or not self._put(channel, BatchReady(batch), cancel):
                    done = _Finished(cancelled=True)
                    break
        except CancellationError:
            done = _Finished(cancelled=True)
        except EngineError as e:
            done = _Finished(error=e)
        except Exception as e:
            logger.exception("unexpected error while executing statement")
            done = _Finished(error=EngineError(f"{type(e).__name__}: {e}", ErrorKind.EXECUTION))
        finally:
            close = getattr(batches, "close", None)
            if close is not None:
                try:
                    close()
                except Exception as e:
                    logger.debug("closing result stream failed: %s", e)
        channel.put(done)

    def _put(self, channel: "queue.Queue", item: BatchReady, cancel: CancelToken) -> bool:
        while True:
            try:
                channel.put(item, timeout=self.poll_interval)
                return True
            except queue.Full:
                if cancel.cancelled:
                    return False
