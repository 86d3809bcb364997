# engine/cli/printer.py
# -*- coding: utf-8 -*-
"""
结果输出：把执行桥送来的批次流按当前格式写到终端。

  table  带边框的表格（+---+），NULL 显示为空值标记，超宽单元格截断为 "..."
  csv    逗号分隔，含表头
  tsv    制表符分隔，含表头
  json   每行一个 JSON 对象

表格的列宽需要先看一部分数据：最多缓存 lookahead_rows 行，
结果在窗口内结束则宽度精确；否则按窗口内的数据定宽并给出提示。
"""
from __future__ import annotations
import csv
import json
import sys
from typing import Iterable, List, Optional, TextIO

from engine.bridge import CancelToken, Cancelled, Completed, Error, Event, ExecutionOutcome, Success
from engine.errors import ErrorKind, OutputError
from engine.schema import ResultBatch, Schema
from engine.types import cell_text, default_width, json_value

ELLIPSIS = "..."
WIDTH_NOTE = "Note: column widths were fixed before the whole result arrived; longer values are truncated.\n"


class Output:
    """输出端：out 写结果，err 写错误；写失败（如管道断开）统一转为 OutputError。"""

    def __init__(self, out: Optional[TextIO] = None, err: Optional[TextIO] = None):
        self.out = out if out is not None else sys.stdout
        self.err = err if err is not None else sys.stderr

    def write(self, text: str) -> None:
        self._emit(self.out, text)

    def error(self, text: str) -> None:
        self._emit(self.err, text)

    def flush(self) -> None:
        for s in (self.out, self.err):
            try:
                s.flush()
            except (BrokenPipeError, OSError, ValueError) as e:
                raise OutputError(str(e)) from e

    @staticmethod
    def _emit(stream: TextIO, text: str) -> None:
        try:
            stream.write(text)
        except (BrokenPipeError, OSError, ValueError) as e:
            raise OutputError(str(e)) from e


# --------------------------- 各格式写出器 ---------------------------

class _Writer:
    def __init__(self, out: Output, config) -> None:
        self.out = out
        self.config = config
        self.schema: Optional[Schema] = None

    def write_batch(self, batch: ResultBatch) -> None: ...
    def finish(self) -> None: ...
    def abort(self) -> None: ...


class TableWriter(_Writer):
    def __init__(self, out: Output, config) -> None:
        super().__init__(out, config)
        self._pending: List[List[str]] = []
        self._widths: Optional[List[int]] = None

    def _cells(self, row) -> List[str]:
        out = []
        for v in row:
            s = cell_text(v, self.config.null_marker)
            out.append(s.replace("\r", "\\r").replace("\n", "\\n").replace("\t", " "))
        return out

    @staticmethod
    def _fit(text: str, width: int) -> str:
        if len(text) <= width:
            return text.ljust(width)
        return text[:max(width - len(ELLIPSIS), 0)] + ELLIPSIS

    def _line(self) -> str:
        return "+" + "+".join("-" * (w + 2) for w in self._widths) + "+\n"

    def _row(self, cells: List[str]) -> str:
        return "| " + " | ".join(self._fit(c, w) for c, w in zip(cells, self._widths)) + " |\n"

    def _start(self, widths: List[int], estimated: bool) -> None:
        if estimated:
            # 后续的值可能被截断，至少留出 "..." 的位置
            widths = [max(w, len(ELLIPSIS)) for w in widths]
            self.out.write(WIDTH_NOTE)
        self._widths = widths
        self.out.write(self._line())
        self.out.write(self._row(self.schema.names))
        self.out.write(self._line())
        for cells in self._pending:
            self.out.write(self._row(cells))
        self._pending = []

    def _widths_from_rows(self) -> List[int]:
        cap = self.config.max_width
        widths = [len(n) for n in self.schema.names]
        for cells in self._pending:
            for i, c in enumerate(cells):
                if len(c) > widths[i]:
                    widths[i] = len(c)
        return [min(w, cap) for w in widths]

    def _widths_from_types(self) -> List[int]:
        cap = self.config.max_width
        return [min(max(len(c.name), default_width(c.type, cap)), cap)
                for c in self.schema.columns]

    def write_batch(self, batch: ResultBatch) -> None:
        if self.schema is None:
            self.schema = batch.schema
            if self.config.lookahead_rows <= 0 and len(self.schema):
                self._start(self._widths_from_types(), estimated=True)
        if not len(self.schema):
            return
        for row in batch.rows:
            cells = self._cells(row)
            if self._widths is not None:
                self.out.write(self._row(cells))
                continue
            self._pending.append(cells)
            if len(self._pending) > self.config.lookahead_rows:
                self._start(self._widths_from_rows(), estimated=True)

    def finish(self) -> None:
        if self.schema is None or not len(self.schema):
            return
        if self._widths is None:
            if not self._pending:
                # 空结果：不画空表格，只由汇总行给出 "0 rows"
                return
            self._start(self._widths_from_rows(), estimated=False)
        self.out.write(self._line())

    def abort(self) -> None:
        self._pending = []
        if self._widths is not None:
            self.out.write(self._line())


class DelimitedWriter(_Writer):
    def __init__(self, out: Output, config, delimiter: str = ",") -> None:
        super().__init__(out, config)
        self._csv = csv.writer(out, delimiter=delimiter, lineterminator="\n")

    def write_batch(self, batch: ResultBatch) -> None:
        if self.schema is None:
            self.schema = batch.schema
            if len(self.schema):
                self._csv.writerow(self.schema.names)
        for row in batch.rows:
            self._csv.writerow(["" if v is None else cell_text(v) for v in row])


def unique_names(names: List[str]) -> List[str]:
    """重名的列加后缀 _1、_2 ...，保证 JSON 对象里不丢值。"""
    seen = set()
    out = []
    for name in names:
        key = name
        i = 1
        while key in seen:
            key = f"{name}_{i}"
            i += 1
        seen.add(key)
        out.append(key)
    return out


class JsonWriter(_Writer):
    def write_batch(self, batch: ResultBatch) -> None:
        if self.schema is None:
            self.schema = batch.schema
            self._names = unique_names(self.schema.names)
        names = self._names
        for row in batch.rows:
            obj = {n: json_value(v) for n, v in zip(names, row)}
            self.out.write(json.dumps(obj, ensure_ascii=False, default=str) + "\n")


def make_writer(fmt, out: Output, config) -> _Writer:
    name = getattr(fmt, "value", fmt)
    if name == "table":
        return TableWriter(out, config)
    if name == "csv":
        return DelimitedWriter(out, config, ",")
    if name == "tsv":
        return DelimitedWriter(out, config, "\t")
    if name == "json":
        return JsonWriter(out, config)
    raise ValueError(f"unsupported output format: {name}")


# --------------------------- 汇总 ---------------------------

def summary_line(outcome: Success, timing: bool = True) -> str:
    n = outcome.row_count
    text = f"{n} {'row' if n == 1 else 'rows'} in set."
    if timing:
        text += f" Query took {outcome.elapsed:.3f} seconds."
    return text + "\n"


def report(outcome: ExecutionOutcome, out: Output, config) -> None:
    """打印一行汇总：行数与耗时，或错误 / 取消信息。"""
    if isinstance(outcome, Success):
        if not config.quiet:
            out.write(summary_line(outcome, config.timing))
    elif isinstance(outcome, Error):
        out.error(f"Error: {outcome.kind.value}: {outcome.message}\n")
    elif isinstance(outcome, Cancelled):
        if outcome.reason == "timeout":
            out.error(f"Query timed out after {outcome.elapsed:.3f} seconds.\n")
        else:
            out.error("Query cancelled.\n")


def render(events: Iterable[Event], fmt, out: Output, config,
           cancel: Optional[CancelToken] = None) -> ExecutionOutcome:
    """
    消费事件流直到 Completed，边收边写；返回最终结果。
    输出过程中收到 Ctrl-C 时置位 cancel，继续读事件直到执行桥给出 Cancelled。
    """
    writer = make_writer(fmt, out, config)
    outcome: Optional[ExecutionOutcome] = None
    it = iter(events)
    while outcome is None:
        try:
            ev = next(it, None)
            if ev is None:
                break
            if isinstance(ev, Completed):
                outcome = ev.outcome
            elif cancel is None or not cancel.cancelled:
                writer.write_batch(ev.batch)
        except KeyboardInterrupt:
            if cancel is None:
                raise
            cancel.cancel("interrupt")
    if outcome is None:
        if cancel is not None and cancel.cancelled:
            outcome = Cancelled(reason=cancel.reason or "interrupt")
        else:
            outcome = Error("result stream ended without an outcome", ErrorKind.EXECUTION)
    if isinstance(outcome, Success):
        writer.finish()
    else:
        writer.abort()
    report(outcome, out, config)
    return outcome
