# engine/cli/state.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from engine.errors import DispatchError
from engine.session import EngineSession

logger = logging.getLogger(__name__)


class OutputFormat(Enum):
    TABLE = "table"
    CSV = "csv"
    TSV = "tsv"
    JSON = "json"

    @classmethod
    def parse(cls, name: str) -> "OutputFormat":
        key = (name or "").strip().lower()
        if key == "ndjson":
            key = "json"
        for f in cls:
            if f.value == key:
                return f
        choices = ", ".join(f.value for f in cls)
        raise DispatchError(f"unknown format '{name}' (choose from: {choices})")


@dataclass
class ShellConfig:
    """
    Shell 行为配置：
    - max_width: 表格单元格最大显示宽度，超出截断并加 "..."
    - null_marker: 表格中 NULL 的显示文本
    - lookahead_rows: 计算列宽前最多缓存的行数；0 表示按声明类型估算、立即输出
    - quiet / timing: 是否省略汇总行 / 汇总行是否带耗时
    - statement_timeout: 语句超时（秒），None 表示不限
    - history_file: 历史记录文件，None 表示不保存
    """
    max_width: int = 40
    null_marker: str = "NULL"
    lookahead_rows: int = 1000
    quiet: bool = False
    timing: bool = True
    statement_timeout: Optional[float] = None
    poll_interval: float = 0.05
    queue_size: int = 4
    history_file: Optional[str] = field(
        default_factory=lambda: os.path.join(os.path.expanduser("~"), ".minisql_history"))
    prompt: str = "minisql> "
    continuation_prompt: str = "     -> "


@dataclass
class SessionState:
    """
    会话状态：只由主循环和元命令修改，不加锁。
    engine 是整个进程生命周期内唯一的引擎会话句柄。
    """
    engine: EngineSession
    output_format: OutputFormat = OutputFormat.TABLE
    config: ShellConfig = field(default_factory=ShellConfig)
    history: List[str] = field(default_factory=list)
    running: bool = True
    _flushed: int = 0

    @property
    def quiet(self) -> bool:
        return self.config.quiet

    def record(self, stmt: str) -> None:
        self.history.append(stmt)

    def flush_history(self) -> int:
        """把尚未落盘的历史追加写入 history_file，返回写入条数。"""
        pending = self.history[self._flushed:]
        path = self.config.history_file
        if not pending or not path:
            self._flushed = len(self.history)
            return 0
        try:
            with open(path, "a", encoding="utf-8") as f:
                for stmt in pending:
                    f.write(stmt.replace("\r", " ").replace("\n", " ") + ";\n")
        except OSError as e:
            logger.warning("could not write history file %s: %s", path, e)
            return 0
        self._flushed = len(self.history)
        return len(pending)

    def close(self) -> None:
        self.flush_history()
        self.engine.close()
