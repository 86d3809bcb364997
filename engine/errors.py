# engine/errors.py
# -*- coding: utf-8 -*-
"""
Shell 错误分类：

  InputError        输入在引号/注释中途结束
  DispatchError     未知或用法错误的元命令
  EngineError       引擎报告的解析/规划/执行错误
  CancellationError 用户中断或超时
  OutputError       输出端失效（如管道断开），致命

除 OutputError 和启动失败外，其余错误只影响当前语句。
"""
from __future__ import annotations
from enum import Enum


class ErrorKind(Enum):
    PARSE = "Parse error"
    PLANNING = "Planning error"
    EXECUTION = "Execution error"
    STARTUP = "Startup error"


class ShellError(Exception):
    """所有 shell 错误的基类。"""


class InputError(ShellError):
    pass


class UnterminatedInputError(InputError):
    """输入结束时仍处于引号或注释中。"""

    def __init__(self, state: str, text: str = ""):
        self.state = state
        self.text = text
        where = {
            "IN_SINGLE_QUOTE": "single-quoted string",
            "IN_DOUBLE_QUOTE": "double-quoted identifier",
            "IN_BLOCK_COMMENT": "block comment",
        }.get(state, state.lower())
        super().__init__(f"unterminated {where} at end of input")


class DispatchError(ShellError):
    pass


class EngineError(ShellError):
    """引擎错误：message + 分类。"""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.EXECUTION):
        self.message = message
        self.kind = kind
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class CancellationError(ShellError):
    def __init__(self, reason: str = "interrupt"):
        self.reason = reason
        super().__init__(f"query cancelled ({reason})")


class OutputError(ShellError):
    """写输出失败；shell 以非零退出码结束。"""
