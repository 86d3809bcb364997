#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
语句切分：把逐行输入拼成完整的 SQL 语句。

只做字符级扫描（引号 / 注释 / 分号），不做语法分析；
真正的语法检查交给查询引擎。
"""

from __future__ import annotations
from enum import Enum
from typing import Iterable, List, Optional

from engine.errors import UnterminatedInputError

TERMINATOR = ";"


class ScanState(Enum):
    NORMAL = "NORMAL"
    IN_SINGLE_QUOTE = "IN_SINGLE_QUOTE"
    IN_DOUBLE_QUOTE = "IN_DOUBLE_QUOTE"
    IN_LINE_COMMENT = "IN_LINE_COMMENT"
    IN_BLOCK_COMMENT = "IN_BLOCK_COMMENT"


_QUOTE_STATES = {
    "'": ScanState.IN_SINGLE_QUOTE,
    '"': ScanState.IN_DOUBLE_QUOTE,
}


def _escape_prefix(buf: str, i: int) -> bool:
    """buf[i] 处的单引号前面是否紧跟独立的 E/e 前缀。"""
    if i < 1 or buf[i - 1] not in "eE":
        return False
    return i < 2 or not (buf[i - 2].isalnum() or buf[i - 2] == "_")


class StatementAssembler:
    """
    语句组装器

    用法：
        asm = StatementAssembler()
        stmt = asm.feed(line)        # 返回完整语句或 None
        while stmt is not None:
            ...
            stmt = asm.next_statement()  # 同一行里可能还有下一条
        tail = asm.finish()          # 输入结束时取最后一条（无分号）
    """

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self._buf = ""
        self._pos = 0
        self._state = ScanState.NORMAL
        # 当前缓冲区里是否出现过非空白、非注释的内容
        self._has_content = False
        # 当前字符串是否为 E'...' 形式（只有它把反斜杠当转义）
        self._escapes = False

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def in_progress(self) -> bool:
        """缓冲区里是否有未结束的语句（用于续行提示符）。"""
        return self._has_content or self._state is not ScanState.NORMAL

    def feed(self, line: str) -> Optional[str]:
        """追加一行输入；若凑成一条完整语句则返回语句文本（不含分号）。"""
        if line.endswith("\r\n"):
            line = line[:-2]
        elif line.endswith("\n"):
            line = line[:-1]
        if not self.in_progress and not line.strip():
            return None
        self._buf += line + "\n"
        return self.next_statement()

    def next_statement(self) -> Optional[str]:
        """继续扫描缓冲区中尚未扫描的部分，遇到顶层分号即切出一条语句。"""
        buf = self._buf
        i = self._pos
        n = len(buf)
        while i < n:
            ch = buf[i]
            nxt = buf[i + 1] if i + 1 < n else ""
            st = self._state

            if st is ScanState.IN_SINGLE_QUOTE or st is ScanState.IN_DOUBLE_QUOTE:
                if ch == "\\" and self._escapes and i + 1 < n:
                    i += 2
                    continue
                if (ch == "'" and st is ScanState.IN_SINGLE_QUOTE) or \
                        (ch == '"' and st is ScanState.IN_DOUBLE_QUOTE):
                    self._state = ScanState.NORMAL
                i += 1
                continue

            if st is ScanState.IN_LINE_COMMENT:
                if ch == "\n":
                    self._state = ScanState.NORMAL
                i += 1
                continue

            if st is ScanState.IN_BLOCK_COMMENT:
                if ch == "*" and nxt == "/":
                    self._state = ScanState.NORMAL
                    i += 2
                    continue
                i += 1
                continue

            # NORMAL
            if ch in _QUOTE_STATES:
                self._state = _QUOTE_STATES[ch]
                self._escapes = ch == "'" and _escape_prefix(buf, i)
                self._has_content = True
                i += 1
                continue
            if ch == "-" and nxt == "-":
                self._state = ScanState.IN_LINE_COMMENT
                i += 2
                continue
            if ch == "/" and nxt == "*":
                self._state = ScanState.IN_BLOCK_COMMENT
                i += 2
                continue
            if ch == TERMINATOR:
                text = buf[:i].strip()
                has_content = self._has_content
                self._buf = buf[i + 1:]
                self._pos = 0
                self._has_content = False
                if has_content:
                    return text
                # 空语句（如 ";;" 或只有注释）直接丢弃，继续扫描剩余部分
                buf = self._buf
                i = 0
                n = len(buf)
                continue
            if not ch.isspace():
                self._has_content = True
            i += 1

        self._pos = i
        if not self._has_content and self._state is ScanState.NORMAL:
            # 只剩空白/注释时不保留，避免空行无限累积
            self._buf = ""
            self._pos = 0
        return None

    def finish(self) -> Optional[str]:
        """
        输入结束：
          - 仍在引号或块注释中 → 抛出 UnterminatedInputError；
          - 有未以分号结尾的内容 → 作为最后一条语句返回；
          - 否则返回 None。
        """
        state = self._state
        text = self._buf.strip()
        has_content = self._has_content
        self.reset()
        if state not in (ScanState.NORMAL, ScanState.IN_LINE_COMMENT):
            raise UnterminatedInputError(state.value, text)
        if has_content:
            return text
        return None


def split_statements(lines: Iterable[str]) -> List[str]:
    """把一段输入（行序列或整段文本）切成语句列表，末尾无分号的内容也算一条。"""
    if isinstance(lines, str):
        lines = lines.splitlines()
    asm = StatementAssembler()
    out: List[str] = []
    for line in lines:
        stmt = asm.feed(line)
        while stmt is not None:
            out.append(stmt)
            stmt = asm.next_statement()
    tail = asm.finish()
    if tail is not None:
        out.append(tail)
    return out
