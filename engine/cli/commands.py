# engine/cli/commands.py
# -*- coding: utf-8 -*-
"""
元命令识别与处理。

classify() 把一条输入分为三类：
  SqlStatement  交给引擎执行
  MetaCommand   shell 自身的命令（help / quit / format ...），只修改会话状态
  Empty         空输入
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, Union

from engine.errors import DispatchError
from .printer import Output
from .state import OutputFormat, SessionState

HELP = (
    "Commands:\n"
    "  help, \\?, \\h                show this help\n"
    "  quit, exit, \\q               leave the shell\n"
    "  format <name>                switch output format (table, csv, tsv, json)\n"
    "  \\pset format <name>          same as format\n"
    "  \\quiet [on|off]              hide/show the summary line\n"
    "  \\timing [on|off]             hide/show elapsed time in the summary line\n"
    "  \\maxwidth <n>                maximum table cell width\n"
    "  \\null <marker>               text shown for NULL in tables\n"
    "  \\history [n]                 show the last n statements\n"
    "SQL statements end with ';' and may span several lines.\n"
)


@dataclass(frozen=True)
class SqlStatement:
    text: str


@dataclass(frozen=True)
class MetaCommand:
    name: str
    args: str = ""


@dataclass(frozen=True)
class Empty:
    pass


Command = Union[SqlStatement, MetaCommand, Empty]


def _split(text: str):
    s = text.strip()
    while s.endswith(";"):
        s = s[:-1].rstrip()
    parts = s.split(None, 1)
    if not parts:
        return "", ""
    return parts[0].lower(), (parts[1].strip() if len(parts) > 1 else "")


def classify(stmt_text: str) -> Command:
    name, args = _split(stmt_text)
    if not name:
        return Empty()
    if name in HANDLERS or name.startswith("\\"):
        return MetaCommand(name, args)
    return SqlStatement(stmt_text.strip())


# --------------------------- 处理函数 ---------------------------

def _parse_switch(name: str, args: str, current: bool) -> bool:
    a = args.strip().lower()
    if not a:
        return not current
    if a in ("on", "true", "1", "yes"):
        return True
    if a in ("off", "false", "0", "no"):
        return False
    raise DispatchError(f"usage: {name} [on|off]")


def _help(state: SessionState, args: str, out: Output) -> None:
    out.write(HELP)


def _quit(state: SessionState, args: str, out: Output) -> None:
    state.running = False


def _format(state: SessionState, args: str, out: Output) -> None:
    if not args:
        out.write(f"Output format is {state.output_format.value}.\n")
        return
    state.output_format = OutputFormat.parse(args)
    out.write(f"Output format is {state.output_format.value}.\n")


def _pset(state: SessionState, args: str, out: Output) -> None:
    parts = args.split(None, 1)
    if not parts or parts[0].lower() != "format":
        raise DispatchError("usage: \\pset format <name>")
    _format(state, parts[1] if len(parts) > 1 else "", out)


def _quiet(state: SessionState, args: str, out: Output) -> None:
    state.config.quiet = _parse_switch("\\quiet", args, state.config.quiet)
    out.write(f"Quiet mode is {'on' if state.config.quiet else 'off'}.\n")


def _timing(state: SessionState, args: str, out: Output) -> None:
    state.config.timing = _parse_switch("\\timing", args, state.config.timing)
    out.write(f"Timing is {'on' if state.config.timing else 'off'}.\n")


def _maxwidth(state: SessionState, args: str, out: Output) -> None:
    try:
        n = int(args)
    except ValueError:
        raise DispatchError("usage: \\maxwidth <n>") from None
    if n < 4:
        raise DispatchError("max width must be at least 4")
    state.config.max_width = n
    out.write(f"Max column width is {n}.\n")


def _null(state: SessionState, args: str, out: Output) -> None:
    state.config.null_marker = args
    out.write(f"Null display is \"{args}\".\n")


def _history(state: SessionState, args: str, out: Output) -> None:
    try:
        n = int(args) if args else 20
    except ValueError:
        raise DispatchError("usage: \\history [n]") from None
    items = state.history[-n:] if n > 0 else []
    start = len(state.history) - len(items) + 1
    for i, stmt in enumerate(items, start):
        out.write(f"{i:>5}  {stmt}\n")


Handler = Callable[[SessionState, str, Output], None]

HANDLERS: Dict[str, Handler] = {
    "help": _help,
    "\\?": _help,
    "\\h": _help,
    "quit": _quit,
    "exit": _quit,
    "\\q": _quit,
    "format": _format,
    "\\pset": _pset,
    "\\quiet": _quiet,
    "\\timing": _timing,
    "\\maxwidth": _maxwidth,
    "\\null": _null,
    "\\history": _history,
}


def dispatch(cmd: MetaCommand, state: SessionState, out: Output) -> None:
    """执行元命令；未知命令或参数错误抛 DispatchError。"""
    handler = HANDLERS.get(cmd.name)
    if handler is None:
        raise DispatchError(f"unknown command: {cmd.name}")
    handler(state, cmd.args, out)
