# engine/cli/main.py
from __future__ import annotations
import argparse
import itertools
import logging
import os
import sys
from typing import List, Optional

from engine.errors import EngineError
from engine.session import EngineConfig, create_session
from .printer import Output
from .shell import EXIT_FAILURE, EXIT_OUTPUT_LOST, StreamInput, TerminalInput, run_session
from .state import ShellConfig

BANNER = (
    "minisql - interactive SQL shell.\n"
    "Statements end with ';'. Type help or \\? for commands, \\q to quit.\n"
)

_log_handler: Optional[logging.Handler] = None


def enable_log(path: Optional[str] = None, level: int = logging.INFO, debug: bool = False) -> None:
    """
    开启日志（仅初始化一次）：
    - path 不为空时写文件，格式与 buffer pool 诊断日志一致
    - debug 时额外把 DEBUG 级别输出到 stderr
    """
    global _log_handler
    if _log_handler is not None:
        return
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if debug else level)
    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    if path:
        handler: logging.Handler = logging.FileHandler(path, encoding="utf-8")
    elif debug:
        handler = logging.StreamHandler(sys.stderr)
    else:
        handler = logging.NullHandler()
    handler.setFormatter(fmt)
    root.addHandler(handler)
    _log_handler = handler
    if path and debug:
        err = logging.StreamHandler(sys.stderr)
        err.setFormatter(fmt)
        root.addHandler(err)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="minisql", description="Interactive SQL shell")
    ap.add_argument("--data", default=":memory:", help="database file (default: in-memory)")
    ap.add_argument("--format", default="table", help="output format: table, csv, tsv, json")
    ap.add_argument("-c", "--command", action="append", default=[], help="run a statement and exit (repeatable)")
    ap.add_argument("-f", "--file", action="append", default=[], help="run statements from a file and exit (repeatable)")
    ap.add_argument("-q", "--quiet", action="store_true", help="do not print the summary line")
    ap.add_argument("--batch-size", type=int, default=8192, help="rows per result batch")
    ap.add_argument("--memory-limit", default=None, help="engine memory limit, e.g. 2GB")
    ap.add_argument("--threads", type=int, default=None, help="engine worker threads (default: CPU count)")
    ap.add_argument("--read-only", action="store_true", help="open the database read-only")
    ap.add_argument("--max-width", type=int, default=40, help="maximum table cell width")
    ap.add_argument("--null", default="NULL", help="text shown for NULL in tables")
    ap.add_argument("--lookahead", type=int, default=1000,
                    help="rows buffered to size table columns; 0 sizes columns by type")
    ap.add_argument("--timeout", type=float, default=None, help="statement timeout in seconds")
    ap.add_argument("--history-file", default=None, help="history file (default: ~/.minisql_history)")
    ap.add_argument("--no-history", action="store_true", help="do not save statement history")
    ap.add_argument("--fail-on-error", action="store_true",
                    help="exit with status 1 if any statement failed")
    ap.add_argument("--log-file", default=None, help="write diagnostics to this file")
    ap.add_argument("--debug", action="store_true", help="verbose diagnostics on stderr")
    return ap


def _read_files(paths: List[str]) -> List[str]:
    lines: List[str] = []
    for p in paths:
        with open(p, "r", encoding="utf-8") as f:
            lines.extend(f.read().splitlines())
        # 文件末尾没写分号的语句不与下一个文件拼在一起
        lines.append(";")
    return lines


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    enable_log(args.log_file, debug=args.debug)

    config = ShellConfig(
        max_width=max(4, args.max_width),
        null_marker=args.null,
        lookahead_rows=max(0, args.lookahead),
        quiet=args.quiet,
        statement_timeout=args.timeout,
    )
    if args.no_history:
        config.history_file = None
    elif args.history_file:
        config.history_file = args.history_file

    engine_config = EngineConfig(
        database=args.data,
        batch_size=max(1, args.batch_size),
        memory_limit=args.memory_limit,
        read_only=args.read_only,
    )
    if args.threads:
        engine_config.threads = args.threads

    try:
        script = _read_files(args.file)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    try:
        session = create_session(engine_config)
    except EngineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    if args.command or args.file:
        # 先执行 -c 命令（每条单独成句），再执行 -f 文件
        commands = itertools.chain.from_iterable(c.splitlines() + [";"] for c in args.command)
        source = StreamInput(itertools.chain(commands, script))
    elif sys.stdin.isatty():
        source = TerminalInput(config.history_file)
        if not args.quiet:
            print(BANNER)
    else:
        source = StreamInput(sys.stdin)

    code = run_session(session, args.format, source, Output(), config,
                       fail_on_error=args.fail_on_error)
    if code == EXIT_OUTPUT_LOST:
        # 管道已断开：把 stdout 指向 devnull，避免解释器退出时再次报错
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
    return code


if __name__ == "__main__":
    sys.exit(main())
