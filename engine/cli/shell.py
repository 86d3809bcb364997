# engine/cli/shell.py
# -*- coding: utf-8 -*-
"""
交互式主循环：读入 → 拼语句 → 分派 → 执行 → 输出 → 下一条。

单条语句的任何错误（输入、元命令、引擎、取消）都只打印一行信息，
循环继续；只有输出端失效才会结束会话并返回非零退出码。
"""
from __future__ import annotations
import logging
import os
from enum import Enum
from typing import Iterable, Iterator, Optional, Union

from sql.splitter import StatementAssembler
from engine.bridge import CancelToken, Cancelled, ExecutionBridge, Success
from engine.errors import DispatchError, OutputError, UnterminatedInputError
from engine.session import EngineSession
from .commands import Empty, MetaCommand, SqlStatement, classify, dispatch
from .printer import Output, render, report
from .state import OutputFormat, SessionState, ShellConfig

# Windows 没有内置 readline，可选导入
try:
    import readline  # type: ignore
except ImportError:
    readline = None

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_OUTPUT_LOST = 2


# --------------------------- 输入源 ---------------------------

class InputSource:
    interactive = False

    def read_line(self, prompt: str) -> Optional[str]: ...
    def close(self) -> None: ...


class StreamInput(InputSource):
    """从文件对象或行序列读取（脚本、管道、测试）。"""

    def __init__(self, lines: Iterable[str]):
        self._it: Iterator[str] = iter(lines)

    def read_line(self, prompt: str) -> Optional[str]:
        return next(self._it, None)


class TerminalInput(InputSource):
    """终端输入：input() + 可选 readline（行编辑与历史）。"""
    interactive = True

    def __init__(self, history_file: Optional[str] = None):
        self.history_file = history_file
        if readline is not None and history_file and os.path.exists(history_file):
            try:
                readline.read_history_file(history_file)
            except OSError as e:
                logger.debug("could not load history %s: %s", history_file, e)

    def read_line(self, prompt: str) -> Optional[str]:
        try:
            return input(prompt)
        except EOFError:
            return None


# --------------------------- 主循环 ---------------------------

class Phase(Enum):
    AWAITING_INPUT = "AwaitingInput"
    ASSEMBLING = "Assembling"
    DISPATCHING = "Dispatching"
    EXECUTING = "Executing"
    RENDERING = "Rendering"
    TERMINATING = "Terminating"


class Shell:
    def __init__(self, state: SessionState, source: InputSource, out: Output,
                 bridge: ExecutionBridge, fail_on_error: bool = False) -> None:
        self.state = state
        self.source = source
        self.out = out
        self.bridge = bridge
        self.fail_on_error = fail_on_error
        self.assembler = StatementAssembler()
        self.phase = Phase.AWAITING_INPUT
        self.errors = 0

    def _enter(self, phase: Phase) -> None:
        if phase is not self.phase:
            logger.debug("%s -> %s", self.phase.value, phase.value)
            self.phase = phase

    def _prompt(self) -> str:
        if not self.source.interactive:
            return ""
        cfg = self.state.config
        return cfg.continuation_prompt if self.assembler.in_progress else cfg.prompt

    def run(self) -> int:
        code = EXIT_OK
        try:
            while self.state.running:
                if not self.assembler.in_progress:
                    self._enter(Phase.AWAITING_INPUT)
                try:
                    line = self.source.read_line(self._prompt())
                except KeyboardInterrupt:
                    # 提示符下 Ctrl-C：丢弃未完成的语句
                    self.assembler.reset()
                    if self.source.interactive:
                        self.out.write("\n")
                    continue
                if line is None:
                    self._end_of_input()
                    break

                if not self.assembler.in_progress:
                    cmd = classify(line)
                    if isinstance(cmd, MetaCommand):
                        self._handle(cmd)
                        continue

                self._enter(Phase.ASSEMBLING)
                stmt = self.assembler.feed(line)
                while stmt is not None and self.state.running:
                    self._handle(classify(stmt))
                    stmt = self.assembler.next_statement()
            if self.fail_on_error and self.errors:
                code = EXIT_FAILURE
        except OutputError as e:
            logger.error("output lost: %s", e)
            code = EXIT_OUTPUT_LOST
        finally:
            self._terminate()
        return code

    def _end_of_input(self) -> None:
        try:
            tail = self.assembler.finish()
        except UnterminatedInputError as e:
            self.errors += 1
            self.out.error(f"Error: {e}\n")
            return
        if tail is not None:
            self._handle(classify(tail))

    def _handle(self, cmd) -> None:
        self._enter(Phase.DISPATCHING)
        if isinstance(cmd, Empty):
            return
        if isinstance(cmd, MetaCommand):
            try:
                dispatch(cmd, self.state, self.out)
            except DispatchError as e:
                self.errors += 1
                self.out.error(f"Error: {e}\n")
            return
        if isinstance(cmd, SqlStatement):
            self._execute(cmd.text)

    def _execute(self, sql: str) -> None:
        self.state.record(sql)
        self._enter(Phase.EXECUTING)
        cancel = CancelToken()
        events = self.bridge.execute(sql, self.state.engine, cancel)
        try:
            self._enter(Phase.RENDERING)
            outcome = render(events, self.state.output_format, self.out,
                             self.state.config, cancel=cancel)
        except OutputError:
            raise
        except KeyboardInterrupt:
            # 结果已收完、正在收尾输出时按下 Ctrl-C：按取消处理，会话继续
            cancel.cancel("interrupt")
            outcome = Cancelled(reason="interrupt")
            report(outcome, self.out, self.state.config)
        except Exception as e:
            logger.exception("unexpected error while rendering")
            self.errors += 1
            self.out.error(f"Error: {type(e).__name__}: {e}\n")
            return
        finally:
            events.close()
        if not isinstance(outcome, Success):
            self.errors += 1
        self.out.flush()

    def _terminate(self) -> None:
        self._enter(Phase.TERMINATING)
        try:
            self.state.close()
        finally:
            self.bridge.shutdown()
            self.source.close()


def run_session(engine_session: Optional[EngineSession],
                initial_format: Union[str, OutputFormat],
                input_source: Union[InputSource, Iterable[str]],
                output_sink: Optional[Output] = None,
                config: Optional[ShellConfig] = None,
                fail_on_error: bool = False) -> int:
    """
    运行一个交互会话，返回退出码：
      0  正常结束（单条语句出错不影响）
      1  启动失败（无引擎会话、格式名无效）
      2  输出端失效
    """
    out = output_sink or Output()
    config = config or ShellConfig()
    if engine_session is None:
        out.error("Error: no engine session\n")
        return EXIT_FAILURE
    try:
        fmt = initial_format if isinstance(initial_format, OutputFormat) \
            else OutputFormat.parse(initial_format)
    except DispatchError as e:
        out.error(f"Error: {e}\n")
        engine_session.close()
        return EXIT_FAILURE
    source = input_source if isinstance(input_source, InputSource) else StreamInput(input_source)
    state = SessionState(engine=engine_session, output_format=fmt, config=config)
    bridge = ExecutionBridge(poll_interval=config.poll_interval,
                             queue_size=config.queue_size,
                             timeout=config.statement_timeout)
    return Shell(state, source, out, bridge, fail_on_error=fail_on_error).run()
