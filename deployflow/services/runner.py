"""进程执行器: 执行命令并实时把输出写入操作日志

stdout / stderr 各由一个读取线程逐行转发到日志，两路之间不保证相对顺序，
每一路内部保持顺序。命令以非零状态退出时返回 success=False，不抛异常；
只有进程无法启动时才抛 InvocationError。
"""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import IO, Protocol

from deployflow.core.exceptions import InvocationError
from deployflow.core.models import Command
from deployflow.core.oplog import LogSink

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """命令执行结果"""

    success: bool
    error_output: str = ""
    returncode: int | None = None
    timed_out: bool = False
    invocation_error: InvocationError | None = None


class CommandRunner(Protocol):
    """命令执行器协议: 测试时可注入脚本化实现"""

    def run(self, command: Command, log: LogSink) -> RunResult:
        ...


class ProcessRunner:
    """本地子进程执行器（默认实现）

    子进程在独立会话中启动，超时时整个进程组一起被杀掉，
    避免派生的后台进程（如 ssh ControlMaster）继续持有输出管道。
    """

    def _pump(self, stream: IO[str], log: LogSink, captured: list[str] | None) -> None:
        try:
            for line in iter(stream.readline, ""):
                log.append(line.rstrip("\r\n"))
                if captured is not None:
                    captured.append(line)
        finally:
            stream.close()

    @staticmethod
    def _kill(proc: subprocess.Popen[str]) -> None:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            proc.kill()
        proc.wait()

    def run(self, command: Command, log: LogSink) -> RunResult:
        try:
            # 远端工具的输出不保证是合法 UTF-8，非法字节替换后照常写入日志
            proc = subprocess.Popen(
                shlex.split(command.line),
                stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                encoding="utf-8", errors="replace", bufsize=1,
                cwd=command.cwd, start_new_session=True,
            )
        except (OSError, ValueError) as e:
            logger.error("无法启动命令 %s: %s", command.action, e)
            raise InvocationError(f"无法启动命令 {command.action}: {e}") from e

        stderr_lines: list[str] = []
        readers = [
            threading.Thread(target=self._pump, args=(proc.stdout, log, None), daemon=True),
            threading.Thread(target=self._pump, args=(proc.stderr, log, stderr_lines), daemon=True),
        ]
        for t in readers:
            t.start()

        deadline = time.monotonic() + command.timeout
        timed_out = False
        try:
            proc.wait(timeout=command.timeout)
        except subprocess.TimeoutExpired:
            timed_out = True
        # 子进程已退出但管道仍被后台进程占用时，等待同样受超时约束
        for t in readers:
            t.join(max(deadline - time.monotonic(), 0))
        if any(t.is_alive() for t in readers):
            timed_out = True
        if timed_out:
            self._kill(proc)
            for t in readers:
                t.join(5)
            message = f"Command {command.action} timed out after {command.timeout}s"
            log.append(message)
            logger.error(
                "命令超时 (%ds): %s", command.timeout, command.action,
                extra={"action": command.action},
            )
            return RunResult(
                success=False, error_output=message,
                returncode=proc.returncode, timed_out=True,
            )

        success = proc.returncode == 0
        if not success:
            logger.warning(
                "命令失败 (rc=%d): %s", proc.returncode, command.action,
                extra={"action": command.action},
            )
        return RunResult(
            success=success,
            error_output="" if success else "".join(stderr_lines),
            returncode=proc.returncode,
        )


def run_step(runner: CommandRunner, command: Command, log: LogSink) -> RunResult:
    """执行一个编排步骤: 进程无法启动同样视为步骤失败

    原始的 InvocationError 保存在结果上，调用方据此把它链接为类型化异常的 cause。
    """
    try:
        return runner.run(command, log)
    except InvocationError as e:
        log.append(f"Could not start {command.action}: {e}")
        return RunResult(success=False, error_output=str(e), invocation_error=e)
