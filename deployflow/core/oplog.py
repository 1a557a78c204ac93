"""操作日志: 每个顶层操作（部署/备份/恢复）一份，只追加不截断

所有子步骤共享同一份 Log；进程输出在命令执行过程中实时追加，
因此另一个读者可以并发地查看正在进行的操作。
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

ALERT_EXCERPT_CHARS = 3000
TRIM_MARKER = "[... log has been trimmed ...]\n"


class LogSink(Protocol):
    """操作日志协议"""

    def append(self, line: str) -> None:
        """追加一行"""
        ...

    def content(self) -> str:
        """返回迄今为止的全部内容"""
        ...


class MemoryLog:
    """内存日志（测试和一次性操作使用）"""

    def __init__(self) -> None:
        self._lines: list[str] = []
        self._lock = threading.Lock()

    def append(self, line: str) -> None:
        with self._lock:
            self._lines.append(line.rstrip("\n"))

    def content(self) -> str:
        with self._lock:
            return "".join(f"{line}\n" for line in self._lines)

    @property
    def lines(self) -> list[str]:
        with self._lock:
            return list(self._lines)


class FileLog:
    """文件日志: <log_path>/<name>.log，每行带 UTC 时间戳"""

    def __init__(self, log_path: str | Path, name: str) -> None:
        self.path = Path(log_path) / f"{name}.log"
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def append(self, line: str) -> None:
        stamp = datetime.now(tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        with self._lock, open(self.path, "a", encoding="utf-8") as f:
            f.write(f"[{stamp}] {line.rstrip(chr(10))}\n")

    def content(self) -> str:
        if not self.path.exists():
            return ""
        return self.path.read_text(encoding="utf-8")


def trim_for_alert(content: str, limit: int = ALERT_EXCERPT_CHARS) -> str:
    """截取日志尾部用于告警

    从倒数第 limit 个字符处向前找最近的换行，保留其后的完整行并加截断标记；
    内容不超过 limit 或截断点之前没有换行时返回原文。
    """
    if len(content) <= limit:
        return content
    breakpoint_ = content.rfind("\n", 0, len(content) - limit + 1)
    if breakpoint_ == -1:
        return content
    return TRIM_MARKER + content[breakpoint_ + 1:]
