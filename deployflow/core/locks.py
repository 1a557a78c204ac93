"""环境级互斥: 同一环境同一时间只允许一个操作

仅在进程内生效；跨进程的串行化（作业队列等）仍由调用方负责。
获取失败时不等待，直接抛 EnvironmentBusyError。
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from deployflow.core.exceptions import EnvironmentBusyError
from deployflow.core.models import Environment

logger = logging.getLogger(__name__)


class EnvironmentLocks:
    """按环境全名跟踪正在执行的操作"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._busy: dict[str, str] = {}

    @contextmanager
    def hold(self, environment: Environment, operation: str) -> Iterator[None]:
        key = environment.full_name
        with self._lock:
            if key in self._busy:
                raise EnvironmentBusyError(
                    f"环境 {key} 正在执行 {self._busy[key]}，拒绝 {operation}"
                )
            self._busy[key] = operation
        logger.info("环境已锁定: %s (%s)", key, operation)
        try:
            yield
        finally:
            with self._lock:
                self._busy.pop(key, None)
            logger.info("环境已释放: %s", key)

    def busy(self) -> dict[str, str]:
        with self._lock:
            return dict(self._busy)
