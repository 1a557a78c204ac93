"""文件系统工具: 受限权限工作目录 + 名称清洗"""

from __future__ import annotations

import logging
import re
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_UNSAFE = re.compile(r"[^a-zA-Z0-9\-_.]")


def sanitize_name(name: str) -> str:
    """空白替换为下划线，去掉 [a-zA-Z0-9-_.] 以外的字符，转小写"""
    return _UNSAFE.sub("", _WHITESPACE.sub("_", name)).lower()


class PrivateWorkdir:
    """仅属主可访问的工作目录（可能存放未加密的敏感数据）

    remove() 幂等：第一次调用删除目录，之后调用不再有任何动作。
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.removed = False

    def create(self) -> PrivateWorkdir:
        self.path.mkdir(mode=0o700, parents=True, exist_ok=True)
        # mkdir 的 mode 受 umask 影响，显式收紧
        self.path.chmod(0o700)
        return self

    def remove(self) -> bool:
        """删除目录，返回本次调用是否真正执行了删除"""
        if self.removed:
            return False
        self.removed = True
        shutil.rmtree(self.path, ignore_errors=True)
        logger.debug("工作目录已删除: %s", self.path)
        return True


@contextmanager
def private_workdir(path: str | Path) -> Iterator[PrivateWorkdir]:
    """创建 0700 工作目录，退出时（无论成功失败）保证删除"""
    workdir = PrivateWorkdir(path).create()
    try:
        yield workdir
    finally:
        workdir.remove()
