"""操作钩子（Observer 模式）

编排器在固定节点同步调用已注册的回调，按注册顺序执行。
与结果通知类钩子不同，这里的回调失败会直接向上传播：
deploy_start 钩子失败意味着部署在产生任何副作用之前就被中止。

用法:
    hooks = HookList("deploy_start")
    hooks.subscribe(lambda environment, build, log: audit(environment, build))
    hooks.fire(environment, build, log)
"""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

Hook = Callable[..., Any]


class HookList:
    """有序回调列表"""

    def __init__(self, name: str) -> None:
        self.name = name
        self._hooks: list[Hook] = []

    def subscribe(self, hook: Hook) -> None:
        self._hooks.append(hook)

    def unsubscribe(self, hook: Hook) -> bool:
        if hook in self._hooks:
            self._hooks.remove(hook)
            return True
        return False

    def fire(self, *args: Any, **kwargs: Any) -> None:
        for hook in list(self._hooks):
            logger.debug("执行钩子 %s: %s", self.name, getattr(hook, "__name__", hook))
            hook(*args, **kwargs)

    def __len__(self) -> int:
        return len(self._hooks)
