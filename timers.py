"""延时任务调度（超时、重试、定时刷新）"""

import logging
import threading
from typing import Callable

log = logging.getLogger(__name__)


class Scheduler:
    """基于 threading.Timer 的调度器，测试中可替换为手动时钟"""

    def call_later(self, delay: float, fn: Callable[[], None]) -> threading.Timer:
        """delay 秒后在后台线程执行 fn，返回值可 cancel()"""
        timer = threading.Timer(delay, self._run, args=(fn,))
        timer.daemon = True
        timer.start()
        return timer

    @staticmethod
    def _run(fn: Callable[[], None]):
        try:
            fn()
        except Exception:
            log.exception("定时任务执行失败: %r", fn)
