"""
速率限制

所有worker共享同一个闸门，每次RPC请求前必须等待，
保证整体请求频率不超过免费套餐的配额。
"""

import threading
import time
from typing import Callable, Optional


class RateLimiter:
    """固定间隔的请求闸门（线程安全）"""

    def __init__(
        self,
        requests_per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        """初始化

        Args:
            requests_per_second: 每秒最大请求数
            clock: 单调时钟（测试可替换）
            sleep: 休眠函数（测试可替换）
        """
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")

        self.interval = 1.0 / requests_per_second
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot: Optional[float] = None

    def wait(self) -> float:
        """等待下一个可用时间片

        时间片在锁内预订，休眠在锁外进行，多个线程按到达顺序依次放行。

        Returns:
            实际等待的秒数
        """
        with self._lock:
            now = self._clock()
            if self._next_slot is None or self._next_slot <= now:
                slot = now
            else:
                slot = self._next_slot
            self._next_slot = slot + self.interval

        delay = slot - now
        if delay > 0:
            self._sleep(delay)
        return delay
