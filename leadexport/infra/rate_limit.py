"""
频率限制跟踪器

按固定时间窗口统计远端调用次数，只提供配额信息，不阻塞也不拒绝调用。
窗口跨越边界时计数清零，不结转剩余额度。
"""

import time
from typing import Callable

from leadexport.schemas import QuotaInfo


class RateLimitTracker:
    """固定窗口调用计数器"""

    def __init__(
        self,
        max_requests: int = 100,
        window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        初始化频率限制跟踪器

        Args:
            max_requests: 每个窗口允许的最大请求数
            window: 窗口长度（秒）
            clock: 单调时钟，用于测试注入
        """
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window <= 0:
            raise ValueError("window must be > 0")
        self._max_requests = max_requests
        self._window = window
        self._clock = clock
        self._count = 0
        self._window_start = clock()

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window(self) -> float:
        return self._window

    def _roll_window(self) -> float:
        now = self._clock()
        if now - self._window_start >= self._window:
            self._count = 0
            self._window_start = now
        return now

    def record_call(self) -> None:
        """记录一次远端调用"""
        self._roll_window()
        self._count += 1

    def seconds_until_reset(self) -> float:
        """距离当前窗口结束的秒数"""
        now = self._roll_window()
        return max(0.0, self._window - (now - self._window_start))

    def is_exhausted(self) -> bool:
        """当前窗口的配额是否已用完"""
        self._roll_window()
        return self._count >= self._max_requests

    def get_quota(self) -> QuotaInfo:
        """
        获取当前配额信息

        Returns:
            QuotaInfo: 已用次数、剩余次数与窗口上限
        """
        now = self._roll_window()
        return QuotaInfo(
            request_count=self._count,
            remaining_requests=max(0, self._max_requests - self._count),
            max_requests_per_window=self._max_requests,
            window_seconds=self._window,
            reset_in_seconds=max(0.0, self._window - (now - self._window_start)),
        )
