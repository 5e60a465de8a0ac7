"""
资源缓存

按 key 缓存远端列表资源（如活动列表），支持：
- get_or_fetch：命中有效缓存直接返回，否则拉取
- 同一 key 同时最多一个在途拉取，并发调用方共享同一结果
- 强制刷新与显式失效
- 拉取失败不覆盖已有缓存
- 拉取期间被失效的 key 不写入该次拉取的结果
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """缓存条目"""

    value: T
    fetched_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now >= self.fetched_at + self.ttl


class ResourceCache:
    """带 TTL 的资源缓存"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        初始化资源缓存

        Args:
            clock: 单调时钟，用于测试注入
        """
        self._clock = clock
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        # 失效计数：拉取期间 key 被失效时丢弃拉取结果
        self._generations: dict[str, int] = {}
        # 已失效但仍在途的拉取任务
        self._detached: set[asyncio.Task] = set()

    async def get_or_fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl: float,
        force_refresh: bool = False,
    ) -> T:
        """
        获取缓存值，必要时拉取

        Args:
            key: 缓存 key
            fetcher: 无参异步拉取函数
            ttl: 新条目的有效期（秒）
            force_refresh: 是否忽略现有缓存

        Returns:
            缓存值或新拉取的值

        Raises:
            拉取失败时抛出 fetcher 的异常，已有缓存保持不变
        """
        if not force_refresh:
            entry = self._entries.get(key)
            if entry is not None and not entry.is_expired(self._clock()):
                logger.debug(f"Cache hit for {key}")
                return entry.value

        # 检查与登记在途任务之间没有 await，事件循环内不会被其他协程打断
        task = self._inflight.get(key)
        if task is None:
            logger.debug(f"Cache miss for {key}, fetching (force_refresh={force_refresh})")
            task = asyncio.ensure_future(
                self._fetch_and_store(key, fetcher, ttl, self._generations.get(key, 0))
            )
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._on_fetch_done(k, t))
        else:
            logger.debug(f"Joining in-flight fetch for {key}")

        # shield：单个调用方取消不会取消共享的拉取
        return await asyncio.shield(task)

    async def _fetch_and_store(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl: float,
        generation: int,
    ) -> T:
        value = await fetcher()
        if self._generations.get(key, 0) != generation:
            logger.debug(f"Discarding fetch result for {key}: invalidated while fetching")
            return value
        self._entries[key] = CacheEntry(value=value, fetched_at=self._clock(), ttl=ttl)
        return value

    def _on_fetch_done(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Fetch for {key} failed: {task.exception()}")

    def invalidate(self, key: str) -> None:
        """删除指定 key 的缓存条目，在途拉取的结果不再写入"""
        self._entries.pop(key, None)
        self._bump(key)
        logger.debug(f"Cache invalidated for {key}")

    def clear(self) -> None:
        """清空所有缓存条目"""
        for key in list(self._inflight):
            self._bump(key)
        self._entries.clear()

    def _bump(self, key: str) -> None:
        self._generations[key] = self._generations.get(key, 0) + 1
        # 之后的调用方发起新的拉取
        task = self._inflight.pop(key, None)
        if task is not None and not task.done():
            self._detached.add(task)
            task.add_done_callback(self._detached.discard)

    def peek(self, key: str) -> Any | None:
        """返回缓存值（即使已过期），不存在时返回 None"""
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def is_fresh(self, key: str) -> bool:
        """缓存条目是否存在且未过期"""
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def is_fetching(self, key: str) -> bool:
        """是否有在途拉取"""
        task = self._inflight.get(key)
        return task is not None and not task.done()
