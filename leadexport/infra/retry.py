"""
重试执行器

实现：
- RetryConfig：重试次数、延迟与退避策略
- RetryExecutor：统一的异步重试逻辑，失败统一归一化为 AppError
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from leadexport.config import get_settings
from leadexport.infra.errors import AppError, ErrorClassifier

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackoffStrategy(str, Enum):
    """退避策略"""

    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


def _retry_if_retryable(error: AppError) -> bool:
    return error.retryable


@dataclass(frozen=True)
class RetryConfig:
    """
    重试配置

    Attributes:
        max_attempts: 最大尝试次数（含首次），>= 1
        delay: 基础延迟（秒），>= 0
        backoff: 退避策略
        multiplier: 指数退避倍数
        max_delay: 单次延迟上限（秒），None 表示不设上限
        retry_condition: 基于已分类错误的重试判定
    """

    max_attempts: int = 3
    delay: float = 1.0
    backoff: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    multiplier: float = 2.0
    max_delay: float | None = None
    retry_condition: Callable[[AppError], bool] = field(default=_retry_if_retryable)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.delay < 0:
            raise ValueError("delay must be >= 0")
        object.__setattr__(self, "backoff", BackoffStrategy(self.backoff))

    @classmethod
    def from_settings(cls, **overrides: Any) -> "RetryConfig":
        """从应用配置构建重试配置"""
        settings = get_settings()
        values: dict[str, Any] = {
            "max_attempts": settings.retry_max_attempts,
            "delay": settings.retry_base_delay,
            "backoff": BackoffStrategy(settings.retry_backoff),
            "multiplier": settings.retry_backoff_multiplier,
            "max_delay": settings.retry_max_delay,
        }
        values.update(overrides)
        return cls(**values)

    def delay_for(self, attempt: int) -> float:
        """
        计算第 attempt 次失败后的等待时间

        Args:
            attempt: 已失败的尝试次数（从 1 开始）

        Returns:
            float: 延迟秒数
        """
        match self.backoff:
            case BackoffStrategy.FIXED:
                delay = self.delay
            case BackoffStrategy.LINEAR:
                delay = self.delay * attempt
            case _:
                delay = self.delay * (self.multiplier ** (attempt - 1))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay


class RetryExecutor:
    """通用重试执行器"""

    def __init__(
        self,
        default_config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        初始化重试执行器

        Args:
            default_config: 默认重试配置，缺省时从应用配置读取
            sleep: 延迟函数，用于测试注入
        """
        self._default_config = default_config
        self._sleep = sleep

    @property
    def default_config(self) -> RetryConfig:
        if self._default_config is None:
            self._default_config = RetryConfig.from_settings()
        return self._default_config

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        config: RetryConfig | None = None,
        context: dict[str, Any] | None = None,
    ) -> T:
        """
        带重试执行异步操作

        Args:
            operation: 无参异步函数
            config: 重试配置，默认使用执行器的默认配置
            context: 附加到错误上的上下文

        Returns:
            操作返回值

        Raises:
            AppError: 不可重试或重试耗尽时抛出最后一次分类后的错误
        """
        config = config or self.default_config
        attempt = 0

        while True:
            attempt += 1
            try:
                return await operation()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = ErrorClassifier.classify(e, context)

            if not error.retryable or not config.retry_condition(error):
                if attempt > 1:
                    logger.warning(
                        f"Attempt {attempt}/{config.max_attempts} failed with "
                        f"non-retryable error: {error}"
                    )
                raise error

            if attempt >= config.max_attempts:
                if config.max_attempts > 1:
                    logger.error(
                        f"Retry exhausted after {config.max_attempts} attempts: {error}"
                    )
                raise error

            delay = config.delay_for(attempt)
            logger.warning(
                f"Attempt {attempt}/{config.max_attempts} failed: {error}. "
                f"Retrying in {delay:.1f}s..."
            )
            await self._sleep(delay)
