"""
配置管理模块

使用 Pydantic Settings 管理环境变量配置。
支持从 .env 文件或环境变量加载配置。
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# 视为"未配置"的占位 API Key
PLACEHOLDER_API_KEYS = frozenset({"", "replace"})


class Settings(BaseSettings):
    """应用配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Woodpecker API 配置
    woodpecker_api_key: str = Field(
        default="",
        description="Woodpecker API Key（为空或占位值时进入演示模式）",
    )
    woodpecker_base_url: str = Field(
        default="https://api.woodpecker.co/rest/v1",
        description="Woodpecker API 基础 URL",
    )

    # 活动列表缓存配置
    campaign_cache_ttl: float = Field(
        default=300.0,
        description="活动列表缓存有效期（秒）",
    )

    # 频率限制配置
    rate_limit_max_requests: int = Field(
        default=100,
        description="每个时间窗口内允许的最大请求数",
    )
    rate_limit_window: float = Field(
        default=60.0,
        description="频率限制时间窗口（秒）",
    )
    rate_limit_throttle: bool = Field(
        default=True,
        description="配额耗尽时是否等待窗口重置后再发送请求",
    )

    # 重试配置
    retry_max_attempts: int = Field(
        default=3,
        description="最大尝试次数",
    )
    retry_base_delay: float = Field(
        default=1.0,
        description="重试基础延迟（秒）",
    )
    retry_max_delay: float = Field(
        default=32.0,
        description="重试最大延迟（秒）",
    )
    retry_backoff: Literal["fixed", "linear", "exponential"] = Field(
        default="exponential",
        description="退避策略",
    )
    retry_backoff_multiplier: float = Field(
        default=2.0,
        description="指数退避倍数",
    )

    # 批量导出配置
    export_max_concurrency: int = Field(
        default=5,
        description="批量导出时同时在途的最大提交数",
    )
    export_detect_timezones: bool = Field(
        default=True,
        description="导出成功后是否触发远端时区检测",
    )
    demo_submit_delay: float = Field(
        default=0.2,
        description="演示模式下模拟单条提交的耗时（秒）",
    )

    # HTTP 客户端配置
    http_timeout: float = Field(
        default=30.0,
        description="HTTP 请求超时时间（秒）",
    )

    # 内容生成（Anthropic）配置
    anthropic_api_key: str = Field(
        default="",
        description="Anthropic API Key",
    )
    anthropic_base_url: str = Field(
        default="https://api.anthropic.com/v1",
        description="Anthropic API 基础 URL",
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="默认内容生成模型",
    )
    anthropic_max_tokens: int = Field(
        default=4000,
        description="单次生成最大 token 数",
    )
    anthropic_version: str = Field(
        default="2023-06-01",
        description="anthropic-version 请求头",
    )
    anthropic_rate_limit_max_requests: int = Field(
        default=100,
        description="内容生成每个时间窗口内允许的最大请求数",
    )

    # API 认证配置
    api_auth_token: str = Field(
        default="",
        description="API 接口认证 Token（Bearer Token），为空时不启用认证",
    )

    # 错误记录配置
    error_log_limit: int = Field(
        default=100,
        description="错误上报器保留的最近错误条数",
    )

    # 服务启动配置
    host: str = Field(default="127.0.0.1", description="监听地址")
    port: int = Field(default=8000, description="监听端口")
    log_level: str = Field(default="info", description="日志级别")

    @property
    def api_auth_enabled(self) -> bool:
        """是否启用 API 认证"""
        return bool(self.api_auth_token)


@lru_cache
def get_settings() -> Settings:
    """
    获取应用配置（单例模式）

    Returns:
        Settings: 应用配置实例
    """
    return Settings()
