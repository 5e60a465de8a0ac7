"""
Woodpecker API 客户端

封装与 Woodpecker 活动服务的交互，包括：
- 获取活动列表（带 TTL 缓存）
- 批量查重
- 逐条添加联系人并汇总导出结果
- 调用配额统计
- 未配置 API Key 时的演示模式
"""

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Sequence

import httpx

from leadexport.config import PLACEHOLDER_API_KEYS, get_settings
from leadexport.infra.cache import ResourceCache
from leadexport.infra.errors import (
    AppError,
    Err,
    ErrorCategory,
    ErrorClassifier,
    ErrorCode,
    ErrorSeverity,
    Result,
)
from leadexport.infra.export_pipeline import BulkExportPipeline, ProgressCallback
from leadexport.infra.rate_limit import RateLimitTracker
from leadexport.infra.reporter import ErrorReporter
from leadexport.infra.retry import RetryExecutor
from leadexport.infra.validation import validate_prospect
from leadexport.schemas import Campaign, ExportResult, Prospect, QuotaInfo

logger = logging.getLogger(__name__)

CAMPAIGNS_CACHE_KEY = "campaigns"

# 视为添加成功的联系人状态
ACCEPTED_STATUSES = frozenset({"OK", "SUCCESS", "DUPLICATE"})

# 演示模式下的活动列表
DEMO_CAMPAIGNS = (
    Campaign(
        campaign_id=2356837,
        name="Q4 Outreach Campaign",
        status="ACTIVE",
        created_date="2024-12-01T10:00:00Z",
        prospects_count=145,
    ),
    Campaign(
        campaign_id=1234567,
        name="SaaS CEOs",
        status="RUNNING",
        created_date="2024-11-15T14:30:00Z",
        prospects_count=89,
    ),
    Campaign(
        campaign_id=7654321,
        name="Holiday Follow-up",
        status="PAUSED",
        created_date="2024-12-10T09:15:00Z",
        prospects_count=234,
    ),
    Campaign(
        campaign_id=9876543,
        name="New Year Prospects",
        status="DRAFT",
        created_date="2024-12-20T16:45:00Z",
        prospects_count=67,
    ),
)


def _is_accepted(entry: dict[str, Any]) -> bool:
    """判断单个联系人的响应是否表示成功"""
    status = str(entry.get("status") or "").upper()
    result = str(entry.get("result") or "").upper()
    if status in ACCEPTED_STATUSES or result in ("OK", "SUCCESS"):
        return True
    # 既没有错误也没有状态时视为成功
    return not entry.get("error") and not status


def _rejection_message(entry: dict[str, Any]) -> str:
    return str(
        entry.get("msg")
        or entry.get("message")
        or entry.get("error")
        or entry.get("status")
        or "API response missing status field"
    )


class WoodpeckerClient:
    """Woodpecker API 客户端"""

    def __init__(
        self,
        api_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        cache: ResourceCache | None = None,
        rate_limiter: RateLimitTracker | None = None,
        executor: RetryExecutor | None = None,
        reporter: ErrorReporter | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        初始化 Woodpecker 客户端

        Args:
            api_key: API Key，默认从配置读取；为空或占位值时进入演示模式
            http_client: 可选的 httpx 异步客户端，用于测试注入
            cache: 活动列表缓存
            rate_limiter: 调用配额统计
            executor: 重试执行器
            reporter: 错误上报器
            sleep: 延迟函数（限流等待、演示模式模拟耗时），用于测试注入
        """
        self._settings = get_settings()
        key = api_key if api_key is not None else self._settings.woodpecker_api_key
        self._api_key = (key or "").strip()
        self._demo = self._api_key in PLACEHOLDER_API_KEYS
        self._http_client = http_client
        self._cache = cache or ResourceCache()
        self._rate_limiter = rate_limiter or RateLimitTracker(
            max_requests=self._settings.rate_limit_max_requests,
            window=self._settings.rate_limit_window,
        )
        self._executor = executor or RetryExecutor()
        self._reporter = (
            reporter if reporter is not None else ErrorReporter(limit=self._settings.error_log_limit)
        )
        self._pipeline = BulkExportPipeline(
            executor=self._executor,
            reporter=self._reporter,
            max_concurrency=self._settings.export_max_concurrency,
        )
        self._sleep = sleep
        self._background: set[asyncio.Task] = set()

        if self._demo:
            logger.warning("No valid Woodpecker API key found - running in demo mode")
        else:
            logger.info("Woodpecker client initialized")

    @property
    def is_demo(self) -> bool:
        """是否处于演示模式"""
        return self._demo

    @property
    def reporter(self) -> ErrorReporter:
        return self._reporter

    async def _get_client(self) -> httpx.AsyncClient:
        """获取 HTTP 客户端"""
        if self._http_client:
            return self._http_client
        return httpx.AsyncClient(
            base_url=self._settings.woodpecker_base_url,
            headers=self._build_headers(),
            timeout=self._settings.http_timeout,
        )

    def _build_headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._api_key,
            "Content-Type": "application/json",
        }

    async def _throttle(self) -> None:
        """配额耗尽时等待窗口重置"""
        if not self._settings.rate_limit_throttle or not self._rate_limiter.is_exhausted():
            return
        wait = self._rate_limiter.seconds_until_reset()
        logger.warning(f"Rate limit quota exhausted, waiting {wait:.1f}s for window reset")
        await self._sleep(wait)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Result[Any]:
        """
        发送单次请求

        每次调用计入配额；传输异常与失败响应都在此处归一化为 Err。

        Returns:
            Ok(响应 JSON) 或 Err(AppError)
        """
        await self._throttle()
        self._rate_limiter.record_call()

        client = await self._get_client()
        try:
            logger.debug(f"Woodpecker request: {method} {path}")
            response = await client.request(
                method, path, headers=self._build_headers(), **kwargs
            )
        except httpx.HTTPError as e:
            return Err(ErrorClassifier.classify(e, {"endpoint": path}))
        finally:
            if not self._http_client:
                await client.aclose()

        logger.debug(f"Woodpecker response: {response.status_code} for {method} {path}")
        return ErrorClassifier.to_result(response)

    # ========== 活动列表 ==========

    async def list_campaigns(self, force_refresh: bool = False) -> list[Campaign]:
        """
        获取活动列表

        Args:
            force_refresh: 是否忽略缓存重新拉取

        Returns:
            list[Campaign]: 活动列表

        Raises:
            AppError: 拉取失败且重试耗尽时抛出
        """
        if self._demo:
            logger.warning("No API key, using demo campaigns")
            return [campaign.model_copy() for campaign in DEMO_CAMPAIGNS]

        async def _fetch() -> list[Campaign]:
            return await self._executor.execute(
                self._fetch_campaigns,
                context={"operation": "list_campaigns"},
            )

        campaigns = await self._cache.get_or_fetch(
            CAMPAIGNS_CACHE_KEY,
            _fetch,
            ttl=self._settings.campaign_cache_ttl,
            force_refresh=force_refresh,
        )
        return list(campaigns)

    async def _fetch_campaigns(self) -> list[Campaign]:
        data = (await self._request("GET", "/campaign_list")).unwrap()
        if not isinstance(data, list):
            logger.warning(f"Unexpected campaign list format: {type(data).__name__}")
            return []

        campaigns = []
        for item in data:
            if not isinstance(item, dict) or item.get("id") is None:
                logger.warning(f"Skipping malformed campaign entry: {item!r}")
                continue
            campaigns.append(
                Campaign(
                    campaign_id=item["id"],
                    name=item.get("name") or "",
                    status=item.get("status") or "",
                    created_date=item.get("created"),
                    prospects_count=None,
                )
            )
        logger.info(f"Campaigns fetched and cached: {len(campaigns)} campaigns")
        return campaigns

    def clear_campaign_cache(self) -> None:
        """清除活动列表缓存"""
        self._cache.invalidate(CAMPAIGNS_CACHE_KEY)

    # ========== 查重 ==========

    async def check_duplicates(self, emails: Sequence[str], campaign_id: int) -> list[str]:
        """
        检查哪些邮箱已存在于活动中

        Args:
            emails: 待检查的邮箱
            campaign_id: 活动 ID

        Returns:
            list[str]: 已存在的邮箱（保留传入的原始写法）

        Raises:
            AppError: 查询失败且重试耗尽时抛出
        """
        if self._demo or not emails:
            return []

        async def _do_check() -> Any:
            return (
                await self._request("GET", "/prospects", params={"campaign_id": campaign_id})
            ).unwrap()

        data = await self._executor.execute(
            _do_check,
            context={"operation": "check_duplicates", "campaign_id": campaign_id},
        )

        entries = data.get("prospects", []) if isinstance(data, dict) else data
        existing = set()
        for entry in entries or []:
            if not isinstance(entry, dict) or not entry.get("email"):
                continue
            campaigns = entry.get("campaigns")
            if campaigns is not None and campaign_id not in campaigns:
                continue
            existing.add(str(entry["email"]).strip().lower())

        duplicates = [email for email in emails if email.strip().lower() in existing]
        logger.info(
            f"Duplicate check complete: {len(duplicates)} duplicates found "
            f"out of {len(emails)} emails"
        )
        return duplicates

    # ========== 添加联系人 ==========

    async def add_prospect(self, prospect: Prospect, campaign_id: int) -> int | None:
        """
        向活动添加单个联系人（单次尝试，重试由调用方决定）

        Args:
            prospect: 联系人
            campaign_id: 活动 ID

        Returns:
            int | None: 远端联系人 ID（若响应中提供）

        Raises:
            AppError: 请求失败，或远端拒绝该联系人（business 类，不可重试）
        """
        request = {
            "prospects": [prospect.to_payload()],
            "campaign": {"campaign_id": campaign_id},
            "force": False,
        }
        data = (await self._request("POST", "/add_prospects_campaign", json=request)).unwrap()

        entries = data.get("prospects") if isinstance(data, dict) else None
        if not entries:
            return None

        entry = next(
            (
                e for e in entries
                if isinstance(e, dict) and str(e.get("email", "")).strip().lower() == prospect.identity
            ),
            entries[0],
        )
        if not isinstance(entry, dict):
            return None

        if _is_accepted(entry):
            remote_id = entry.get("id")
            return remote_id if isinstance(remote_id, int) else None

        raise AppError(
            message=_rejection_message(entry),
            category=ErrorCategory.BUSINESS,
            severity=ErrorSeverity.MEDIUM,
            code=ErrorCode.PROSPECT_REJECTED,
            details=entry,
            retryable=False,
            context={"identity": prospect.identity, "campaign_id": campaign_id},
        )

    async def submit_batch(
        self,
        prospects: Sequence[Prospect],
        campaign_id: int,
        on_progress: ProgressCallback | None = None,
    ) -> ExportResult:
        """
        批量导出联系人到活动

        Args:
            prospects: 联系人列表
            campaign_id: 活动 ID
            on_progress: 进度回调

        Returns:
            ExportResult: 导出结果
        """
        logger.info(f"Exporting {len(prospects)} prospects to campaign {campaign_id}")

        if self._demo:
            logger.warning(f"Demo mode - simulating export of {len(prospects)} prospects")
            return await self._pipeline.submit_batch(
                prospects,
                self._simulate_add,
                validator=validate_prospect,
                on_progress=on_progress,
            )

        async def _submit_one(prospect: Prospect) -> int | None:
            return await self.add_prospect(prospect, campaign_id)

        async def _lookup(identities: list[str]) -> list[str]:
            return await self.check_duplicates(identities, campaign_id)

        result = await self._pipeline.submit_batch(
            prospects,
            _submit_one,
            validator=validate_prospect,
            duplicate_lookup=_lookup,
            on_progress=on_progress,
        )

        if result.remote_ids and self._settings.export_detect_timezones:
            self._spawn(self.detect_timezones(list(result.remote_ids)))
        return result

    async def _simulate_add(self, prospect: Prospect) -> None:
        await self._sleep(self._settings.demo_submit_delay)
        logger.debug(f"Demo mode: simulated export of {prospect.identity}")

    # ========== 时区检测 ==========

    async def detect_timezones(self, prospect_ids: list[int]) -> bool:
        """
        触发远端时区检测（非关键操作，失败只记录日志）

        Args:
            prospect_ids: 远端联系人 ID

        Returns:
            bool: 是否成功触发
        """
        if self._demo or not prospect_ids:
            return False

        operation_id = uuid.uuid4()
        try:
            (
                await self._request(
                    "POST",
                    f"/prospects/bulk/{operation_id}",
                    json={"type": "DETECT_TIMEZONE", "prospect_ids": prospect_ids},
                )
            ).unwrap()
        except AppError as e:
            logger.warning(f"Timezone detection failed but prospects were added: {e}")
            return False

        logger.info(f"Timezone detection initiated for {len(prospect_ids)} prospects")
        return True

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task failed: {exc}", exc_info=exc)
            self.reporter.report(ErrorClassifier.classify(exc, {"stage": "background"}))

    # ========== 配额与资源 ==========

    def get_quota(self) -> QuotaInfo:
        """获取当前调用配额（仅本地计算）"""
        return self._rate_limiter.get_quota()

    async def close(self) -> None:
        """等待后台任务结束"""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()
