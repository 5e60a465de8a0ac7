"""
Export Service

业务逻辑层：校验请求级参数，调用 Woodpecker / 内容生成客户端，
并将失败上报到注入的错误上报器。
"""

import logging
from typing import Any, Sequence

from leadexport.infra.content_client import ContentClient
from leadexport.infra.errors import AppError, ErrorCategory, ErrorCode, ErrorSeverity
from leadexport.infra.export_pipeline import ProgressCallback
from leadexport.infra.reporter import ErrorReporter
from leadexport.infra.woodpecker_client import WoodpeckerClient
from leadexport.schemas import Campaign, ExportResult, GeneratedContent, Prospect, QuotaInfo

logger = logging.getLogger(__name__)


def _invalid_request(message: str, **context: Any) -> AppError:
    return AppError(
        message=message,
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.LOW,
        code=ErrorCode.INVALID_REQUEST,
        retryable=False,
        context=context,
    )


class ExportService:
    """导出服务"""

    def __init__(
        self,
        woodpecker: WoodpeckerClient,
        content: ContentClient | None = None,
        reporter: ErrorReporter | None = None,
    ):
        """
        初始化导出服务

        Args:
            woodpecker: Woodpecker 客户端
            content: 内容生成客户端（可选）
            reporter: 错误上报器，默认使用 Woodpecker 客户端的上报器
        """
        self.woodpecker = woodpecker
        self.content = content or ContentClient()
        self.reporter = reporter if reporter is not None else woodpecker.reporter

    def _validate_campaign_id(self, campaign_id: int) -> None:
        if not isinstance(campaign_id, int) or isinstance(campaign_id, bool) or campaign_id <= 0:
            raise self.reporter.report(
                _invalid_request("Campaign ID must be a positive integer", campaign_id=campaign_id)
            )

    async def list_campaigns(self, force_refresh: bool = False) -> list[Campaign]:
        """获取活动列表"""
        try:
            campaigns = await self.woodpecker.list_campaigns(force_refresh=force_refresh)
        except AppError as e:
            raise self.reporter.report(e.with_context(operation="list_campaigns"))
        logger.info(f"Retrieved {len(campaigns)} campaigns")
        return campaigns

    def clear_campaign_cache(self) -> None:
        """清除活动列表缓存"""
        self.woodpecker.clear_campaign_cache()

    async def check_duplicates(self, emails: Sequence[str], campaign_id: int) -> list[str]:
        """检查活动中已存在的邮箱"""
        self._validate_campaign_id(campaign_id)
        cleaned = [email.strip() for email in emails if email and email.strip()]
        if not cleaned:
            raise self.reporter.report(_invalid_request("Emails must be a non-empty array"))
        try:
            return await self.woodpecker.check_duplicates(cleaned, campaign_id)
        except AppError as e:
            raise self.reporter.report(e.with_context(campaign_id=campaign_id))

    async def export_prospects(
        self,
        prospects: Sequence[Prospect],
        campaign_id: int,
        on_progress: ProgressCallback | None = None,
    ) -> ExportResult:
        """
        导出联系人到活动

        单条失败记录在结果中，不抛出异常。
        """
        self._validate_campaign_id(campaign_id)
        if not prospects:
            raise self.reporter.report(_invalid_request("Prospects must be a non-empty array"))

        result = await self.woodpecker.submit_batch(prospects, campaign_id, on_progress)
        logger.info(
            f"Added prospects to campaign {campaign_id}: "
            f"{result.succeeded} succeeded, {result.failed} failed, {result.skipped} skipped"
        )
        return result

    async def generate_snippets(
        self,
        prompt: str,
        lead_data: dict[str, Any],
        model: str | None = None,
        system_prompt: str | None = None,
    ) -> GeneratedContent:
        """生成内容片段"""
        try:
            return await self.content.generate_snippets(
                prompt, lead_data, model=model, system_prompt=system_prompt
            )
        except AppError as e:
            raise self.reporter.report(e.with_context(operation="generate_snippets"))

    def get_quota(self) -> QuotaInfo:
        """获取调用配额"""
        return self.woodpecker.get_quota()

    def get_content_quota(self) -> QuotaInfo:
        """获取内容生成调用配额"""
        return self.content.get_quota()
