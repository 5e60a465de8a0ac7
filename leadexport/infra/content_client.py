"""
内容生成客户端

通过 Anthropic Messages API 生成营销内容片段（snippet1-7）。
请求经由统一的重试执行器，失败统一为 AppError。
"""

import json
import logging
import re
from typing import Any

import httpx
from pydantic import ValidationError

from leadexport.config import get_settings
from leadexport.infra.errors import (
    AppError,
    Err,
    ErrorCategory,
    ErrorClassifier,
    ErrorCode,
    ErrorSeverity,
    Result,
)
from leadexport.infra.rate_limit import RateLimitTracker
from leadexport.infra.retry import RetryExecutor
from leadexport.schemas import SNIPPET_FIELDS, GeneratedContent, QuotaInfo

logger = logging.getLogger(__name__)

BLOCK_DELIMITER = "---BLOCK---"

# 以 HTML 段落形式发送的邮件正文片段
HTML_SNIPPETS = frozenset({"snippet2", "snippet4", "snippet5", "snippet6", "snippet7"})

# ```json ... ``` 代码块
FENCED_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)

DEFAULT_SYSTEM_PROMPT = (
    "You write personalised cold outreach snippets. "
    f"Respond with exactly {len(SNIPPET_FIELDS)} plain text blocks separated by "
    f"{BLOCK_DELIMITER} on its own line, in the order "
    + ", ".join(SNIPPET_FIELDS)
    + ". Do not add any text before the first block or after the last one."
)


def _extract_text(body: dict[str, Any]) -> str:
    """拼接响应中的文本块"""
    blocks = body.get("content") or []
    return "".join(
        block.get("text", "")
        for block in blocks
        if isinstance(block, dict) and block.get("type") == "text"
    )


def text_to_html(text: str) -> str:
    """按空行分段，每段包裹为 <div>，段落之间插入空行 <div><br></div>"""
    paragraphs = [p.strip() for p in text.split("\n\n")]
    return "<div><br></div>".join(f"<div>{p}</div>" for p in paragraphs if p)


def _unparseable(message: str, **details: Any) -> AppError:
    return AppError(
        message=message,
        category=ErrorCategory.BUSINESS,
        severity=ErrorSeverity.MEDIUM,
        code=ErrorCode.CONTENT_INCOMPLETE,
        details=details,
        retryable=False,
    )


def _parse_json(text: str) -> dict[str, Any] | None:
    """解析纯 JSON 或包裹在代码块中的 JSON，失败返回 None"""
    match = FENCED_BLOCK_PATTERN.search(text)
    candidate = match.group(1) if match else text
    start, end = candidate.find("{"), candidate.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        parsed = json.loads(candidate[start : end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_snippets(text: str) -> dict[str, Any]:
    """
    解析模型输出

    优先按 ---BLOCK--- 分隔的 7 个文本块解析；只有一个块时尝试按 JSON 解析。
    邮件正文片段（snippet2、4-7）转换为 HTML，已是 <div> 开头的保持不变。

    Raises:
        AppError: 输出无法解析时抛出不可重试的 business 错误
    """
    blocks = [block.strip() for block in text.split(BLOCK_DELIMITER) if block.strip()]
    if len(blocks) == len(SNIPPET_FIELDS):
        parsed: dict[str, Any] = dict(zip(SNIPPET_FIELDS, blocks))
    elif len(blocks) <= 1:
        json_parsed = _parse_json(text)
        if json_parsed is None:
            raise _unparseable(
                f"Expected {len(SNIPPET_FIELDS)} content blocks separated by {BLOCK_DELIMITER} "
                "or a JSON object, but neither was found",
                blocks=len(blocks),
            )
        logger.info("Model output is JSON, using it instead of text blocks")
        parsed = json_parsed
    else:
        raise _unparseable(
            f"Expected {len(SNIPPET_FIELDS)} content blocks separated by {BLOCK_DELIMITER}, "
            f"but received {len(blocks)}",
            blocks=len(blocks),
        )

    missing = [name for name in SNIPPET_FIELDS if not parsed.get(name)]
    if missing:
        raise _unparseable(
            f"Missing required field(s): {', '.join(missing)}",
            available=sorted(parsed),
        )

    for name in HTML_SNIPPETS:
        value = str(parsed[name])
        parsed[name] = value if value.startswith("<div>") else text_to_html(value)
    return parsed


class ContentClient:
    """内容生成客户端"""

    def __init__(
        self,
        api_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        executor: RetryExecutor | None = None,
        rate_limiter: RateLimitTracker | None = None,
    ):
        """
        初始化内容生成客户端

        Args:
            api_key: Anthropic API Key，默认从配置读取
            http_client: 可选的 httpx 异步客户端，用于测试注入
            executor: 重试执行器
            rate_limiter: 调用配额统计
        """
        self._settings = get_settings()
        key = api_key if api_key is not None else self._settings.anthropic_api_key
        self._api_key = (key or "").strip()
        self._http_client = http_client
        self._executor = executor or RetryExecutor()
        self._rate_limiter = rate_limiter or RateLimitTracker(
            max_requests=self._settings.anthropic_rate_limit_max_requests,
            window=self._settings.rate_limit_window,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def get_quota(self) -> QuotaInfo:
        """获取当前调用配额（仅本地计算）"""
        return self._rate_limiter.get_quota()

    async def _get_client(self) -> httpx.AsyncClient:
        """获取 HTTP 客户端"""
        if self._http_client:
            return self._http_client
        return httpx.AsyncClient(
            base_url=self._settings.anthropic_base_url,
            timeout=self._settings.http_timeout,
        )

    def _build_headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._api_key,
            "anthropic-version": self._settings.anthropic_version,
            "content-type": "application/json",
        }

    async def _post_messages(self, payload: dict[str, Any]) -> Result[Any]:
        if self._rate_limiter.is_exhausted():
            wait = self._rate_limiter.seconds_until_reset()
            return Err(AppError(
                message=f"Rate limit reached. Please wait {wait:.0f} seconds.",
                category=ErrorCategory.NETWORK,
                severity=ErrorSeverity.MEDIUM,
                code=ErrorCode.RATE_LIMITED,
                details={"reset_in_seconds": wait},
                retryable=False,
            ))
        self._rate_limiter.record_call()
        client = await self._get_client()
        try:
            response = await client.post(
                "/messages", json=payload, headers=self._build_headers()
            )
        except httpx.HTTPError as e:
            return Err(ErrorClassifier.classify(e, {"endpoint": "/messages"}))
        finally:
            if not self._http_client:
                await client.aclose()
        return ErrorClassifier.to_result(response)

    async def generate_snippets(
        self,
        prompt: str,
        lead_data: dict[str, Any],
        model: str | None = None,
        system_prompt: str | None = None,
    ) -> GeneratedContent:
        """
        为单条线索生成内容片段

        Args:
            prompt: 生成提示词
            lead_data: 线索数据（序列化后附加到提示词）
            model: 模型名称，默认使用配置中的模型
            system_prompt: 系统提示词

        Returns:
            GeneratedContent: snippet1-7

        Raises:
            AppError: 未配置 API Key、请求失败或输出无法解析时抛出
        """
        if not self.is_configured:
            raise AppError(
                message="Anthropic API key is not configured",
                category=ErrorCategory.AUTH,
                severity=ErrorSeverity.HIGH,
                code=ErrorCode.AUTH_ERROR,
                retryable=False,
            )

        payload = {
            "model": model or self._settings.anthropic_model,
            "max_tokens": self._settings.anthropic_max_tokens,
            "system": system_prompt or DEFAULT_SYSTEM_PROMPT,
            "messages": [
                {
                    "role": "user",
                    "content": f"{prompt}\n\nLead data:\n{json.dumps(lead_data, ensure_ascii=False, default=str)}",
                }
            ],
        }

        async def _do_generate() -> GeneratedContent:
            body = (await self._post_messages(payload)).unwrap()
            parsed = parse_snippets(_extract_text(body or {}))
            try:
                return GeneratedContent.model_validate(parsed)
            except ValidationError as e:
                raise ErrorClassifier.classify(e) from e

        content = await self._executor.execute(
            _do_generate,
            context={"operation": "generate_snippets", "model": payload["model"]},
        )
        logger.info(f"Generated content with model {payload['model']}")
        return content
