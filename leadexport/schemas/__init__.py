"""
Pydantic Schemas

定义远端资源、导出结果与 API 请求/响应的数据结构。
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


SNIPPET_FIELDS = tuple(f"snippet{i}" for i in range(1, 8))


# ============== 枚举类型 ==============

class ExportStatus(str, Enum):
    """批量导出状态"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


# ============== 远端资源 ==============

class Campaign(BaseModel):
    """Woodpecker 活动"""
    campaign_id: int = Field(..., description="活动 ID")
    name: str = Field(..., description="活动名称")
    status: str = Field(default="", description="活动状态")
    created_date: str | None = Field(default=None, description="创建时间")
    prospects_count: int | None = Field(default=None, description="联系人数量")


class Prospect(BaseModel):
    """
    待导出的联系人

    email 为身份字段；除标准字段与 snippet1-7 外允许任意字符串扩展字段。
    构造时不校验邮箱格式，格式问题由导出前的本地校验计入失败。
    """
    model_config = ConfigDict(extra="allow")

    email: str = Field(default="", description="邮箱（身份字段）")
    first_name: str | None = None
    last_name: str | None = None
    company: str | None = None
    title: str | None = None
    linkedin_url: str | None = None
    website: str | None = None
    industry: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    time_zone: str | None = Field(default=None, description="时区（Woodpecker 字段名为 time_zone）")
    snippet1: str | None = None
    snippet2: str | None = None
    snippet3: str | None = None
    snippet4: str | None = None
    snippet5: str | None = None
    snippet6: str | None = None
    snippet7: str | None = None

    @property
    def identity(self) -> str:
        """规范化后的身份标识"""
        return self.email.strip().lower()

    def snippets(self) -> dict[str, str]:
        """非空的 snippet 字段"""
        return {
            name: value
            for name in SNIPPET_FIELDS
            if (value := getattr(self, name)) is not None
        }

    def to_payload(self) -> dict[str, Any]:
        """转换为请求体，排除 None 值"""
        payload = self.model_dump(exclude_none=True)
        payload["email"] = self.email.strip()
        return payload


class GeneratedContent(BaseModel):
    """生成的营销内容片段"""
    model_config = ConfigDict(extra="allow")

    snippet1: str
    snippet2: str
    snippet3: str
    snippet4: str
    snippet5: str
    snippet6: str
    snippet7: str


# ============== 配额与导出结果 ==============

class QuotaInfo(BaseModel):
    """调用配额信息（按需计算，不持久化）"""
    request_count: int = Field(..., ge=0, description="当前窗口已用请求数")
    remaining_requests: int = Field(..., ge=0, description="当前窗口剩余请求数")
    max_requests_per_window: int = Field(..., ge=1, description="每个窗口最大请求数")
    window_seconds: float = Field(..., description="窗口长度（秒）")
    reset_in_seconds: float = Field(default=0.0, description="距离窗口重置的秒数")


class ExportError(BaseModel):
    """单条导出失败记录"""
    identity: str = Field(..., description="联系人身份标识（邮箱）")
    message: str = Field(..., description="错误信息")
    category: str = Field(..., description="错误类别")
    severity: str = Field(..., description="严重程度")
    code: str | None = Field(default=None, description="错误码")


class ExportResult(BaseModel):
    """
    批量导出结果

    succeeded + failed + skipped <= total；状态为 completed 时三者之和等于 total。
    """
    total: int = Field(default=0, ge=0, description="条目总数")
    succeeded: int = Field(default=0, ge=0, description="成功数")
    failed: int = Field(default=0, ge=0, description="失败数")
    skipped: int = Field(default=0, ge=0, description="远端已存在而跳过的数量")
    status: ExportStatus = Field(default=ExportStatus.PENDING, description="导出状态")
    errors: list[ExportError] = Field(default_factory=list, description="失败明细（按完成顺序）")
    remote_ids: list[int] = Field(default_factory=list, description="远端返回的联系人 ID")
    error: ExportError | None = Field(default=None, description="流水线级错误（状态为 failed 时）")

    @property
    def processed(self) -> int:
        """已到达终态的条目数"""
        return self.succeeded + self.failed + self.skipped

    def snapshot(self) -> "ExportResult":
        """深拷贝，供进度回调使用"""
        return self.model_copy(deep=True)


# ============== 请求模型 ==============

class DuplicateCheckRequest(BaseModel):
    """查重请求"""
    emails: list[str] = Field(..., min_length=1, description="待检查的邮箱列表")


class ExportRequest(BaseModel):
    """批量导出请求"""
    prospects: list[Prospect] = Field(..., min_length=1, description="待导出的联系人")


class ContentRequest(BaseModel):
    """内容生成请求"""
    prompt: str = Field(..., min_length=1, description="生成提示词")
    lead_data: dict[str, Any] = Field(default_factory=dict, description="线索数据")
    model: str | None = Field(default=None, description="模型名称，为空时使用默认模型")
    system_prompt: str | None = Field(default=None, description="系统提示词")


# ============== 响应模型 ==============

class ApiResponse(BaseModel):
    """统一响应"""
    code: int = Field(default=0, description="响应码，0 表示成功")
    msg: str = Field(default="success", description="响应消息")
    data: Any = Field(default=None, description="响应数据")


class ErrorResponse(BaseModel):
    """错误响应"""
    code: int = Field(..., description="错误码")
    msg: str = Field(..., description="错误消息")
    data: dict[str, Any] | None = Field(default=None, description="错误详情")
