"""
联系人本地校验

导出前在本地检查，不发起网络请求。
"""

import re

from leadexport.infra.errors import AppError, ErrorCategory, ErrorCode, ErrorSeverity
from leadexport.schemas import Prospect

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(value: str) -> bool:
    """检查邮箱格式"""
    return bool(EMAIL_PATTERN.match(value))


def snippet_problems(snippet: str, number: int) -> list[str]:
    """检查 snippet 中不允许的标签"""
    problems = []
    lowered = snippet.lower()
    if "<script" in lowered:
        problems.append(f"Snippet {number} contains script tags (not allowed)")
    if "<style" in lowered:
        problems.append(f"Snippet {number} contains style tags (not allowed)")
    return problems


def validate_prospect(prospect: Prospect) -> AppError | None:
    """
    校验单个联系人

    Args:
        prospect: 待导出的联系人

    Returns:
        AppError | None: 校验失败时返回 validation 类错误，通过时返回 None
    """
    problems: list[str] = []

    email = prospect.email.strip()
    if not email:
        problems.append("Email is required")
    elif not is_valid_email(email):
        problems.append("Email format is invalid")

    for name, value in prospect.snippets().items():
        problems.extend(snippet_problems(value, int(name.removeprefix("snippet"))))

    if not problems:
        return None

    return AppError(
        message="; ".join(problems),
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.LOW,
        code=ErrorCode.INVALID_ITEM,
        retryable=False,
        context={"identity": prospect.identity},
    )
