"""
属性测试：错误模型、错误分类与错误上报

使用 hypothesis 进行属性测试，验证 ErrorClassifier 的分类规则、
AppError 的不可变性以及 ErrorReporter 的统计与有界记录。
"""

import asyncio
import json
import logging

import httpx
import pytest
from hypothesis import given, strategies as st, settings
from pydantic import ValidationError

from leadexport.infra.errors import (
    AppError,
    Err,
    ErrorCategory,
    ErrorClassifier,
    ErrorCode,
    ErrorSeverity,
    Ok,
)
from leadexport.infra.reporter import FALLBACK_MESSAGE, USER_MESSAGES, ErrorReporter, Presentation
from leadexport.schemas import Campaign


# ============== 测试策略 ==============

# 客户端错误状态码（不含 401/403/429）
client_error_strategy = st.integers(min_value=400, max_value=499).filter(
    lambda s: s not in (401, 403, 429)
)

# 服务端错误状态码
server_error_strategy = st.integers(min_value=500, max_value=599)

# 错误消息策略
message_strategy = st.text(min_size=1, max_size=100)

category_strategy = st.sampled_from(list(ErrorCategory))
severity_strategy = st.sampled_from(list(ErrorSeverity))

context_strategy = st.dictionaries(
    keys=st.text(alphabet="abcdefghijklmnopqrstuvwxyz_", min_size=1, max_size=10),
    values=st.one_of(st.integers(), st.text(max_size=20)),
    max_size=5,
)


def make_response(status_code: int, body: dict | None = None, text: str | None = None) -> httpx.Response:
    """构造测试响应"""
    request = httpx.Request("GET", "https://api.test/campaign_list")
    if body is not None:
        return httpx.Response(status_code, json=body, request=request)
    return httpx.Response(status_code, text=text or "", request=request)


# ============== Property 1: HTTP 状态码分类 ==============


@pytest.mark.parametrize("status_code", [401, 403])
def test_auth_responses_are_not_retryable(status_code: int):
    """
    **Feature: lead-export, Property 1: HTTP 状态码分类**

    401/403 SHALL 被分类为 auth 类、high 严重程度、不可重试。
    """
    error = ErrorClassifier.classify(make_response(status_code, {"error": "bad key"}))

    assert error.category == ErrorCategory.AUTH
    assert error.severity == ErrorSeverity.HIGH
    assert error.retryable is False
    assert "bad key" in error.message


def test_rate_limited_response_is_retryable():
    """429 SHALL 被分类为 network 类、可重试"""
    error = ErrorClassifier.classify(make_response(429, {"message": "slow down"}))

    assert error.category == ErrorCategory.NETWORK
    assert error.severity == ErrorSeverity.MEDIUM
    assert error.code == ErrorCode.RATE_LIMITED.value
    assert error.retryable is True


@settings(max_examples=50)
@given(status_code=client_error_strategy)
def test_client_errors_are_validation(status_code: int):
    """
    **Feature: lead-export, Property 1: HTTP 状态码分类**

    *For any* 其他 4xx 响应，分类结果 SHALL 为 validation、low、不可重试。
    """
    error = ErrorClassifier.classify_response(make_response(status_code, {"message": "nope"}))

    assert error.category == ErrorCategory.VALIDATION
    assert error.severity == ErrorSeverity.LOW
    assert error.retryable is False
    assert error.details == {"status_code": status_code}


@settings(max_examples=50)
@given(status_code=server_error_strategy)
def test_server_errors_are_retryable_remote(status_code: int):
    """
    **Feature: lead-export, Property 1: HTTP 状态码分类**

    *For any* 5xx 响应，分类结果 SHALL 为 remote、high、可重试。
    """
    error = ErrorClassifier.classify_response(make_response(status_code, text="boom"))

    assert error.category == ErrorCategory.REMOTE
    assert error.severity == ErrorSeverity.HIGH
    assert error.retryable is True
    assert error.code == ErrorCode.SERVER_ERROR.value


def test_http_status_error_is_classified_from_response():
    """HTTPStatusError SHALL 按其响应分类"""
    response = make_response(503, {"status": {"msg": "maintenance"}})
    exc = httpx.HTTPStatusError("failed", request=response.request, response=response)

    error = ErrorClassifier.classify(exc)

    assert error.category == ErrorCategory.REMOTE
    assert "maintenance" in error.message


def test_error_detail_prefers_status_msg():
    """错误描述 SHALL 优先取 status.msg，其次 error、message"""
    response = make_response(400, {"status": {"msg": "first"}, "error": "second", "message": "third"})
    assert "first" in ErrorClassifier.classify(response).message

    response = make_response(400, {"error": "second", "message": "third"})
    assert "second" in ErrorClassifier.classify(response).message

    response = make_response(400, text="plain text body")
    assert "plain text body" in ErrorClassifier.classify(response).message


# ============== Property 2: 异常分类 ==============


@pytest.mark.parametrize(
    "raw,code",
    [
        (httpx.ReadTimeout("timed out"), ErrorCode.TIMEOUT),
        (asyncio.TimeoutError(), ErrorCode.TIMEOUT),
        (httpx.ConnectError("refused"), ErrorCode.CONNECTION_ERROR),
        (ConnectionResetError("reset"), ErrorCode.CONNECTION_ERROR),
    ],
)
def test_transport_failures_are_retryable_network(raw: BaseException, code: ErrorCode):
    """
    **Feature: lead-export, Property 2: 异常分类**

    超时与连接失败 SHALL 被分类为 network、medium、可重试。
    """
    error = ErrorClassifier.classify(raw)

    assert error.category == ErrorCategory.NETWORK
    assert error.severity == ErrorSeverity.MEDIUM
    assert error.retryable is True
    assert error.code == code.value


def test_validation_error_is_classified_as_validation():
    """pydantic ValidationError SHALL 被分类为 validation、low"""
    with pytest.raises(ValidationError) as exc_info:
        Campaign.model_validate({"name": "missing id"})

    error = ErrorClassifier.classify(exc_info.value)

    assert error.category == ErrorCategory.VALIDATION
    assert error.severity == ErrorSeverity.LOW
    assert error.retryable is False


def test_malformed_json_is_retryable_remote():
    """无法解析的响应体 SHALL 被分类为 remote、可重试"""
    error = ErrorClassifier.classify(json.JSONDecodeError("Expecting value", "<html>", 0))

    assert error.category == ErrorCategory.REMOTE
    assert error.retryable is True


@given(message=message_strategy)
def test_unknown_exceptions_are_not_retryable(message: str):
    """
    **Feature: lead-export, Property 2: 异常分类**

    *For any* 未识别的异常，分类结果 SHALL 为 unknown、medium、不可重试。
    """
    error = ErrorClassifier.classify(RuntimeError(message))

    assert error.category == ErrorCategory.UNKNOWN
    assert error.severity == ErrorSeverity.MEDIUM
    assert error.retryable is False
    assert error.details == {"exception_type": "RuntimeError"}


@given(context=context_strategy)
def test_app_error_passes_through_with_context(context: dict):
    """已分类的 AppError SHALL 原样返回，仅合并上下文"""
    original = AppError("already classified", category=ErrorCategory.BUSINESS, retryable=False)

    error = ErrorClassifier.classify(original, context)

    assert error.message == original.message
    assert error.category == ErrorCategory.BUSINESS
    assert error.context == context


# ============== Property 3: AppError 不可变 ==============


@given(
    message=message_strategy,
    category=category_strategy,
    severity=severity_strategy,
    context=context_strategy,
)
def test_app_error_is_read_only(
    message: str,
    category: ErrorCategory,
    severity: ErrorSeverity,
    context: dict,
):
    """
    **Feature: lead-export, Property 3: AppError 不可变**

    *For any* AppError，属性 SHALL 不可赋值，修改返回的 context 不影响原对象。
    """
    error = AppError(message, category=category, severity=severity, context=context)

    with pytest.raises(AttributeError):
        error.message = "changed"  # type: ignore[misc]

    leaked = error.context
    leaked["injected_by_test"] = 1
    assert "injected_by_test" not in error.context

    extended = error.with_context(added_by_test="value")
    assert extended is not error
    assert "added_by_test" not in error.context
    assert extended.context["added_by_test"] == "value"
    assert extended.timestamp == error.timestamp


def test_app_error_to_dict():
    """to_dict SHALL 输出可序列化的枚举值"""
    error = AppError(
        "bad",
        category=ErrorCategory.NETWORK,
        severity=ErrorSeverity.HIGH,
        code=ErrorCode.TIMEOUT,
        retryable=True,
    )

    data = error.to_dict()

    assert data["category"] == "network"
    assert data["severity"] == "high"
    assert data["code"] == "timeout"
    assert data["retryable"] is True
    json.dumps(data)
    assert str(error) == "[network] bad"


# ============== Property 4: 传输层结果 ==============


def test_to_result_success_and_failure():
    """
    **Feature: lead-export, Property 4: 传输层结果**

    2xx 响应 SHALL 返回 Ok(json)，空响应体返回 Ok(None)，其余返回 Err。
    """
    ok = ErrorClassifier.to_result(make_response(200, {"id": 1}))
    assert isinstance(ok, Ok)
    assert ok.unwrap() == {"id": 1}

    empty = ErrorClassifier.to_result(make_response(204))
    assert isinstance(empty, Ok)
    assert empty.unwrap() is None

    err = ErrorClassifier.to_result(make_response(500, text="down"))
    assert isinstance(err, Err)
    with pytest.raises(AppError) as exc_info:
        err.unwrap()
    assert exc_info.value.retryable is True

    malformed = ErrorClassifier.to_result(make_response(200, text="<html>"))
    assert isinstance(malformed, Err)
    assert malformed.error.category == ErrorCategory.REMOTE


# ============== Property 5: 错误上报 ==============


@settings(max_examples=30)
@given(
    limit=st.integers(min_value=1, max_value=20),
    categories=st.lists(category_strategy, min_size=0, max_size=50),
)
def test_reporter_history_is_bounded(limit: int, categories: list[ErrorCategory]):
    """
    **Feature: lead-export, Property 5: 错误上报**

    *For any* 上报序列，保留的记录数 SHALL 不超过上限，统计与保留的记录一致。
    """
    reporter = ErrorReporter(limit=limit)
    for category in categories:
        reporter.report(AppError("failure", category=category))

    stats = reporter.stats()

    assert len(reporter) == min(limit, len(categories))
    assert stats.total == len(reporter)
    assert sum(stats.by_category.values()) == stats.total
    assert sum(stats.by_severity.values()) == stats.total
    assert len(stats.recent) == min(10, stats.total)


def test_reporter_logs_by_severity(caplog: pytest.LogCaptureFixture):
    """上报 SHALL 按严重程度选择日志级别"""
    reporter = ErrorReporter()

    with caplog.at_level(logging.INFO, logger="leadexport.infra.reporter"):
        reporter.report(AppError("low one", severity=ErrorSeverity.LOW))
        reporter.report(AppError("medium one", severity=ErrorSeverity.MEDIUM))
        reporter.report(AppError("high one", severity=ErrorSeverity.HIGH))

    levels = {record.getMessage().split("] ")[1].split(" (")[0]: record.levelno for record in caplog.records}
    assert levels["low one"] == logging.INFO
    assert levels["medium one"] == logging.WARNING
    assert levels["high one"] == logging.ERROR


def test_reporter_presentation_and_clear():
    """高严重程度 SHALL 以告警展示；clear 后统计清零"""
    reporter = ErrorReporter()
    high = reporter.report(AppError("x", category=ErrorCategory.AUTH, severity=ErrorSeverity.HIGH))
    low = reporter.report(AppError("y", category=ErrorCategory.VALIDATION, severity=ErrorSeverity.LOW))

    assert ErrorReporter.presentation(high) == Presentation.ALERT
    assert ErrorReporter.presentation(low) == Presentation.NOTICE
    assert "API key" in ErrorReporter.user_message(high)

    stats = reporter.stats().to_dict()
    assert stats["by_category"]["auth"] == 1
    assert stats["by_category"]["validation"] == 1
    assert stats["by_category"]["network"] == 0

    reporter.clear()
    assert reporter.stats().total == 0


@pytest.mark.parametrize("category", [c for c in ErrorCategory if c != ErrorCategory.UNKNOWN])
def test_user_message_by_category(category: ErrorCategory):
    """已知类别 SHALL 返回对应的友好提示，而不是原始错误信息"""
    error = AppError("raw remote detail", category=category)

    assert ErrorReporter.user_message(error) == USER_MESSAGES[category]
    assert "raw remote detail" not in ErrorReporter.user_message(error)


def test_user_message_falls_back_for_unknown_errors():
    """未知类别 SHALL 使用原始信息，信息为空时使用兜底提示"""
    assert ErrorReporter.user_message(AppError("disk full")) == "disk full"
    assert ErrorReporter.user_message(AppError("")) == FALLBACK_MESSAGE


@given(severity=severity_strategy)
def test_presentation_follows_severity(severity: ErrorSeverity):
    """*For any* 严重程度，high/critical SHALL 以告警展示，其余以提示展示"""
    expected = (
        Presentation.ALERT
        if severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL)
        else Presentation.NOTICE
    )

    assert ErrorReporter.presentation(AppError("x", severity=severity)) == expected
