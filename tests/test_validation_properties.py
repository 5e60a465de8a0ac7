"""
属性测试：联系人本地校验
"""

from hypothesis import given, strategies as st

from leadexport.infra.errors import ErrorCategory, ErrorSeverity
from leadexport.infra.validation import is_valid_email, validate_prospect
from leadexport.schemas import Prospect


# ============== 测试策略 ==============

local_part_strategy = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789._+-", min_size=1, max_size=20)

domain_strategy = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789-", min_size=1, max_size=15)

tld_strategy = st.sampled_from(["com", "io", "co.uk", "dev"])

safe_snippet_strategy = st.text(
    alphabet=st.characters(whitelist_categories=("L", "N", "Zs", "Po")),
    max_size=80,
)

forbidden_tag_strategy = st.sampled_from(["<script>", "<SCRIPT src='x'>", "<style>", "<Style type='text/css'>"])


# ============== Property 1: 邮箱格式 ==============


@given(local=local_part_strategy, domain=domain_strategy, tld=tld_strategy)
def test_well_formed_emails_pass(local: str, domain: str, tld: str):
    """
    **Feature: lead-export, Property 1: 邮箱格式**

    *For any* local@domain.tld 形式的邮箱，校验 SHALL 通过。
    """
    prospect = Prospect(email=f"{local}@{domain}.{tld}")

    assert is_valid_email(prospect.email)
    assert validate_prospect(prospect) is None


@given(value=st.text(alphabet="abc .", max_size=20))
def test_emails_without_at_sign_fail(value: str):
    """*For any* 不含 @ 的字符串，校验 SHALL 失败"""
    error = validate_prospect(Prospect(email=value))

    assert error is not None
    assert error.category == ErrorCategory.VALIDATION
    assert error.severity == ErrorSeverity.LOW
    assert error.retryable is False


def test_missing_email_is_reported():
    """缺少邮箱 SHALL 报告 Email is required"""
    error = validate_prospect(Prospect(first_name="Ann"))

    assert error is not None
    assert error.message == "Email is required"


# ============== Property 2: snippet 内容 ==============


@given(snippet=safe_snippet_strategy)
def test_plain_snippets_pass(snippet: str):
    """*For any* 不含 script/style 标签的 snippet，校验 SHALL 通过"""
    assert validate_prospect(Prospect(email="a@example.com", snippet3=snippet)) is None


@given(prefix=safe_snippet_strategy, tag=forbidden_tag_strategy)
def test_script_and_style_tags_are_rejected(prefix: str, tag: str):
    """
    **Feature: lead-export, Property 2: snippet 内容**

    *For any* 含 script 或 style 标签的 snippet（不区分大小写），校验 SHALL 失败并指明字段序号。
    """
    error = validate_prospect(Prospect(email="a@example.com", snippet5=prefix + tag))

    assert error is not None
    assert "Snippet 5" in error.message


def test_problems_are_joined():
    """多个问题 SHALL 以分号连接"""
    error = validate_prospect(
        Prospect(email="", snippet1="<script>", snippet2="<style>")
    )

    assert error is not None
    assert error.message == (
        "Email is required; "
        "Snippet 1 contains script tags (not allowed); "
        "Snippet 2 contains style tags (not allowed)"
    )
