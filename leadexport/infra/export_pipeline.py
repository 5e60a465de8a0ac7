"""
批量导出流水线

实现：
- 本地校验（不发起网络请求，不消耗配额）
- 一次性批量查重，远端已存在的条目跳过
- 逐条提交（每条独立重试），单条失败不影响其他条目
- 每条到达终态后回调进度快照，计数单调递增
"""

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Iterable, Protocol, Sequence, TypeVar

from leadexport.infra.errors import AppError, ErrorClassifier, ErrorCode
from leadexport.infra.reporter import ErrorReporter
from leadexport.infra.retry import RetryConfig, RetryExecutor
from leadexport.schemas import ExportError, ExportResult, ExportStatus

logger = logging.getLogger(__name__)


class ExportItem(Protocol):
    """可导出条目：只要求提供身份标识"""

    @property
    def identity(self) -> str: ...


ItemT = TypeVar("ItemT", bound=ExportItem)

ProgressCallback = Callable[[ExportResult], None]
Validator = Callable[[ItemT], AppError | None]
DuplicateLookup = Callable[[list[str]], Awaitable[Iterable[str]]]
SubmitOne = Callable[[ItemT], Awaitable[int | None]]


def _to_export_error(identity: str, error: AppError) -> ExportError:
    return ExportError(
        identity=identity,
        message=error.message,
        category=error.category.value,
        severity=error.severity.value,
        code=error.code,
    )


class _BatchRun(Generic[ItemT]):
    """
    单次批量导出的运行状态

    累加器只在已完成任务的后续逻辑中同步修改，修改与回调之间没有 await，
    因此即使提交并发进行，回调看到的计数也是单调递增的。
    """

    def __init__(
        self,
        total: int,
        on_progress: ProgressCallback | None,
        reporter: ErrorReporter | None,
    ):
        self.result = ExportResult(total=total, status=ExportStatus.PENDING)
        self.abandoned = False
        self._on_progress = on_progress
        self._reporter = reporter

    def _emit(self) -> None:
        # 最后一条到达终态时快照即为终态
        if self.result.processed == self.result.total:
            self.result.status = ExportStatus.COMPLETED
        if self._on_progress is not None and not self.abandoned:
            self._on_progress(self.result.snapshot())

    def record_success(self, remote_id: int | None) -> None:
        self.result.succeeded += 1
        if remote_id is not None:
            self.result.remote_ids.append(remote_id)
        self._emit()

    def record_failure(self, identity: str, error: AppError) -> None:
        self.result.failed += 1
        self.result.errors.append(_to_export_error(identity, error))
        if self._reporter is not None:
            self._reporter.report(error)
        self._emit()

    def record_skip(self, identity: str) -> None:
        self.result.skipped += 1
        logger.debug(f"Skipping {identity}: already present remotely")
        self._emit()


class BulkExportPipeline:
    """批量导出流水线"""

    def __init__(
        self,
        executor: RetryExecutor | None = None,
        reporter: ErrorReporter | None = None,
        max_concurrency: int = 5,
    ):
        """
        初始化批量导出流水线

        Args:
            executor: 重试执行器
            reporter: 错误上报器
            max_concurrency: 同时在途的最大提交数
        """
        self._executor = executor or RetryExecutor()
        self._reporter = reporter
        self._max_concurrency = max(1, max_concurrency)
        # 保持提交任务的强引用：调用方放弃等待后在途提交仍会完成
        self._background: set[asyncio.Task] = set()

    @property
    def pending_submissions(self) -> int:
        """尚未完成的提交任务数"""
        return sum(1 for task in self._background if not task.done())

    async def submit_batch(
        self,
        items: Sequence[ItemT],
        submit_one: SubmitOne,
        *,
        validator: Validator | None = None,
        duplicate_lookup: DuplicateLookup | None = None,
        on_progress: ProgressCallback | None = None,
        retry_config: RetryConfig | None = None,
    ) -> ExportResult:
        """
        批量提交条目

        Args:
            items: 待提交条目
            submit_one: 单条提交函数，成功时可返回远端 ID
            validator: 本地校验函数，返回 AppError 表示校验失败
            duplicate_lookup: 批量查重函数，返回远端已存在的身份标识
            on_progress: 进度回调，每条到达终态后以结果快照调用
            retry_config: 单条提交的重试配置

        Returns:
            ExportResult: 汇总结果；部分失败仍为 completed，
            只有流水线级异常才为 failed
        """
        if not items:
            logger.warning("No items to export")
            return ExportResult(total=0, status=ExportStatus.COMPLETED)

        run: _BatchRun = _BatchRun(len(items), on_progress, self._reporter)
        logger.info(f"Starting export of {len(items)} items")

        try:
            await self._run(run, items, submit_one, validator, duplicate_lookup, retry_config)
        except asyncio.CancelledError:
            run.abandoned = True
            logger.warning(
                f"Export abandoned by caller after {run.result.processed}/{run.result.total} items, "
                f"{self.pending_submissions} submissions still pending"
            )
            raise
        except Exception as e:
            error = ErrorClassifier.classify(e, {"stage": "pipeline"})
            logger.exception(f"Export pipeline failed: {error}")
            if self._reporter is not None:
                self._reporter.report(error)
            run.result.status = ExportStatus.FAILED
            run.result.error = ExportError(
                identity="",
                message=error.message,
                category=error.category.value,
                severity=error.severity.value,
                code=error.code or ErrorCode.PIPELINE_ERROR.value,
            )
            run.abandoned = True
            return run.result

        run.result.status = ExportStatus.COMPLETED
        logger.info(
            f"Export completed: {run.result.succeeded} succeeded, "
            f"{run.result.failed} failed, {run.result.skipped} skipped"
        )
        return run.result

    async def _run(
        self,
        run: _BatchRun,
        items: Sequence[ItemT],
        submit_one: SubmitOne,
        validator: Validator | None,
        duplicate_lookup: DuplicateLookup | None,
        retry_config: RetryConfig | None,
    ) -> None:
        run.result.status = ExportStatus.IN_PROGRESS

        # 1. 本地校验
        valid_items: list[ItemT] = []
        for item in items:
            error = validator(item) if validator is not None else None
            if error is None:
                valid_items.append(item)
            else:
                run.record_failure(item.identity, error)

        # 2. 批量查重（每次运行只查一次）
        duplicates = await self._lookup_duplicates(valid_items, duplicate_lookup)
        to_submit: list[ItemT] = []
        for item in valid_items:
            if item.identity in duplicates:
                run.record_skip(item.identity)
            else:
                to_submit.append(item)

        if not to_submit:
            return

        # 3. 逐条提交
        semaphore = asyncio.Semaphore(self._max_concurrency)
        tasks = []
        for item in to_submit:
            task = asyncio.create_task(
                self._submit(run, item, submit_one, semaphore, retry_config)
            )
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            tasks.append(task)

        # asyncio.wait 被取消时不会取消其等待的任务
        await asyncio.wait(tasks)
        for task in tasks:
            # 非 AppError 的异常属于流水线级错误
            exc = task.exception()
            if exc is not None:
                raise exc

    async def _lookup_duplicates(
        self,
        items: list[ItemT],
        duplicate_lookup: DuplicateLookup | None,
    ) -> set[str]:
        if duplicate_lookup is None or not items:
            return set()
        identities = [item.identity for item in items]
        try:
            found = await duplicate_lookup(identities)
        except Exception as e:
            # 查重失败不阻塞导出
            error = ErrorClassifier.classify(e, {"stage": "duplicate_lookup"})
            logger.warning(f"Duplicate lookup failed, exporting without filtering: {error}")
            if self._reporter is not None:
                self._reporter.report(error)
            return set()
        return {identity.strip().lower() for identity in found}

    async def _submit(
        self,
        run: _BatchRun,
        item: ItemT,
        submit_one: SubmitOne,
        semaphore: asyncio.Semaphore,
        retry_config: RetryConfig | None,
    ) -> None:
        async with semaphore:
            if run.abandoned:
                return
            try:
                remote_id = await self._executor.execute(
                    lambda: submit_one(item),
                    retry_config,
                    context={"identity": item.identity},
                )
            except AppError as e:
                run.record_failure(item.identity, e)
                return
        run.record_success(remote_id)

