# Infrastructure (error handling, retry, rate limit, cache, export pipeline, API clients)

from leadexport.infra.errors import (
    AppError,
    ErrorCategory,
    ErrorSeverity,
    ErrorCode,
    ErrorClassifier,
    Ok,
    Err,
    Result,
)
from leadexport.infra.reporter import ErrorReporter, ErrorStats, Presentation
from leadexport.infra.retry import BackoffStrategy, RetryConfig, RetryExecutor
from leadexport.infra.rate_limit import RateLimitTracker
from leadexport.infra.cache import CacheEntry, ResourceCache
from leadexport.infra.export_pipeline import BulkExportPipeline
from leadexport.infra.validation import validate_prospect
from leadexport.infra.woodpecker_client import WoodpeckerClient
from leadexport.infra.content_client import ContentClient

__all__ = [
    "AppError",
    "ErrorCategory",
    "ErrorSeverity",
    "ErrorCode",
    "ErrorClassifier",
    "Ok",
    "Err",
    "Result",
    "ErrorReporter",
    "ErrorStats",
    "Presentation",
    "BackoffStrategy",
    "RetryConfig",
    "RetryExecutor",
    "RateLimitTracker",
    "CacheEntry",
    "ResourceCache",
    "BulkExportPipeline",
    "validate_prospect",
    "WoodpeckerClient",
    "ContentClient",
]
