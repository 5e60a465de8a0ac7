"""
FastAPI 应用入口

配置 FastAPI 应用，注册路由，配置中间件，创建应用级客户端与错误上报器。
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from leadexport.config import get_settings
from leadexport.infra.content_client import ContentClient
from leadexport.infra.errors import ErrorClassifier
from leadexport.infra.reporter import ErrorReporter
from leadexport.infra.woodpecker_client import WoodpeckerClient
from leadexport.routes import campaigns_router, content_router, system_router
from leadexport.routes.errors import error_payload

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    应用生命周期管理

    启动时创建客户端与错误上报器，关闭时等待后台任务结束。
    """
    settings = get_settings()

    reporter = ErrorReporter(limit=settings.error_log_limit)
    woodpecker_client = WoodpeckerClient(reporter=reporter)
    app.state.error_reporter = reporter
    app.state.woodpecker_client = woodpecker_client
    app.state.content_client = ContentClient()

    mode = "demo" if woodpecker_client.is_demo else "live"
    logger.info(f"Lead export service started in {mode} mode")

    yield

    await woodpecker_client.close()
    logger.info("Lead export service stopped")


# Bearer Token 认证
security = HTTPBearer(auto_error=False)


async def verify_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str | None:
    """
    验证 Bearer Token

    Args:
        credentials: HTTP Authorization 头中的凭证

    Returns:
        str | None: 验证通过的 token，或 None（认证关闭时）

    Raises:
        HTTPException: token 无效时抛出 401 错误
    """
    settings = get_settings()

    if not settings.api_auth_enabled:
        return None

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail={"code": 1005, "msg": "缺少认证 Token", "data": None},
        )

    if credentials.credentials != settings.api_auth_token:
        raise HTTPException(
            status_code=401,
            detail={"code": 1005, "msg": "无效的认证 Token", "data": None},
        )

    return credentials.credentials


def create_app() -> FastAPI:
    """
    创建 FastAPI 应用实例

    Returns:
        FastAPI: 配置完成的应用实例
    """
    app = FastAPI(
        title="Lead Export 服务",
        description="将线索批量导出到 Woodpecker 冷邮件活动，并生成个性化内容片段。",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 注册路由（带认证）
    app.include_router(campaigns_router, dependencies=[Depends(verify_token)])
    app.include_router(content_router, dependencies=[Depends(verify_token)])
    app.include_router(system_router, dependencies=[Depends(verify_token)])

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """全局异常处理器"""
        error = ErrorClassifier.classify(exc, {"path": request.url.path})
        reporter = getattr(request.app.state, "error_reporter", None)
        if reporter is not None:
            reporter.report(error)
        else:
            logger.error(f"Unhandled error on {request.url.path}: {error}")
        return JSONResponse(
            status_code=500,
            content={
                "code": 1004,
                "msg": f"内部错误: {error.message}",
                "data": error_payload(error),
            },
        )

    @app.get("/health", tags=["health"])
    async def health_check() -> dict:
        """健康检查"""
        return {"status": "healthy"}

    return app


# 创建应用实例
app = create_app()
