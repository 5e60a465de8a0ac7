"""
路由依赖注入

客户端与错误上报器均为应用级单例，在 lifespan 中创建并挂载到 app.state。
"""

from fastapi import Request

from leadexport.services import ExportService


def get_export_service(request: Request) -> ExportService:
    """依赖注入：获取 ExportService 实例"""
    state = request.app.state
    return ExportService(
        state.woodpecker_client,
        content=state.content_client,
        reporter=state.error_reporter,
    )
