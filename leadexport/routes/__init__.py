"""
API Routes

导出所有 API 路由模块。
"""

from leadexport.routes.campaigns import router as campaigns_router
from leadexport.routes.content import router as content_router
from leadexport.routes.system import router as system_router

__all__ = ["campaigns_router", "content_router", "system_router"]
