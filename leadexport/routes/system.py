"""
System API Routes

- GET /quota - 查询 Woodpecker 调用配额
- GET /errors/stats - 错误统计
"""

from fastapi import APIRouter, Depends

from leadexport.routes.dependencies import get_export_service
from leadexport.schemas import ApiResponse
from leadexport.services import ExportService


router = APIRouter(tags=["system"])


@router.get("/quota", response_model=ApiResponse)
async def get_quota(service: ExportService = Depends(get_export_service)) -> ApiResponse:
    """查询当前窗口的调用配额"""
    return ApiResponse(data=service.get_quota().model_dump())


@router.get("/errors/stats", response_model=ApiResponse)
async def get_error_stats(service: ExportService = Depends(get_export_service)) -> ApiResponse:
    """获取错误统计"""
    return ApiResponse(data=service.reporter.stats().to_dict())
