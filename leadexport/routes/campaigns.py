"""
Campaigns API Routes

处理活动与联系人导出相关的 HTTP 请求：
- GET /campaigns - 获取活动列表
- DELETE /campaigns/cache - 清除活动列表缓存
- POST /campaigns/{campaign_id}/duplicates - 检查重复邮箱
- POST /campaigns/{campaign_id}/prospects - 批量导出联系人
"""

from fastapi import APIRouter, Depends, Query

from leadexport.infra.errors import AppError
from leadexport.routes.dependencies import get_export_service
from leadexport.routes.errors import raise_app_error
from leadexport.schemas import (
    ApiResponse,
    DuplicateCheckRequest,
    ErrorResponse,
    ExportRequest,
)
from leadexport.services import ExportService


router = APIRouter(prefix="/campaigns", tags=["campaigns"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "参数错误"},
    401: {"model": ErrorResponse, "description": "认证失败"},
    502: {"model": ErrorResponse, "description": "远程服务错误"},
    503: {"model": ErrorResponse, "description": "网络错误"},
}


@router.get("", response_model=ApiResponse, responses=ERROR_RESPONSES)
async def list_campaigns(
    force_refresh: bool = Query(default=False, description="跳过缓存重新获取"),
    service: ExportService = Depends(get_export_service),
) -> ApiResponse:
    """获取活动列表"""
    try:
        campaigns = await service.list_campaigns(force_refresh=force_refresh)
    except AppError as e:
        raise_app_error(e)
    return ApiResponse(data=[c.model_dump() for c in campaigns])


@router.delete("/cache", response_model=ApiResponse)
async def clear_campaign_cache(
    service: ExportService = Depends(get_export_service),
) -> ApiResponse:
    """清除活动列表缓存"""
    service.clear_campaign_cache()
    return ApiResponse(data={"cleared": True})


@router.post(
    "/{campaign_id}/duplicates",
    response_model=ApiResponse,
    responses=ERROR_RESPONSES,
)
async def check_duplicates(
    campaign_id: int,
    request: DuplicateCheckRequest,
    service: ExportService = Depends(get_export_service),
) -> ApiResponse:
    """检查活动中已存在的邮箱"""
    try:
        duplicates = await service.check_duplicates(request.emails, campaign_id)
    except AppError as e:
        raise_app_error(e)
    return ApiResponse(data={"duplicates": duplicates})


@router.post(
    "/{campaign_id}/prospects",
    response_model=ApiResponse,
    responses=ERROR_RESPONSES,
)
async def export_prospects(
    campaign_id: int,
    request: ExportRequest,
    service: ExportService = Depends(get_export_service),
) -> ApiResponse:
    """
    批量导出联系人

    单条失败不影响整体请求，失败明细在 data.errors 中返回。
    """
    try:
        result = await service.export_prospects(request.prospects, campaign_id)
    except AppError as e:
        raise_app_error(e)
    return ApiResponse(data=result.model_dump(mode="json"))
