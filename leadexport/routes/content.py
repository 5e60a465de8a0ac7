"""
Content API Routes

- POST /content/snippets - 生成内容片段
- GET /content/quota - 查询内容生成调用配额
"""

from fastapi import APIRouter, Depends

from leadexport.infra.errors import AppError
from leadexport.routes.dependencies import get_export_service
from leadexport.routes.errors import raise_app_error
from leadexport.schemas import ApiResponse, ContentRequest, ErrorResponse
from leadexport.services import ExportService


router = APIRouter(prefix="/content", tags=["content"])


@router.post(
    "/snippets",
    response_model=ApiResponse,
    responses={
        401: {"model": ErrorResponse, "description": "未配置 API Key"},
        502: {"model": ErrorResponse, "description": "生成失败"},
    },
)
async def generate_snippets(
    request: ContentRequest,
    service: ExportService = Depends(get_export_service),
) -> ApiResponse:
    """生成内容片段"""
    try:
        content = await service.generate_snippets(
            request.prompt,
            request.lead_data,
            model=request.model,
            system_prompt=request.system_prompt,
        )
    except AppError as e:
        raise_app_error(e)
    return ApiResponse(data=content.model_dump())


@router.get("/quota", response_model=ApiResponse)
async def get_content_quota(service: ExportService = Depends(get_export_service)) -> ApiResponse:
    """查询内容生成当前窗口的调用配额"""
    return ApiResponse(data=service.get_content_quota().model_dump())
