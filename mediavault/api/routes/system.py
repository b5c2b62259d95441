"""
系统 API 路由
"""
import logging
from datetime import datetime

from fastapi import APIRouter, Depends

from mediavault import __version__
from mediavault.api.deps import get_capture_controller, get_token_service
from mediavault.api.schemas import DataResponse
from mediavault.services.auth_service import SessionCaptureController
from mediavault.services.token_service import TokenService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/system", tags=["系统"])


@router.get("/health")
async def health_check():
    """健康检查"""
    return {
        "status": "ok",
        "timestamp": datetime.now().isoformat(),
        "version": __version__
    }


@router.get("/info", response_model=DataResponse)
async def system_info(
    tokens: TokenService = Depends(get_token_service),
    controller: SessionCaptureController = Depends(get_capture_controller)
):
    """获取系统信息"""
    import platform
    import sys

    session = controller.status()
    return DataResponse(data={
        "name": "Media Vault Gateway",
        "version": __version__,
        "python_version": sys.version,
        "platform": platform.platform(),
        "has_active_token": await tokens.get_active() is not None,
        "capture_status": session.status.value if session else "none",
    })
