"""
认证管理 API 路由

通过可见浏览器捕获远端会话（jsToken + Cookie）
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from mediavault.api.deps import get_capture_controller, get_token_service
from mediavault.api.schemas import ResponseBase, TokenStatusResponse
from mediavault.services.auth_service import SessionCaptureController
from mediavault.services.token_service import TokenService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["认证管理"])


@router.post("/start")
async def start_auth_session(
    controller: SessionCaptureController = Depends(get_capture_controller)
):
    """
    开始认证捕获

    打开浏览器后立即返回；已有进行中的会话时返回该会话
    """
    try:
        session = await controller.start()
        return session.to_dict()
    except Exception as e:
        logger.exception("Failed to start auth session")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"启动认证会话失败: {str(e)}"
        )


@router.get("/status")
async def get_auth_status(
    controller: SessionCaptureController = Depends(get_capture_controller)
):
    """
    查询认证捕获状态（不阻塞，可轮询）

    - pending: 启动中
    - waiting_for_login: 等待登录 / 打开分享页
    - capturing: 正在读取 Cookie
    - success: 捕获成功，Token 已保存
    - failed: 浏览器被关闭或启动失败
    """
    session = controller.status()
    if not session:
        return {"status": "none", "message": "没有进行中的认证会话"}
    return session.to_dict()


@router.post("/close", response_model=ResponseBase)
async def close_auth_session(
    controller: SessionCaptureController = Depends(get_capture_controller)
):
    """关闭认证会话（可重复调用）"""
    try:
        await controller.close()
        return ResponseBase(message="认证会话已关闭")
    except Exception as e:
        logger.exception("Failed to close auth session")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"关闭认证会话失败: {str(e)}"
        )


@router.get("/token", response_model=TokenStatusResponse)
async def get_token_status(
    token_service: TokenService = Depends(get_token_service)
):
    """当前 Token 状态"""
    token = await token_service.get_active()
    if not token:
        return TokenStatusResponse(has_token=False, message="没有可用的认证 Token")
    data = token.to_dict()
    return TokenStatusResponse(
        has_token=True,
        provider=data["provider"],
        status=data["status"],
        captured_at=data["captured_at"],
        last_used_at=data["last_used_at"],
    )


@router.post("/invalidate", response_model=ResponseBase)
async def invalidate_tokens(
    token_service: TokenService = Depends(get_token_service)
):
    """作废所有 Token"""
    count = await token_service.invalidate_all()
    return ResponseBase(message=f"已作废 {count} 个 Token")
