"""
API 依赖注入模块
"""
import httpx
from fastapi import Depends, Request

from mediavault.core.config import Settings, get_settings
from mediavault.providers.terabox import TeraboxProvider
from mediavault.services.auth_service import SessionCaptureController, capture_controller
from mediavault.services.library_service import LibraryService
from mediavault.services.metadata_service import MetadataService
from mediavault.services.stream_service import StreamGateway
from mediavault.services.token_service import TokenService


async def get_settings_dep() -> Settings:
    """获取配置依赖"""
    return get_settings()


async def get_http_client(request: Request) -> httpx.AsyncClient:
    """获取共享的 httpx 客户端（在 lifespan 中创建）"""
    return request.app.state.http_client


async def get_token_service() -> TokenService:
    """获取 TokenService 依赖"""
    return TokenService()


async def get_library_service() -> LibraryService:
    """获取 LibraryService 依赖"""
    return LibraryService()


async def get_capture_controller() -> SessionCaptureController:
    """获取认证捕获控制器"""
    return capture_controller


async def get_metadata_service(
        http_client: httpx.AsyncClient = Depends(get_http_client),
        settings: Settings = Depends(get_settings_dep)
) -> MetadataService:
    """获取 MetadataService 依赖"""
    provider = TeraboxProvider(http_client, settings.remote, settings.browser)
    return MetadataService(provider)


async def get_stream_gateway(
        http_client: httpx.AsyncClient = Depends(get_http_client),
        settings: Settings = Depends(get_settings_dep)
) -> StreamGateway:
    """获取 StreamGateway 依赖"""
    return StreamGateway(http_client, settings.remote)
