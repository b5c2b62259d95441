"""
流媒体服务 API 路由

通过本地地址转发远端直链（播放 / 下载）
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header

from mediavault.api.deps import (
    get_library_service, get_settings_dep, get_stream_gateway, get_token_service
)
from mediavault.api.schemas import PlaybackInfo
from mediavault.core.config import Settings
from mediavault.services.library_service import LibraryService
from mediavault.services.stream_service import StreamGateway
from mediavault.services.token_service import TokenService
from mediavault.utils.helpers import guess_category

logger = logging.getLogger(__name__)
router = APIRouter(tags=["流媒体服务"])


@router.get("/stream/{file_id}")
async def stream_file(
        file_id: str,
        range: Optional[str] = Header(None),
        library: LibraryService = Depends(get_library_service),
        tokens: TokenService = Depends(get_token_service),
        gateway: StreamGateway = Depends(get_stream_gateway),
        settings: Settings = Depends(get_settings_dep)
):
    """
    流式播放

    无 Range 或 Range 为 bytes=0- 时返回 200，其余子区间请求返回 206
    """
    media_file = await library.get_file(file_id)
    # Cookie 只在请求开始时读取一次
    cookie_header = await tokens.cookie_header(settings.remote.stream_cookie_domains)
    return await gateway.stream(media_file.name, media_file.download_url, cookie_header, range)


@router.get("/download/{file_id}")
async def download_file(
        file_id: str,
        library: LibraryService = Depends(get_library_service),
        tokens: TokenService = Depends(get_token_service),
        gateway: StreamGateway = Depends(get_stream_gateway),
        settings: Settings = Depends(get_settings_dep)
):
    """以附件形式下载"""
    media_file = await library.get_file(file_id)
    cookie_header = await tokens.cookie_header(settings.remote.stream_cookie_domains)
    return await gateway.download(media_file.name, media_file.download_url, cookie_header)


@router.get("/files/{file_id}/playback-info", response_model=PlaybackInfo)
async def playback_info(
        file_id: str,
        library: LibraryService = Depends(get_library_service)
):
    """获取播放信息"""
    media_file = await library.get_file(file_id)

    has_url = bool(media_file.download_url)
    detected = guess_category(media_file.name)
    category = media_file.type or detected
    is_video = "video" in (category, detected)
    is_audio = "audio" in (category, detected)

    return PlaybackInfo(
        file_id=media_file.id,
        name=media_file.name,
        type=category,
        size=media_file.size,
        has_playable_url=has_url,
        is_playable=has_url and (is_video or is_audio),
        is_video=is_video,
        is_audio=is_audio,
        stream_url=f"/api/stream/{media_file.id}" if has_url else None,
        download_url=f"/api/download/{media_file.id}" if has_url else None,
        thumbnail=media_file.thumbnail,
    )
