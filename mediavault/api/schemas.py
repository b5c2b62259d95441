"""
API 数据模型 (Pydantic)
"""
from typing import Any, Optional
from pydantic import BaseModel, Field


# ==================== 通用响应 ====================

class ResponseBase(BaseModel):
    """基础响应"""
    success: bool = True
    message: Optional[str] = None


class DataResponse(ResponseBase):
    """数据响应"""
    data: Optional[Any] = None


# ==================== 媒体库相关 ====================

class ShareUrlCreate(BaseModel):
    """提交分享链接"""
    url: str = Field(..., min_length=1, max_length=1000, description="分享链接")


class ContainerCreate(ShareUrlCreate):
    """创建容器请求"""
    title: Optional[str] = Field(None, max_length=500, description="标题")


# ==================== 认证相关 ====================

class TokenStatusResponse(BaseModel):
    """Token 状态响应"""
    has_token: bool
    message: Optional[str] = None
    provider: Optional[str] = None
    status: Optional[str] = None
    captured_at: Optional[str] = None
    last_used_at: Optional[str] = None


# ==================== 播放相关 ====================

class PlaybackInfo(BaseModel):
    """播放信息"""
    file_id: str
    name: str
    type: str
    size: Optional[int] = None
    has_playable_url: bool
    is_playable: bool
    is_video: bool
    is_audio: bool
    stream_url: Optional[str] = None
    download_url: Optional[str] = None
    thumbnail: Optional[str] = None
