"""
Tortoise ORM 数据模型
"""
from .token import AuthToken, TokenStatus
from .library import Container, ContainerStatus, MediaFile, QueueItem, QueueStatus

__all__ = [
    "AuthToken", "TokenStatus",
    "Container", "ContainerStatus", "MediaFile", "QueueItem", "QueueStatus",
]
