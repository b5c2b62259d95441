"""
媒体库数据模型

容器（一个分享链接）、公开拉取队列、容器内文件
"""
from enum import Enum

from tortoise import fields
from tortoise.models import Model


class ContainerStatus(str, Enum):
    """容器状态"""
    BASIC = "basic"                 # 仅有公开元数据
    AUTHENTICATED = "authenticated"
    EXPANDED = "expanded"           # 已通过认证拉取展开文件
    EXPIRED = "expired"


class QueueStatus(str, Enum):
    """队列项状态"""
    PENDING = "pending"
    FETCHING = "fetching"
    SUCCESS = "success"
    FAILED = "failed"


class Container(Model):
    """虚拟容器：对应一个分享链接"""

    id = fields.CharField(max_length=64, pk=True, description="容器ID")
    url = fields.CharField(max_length=1000, description="分享链接")
    surl = fields.CharField(max_length=255, null=True, description="分享标识")
    title = fields.CharField(max_length=500, default="Untitled", description="标题")
    thumbnail = fields.TextField(null=True, description="缩略图")

    # single / multiple / folder / unknown
    type = fields.CharField(max_length=20, default="unknown", description="类型")
    status = fields.CharField(max_length=20, default=ContainerStatus.BASIC.value, description="状态")

    file_count = fields.IntField(null=True, description="文件数量")
    is_expanded = fields.BooleanField(default=False, description="是否已展开")

    # 直链过期提示时间
    auth_expiry = fields.DatetimeField(null=True, description="直链过期提示")

    created_at = fields.DatetimeField(auto_now_add=True, description="创建时间")

    class Meta:
        table = "containers"
        table_description = "容器表"

    def __str__(self) -> str:
        return f"Container({self.id}: {self.title})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "surl": self.surl,
            "title": self.title,
            "thumbnail": self.thumbnail,
            "type": self.type,
            "status": self.status,
            "file_count": self.file_count,
            "is_expanded": self.is_expanded,
            "auth_expiry": self.auth_expiry.isoformat() if self.auth_expiry else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class QueueItem(Model):
    """公开拉取队列项"""

    id = fields.CharField(max_length=64, pk=True, description="队列项ID")
    url = fields.CharField(max_length=1000, description="分享链接")
    surl = fields.CharField(max_length=255, null=True, description="分享标识")
    status = fields.CharField(max_length=20, default=QueueStatus.PENDING.value, description="状态")
    attempt_count = fields.IntField(default=0, description="尝试次数")
    last_error = fields.TextField(null=True, description="最后错误")
    last_attempt_at = fields.DatetimeField(null=True, description="最后尝试时间")
    created_at = fields.DatetimeField(auto_now_add=True, description="创建时间")

    class Meta:
        table = "fetch_queue"
        table_description = "公开拉取队列表"

    def __str__(self) -> str:
        return f"QueueItem({self.id}: {self.status})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "surl": self.surl,
            "status": self.status,
            "attempt_count": self.attempt_count,
            "last_error": self.last_error,
            "last_attempt_at": self.last_attempt_at.isoformat() if self.last_attempt_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class MediaFile(Model):
    """容器内的文件"""

    id = fields.CharField(max_length=64, pk=True, description="文件ID")
    container = fields.ForeignKeyField(
        "models.Container",
        related_name="files",
        on_delete=fields.CASCADE,
        description="所属容器"
    )
    name = fields.CharField(max_length=1000, description="文件名")
    path = fields.CharField(max_length=2000, description="远端路径")
    type = fields.CharField(max_length=20, default="other", description="文件分类")
    size = fields.BigIntField(null=True, description="文件大小")
    thumbnail = fields.TextField(null=True, description="缩略图")

    # 限时直链
    download_url = fields.TextField(null=True, description="直链")

    fs_id = fields.CharField(max_length=64, null=True, description="远端文件ID")
    md5 = fields.CharField(max_length=64, null=True, description="MD5")
    created_at = fields.DatetimeField(auto_now_add=True, description="创建时间")

    class Meta:
        table = "media_files"
        table_description = "媒体文件表"

    def __str__(self) -> str:
        return f"MediaFile({self.id}: {self.name})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "container_id": self.container_id,
            "name": self.name,
            "path": self.path,
            "type": self.type,
            "size": self.size,
            "thumbnail": self.thumbnail,
            "has_link": bool(self.download_url),
            "fs_id": self.fs_id,
            "md5": self.md5,
        }
