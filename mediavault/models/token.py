"""
认证 Token 数据模型
"""
from enum import Enum

from tortoise import fields
from tortoise.models import Model


class TokenStatus(str, Enum):
    """Token 状态"""
    ACTIVE = "active"       # 当前使用
    EXPIRED = "expired"     # 已被新 Token 替换或手动作废
    INVALID = "invalid"     # 远端确认失效


class AuthToken(Model):
    """捕获到的认证凭据（同一时刻最多一个 active）"""

    # 主键：UUID
    id = fields.CharField(max_length=64, pk=True, description="Token ID")

    # 远端提供方
    provider = fields.CharField(max_length=50, default="terabox", description="提供方")

    # 会话 Token
    js_token = fields.TextField(description="jsToken")

    # Cookie 列表
    cookies = fields.JSONField(default=list, description="Cookie 列表")

    # 状态
    status = fields.CharField(max_length=20, default=TokenStatus.ACTIVE.value, description="状态")

    captured_at = fields.DatetimeField(description="捕获时间")

    # 远端不提供过期时间，通常为空
    expires_at = fields.DatetimeField(null=True, description="过期时间")

    last_used_at = fields.DatetimeField(null=True, description="最后使用时间")

    class Meta:
        table = "auth_tokens"
        table_description = "认证 Token 表"

    def __str__(self) -> str:
        return f"AuthToken({self.id}: {self.status})"

    def to_dict(self) -> dict:
        """转换为字典（不包含凭据内容）"""
        return {
            "id": self.id,
            "provider": self.provider,
            "status": self.status,
            "captured_at": self.captured_at.isoformat() if self.captured_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
        }
