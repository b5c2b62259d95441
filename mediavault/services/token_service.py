"""
认证 Token 存储服务

同一时刻最多一个 active Token：保存新 Token 时先把现有 active 全部降级为 expired，
再插入新记录，两步在同一事务和同一把写锁内完成。
"""
import asyncio
import logging
import uuid
from datetime import datetime
from typing import Optional

from tortoise.transactions import in_transaction

from mediavault.models.token import AuthToken, TokenStatus
from mediavault.providers.terabox import AuthCookie, AuthData
from mediavault.utils.helpers import cookies_to_header

logger = logging.getLogger(__name__)

# 单写者锁，进程内共享
_write_lock = asyncio.Lock()


def token_to_auth_data(token: AuthToken) -> AuthData:
    """将持久化的 Token 转换为 AuthData"""
    return AuthData(
        provider=token.provider,
        js_token=token.js_token,
        cookies=tuple(AuthCookie.from_dict(c) for c in (token.cookies or [])),
        captured_at=token.captured_at,
    )


class TokenService:
    """认证 Token 存储服务"""

    async def get_active(self) -> Optional[AuthToken]:
        """获取当前 active Token"""
        return await AuthToken.filter(status=TokenStatus.ACTIVE.value).first()

    async def get_active_auth_data(self) -> Optional[AuthData]:
        """获取当前 active Token 对应的 AuthData"""
        token = await self.get_active()
        return token_to_auth_data(token) if token else None

    async def save(self, auth_data: AuthData) -> AuthToken:
        """
        保存新 Token

        Args:
            auth_data: 捕获到的认证数据

        Returns:
            新的 AuthToken（status = active）
        """
        async with _write_lock:
            async with in_transaction() as conn:
                demoted = await AuthToken.filter(
                    status=TokenStatus.ACTIVE.value
                ).using_db(conn).update(status=TokenStatus.EXPIRED.value)

                token = await AuthToken.create(
                    id=str(uuid.uuid4()),
                    provider=auth_data.provider,
                    js_token=auth_data.js_token,
                    cookies=auth_data.cookie_dicts(),
                    status=TokenStatus.ACTIVE.value,
                    captured_at=auth_data.captured_at,
                    expires_at=None,
                    last_used_at=datetime.now(),
                    using_db=conn
                )

        logger.info(f"Saved auth token {token.id} (demoted {demoted} previous)")
        return token

    async def invalidate_all(self) -> int:
        """将所有 active Token 标记为 expired"""
        async with _write_lock:
            count = await AuthToken.filter(
                status=TokenStatus.ACTIVE.value
            ).update(status=TokenStatus.EXPIRED.value)
        logger.info(f"Invalidated {count} auth token(s)")
        return count

    async def touch(self, token: AuthToken) -> None:
        """更新最后使用时间"""
        token.last_used_at = datetime.now()
        await token.save(update_fields=["last_used_at"])

    async def cookie_header(self, domains) -> str:
        """当前 active Token 的 Cookie 请求头（没有 Token 时为空字符串）"""
        token = await self.get_active()
        if not token:
            return ""
        return cookies_to_header(token.cookies or [], domains)
