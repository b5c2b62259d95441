"""
元数据拉取服务

两种相互独立的拉取方式：
- 公开拉取：无头浏览器打开分享页，只得到标题、类型、数量、缩略图
- 认证拉取：使用捕获到的 jsToken + Cookie 直接调用列表接口，得到带直链的完整列表

两者都不会把远端错误抛出服务边界，失败通过结果对象的 error 返回。
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from mediavault.core.exceptions import (
    InvalidUrlError, RemoteApiError, RemoteError, UnexpectedResponseError
)
from mediavault.providers.terabox import (
    AuthData, RemoteItem, TeraboxProvider, best_thumbnail, is_dir_entry, parse_remote_item
)
from mediavault.utils.helpers import ShareReference, cookies_to_header, resolve_share

logger = logging.getLogger(__name__)


@dataclass
class PublicMetadata:
    """公开拉取结果"""
    success: bool
    surl: str = ""
    title: Optional[str] = None
    type: str = "unknown"
    file_count: int = 0
    thumbnail: Optional[str] = None
    error: Optional[RemoteError] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "success": self.success,
            "surl": self.surl,
            "title": self.title,
            "type": self.type,
            "file_count": self.file_count,
            "thumbnail": self.thumbnail,
        }
        if self.error:
            data["error"] = self.error.to_dict()
        return data


@dataclass
class AuthListing:
    """认证拉取结果"""
    success: bool
    items: List[RemoteItem] = field(default_factory=list)
    error: Optional[RemoteError] = None

    @property
    def count(self) -> int:
        return len(self.items)


def summarize_share_info(ref: ShareReference, data: Dict[str, Any]) -> PublicMetadata:
    """
    根据 shorturlinfo 响应生成公开元数据

    - 0 项: unknown
    - 1 项: 目录为 folder，否则 single
    - 多项: multiple
    """
    errno = data.get("errno", 0)
    if errno != 0:
        raise RemoteApiError(errno)

    entries = data.get("list") or []
    first = entries[0] if entries else {}

    if len(entries) == 1:
        share_type = "folder" if is_dir_entry(first) else "single"
    elif len(entries) > 1:
        share_type = "multiple"
    else:
        share_type = "unknown"

    return PublicMetadata(
        success=True,
        surl=ref.surl,
        title=data.get("title") or first.get("server_filename") or "Untitled",
        type=share_type,
        file_count=len(entries),
        thumbnail=best_thumbnail(first.get("thumbs")),
    )


class MetadataService:
    """元数据拉取服务"""

    def __init__(self, provider: TeraboxProvider):
        self.provider = provider

    async def fetch_public(self, share_url: str) -> PublicMetadata:
        """
        公开拉取

        Args:
            share_url: 分享链接

        Returns:
            PublicMetadata
        """
        ref = resolve_share(share_url)
        if not ref:
            return PublicMetadata(success=False, error=InvalidUrlError())

        try:
            data = await self.provider.capture_share_info(ref)
            result = summarize_share_info(ref, data)
        except RemoteError as e:
            logger.warning(f"Public fetch failed for {ref}: {e.message}")
            return PublicMetadata(success=False, surl=ref.surl, error=e)

        logger.info(f"Public fetch for {ref}: type={result.type}, count={result.file_count}")
        return result

    async def fetch_authenticated(self, share_url: str, auth_data: AuthData) -> AuthListing:
        """
        认证拉取

        顶层只有一个目录时，再拉取一次该目录的内容并以其替换顶层（只展开一层）。
        只取第一页，最多 page_size 条。

        Args:
            share_url: 分享链接
            auth_data: 认证数据

        Returns:
            AuthListing
        """
        ref = resolve_share(share_url)
        if not ref:
            return AuthListing(success=False, error=InvalidUrlError())

        cookie = cookies_to_header(auth_data.cookies, self.provider.remote.cookie_domains)

        try:
            entries = await self._list(ref, auth_data.js_token, cookie)
            if len(entries) == 1 and is_dir_entry(entries[0]):
                folder = entries[0].get("path", "")
                logger.debug(f"Unwrapping single folder {folder} for {ref}")
                entries = await self._list(ref, auth_data.js_token, cookie, folder)
        except RemoteError as e:
            logger.warning(f"Authenticated fetch failed for {ref}: {e.message}")
            return AuthListing(success=False, error=e)

        items = [parse_remote_item(entry) for entry in entries if not is_dir_entry(entry)]
        logger.info(f"Authenticated fetch for {ref}: {len(items)} item(s)")
        return AuthListing(success=True, items=items)

    async def _list(self, ref: ShareReference, js_token: str, cookie: str,
                    dir: Optional[str] = None) -> List[Dict[str, Any]]:
        data = await self.provider.list_share(ref.surl, js_token, cookie, dir)
        errno = data.get("errno", 0)
        if errno != 0:
            raise RemoteApiError(errno)
        entries = data.get("list")
        if not isinstance(entries, list):
            raise UnexpectedResponseError("分享列表缺少 list 字段")
        return entries
