"""
TeraBox 远端 Provider

封装分享列表接口（httpx）与分享信息页抓取（Playwright）
"""
import json
import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from mediavault.core.config import BrowserSettings, RemoteSettings
from mediavault.core.exceptions import UnexpectedResponseError, UpstreamError
from mediavault.utils.helpers import ShareReference, guess_category, human_size

logger = logging.getLogger(__name__)

THUMB_TIER_PATTERN = re.compile(r"^url(\d+)$")


@dataclass(frozen=True)
class AuthCookie:
    """浏览器 Cookie"""
    name: str
    value: str
    domain: str = ""
    path: str = "/"
    expires: float = -1
    http_only: bool = False
    secure: bool = False
    same_site: str = "Lax"

    @classmethod
    def from_playwright(cls, cookie: Dict[str, Any]) -> "AuthCookie":
        return cls(
            name=cookie.get("name", ""),
            value=cookie.get("value", ""),
            domain=cookie.get("domain", ""),
            path=cookie.get("path", "/"),
            expires=cookie.get("expires", -1),
            http_only=bool(cookie.get("httpOnly", False)),
            secure=bool(cookie.get("secure", False)),
            same_site=str(cookie.get("sameSite", "Lax")),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthCookie":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AuthData:
    """一次成功捕获得到的认证凭据"""
    provider: str
    js_token: str
    cookies: tuple = ()
    captured_at: datetime = field(default_factory=datetime.now)

    def cookie_dicts(self) -> List[Dict[str, Any]]:
        return [c.to_dict() for c in self.cookies]

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典（Token 只显示前缀）"""
        return {
            "provider": self.provider,
            "js_token": f"{self.js_token[:12]}...",
            "cookie_count": len(self.cookies),
            "captured_at": self.captured_at.isoformat(),
        }


@dataclass(frozen=True)
class RemoteItem:
    """远端列表中的一项"""
    name: str
    path: str
    is_folder: bool
    size: Optional[int]
    category: str
    fs_id: str
    md5: Optional[str] = None
    dlink: Optional[str] = None
    thumbs: Dict[str, str] = field(default_factory=dict)

    @property
    def size_human(self) -> str:
        return human_size(self.size)

    @property
    def thumbnail(self) -> Optional[str]:
        return best_thumbnail(self.thumbs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "is_folder": self.is_folder,
            "size": self.size,
            "size_human": self.size_human,
            "category": self.category,
            "fs_id": self.fs_id,
            "md5": self.md5,
            "has_dlink": bool(self.dlink),
            "thumbnail": self.thumbnail,
        }


def is_dir_entry(entry: Dict[str, Any]) -> bool:
    """远端 isdir 字段可能是 "1" 或 1"""
    return str(entry.get("isdir", "0")) == "1"


def best_thumbnail(thumbs: Optional[Dict[str, Any]]) -> Optional[str]:
    """取分辨率最高的缩略图（url3 > url2 > url1）"""
    if not isinstance(thumbs, dict):
        return None
    tiers = []
    for key, value in thumbs.items():
        match = THUMB_TIER_PATTERN.match(key)
        if match and value:
            tiers.append((int(match.group(1)), value))
    if not tiers:
        return None
    return max(tiers)[1]


def parse_size(value: Any) -> Optional[int]:
    """远端 size 可能是数字或数字字符串，无法识别时返回 None"""
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.debug(f"Unrecognized remote size: {value!r}")
        return None


def parse_remote_item(entry: Dict[str, Any]) -> RemoteItem:
    """将远端列表项转换为 RemoteItem"""
    name = entry.get("server_filename", "")
    is_folder = is_dir_entry(entry)
    thumbs = entry.get("thumbs")
    return RemoteItem(
        name=name,
        path=entry.get("path", ""),
        is_folder=is_folder,
        size=parse_size(entry.get("size")),
        category="folder" if is_folder else guess_category(name),
        fs_id=str(entry.get("fs_id", "")),
        md5=entry.get("md5") or None,
        dlink=entry.get("dlink") or None,
        thumbs={k: v for k, v in thumbs.items() if isinstance(v, str)} if isinstance(thumbs, dict) else {},
    )


class TeraboxProvider:
    """
    TeraBox Provider

    - list_share: 带认证的分享列表（返回直链）
    - capture_share_info: 无头浏览器打开分享页，截获公开信息接口响应
    """

    SHARE_INFO_API = "/api/shorturlinfo"

    def __init__(self, http_client: httpx.AsyncClient, remote: RemoteSettings,
                 browser: Optional[BrowserSettings] = None):
        self.http_client = http_client
        self.remote = remote
        self.browser = browser or BrowserSettings()

    def share_page_url(self, ref: ShareReference) -> str:
        """分享信息页地址"""
        return f"{self.remote.share_api_base}/sharing/link?surl={ref.surl}&clearCache=1"

    def _list_headers(self, surl: str, cookie: str) -> Dict[str, str]:
        return {
            "User-Agent": self.remote.user_agent,
            "Cookie": cookie,
            "Referer": f"{self.remote.origin}/sharing/link?surl={surl}",
            "Origin": self.remote.origin,
            "X-Requested-With": "XMLHttpRequest",
        }

    async def list_share(
            self,
            surl: str,
            js_token: str,
            cookie: str,
            dir: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        调用分享列表接口

        只取第一页（page_size 条，按名称升序），不做分页。

        Args:
            surl: 分享标识
            js_token: 会话 Token
            cookie: Cookie 请求头
            dir: 子目录路径，为空时列出根目录

        Returns:
            远端返回的 JSON 对象
        """
        params = {
            "app_id": self.remote.app_id,
            "web": "1",
            "channel": "dubox",
            "clienttype": "0",
            "shorturl": surl,
            "jsToken": js_token,
            "page": "1",
            "num": str(self.remote.page_size),
            "order": "asc",
            "by": "name",
            "site_referer": self.remote.home_url,
        }
        if dir:
            params["dir"] = dir
        else:
            params["root"] = "1"

        url = f"{self.remote.share_api_base}/share/list"
        try:
            resp = await self.http_client.get(
                url,
                params=params,
                headers=self._list_headers(surl, cookie),
                timeout=self.remote.request_timeout
            )
        except httpx.HTTPError as e:
            logger.warning(f"Share list request failed for {surl}: {e}")
            raise UpstreamError(f"分享列表请求失败: {e}")

        try:
            data = json.loads(resp.text)
        except ValueError:
            logger.warning(f"Share list for {surl} returned non-JSON body (status {resp.status_code})")
            raise UnexpectedResponseError()

        if not isinstance(data, dict):
            raise UnexpectedResponseError("分享列表返回的结构无法识别")
        return data

    async def capture_share_info(self, ref: ShareReference) -> Dict[str, Any]:
        """
        用无头浏览器打开分享页并截获 shorturlinfo 响应

        浏览器在任何情况下都会被关闭。
        """
        timeout_ms = self.remote.public_fetch_timeout * 1000
        try:
            async with async_playwright() as playwright:
                browser = await playwright.chromium.launch(
                    headless=self.browser.headless_public,
                    args=[
                        "--disable-blink-features=AutomationControlled",
                        "--no-sandbox",
                    ],
                )
                try:
                    context = await browser.new_context(user_agent=self.remote.user_agent)
                    page = await context.new_page()

                    async with page.expect_response(
                            lambda r: self.SHARE_INFO_API in r.url and r.request.method == "GET",
                            timeout=timeout_ms
                    ) as response_info:
                        await page.goto(self.share_page_url(ref), wait_until="domcontentloaded")

                    response = await response_info.value
                    body = await response.text()
                finally:
                    await browser.close()
        except PlaywrightError as e:
            logger.warning(f"Public fetch browser error for {ref}: {e}")
            raise UpstreamError(f"公开信息获取失败: {e}")

        try:
            data = json.loads(body)
        except ValueError:
            raise UnexpectedResponseError("分享信息接口返回的不是 JSON")

        if not isinstance(data, dict):
            raise UnexpectedResponseError("分享信息接口返回的结构无法识别")
        return data
