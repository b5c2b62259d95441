"""
辅助工具模块

分享链接解析、大小格式化、文件分类、Cookie 处理
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Iterable, Mapping, Optional, Union
from urllib.parse import parse_qs, urlparse

SHARE_PATH_PATTERN = re.compile(r"/s/([A-Za-z0-9_-]+)")

# 分享 ID 的前导标识字符
SHARE_DISCRIMINATOR = "1"

CATEGORY_EXTENSIONS = {
    "video": {".mp4", ".mkv", ".avi", ".mov", ".webm"},
    "image": {".jpg", ".jpeg", ".png", ".gif", ".webp"},
    "audio": {".mp3", ".wav", ".flac", ".aac"},
    "document": {".pdf", ".doc", ".docx", ".ppt", ".pptx", ".xls", ".xlsx"},
    "archive": {".zip", ".rar", ".7z", ".tar", ".gz"},
}


@dataclass(frozen=True)
class ShareReference:
    """分享标识（surl）"""
    surl: str

    def __str__(self) -> str:
        return self.surl


def resolve_share(url: str) -> Optional[ShareReference]:
    """
    从分享链接中解析 surl

    支持两种形式:
        https://host/sharing/link?surl=xxx
        https://host/s/1xxx

    前导的 "1" 会被去掉。无法解析时返回 None，不抛异常。
    """
    if not isinstance(url, str):
        return None

    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return None

    if not parsed.scheme or not parsed.hostname:
        return None

    surl = None
    values = parse_qs(parsed.query).get("surl")
    if values and values[0]:
        surl = values[0]
    else:
        match = SHARE_PATH_PATTERN.search(parsed.path)
        if match:
            surl = match.group(1)

    if not surl:
        return None

    if surl.startswith(SHARE_DISCRIMINATOR):
        surl = surl[len(SHARE_DISCRIMINATOR):]

    return ShareReference(surl) if surl else None


def human_size(num_bytes: Optional[Union[int, float]]) -> str:
    """将字节数转换为人类可读格式（1024 进制，保留两位小数）"""
    if not num_bytes:
        return "0 B"
    size_names = ("B", "KB", "MB", "GB", "TB")
    size = float(num_bytes)
    i = 0
    while size >= 1024 and i < len(size_names) - 1:
        size /= 1024
        i += 1
    return f"{size:.2f} {size_names[i]}"


def guess_category(filename: str) -> str:
    """根据扩展名判断文件分类"""
    ext = PurePosixPath(filename or "").suffix.lower()
    for category, extensions in CATEGORY_EXTENSIONS.items():
        if ext in extensions:
            return category
    return "other"


def _cookie_field(cookie: Any, name: str) -> str:
    if isinstance(cookie, Mapping):
        return cookie.get(name) or ""
    return getattr(cookie, name, "") or ""


def cookies_to_header(cookies: Iterable[Any], domains: Iterable[str]) -> str:
    """
    将 Cookie 列表转换为请求头

    Args:
        cookies: Cookie 列表（字典或带 name/value/domain 属性的对象）
        domains: 需要保留的域名关键字

    Returns:
        "name=value; name2=value2" 格式的字符串
    """
    domains = tuple(domains)
    items = []
    for cookie in cookies or []:
        domain = _cookie_field(cookie, "domain")
        if not any(d in domain for d in domains):
            continue
        items.append(f"{_cookie_field(cookie, 'name')}={_cookie_field(cookie, 'value')}")
    return "; ".join(items)


def extract_session_token(url: str, min_length: int = 20) -> Optional[str]:
    """从请求 URL 中提取 jsToken，长度不足时视为无效"""
    if "jsToken=" not in url:
        return None
    try:
        values = parse_qs(urlparse(url).query).get("jsToken")
    except ValueError:
        return None
    if not values:
        return None
    token = values[0]
    return token if len(token) >= min_length else None
