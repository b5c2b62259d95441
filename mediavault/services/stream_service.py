"""
流媒体 / 下载网关

把远端直链的字节流转发给本地客户端（浏览器 video 元素、播放器、下载器）。
直链和 Cookie 只有本服务知道，客户端只访问本地地址。
"""
import logging
from typing import AsyncIterator, Dict, Mapping, Optional, Tuple
from urllib.parse import quote

import httpx
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from mediavault.core.config import RemoteSettings
from mediavault.core.exceptions import LinkExpiredError, NoLinkAvailableError, UpstreamError

logger = logging.getLogger(__name__)

# 不转发的上游响应头
SKIP_HEADERS = {
    "transfer-encoding",
    "connection",
    "keep-alive",
    "content-encoding",
    # 上游可能标记为 attachment，会导致 video 元素无法内联播放
    "content-disposition",
}

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Range",
    "Access-Control-Expose-Headers": "Content-Range, Content-Length, Accept-Ranges",
}


def is_encoded(upstream_headers: Mapping[str, str]) -> bool:
    """上游是否对响应体做了压缩编码（httpx 转发时会解码，原 Content-Length 不再成立）"""
    for key, value in upstream_headers.items():
        if key.lower() == "content-encoding":
            return (value or "").strip().lower() not in ("", "identity")
    return False


def is_initial_range(range_header: Optional[str]) -> bool:
    """没有 Range 或 Range 为 bytes=0- 时视为客户端的首次探测"""
    if not range_header:
        return True
    return range_header.strip().replace(" ", "").lower() == "bytes=0-"


def plan_stream_response(
        range_header: Optional[str],
        upstream_headers: Mapping[str, str]
) -> Tuple[int, Dict[str, str]]:
    """
    计算本地响应的状态码和响应头

    首次探测一律返回 200 并去掉 Content-Range（即使上游返回了 206），
    否则部分浏览器会不停重新协商 Range 而不开始播放；
    真正的子区间请求返回 206 并保留 Content-Range。

    Args:
        range_header: 客户端的 Range 请求头
        upstream_headers: 上游响应头

    Returns:
        (状态码, 响应头)
    """
    initial = is_initial_range(range_header)
    encoded = is_encoded(upstream_headers)
    items = upstream_headers.items()
    if isinstance(upstream_headers, httpx.Headers):
        items = upstream_headers.multi_items()

    headers: Dict[str, str] = {}
    for key, value in items:
        name = key.lower()
        if name in SKIP_HEADERS:
            continue
        if initial and name == "content-range":
            continue
        if encoded and name == "content-length":
            continue
        headers[name] = value

    headers["content-disposition"] = "inline"
    headers["accept-ranges"] = "bytes"
    headers.update({k.lower(): v for k, v in CORS_HEADERS.items()})
    return (200 if initial else 206), headers


def attachment_disposition(filename: str) -> str:
    """同时带普通文件名和 UTF-8 编码文件名的 Content-Disposition"""
    fallback = filename.encode("ascii", "ignore").decode("ascii")
    fallback = fallback.replace("\\", "_").replace('"', "_").strip() or "download"
    encoded = quote(filename, safe="")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{encoded}"


class StreamGateway:
    """流媒体 / 下载网关"""

    def __init__(self, http_client: httpx.AsyncClient, remote: RemoteSettings):
        self.http_client = http_client
        self.remote = remote

    def build_headers(self, cookie_header: str = "", range_header: Optional[str] = None) -> Dict[str, str]:
        """构建上游请求头"""
        headers = {
            "User-Agent": self.remote.user_agent,
            "Referer": self.remote.home_url,
            "Origin": self.remote.origin,
            "Accept": "*/*",
            "Accept-Encoding": "identity",
        }
        if cookie_header:
            headers["Cookie"] = cookie_header
        if range_header:
            headers["Range"] = range_header
        return headers

    async def open(self, link: Optional[str], cookie_header: str = "",
                   range_header: Optional[str] = None) -> httpx.Response:
        """
        打开上游流

        非 2xx 时关闭上游连接并抛出 LinkExpiredError（401/403）或 UpstreamError。
        """
        if not link:
            raise NoLinkAvailableError()

        request = self.http_client.build_request(
            "GET", link, headers=self.build_headers(cookie_header, range_header)
        )
        try:
            response = await self.http_client.send(request, stream=True, follow_redirects=True)
        except httpx.HTTPError as e:
            logger.error(f"Upstream request failed: {e}")
            raise UpstreamError(f"上游请求失败: {e}")

        if not response.is_success:
            await response.aclose()
            logger.warning(f"Upstream returned {response.status_code}")
            if response.status_code in (401, 403):
                raise LinkExpiredError(response.status_code)
            raise UpstreamError("无法获取文件内容", upstream_status=response.status_code)

        return response

    async def relay(self, response: httpx.Response, label: str) -> AsyncIterator[bytes]:
        """
        逐块转发上游响应体（已按 Content-Encoding 解码）

        上游中途出错时直接结束响应（此时状态码已经发出，无法再修改）；
        任何情况下都会关闭上游连接，包括客户端断开。
        """
        sent = 0
        try:
            async for chunk in response.aiter_bytes():
                sent += len(chunk)
                yield chunk
        except httpx.HTTPError as e:
            logger.warning(f"[{label}] Upstream body error after {sent} bytes: {e}")
        finally:
            await response.aclose()
            logger.debug(f"[{label}] Relayed {sent} bytes")

    async def stream(self, name: str, link: Optional[str], cookie_header: str = "",
                     range_header: Optional[str] = None) -> StreamingResponse:
        """内联播放（支持 Range）"""
        logger.info(f"[STREAM] {name} range={range_header or 'NONE'}")
        response = await self.open(link, cookie_header, range_header)

        status_code, headers = plan_stream_response(range_header, response.headers)
        logger.debug(f"[STREAM] upstream {response.status_code} -> local {status_code}")

        return StreamingResponse(
            self.relay(response, "STREAM"),
            status_code=status_code,
            headers=headers,
            background=BackgroundTask(response.aclose),
        )

    async def download(self, name: str, link: Optional[str], cookie_header: str = "") -> StreamingResponse:
        """以附件形式下载"""
        logger.info(f"[DOWNLOAD] {name}")
        response = await self.open(link, cookie_header)

        headers = {
            "content-disposition": attachment_disposition(name),
            "content-type": response.headers.get("content-type") or "application/octet-stream",
        }
        content_length = response.headers.get("content-length")
        if content_length and not is_encoded(response.headers):
            headers["content-length"] = content_length

        return StreamingResponse(
            self.relay(response, "DOWNLOAD"),
            headers=headers,
            background=BackgroundTask(response.aclose),
        )
