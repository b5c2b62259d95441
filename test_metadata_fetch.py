#!/usr/bin/env python3
"""
测试元数据拉取（公开 / 认证）
"""
import asyncio
import json

import httpx
import pytest

from mediavault.core.config import RemoteSettings
from mediavault.core.exceptions import (
    InvalidUrlError, RemoteApiError, UnexpectedResponseError, UpstreamError
)
from mediavault.providers.terabox import (
    AuthCookie, AuthData, TeraboxProvider, best_thumbnail, parse_remote_item, parse_size
)
from mediavault.services.metadata_service import MetadataService, summarize_share_info
from mediavault.utils.helpers import ShareReference

SHARE_URL = "https://www.1024tera.com/s/1abc123"


def file_entry(name, size=1024, **extra):
    entry = {
        "server_filename": name,
        "path": f"/{name}",
        "isdir": "0",
        "size": size,
        "fs_id": abs(hash(name)) % 10 ** 9,
        "dlink": f"https://d.1024tera.com/file/{name}",
    }
    entry.update(extra)
    return entry


def dir_entry(name):
    return {"server_filename": name, "path": f"/{name}", "isdir": 1, "fs_id": 1}


class FakeProvider:
    """记录调用的假 Provider"""

    def __init__(self, share_info=None, listings=None, error=None):
        self.remote = RemoteSettings()
        self.share_info = share_info
        self.listings = dict(listings or {})
        self.error = error
        self.list_calls = []
        self.info_calls = []

    async def capture_share_info(self, ref):
        self.info_calls.append(ref)
        if self.error:
            raise self.error
        return self.share_info

    async def list_share(self, surl, js_token, cookie, dir=None):
        self.list_calls.append((surl, js_token, cookie, dir))
        if self.error:
            raise self.error
        return self.listings[dir]


def auth_data():
    return AuthData(
        provider="terabox",
        js_token="T" * 40,
        cookies=(
            AuthCookie(name="ndus", value="n1", domain=".1024tera.com"),
            AuthCookie(name="ga", value="g1", domain=".google.com"),
        ),
    )


# ==================== 公开拉取 ====================

def test_summarize_multiple_files():
    data = {
        "errno": 0,
        "title": "Holiday",
        "list": [
            file_entry("a.mp4", thumbs={"url1": "s", "url3": "l", "url2": "m"}),
            file_entry("b.mp4"),
            file_entry("c.jpg"),
        ],
    }
    result = summarize_share_info(ShareReference("abc123"), data)
    assert result.success
    assert result.type == "multiple"
    assert result.file_count == 3
    assert result.title == "Holiday"
    assert result.thumbnail == "l"


def test_summarize_single_folder():
    data = {"errno": 0, "list": [dir_entry("Season 1")]}
    result = summarize_share_info(ShareReference("abc123"), data)
    assert result.type == "folder"
    assert result.file_count == 1
    assert result.title == "Season 1"


def test_summarize_single_file_and_empty():
    single = summarize_share_info(ShareReference("x"), {"errno": 0, "list": [file_entry("a.mkv")]})
    assert single.type == "single"
    empty = summarize_share_info(ShareReference("x"), {"errno": 0, "list": []})
    assert empty.type == "unknown"
    assert empty.file_count == 0
    assert empty.title == "Untitled"
    assert empty.thumbnail is None


def test_summarize_errno_raises():
    with pytest.raises(RemoteApiError) as exc_info:
        summarize_share_info(ShareReference("x"), {"errno": 105})
    assert exc_info.value.code == 105


def test_best_thumbnail():
    assert best_thumbnail({"url1": "a", "url2": "b"}) == "b"
    assert best_thumbnail({"url10": "big", "url9": "small"}) == "big"
    assert best_thumbnail({"icon": "x"}) is None
    assert best_thumbnail(None) is None


def test_fetch_public_invalid_url():
    provider = FakeProvider()
    result = asyncio.run(MetadataService(provider).fetch_public("not a link"))
    assert not result.success
    assert isinstance(result.error, InvalidUrlError)
    assert result.error.action == "fix_input"
    assert provider.info_calls == []


def test_fetch_public_success_and_failure():
    provider = FakeProvider(share_info={"errno": 0, "list": [file_entry("a.mp4"), file_entry("b.mp4")]})
    result = asyncio.run(MetadataService(provider).fetch_public(SHARE_URL))
    assert result.success
    assert result.surl == "abc123"
    assert result.to_dict()["type"] == "multiple"

    failing = FakeProvider(error=UpstreamError("timeout"))
    result = asyncio.run(MetadataService(failing).fetch_public(SHARE_URL))
    assert not result.success
    assert result.surl == "abc123"
    assert result.to_dict()["error"]["error"] == "upstream_error"


# ==================== 认证拉取 ====================

def test_fetch_authenticated_lists_files():
    provider = FakeProvider(listings={
        None: {"errno": 0, "list": [file_entry("a.mp4", size=1536), dir_entry("extras"), file_entry("b.jpg")]},
    })
    result = asyncio.run(MetadataService(provider).fetch_authenticated(SHARE_URL, auth_data()))

    assert result.success
    assert result.count == 2
    assert [i.name for i in result.items] == ["a.mp4", "b.jpg"]
    assert result.items[0].size_human == "1.50 KB"
    assert result.items[0].category == "video"
    assert result.items[0].dlink == "https://d.1024tera.com/file/a.mp4"

    surl, js_token, cookie, folder = provider.list_calls[0]
    assert surl == "abc123"
    assert js_token == "T" * 40
    assert cookie == "ndus=n1"
    assert folder is None


def test_fetch_authenticated_unwraps_single_folder():
    provider = FakeProvider(listings={
        None: {"errno": 0, "list": [dir_entry("Season 1")]},
        "/Season 1": {"errno": 0, "list": [file_entry("e01.mkv"), dir_entry("nested"), file_entry("e02.mkv")]},
    })
    result = asyncio.run(MetadataService(provider).fetch_authenticated(SHARE_URL, auth_data()))

    assert result.success
    assert [i.name for i in result.items] == ["e01.mkv", "e02.mkv"]
    # 只展开一层
    assert [call[3] for call in provider.list_calls] == [None, "/Season 1"]


def test_fetch_authenticated_remote_errno():
    provider = FakeProvider(listings={None: {"errno": -6}})
    result = asyncio.run(MetadataService(provider).fetch_authenticated(SHARE_URL, auth_data()))
    assert not result.success
    assert isinstance(result.error, RemoteApiError)
    assert result.error.code == -6
    assert result.error.retryable


def test_fetch_authenticated_errno_on_unwrapped_folder():
    provider = FakeProvider(listings={
        None: {"errno": 0, "list": [dir_entry("Season 1")]},
        "/Season 1": {"errno": 2},
    })
    result = asyncio.run(MetadataService(provider).fetch_authenticated(SHARE_URL, auth_data()))
    assert not result.success
    assert result.error.code == 2


def test_fetch_authenticated_invalid_url():
    provider = FakeProvider()
    result = asyncio.run(MetadataService(provider).fetch_authenticated("ftp:/nothing", auth_data()))
    assert isinstance(result.error, InvalidUrlError)
    assert provider.list_calls == []


@pytest.mark.parametrize("value, expected", [
    (1536, 1536),
    ("2048", 2048),
    (None, None),
    ("", None),
    ("unknown", None),
    ({"bytes": 1}, None),
])
def test_parse_size(value, expected):
    assert parse_size(value) == expected


def test_fetch_authenticated_tolerates_bad_size():
    provider = FakeProvider(listings={
        None: {"errno": 0, "list": [file_entry("a.mp4", size="n/a"), file_entry("b.mp4", size="2048")]},
    })
    result = asyncio.run(MetadataService(provider).fetch_authenticated(SHARE_URL, auth_data()))

    assert result.success
    assert [i.size for i in result.items] == [None, 2048]
    assert result.items[0].size_human == "0 B"


def test_parse_remote_item_folder():
    item = parse_remote_item(dir_entry("docs"))
    assert item.is_folder
    assert item.category == "folder"
    assert item.size is None
    assert item.to_dict()["has_dlink"] is False


# ==================== 列表接口 ====================

def make_provider(handler) -> TeraboxProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TeraboxProvider(client, RemoteSettings())


def list_share(provider, **kwargs):
    async def call():
        try:
            return await provider.list_share("abc123", "T" * 40, "ndus=n1", **kwargs)
        finally:
            await provider.http_client.aclose()

    return asyncio.run(call())


def test_list_share_sends_session_params():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        seen["headers"] = request.headers
        return httpx.Response(200, json={"errno": 0, "list": []})

    data = list_share(make_provider(handler), dir="/Season 1")
    assert data == {"errno": 0, "list": []}
    assert seen["params"]["shorturl"] == "abc123"
    assert seen["params"]["jsToken"] == "T" * 40
    assert seen["params"]["num"] == "100"
    assert seen["params"]["dir"] == "/Season 1"
    assert "root" not in seen["params"]
    assert seen["headers"]["cookie"] == "ndus=n1"


def test_list_share_html_body_is_unexpected_response():
    def handler(request):
        return httpx.Response(200, text="<!DOCTYPE html><html><body>login</body></html>")

    with pytest.raises(UnexpectedResponseError) as exc_info:
        list_share(make_provider(handler))
    error = exc_info.value
    assert error.action == "reauthenticate"
    assert error.to_dict()["needs_auth"] is True


def test_list_share_errno_body_is_returned():
    def handler(request):
        return httpx.Response(200, text=json.dumps({"errno": 4000020, "errmsg": "need verify"}))

    data = list_share(make_provider(handler))
    assert data["errno"] == 4000020


def test_list_share_network_error_is_upstream_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamError):
        list_share(make_provider(handler))
