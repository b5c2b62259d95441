#!/usr/bin/env python3
"""
测试 API 路由：认证管理、容器、公开拉取队列、认证拉取

数据库使用内存 SQLite，元数据拉取和认证捕获使用假实现
"""
from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from tortoise import Tortoise

from mediavault.api.deps import get_capture_controller, get_metadata_service
from mediavault.api.routes import auth, library, system
from mediavault.core.exceptions import (
    InvalidUrlError, RemoteApiError, UnexpectedResponseError, register_exception_handlers
)
from mediavault.providers.terabox import AuthCookie, AuthData, RemoteItem
from mediavault.services.auth_service import AuthSession, CaptureStatus
from mediavault.services.metadata_service import AuthListing, PublicMetadata
from mediavault.services.token_service import TokenService

SHARE_URL = "https://www.1024tera.com/s/1abc123"


class FakeMetadata:
    def __init__(self, public=None, listing=None):
        self.public = public
        self.listing = listing
        self.auth_calls = []

    async def fetch_public(self, share_url):
        return self.public

    async def fetch_authenticated(self, share_url, auth_data):
        self.auth_calls.append((share_url, auth_data))
        return self.listing


class FakeController:
    def __init__(self):
        self.session = None
        self.starts = 0
        self.closes = 0

    async def start(self):
        self.starts += 1
        if self.session is None:
            self.session = AuthSession(
                session_id="auth_1",
                status=CaptureStatus.WAITING_FOR_LOGIN,
                message="waiting"
            )
        return self.session

    def status(self):
        return self.session

    async def close(self):
        self.closes += 1
        self.session = None


def remote_item(name, dlink="https://d.1024tera.com/file/x"):
    return RemoteItem(
        name=name, path=f"/{name}", is_folder=False, size=2048,
        category="video", fs_id="42", dlink=dlink, thumbs={"url1": "t1", "url3": "t3"},
    )


def make_app(metadata, controller, with_token=False):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await Tortoise.init(db_url="sqlite://:memory:", modules={"models": ["mediavault.models"]})
        await Tortoise.generate_schemas()
        if with_token:
            await TokenService().save(AuthData(
                provider="terabox",
                js_token="T" * 40,
                cookies=(AuthCookie(name="ndus", value="n1", domain=".1024tera.com"),),
            ))
        yield
        await Tortoise.close_connections()

    app = FastAPI(lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(auth.router, prefix="/api")
    app.include_router(library.router, prefix="/api")
    app.include_router(system.router, prefix="/api")
    app.dependency_overrides[get_metadata_service] = lambda: metadata
    app.dependency_overrides[get_capture_controller] = lambda: controller
    return app


@pytest.fixture
def controller():
    return FakeController()


# ==================== 认证管理 ====================

def test_auth_status_without_session(controller):
    with TestClient(make_app(FakeMetadata(), controller)) as client:
        resp = client.get("/api/auth/status")
    assert resp.status_code == 200
    assert resp.json()["status"] == "none"


def test_auth_start_returns_existing_session(controller):
    with TestClient(make_app(FakeMetadata(), controller)) as client:
        first = client.post("/api/auth/start").json()
        second = client.post("/api/auth/start").json()
        status = client.get("/api/auth/status").json()
        closed = client.post("/api/auth/close").json()
        after = client.get("/api/auth/status").json()

    assert first["session_id"] == second["session_id"] == "auth_1"
    assert status["status"] == "waiting_for_login"
    assert closed["success"] is True
    assert after["status"] == "none"
    assert controller.closes == 1


def test_token_status_and_invalidate(controller):
    with TestClient(make_app(FakeMetadata(), controller, with_token=True)) as client:
        before = client.get("/api/auth/token").json()
        invalidated = client.post("/api/auth/invalidate").json()
        after = client.get("/api/auth/token").json()

    assert before["has_token"] is True
    assert before["status"] == "active"
    assert invalidated["success"] is True
    assert after["has_token"] is False


# ==================== 队列与公开拉取 ====================

def test_queue_public_fetch_failure_records_error(controller):
    metadata = FakeMetadata(public=PublicMetadata(success=False, error=InvalidUrlError()))
    with TestClient(make_app(metadata, controller)) as client:
        item = client.post("/api/queue", json={"url": "not a link"}).json()["item"]
        resp = client.post(f"/api/queue/{item['id']}/public-fetch")
        queue = client.get("/api/queue").json()

    assert resp.status_code == 400
    data = resp.json()
    assert data["success"] is False
    assert data["details"]["error"] == "invalid_url"
    assert data["queue_item"]["status"] == "failed"
    assert data["queue_item"]["attempt_count"] == 1
    assert data["queue_item"]["last_error"]
    assert queue["total"] == 1


def test_queue_public_fetch_success_creates_container(controller):
    metadata = FakeMetadata(public=PublicMetadata(
        success=True, surl="abc123", title="Holiday", type="multiple", file_count=3, thumbnail="t3"
    ))
    with TestClient(make_app(metadata, controller)) as client:
        item = client.post("/api/queue", json={"url": SHARE_URL}).json()["item"]
        assert item["surl"] == "abc123"
        resp = client.post(f"/api/queue/{item['id']}/public-fetch")
        queue = client.get("/api/queue").json()
        containers = client.get("/api/containers").json()["containers"]

    assert resp.status_code == 200
    container = resp.json()["container"]
    assert container["title"] == "Holiday"
    assert container["type"] == "multiple"
    assert container["file_count"] == 3
    assert container["surl"] == "abc123"
    assert queue["total"] == 0
    assert [c["id"] for c in containers] == [container["id"]]


def test_queue_missing_item(controller):
    with TestClient(make_app(FakeMetadata(), controller)) as client:
        assert client.delete("/api/queue/missing").status_code == 404
        assert client.post("/api/queue/missing/public-fetch").status_code == 404


# ==================== 容器与认证拉取 ====================

def test_auth_fetch_without_token_needs_auth(controller):
    metadata = FakeMetadata()
    with TestClient(make_app(metadata, controller)) as client:
        container = client.post("/api/containers", json={"url": SHARE_URL}).json()["container"]
        resp = client.post(f"/api/containers/{container['id']}/auth-fetch")

    assert resp.status_code == 401
    assert resp.json()["needs_auth"] is True
    assert metadata.auth_calls == []


def test_auth_fetch_replaces_files(controller):
    metadata = FakeMetadata(listing=AuthListing(
        success=True, items=[remote_item("e01.mkv"), remote_item("e02.mkv", dlink=None)]
    ))
    with TestClient(make_app(metadata, controller, with_token=True)) as client:
        container = client.post("/api/containers", json={"url": SHARE_URL, "title": "Show"}).json()["container"]
        resp = client.post(f"/api/containers/{container['id']}/auth-fetch")
        again = client.post(f"/api/containers/{container['id']}/auth-fetch")
        files = client.get(f"/api/containers/{container['id']}/files").json()
        detail = client.get(f"/api/containers/{container['id']}").json()["data"]
        token = client.get("/api/auth/token").json()

    assert resp.status_code == 200
    data = resp.json()
    assert data["count"] == 2
    assert again.json()["count"] == 2

    # 重复拉取是替换而不是追加
    assert files["total"] == 2
    assert [f["name"] for f in files["files"]] == ["e01.mkv", "e02.mkv"]
    assert [f["has_link"] for f in files["files"]] == [True, False]
    assert files["files"][0]["thumbnail"] == "t3"

    assert detail["is_expanded"] is True
    assert detail["status"] == "expanded"
    assert detail["file_count"] == 2
    assert detail["auth_expiry"] is not None
    assert token["last_used_at"] is not None

    auth_data = metadata.auth_calls[0][1]
    assert auth_data.js_token == "T" * 40
    assert auth_data.cookies[0].name == "ndus"


def test_auth_fetch_unexpected_response_needs_auth(controller):
    metadata = FakeMetadata(listing=AuthListing(success=False, error=UnexpectedResponseError()))
    with TestClient(make_app(metadata, controller, with_token=True)) as client:
        container = client.post("/api/containers", json={"url": SHARE_URL}).json()["container"]
        resp = client.post(f"/api/containers/{container['id']}/auth-fetch")

    assert resp.status_code == 502
    data = resp.json()
    assert data["needs_auth"] is True
    assert data["details"]["action"] == "reauthenticate"


def test_auth_fetch_remote_errno(controller):
    metadata = FakeMetadata(listing=AuthListing(success=False, error=RemoteApiError(-6)))
    with TestClient(make_app(metadata, controller, with_token=True)) as client:
        container = client.post("/api/containers", json={"url": SHARE_URL}).json()["container"]
        resp = client.post(f"/api/containers/{container['id']}/auth-fetch")

    assert resp.status_code == 502
    data = resp.json()
    assert data["needs_auth"] is False
    assert data["details"]["code"] == -6
    assert data["details"]["retryable"] is True


def test_container_public_fetch_updates_metadata(controller):
    metadata = FakeMetadata(public=PublicMetadata(
        success=True, surl="abc123", title="Renamed", type="folder", file_count=1
    ))
    with TestClient(make_app(metadata, controller)) as client:
        container = client.post("/api/containers", json={"url": SHARE_URL}).json()["container"]
        assert container["title"] == "Untitled"
        resp = client.post(f"/api/containers/{container['id']}/public-fetch")

    updated = resp.json()["container"]
    assert updated["title"] == "Renamed"
    assert updated["type"] == "folder"
    assert updated["file_count"] == 1


def test_missing_container(controller):
    with TestClient(make_app(FakeMetadata(), controller)) as client:
        assert client.get("/api/containers/missing").status_code == 404
        assert client.get("/api/containers/missing/files").status_code == 404


# ==================== 系统 ====================

def test_health_and_info(controller):
    with TestClient(make_app(FakeMetadata(), controller)) as client:
        health = client.get("/api/system/health").json()
        info = client.get("/api/system/info").json()

    assert health["status"] == "ok"
    assert info["data"]["has_active_token"] is False
    assert info["data"]["capture_status"] == "none"
