"""
认证捕获服务

远端没有公开的登录接口，只能打开一个可见的 Chrome（使用用户自己的配置目录，
通常已经登录），观察它发出的请求，拿到第一个带 jsToken 的请求后读取 Cookie。

整个进程同一时刻只有一个捕获会话和一个浏览器。
"""
import asyncio
import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from mediavault.core.config import Settings, get_settings
from mediavault.core.exceptions import CaptureFailedError
from mediavault.providers.terabox import AuthCookie, AuthData
from mediavault.utils.helpers import extract_session_token

logger = logging.getLogger(__name__)


class CaptureStatus(str, Enum):
    """捕获会话状态"""
    PENDING = "pending"
    WAITING_FOR_LOGIN = "waiting_for_login"
    CAPTURING = "capturing"
    SUCCESS = "success"
    FAILED = "failed"


# 存活状态：此时浏览器已打开或正在打开
LIVE_STATUSES = {CaptureStatus.PENDING, CaptureStatus.WAITING_FOR_LOGIN, CaptureStatus.CAPTURING}


@dataclass(frozen=True)
class AuthSession:
    """认证捕获会话快照"""
    session_id: str
    status: CaptureStatus
    message: str
    auth_data: Optional[AuthData] = None

    def to_dict(self) -> dict:
        data = {
            "session_id": self.session_id,
            "status": self.status.value,
            "message": self.message,
        }
        if self.auth_data:
            data["auth_data"] = self.auth_data.to_dict()
        if self.status == CaptureStatus.FAILED:
            data["error"] = CaptureFailedError.kind
        return data


class CaptureLatch:
    """
    一次性捕获闩锁

    armed -> claimed -> fired。claim() 是同步的，同一时刻只有一个请求能拿到；
    拿到的请求失败时 release() 重新布防，成功后 fire()，之后永远不会再触发。
    """

    ARMED = "armed"
    CLAIMED = "claimed"
    FIRED = "fired"

    def __init__(self):
        self._state = self.ARMED

    @property
    def fired(self) -> bool:
        return self._state == self.FIRED

    def claim(self) -> bool:
        if self._state != self.ARMED:
            return False
        self._state = self.CLAIMED
        return True

    def release(self) -> None:
        if self._state == self.CLAIMED:
            self._state = self.ARMED

    def fire(self) -> None:
        self._state = self.FIRED


class SessionCaptureController:
    """
    认证捕获控制器

    对外只暴露 start / status / close
    """

    def __init__(
            self,
            settings: Optional[Settings] = None,
            on_captured: Optional[Callable[[AuthData], Awaitable[Any]]] = None
    ):
        self._settings = settings
        self.on_captured = on_captured
        self._lock = asyncio.Lock()
        self._session: Optional[AuthSession] = None
        self._latch: Optional[CaptureLatch] = None
        self._launch_task: Optional[asyncio.Task] = None
        self._playwright = None
        self._context = None

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    # ------------------------------------------------------------ 公开接口

    async def start(self) -> AuthSession:
        """
        开始捕获

        已有存活会话时直接返回，不会再打开第二个浏览器。
        浏览器的启动在后台进行，本方法立即返回。
        """
        async with self._lock:
            if self._session and self._session.status in LIVE_STATUSES:
                return self._session

            await self._release_browser()

            session_id = f"auth_{int(time.time() * 1000)}"
            self._session = AuthSession(
                session_id=session_id,
                status=CaptureStatus.PENDING,
                message="正在使用 Chrome 配置启动认证会话..."
            )
            self._latch = CaptureLatch()
            self._launch_task = asyncio.create_task(self._run(session_id, self._latch))

            self._update(
                session_id,
                status=CaptureStatus.WAITING_FOR_LOGIN,
                message="浏览器已使用你的 Chrome 配置打开，打开任意分享链接即可捕获认证"
            )
            logger.info(f"Auth capture session {session_id} started")
            return self._session

    def status(self) -> Optional[AuthSession]:
        """当前会话（没有时返回 None）"""
        return self._session

    async def close(self) -> None:
        """关闭浏览器并清除会话"""
        async with self._lock:
            task = self._launch_task
            self._launch_task = None
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

            await self._release_browser()
            self._session = None
            self._latch = None
            logger.info("Auth capture session closed")

    # ------------------------------------------------------------ 内部实现

    def _update(self, session_id: str, **changes) -> None:
        """只更新仍然是当前会话的状态"""
        if self._session is None or self._session.session_id != session_id:
            return
        self._session = replace(self._session, **changes)

    def _fail(self, session_id: str, error: CaptureFailedError) -> None:
        self._update(session_id, status=CaptureStatus.FAILED, message=error.message)

    async def _launch(self) -> Tuple[Any, Any]:
        """启动带用户配置的持久化 Chrome 上下文"""
        browser = self.settings.browser
        playwright = await async_playwright().start()
        try:
            context = await playwright.chromium.launch_persistent_context(
                str(browser.resolve_user_data_dir()),
                channel=browser.channel,
                headless=False,
                args=[
                    f"--profile-directory={browser.profile_directory}",
                    "--disable-blink-features=AutomationControlled",
                ],
            )
        except BaseException:
            await playwright.stop()
            raise
        return playwright, context

    async def _run(self, session_id: str, latch: CaptureLatch) -> None:
        """后台任务：启动浏览器、安装请求观察者、打开首页"""
        try:
            playwright, context = await self._launch()
        except Exception as e:
            logger.exception(f"Failed to launch capture browser: {e}")
            self._fail(session_id, CaptureFailedError(f"浏览器启动失败: {e}"))
            return

        self._playwright = playwright
        self._context = context

        observer = self._make_observer(session_id, latch, context)
        context.on("request", observer)
        context.on("close", lambda _: self._on_browser_closed(session_id, context))

        try:
            page = context.pages[0] if context.pages else await context.new_page()
            await page.goto(self.settings.remote.home_url, wait_until="domcontentloaded")
        except Exception as e:
            if latch.fired:
                return
            logger.exception(f"Failed to open landing page: {e}")
            self._fail(session_id, CaptureFailedError(f"打开首页失败: {e}"))
            await self._release_browser()

    def _make_observer(self, session_id: str, latch: CaptureLatch, context):
        """生成一次性请求观察者"""
        remote = self.settings.remote

        async def on_request(request) -> None:
            if latch.fired:
                return
            js_token = extract_session_token(request.url, remote.min_token_length)
            if not js_token or not latch.claim():
                return

            logger.info(f"jsToken captured: {js_token[:30]}...")
            self._update(session_id, status=CaptureStatus.CAPTURING, message="正在读取 Cookie...")

            try:
                all_cookies = await context.cookies()
            except PlaywrightError as e:
                logger.error(f"Error reading cookies: {e}")
                latch.release()
                self._update(
                    session_id,
                    status=CaptureStatus.WAITING_FOR_LOGIN,
                    message="读取 Cookie 失败，请刷新分享页重试"
                )
                return

            cookies = tuple(
                AuthCookie.from_playwright(c) for c in all_cookies
                if any(d in c.get("domain", "") for d in remote.cookie_domains)
            )
            logger.info(f"Captured {len(cookies)} remote cookies")

            auth_data = AuthData(provider=remote.provider, js_token=js_token, cookies=cookies)
            latch.fire()
            context.remove_listener("request", on_request)
            self._update(
                session_id,
                status=CaptureStatus.SUCCESS,
                message="认证捕获成功",
                auth_data=auth_data
            )

            if self.on_captured:
                try:
                    await self.on_captured(auth_data)
                except Exception:
                    logger.exception("Failed to persist captured auth data")

        return on_request

    def _on_browser_closed(self, session_id: str, context) -> None:
        """浏览器关闭回调"""
        if self._session and self._session.session_id == session_id \
                and self._session.status != CaptureStatus.SUCCESS:
            self._fail(session_id, CaptureFailedError())
            logger.info(f"Capture browser closed before auth was captured ({session_id})")
        if self._context is context:
            self._context = None

    async def _release_browser(self) -> None:
        """关闭浏览器上下文并停止 Playwright"""
        context, self._context = self._context, None
        playwright, self._playwright = self._playwright, None
        if context is not None:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.warning(f"Error closing capture browser: {e}")
        if playwright is not None:
            try:
                await playwright.stop()
            except PlaywrightError as e:
                logger.warning(f"Error stopping playwright: {e}")


async def _persist_capture(auth_data: AuthData) -> None:
    from mediavault.services.token_service import TokenService
    await TokenService().save(auth_data)


# 全局捕获控制器
capture_controller = SessionCaptureController(on_captured=_persist_capture)
