"""
异常定义模块
"""
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse


class AppException(HTTPException):
    """应用基础异常"""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(status_code=status_code, detail=message)
        self.message = message


class NotFoundError(AppException):
    """资源不存在错误"""

    def __init__(self, message: str = "资源不存在"):
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND)


class ContainerNotFoundError(NotFoundError):
    """容器不存在错误"""

    def __init__(self, container_id: str = None):
        message = f"容器不存在: {container_id}" if container_id else "容器不存在"
        super().__init__(message)


class QueueItemNotFoundError(NotFoundError):
    """队列项不存在错误"""

    def __init__(self, item_id: str = None):
        message = f"队列项不存在: {item_id}" if item_id else "队列项不存在"
        super().__init__(message)


class MediaFileNotFoundError(NotFoundError):
    """文件不存在错误"""

    def __init__(self, file_id: str = None):
        message = f"文件不存在: {file_id}" if file_id else "文件不存在"
        super().__init__(message)


# ==================== 远端访问错误 ====================

class RemoteError(AppException):
    """
    远端访问错误基类

    每个子类带有 kind（错误类型）和 action（调用方应采取的处理方式）：
    - fix_input: 修正输入
    - retry: 可以重试
    - reauthenticate: 需要重新捕获认证
    - refetch: 需要重新执行认证拉取以刷新直链
    """

    kind = "remote_error"
    action = "retry"
    retryable = True

    def __init__(self, message: str, status_code: int = status.HTTP_502_BAD_GATEWAY,
                 code: Optional[int] = None):
        super().__init__(message, status_code=status_code)
        self.code = code

    def to_dict(self) -> dict:
        """转换为响应字典"""
        return {
            "success": False,
            "error": self.kind,
            "message": self.message,
            "code": self.code,
            "action": self.action,
            "retryable": self.retryable,
        }


class InvalidUrlError(RemoteError):
    """分享链接无法解析"""

    kind = "invalid_url"
    action = "fix_input"
    retryable = False

    def __init__(self, message: str = "无效的分享链接，无法解析 surl"):
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST)


class RemoteApiError(RemoteError):
    """远端返回了结构化的错误码"""

    kind = "remote_api_error"

    def __init__(self, code: int, message: str = None):
        super().__init__(message or f"远端接口错误: errno {code}", code=code)


class UnexpectedResponseError(RemoteError):
    """远端返回了无法解析的内容（通常是会话失效后的登录页）"""

    kind = "unexpected_response"
    action = "reauthenticate"
    retryable = False

    def __init__(self, message: str = "期望 JSON，实际返回了 HTML（认证可能已失效）"):
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["needs_auth"] = True
        return data


class LinkExpiredError(RemoteError):
    """直链已过期（上游 401/403）"""

    kind = "link_expired"
    action = "refetch"
    retryable = False

    def __init__(self, upstream_status: int, message: str = "下载链接已过期，请重新执行认证拉取"):
        super().__init__(message, status_code=upstream_status, code=upstream_status)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["expired"] = True
        return data


class UpstreamError(RemoteError):
    """上游返回了其他非成功状态"""

    kind = "upstream_error"

    def __init__(self, message: str = "上游请求失败", upstream_status: Optional[int] = None):
        super().__init__(
            message,
            status_code=upstream_status or status.HTTP_502_BAD_GATEWAY,
            code=upstream_status
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["expired"] = False
        return data


class NoLinkAvailableError(RemoteError):
    """文件没有可用直链"""

    kind = "no_link_available"
    action = "auth_fetch"
    retryable = False

    def __init__(self, message: str = "没有可用的直链，请先执行认证拉取"):
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST)


class CaptureFailedError(RemoteError):
    """认证捕获失败"""

    kind = "capture_failed"
    action = "restart_capture"
    retryable = False

    def __init__(self, message: str = "浏览器在捕获认证之前被关闭"):
        super().__init__(message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


async def remote_error_handler(request: Request, exc: RemoteError) -> JSONResponse:
    """将远端错误渲染为 JSON"""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    """注册异常处理器"""
    app.add_exception_handler(RemoteError, remote_error_handler)
