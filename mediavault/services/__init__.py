"""
业务服务模块
"""
from .token_service import TokenService
from .auth_service import SessionCaptureController, capture_controller
from .metadata_service import MetadataService
from .stream_service import StreamGateway
from .library_service import LibraryService

__all__ = [
    "TokenService", "SessionCaptureController", "capture_controller",
    "MetadataService", "StreamGateway", "LibraryService",
]
