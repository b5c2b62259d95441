"""
FastAPI 主应用入口

媒体库远端访问网关
基于 FastAPI + Tortoise ORM + httpx + Playwright 构建
"""
import logging
import os
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from tortoise import Tortoise

from mediavault import __version__
from mediavault.api.routes import auth, library, stream, system
from mediavault.core.config import get_settings
from mediavault.core.exceptions import register_exception_handlers
from mediavault.services.auth_service import capture_controller

# 获取配置
settings = get_settings()

# 确保数据目录存在
settings.data_dir.mkdir(parents=True, exist_ok=True)

# 配置日志
log_file = settings.data_dir / "gateway.log"
file_handler = RotatingFileHandler(
    log_file,
    maxBytes=10*1024*1024,  # 10MB
    backupCount=5,
    encoding="utf-8"
)
file_handler.setFormatter(logging.Formatter(settings.log.format))

logging.basicConfig(
    level=getattr(logging, settings.log.level.upper()),
    format=settings.log.format,
    handlers=[
        logging.StreamHandler(),
        file_handler
    ]
)
logger = logging.getLogger(__name__)


async def init_tortoise():
    """初始化 Tortoise ORM"""
    database_url = settings.database.url
    if database_url.startswith("sqlite://"):
        db_path = database_url.replace("sqlite://", "")
        if db_path.startswith("~/"):
            db_path = os.path.expanduser(db_path)
        database_url = f"sqlite://{db_path}"

    await Tortoise.init(
        db_url=database_url,
        modules={"models": ["mediavault.models"]}
    )

    if settings.database.generate_schemas:
        await Tortoise.generate_schemas()

    logger.info("Tortoise ORM initialized")


async def close_tortoise():
    """关闭 Tortoise ORM"""
    await Tortoise.close_connections()
    logger.info("Tortoise ORM closed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理

    启动时初始化数据库和共享 HTTP 客户端；关闭时释放认证浏览器
    """
    logger.info("Starting Media Vault Gateway...")

    await init_tortoise()

    # 流式下载不设读超时
    app.state.http_client = httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(settings.remote.request_timeout, read=None)
    )

    logger.info("Media Vault Gateway started successfully")

    yield

    logger.info("Shutting down Media Vault Gateway...")

    await capture_controller.close()
    await app.state.http_client.aclose()
    await close_tortoise()

    logger.info("Media Vault Gateway shut down successfully")


def create_app() -> FastAPI:
    """
    创建 FastAPI 应用

    Returns:
        FastAPI 应用实例
    """
    app = FastAPI(
        title="Media Vault Gateway",
        description="远端分享链接的元数据拉取、认证捕获与流媒体转发网关",
        version=__version__,
        lifespan=lifespan
    )

    # CORS 中间件
    if settings.gateway.enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.gateway.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_exception_handlers(app)

    # 注册路由
    app.include_router(auth.router, prefix="/api")
    app.include_router(library.router, prefix="/api")
    app.include_router(stream.router, prefix="/api")
    app.include_router(system.router, prefix="/api")

    @app.get("/")
    async def root():
        return {
            "name": "Media Vault Gateway",
            "version": __version__,
            "docs": "/docs",
            "endpoints": {
                "health": "/api/system/health",
                "auth": "/api/auth",
                "containers": "/api/containers",
                "queue": "/api/queue",
                "stream": "/api/stream/{file_id}",
                "download": "/api/download/{file_id}"
            }
        }

    return app


# 创建应用实例
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "mediavault.main:app",
        host=settings.gateway.host,
        port=settings.gateway.port,
        reload=settings.gateway.debug,
        log_level=settings.log.level.lower()
    )
