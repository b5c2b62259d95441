"""
全局配置模块

使用 Pydantic Settings 管理配置
"""
import os
import sys
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """数据库配置"""
    model_config = SettingsConfigDict(env_prefix="DB_")

    # Tortoise ORM 数据库 URL
    # SQLite: sqlite://db.sqlite3
    url: str = Field(default="sqlite://~/.media_vault.db", alias="DB_URL")

    # 是否生成数据库表结构
    generate_schemas: bool = Field(default=True, alias="DB_GENERATE_SCHEMAS")


class GatewaySettings(BaseSettings):
    """网关服务配置"""
    model_config = SettingsConfigDict(env_prefix="GATEWAY_")

    host: str = Field(default="127.0.0.1", alias="GATEWAY_HOST")
    port: int = Field(default=8520, alias="GATEWAY_PORT")
    debug: bool = Field(default=False, alias="GATEWAY_DEBUG")

    # 直链有效期提示（秒），远端不返回过期时间，仅用于展示
    cache_ttl: int = Field(default=3 * 3600, alias="CACHE_TTL")

    # CORS 配置
    enable_cors: bool = Field(default=True, alias="ENABLE_CORS")
    cors_origins: List[str] = Field(default=["*"], alias="CORS_ORIGINS")


class LogSettings(BaseSettings):
    """日志配置"""
    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="INFO", alias="LOG_LEVEL")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s",
        alias="LOG_FORMAT"
    )


class RemoteSettings(BaseSettings):
    """远端存储（TeraBox）接口配置"""
    model_config = SettingsConfigDict(env_prefix="REMOTE_")

    provider: str = Field(default="terabox", alias="REMOTE_PROVIDER")
    home_url: str = Field(default="https://www.1024tera.com/", alias="REMOTE_HOME_URL")
    share_api_base: str = Field(default="https://dm.1024tera.com", alias="REMOTE_SHARE_API_BASE")
    app_id: str = Field(default="250528", alias="REMOTE_APP_ID")
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36"
        ),
        alias="REMOTE_USER_AGENT"
    )

    # 列表接口使用的 Cookie 域名过滤
    cookie_domains: List[str] = Field(default=["1024tera", "terabox"], alias="REMOTE_COOKIE_DOMAINS")
    # 直链下载额外需要的 Cookie 域名
    stream_cookie_domains: List[str] = Field(
        default=["1024tera", "terabox", "panapi", "pcs"],
        alias="REMOTE_STREAM_COOKIE_DOMAINS"
    )

    # 单页列表上限（不做分页）
    page_size: int = Field(default=100, alias="REMOTE_PAGE_SIZE")
    request_timeout: float = Field(default=30.0, alias="REMOTE_REQUEST_TIMEOUT")
    public_fetch_timeout: float = Field(default=30.0, alias="REMOTE_PUBLIC_FETCH_TIMEOUT")

    # jsToken 最小长度，过短的视为无效
    min_token_length: int = Field(default=20, alias="REMOTE_MIN_TOKEN_LENGTH")

    @property
    def origin(self) -> str:
        return self.home_url.rstrip("/")


class BrowserSettings(BaseSettings):
    """浏览器（Playwright）配置"""
    model_config = SettingsConfigDict(env_prefix="BROWSER_")

    # Chrome 用户数据目录，未配置时按平台推断
    user_data_dir: Optional[Path] = Field(default=None, alias="CHROME_USER_DATA")
    profile_directory: str = Field(default="Default", alias="CHROME_PROFILE_DIR")
    channel: str = Field(default="chrome", alias="BROWSER_CHANNEL")
    headless_public: bool = Field(default=True, alias="BROWSER_HEADLESS_PUBLIC")

    def resolve_user_data_dir(self) -> Path:
        """获取 Chrome 用户数据目录"""
        if self.user_data_dir:
            return Path(self.user_data_dir).expanduser()
        if os.name == "nt":
            local = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
            return local / "Google" / "Chrome" / "User Data"
        if sys.platform == "darwin":
            return Path.home() / "Library" / "Application Support" / "Google" / "Chrome"
        return Path.home() / ".config" / "google-chrome"


class Settings(BaseSettings):
    """应用配置"""

    # 数据库配置
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)

    # 网关配置
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)

    # 日志配置
    log: LogSettings = Field(default_factory=LogSettings)

    # 远端配置
    remote: RemoteSettings = Field(default_factory=RemoteSettings)

    # 浏览器配置
    browser: BrowserSettings = Field(default_factory=BrowserSettings)

    # 数据目录
    data_dir: Path = Field(default=Path.home() / ".media_vault", alias="DATA_DIR")


@lru_cache
def get_settings() -> Settings:
    """获取配置实例（缓存）"""
    return Settings()
