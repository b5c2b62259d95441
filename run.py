#!/usr/bin/env python3
"""
媒体库远端访问网关启动脚本

基于 FastAPI + Tortoise ORM + httpx + Playwright 构建

使用方法:
    python run.py                    # 默认配置启动
    python run.py --port 8080        # 指定端口
    python run.py --debug            # 调试模式

环境变量:
    GATEWAY_HOST: 监听地址 (默认: 127.0.0.1)
    GATEWAY_PORT: 监听端口 (默认: 8520)
    GATEWAY_DEBUG: 调试模式 (默认: false)
    DB_URL: 数据库 URL (默认: sqlite://~/.media_vault.db)
    LOG_LEVEL: 日志级别 (默认: INFO)
    CHROME_USER_DATA: Chrome 用户数据目录 (默认按平台推断)
    CHROME_PROFILE_DIR: Chrome Profile 名称 (默认: Default)
"""
import argparse
import json
import os
import sys

# 添加项目根目录到 Python 路径
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))


ENV_MAPPING = {
    "gateway": {
        "host": "GATEWAY_HOST",
        "port": "GATEWAY_PORT",
        "debug": "GATEWAY_DEBUG",
        "enable_cors": "ENABLE_CORS",
        "cors_origins": "CORS_ORIGINS",
        "cache_ttl": "CACHE_TTL",
    },
    "database": {
        "url": "DB_URL",
        "generate_schemas": "DB_GENERATE_SCHEMAS",
    },
    "log": {
        "level": "LOG_LEVEL",
        "format": "LOG_FORMAT",
    },
    "remote": {
        "home_url": "REMOTE_HOME_URL",
        "share_api_base": "REMOTE_SHARE_API_BASE",
        "user_agent": "REMOTE_USER_AGENT",
        "request_timeout": "REMOTE_REQUEST_TIMEOUT",
    },
    "browser": {
        "user_data_dir": "CHROME_USER_DATA",
        "profile_directory": "CHROME_PROFILE_DIR",
        "channel": "BROWSER_CHANNEL",
        "headless_public": "BROWSER_HEADLESS_PUBLIC",
    },
    "data_dir": "DATA_DIR",
}


def _set_env_if_missing(key: str, value) -> None:
    if value is None or key in os.environ:
        return
    if isinstance(value, list):
        os.environ[key] = json.dumps(value)
    elif isinstance(value, bool):
        os.environ[key] = "true" if value else "false"
    else:
        os.environ[key] = str(value)


def _load_yaml_config(config_path: str) -> None:
    if not os.path.exists(config_path):
        return

    import yaml

    with open(config_path, "r", encoding="utf-8") as config_file:
        data = yaml.safe_load(config_file) or {}

    if not isinstance(data, dict):
        return

    for section in ("gateway", "database", "log", "remote", "browser"):
        values = data.get(section) or {}
        for key, env_key in ENV_MAPPING[section].items():
            _set_env_if_missing(env_key, values.get(key))

    _set_env_if_missing(ENV_MAPPING["data_dir"], data.get("data_dir"))


def main():
    parser = argparse.ArgumentParser(
        description='Media Vault Gateway Server',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('--host', default=None, help='监听地址 (默认: 127.0.0.1)')
    parser.add_argument('--port', type=int, default=None, help='监听端口 (默认: 8520)')
    parser.add_argument('--debug', action='store_true', help='启用调试模式')
    parser.add_argument('--reload', action='store_true', help='启用热重载')
    parser.add_argument('--config', default=None, help='配置文件路径 (默认: ./config.yaml)')

    args = parser.parse_args()

    config_path = args.config or os.path.join(
        os.path.dirname(os.path.abspath(__file__)), "config.yaml"
    )
    _load_yaml_config(config_path)

    # 命令行参数优先于配置文件
    if args.host:
        os.environ['GATEWAY_HOST'] = args.host
    if args.port:
        os.environ['GATEWAY_PORT'] = str(args.port)
    if args.debug:
        os.environ['GATEWAY_DEBUG'] = 'true'
        os.environ['LOG_LEVEL'] = 'DEBUG'

    from mediavault.core.config import get_settings
    settings = get_settings()

    print(f"""
Media Vault Gateway
  Python:   {sys.version.split()[0]}
  Host:     {settings.gateway.host}
  Port:     {settings.gateway.port}
  Debug:    {settings.gateway.debug}
  Database: {settings.database.url}
  Chrome:   {settings.browser.resolve_user_data_dir()} ({settings.browser.profile_directory})

API 文档: http://{settings.gateway.host}:{settings.gateway.port}/docs
Health:  http://{settings.gateway.host}:{settings.gateway.port}/api/system/health

Press Ctrl+C to stop the server.
""")

    import uvicorn

    uvicorn.run(
        "mediavault.main:app",
        host=settings.gateway.host,
        port=settings.gateway.port,
        reload=args.reload or settings.gateway.debug,
        log_level=settings.log.level.lower()
    )


if __name__ == '__main__':
    main()
