"""
Media Vault Gateway

本地媒体库的远端访问网关：认证捕获、元数据拉取、流媒体转发
"""
__version__ = "1.0.0"
