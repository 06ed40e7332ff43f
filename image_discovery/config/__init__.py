"""
配置模块
"""

from .manager import ConfigManager
from .settings import ApiSettings, CrawlerSettings, LoggingSettings, Settings

__all__ = [
    "ConfigManager",
    "Settings",
    "CrawlerSettings",
    "LoggingSettings",
    "ApiSettings",
]
