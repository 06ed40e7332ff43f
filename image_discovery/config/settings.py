"""
配置项定义

所有配置都有默认值，可通过YAML配置文件覆盖
"""

from dataclasses import dataclass, field
from typing import Tuple

DEFAULT_USER_AGENT = "ImageCrawlerBot/1.0"


@dataclass
class CrawlerSettings:
    """爬虫配置"""
    user_agent: str = DEFAULT_USER_AGENT
    max_images: int = 50
    max_time_seconds: float = 180.0
    max_links: int = 10
    max_depth: int = 1
    page_timeout: float = 10.0
    robots_timeout: float = 5.0
    max_redirects: int = 5
    min_image_dimension: int = 50
    blocked_keywords: Tuple[str, ...] = ("tracking", "analytics", "beacon")
    blocked_alt_keywords: Tuple[str, ...] = ("pixel",)
    workers: int = 1


@dataclass
class LoggingSettings:
    """日志配置"""
    level: str = "INFO"
    log_file: str = "logs/crawler.log"
    max_file_size: str = "10 MB"
    backup_count: int = 5
    console_output: bool = True
    verbose: bool = False
    format: str = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}"


@dataclass
class ApiSettings:
    """Web API 配置"""
    host: str = "0.0.0.0"
    port: int = 3001


@dataclass
class Settings:
    """全部配置"""
    crawler: CrawlerSettings = field(default_factory=CrawlerSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    api: ApiSettings = field(default_factory=ApiSettings)
