"""
异常定义

爬取过程中使用的异常类型
"""

from typing import Optional

ROBOTS_DISALLOWED_MESSAGE = "Crawling not allowed by robots.txt"


class ImageDiscoveryError(Exception):
    """所有爬虫异常的基类"""


class ConfigError(ImageDiscoveryError):
    """配置文件或配置项无效"""


class InvalidSeedUrl(ImageDiscoveryError):
    """起始URL无法解析"""

    def __init__(self, url: str, reason: str = "invalid URL"):
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid URL '{url}': {reason}")


class RobotsDisallowed(ImageDiscoveryError):
    """robots.txt 禁止爬取起始URL"""

    def __init__(self, url: str):
        self.url = url
        super().__init__(ROBOTS_DISALLOWED_MESSAGE)


class PageFetchFailure(ImageDiscoveryError):
    """页面获取失败（非2xx响应、超时或网络错误）"""

    def __init__(self, url: str, reason: str, status: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status = status
        detail = f"HTTP {status}" if status is not None else reason
        super().__init__(f"Failed to fetch {url}: {detail}")


class RobotsFetchFailure(ImageDiscoveryError):
    """robots.txt 获取或解析失败，按允许处理"""

    def __init__(self, robots_url: str, reason: str):
        self.robots_url = robots_url
        self.reason = reason
        super().__init__(f"robots.txt unavailable at {robots_url}: {reason}")
