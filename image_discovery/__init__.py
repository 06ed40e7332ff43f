"""
图片发现爬虫 - 从起始页及其同域名链接中发现图片

包含以下子模块：
- core: 遍历引擎、页面获取和内容提取
- handlers: HTTP会话和robots.txt处理
- utils: URL解析和日志
- config: 配置管理
"""

from .core.spider import ImageSpider
from .models import CrawlResult, CrawlSession, ImageRecord

__version__ = "1.0.0"

__all__ = [
    "ImageSpider",
    "ImageRecord",
    "CrawlSession",
    "CrawlResult",
]
