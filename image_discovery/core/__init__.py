"""
核心模块
"""

from .extractor import ImageExtractor, LinkExtractor, parse_html
from .fetcher import FetchStatus, PageFetcher, PageFetchResult
from .spider import CrawlTask, ImageSpider

__all__ = [
    "ImageSpider",
    "CrawlTask",
    "PageFetcher",
    "PageFetchResult",
    "FetchStatus",
    "ImageExtractor",
    "LinkExtractor",
    "parse_html",
]
