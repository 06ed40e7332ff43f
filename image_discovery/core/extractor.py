"""
页面内容提取

HTML解析、图片提取与过滤、链接提取
"""

import logging
import re
import warnings
from typing import Callable, List, Optional

from bs4 import BeautifulSoup, ParserRejectedMarkup

from image_discovery.config.settings import CrawlerSettings
from image_discovery.models import CrawlSession, ImageRecord
from image_discovery.utils.url_parser import URLParser

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')


def parse_html(html: str) -> BeautifulSoup:
    """
    宽松解析HTML

    Args:
        html: 原始HTML

    Returns:
        BeautifulSoup对象；解析失败时返回空文档
    """
    # 抑制解析警告
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=UserWarning, module="bs4")
        try:
            return BeautifulSoup(html or "", 'html.parser')
        except (ParserRejectedMarkup, AssertionError) as e:
            logger.warning(f"HTML解析失败，按空页面处理: {e}")
            return BeautifulSoup("", 'html.parser')


def parse_dimension(value: Optional[str]) -> Optional[int]:
    """解析 width/height 属性的前导整数，例如 "10px" -> 10"""
    if not value:
        return None
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


class ImageExtractor:
    """
    图片提取和过滤

    功能：
    - 提取img标签
    - 相对URL解析
    - 会话内去重
    - 过滤小图和统计像素
    """

    def __init__(self, settings: CrawlerSettings):
        self.min_dimension = settings.min_image_dimension
        self.blocked_keywords = tuple(k.lower() for k in settings.blocked_keywords)
        self.blocked_alt_keywords = tuple(k.lower() for k in settings.blocked_alt_keywords)

    def is_tiny(self, width: Optional[str], height: Optional[str]) -> bool:
        """宽高都声明且任一小于阈值"""
        if not width or not height:
            return False
        sizes = [parse_dimension(width), parse_dimension(height)]
        return any(size is not None and size < self.min_dimension for size in sizes)

    def is_blocked(self, url: str, alt: str) -> bool:
        """URL或alt中包含统计、跟踪类关键词"""
        url_lower = url.lower()
        alt_lower = alt.lower()
        if any(k in url_lower or k in alt_lower for k in self.blocked_keywords):
            return True
        return any(k in alt_lower for k in self.blocked_alt_keywords)

    def extract(self, soup: BeautifulSoup, source_url: str, session: CrawlSession,
                should_stop: Callable[[], bool]) -> int:
        """
        从页面中提取图片并写入会话

        Args:
            soup: BeautifulSoup对象
            source_url: 页面URL
            session: 当前爬取会话（found_image_urls 和 images 会被修改）
            should_stop: 终止条件，满足时立即停止提取

        Returns:
            本页新增的图片数量
        """
        added = 0

        for img in soup.find_all('img'):
            if should_stop():
                logger.debug(f"达到终止条件，停止提取图片: {source_url}")
                break

            src = img.get('src')
            if not src:
                continue

            absolute_url = URLParser.resolve_url(src, source_url)
            if not absolute_url or absolute_url in session.found_image_urls:
                continue

            alt = img.get('alt') or ''
            if self.is_tiny(img.get('width'), img.get('height')):
                continue
            if self.is_blocked(absolute_url, alt):
                continue

            session.add_image(ImageRecord(url=absolute_url, source_url=source_url, alt_text=alt))
            added += 1
            logger.debug(f"发现图片: {absolute_url}")

        logger.debug(f"从页面提取到 {added} 张图片: {source_url}")
        return added


class LinkExtractor:
    """同域名链接提取，跳过 nofollow"""

    @staticmethod
    def is_nofollow(rel) -> bool:
        if not rel:
            return False
        tokens = rel.split() if isinstance(rel, str) else rel
        return any(token.lower() == 'nofollow' for token in tokens)

    def extract(self, soup: BeautifulSoup, base_url: str, session: CrawlSession) -> List[str]:
        """
        从页面中提取候选链接

        Args:
            soup: BeautifulSoup对象
            base_url: 页面URL
            session: 当前爬取会话（只读）

        Returns:
            按文档顺序排列的候选URL
        """
        links = []

        for link in soup.find_all('a', href=True):
            # 遵守 nofollow
            if self.is_nofollow(link.get('rel')):
                continue

            absolute_url = URLParser.resolve_url(link.get('href'), base_url)
            if not absolute_url:
                continue

            # 只跟踪同域名链接
            if URLParser.extract_hostname(absolute_url) != session.domain:
                continue

            if absolute_url in session.visited_urls:
                continue

            links.append(absolute_url)

        logger.debug(f"从页面提取到 {len(links)} 个链接: {base_url}")
        return links
