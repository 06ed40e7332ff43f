"""
页面获取器

带超时和重定向限制的HTML获取，结果以带状态的对象返回，不向上抛出网络异常
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import aiohttp
import chardet

from image_discovery.config.settings import CrawlerSettings
from image_discovery.exceptions import PageFetchFailure

logger = logging.getLogger(__name__)

FALLBACK_ENCODINGS = ['utf-8', 'gbk', 'gb2312', 'big5']


class FetchStatus(Enum):
    OK = "ok"
    HTTP_ERROR = "http_error"
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class PageFetchResult:
    """页面获取结果"""
    url: str
    status: FetchStatus
    html: str = ""
    final_url: Optional[str] = None
    failure: Optional[PageFetchFailure] = None

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.OK

    @classmethod
    def failed(cls, url: str, status: FetchStatus, reason: str,
               http_status: Optional[int] = None) -> "PageFetchResult":
        return cls(url=url, status=status,
                   failure=PageFetchFailure(url, reason, http_status))


class PageFetcher:
    """
    HTML页面获取器

    功能：
    - 固定身份的GET请求
    - 单请求超时
    - 重定向次数限制
    - 响应编码检测
    """

    def __init__(self, session: aiohttp.ClientSession, settings: CrawlerSettings):
        """
        初始化页面获取器

        Args:
            session: HTTP会话
            settings: 爬虫配置
        """
        self.session = session
        self.settings = settings

    async def fetch(self, url: str) -> PageFetchResult:
        """
        获取页面内容

        Args:
            url: 页面URL

        Returns:
            获取结果
        """
        timeout = aiohttp.ClientTimeout(total=self.settings.page_timeout)
        try:
            async with self.session.get(
                url,
                timeout=timeout,
                allow_redirects=True,
                max_redirects=self.settings.max_redirects,
            ) as response:
                if not 200 <= response.status < 300:
                    return PageFetchResult.failed(
                        url, FetchStatus.HTTP_ERROR, response.reason or "HTTP error", response.status
                    )
                raw = await response.read()
                html = self._decode(raw, response.charset)
                return PageFetchResult(url=url, status=FetchStatus.OK, html=html,
                                       final_url=str(response.url))
        except asyncio.TimeoutError:
            return PageFetchResult.failed(url, FetchStatus.TIMEOUT, "timeout")
        except (aiohttp.ClientError, ValueError) as e:
            return PageFetchResult.failed(url, FetchStatus.TRANSPORT_ERROR, str(e) or type(e).__name__)

    def _decode(self, raw: bytes, charset: Optional[str]) -> str:
        """智能解码响应内容，自动检测编码"""
        # 首先使用响应头中的编码
        if charset:
            try:
                return raw.decode(charset)
            except (UnicodeDecodeError, LookupError) as e:
                logger.debug(f"使用响应头编码 {charset} 解码失败: {e}")

        detected = chardet.detect(raw[:10000])  # 只检测前10KB
        encoding = detected.get('encoding')
        if encoding and detected.get('confidence', 0) > 0.7:
            try:
                return raw.decode(encoding)
            except (UnicodeDecodeError, LookupError):
                logger.debug(f"使用检测编码 {encoding} 解码失败")

        for encoding in FALLBACK_ENCODINGS:
            try:
                return raw.decode(encoding)
            except UnicodeDecodeError:
                continue

        logger.debug("所有编码尝试失败，使用UTF-8忽略错误模式解码")
        return raw.decode('utf-8', errors='ignore')
