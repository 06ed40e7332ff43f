"""
URL解析和处理工具

提供URL的解析、验证、标准化等功能
"""

import logging
from typing import Optional
from urllib.parse import urljoin, urlparse, urlunparse

from image_discovery.exceptions import InvalidSeedUrl

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ('http', 'https')


class URLParser:
    """
    URL解析器

    功能：
    - URL标准化和清理
    - 起始URL校验
    - 相对URL转绝对URL
    - 主机名提取
    """

    @staticmethod
    def normalize_url(url: str) -> str:
        """
        标准化URL

        Args:
            url: 原始URL

        Returns:
            标准化后的URL
        """
        if not url:
            return ""

        # 移除首尾空白
        url = url.strip()

        # 添加协议
        if not url.lower().startswith(('http://', 'https://')):
            url = 'https://' + url

        # 解析URL
        parsed = urlparse(url)

        # 标准化域名（转小写）
        netloc = parsed.netloc.lower()

        # 移除默认端口
        if netloc.endswith(':80') and parsed.scheme == 'http':
            netloc = netloc[:-3]
        elif netloc.endswith(':443') and parsed.scheme == 'https':
            netloc = netloc[:-4]

        # 标准化路径
        path = parsed.path
        if not path:
            path = '/'

        return urlunparse((
            parsed.scheme,
            netloc,
            path,
            parsed.params,
            parsed.query,
            ''  # 移除fragment
        ))

    @classmethod
    def normalize_seed(cls, url: Optional[str]) -> str:
        """
        标准化并校验起始URL

        Args:
            url: 用户提交的原始URL

        Returns:
            标准化后的绝对URL

        Raises:
            InvalidSeedUrl: URL为空或无法解析
        """
        if url is None or not str(url).strip():
            raise InvalidSeedUrl(str(url or ""), "URL is empty")

        raw = str(url).strip()
        scheme = raw.split('://', 1)[0].lower() if '://' in raw else None
        if scheme is not None and scheme not in ALLOWED_SCHEMES:
            raise InvalidSeedUrl(raw, f"unsupported scheme '{scheme}'")

        try:
            normalized = cls.normalize_url(raw)
            parsed = urlparse(normalized)
            # 访问port会校验端口格式
            parsed.port
        except ValueError as e:
            raise InvalidSeedUrl(raw, str(e)) from e

        if not parsed.hostname:
            raise InvalidSeedUrl(raw, "missing host")
        if any(ch.isspace() for ch in parsed.netloc):
            raise InvalidSeedUrl(raw, "host contains whitespace")

        return normalized

    @staticmethod
    def extract_hostname(url: str) -> str:
        """
        提取主机名（不含端口，小写）

        Args:
            url: URL

        Returns:
            主机名，无法解析时返回空字符串
        """
        try:
            return urlparse(url).hostname or ""
        except ValueError:
            return ""

    @staticmethod
    def resolve_url(url: Optional[str], base: str) -> Optional[str]:
        """
        将相对URL按页面地址解析为绝对URL

        Args:
            url: 相对或绝对URL
            base: 所在页面URL

        Returns:
            标准化后的绝对URL；无法解析或不是http(s)地址时返回None
        """
        if not url or not url.strip():
            return None

        try:
            absolute_url = urljoin(base, url.strip())
            parsed = urlparse(absolute_url)
            if parsed.scheme not in ALLOWED_SCHEMES or not parsed.hostname:
                return None
            parsed.port
            return URLParser.normalize_url(absolute_url)
        except ValueError as e:
            logger.debug(f"URL解析失败: {url} (base: {base}) -> {e}")
            return None

    @staticmethod
    def robots_url(url: str) -> str:
        """获取URL所在站点的robots.txt地址"""
        parsed = urlparse(url)
        return urlunparse((parsed.scheme, parsed.netloc, '/robots.txt', '', '', ''))
