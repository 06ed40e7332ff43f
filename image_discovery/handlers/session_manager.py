"""
会话管理器

管理HTTP会话的生命周期和配置
"""

import logging
from typing import Dict, Optional

import aiohttp

from image_discovery.config.settings import CrawlerSettings

logger = logging.getLogger(__name__)


class SessionManager:
    """
    会话管理器

    功能：
    - HTTP会话生命周期管理
    - 统一的爬虫身份请求头
    - 连接池管理
    """

    def __init__(self, settings: CrawlerSettings):
        """
        初始化会话管理器

        Args:
            settings: 爬虫配置
        """
        self.settings = settings
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "SessionManager":
        await self.create_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close_session()

    def get_headers(self) -> Dict[str, str]:
        """获取请求头"""
        return {
            'User-Agent': self.settings.user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
        }

    async def create_session(self):
        """创建HTTP会话"""
        if self.session and not self.session.closed:
            return

        connector = aiohttp.TCPConnector(
            limit=max(self.settings.workers, 1) * 2,
            ttl_dns_cache=300,
        )
        self.session = aiohttp.ClientSession(
            connector=connector,
            headers=self.get_headers(),
        )
        logger.debug("HTTP会话创建成功")

    async def close_session(self):
        """关闭HTTP会话"""
        if self.session and not self.session.closed:
            await self.session.close()
            logger.debug("HTTP会话已关闭")

    def get_session(self) -> aiohttp.ClientSession:
        if not self.session or self.session.closed:
            raise RuntimeError("HTTP会话尚未创建")
        return self.session
