"""
robots.txt 处理器

获取并解析站点的robots.txt，判断路径是否允许爬取。获取失败时按允许处理。
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import aiohttp
from protego import Protego

from image_discovery.config.settings import CrawlerSettings
from image_discovery.exceptions import RobotsFetchFailure
from image_discovery.utils.url_parser import URLParser

logger = logging.getLogger(__name__)


class RobotsStatus(Enum):
    ALLOWED = "allowed"
    DISALLOWED = "disallowed"
    UNAVAILABLE = "unavailable"  # 获取失败，按允许处理


@dataclass(frozen=True)
class RobotsCheck:
    """单次robots检查的结果"""
    url: str
    status: RobotsStatus
    failure: Optional[RobotsFetchFailure] = None

    @property
    def allowed(self) -> bool:
        return self.status is not RobotsStatus.DISALLOWED


class RobotsPolicy:
    """
    由robots.txt内容生成的站点策略

    规则按最长匹配生效，支持 * 和 $ 通配符；只在一次检查内使用，不跨会话缓存。
    """

    def __init__(self, robots_url: str, content: str):
        self.robots_url = robots_url
        self._parser = Protego.parse(content)

    def is_allowed(self, identity: str, url: str) -> bool:
        """
        判断指定身份是否可以爬取URL

        Args:
            identity: 爬虫User-Agent
            url: 绝对URL或路径（含查询参数）

        Returns:
            是否允许
        """
        return self._parser.can_fetch(url or '/', identity)


class RobotsChecker:
    """
    robots.txt 检查器

    功能：
    - 获取robots.txt（固定身份、短超时）
    - 按身份和通配符规则判断
    - 失败时默认允许
    """

    def __init__(self, session: aiohttp.ClientSession, settings: CrawlerSettings):
        """
        初始化检查器

        Args:
            session: HTTP会话
            settings: 爬虫配置
        """
        self.session = session
        self.settings = settings

    async def check(self, url: str) -> RobotsCheck:
        """
        检查URL是否允许爬取

        Args:
            url: 绝对URL

        Returns:
            检查结果
        """
        robots_url = URLParser.robots_url(url)
        try:
            content = await self._fetch_robots(robots_url)
            policy = RobotsPolicy(robots_url, content)
        except RobotsFetchFailure as e:
            logger.debug(f"robots.txt不可用，默认允许: {e}")
            return RobotsCheck(url, RobotsStatus.UNAVAILABLE, e)

        if policy.is_allowed(self.settings.user_agent, url):
            return RobotsCheck(url, RobotsStatus.ALLOWED)

        logger.info(f"robots.txt禁止爬取: {url}")
        return RobotsCheck(url, RobotsStatus.DISALLOWED)

    async def _fetch_robots(self, robots_url: str) -> str:
        timeout = aiohttp.ClientTimeout(total=self.settings.robots_timeout)
        try:
            async with self.session.get(robots_url, timeout=timeout) as response:
                if not 200 <= response.status < 300:
                    raise RobotsFetchFailure(robots_url, f"HTTP {response.status}")
                raw = await response.read()
        except asyncio.TimeoutError as e:
            raise RobotsFetchFailure(robots_url, "timeout") from e
        except (aiohttp.ClientError, ValueError) as e:
            raise RobotsFetchFailure(robots_url, str(e) or type(e).__name__) from e

        try:
            return raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise RobotsFetchFailure(robots_url, "undecodable content") from e
