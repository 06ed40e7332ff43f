"""
核心爬虫引擎

负责页面遍历、终止控制和图片汇总
"""

import asyncio
import logging
import time
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from image_discovery.config.settings import CrawlerSettings
from image_discovery.core.extractor import ImageExtractor, LinkExtractor, parse_html
from image_discovery.core.fetcher import PageFetcher
from image_discovery.exceptions import InvalidSeedUrl, RobotsDisallowed
from image_discovery.handlers.robots import RobotsChecker
from image_discovery.handlers.session_manager import SessionManager
from image_discovery.models import CrawlResult, CrawlSession
from image_discovery.utils.url_parser import URLParser

logger = logging.getLogger(__name__)

MAX_WORKERS = 5

ProgressCallback = Callable[[Dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class CrawlTask:
    """爬取任务"""
    url: str
    depth: int = 0


class ImageSpider:
    """
    图片爬虫引擎

    每次调用 crawl() 都创建独立的 CrawlSession，引擎本身只持有配置和协作对象，
    因此同一个实例可以同时处理多个请求。

    遍历顺序：起始页（深度0），然后按提取顺序访问其中最多 max_links 个同域名链接（深度1），
    深度1的页面只提取图片，不再跟踪链接。
    """

    def __init__(self,
                 settings: Optional[CrawlerSettings] = None,
                 fetcher: Optional[PageFetcher] = None,
                 robots_checker: Optional[RobotsChecker] = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        初始化爬虫

        Args:
            settings: 爬虫配置
            fetcher: 页面获取器，为空时每次爬取创建基于 aiohttp 的实现
            robots_checker: robots.txt 检查器，为空时同上
            clock: 计时函数（秒）
        """
        self.settings = settings or CrawlerSettings()
        self.fetcher = fetcher
        self.robots_checker = robots_checker
        self.clock = clock
        self.workers = min(max(self.settings.workers, 1), MAX_WORKERS)
        self.image_extractor = ImageExtractor(self.settings)
        self.link_extractor = LinkExtractor()

    def should_stop(self, session: CrawlSession) -> bool:
        """图片数量或耗时达到上限"""
        return (
            len(session.found_image_urls) >= self.settings.max_images
            or session.elapsed >= self.settings.max_time_seconds
        )

    async def crawl(self, seed_url: str, request_id: str = 'unknown',
                    progress_callback: Optional[ProgressCallback] = None) -> CrawlResult:
        """
        爬取起始页及其同域名链接中的图片

        Args:
            seed_url: 起始URL，缺少协议时补 https://
            request_id: 请求标识，用于日志
            progress_callback: 每处理完一个页面调用一次，参数为统计信息

        Returns:
            爬取结果
        """
        logger.info(f"[{request_id}] 开始爬取: {seed_url}")

        try:
            start_url = URLParser.normalize_seed(seed_url)
        except InvalidSeedUrl as e:
            logger.warning(f"[{request_id}] 无效的起始URL: {e}")
            return CrawlResult(error=str(e))

        session = CrawlSession.start(URLParser.extract_hostname(start_url), self.clock)

        try:
            async with self._transport() as (fetcher, robots_checker):
                await self._run(session, start_url, fetcher, robots_checker,
                                request_id, progress_callback)
        except RobotsDisallowed as e:
            logger.warning(f"[{request_id}] robots.txt禁止爬取: {e.url}")
            return CrawlResult(error=str(e))
        except Exception as e:
            logger.exception(f"[{request_id}] 爬取过程中发生错误: {seed_url}")
            return CrawlResult.from_session(session, str(e) or 'Unknown error occurred')

        logger.info(
            f"[{request_id}] 爬取完成: {start_url}, 页面 {session.pages_crawled}, "
            f"图片 {len(session.images)}, 耗时 {session.elapsed:.2f}秒"
        )
        return CrawlResult.from_session(session)

    @asynccontextmanager
    async def _transport(self):
        """提供页面获取器和robots检查器，必要时创建并关闭HTTP会话"""
        if self.fetcher is not None and self.robots_checker is not None:
            yield self.fetcher, self.robots_checker
            return

        async with SessionManager(self.settings) as manager:
            http = manager.get_session()
            yield (
                self.fetcher or PageFetcher(http, self.settings),
                self.robots_checker or RobotsChecker(http, self.settings),
            )

    async def _run(self, session: CrawlSession, start_url: str,
                   fetcher: PageFetcher, robots_checker: RobotsChecker,
                   request_id: str, progress_callback: Optional[ProgressCallback]):
        check = await robots_checker.check(start_url)
        if not check.allowed:
            raise RobotsDisallowed(start_url)

        seed_task = CrawlTask(start_url, 0)
        if self.workers > 1:
            await self._run_workers(session, seed_task, fetcher, robots_checker,
                                    request_id, progress_callback)
            return

        frontier = deque([seed_task])
        while frontier:
            if self.should_stop(session):
                logger.info(f"[{request_id}] 达到终止条件，停止爬取")
                break
            task = frontier.popleft()
            frontier.extend(await self._process(task, session, fetcher, robots_checker, request_id))
            await self._report_progress(session, progress_callback)

    async def _run_workers(self, session: CrawlSession, seed_task: CrawlTask,
                           fetcher: PageFetcher, robots_checker: RobotsChecker,
                           request_id: str, progress_callback: Optional[ProgressCallback]):
        """用固定数量的工作协程处理任务队列"""
        queue: asyncio.Queue = asyncio.Queue()
        errors: List[BaseException] = []
        queue.put_nowait(seed_task)

        async def crawl_worker(worker_name: str):
            while True:
                task = await queue.get()
                try:
                    if errors or self.should_stop(session):
                        continue
                    logger.debug(f"[{request_id}] {worker_name} 处理: {task.url}")
                    for next_task in await self._process(task, session, fetcher,
                                                         robots_checker, request_id):
                        queue.put_nowait(next_task)
                    await self._report_progress(session, progress_callback)
                except Exception as e:
                    errors.append(e)
                finally:
                    queue.task_done()

        workers = [
            asyncio.create_task(crawl_worker(f"crawler-{i}"))
            for i in range(self.workers)
        ]
        try:
            await queue.join()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        if errors:
            raise errors[0]

    async def _process(self, task: CrawlTask, session: CrawlSession,
                       fetcher: PageFetcher, robots_checker: RobotsChecker,
                       request_id: str) -> List[CrawlTask]:
        """
        爬取单个页面

        Args:
            task: 爬取任务
            session: 当前会话
            fetcher: 页面获取器
            robots_checker: robots.txt 检查器
            request_id: 请求标识

        Returns:
            下一层的爬取任务
        """
        if self._should_skip(task, session):
            return []

        if task.depth > 0:
            check = await robots_checker.check(task.url)
            if not check.allowed:
                logger.info(f"[{request_id}] robots.txt禁止，跳过链接: {task.url}")
                return []
            # 等待期间其他工作协程可能已经访问过
            if self._should_skip(task, session):
                return []

        # 获取之前标记，失败的URL也不会再次访问
        session.visited_urls.add(task.url)
        logger.debug(f"[{request_id}] 爬取页面 (深度 {task.depth}): {task.url}")

        result = await fetcher.fetch(task.url)
        if not result.ok:
            session.pages_failed += 1
            logger.warning(f"[{request_id}] 页面获取失败: {result.failure}")
            return []

        soup = parse_html(result.html)
        self.image_extractor.extract(soup, task.url, session, lambda: self.should_stop(session))
        session.pages_crawled += 1

        if session.images and len(session.images) % 10 == 0:
            logger.debug(f"[{request_id}] 爬取进度: {len(session.images)} 张图片")

        if task.depth >= self.settings.max_depth:
            return []

        links = self.link_extractor.extract(soup, task.url, session)
        return [CrawlTask(link, task.depth + 1) for link in links[:self.settings.max_links]]

    def _should_skip(self, task: CrawlTask, session: CrawlSession) -> bool:
        return (
            self.should_stop(session)
            or task.url in session.visited_urls
            or task.depth > self.settings.max_depth
        )

    @staticmethod
    def get_statistics(session: CrawlSession) -> Dict[str, Any]:
        """获取爬取统计信息"""
        return {
            'domain': session.domain,
            'pages_crawled': session.pages_crawled,
            'pages_failed': session.pages_failed,
            'pages_visited': len(session.visited_urls),
            'images_found': len(session.images),
            'duration': session.elapsed,
        }

    async def _report_progress(self, session: CrawlSession,
                               progress_callback: Optional[ProgressCallback]):
        if progress_callback:
            await progress_callback(self.get_statistics(session))
