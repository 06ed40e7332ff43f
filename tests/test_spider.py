"""
爬虫引擎测试用例

用内存中的页面代替网络，验证遍历顺序、终止条件和错误处理；
再用本地 aiohttp 站点走一遍真实的获取和robots.txt流程
"""

from contextlib import asynccontextmanager

import pytest
from aiohttp import web
from aiohttp import test_utils

from image_discovery.config.settings import CrawlerSettings
from image_discovery.core.fetcher import FetchStatus, PageFetchResult
from image_discovery.core.spider import CrawlTask, ImageSpider
from image_discovery.exceptions import ROBOTS_DISALLOWED_MESSAGE
from image_discovery.handlers.robots import RobotsCheck, RobotsStatus
from image_discovery.models import CrawlResult, CrawlSession, ImageRecord

SEED = "https://example.com/"


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class FakeFetcher:
    """
    内存页面获取器

    pages 的值可以是HTML字符串、HTTP状态码（失败）或异常（直接抛出）
    """

    def __init__(self, pages, clock=None, seconds_per_fetch=0.0):
        self.pages = pages
        self.clock = clock
        self.seconds_per_fetch = seconds_per_fetch
        self.calls = []

    async def fetch(self, url):
        self.calls.append(url)
        if self.clock is not None:
            self.clock.now += self.seconds_per_fetch

        page = self.pages.get(url, 404)
        if isinstance(page, Exception):
            raise page
        if isinstance(page, int):
            return PageFetchResult.failed(url, FetchStatus.HTTP_ERROR, "Not Found", page)
        return PageFetchResult(url=url, status=FetchStatus.OK, html=page, final_url=url)


class FakeRobots:
    """按URL集合禁止的robots检查器"""

    def __init__(self, disallowed=()):
        self.disallowed = set(disallowed)
        self.calls = []

    async def check(self, url):
        self.calls.append(url)
        if url in self.disallowed:
            return RobotsCheck(url, RobotsStatus.DISALLOWED)
        return RobotsCheck(url, RobotsStatus.ALLOWED)


def images_html(prefix, count):
    return "".join(f'<img src="/{prefix}/{i}.jpg" alt="{prefix} {i}">' for i in range(count))


def links_html(paths):
    return "".join(f'<a href="{path}">{path}</a>' for path in paths)


def spider_session(clock):
    return CrawlSession.start("example.com", clock)


def make_spider(pages, disallowed=(), clock=None, seconds_per_fetch=0.0, **overrides):
    clock = clock or FakeClock()
    settings = CrawlerSettings(**overrides)
    fetcher = FakeFetcher(pages, clock, seconds_per_fetch)
    robots = FakeRobots(disallowed)
    spider = ImageSpider(settings, fetcher=fetcher, robots_checker=robots, clock=clock)
    return spider, fetcher, robots


class TestImageSpider:
    """爬虫引擎测试类"""

    @pytest.mark.asyncio
    async def test_seed_and_linked_pages(self):
        """测试起始页和同域名链接页的图片按顺序收集"""
        pages = {
            SEED: images_html("home", 2) + links_html(["/a", "https://other.com/x", "/b"]),
            "https://example.com/a": images_html("a", 1),
            "https://example.com/b": images_html("b", 1),
        }
        spider, fetcher, robots = make_spider(pages)

        result = await spider.crawl(SEED)

        assert result.error is None
        assert result.success
        assert [image.url for image in result.images] == [
            "https://example.com/home/0.jpg",
            "https://example.com/home/1.jpg",
            "https://example.com/a/0.jpg",
            "https://example.com/b/0.jpg",
        ]
        assert result.images[2].source_url == "https://example.com/a"
        assert fetcher.calls == [SEED, "https://example.com/a", "https://example.com/b"]
        assert robots.calls == [SEED, "https://example.com/a", "https://example.com/b"]

    @pytest.mark.asyncio
    async def test_seed_without_scheme(self):
        """测试缺少协议的起始URL补全为https"""
        spider, fetcher, _ = make_spider({SEED: images_html("home", 1)})

        result = await spider.crawl("Example.com")

        assert fetcher.calls == [SEED]
        assert result.images[0].source_url == SEED

    @pytest.mark.asyncio
    async def test_invalid_seed(self):
        """测试无效的起始URL直接返回错误"""
        spider, fetcher, robots = make_spider({})

        result = await spider.crawl("ftp://example.com/")

        assert result.images == ()
        assert result.error.startswith("Invalid URL")
        assert fetcher.calls == []
        assert robots.calls == []

    @pytest.mark.asyncio
    async def test_seed_disallowed_by_robots(self):
        """测试robots.txt禁止起始页时不获取任何页面"""
        spider, fetcher, robots = make_spider({SEED: images_html("home", 3)}, disallowed={SEED})

        result = await spider.crawl(SEED)

        assert result.to_dict() == {'images': [], 'error': ROBOTS_DISALLOWED_MESSAGE}
        assert robots.calls == [SEED]
        assert fetcher.calls == []

    @pytest.mark.asyncio
    async def test_linked_page_disallowed_is_skipped(self):
        """测试robots.txt禁止的链接只跳过该链接"""
        pages = {
            SEED: links_html(["/private", "/public"]),
            "https://example.com/private": images_html("private", 1),
            "https://example.com/public": images_html("public", 1),
        }
        spider, fetcher, _ = make_spider(pages, disallowed={"https://example.com/private"})

        result = await spider.crawl(SEED)

        assert result.error is None
        assert [image.url for image in result.images] == ["https://example.com/public/0.jpg"]
        assert "https://example.com/private" not in fetcher.calls

    @pytest.mark.asyncio
    async def test_image_cap(self):
        """测试图片数量达到上限后停止"""
        pages = {
            SEED: images_html("home", 80) + links_html(["/a"]),
            "https://example.com/a": images_html("a", 5),
        }
        spider, fetcher, _ = make_spider(pages)

        result = await spider.crawl(SEED)

        assert len(result.images) == 50
        assert result.images[-1].url == "https://example.com/home/49.jpg"
        assert fetcher.calls == [SEED]

    @pytest.mark.asyncio
    async def test_image_cap_across_pages(self):
        """测试上限在多个页面之间累计"""
        pages = {
            SEED: images_html("home", 3) + links_html(["/a", "/b"]),
            "https://example.com/a": images_html("a", 3),
            "https://example.com/b": images_html("b", 3),
        }
        spider, fetcher, _ = make_spider(pages, max_images=4)

        result = await spider.crawl(SEED)

        assert [image.url for image in result.images] == [
            "https://example.com/home/0.jpg",
            "https://example.com/home/1.jpg",
            "https://example.com/home/2.jpg",
            "https://example.com/a/0.jpg",
        ]
        assert fetcher.calls == [SEED, "https://example.com/a"]

    @pytest.mark.asyncio
    async def test_time_budget(self):
        """测试超过时间上限后停止，当前页面不再提取"""
        pages = {
            SEED: images_html("home", 2) + links_html(["/a", "/b"]),
            "https://example.com/a": images_html("a", 2),
            "https://example.com/b": images_html("b", 2),
        }
        spider, fetcher, _ = make_spider(pages, seconds_per_fetch=100.0)

        result = await spider.crawl(SEED)

        assert result.error is None
        assert fetcher.calls == [SEED, "https://example.com/a"]
        assert [image.url for image in result.images] == [
            "https://example.com/home/0.jpg",
            "https://example.com/home/1.jpg",
        ]

    @pytest.mark.asyncio
    async def test_at_most_ten_links(self):
        """测试最多跟踪10个链接"""
        paths = [f"/page{i}" for i in range(15)]
        pages = {SEED: links_html(paths)}
        pages.update({f"https://example.com{path}": images_html(path.strip('/'), 1) for path in paths})
        spider, fetcher, _ = make_spider(pages)

        result = await spider.crawl(SEED)

        assert fetcher.calls == [SEED] + [f"https://example.com/page{i}" for i in range(10)]
        assert len(result.images) == 10

    @pytest.mark.asyncio
    async def test_depth_one_links_not_followed(self):
        """测试深度1的页面不再跟踪链接"""
        pages = {
            SEED: links_html(["/a"]),
            "https://example.com/a": links_html(["/deep"]) + images_html("a", 1),
            "https://example.com/deep": images_html("deep", 1),
        }
        spider, fetcher, _ = make_spider(pages)

        result = await spider.crawl(SEED)

        assert fetcher.calls == [SEED, "https://example.com/a"]
        assert [image.url for image in result.images] == ["https://example.com/a/0.jpg"]

    @pytest.mark.asyncio
    async def test_max_depth_zero(self):
        """测试只爬起始页"""
        pages = {
            SEED: images_html("home", 1) + links_html(["/a"]),
            "https://example.com/a": images_html("a", 1),
        }
        spider, fetcher, _ = make_spider(pages, max_depth=0)

        await spider.crawl(SEED)

        assert fetcher.calls == [SEED]

    @pytest.mark.asyncio
    async def test_each_page_visited_once(self):
        """测试互相链接和重复链接的页面只访问一次"""
        pages = {
            SEED: links_html(["/", "/a", "/a#top", "/a"]) + images_html("home", 1),
            "https://example.com/a": links_html(["/"]) + images_html("home", 1),
        }
        spider, fetcher, _ = make_spider(pages)

        result = await spider.crawl(SEED)

        assert fetcher.calls == [SEED, "https://example.com/a"]
        # 两个页面引用同一张图片，只记录第一次
        assert len(result.images) == 1
        assert result.images[0].source_url == SEED

    @pytest.mark.asyncio
    async def test_fetch_failure_is_absorbed(self):
        """测试单个页面获取失败不影响其他页面"""
        pages = {
            SEED: links_html(["/broken", "/ok"]),
            "https://example.com/broken": 500,
            "https://example.com/ok": images_html("ok", 1),
        }
        spider, fetcher, _ = make_spider(pages)

        result = await spider.crawl(SEED)

        assert result.error is None
        assert [image.url for image in result.images] == ["https://example.com/ok/0.jpg"]
        assert fetcher.calls == [SEED, "https://example.com/broken", "https://example.com/ok"]

    @pytest.mark.asyncio
    async def test_seed_fetch_failure(self):
        """测试起始页获取失败返回空结果且没有错误"""
        spider, fetcher, _ = make_spider({SEED: 503})

        result = await spider.crawl(SEED)

        assert result.to_dict() == {'images': []}
        assert fetcher.calls == [SEED]

    @pytest.mark.asyncio
    async def test_unexpected_error_keeps_collected_images(self):
        """测试意外异常时返回已收集的图片和错误信息"""
        pages = {
            SEED: images_html("home", 2) + links_html(["/boom", "/after"]),
            "https://example.com/boom": RuntimeError("connection pool exploded"),
            "https://example.com/after": images_html("after", 1),
        }
        spider, fetcher, _ = make_spider(pages)

        result = await spider.crawl(SEED)

        assert result.error == "connection pool exploded"
        assert len(result.images) == 2
        assert "https://example.com/after" not in fetcher.calls

    @pytest.mark.asyncio
    async def test_unexpected_error_without_message(self):
        """测试没有消息的异常使用默认错误信息"""
        spider, _, _ = make_spider({SEED: RuntimeError()})

        result = await spider.crawl(SEED)

        assert result.error == "Unknown error occurred"

    @pytest.mark.asyncio
    async def test_deterministic(self):
        """测试相同站点多次爬取结果一致"""
        pages = {
            SEED: images_html("home", 3) + links_html([f"/p{i}" for i in range(5)]),
        }
        pages.update({f"https://example.com/p{i}": images_html(f"p{i}", 2) for i in range(5)})

        first, _, _ = make_spider(pages)
        second, _, _ = make_spider(pages)

        assert (await first.crawl(SEED)).to_dict() == (await second.crawl(SEED)).to_dict()

    @pytest.mark.asyncio
    async def test_sessions_are_independent(self):
        """测试同一实例多次爬取互不影响"""
        spider, fetcher, _ = make_spider({SEED: images_html("home", 2)})

        first = await spider.crawl(SEED)
        second = await spider.crawl(SEED)

        assert len(first.images) == 2
        assert len(second.images) == 2
        assert fetcher.calls == [SEED, SEED]

    @pytest.mark.asyncio
    async def test_progress_callback(self):
        """测试每处理一个页面调用一次进度回调"""
        pages = {
            SEED: images_html("home", 1) + links_html(["/a"]),
            "https://example.com/a": images_html("a", 1),
        }
        spider, _, _ = make_spider(pages)
        reports = []

        async def on_progress(stats):
            reports.append(stats)

        await spider.crawl(SEED, progress_callback=on_progress)

        assert [r['pages_crawled'] for r in reports] == [1, 2]
        assert reports[-1]['images_found'] == 2
        assert reports[-1]['domain'] == "example.com"

    @pytest.mark.asyncio
    async def test_worker_pool(self):
        """测试多个工作协程的结果与顺序爬取包含相同的图片"""
        pages = {
            SEED: images_html("home", 2) + links_html([f"/p{i}" for i in range(6)] + ["/p1"]),
        }
        pages.update({f"https://example.com/p{i}": images_html(f"p{i}", 2) for i in range(6)})

        sequential, _, _ = make_spider(pages)
        pooled, fetcher, _ = make_spider(pages, workers=3)

        expected = await sequential.crawl(SEED)
        result = await pooled.crawl(SEED)

        assert result.error is None
        assert {image.url for image in result.images} == {image.url for image in expected.images}
        assert sorted(fetcher.calls) == sorted(set(fetcher.calls))
        assert len(fetcher.calls) == 7

    @pytest.mark.asyncio
    async def test_worker_pool_error(self):
        """测试工作协程中的异常作为爬取错误返回"""
        pages = {
            SEED: images_html("home", 1) + links_html(["/boom"]),
            "https://example.com/boom": RuntimeError("worker failed"),
        }
        spider, _, _ = make_spider(pages, workers=2)

        result = await spider.crawl(SEED)

        assert result.error == "worker failed"
        assert len(result.images) == 1

    def test_workers_clamped(self):
        """测试工作协程数量限制在1到5之间"""
        assert ImageSpider(CrawlerSettings(workers=0)).workers == 1
        assert ImageSpider(CrawlerSettings(workers=20)).workers == 5

    def test_should_stop(self):
        """测试终止条件"""
        clock = FakeClock()
        spider, _, _ = make_spider({}, clock=clock, max_images=1, max_time_seconds=10)
        session = spider_session(clock)

        assert spider.should_stop(session) is False
        clock.now += 10
        assert spider.should_stop(session) is True

        session = spider_session(clock)
        session.found_image_urls.add("https://example.com/x.jpg")
        assert spider.should_stop(session) is True

    def test_crawl_task_defaults(self):
        assert CrawlTask(SEED).depth == 0


class TestCrawlResult:
    """爬取结果测试类"""

    def test_from_session_snapshot(self):
        """测试结果是会话图片的快照，之后的修改不影响结果"""
        session = spider_session(FakeClock())
        session.add_image(ImageRecord("https://example.com/a.jpg", SEED, "A"))

        result = CrawlResult.from_session(session, "stopped")
        session.add_image(ImageRecord("https://example.com/b.jpg", SEED, ""))

        assert isinstance(result.images, tuple)
        assert [image.url for image in result.images] == ["https://example.com/a.jpg"]
        assert result.error == "stopped"
        assert CrawlResult.from_session(session).success


@asynccontextmanager
async def local_site(robots_txt, pages):
    """
    启动本地测试站点

    Args:
        robots_txt: robots.txt内容
        pages: 路径 -> aiohttp 处理函数

    Yields:
        (server, hits)，hits 按顺序记录收到的请求路径
    """
    hits = []

    @web.middleware
    async def record(request, handler):
        hits.append(request.path)
        return await handler(request)

    async def robots(request):
        return web.Response(text=robots_txt, content_type='text/plain')

    app = web.Application(middlewares=[record])
    app.router.add_get('/robots.txt', robots)
    for path, handler in pages.items():
        app.router.add_get(path, handler)

    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        yield server, hits
    finally:
        await server.close()


def page(html):
    async def handler(request):
        return web.Response(text=f"<html><body>{html}</body></html>", content_type='text/html')
    return handler


def redirect_to(location):
    async def handler(request):
        raise web.HTTPFound(location)
    return handler


class TestImageSpiderOverHttp:
    """使用真实HTTP传输的爬虫测试类"""

    @pytest.mark.asyncio
    async def test_crawl_local_site(self):
        """测试robots.txt规则、重定向和图片来源在真实请求中生效"""
        pages = {
            '/': page('<img src="/img/home.jpg" alt="home">' + links_html(["/a", "/private", "/old"])),
            '/a': page('<img src="/img/a.jpg" alt="a">'),
            '/private': page('<img src="/img/private.jpg">'),
            '/old': redirect_to('/new'),
            '/new': page('<img src="/img/new.jpg" alt="new">'),
        }
        async with local_site("User-agent: *\nDisallow: /private\n", pages) as (server, hits):
            seed = str(server.make_url('/'))
            result = await ImageSpider(CrawlerSettings()).crawl(seed)

        assert result.error is None
        assert [image.url for image in result.images] == [
            seed + "img/home.jpg",
            seed + "img/a.jpg",
            seed + "img/new.jpg",
        ]
        # 重定向后的页面仍按请求的地址记录来源
        assert result.images[2].source_url == seed + "old"
        assert hits == [
            '/robots.txt', '/',
            '/robots.txt', '/a',
            '/robots.txt',
            '/robots.txt', '/old', '/new',
        ]

    @pytest.mark.asyncio
    async def test_local_site_disallows_everything(self):
        """测试robots.txt禁止全部时只请求robots.txt"""
        pages = {'/': page('<img src="/img/home.jpg">')}
        async with local_site("User-agent: *\nDisallow: /\n", pages) as (server, hits):
            result = await ImageSpider(CrawlerSettings()).crawl(str(server.make_url('/')))

        assert result.to_dict() == {'images': [], 'error': ROBOTS_DISALLOWED_MESSAGE}
        assert hits == ['/robots.txt']

    @pytest.mark.asyncio
    async def test_local_site_allow_overrides_disallow(self):
        """测试更具体的Allow规则放行页面"""
        pages = {
            '/gallery': page('<img src="/img/g.jpg">' + links_html(["/gallery/cats", "/about"])),
            '/gallery/cats': page('<img src="/img/cat.jpg">'),
            '/about': page('<img src="/img/about.jpg">'),
        }
        robots_txt = "User-agent: *\nDisallow: /\nAllow: /gallery\n"
        async with local_site(robots_txt, pages) as (server, hits):
            seed = str(server.make_url('/gallery'))
            result = await ImageSpider(CrawlerSettings()).crawl(seed)

        assert result.error is None
        assert [image.url.rsplit('/', 1)[-1] for image in result.images] == ["g.jpg", "cat.jpg"]
        assert '/about' not in hits
