"""
图片发现爬虫主程序

提供命令行接口和程序入口
"""

import asyncio
import json
import time
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import click

from image_discovery.config.manager import ConfigManager
from image_discovery.config.settings import Settings
from image_discovery.core.spider import ImageSpider
from image_discovery.exceptions import ConfigError
from image_discovery.models import CrawlResult
from image_discovery.utils.logger import LoggerManager


class CrawlerCLI:
    """爬虫命令行接口"""

    def __init__(self):
        self.settings: Optional[Settings] = None
        self.logger_manager: Optional[LoggerManager] = None
        self.spider: Optional[ImageSpider] = None

    def initialize(self, config_file: Optional[str] = None, verbose: bool = False,
                   quiet: bool = False) -> bool:
        """初始化爬虫系统"""
        try:
            self.settings = ConfigManager(config_file).get_settings()
        except ConfigError as e:
            click.echo(f"初始化失败: {e}", err=True)
            return False

        # 详细模式和静默模式调整日志级别
        if verbose:
            self.settings.logging.level = "DEBUG"
            self.settings.logging.verbose = True
        elif quiet:
            self.settings.logging.level = "ERROR"

        self.logger_manager = LoggerManager(asdict(self.settings.logging))
        self.logger = self.logger_manager.get_logger("CrawlerCLI")
        self.spider = ImageSpider(self.settings.crawler)
        return True

    async def crawl_single_website(self, url: str) -> CrawlResult:
        """爬取单个网站"""
        if not self.spider:
            raise RuntimeError("爬虫未初始化")

        request_id = f"cli-{int(time.time())}"
        last_update_time = [0.0]

        async def progress_callback(stats):
            current_time = time.time()
            # 每2秒更新一次进度，避免刷屏
            if current_time - last_update_time[0] >= 2:
                self.logger_manager.log_crawl_progress(stats)
                last_update_time[0] = current_time

        start = time.perf_counter()
        self.logger_manager.log_crawl_start(url, request_id)
        result = await self.spider.crawl(url, request_id=request_id,
                                         progress_callback=progress_callback)
        duration = time.perf_counter() - start

        if result.error:
            self.logger_manager.log_crawl_error(url, result.error, request_id)
        else:
            self.logger_manager.log_crawl_complete(url, len(result.images), duration, request_id)
        self.logger_manager.log_performance("crawl_website", duration, url=url)
        return result


# CLI命令定义
@click.group()
@click.option('--config', '-c', help='配置文件路径')
@click.option('--verbose', '-v', is_flag=True, help='详细输出模式')
@click.option('--quiet', '-q', is_flag=True, help='静默模式（最小化输出）')
@click.pass_context
def cli(ctx, config, verbose, quiet):
    """图片发现爬虫命令行工具"""
    ctx.ensure_object(dict)
    ctx.obj['config'] = config

    # init-config 不需要初始化爬虫
    if ctx.invoked_subcommand == 'init-config':
        return

    crawler_cli = CrawlerCLI()
    if not crawler_cli.initialize(config, verbose, quiet):
        ctx.exit(1)

    ctx.obj['cli'] = crawler_cli


@cli.command()
@click.argument('url')
@click.option('--workers', '-w', type=click.IntRange(1, 5), help='并发爬取链接的工作协程数')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='结果JSON输出文件')
@click.pass_context
def crawl(ctx, url, workers, output):
    """发现指定页面及其同域名链接中的图片"""
    crawler_cli = ctx.obj['cli']
    if workers:
        crawler_cli.settings.crawler.workers = workers
        crawler_cli.spider = ImageSpider(crawler_cli.settings.crawler)

    try:
        result = asyncio.run(crawler_cli.crawl_single_website(url))
    except KeyboardInterrupt:
        click.echo("\n⚠️  用户中断操作")
        ctx.exit(130)

    payload = json.dumps(result.to_dict(), ensure_ascii=False, indent=2)
    if output:
        Path(output).write_text(payload, encoding='utf-8')
        click.echo(f"📄 结果已保存: {output}")
    else:
        click.echo(payload)

    if result.error:
        click.echo(f"❌ 爬取失败: {result.error}", err=True)
        ctx.exit(1)

    click.echo(f"✅ 爬取成功: 发现 {len(result.images)} 张图片", err=True)


@cli.command()
@click.option('--host', help='监听地址')
@click.option('--port', type=int, help='监听端口')
@click.pass_context
def serve(ctx, host, port):
    """启动 Web API 服务"""
    import uvicorn

    settings = ctx.obj['cli'].settings
    uvicorn.run(
        "api:app",
        host=host or settings.api.host,
        port=port or settings.api.port,
        log_level=settings.logging.level.lower(),
    )


@cli.command('init-config')
@click.option('--output', '-o', default='config/config.yaml', help='输出配置文件路径')
@click.option('--force', is_flag=True, help='覆盖已存在的文件')
@click.pass_context
def init_config(ctx, output, force):
    """生成默认配置文件"""
    output_path = Path(output)
    if output_path.exists() and not force:
        click.echo(f"❌ 文件已存在: {output_path}（使用 --force 覆盖）")
        ctx.exit(1)

    try:
        ConfigManager(ctx.obj.get('config')).save(str(output_path))
    except (ConfigError, OSError) as e:
        click.echo(f"❌ 生成配置文件失败: {e}")
        ctx.exit(1)

    click.echo(f"✅ 配置文件已生成: {output_path}")
    click.echo("请根据需要修改配置文件中的参数")


if __name__ == '__main__':
    cli()
