#!/usr/bin/env python3
"""
基本使用示例

演示如何在代码中使用图片发现爬虫
"""

import asyncio
import sys
from dataclasses import asdict
from pathlib import Path

# 添加项目根目录到Python路径
sys.path.insert(0, str(Path(__file__).parent.parent))

from image_discovery import ImageSpider
from image_discovery.config import ConfigManager, CrawlerSettings
from image_discovery.utils.logger import LoggerManager


async def basic_crawl_example():
    """基本爬取示例"""
    print("🚀 基本爬取示例")
    print("=" * 50)

    spider = ImageSpider()

    # 定义进度回调函数
    async def progress_callback(stats):
        print(f"📊 进度更新: "
              f"页面 {stats.get('pages_crawled', 0)}, "
              f"图片 {stats.get('images_found', 0)}, "
              f"失败 {stats.get('pages_failed', 0)}")

    print("🌐 开始爬取网站...")
    result = await spider.crawl('https://httpbin.org/html', progress_callback=progress_callback)

    if result.success:
        print(f"\n✅ 爬取成功! 发现 {len(result.images)} 张图片")
        for image in result.images[:10]:
            print(f"  • {image.url}")
            print(f"    来源: {image.source_url}  alt: {image.alt_text or '-'}")
    else:
        print(f"\n❌ 爬取失败: {result.error}")
        print(f"   已收集图片: {len(result.images)}")


async def custom_settings_example():
    """自定义配置示例"""
    print("\n🚀 自定义配置示例")
    print("=" * 50)

    # 只爬起始页，最多20张图片，30秒超时
    settings = CrawlerSettings(max_images=20, max_time_seconds=30, max_depth=0)
    spider = ImageSpider(settings)

    result = await spider.crawl('example.com')
    print(f"📊 结果: {result.to_dict()}")


async def config_file_example():
    """配置文件示例"""
    print("\n🚀 配置文件示例")
    print("=" * 50)

    config_file = Path(__file__).parent.parent / 'config' / 'config.yaml'
    if config_file.exists():
        print(f"📝 使用配置文件: {config_file}")
        settings = ConfigManager(str(config_file)).get_settings()
    else:
        print("📝 使用默认配置")
        settings = ConfigManager().get_settings()

    LoggerManager(asdict(settings.logging))

    print(f"\n⚙️ 配置摘要:")
    print(f"  • 爬虫身份: {settings.crawler.user_agent}")
    print(f"  • 最大图片数: {settings.crawler.max_images}")
    print(f"  • 时间上限: {settings.crawler.max_time_seconds}秒")
    print(f"  • 最大链接数: {settings.crawler.max_links}")
    print(f"  • 工作协程数: {settings.crawler.workers}")
    print(f"  • 日志级别: {settings.logging.level}")


async def main():
    """主函数"""
    print("🎯 图片发现爬虫使用示例")
    print("=" * 60)

    await basic_crawl_example()
    await custom_settings_example()
    await config_file_example()

    print("\n🎉 所有示例运行完成!")
    print("\n💡 提示:")
    print("  • 运行 python main.py --help 查看命令行选项")
    print("  • 运行 python main.py serve 启动 Web API")


if __name__ == '__main__':
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n⚠️  示例被用户中断")
