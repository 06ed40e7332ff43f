"""
日志系统

提供统一的日志记录和管理功能
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger


class _LoguruBridgeHandler(logging.Handler):
    """把标准库 logging 的记录转发到 loguru"""

    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # 找到真正发出日志的调用帧
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


class LoggerManager:
    """
    日志管理器

    功能：
    - 统一日志配置
    - 多种输出格式
    - 日志轮转
    - 爬取过程日志
    """

    THIRD_PARTY_LOGGERS = [
        'aiohttp',
        'asyncio',
        'chardet',
        'urllib3',
        'uvicorn',
        'uvicorn.access',
    ]

    def __init__(self, config: Dict[str, Any]):
        """
        初始化日志管理器

        Args:
            config: 日志配置（LoggingSettings 的字典形式）
        """
        self.config = config
        self.log_level = str(config.get('level', 'INFO')).upper()
        self.log_file = config.get('log_file', 'logs/crawler.log')
        self.max_file_size = config.get('max_file_size', '10 MB')
        self.backup_count = config.get('backup_count', 5)
        self.console_output = config.get('console_output', True)
        self.verbose = config.get('verbose', False)
        self.format_string = config.get('format',
            "{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}")

        self._setup_logger()

    def _setup_logger(self):
        """设置日志器"""
        # 移除默认处理器
        logger.remove()

        if self.log_file:
            # 确保日志目录存在
            log_path = Path(self.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            logger.add(
                self.log_file,
                level=self.log_level,
                format=self.format_string,
                rotation=self.max_file_size,
                retention=self.backup_count,
                compression="zip",
                encoding="utf-8",
                enqueue=True,
                backtrace=True,
                diagnose=False
            )

            # 错误日志单独一个文件
            error_log_file = str(log_path.parent / f"{log_path.stem}_error{log_path.suffix}")
            logger.add(
                error_log_file,
                level="ERROR",
                format=self.format_string,
                rotation=self.max_file_size,
                retention=self.backup_count,
                compression="zip",
                encoding="utf-8",
                enqueue=True
            )

        if self.console_output:
            console_format = (
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<level>{message}</level>"
            )

            logger.add(
                sys.stderr,
                level=self.log_level,
                format=console_format,
                colorize=True,
                backtrace=True,
                diagnose=False
            )

        self._bridge_standard_logging()
        self._configure_third_party_loggers()

        logger.debug("日志系统初始化完成")

    def _bridge_standard_logging(self):
        """让使用 logging.getLogger(__name__) 的模块也输出到 loguru"""
        root = logging.getLogger()
        root.handlers = [h for h in root.handlers if not isinstance(h, _LoguruBridgeHandler)]
        root.addHandler(_LoguruBridgeHandler())
        root.setLevel(logging.DEBUG if self.log_level in ('TRACE', 'DEBUG') else logging.INFO)

    def _configure_third_party_loggers(self):
        """配置第三方库的日志级别"""
        level = logging.INFO if self.verbose else logging.WARNING
        for logger_name in self.THIRD_PARTY_LOGGERS:
            logging.getLogger(logger_name).setLevel(level)

    def get_logger(self, name: Optional[str] = None):
        """获取日志器实例"""
        if name:
            return logger.bind(name=name)
        return logger

    def log_performance(self, operation: str, duration: float, **kwargs):
        """记录性能日志"""
        logger.bind(operation=operation, duration=duration, **kwargs).info(
            f"PERFORMANCE: {operation} took {duration:.3f}s"
        )

    def log_crawl_start(self, url: str, request_id: str = 'unknown'):
        logger.bind(request_id=request_id, action='crawl_start').info(f"Starting crawl for: {url}")

    def log_crawl_complete(self, url: str, image_count: int, duration: float,
                           request_id: str = 'unknown'):
        logger.bind(request_id=request_id, action='crawl_complete',
                    image_count=image_count, duration=duration).info(
            f"Crawl completed for {url}. Found {image_count} images in {duration:.2f}s"
        )

    def log_crawl_error(self, url: str, error: str, request_id: str = 'unknown'):
        logger.bind(request_id=request_id, action='crawl_error').error(
            f"Crawl failed for {url}: {error}"
        )

    def log_crawl_progress(self, stats: Dict[str, Any]):
        """记录爬取进度"""
        progress_msg = (
            f"PROGRESS: Pages: {stats.get('pages_crawled', 0)}, "
            f"Images: {stats.get('images_found', 0)}, "
            f"Failed: {stats.get('pages_failed', 0)}, "
            f"Elapsed: {stats.get('duration', 0):.2f}s"
        )
        logger.bind(stats=stats, timestamp=datetime.now().isoformat()).info(progress_msg)
