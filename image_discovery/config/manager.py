"""
配置管理器

负责加载、校验和保存YAML配置文件
"""

import logging
import os
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from image_discovery.config.settings import (
    ApiSettings,
    CrawlerSettings,
    LoggingSettings,
    Settings,
)
from image_discovery.exceptions import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "IMAGE_DISCOVERY_CONFIG"
LOG_LEVEL_ENV_VAR = "LOG_LEVEL"

_SECTIONS = {
    'crawler': CrawlerSettings,
    'logging': LoggingSettings,
    'api': ApiSettings,
}

_LOG_LEVELS = {'TRACE', 'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}


class ConfigManager:
    """
    配置管理器

    功能：
    - 从YAML文件加载配置
    - 环境变量覆盖
    - 配置校验
    - 导出默认配置
    """

    def __init__(self, config_file: Optional[str] = None):
        """
        初始化配置管理器

        Args:
            config_file: 配置文件路径，为空时读取环境变量 IMAGE_DISCOVERY_CONFIG
        """
        self.config_file = config_file or os.environ.get(CONFIG_ENV_VAR)
        self.settings = self._load()

    def _load(self) -> Settings:
        raw: Dict[str, Any] = {}
        if self.config_file:
            path = Path(self.config_file)
            if not path.is_file():
                raise ConfigError(f"配置文件不存在: {path}")
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"配置文件格式错误: {path} -> {e}") from e
            if not isinstance(raw, dict):
                raise ConfigError(f"配置文件顶层必须是映射: {path}")
            logger.debug(f"已加载配置文件: {path}")

        settings = Settings()
        for section, values in raw.items():
            if section not in _SECTIONS:
                raise ConfigError(f"未知的配置段: {section}")
            if values is None:
                continue
            if not isinstance(values, dict):
                raise ConfigError(f"配置段 {section} 必须是映射")
            setattr(settings, section, self._build_section(section, values))

        env_level = os.environ.get(LOG_LEVEL_ENV_VAR)
        if env_level:
            settings.logging.level = env_level.upper()

        self._validate(settings)
        return settings

    @staticmethod
    def _build_section(section: str, values: Dict[str, Any]):
        section_cls = _SECTIONS[section]
        defaults = section_cls()
        known = {f.name: f for f in fields(section_cls)}
        kwargs = {}
        for key, value in values.items():
            if key not in known:
                raise ConfigError(f"未知的配置项: {section}.{key}")
            default = getattr(defaults, key)
            if isinstance(default, tuple):
                if not isinstance(value, (list, tuple)):
                    raise ConfigError(f"配置项 {section}.{key} 必须是列表")
                value = tuple(str(item) for item in value)
            elif isinstance(default, bool):
                if not isinstance(value, bool):
                    raise ConfigError(f"配置项 {section}.{key} 必须是布尔值")
            elif isinstance(default, (int, float)):
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ConfigError(f"配置项 {section}.{key} 必须是数字")
                value = type(default)(value)
            elif isinstance(default, str):
                value = str(value)
            kwargs[key] = value
        return section_cls(**kwargs)

    @staticmethod
    def _validate(settings: Settings):
        crawler = settings.crawler
        for name in ('max_images', 'max_links', 'max_redirects', 'workers'):
            if getattr(crawler, name) < 0:
                raise ConfigError(f"配置项 crawler.{name} 不能为负数")
        for name in ('max_time_seconds', 'page_timeout', 'robots_timeout'):
            if getattr(crawler, name) <= 0:
                raise ConfigError(f"配置项 crawler.{name} 必须大于0")
        if crawler.max_depth not in (0, 1):
            raise ConfigError("配置项 crawler.max_depth 只能是 0 或 1")
        if not crawler.user_agent:
            raise ConfigError("配置项 crawler.user_agent 不能为空")
        if settings.logging.level.upper() not in _LOG_LEVELS:
            raise ConfigError(f"无效的日志级别: {settings.logging.level}")

    def get_settings(self) -> Settings:
        """获取配置"""
        return self.settings

    def to_dict(self) -> Dict[str, Any]:
        """导出为可写入YAML的字典"""
        data = asdict(self.settings)
        for section in data.values():
            for key, value in section.items():
                if isinstance(value, tuple):
                    section[key] = list(value)
        return data

    def save(self, output: str) -> Path:
        """
        保存配置到YAML文件

        Args:
            output: 输出路径

        Returns:
            写入的文件路径
        """
        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.to_dict(), f, allow_unicode=True, sort_keys=False)
        return output_path
