"""
数据模型

图片记录、爬取会话和爬取结果
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple


@dataclass(frozen=True)
class ImageRecord:
    """发现的图片"""
    url: str
    source_url: str
    alt_text: str = ""

    def to_dict(self) -> Dict[str, str]:
        """转换为接口返回的JSON结构"""
        return {
            'url': self.url,
            'sourceUrl': self.source_url,
            'alt': self.alt_text,
        }


@dataclass
class CrawlSession:
    """
    单次爬取会话的全部可变状态

    每个请求创建一个新会话，只由遍历循环读写，结果返回后丢弃。
    """
    domain: str
    start_time: float
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    visited_urls: Set[str] = field(default_factory=set)
    found_image_urls: Set[str] = field(default_factory=set)
    images: List[ImageRecord] = field(default_factory=list)
    pages_crawled: int = 0
    pages_failed: int = 0

    @classmethod
    def start(cls, domain: str, clock: Callable[[], float] = time.monotonic) -> "CrawlSession":
        return cls(domain=domain, start_time=clock(), clock=clock)

    @property
    def elapsed(self) -> float:
        """已耗时（秒）"""
        return self.clock() - self.start_time

    def add_image(self, record: ImageRecord):
        self.found_image_urls.add(record.url)
        self.images.append(record)


@dataclass(frozen=True)
class CrawlResult:
    """爬取结果，构造后不可修改"""
    images: Tuple[ImageRecord, ...] = ()
    error: Optional[str] = None

    @classmethod
    def from_session(cls, session: CrawlSession, error: Optional[str] = None) -> "CrawlResult":
        return cls(images=tuple(session.images), error=error)

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'images': [image.to_dict() for image in self.images]}
        if self.error is not None:
            data['error'] = self.error
        return data
