import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from image_discovery.config.manager import ConfigManager
from image_discovery.core.spider import ImageSpider
from image_discovery.utils.logger import LoggerManager

# --------------------------------------------------------------------------
# 配置和全局对象
# --------------------------------------------------------------------------

settings = ConfigManager().get_settings()

# 引擎不保存会话状态，所有请求共用一个实例
image_spider = ImageSpider(settings.crawler)

START_TIME = time.time()


@asynccontextmanager
async def lifespan(app: FastAPI):
    LoggerManager(asdict(settings.logging))
    logger.info("图片发现服务启动")
    yield
    logger.info("图片发现服务停止")


app = FastAPI(
    title="图片发现 API",
    description="从网页及其同域名链接中发现图片。",
    version="1.0.0",
    lifespan=lifespan,
)

# --------------------------------------------------------------------------
# Pydantic 模型
# --------------------------------------------------------------------------

class CrawlRequest(BaseModel):
    """爬取请求的数据模型"""
    url: Optional[str] = None

# --------------------------------------------------------------------------
# 中间件
# --------------------------------------------------------------------------

@app.middleware("http")
async def request_context(request: Request, call_next):
    """为每个请求分配 request_id 并记录耗时"""
    request_id = uuid.uuid4().hex[:9]
    request.state.request_id = request_id
    start = time.perf_counter()
    with logger.contextualize(request_id=request_id):
        logger.debug(f"{request.method} {request.url.path}")
        response = await call_next(request)
        duration = (time.perf_counter() - start) * 1000
        logger.info(f"API {request.url.path} completed in {duration:.0f}ms ({response.status_code})")
    response.headers["X-Request-ID"] = request_id
    return response

# --------------------------------------------------------------------------
# API 路由
# --------------------------------------------------------------------------

@app.post("/api/crawl")
async def crawl_images(request: Request, body: Optional[CrawlRequest] = None):
    """
    爬取指定页面及其同域名链接中的图片
    """
    request_id = getattr(request.state, "request_id", "unknown")

    if body is None or not body.url or not body.url.strip():
        logger.warning(f"[{request_id}] 爬取请求缺少URL")
        return JSONResponse(status_code=400, content={"error": "URL is required"})

    logger.info(f"[{request_id}] Starting crawl for: {body.url}")
    result = await image_spider.crawl(body.url, request_id=request_id)

    logger.info(
        f"[{request_id}] Crawl completed. Found {len(result.images)} images"
        + (f" (error: {result.error})" if result.error else "")
    )
    return result.to_dict()


@app.get("/health")
async def health():
    """
    健康检查
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.time() - START_TIME, 3),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api.host, port=settings.api.port)
