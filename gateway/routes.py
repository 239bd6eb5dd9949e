import uuid
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.account_routes import router as account_router
from .api.api_key_routes import router as api_key_router
from .api.model_routes import router as model_router
from .api.proxy_routes import router as proxy_router
from .api.usage_routes import router as usage_router
from .catalog import CatalogHolder
from .errors import ProxyError
from .log_sanitizer import sanitize_headers_for_log
from .logging_config import logger
from .provider.transport import TransportRegistry
from .redis_client import close_redis_client
from .services.vault import CredentialVault
from .settings import settings


async def handle_proxy_error(request: Request, exc: ProxyError):
    """
    /v1 错误统一返回 OpenAI 风格的 {"error": {"message", "type"}}。
    """
    logger.info(
        "Proxy error %s %s -> %s %s: %s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.error_type.value,
        exc.message,
    )
    return exc.to_response()


async def handle_unexpected_error(request: Request, exc: Exception):
    """
    全局异常处理器，统一返回结构化错误响应并打印日志。
    """
    error_id = uuid.uuid4().hex
    logger.exception(
        "Unhandled error %s %s (error_id=%s)",
        request.method,
        request.url.path,
        error_id,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "message": "Internal server error",
                "type": "api_error",
            },
            "error_id": error_id,
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理：
    - startup: 创建共享的 httpx 客户端、模型目录快照、凭据保险库和各 provider 的传输层，
      并启动目录后台刷新
    - shutdown: 停止刷新任务并释放连接
    """
    client = httpx.AsyncClient(timeout=settings.upstream_timeout, trust_env=True)
    holder = CatalogHolder(settings.model_catalog_path)
    holder.refresh()
    holder.start_background_refresh(settings.model_catalog_refresh_seconds)

    app.state.http_client = client
    app.state.catalog_holder = holder
    app.state.vault = CredentialVault.from_settings(settings)
    app.state.transports = TransportRegistry.http(
        client,
        timeout=settings.upstream_timeout,
        base_url_overrides=settings.base_url_overrides(),
    )
    try:
        yield
    finally:
        await holder.stop()
        await client.aclose()
        await close_redis_client()


def create_app() -> FastAPI:
    cors_origins = (
        [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
        if settings.cors_allow_origins
        else []
    )
    docs_url = "/docs" if settings.enable_api_docs else None
    redoc_url = "/redoc" if settings.enable_api_docs else None
    openapi_url = "/openapi.json" if settings.enable_api_docs else None

    app = FastAPI(
        title="AI Account Gateway",
        version="0.1.0",
        docs_url=docs_url,
        redoc_url=redoc_url,
        openapi_url=openapi_url,
        lifespan=lifespan,
    )

    app.add_exception_handler(ProxyError, handle_proxy_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    if not settings.enable_api_docs:
        logger.info(
            "API docs routes are disabled (environment=%s); set ENABLE_API_DOCS=true to enable.",
            settings.environment,
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 控制台管理接口
    app.include_router(account_router)
    app.include_router(api_key_router)
    app.include_router(model_router)
    app.include_router(usage_router)
    # OpenAI 兼容接口；包含 /v1/{path} 兜底，必须最后挂载
    app.include_router(proxy_router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        基础请求日志中间件，记录请求和响应状态。
        会对 Authorization / x-api-key / cookie 等敏感头做脱敏处理。
        """
        client_host = request.client.host if request.client else "-"
        headers_for_log = sanitize_headers_for_log(request.headers)
        logger.info(
            "HTTP %s %s from %s, headers=%s",
            request.method,
            request.url.path,
            client_host,
            headers_for_log,
        )
        try:
            response = await call_next(request)
        except Exception as exc:  # pragma: no cover - exercised via tests
            response = await handle_unexpected_error(request, exc)
        logger.info(
            "HTTP %s %s -> %s",
            request.method,
            request.url.path,
            response.status_code,
        )
        return response

    return app


__all__ = ["create_app"]
