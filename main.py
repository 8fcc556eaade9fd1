"""
FastAPI应用主入口
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from redis.exceptions import RedisError

from api.routes import webhooks as webhook_routes
from api.routes import entries as entry_routes
from api.routes import auth as auth_routes
from api.routes import admin as admin_routes
from api.routes import ws as ws_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from domain.webhook import EmailAllowList
from infrastructure.database import create_tables
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from infrastructure.external.cache import (
    init_redis_client,
    shutdown_redis_client,
)
from infrastructure.adapters.jwt_identity import JWTIdentityVerifier
from application.services.realtime_service import RealtimeService
from application.services.sync_service import WebhookSyncService
from application.services.webhook_store_service import WebhookStoreService
from infrastructure.realtime.active_registry import ActiveConnectionRegistry
from infrastructure.realtime.connection_manager import ConnectionManager
from infrastructure.realtime.brokers import (
    InMemoryRealtimeBroker,
    RedisRealtimeBroker,
)


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


async def _select_broker():
    """REALTIME_BROKER: auto -> redis(if url) else inmemory"""
    provider = (settings.REALTIME_BROKER or "auto").lower()
    if provider in {"redis", "auto"} and settings.redis.url:
        try:
            client = await init_redis_client()
        except (RedisError, OSError) as exc:
            if provider == "redis":
                raise
            logger.error("redis_init_failed", error=str(exc), fallback="inmemory")
        else:
            logger.info("realtime_broker_selected", provider="redis")
            return RedisRealtimeBroker(client)
    elif provider == "redis":
        logger.warning("realtime_broker_redis_missing_url", message="REDIS__URL not set, falling back to in-memory broker")
    logger.info("realtime_broker_selected", provider="inmemory")
    return InMemoryRealtimeBroker()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时创建数据库表（仅开发环境）。生产应使用 Alembic 迁移
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    else:
        logger.info(
            "database_migrations_required",
            message="No auto-create in production, use Alembic migrations (alembic upgrade head)"
        )

    # 存储/同步/实时服务装配
    store = WebhookStoreService(SQLAlchemyUnitOfWork)
    registry = ActiveConnectionRegistry()
    sync = WebhookSyncService(store=store, registry=registry)
    broker = await _select_broker()
    conn_mgr = ConnectionManager()
    realtime = RealtimeService(
        broker=broker,
        connections=conn_mgr,
        registry=registry,
        sync=sync,
        store=store,
    )
    await broker.subscribe(realtime.on_broker_event)

    app.state.store_service = store
    app.state.sync_service = sync
    app.state.realtime_broker = broker
    app.state.realtime_service = realtime
    app.state.identity_verifier = JWTIdentityVerifier.from_settings(settings)
    app.state.allow_list = EmailAllowList(
        domains=settings.auth.allowed_domains,
        emails=settings.auth.allowed_emails,
    )
    logger.info(
        "realtime_initialized",
        broker=type(broker).__name__,
        auth_mode="jwks" if settings.auth.jwks_url else "shared_secret",
        allow_list_open=app.state.allow_list.is_open,
    )

    yield

    # 关闭时的清理工作
    await broker.aclose()
    if settings.redis.url:
        await shutdown_redis_client()
        logger.info("redis_client_shutdown", message="Redis client shutdown")
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Webhook 捕获与实时回放服务",
)

# 添加中间件（注意顺序：从下往上执行）
# 1. Request ID中间件（最先执行，为后续中间件提供request_id）
app.add_middleware(RequestIDMiddleware)

# 2. 日志中间件（依赖request_id）
app.add_middleware(LoggingMiddleware)

# 3. CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册全局异常处理器
register_exception_handlers(app)


# 注册路由
# 公开的 webhook 接收端点不限制 HTTP 方法，直接注册 Starlette Route
app.router.routes.extend(webhook_routes.capture_routes("/api/v1"))
app.include_router(entry_routes.router, prefix="/api/v1")
app.include_router(auth_routes.router, prefix="/api/v1")
app.include_router(admin_routes.router, prefix="/api/v1")
app.include_router(ws_routes.router, prefix="/api/v1")


# 根路径
@app.get("/", tags=["Root"])
async def root():
    """API根路径"""
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "webhook_url": "/api/v1/webhook",
        },
        message="Welcome",
    )


# 健康检查
@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    return success_response(data={"status": "healthy"}, message="OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
