"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import cart_cleanup as cart_cleanup_routes
from api.routes import carts as carts_routes
from api.routes import refunds as refunds_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from infrastructure.database import AsyncSessionLocal, create_tables, engine
from infrastructure.external.cache import create_redis_client
from infrastructure.external.payments import get_refund_processor
from infrastructure.locks import InProcessOrderLocks, RedisOrderLocks
from infrastructure.security.jwt_session import JwtSessionResolver
from infrastructure.unit_of_work import sqlalchemy_uow_factory


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理：在此装配所有外部协作对象"""
    # 启动时创建数据库表（仅开发环境）。生产应使用 Alembic 迁移
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    else:
        logger.info(
            "database_migrations_required",
            message="No auto-create in production, use Alembic migrations (alembic upgrade head)",
        )

    app.state.uow_factory = sqlalchemy_uow_factory(AsyncSessionLocal)
    app.state.session_resolver = JwtSessionResolver()

    redis = None
    if settings.redis.url:
        try:
            redis = await create_redis_client()
            logger.info("redis_initialized")
        except Exception as exc:
            logger.error("redis_init_failed", error=str(exc))
    app.state.redis = redis

    if redis is not None:
        app.state.order_locks = RedisOrderLocks(
            redis,
            timeout=settings.refunds.lock_timeout_seconds,
            blocking_timeout=settings.refunds.lock_blocking_timeout_seconds,
        )
        logger.info("order_locks_selected", provider="redis")
    else:
        app.state.order_locks = InProcessOrderLocks(
            blocking_timeout=settings.refunds.lock_blocking_timeout_seconds
        )
        logger.info("order_locks_selected", provider="inprocess")

    try:
        app.state.refund_processor = get_refund_processor()
        logger.info("refund_processor_initialized", provider=app.state.refund_processor.provider)
    except (RuntimeError, ValueError) as exc:
        app.state.refund_processor = None
        logger.warning("refund_processor_unavailable", error=str(exc))

    yield

    # 关闭时的清理工作
    if redis is not None:
        await redis.close()
        logger.info("redis_shutdown")
    await engine.dispose()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="多租户商城：购物车身份归并与订单部分退款账本",
)

# 添加中间件（后添加的在外层，先执行）
# 1. 日志中间件（依赖 request_id 上下文）
app.add_middleware(LoggingMiddleware)

# 2. Request ID中间件（在日志中间件外层，先绑定 request_id）
app.add_middleware(RequestIDMiddleware)

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
app.include_router(refunds_routes.router, prefix="/api/v1")
app.include_router(carts_routes.router, prefix="/api/v1")
app.include_router(cart_cleanup_routes.router, prefix="/api/v1")


# 根路径
@app.get("/", tags=["Root"])
async def root():
    """API根路径"""
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc",
        },
        message="Welcome",
    )


# 健康检查
@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    data = {"status": "healthy"}
    redis = getattr(app.state, "redis", None)
    if redis is not None:
        data["redis"] = "up" if await redis.health_check() else "down"
    return success_response(data=data, message="OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
