"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import get_container
from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import admin_payments as admin_payments_routes
from api.routes import orders as orders_routes
from api.routes import payments as payments_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from infrastructure.database import create_tables, engine


configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 仅开发环境自动建表，生产环境由迁移负责
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")

    # 启动时装配服务并 boot 支付插件，配置错误尽早暴露
    container = get_container()
    logger.info("payment_plugins_booted", plugins=sorted(container.registry))

    yield

    await engine.dispose()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="支付网关编排与订单结算服务",
)

# 添加中间件（注意顺序：从下往上执行）
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(orders_routes.router, prefix=settings.API_PREFIX)
app.include_router(payments_routes.router, prefix=settings.API_PREFIX)
app.include_router(admin_payments_routes.router, prefix=settings.API_PREFIX)


@app.get("/", tags=["Root"])
async def root():
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc",
        },
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    return success_response(data={"status": "healthy"})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
