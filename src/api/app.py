# src/api/app.py
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import uvicorn

from src.api.dependencies import set_engine
from src.api.routes import router

logger = logging.getLogger(__name__)

# 全局引擎实例
engine = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    global engine

    logger.info("Starting Campaign Dashboard API")

    try:
        from config.settings import get_settings
        settings = get_settings()

        from src.engine.core import CampaignDashboardEngine
        engine = CampaignDashboardEngine(settings=settings)
        set_engine(engine)
        logger.info("Engine initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize engine: {e}")
        engine = None

    yield

    logger.info("Shutting down Campaign Dashboard API")
    if engine:
        await engine.close()
    set_engine(None)


app = FastAPI(
    title="Campaign Dashboard API",
    description="活动客户看板API",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api/v1")


# 全局异常处理
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "message": str(exc)}
    )


@app.get("/")
async def root():
    """根路径"""
    return {
        "name": "Campaign Dashboard API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health")
async def health_check():
    """健康检查端点"""
    health_status = {
        "status": "healthy",
        "version": "1.0.0",
        "engine_status": "running" if engine else "not initialized"
    }

    if engine is None:
        health_status["status"] = "degraded"
        health_status["message"] = "Engine not initialized"

    return health_status


if __name__ == "__main__":
    import os

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    port = int(os.getenv("API_PORT", 8000))

    uvicorn.run(
        "src.api.app:app",
        host="0.0.0.0",
        port=port,
        reload=True,
        log_level="info"
    )
