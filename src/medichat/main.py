# src/medichat/main.py
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator
import uvicorn as uv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware
from medichat.core.config import settings
from medichat.db.database import check_db_connection, create_tables, disconnect_db
from medichat.routes import (
    access_router,
    chat_router,
    dashboards_router,
    documents_router,
    invites_router,
    memories_router,
    patients_router,
    suggestions_router,
)
from medichat.utils.exception_handler import setup_exception_handlers
from medichat.utils.logger import setup_logger
from medichat.utils.rate_limiter import limiter

# Quiet noisy third-party loggers
for log in ["watchfiles", "uvicorn.access", "httpx", "openai"]:
    logging.getLogger(log).setLevel(logging.WARNING)

logger = setup_logger("SERVER")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("Starting MediChat API...")
    try:
        if settings.AUTO_CREATE_TABLES:
            await create_tables()

        if await check_db_connection():
            logger.info("Database connection verified")
        else:
            logger.warning("Database not reachable at startup")

        logger.info("Application startup complete")
        yield
    finally:
        logger.info("Closing database connection")
        await disconnect_db()
        logger.info("Shutting down application...")


app = FastAPI(
    title="MediChat API",
    description="Patient/physician health-records assistant with human-confirmed AI writes",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
)

# Rate limiting configuration
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

# Exception handling
setup_exception_handlers(app)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router, prefix=settings.API_PREFIX)
app.include_router(dashboards_router, prefix=settings.API_PREFIX)
app.include_router(documents_router, prefix=settings.API_PREFIX)
app.include_router(invites_router, prefix=settings.API_PREFIX)
app.include_router(access_router, prefix=settings.API_PREFIX)
app.include_router(memories_router, prefix=settings.API_PREFIX)
app.include_router(suggestions_router, prefix=settings.API_PREFIX)
app.include_router(patients_router, prefix=settings.API_PREFIX)


@app.get("/")
async def root():
    return {"message": "MediChat API", "status": "healthy", "version": app.version}


@app.get(f"{settings.API_PREFIX}/health")
async def health_check():
    """Liveness plus database reachability"""
    db_healthy = await check_db_connection()
    return {
        "status": "healthy" if db_healthy else "degraded",
        "database": "connected" if db_healthy else "disconnected",
        "environment": settings.ENVIRONMENT,
    }


if __name__ == "__main__":
    uv.run(
        "medichat.main:app",
        host=settings.UVICORN_HOST,
        port=settings.UVICORN_PORT,
        reload=settings.RELOAD,
        workers=1 if settings.RELOAD else settings.WORKERS_COUNT,
        log_level="info",
        access_log=True,
        timeout_graceful_shutdown=10,
    )
