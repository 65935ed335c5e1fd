# backend/graphscan/main.py
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import time
import uuid

from graphscan.core.config import settings
from graphscan.core.exceptions import IngestionError
from graphscan.core.logging import logger
from graphscan.db.database import init_db, close_db
from graphscan.api.v1.router import api_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting GraphScan API")
    await init_db()

    yield

    # Shutdown
    logger.info("Shutting down GraphScan API")
    await close_db()


app = FastAPI(
    title="GraphScan API",
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=("/api/docs" if settings.ENVIRONMENT == "development" else None),
    redoc_url=("/api/redoc" if settings.ENVIRONMENT == "development" else None),
    lifespan=lifespan
)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time

    response.headers["X-Process-Time"] = str(process_time)
    response.headers["X-Request-ID"] = request_id
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code}",
        extra={"request_id": request_id},
    )
    return response


# Include routers
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
    }


@app.exception_handler(IngestionError)
async def ingestion_exception_handler(request: Request, exc: IngestionError):
    """Render typed ingestion errors as {errorCode, message}"""
    if exc.status_code >= 500:
        logger.error(f"Ingestion request failed [{exc.code}]: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"errorCode": exc.code, "message": exc.message},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.exception("Unhandled exception while handling request", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={
            "errorCode": "INGESTION_REQUEST_FAILED",
            "message": "Scanner snapshot ingestion request failed.",
        },
    )
