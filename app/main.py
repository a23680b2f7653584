"""
Main FastAPI application entry point.
Initializes the application with middleware, exception handlers and routes.
"""
import asyncio
import logging
from uuid import uuid4
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import settings
from core.errors import (
    AppError, app_error_handler, general_exception_handler,
    http_exception_handler, validation_exception_handler
)
from core.logging_config import configure_logging, request_id_var
from db.database import init_db, seed_db

# Configure structured JSON logging
configure_logging(service_name="vidchat-api", level=settings.log_level, enable_json=settings.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting VidChat API...")
    try:
        init_db()
        if settings.seed_categories:
            seed_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.critical(f"Database initialization failed: {e}")
        raise

    from api.websocket_manager import heartbeat_monitor, session_registry

    heartbeat_task = asyncio.create_task(heartbeat_monitor(session_registry))
    logger.info("WebSocket heartbeat monitor started")

    yield

    # Shutdown
    logger.info("Shutting down VidChat API...")

    heartbeat_task.cancel()
    try:
        await heartbeat_task
    except asyncio.CancelledError:
        logger.info("Heartbeat monitor stopped")


# Create FastAPI application
app = FastAPI(
    title="VidChat API",
    description="Accounts, videos, categories and realtime direct messages",
    version="1.0.0",
    lifespan=lifespan
)


# Request ID middleware
class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add unique request_id to each request.
    The request_id is included in logs for request tracing.
    """
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        try:
            logger.info(
                f"{request.method} {request.url.path} - "
                f"Client: {request.client.host if request.client else 'unknown'}"
            )

            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id

            logger.info(f"Response: {response.status_code}")
            return response
        finally:
            request_id_var.reset(token)


# Add middlewares
app.add_middleware(RequestIDMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Error responses are always {"error": message}
app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)


@app.get("/", tags=["Health"])
async def root():
    """
    Root endpoint with pointers to docs and probes.
    """
    return {
        "message": "VidChat API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "ready": "/ready"
    }


# Register endpoint routers
from api.endpoints import (  # noqa: E402
    users_router, categories_router, messages_router, videos_router, websocket_router
)
from api.auth import router as auth_router  # noqa: E402
from api.health import router as health_router  # noqa: E402

app.include_router(auth_router)
app.include_router(health_router)
app.include_router(users_router, prefix="/users", tags=["Users"])
app.include_router(categories_router, prefix="/categories", tags=["Categories"])
app.include_router(messages_router, prefix="/messages", tags=["Messages"])
app.include_router(videos_router, prefix="/videos", tags=["Videos"])

# WebSocket endpoint
app.include_router(websocket_router, tags=["WebSocket"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower()
    )
