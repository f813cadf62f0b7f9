import logging
import uuid

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from checkpoints import router as checkpoints_router
from config import CORS_ALLOWED_ORIGINS, LOG_LEVEL, PORT
from db import db_manager, init_database
from fares import router as fares_router
from rides import router as rides_router

# Basic logging configuration
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI App
app = FastAPI(title="EcoRide Trip Engine")

# CORS Middleware Configuration
if CORS_ALLOWED_ORIGINS:
    origins = CORS_ALLOWED_ORIGINS
    logger.info("CORS configured with specific origins: %s", origins)
else:
    # Development fallback for the dashboard dev server
    origins = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]
    logger.warning(
        "CORS_ALLOWED_ORIGINS not set. Using development defaults: %s",
        origins,
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

# Include all the modular routers
app.include_router(checkpoints_router)
app.include_router(fares_router)
app.include_router(rides_router)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": "ecoride-trip-engine"}


# --- Application Lifecycle Events ---


@app.on_event("startup")
async def startup_event():
    """Initialize Beanie and the database indexes on application startup."""
    try:
        await init_database()
        logger.info("Database initialized successfully (models, indexes).")
        logger.info("Application startup completed successfully.")
    except Exception as e:
        logger.critical(
            "CRITICAL: Failed to initialize application during startup: %s",
            str(e),
            exc_info=True,
        )
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Clean up resources when shutting down."""
    await db_manager.cleanup_connections()
    logger.info("Application shutdown completed successfully")


# --- Global Exception Handlers ---


def _error_message(exc: Exception) -> str:
    detail = getattr(exc, "detail", None)
    return detail if isinstance(detail, str) else str(exc)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """Return API errors with the ``message`` field the dashboard reads."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "message": _error_message(exc)},
        headers=exc.headers,
    )


@app.exception_handler(404)
async def not_found_handler(request: Request, exc: HTTPException):
    """Handle 404 Not Found errors."""
    logger.info("404 Not Found: %s. Detail: %s", request.url, exc.detail)
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={
            "error": "Not found",
            "detail": exc.detail,
            "message": _error_message(exc),
        },
    )


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc: Exception):
    """Handle 500 Internal Server Error errors."""
    error_id = str(uuid.uuid4())
    logger.error(
        "Internal Server Error (ID: %s): Request %s %s failed. Exception: %s",
        error_id,
        request.method,
        request.url,
        str(exc),
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "error_id": error_id,
            "detail": _error_message(exc),
            "message": _error_message(exc),
        },
    )


# --- Main Execution Block ---
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=PORT,
        log_level=LOG_LEVEL.lower(),
    )
