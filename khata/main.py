from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi.errors import RateLimitExceeded
import sys
import os

from khata.core.config import settings
from khata.api.limiter import limiter
from khata.api.routes import api_router
from khata.services.extraction import extraction_service
from khata.utils import messages
from khata.utils.exceptions import (
    KhataError,
    InputRejectedError,
    FileTooLargeError,
    InvalidFileTypeError,
    FileProcessingError,
    LLMConnectionError,
    LLMExtractionError,
    ResponseRecoveryError,
    RateLimitError,
    InvalidTransitionError,
    RowNotFoundError,
    SessionNotFoundError,
    StudentCreationError,
)

# logging
logger.remove()
logger.add(
    sys.stdout,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level=settings.log_level
)

# creating logs directory
os.makedirs(os.path.dirname(settings.log_file) or ".", exist_ok=True)
logger.add(
    settings.log_file,
    rotation="10 MB",
    retention="7 days",
    level=settings.log_level
)

# first match wins, so subclasses come before their parents
ERROR_STATUS = (
    (InputRejectedError, status.HTTP_400_BAD_REQUEST),
    (InvalidFileTypeError, status.HTTP_400_BAD_REQUEST),
    (FileProcessingError, status.HTTP_400_BAD_REQUEST),
    (FileTooLargeError, status.HTTP_413_REQUEST_ENTITY_TOO_LARGE),
    (SessionNotFoundError, status.HTTP_404_NOT_FOUND),
    (RowNotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (StudentCreationError, status.HTTP_409_CONFLICT),
    (LLMConnectionError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (LLMExtractionError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ResponseRecoveryError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (RateLimitError, status.HTTP_429_TOO_MANY_REQUESTS),
)


def status_for(exc: KhataError) -> int:
    for error_class, code in ERROR_STATUS:
        if isinstance(exc, error_class):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


#  safe initialize and shut down
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    if not settings.validate_llm_config():
        logger.warning(f"No API key configured for provider '{settings.default_llm_provider}'")

    try:
        await extraction_service.initialize()
        logger.info("Extraction service initialized successfully")
    except Exception as e:
        logger.warning(f"Extraction service initialization deferred: {e}")

    yield

    # Shutdown
    logger.info("Shutting down application")


app = FastAPI(
    title=settings.app_name,
    description="""
## Khata marks extraction

Photograph a handwritten marks register, review the extracted rows
against the class roster, and save them.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)

app.state.limiter = limiter

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # restrict to the portal domain in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    error = RateLimitError(messages.RATE_LIMIT)
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "success": False,
            "error": error.message,
            "error_code": error.error_code,
            "details": {"limit": str(exc.detail)}
        }
    )


# global exception hndlr
@app.exception_handler(KhataError)
async def khata_error_handler(request: Request, exc: KhataError):
    details = dict(exc.details)
    # raw model replies stay in the logs unless debugging
    if not settings.debug:
        details.pop("raw_responses", None)

    return JSONResponse(
        status_code=status_for(exc),
        content={
            "success": False,
            "error": exc.message,
            "error_code": exc.error_code,
            "details": details
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "An unexpected error occurred",
            "error_code": "INTERNAL_ERROR",
            "details": {"message": str(exc)} if settings.debug else {}
        }
    )


# api routes
app.include_router(api_router, prefix="/api")


@app.get("/", tags=["root"])
async def root():
    """Root endpoint - API information"""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Handwritten khata mark extraction and roster reconciliation",
        "docs": "/docs",
        "health": "/api/v1/health",
        "extract": "/api/v1/khata/extract",
        "sessions": "/api/v1/sessions"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "khata.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
