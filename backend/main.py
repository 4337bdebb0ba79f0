"""
LeaseWise - Lease Clause Intelligence API
=========================================
Main FastAPI application entry point.

This application provides:
- Property and lease registration
- Lease clause segmentation, classification and indexing
- Clause-level Q&A for one lease or a whole portfolio
- Generic document upload and document Q&A

Author: LeaseWise Team
Version: 1.0.0
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import clauses_router, documents_router, portfolio_router
from api.dependencies import get_engine
from core.config import get_settings
from core.database import init_database
from core.pdf_text import TextExtractionError
from core.repository import (
    DocumentNotFoundError,
    LeaseNotFoundError,
    NotFoundError,
    PropertyNotFoundError,
)
from core.retrieval import AnswerGenerationError
from schemas import HealthCheckResponse

VERSION = "1.0.0"

# === Configuration ===
settings = get_settings()


# === Logging Setup ===
def setup_logging():
    """Configure structured logging."""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )


setup_logging()
logger = structlog.get_logger(__name__)


# === Lifespan Management ===
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan management.

    Startup:
    - Validate configuration
    - Create database tables
    - Create upload directory

    Shutdown:
    - Dispose of the database engine
    """
    logger.info("Starting LeaseWise API", version=VERSION)

    try:
        settings.validate_llm_config()
        logger.info("Configuration validated successfully")
    except ValueError as e:
        logger.error("Configuration error", error=str(e))

    engine = get_engine()
    await init_database(engine)
    logger.info("Database ready", url=engine.url.render_as_string(hide_password=True))

    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Upload directory ready", path=str(settings.upload_dir))

    yield

    logger.info("Shutting down LeaseWise API")
    await engine.dispose()


# === Application Setup ===
app = FastAPI(
    title="LeaseWise API",
    description="""
    ## Lease Clause Intelligence

    LeaseWise indexes commercial leases clause by clause and answers
    questions about them:

    - **Segments** lease text into clause-sized chunks along its headings
    - **Classifies** each clause by topic and responsible party
    - **Embeds** clauses for exact cosine-similarity search
    - **Answers** questions for one lease or across the portfolio, with citations

    ### API Flow

    1. `POST /properties` and `POST /leases` - Register the portfolio
    2. `POST /leases/{lease_id}/clauses/index` - Index lease text (or `/index-pdf`)
    3. `POST /qa/clauses` - Ask who is responsible for what
    """,
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)


# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:3001",
        "*",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# === Exception Handlers ===
def error_response(status_code: int, error: str, message: str, details: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "details": details}
    )


NOT_FOUND_ERRORS = {
    PropertyNotFoundError: "PropertyNotFound",
    LeaseNotFoundError: "LeaseNotFound",
    DocumentNotFoundError: "DocumentNotFound",
}


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    error = NOT_FOUND_ERRORS.get(type(exc), "NotFound")
    logger.info("Record not found", path=request.url.path, error=error)
    return error_response(status.HTTP_404_NOT_FOUND, error, str(exc))


@app.exception_handler(AnswerGenerationError)
async def answer_generation_handler(request: Request, exc: AnswerGenerationError):
    logger.error("Answer generation failed", path=request.url.path, error=str(exc))
    return error_response(
        status.HTTP_502_BAD_GATEWAY,
        "AnswerGenerationFailed",
        "The answer model failed to respond. Please try again.",
        {"reason": str(exc)} if settings.debug else None,
    )


@app.exception_handler(TextExtractionError)
async def text_extraction_handler(request: Request, exc: TextExtractionError):
    logger.warning("Text extraction failed", path=request.url.path, error=str(exc))
    return error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, "TextExtractionFailed", str(exc))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.exception("Unhandled exception", path=request.url.path, error=str(exc))
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalServerError",
        "An unexpected error occurred. Please try again.",
        {"path": request.url.path} if settings.debug else None,
    )


# === Health Check ===
@app.get(
    "/health",
    response_model=HealthCheckResponse,
    tags=["Health"],
    summary="Health check",
    description="Check if the API is running and which providers are configured."
)
async def health_check() -> HealthCheckResponse:
    services = {
        "api": "healthy",
        "database": "configured",
        "embeddings": settings.embedding_provider,
        "llm": "configured" if settings.openai_api_key else "not_configured",
    }
    return HealthCheckResponse(
        status="healthy",
        version=VERSION,
        timestamp=datetime.utcnow(),
        services=services
    )


@app.get(
    "/",
    tags=["Health"],
    summary="Root endpoint",
    description="Welcome message and API information."
)
async def root():
    """Root endpoint with welcome message."""
    return {
        "name": "LeaseWise API",
        "version": VERSION,
        "description": "Lease Clause Intelligence",
        "docs": "/docs",
        "health": "/health"
    }


# === Register Routers ===
app.include_router(portfolio_router)
app.include_router(clauses_router)
app.include_router(documents_router)


# === Main Entry Point ===
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
