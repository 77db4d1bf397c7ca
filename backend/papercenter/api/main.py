"""
FastAPI main application for PaperCenter Search.

Startup wires the search engine to the SQLite corpus store and the persisted
search preferences; every route lives in routes.py under /api/v1.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .routes import router, init_search_engine, shutdown_search_engine
from ..search.models import ResultKind
from config.search_config import (
    API_CONFIG,
    DATABASE_PATH,
    PREFERENCES_PATH,
    ENVIRONMENT,
    DEBUG,
    configure_logging
)

configure_logging()
logger = logging.getLogger('api')


def error_body(error: str, code: str, **details) -> dict:
    """Error payload in the same shape as the route HTTPException details."""
    return {"error": error, "code": code, "details": details or None}


# ============================================================================
# Application Lifespan
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the search engine on startup and release its thread pool on shutdown."""
    logger.info(f"Starting PaperCenter Search API ({ENVIRONMENT}, debug={DEBUG})")

    if not Path(DATABASE_PATH).exists():
        # Searches report CORPUS_UNAVAILABLE until a corpus is imported
        logger.warning(
            f"Corpus database {DATABASE_PATH} does not exist yet; "
            f"run 'papercenter corpus import <file>' to create it"
        )

    init_search_engine(db_path=DATABASE_PATH, preferences_path=PREFERENCES_PATH)
    logger.info(f"Serving corpus {DATABASE_PATH} with preferences {PREFERENCES_PATH}")

    yield

    shutdown_search_engine()
    logger.info("PaperCenter Search API stopped")


# ============================================================================
# Application Setup
# ============================================================================

app = FastAPI(
    title="PaperCenter Search API",
    description="Search, filter and rank documents, page groups, pages, OCR text, notes and version metadata",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if DEBUG else None,
    redoc_url="/redoc" if DEBUG else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=API_CONFIG["cors_origins"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/")
async def root():
    """API information and endpoint index."""
    return {
        "name": "PaperCenter Search API",
        "version": app.version,
        "result_kinds": [kind.value for kind in ResultKind],
        "endpoints": {
            "search": "/api/v1/search",
            "preferences": "/api/v1/preferences",
            "stats": "/api/v1/stats",
            "health": "/api/v1/health"
        },
        "documentation": app.docs_url
    }


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Report malformed search options and rule values in the API error shape."""
    logger.info(f"Rejected request to {request.url.path}: {len(exc.errors())} validation errors")
    return JSONResponse(
        status_code=422,
        content=error_body("Invalid request", "INVALID_REQUEST", errors=jsonable_encoder(exc.errors()))
    )


@app.exception_handler(404)
async def not_found_handler(request: Request, exc):
    return JSONResponse(
        status_code=404,
        content=error_body("Resource not found", "NOT_FOUND", path=str(request.url.path))
    )


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc):
    logger.error(f"Internal server error on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=error_body(
            "Internal server error",
            "INTERNAL_ERROR",
            message=str(exc) if DEBUG else "An unexpected error occurred"
        )
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "papercenter.api.main:app",
        host=API_CONFIG["host"],
        port=API_CONFIG["port"],
        reload=API_CONFIG["reload"] or DEBUG,
        log_level=API_CONFIG["log_level"]
    )
