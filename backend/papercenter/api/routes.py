"""
FastAPI route handlers for search API.
"""

import asyncio
import logging
from typing import Optional
from datetime import datetime
from concurrent.futures import ThreadPoolExecutor
from fastapi import APIRouter, HTTPException, Depends

from .models import (
    SearchRequest,
    SearchResponse,
    PreferencesPayload,
    StatsResponse,
    HealthResponse,
)
from ..corpus.provider import CorpusFetchError, CorpusProvider
from ..corpus.storage import SqliteCorpusProvider
from ..search.models import options_from_dict, options_to_dict
from ..search.preferences import SearchPreferences
from ..search.search_engine import SearchEngine
from config.search_config import CONCURRENCY_CONFIG, DATABASE_PATH, PREFERENCES_PATH

logger = logging.getLogger('api')

# Thread pool for CPU-bound search operations (created on startup)
search_executor: Optional[ThreadPoolExecutor] = None

# Global instances (loaded on startup)
search_engine: Optional[SearchEngine] = None
search_preferences: Optional[SearchPreferences] = None

# Track service start time
service_start_time = datetime.now()


# ============================================================================
# Dependency Injection
# ============================================================================

def get_search_engine() -> SearchEngine:
    """Get the global search engine instance."""
    if search_engine is None:
        raise HTTPException(
            status_code=503,
            detail="Search engine not initialized"
        )
    return search_engine


def get_preferences() -> SearchPreferences:
    """Get the global search preferences store."""
    if search_preferences is None:
        raise HTTPException(
            status_code=503,
            detail="Search preferences not initialized"
        )
    return search_preferences


async def run_in_search_pool(func):
    """Run a blocking call on the search thread pool."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(search_executor, func)


# ============================================================================
# API Router
# ============================================================================

router = APIRouter(prefix="/api/v1", tags=["search"])


# ============================================================================
# Search Endpoints
# ============================================================================

@router.post("/search", response_model=SearchResponse)
async def search_corpus(
    request: SearchRequest,
    engine: SearchEngine = Depends(get_search_engine),
    preferences: SearchPreferences = Depends(get_preferences)
):
    """
    Execute a search with structured filters.

    Matches the query against the selected fields of every document, page
    group, page, OCR text, note and version snapshot, applies the tag and
    variable filters, and returns ranked results. Options omitted from the
    request come from the stored preferences.
    """
    options = request.to_options(preferences.options)

    logger.info(
        f"Search request: query='{request.query}', "
        f"kinds={sorted(k.value for k in options.result_kinds)}, "
        f"rules={len(options.variable_rules)}, max_results={options.max_results}"
    )

    try:
        outcome = await run_in_search_pool(lambda: engine.run(request.query, options))

    except Exception as e:
        logger.error(f"Search failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Search execution failed",
                "code": "SEARCH_FAILED",
                "details": {"message": str(e)}
            }
        )

    if outcome.failed:
        raise HTTPException(
            status_code=503,
            detail={
                "error": "Corpus unavailable",
                "code": "CORPUS_UNAVAILABLE",
                "details": {"message": outcome.error}
            }
        )

    logger.info(f"Search completed: {len(outcome.results)} results, {outcome.query_time_ms}ms")

    return {
        "results": [result.to_dict() for result in outcome.results],
        "total": len(outcome.results),
        "query": request.query,
        "query_time_ms": outcome.query_time_ms,
        "options": options_to_dict(options),
    }


# ============================================================================
# Preferences Endpoints
# ============================================================================

@router.get("/preferences", response_model=PreferencesPayload)
async def get_search_preferences(
    preferences: SearchPreferences = Depends(get_preferences)
):
    """Get the stored search options."""
    return {"options": options_to_dict(preferences.options)}


@router.put("/preferences", response_model=PreferencesPayload)
async def update_search_preferences(
    payload: PreferencesPayload,
    preferences: SearchPreferences = Depends(get_preferences)
):
    """Replace the stored search options."""
    try:
        preferences.options = options_from_dict(payload.options)
    except OSError as e:
        logger.error(f"Failed to save preferences: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Failed to save preferences",
                "code": "INTERNAL_ERROR",
                "details": {"message": str(e)}
            }
        )

    logger.info("Search preferences updated")
    return {"options": options_to_dict(preferences.options)}


@router.delete("/preferences", response_model=PreferencesPayload)
async def reset_search_preferences(
    preferences: SearchPreferences = Depends(get_preferences)
):
    """Reset the stored search options to the defaults."""
    try:
        options = preferences.reset_to_defaults()
    except OSError as e:
        logger.error(f"Failed to reset preferences: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Failed to reset preferences",
                "code": "INTERNAL_ERROR",
                "details": {"message": str(e)}
            }
        )

    return {"options": options_to_dict(options)}


# ============================================================================
# Statistics Endpoints
# ============================================================================

@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    engine: SearchEngine = Depends(get_search_engine)
):
    """
    Get corpus statistics.

    Returns entity counts for tags, variables, documents, page groups,
    pages, page versions, bundles and notes.
    """
    try:
        logger.info("Fetching statistics")
        corpus = await run_in_search_pool(engine.provider.fetch_corpus)

    except CorpusFetchError as e:
        logger.error(f"Failed to fetch stats: {e}")
        raise HTTPException(
            status_code=503,
            detail={
                "error": "Corpus unavailable",
                "code": "CORPUS_UNAVAILABLE",
                "details": {"message": str(e)}
            }
        )

    stats = corpus.stats()
    logger.info(f"Statistics retrieved: {stats['documents']} documents")
    return stats


# ============================================================================
# Health Check Endpoint
# ============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(
    engine: SearchEngine = Depends(get_search_engine)
):
    """
    Health check endpoint.

    Returns service status and whether the corpus can be read.
    """
    uptime = (datetime.now() - service_start_time).total_seconds()

    corpus_available = True
    try:
        await run_in_search_pool(engine.provider.fetch_tags)
    except CorpusFetchError as e:
        logger.warning(f"Health check could not read corpus: {e}")
        corpus_available = False

    return {
        "status": "healthy" if corpus_available else "degraded",
        "corpus_available": corpus_available,
        "uptime_seconds": int(uptime)
    }


# ============================================================================
# Initialization
# ============================================================================

def init_search_engine(
    db_path: str = DATABASE_PATH,
    preferences_path: str = PREFERENCES_PATH,
    provider: Optional[CorpusProvider] = None
):
    """
    Initialize the global search engine, preferences store and thread pool.

    This should be called during application startup.

    Args:
        db_path: SQLite corpus store (ignored when provider is given)
        preferences_path: Search preferences file
        provider: Corpus provider to serve instead of the SQLite store
    """
    global search_engine, search_preferences, search_executor

    logger.info("Initializing search engine...")

    search_engine = SearchEngine(provider or SqliteCorpusProvider(db_path))
    search_preferences = SearchPreferences(preferences_path)

    if search_executor is None:
        search_executor = ThreadPoolExecutor(
            max_workers=CONCURRENCY_CONFIG['search_thread_pool_size']
        )

    logger.info("Search engine initialized successfully")


def shutdown_search_engine():
    """
    Cleanup search engine on shutdown.

    This should be called during application shutdown.
    """
    global search_engine, search_preferences, search_executor

    search_engine = None
    search_preferences = None

    # Shutdown thread pool
    if search_executor is not None:
        search_executor.shutdown(wait=True)
        search_executor = None
    logger.info("Thread pool shut down")
