"""
Configuration settings for the PaperCenter search engine.
"""

import os
from pathlib import Path

# Base directories
BASE_DIR = Path(__file__).parent.parent
CONFIG_DIR = BASE_DIR / "config"

# Data directory - use environment variable in production, local path in development
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))

# Corpus store and persisted preferences - support environment variable overrides
DATABASE_PATH = os.getenv("DATABASE_PATH", str(DATA_DIR / "corpus.db"))
PREFERENCES_PATH = os.getenv("PREFERENCES_PATH", str(DATA_DIR / "search_preferences.json"))


# SCORING CONFIGURATION
#
# Fixed-weight relevance formula:
#   score = base[kind] + field_match_bonus * |matched fields| + phrase_bonus (if phrase matched)

SCORING_CONFIG = {
    "base_scores": {
        "doc": 700,
        "noteHit": 660,
        "ocrHit": 620,
        "pageGroup": 560,
        "page": 540,
        "versionMetadataHit": 520,
    },
    "field_match_bonus": 20,
    "phrase_bonus": 120,
}


# SNIPPETS

SNIPPET_CONFIG = {
    "max_length": 180,
    "ellipsis": "…",
}


# DEFAULT SEARCH OPTIONS
#
# Used when no persisted preferences exist, or they cannot be decoded.

DEFAULT_SEARCH_OPTIONS = {
    "fieldScope": [
        "docTitle",
        "pageGroupTitle",
        "ocrText",
        "noteTitleBody",
        "tagName",
        "variableName",
        "variableValue",
        "versionSnapshotMetadata",
    ],
    "resultKinds": ["doc", "pageGroup", "page", "ocrHit", "noteHit", "versionMetadataHit"],
    "includeHistoricalVersions": True,
    "maxResults": 120,
    "tagFilter": {"nameKeyword": "", "selectedTagIDs": [], "mode": "any"},
    "variableRules": [],
    "variableRulesMode": "and",
}


# CONCURRENCY CONFIGURATION

CONCURRENCY_CONFIG = {
    "search_thread_pool_size": int(os.getenv("SEARCH_THREAD_POOL_SIZE", "4")),
}


# LOGGING CONFIGURATION

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = Path(os.getenv("LOG_DIR", str(BASE_DIR / "logs")))

LOG_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "format": "%(asctime)s %(name)s %(levelname)s %(message)s"
        },
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": LOG_LEVEL,
            "formatter": "standard",
            "stream": "ext://sys.stdout"
        },
        "api": {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(LOG_DIR / "api.log"),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
            "formatter": "json",
            "level": LOG_LEVEL
        },
        "search": {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(LOG_DIR / "search.log"),
            "maxBytes": 10485760,
            "backupCount": 5,
            "formatter": "json",
            "level": LOG_LEVEL
        },
        "errors": {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(LOG_DIR / "errors.log"),
            "maxBytes": 10485760,
            "backupCount": 5,
            "formatter": "json",
            "level": "ERROR"
        }
    },
    "loggers": {
        "api": {
            "handlers": ["console", "api", "errors"],
            "level": LOG_LEVEL,
            "propagate": False
        },
        "search": {
            "handlers": ["console", "search", "errors"],
            "level": LOG_LEVEL,
            "propagate": False
        },
        "": {  # Root logger
            "handlers": ["console", "errors"],
            "level": LOG_LEVEL
        }
    }
}


def configure_logging():
    """Apply LOG_CONFIG, creating the log directory first."""
    import logging.config

    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(LOG_CONFIG)


# API CONFIGURATION

API_CONFIG = {
    "host": os.getenv("API_HOST", "0.0.0.0"),
    "port": int(os.getenv("API_PORT", "8000")),
    "reload": os.getenv("RELOAD", "false").lower() == "true",
    "log_level": LOG_LEVEL.lower(),
    "cors_origins": [
        origin.strip()
        for origin in os.getenv(
            "CORS_ORIGINS",
            "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173,http://127.0.0.1:3000"
        ).split(",")
        if origin.strip()
    ],
}


# ENVIRONMENT

DEBUG = os.getenv("DEBUG", "false").lower() == "true"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
