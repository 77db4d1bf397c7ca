"""
Persisted search options.

Stored as a JSON file:

    {"version": 2, "options": {...options_to_dict(...)}}

Older files hold a flat v1 payload with only fieldScope, resultKinds,
includeHistoricalVersions and maxResults. Those are still read, with the
structured filters left at their defaults.
"""

import json
import logging
from pathlib import Path
from threading import Lock
from typing import Optional, Union

from config.search_config import PREFERENCES_PATH
from .models import SearchOptions, options_from_dict, options_to_dict

logger = logging.getLogger(__name__)

PREFERENCES_VERSION = 2
LEGACY_KEYS = ('fieldScope', 'resultKinds', 'includeHistoricalVersions', 'maxResults')


class SearchPreferences:
    """JSON-file-backed search options."""

    def __init__(self, path: Union[str, Path] = PREFERENCES_PATH):
        """
        Initialize preferences store.

        Args:
            path: Location of the preferences file (created on first save)
        """
        self.path = Path(path)
        self._options: Optional[SearchOptions] = None
        self._lock = Lock()

    @property
    def options(self) -> SearchOptions:
        with self._lock:
            if self._options is None:
                self._options = self._load()
            return self._options

    @options.setter
    def options(self, value: SearchOptions):
        with self._lock:
            self._save(value)
            self._options = value

    def reset_to_defaults(self) -> SearchOptions:
        """Replace the stored options with the defaults."""
        defaults = SearchOptions.default()
        self.options = defaults
        logger.info("Search preferences reset to defaults")
        return defaults

    def _load(self) -> SearchOptions:
        if not self.path.exists():
            return SearchOptions.default()

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read preferences {self.path}: {e}")
            return SearchOptions.default()

        if not isinstance(payload, dict):
            logger.warning(f"Preferences file {self.path} does not hold an object, using defaults")
            return SearchOptions.default()

        if isinstance(payload.get('options'), dict):
            try:
                return options_from_dict(payload['options'])
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Invalid preferences in {self.path}: {e}")

        return self._load_legacy(payload)

    def _load_legacy(self, payload: dict) -> SearchOptions:
        if not all(key in payload for key in LEGACY_KEYS):
            logger.warning(f"Unrecognized preferences in {self.path}, using defaults")
            return SearchOptions.default()

        legacy = {key: payload[key] for key in LEGACY_KEYS}
        try:
            options = options_from_dict(legacy)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Invalid legacy preferences in {self.path}: {e}")
            return SearchOptions.default()

        logger.info(f"Loaded legacy search preferences from {self.path}")
        return options

    def _save(self, options: SearchOptions):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {'version': PREFERENCES_VERSION, 'options': options_to_dict(options)}

        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2)
        tmp_path.replace(self.path)
        logger.debug(f"Saved search preferences to {self.path}")
