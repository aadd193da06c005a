"""
Persistent store for user-facing speech settings.

The JSON file is replaced atomically on every save, so a crash mid-write
leaves the previous version intact. A file that cannot be parsed is moved
aside to ``<name>.corrupt.<timestamp>`` before defaults are used, so a bad
edit is never silently overwritten by the next save.
"""

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from speechbridge.schemas.speech_settings import SpeechSettings, SpeechSettingsUpdate

logger = logging.getLogger(__name__)


def _write_json_atomic(path: Path, payload: str) -> None:
    """Write text next to ``path`` and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    )
    try:
        with handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(handle.name, path)
    except BaseException:
        Path(handle.name).unlink(missing_ok=True)
        raise


class SpeechSettingsService:
    """
    Loads, caches and saves ``SpeechSettings``.

    Attributes:
        path: JSON file backing the settings
        last_corrupt_backup: Where the most recent unreadable file was moved
    """

    def __init__(self, settings_path: Path):
        self.path = settings_path
        self.last_corrupt_backup: Optional[Path] = None
        self._cached: Optional[SpeechSettings] = None

    def get_settings(self) -> SpeechSettings:
        if self._cached is None:
            self._cached = self._load()
        return self._cached

    def update_settings(self, update: SpeechSettingsUpdate) -> SpeechSettings:
        """Merge the non-null fields of ``update`` and persist the result."""
        changes = update.model_dump(exclude_none=True)
        merged = SpeechSettings.model_validate({**self.get_settings().model_dump(), **changes})
        self._store(merged)
        logger.info(f"Speech settings updated: {', '.join(sorted(changes)) or 'no changes'}")
        return merged

    def reset_to_defaults(self) -> SpeechSettings:
        defaults = SpeechSettings()
        self._store(defaults)
        logger.info("Speech settings reset to defaults")
        return defaults

    def _load(self) -> SpeechSettings:
        if not self.path.exists():
            logger.info(f"No speech settings at {self.path}, using defaults")
            return SpeechSettings()

        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Cannot read speech settings at {self.path}: {e}, using defaults")
            return SpeechSettings()

        try:
            settings = SpeechSettings.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            self._quarantine(e)
            return SpeechSettings()

        logger.info(f"Loaded speech settings from {self.path}")
        return settings

    def _quarantine(self, error: Exception) -> None:
        backup = self.path.with_name(f"{self.path.name}.corrupt.{int(time.time())}")
        try:
            os.replace(self.path, backup)
        except OSError as e:
            logger.error(f"Speech settings at {self.path} are invalid and could not be moved: {e}")
            return
        self.last_corrupt_backup = backup
        logger.error(
            f"Speech settings at {self.path} are invalid ({error}); "
            f"moved to {backup.name}, using defaults"
        )

    def _store(self, settings: SpeechSettings) -> None:
        _write_json_atomic(self.path, settings.model_dump_json(indent=2))
        self._cached = settings


__all__ = ["SpeechSettingsService"]
