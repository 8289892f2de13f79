"""
Reply settings persistence.

Loads the keyword table from a flat JSON file at startup and saves admin
edits back to it. The in-memory snapshot is only replaced after the new
document validated and the file write succeeded, and replacement is a single
reference assignment: requests already running keep the snapshot they
captured.
"""
import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

from app.domain.reply_settings import ReplySettings, SettingsValidationError

logger = logging.getLogger(__name__)

# Top-level keys the admin page may update
UPDATABLE_KEYS = ("prompt", "keywords", "flex_templates")


class SettingsPersistenceError(Exception):
    """Raised when the settings file cannot be written"""


class SettingsStore:
    """Holds the current ReplySettings snapshot and its backing file"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._snapshot = ReplySettings()
        # Set while the file on disk could not be turned into a snapshot
        self._load_failed = False
        self._disk_document: Optional[Dict[str, Any]] = None

    @property
    def snapshot(self) -> ReplySettings:
        """Current settings snapshot (never mutated, only replaced)."""
        return self._snapshot

    def load(self) -> ReplySettings:
        """
        Load settings from disk.

        A missing file means defaults. An unreadable or invalid file is
        logged and the current snapshot is kept; the file itself is then
        protected from partial saves (see save()).
        """
        if not self.path.exists():
            logger.info(f"ℹ️ No settings file at {self.path}, using defaults")
            return self._snapshot

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"❌ Failed to read settings from {self.path}: {e}")
            self._load_failed = True
            self._disk_document = None
            return self._snapshot

        try:
            snapshot = ReplySettings.from_document(document)
        except SettingsValidationError as e:
            logger.error(f"❌ Invalid settings in {self.path}: {e}")
            self._load_failed = True
            self._disk_document = document if isinstance(document, dict) else None
            return self._snapshot

        self._snapshot = snapshot
        self._load_failed = False
        self._disk_document = None
        logger.info(
            f"✅ Settings loaded from {self.path} - "
            f"{len(snapshot.rules)} keyword rule(s), "
            f"{len(snapshot.templates)} template(s)"
        )
        return self._snapshot

    def save(self, update: Dict[str, Any]) -> ReplySettings:
        """
        Apply a full or partial settings document and persist it.

        Keys absent from `update` (or set to null) keep their current value.
        If the file on disk failed to load, absent keys keep their value from
        that file instead; an unparseable file is only replaced by an update
        that carries the whole keyword table.

        Raises:
            SettingsValidationError: The merged document is invalid
            SettingsPersistenceError: The file could not be written
        """
        if not self._load_failed:
            document = self._snapshot.to_document()
        elif self._disk_document is not None:
            document = copy.deepcopy(self._disk_document)
        elif update.get("keywords") is None:
            raise SettingsValidationError(
                f"Settings file {self.path} could not be read; "
                "save the full keyword table to replace it"
            )
        else:
            document = self._snapshot.to_document()

        for key in UPDATABLE_KEYS:
            if update.get(key) is not None:
                document[key] = update[key]

        new_snapshot = ReplySettings.from_document(document)

        self._write(new_snapshot.to_document())
        self._snapshot = new_snapshot
        self._load_failed = False
        self._disk_document = None

        logger.info(f"✅ Settings saved - {len(new_snapshot.rules)} keyword rule(s)")
        return new_snapshot

    def _write(self, document: Dict[str, Any]) -> None:
        """Write via a temp file + rename so readers never see a partial file."""
        directory = self.path.parent
        tmp_path: Optional[str] = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=directory,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False
            ) as f:
                tmp_path = f.name
                json.dump(document, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"❌ Failed to write settings to {self.path}: {e}")
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise SettingsPersistenceError(f"Could not write settings file: {e}") from e


# Global instance
_store: Optional[SettingsStore] = None


def get_settings_store() -> SettingsStore:
    """Get global settings store instance"""
    global _store
    if _store is None:
        from app.config import settings
        _store = SettingsStore(settings.settings_file)
        _store.load()
    return _store


def init_settings_store(path: Union[str, Path]) -> SettingsStore:
    """Create (or recreate) the global store for the given file and load it"""
    global _store
    _store = SettingsStore(path)
    _store.load()
    return _store


__all__ = [
    "SettingsStore",
    "SettingsPersistenceError",
    "SettingsValidationError",
    "get_settings_store",
    "init_settings_store",
]
