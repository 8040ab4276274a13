"""
Draft storage using JSON files.

One serialized draft per key, overwritten wholesale on save and removed
wholesale on clear. Storage problems are logged and never raised: a wizard
whose draft can't be saved keeps working, it just isn't persisted.
"""
import errno
import json
import logging
import os
import re
from pathlib import Path
from typing import Optional

from state import OfferDraft

logger = logging.getLogger(__name__)

DRAFT_KEY = "offer_draft"
DEFAULT_STORAGE_DIR = Path(__file__).parent / "storage" / "drafts"

# errno values that mean "no room left", same as a browser quota error
_STORAGE_FULL_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}

SESSION_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


class DraftStorageFullError(Exception):
    """Raised internally when a draft does not fit in the store."""
    def __init__(self, needed: int, available: Optional[int] = None):
        self.needed = needed
        self.available = available
        super().__init__(f"Draft storage full: need {needed} bytes, {available} available")


class DraftStorageConfig:
    """Draft storage configuration from environment variables."""

    def __init__(self):
        self.storage_dir = Path(os.getenv("DRAFT_STORAGE_DIR", str(DEFAULT_STORAGE_DIR)))
        # 0 = no quota
        self.max_bytes = int(os.getenv("DRAFT_STORAGE_MAX_BYTES", "0"))
        self.save_delay = float(os.getenv("DRAFT_SAVE_DELAY", "1.0"))


def draft_key(session_id: Optional[str] = None) -> str:
    """
    Well-known storage key, scoped to a wizard session when one is given.

    Raises:
        ValueError: if the session id has characters other than letters,
            digits, "_" and "-"
    """
    if session_id and not SESSION_ID_PATTERN.fullmatch(session_id):
        raise ValueError(f"Invalid session id: {session_id!r}")
    return f"{DRAFT_KEY}_{session_id}" if session_id else DRAFT_KEY


class DraftStore:
    """
    File-backed key-value store holding one offer draft.

    Args:
        directory: Folder holding the JSON records
        key: Record name (the file is <key>.json)
        max_bytes: Optional quota over the whole directory, 0 for none
    """

    def __init__(self, directory: Path, key: str = DRAFT_KEY, max_bytes: int = 0):
        self.directory = Path(directory)
        self.key = key
        self.max_bytes = max_bytes
        self.directory.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_config(cls, config: Optional[DraftStorageConfig] = None, session_id: Optional[str] = None) -> "DraftStore":
        config = config or DraftStorageConfig()
        return cls(config.storage_dir, key=draft_key(session_id), max_bytes=config.max_bytes)

    @property
    def path(self) -> Path:
        return self.directory / f"{self.key}.json"

    def exists(self) -> bool:
        return self.path.exists()

    def _used_bytes(self) -> int:
        return sum(p.stat().st_size for p in self.directory.glob("*.json") if p.is_file())

    def _write(self, serialized: str) -> None:
        data = serialized.encode("utf-8")

        if self.max_bytes:
            # The current record still counts until it is replaced
            used = self._used_bytes()
            if used + len(data) > self.max_bytes:
                raise DraftStorageFullError(len(data), max(self.max_bytes - used, 0))

        try:
            self.path.write_bytes(data)
        except OSError as e:
            if e.errno in _STORAGE_FULL_ERRNOS:
                raise DraftStorageFullError(len(data)) from e
            raise

    def save(self, draft: OfferDraft) -> bool:
        """
        Save the draft, replacing any previous one.

        On a storage-full error the existing record is cleared and the save
        retried exactly once.

        Returns:
            True if the draft was written
        """
        try:
            serialized = json.dumps(draft)
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to serialize offer draft: {e}")
            return False

        try:
            self._write(serialized)
            logger.debug(f"Saved offer draft to {self.path}")
            return True
        except DraftStorageFullError:
            logger.warning("Draft storage full, clearing old draft and retrying...")
            try:
                if self.path.exists():
                    self.path.unlink()
                self._write(serialized)
                return True
            except (DraftStorageFullError, OSError) as retry_error:
                logger.error(f"Failed to save offer draft after clearing: {retry_error}")
                return False
        except OSError as e:
            logger.error(f"Failed to save offer draft: {e}")
            return False

    def load(self) -> Optional[OfferDraft]:
        """
        Load the saved draft.

        Corrupt records are cleared so they can't fail the next load too.
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                draft = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load offer draft: {e}")
            self.clear()
            return None

        if not isinstance(draft, dict):
            logger.error(f"Ignoring offer draft of unexpected type {type(draft).__name__}")
            self.clear()
            return None

        return draft  # type: ignore[return-value]

    def clear(self) -> None:
        """Remove the saved draft."""
        try:
            if self.path.exists():
                self.path.unlink()
                logger.info(f"Cleared offer draft {self.key}")
        except OSError as e:
            logger.error(f"Failed to clear offer draft: {e}")
