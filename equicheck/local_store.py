"""Local fallback storage: one JSON file holding the analysis history, newest first."""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from equicheck.errors import PersistenceFailed
from equicheck.models import AnalysisResult

log = logging.getLogger(__name__)


class LocalStore:
    def __init__(self, path: Path):
        self.path = Path(path)
        # Serializes read-modify-write cycles within this process.
        self._lock = asyncio.Lock()

    # ── Sync file access (run in a worker thread) ──

    def _read_raw(self) -> list[Any]:
        """Stored entries exactly as found in the file, [] if the file is unreadable as a whole."""
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text())
            if not isinstance(raw, list):
                raise ValueError(f"expected a list, got {type(raw).__name__}")
            return raw
        except (OSError, ValueError) as e:
            log.warning("Local history at %s is unreadable, treating it as empty: %s", self.path, e)
            return []

    def _read(self) -> list[AnalysisResult]:
        records = []
        for i, item in enumerate(self._read_raw()):
            try:
                records.append(AnalysisResult.model_validate(item))
            except ValidationError as e:
                log.warning("Skipping unreadable local record #%d in %s: %s", i, self.path, e)
        return records

    def _write(self, entries: list[Any]) -> None:
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            text = json.dumps(entries, indent=2) + "\n"
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            with os.fdopen(fd, "w") as f:
                f.write(text)
            os.replace(tmp_name, self.path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceFailed(f"Could not write local history to {self.path}: {e}") from e

    def _prepend(self, record: AnalysisResult) -> None:
        # Existing entries are carried through untouched, including ones that fail validation.
        self._write([record.to_json_dict(), *self._read_raw()])

    def _remove(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceFailed(f"Could not clear local history at {self.path}: {e}") from e

    # ── Async API ──

    async def load(self) -> list[AnalysisResult]:
        return await asyncio.to_thread(self._read)

    async def prepend(self, record: AnalysisResult) -> None:
        """Add a record at the front of the history and rewrite the whole file."""
        async with self._lock:
            await asyncio.to_thread(self._prepend, record)

    async def clear(self) -> None:
        async with self._lock:
            await asyncio.to_thread(self._remove)
