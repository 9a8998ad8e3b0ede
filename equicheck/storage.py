"""Analysis history with a remote-preferred, local-fallback policy.

Every call tries the remote backend first and quietly falls back to the local
JSON file when the remote backend is absent or fails. Callers never learn
which backend served them.
"""

import logging
from enum import Enum

from equicheck.db import RemoteBackend
from equicheck.errors import RemoteUnavailable
from equicheck.local_store import LocalStore
from equicheck.models import AnalysisResult, ClearResult

log = logging.getLogger(__name__)


class RemoteAttempt(str, Enum):
    OK = "ok"
    UNAVAILABLE = "unavailable"
    WRITE_FAILED = "write_failed"


class RecordStore:
    def __init__(self, local: LocalStore, remote: RemoteBackend | None = None):
        self.local = local
        self.remote = remote

    @property
    def remote_enabled(self) -> bool:
        return self.remote is not None and self.remote.is_open

    # ── save ──

    async def _save_remote(self, record: AnalysisResult) -> RemoteAttempt:
        if not self.remote_enabled:
            return RemoteAttempt.UNAVAILABLE
        try:
            await self.remote.insert(record)
        except RemoteUnavailable:
            return RemoteAttempt.UNAVAILABLE
        except Exception as e:
            log.warning("Remote save of %s failed: %s", record.id, e)
            return RemoteAttempt.WRITE_FAILED
        return RemoteAttempt.OK

    async def _save_local(self, record: AnalysisResult) -> None:
        await self.local.prepend(record)

    async def save(self, record: AnalysisResult) -> None:
        """Persist one record. Raises PersistenceFailed only if the local fallback fails too."""
        attempt = await self._save_remote(record)
        if attempt is RemoteAttempt.OK:
            log.info("Analysis %s saved to remote store", record.id)
            return
        await self._save_local(record)
        log.info("Analysis %s saved to local history (remote %s)", record.id, attempt.value)

    # ── list ──

    async def _list_remote(self) -> list[AnalysisResult] | None:
        if not self.remote_enabled:
            return None
        try:
            return await self.remote.fetch_all()
        except RemoteUnavailable:
            return None
        except Exception as e:
            log.warning("Remote fetch failed, falling back to local history: %s", e)
            return None

    async def list_all(self) -> list[AnalysisResult]:
        """All stored analyses, newest first."""
        records = await self._list_remote()
        if records is None:
            records = await self.local.load()
        return records

    # ── clear ──

    async def clear(self) -> ClearResult:
        """Clear local history. Remote records are never deleted from here."""
        await self.local.clear()
        log.info("Local history cleared")
        if self.remote_enabled:
            message = "Local history cleared. Remote history remains intact."
        else:
            message = "Local history cleared. Any remote history is unaffected."
        return ClearResult(remote_unaffected=True, message=message)
