"""Remote analysis store on PostgreSQL (psycopg async pool)."""

import logging
import re
from pathlib import Path
from typing import Any

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool
from pydantic import ValidationError

from equicheck.config import DatabaseConfig
from equicheck.errors import RemoteUnavailable
from equicheck.models import AnalysisResult

log = logging.getLogger(__name__)

_CREATE_TABLE = """
    CREATE TABLE IF NOT EXISTS {table} (
        doc_id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
        created_at timestamptz NOT NULL,
        inserted_at timestamptz NOT NULL DEFAULT now(),
        payload jsonb NOT NULL
    )
"""


def _create_tunnel(ssh_config: dict) -> Any:
    """Create and start an SSH tunnel. Returns the SSHTunnelForwarder instance."""
    from sshtunnel import SSHTunnelForwarder

    kwargs: dict[str, Any] = {
        "ssh_address_or_host": (ssh_config["ssh_host"], ssh_config["ssh_port"]),
        "remote_bind_address": (ssh_config["db_host"], ssh_config["db_port"]),
    }
    if ssh_config.get("ssh_user"):
        kwargs["ssh_username"] = ssh_config["ssh_user"]
    if ssh_config.get("ssh_key_path"):
        kwargs["ssh_pkey"] = str(Path(ssh_config["ssh_key_path"]).expanduser())
    if ssh_config.get("ssh_password"):
        kwargs["ssh_password"] = ssh_config["ssh_password"]

    tunnel = SSHTunnelForwarder(**kwargs)
    tunnel.start()
    log.info(
        "SSH tunnel started: localhost:%d -> %s:%d via %s:%d",
        tunnel.local_bind_port,
        ssh_config["db_host"],
        ssh_config["db_port"],
        ssh_config["ssh_host"],
        ssh_config["ssh_port"],
    )
    return tunnel


def _stop_tunnel(tunnel: Any) -> None:
    if tunnel is None:
        return
    try:
        tunnel.stop()
        log.info("SSH tunnel stopped")
    except Exception:
        log.warning("Error stopping SSH tunnel", exc_info=True)


class RemoteBackend:
    """Insert-only collection of analysis records in one table."""

    def __init__(self, pool: AsyncConnectionPool, table: str = "analyses", tunnel: Any = None):
        self._pool: AsyncConnectionPool | None = pool
        self._table = sql.Identifier(table)
        self._tunnel = tunnel

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def _get_pool(self) -> AsyncConnectionPool:
        if self._pool is None:
            raise RemoteUnavailable("Remote store is closed")
        return self._pool

    async def ensure_table(self) -> None:
        pool = self._get_pool()
        async with pool.connection() as conn:
            await conn.execute(sql.SQL(_CREATE_TABLE).format(table=self._table))

    async def insert(self, record: AnalysisResult) -> None:
        """Append one record. The database assigns the document id."""
        pool = self._get_pool()
        query = sql.SQL(
            "INSERT INTO {table} (created_at, payload) VALUES (to_timestamp(%s / 1000.0), %s)"
        ).format(table=self._table)
        async with pool.connection() as conn:
            await conn.execute(query, (record.timestamp, Jsonb(record.to_json_dict())))

    async def fetch_all(self) -> list[AnalysisResult]:
        """All records, newest first."""
        pool = self._get_pool()
        query = sql.SQL(
            "SELECT doc_id, payload FROM {table} ORDER BY created_at DESC, inserted_at DESC"
        ).format(table=self._table)
        async with pool.connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(query)
                rows = await cur.fetchall()

        records = []
        for row in rows:
            try:
                records.append(AnalysisResult.model_validate(row["payload"]))
            except ValidationError as e:
                log.warning("Skipping unreadable remote record %s: %s", row["doc_id"], e)
        return records

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            log.info("Remote store pool closed")
        _stop_tunnel(self._tunnel)
        self._tunnel = None


async def open_remote_backend(cfg: DatabaseConfig) -> RemoteBackend | None:
    """Connect to the remote store once. Returns None if it is not configured or unreachable.

    A failure here is final for the process: the caller runs local-only and
    never retries the connection.
    """
    if not cfg.is_configured:
        log.info("Remote store not configured; running in local-only mode")
        return None

    conninfo = cfg.conninfo
    # Add a connect timeout so an unreachable host fails fast instead of hanging
    if "connect_timeout" not in conninfo:
        conninfo += f" connect_timeout={cfg.connect_timeout_s}"

    tunnel = None
    pool: AsyncConnectionPool | None = None
    try:
        ssh_config = cfg.ssh_config()
        if ssh_config:
            tunnel = _create_tunnel(ssh_config)
            # Rewrite conninfo to go through the tunnel
            conninfo = re.sub(r"host=\S+", "host=127.0.0.1", conninfo)
            conninfo = re.sub(r"port=\S+", f"port={tunnel.local_bind_port}", conninfo)

        pool = AsyncConnectionPool(conninfo=conninfo, min_size=1, max_size=5, open=False)
        await pool.open(wait=True, timeout=cfg.connect_timeout_s)
        backend = RemoteBackend(pool, cfg.table, tunnel)
        await backend.ensure_table()
    except Exception as e:
        log.warning("Remote store unavailable, running in local-only mode: %s", e)
        if pool is not None:
            await pool.close()
        _stop_tunnel(tunnel)
        return None

    log.info("Remote store connected (%s:%d/%s, table=%s)", cfg.host, cfg.port, cfg.name, cfg.table)
    return backend
