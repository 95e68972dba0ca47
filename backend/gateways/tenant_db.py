"""
Tenant (destination) database gateway.
Implements: create_ingestion_table(name), drop_table(name), table_exists(name)
- Table names are allow-listed and quoted by the dialect, never interpolated raw.
- Connection parameters come from the vault, keyed by the company's destination credential id.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError

from gateways.errors import TenantDatabaseError, VaultError
from gateways.vault import VaultClient
from gateways.identifiers import build_identifier

logger = logging.getLogger(__name__)


class TenantDatabaseGateway:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def _quoted(self, name: str) -> str:
        safe = build_identifier(name)
        return self.engine.dialect.identifier_preparer.quote(safe)

    def ping(self) -> None:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise TenantDatabaseError(f"Destination database unreachable: {e}") from e

    def table_exists(self, name: str) -> bool:
        safe = build_identifier(name)
        try:
            return inspect(self.engine).has_table(safe)
        except SQLAlchemyError as e:
            raise TenantDatabaseError(f"Could not inspect table {safe}: {e}") from e

    def create_ingestion_table(self, name: str) -> None:
        """Idempotent: an existing table with this name is left untouched."""
        ddl = (
            f"CREATE TABLE IF NOT EXISTS {self._quoted(name)} ("
            " id TEXT PRIMARY KEY,"
            " ingested_at TIMESTAMP NOT NULL,"
            ' "data" JSON NOT NULL'
            ")"
        )
        try:
            with self.engine.begin() as conn:
                conn.execute(text(ddl))
        except SQLAlchemyError as e:
            raise TenantDatabaseError(f"Could not create table {name}: {e}") from e
        logger.info("Ingestion table %s ready", name)

    def drop_table(self, name: str) -> bool:
        """Drop if present. Returns False when there was nothing to drop."""
        existed = self.table_exists(name)
        if not existed:
            return False
        try:
            with self.engine.begin() as conn:
                conn.execute(text(f"DROP TABLE IF EXISTS {self._quoted(name)}"))
        except SQLAlchemyError as e:
            raise TenantDatabaseError(f"Could not drop table {name}: {e}") from e
        logger.info("Dropped ingestion table %s", name)
        return True

    def dispose(self) -> None:
        self.engine.dispose()


def destination_url(config: Dict[str, Any]) -> URL | str:
    """Build a connection URL from a destination credential body."""
    if config.get("url"):
        return config["url"]
    user = config.get("user")
    password = config.get("password")
    host = config.get("host")
    port = config.get("port") or 5432
    database = config.get("database")
    if not all([user, password, host, database]):
        raise TenantDatabaseError("Missing Postgres connection config in destination credential.")
    return URL.create(
        "postgresql+psycopg2",
        username=user,
        password=password,
        host=host,
        port=int(port),
        database=database,
    )


def connect_tenant_database(
    vault: VaultClient,
    credential_id: uuid.UUID,
    *,
    timeout: Optional[float] = None,
    statement_timeout_ms: Optional[int] = None,
) -> TenantDatabaseGateway:
    """Resolve the destination credential, open an engine and check it answers."""
    try:
        config = vault.fetch(credential_id, timeout=timeout)
    except VaultError as e:
        raise TenantDatabaseError(f"Destination credential {credential_id} unavailable: {e}") from e
    url = destination_url(config)
    connect_args: Dict[str, Any] = {}
    if not str(url).startswith("sqlite"):
        if timeout is not None:
            connect_args["connect_timeout"] = max(1, int(timeout))
        if statement_timeout_ms:
            connect_args["options"] = f"-c statement_timeout={int(statement_timeout_ms)}"
    gateway = TenantDatabaseGateway(create_engine(url, connect_args=connect_args, pool_pre_ping=True))
    try:
        gateway.ping()
    except TenantDatabaseError:
        gateway.dispose()
        raise
    return gateway
