"""
Registry store gateway: Connector and SubConnector rows.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from gateways.errors import DuplicateAccountError
from gateways.store import TransactionalStore
from models.connector import Connector, SubConnector

_ADVISORY_KEY_MASK = 0x7FFF_FFFF_FFFF_FFFF


@dataclass(frozen=True)
class ConnectorRecord:
    id: uuid.UUID
    connector_type: str
    name: str
    source_credential_id: uuid.UUID
    destination_credential_id: uuid.UUID
    account_key: str
    extra_information: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Connector) -> "ConnectorRecord":
        return cls(
            id=row.id,
            connector_type=row.connector_type,
            name=row.name,
            source_credential_id=row.source_credential_id,
            destination_credential_id=row.destination_credential_id,
            account_key=row.account_key,
            extra_information=dict(row.extra_information or {}),
            created_at=row.created_at,
        )


class RegistryStoreGateway(TransactionalStore):
    name = "registry"

    def get_connector(self, connector_id: uuid.UUID) -> Optional[ConnectorRecord]:
        with self._scope("get_connector") as session:
            row = session.get(Connector, connector_id)
            return ConnectorRecord.from_row(row) if row else None

    def find_by_account(self, connector_type: str, account_key: str) -> Optional[ConnectorRecord]:
        with self._scope("find_by_account") as session:
            row = session.execute(
                select(Connector).where(
                    Connector.connector_type == connector_type,
                    Connector.account_key == account_key,
                )
            ).scalars().first()
            return ConnectorRecord.from_row(row) if row else None

    def connectors_by_ids(self, connector_ids: Iterable[uuid.UUID]) -> List[ConnectorRecord]:
        ids = list(connector_ids)
        if not ids:
            return []
        with self._scope("connectors_by_ids") as session:
            rows = session.execute(select(Connector).where(Connector.id.in_(ids))).scalars().all()
            return [ConnectorRecord.from_row(r) for r in rows]

    def lock_connector(self, connector_id: uuid.UUID) -> None:
        """
        Serialise provision/teardown for one connector id for the rest of the open transaction.
        PostgreSQL only; other dialects rely on their own write locking.
        """
        session = self._require_session("lock_connector")
        if session.get_bind().dialect.name != "postgresql":
            return
        key = connector_id.int & _ADVISORY_KEY_MASK
        try:
            session.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": key})
        except SQLAlchemyError as exc:
            raise self._translate(exc, "lock_connector") from exc

    def insert_connector(
        self,
        *,
        connector_id: uuid.UUID,
        connector_type: str,
        name: str,
        source_credential_id: uuid.UUID,
        destination_credential_id: uuid.UUID,
        account_key: str,
        extra_information: Dict[str, Any],
        table_type: str,
    ) -> None:
        """Insert Connector + SubConnector in the open transaction and flush so constraint errors surface now."""
        session = self._require_session("insert_connector")
        now = datetime.utcnow()
        session.add(
            Connector(
                id=connector_id,
                connector_type=connector_type,
                name=name,
                source_credential_id=source_credential_id,
                destination_credential_id=destination_credential_id,
                account_key=account_key,
                extra_information=extra_information,
                created_at=now,
            )
        )
        session.add(SubConnector(id=uuid.uuid4(), connector_id=connector_id, table_type=table_type, created_at=now))
        try:
            session.flush()
        except IntegrityError as exc:
            if _is_account_conflict(exc):
                raise DuplicateAccountError(
                    f"registry: connector of type {connector_type} already registered for account {account_key}"
                ) from exc
            raise self._translate(exc, "insert_connector") from exc
        except SQLAlchemyError as exc:
            raise self._translate(exc, "insert_connector") from exc

    def delete_connector(self, connector_id: uuid.UUID) -> bool:
        """Delete SubConnector + Connector rows. Returns False when nothing was there."""
        with self._scope("delete_connector") as session:
            row = session.execute(
                select(Connector).where(Connector.id == connector_id).with_for_update()
            ).scalars().first()
            if row is None:
                return False
            session.execute(delete(SubConnector).where(SubConnector.connector_id == connector_id))
            session.execute(delete(Connector).where(Connector.id == connector_id))
            session.flush()
            return True


def _is_account_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig) if exc.orig is not None else str(exc)
    # PostgreSQL names the constraint; SQLite lists the columns.
    return "uq_connectors_type_account_key" in message or "connectors.account_key" in message


__all__ = ["ConnectorRecord", "RegistryStoreGateway"]
