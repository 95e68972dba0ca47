"""
Mapping store gateway: company -> connector mappings and company -> destination credential.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from gateways.store import TransactionalStore
from models.mapping import CompanyConnectorMapping, CompanyDestination


@dataclass(frozen=True)
class MappingRecord:
    company_id: uuid.UUID
    connector_id: uuid.UUID
    connector_type: str
    display_name: str
    extra_information: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: CompanyConnectorMapping) -> "MappingRecord":
        return cls(
            company_id=row.company_id,
            connector_id=row.connector_id,
            connector_type=row.connector_type,
            display_name=row.display_name,
            extra_information=dict(row.extra_information or {}),
            created_at=row.created_at,
        )


class MappingStoreGateway(TransactionalStore):
    name = "mapping"

    def get_destination_credential_id(self, company_id: uuid.UUID) -> Optional[uuid.UUID]:
        with self._scope("get_destination_credential_id") as session:
            row = session.get(CompanyDestination, company_id)
            return row.destination_credential_id if row else None

    def set_destination_credential_id(self, company_id: uuid.UUID, credential_id: uuid.UUID) -> None:
        with self._scope("set_destination_credential_id") as session:
            session.merge(CompanyDestination(company_id=company_id, destination_credential_id=credential_id))

    def insert_mapping(
        self,
        *,
        company_id: uuid.UUID,
        connector_id: uuid.UUID,
        connector_type: str,
        display_name: str,
        extra_information: Dict[str, Any],
    ) -> None:
        session = self._require_session("insert_mapping")
        session.add(
            CompanyConnectorMapping(
                company_id=company_id,
                connector_id=connector_id,
                connector_type=connector_type,
                display_name=display_name,
                extra_information=extra_information,
                created_at=datetime.utcnow(),
            )
        )
        try:
            session.flush()
        except SQLAlchemyError as exc:
            raise self._translate(exc, "insert_mapping") from exc

    def get_mapping(self, connector_id: uuid.UUID) -> Optional[MappingRecord]:
        with self._scope("get_mapping") as session:
            row = session.get(CompanyConnectorMapping, connector_id)
            return MappingRecord.from_row(row) if row else None

    def delete_mapping(self, connector_id: uuid.UUID) -> bool:
        with self._scope("delete_mapping") as session:
            result = session.execute(
                delete(CompanyConnectorMapping).where(CompanyConnectorMapping.connector_id == connector_id)
            )
            return bool(result.rowcount)

    def list_for_company(self, company_id: uuid.UUID, connector_type: Optional[str] = None) -> List[MappingRecord]:
        with self._scope("list_for_company") as session:
            stmt = select(CompanyConnectorMapping).where(CompanyConnectorMapping.company_id == company_id)
            if connector_type is not None:
                stmt = stmt.where(CompanyConnectorMapping.connector_type == connector_type)
            rows = session.execute(stmt.order_by(CompanyConnectorMapping.created_at)).scalars().all()
            return [MappingRecord.from_row(r) for r in rows]
