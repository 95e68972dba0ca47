"""
Company mapping DB models
Production-grade: type-safe, linted, SQLAlchemy 2.0+ ORM style.
"""
from __future__ import annotations
from typing import Any
import uuid
from sqlalchemy import String, DateTime, Uuid, Index
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from .base import MappingBase, JSONType


class CompanyConnectorMapping(MappingBase):
    __tablename__ = "company_to_connector_mapping"
    __table_args__ = (
        Index("ix_company_to_connector_mapping_company", "company_id", "connector_type"),
    )

    connector_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, nullable=False)
    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    connector_type: Mapped[str] = mapped_column(String(64), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    extra_information: Mapped[Any] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<CompanyConnectorMapping company={self.company_id} connector={self.connector_id}>"


class CompanyDestination(MappingBase):
    """Which vault credential opens a company's destination database."""

    __tablename__ = "company_to_destination_mapping"

    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, nullable=False)
    destination_credential_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<CompanyDestination company={self.company_id} credential={self.destination_credential_id}>"
