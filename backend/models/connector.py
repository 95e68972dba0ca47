"""
Connector registry DB models
Production-grade: type-safe, linted, SQLAlchemy 2.0+ ORM style.
"""
from __future__ import annotations
from typing import Any
import uuid
from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from .base import RegistryBase, JSONType


class Connector(RegistryBase):
    __tablename__ = "connectors"
    __table_args__ = (
        # Authoritative duplicate-account guard; the saga's pre-check is only a fast path.
        UniqueConstraint("connector_type", "account_key", name="uq_connectors_type_account_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, nullable=False)
    connector_type: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    source_credential_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    destination_credential_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    account_key: Mapped[str] = mapped_column(String(255), nullable=False)
    extra_information: Mapped[Any] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    sub_connectors = relationship("SubConnector", back_populates="connector", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Connector id={self.id} type={self.connector_type} account={self.account_key}>"


class SubConnector(RegistryBase):
    __tablename__ = "sub_connectors"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4, nullable=False)
    connector_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("connectors.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    table_type: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    connector = relationship("Connector", back_populates="sub_connectors")

    def __repr__(self) -> str:
        return f"<SubConnector id={self.id} connector_id={self.connector_id} table_type={self.table_type}>"
