"""
Connector teardown saga.
Reverse of provisioning, best-effort: every step runs, failures are collected.
Each step checks for existence first, so re-running after a partial failure is safe.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from config import Settings
from constants import platform_for_abbreviation
from errors import (
    DeadlineExceeded,
    DestinationNotConfigured,
    InvalidAccountIdentifier,
    TableDropFailed,
    TeardownPartialFailure,
    UnsupportedConnectorType,
)
from gateways.errors import GatewayError, InvalidIdentifier, SecretNotFound
from gateways.identifiers import ingestion_table_name
from gateways.mapping import MappingStoreGateway
from gateways.registry import ConnectorRecord, RegistryStoreGateway
from gateways.vault import VaultClient
from services.provisioning import TenantConnector
from services.saga_log import TeardownStep
from utils.deadline import Deadline

logger = logging.getLogger(__name__)


@dataclass
class TeardownStepFailure:
    step: TeardownStep
    error: Exception

    def __str__(self) -> str:
        return f"{self.step.value}: {self.error}"


@dataclass
class TeardownReport:
    connector_id: uuid.UUID
    table_name: str
    completed: List[TeardownStep] = field(default_factory=list)
    skipped: List[TeardownStep] = field(default_factory=list)
    failures: List[TeardownStepFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        if self.failures:
            raise TeardownPartialFailure(self.connector_id, self.failures)


class TeardownSaga:
    def __init__(
        self,
        settings: Settings,
        *,
        vault: VaultClient,
        registry_factory: Callable[[], RegistryStoreGateway],
        mapping_factory: Callable[[], MappingStoreGateway],
        tenant_connector: TenantConnector,
    ) -> None:
        self.settings = settings
        self.vault = vault
        self.registry_factory = registry_factory
        self.mapping_factory = mapping_factory
        self.tenant_connector = tenant_connector

    def deprovision(
        self,
        connector_id: uuid.UUID,
        external_account_id: str,
        source_abbreviation: str,
        *,
        company_id: uuid.UUID,
        deadline: Optional[Deadline] = None,
    ) -> TeardownReport:
        """
        Remove mapping, secret, registry rows and ingestion table, in that order.
        ``company_id`` locates the destination database when the connector row is already gone,
        so a retry after a failed drop still drops the table.
        """
        deadline = deadline or Deadline(self.settings.saga_timeout_seconds)
        if platform_for_abbreviation(source_abbreviation) is None:
            raise UnsupportedConnectorType(f"Unknown source abbreviation {source_abbreviation!r}", connector_id=connector_id)
        try:
            table_name = ingestion_table_name(source_abbreviation, external_account_id)
        except InvalidIdentifier as exc:
            raise InvalidAccountIdentifier(str(exc), connector_id=connector_id) from exc
        report = TeardownReport(connector_id=connector_id, table_name=table_name)
        logger.info("Tearing down connector %s (table %s)", connector_id, table_name)

        # 1. resolve
        connector: Optional[ConnectorRecord] = None
        try:
            deadline.check(TeardownStep.RESOLVE_CONNECTOR.value)
            connector = self.registry_factory().get_connector(connector_id)
            report.completed.append(TeardownStep.RESOLVE_CONNECTOR)
        except (GatewayError, DeadlineExceeded) as exc:
            self._failed(report, TeardownStep.RESOLVE_CONNECTOR, exc)
        resolved = TeardownStep.RESOLVE_CONNECTOR in report.completed
        if resolved and connector is None:
            logger.info("Connector %s already absent from registry", connector_id)

        # 2. mapping
        self._run(report, TeardownStep.DELETE_MAPPING, deadline, lambda: self.mapping_factory().delete_mapping(connector_id))

        # 3-4. secret, then registry rows
        if connector is not None:
            self._run(report, TeardownStep.DELETE_SECRET, deadline, lambda: self._delete_secret(connector.source_credential_id, deadline))
            self._run(report, TeardownStep.DELETE_CONNECTOR, deadline, lambda: self._delete_connector(connector_id, deadline))
        elif resolved:
            report.skipped.extend([TeardownStep.DELETE_SECRET, TeardownStep.DELETE_CONNECTOR])
        else:
            # Keep the registry row: it is the only record of which secret to delete on retry.
            unresolved = RuntimeError("connector could not be resolved from the registry")
            self._failed(report, TeardownStep.DELETE_SECRET, unresolved)
            self._failed(report, TeardownStep.DELETE_CONNECTOR, unresolved)

        # 5. ingestion table
        destination = connector.destination_credential_id if connector is not None else None
        if destination is None:
            # registry row already gone: the company's destination is where the table lives
            try:
                destination = self.mapping_factory().get_destination_credential_id(company_id)
                if destination is None:
                    raise DestinationNotConfigured(company_id, connector_id=connector_id)
            except (GatewayError, DestinationNotConfigured) as exc:
                self._failed(report, TeardownStep.DROP_TABLE, exc)
                return self._finish(report)
        self._run(report, TeardownStep.DROP_TABLE, deadline, lambda: self._drop_table(destination, table_name, connector_id, deadline))

        return self._finish(report)

    # --- steps ---
    def _delete_secret(self, credential_id: uuid.UUID, deadline: Deadline) -> None:
        try:
            self.vault.delete(credential_id, timeout=deadline.timeout(self.settings.http_read_timeout))
        except SecretNotFound:
            logger.info("Credential %s already deleted", credential_id)

    def _delete_connector(self, connector_id: uuid.UUID, deadline: Deadline) -> None:
        registry = self.registry_factory()
        registry.begin(timeout=deadline.remaining())
        try:
            registry.lock_connector(connector_id)
            registry.delete_connector(connector_id)
            deadline.check(TeardownStep.DELETE_CONNECTOR.value)
            registry.commit()
        except Exception:
            registry.rollback()
            raise

    def _drop_table(self, destination_credential_id: uuid.UUID, table_name: str, connector_id: uuid.UUID, deadline: Deadline) -> None:
        try:
            tenant_db = self.tenant_connector(destination_credential_id, timeout=deadline.timeout(self.settings.http_read_timeout))
        except GatewayError as exc:
            raise TableDropFailed(f"Destination database unreachable: {exc}", table_name=table_name, connector_id=connector_id) from exc
        try:
            tenant_db.drop_table(table_name)
        except GatewayError as exc:
            raise TableDropFailed(f"Could not drop {table_name}: {exc}", table_name=table_name, connector_id=connector_id) from exc
        finally:
            tenant_db.dispose()

    # --- bookkeeping ---
    def _run(self, report: TeardownReport, step: TeardownStep, deadline: Deadline, action: Callable[[], object]) -> None:
        try:
            deadline.check(step.value)
            action()
        except Exception as exc:
            self._failed(report, step, exc)
            return
        report.completed.append(step)

    @staticmethod
    def _failed(report: TeardownReport, step: TeardownStep, exc: Exception) -> None:
        logger.warning("Teardown of connector %s: %s failed: %s", report.connector_id, step.value, exc)
        report.failures.append(TeardownStepFailure(step, exc))

    @staticmethod
    def _finish(report: TeardownReport) -> TeardownReport:
        if report.failures:
            logger.error(
                "Teardown of connector %s incomplete: %s",
                report.connector_id, "; ".join(str(f) for f in report.failures),
            )
        else:
            logger.info("Connector %s torn down", report.connector_id)
        return report
