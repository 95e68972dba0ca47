"""
Connector provisioning saga.

Wires a new connector across the vault, the registry store, the mapping store and
the company's destination database. The two stores are committed separately, so
partial failure is detected and compensated here rather than prevented by a
shared transaction.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from config import Settings
from constants import ConnectorType, PlatformSpec, platform_for
from errors import (
    ConnectorAlreadyExists,
    ConnectorNotFound,
    DeadlineExceeded,
    DestinationNotConfigured,
    DestinationUnreachable,
    IngestionTriggerFailed,
    InvalidAccountIdentifier,
    PartialCommitFailure,
    ProvisioningError,
    ProvisioningFailed,
    TableCreationFailed,
    UnreachableDependency,
    UnsupportedConnectorType,
)
from gateways.errors import DuplicateAccountError, GatewayError, InvalidIdentifier, SecretNotFound
from gateways.identifiers import canonical_account_id, ingestion_table_name
from gateways.ingestion import IngestionTriggerClient
from gateways.mapping import MappingStoreGateway
from gateways.registry import ConnectorRecord, RegistryStoreGateway
from gateways.tenant_db import TenantDatabaseGateway
from gateways.vault import VaultClient
from schemas.connector import PlatformCredentials
from services.saga_log import Compensation, CompensationFailure, SagaLog, Step
from utils.deadline import Deadline

logger = logging.getLogger(__name__)

TenantConnector = Callable[..., TenantDatabaseGateway]


class ProvisioningStatus(str, Enum):
    COMPLETED = "completed"
    # Registered, but the ingestion table is missing; retry_table_creation() fixes it.
    TABLE_PENDING = "table_pending"
    # Registered and ingest-ready, but no backfill was started; retry_ingestion() fixes it.
    INGESTION_PENDING = "ingestion_pending"


@dataclass
class ProvisioningResult:
    connector_id: uuid.UUID
    source_credential_id: uuid.UUID
    destination_credential_id: uuid.UUID
    table_name: str
    status: ProvisioningStatus
    error: Optional[ProvisioningError] = None
    steps: List[Step] = field(default_factory=list)

    @property
    def is_success(self) -> bool:
        return self.status == ProvisioningStatus.COMPLETED


def resolve_platform(connector_type: ConnectorType | str) -> PlatformSpec:
    try:
        platform = platform_for(ConnectorType(connector_type))
    except ValueError:
        platform = None
    if platform is None:
        raise UnsupportedConnectorType(f"Connector type {connector_type} cannot be provisioned")
    return platform


def account_key_for(external_account_id: str) -> str:
    try:
        return canonical_account_id(external_account_id)
    except InvalidIdentifier as exc:
        raise InvalidAccountIdentifier(str(exc)) from exc


def table_name_for(platform: PlatformSpec, external_account_id: str) -> str:
    try:
        return ingestion_table_name(platform.abbreviation.value, external_account_id)
    except InvalidIdentifier as exc:
        raise InvalidAccountIdentifier(str(exc)) from exc


class ProvisioningSaga:
    def __init__(
        self,
        settings: Settings,
        *,
        vault: VaultClient,
        registry_factory: Callable[[], RegistryStoreGateway],
        mapping_factory: Callable[[], MappingStoreGateway],
        tenant_connector: TenantConnector,
        ingestion: IngestionTriggerClient,
    ) -> None:
        self.settings = settings
        self.vault = vault
        self.registry_factory = registry_factory
        self.mapping_factory = mapping_factory
        self.tenant_connector = tenant_connector
        self.ingestion = ingestion

    def provision(
        self,
        credentials: PlatformCredentials,
        company_id: uuid.UUID,
        connector_id: uuid.UUID,
        connector_type: ConnectorType | str,
        *,
        display_name: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> ProvisioningResult:
        """
        Provision one connector.

        Raises a ProvisioningError subclass when nothing (or, for PartialCommitFailure,
        not everything) was committed. Failures after the commit (table creation,
        backfill trigger) are reported on the returned result instead.
        """
        platform = resolve_platform(connector_type)
        deadline = deadline or Deadline(self.settings.saga_timeout_seconds)
        account_id = account_key_for(credentials.account_id)
        table_name = table_name_for(platform, account_id)
        name = display_name or platform.display_name
        log = SagaLog(connector_id)
        logger.info(
            "Provisioning %s connector %s for company %s (account %s)",
            platform.display_name, connector_id, company_id, account_id,
        )

        # 1. source credential id
        source_credential_id = uuid.uuid4()
        log.done(Step.GENERATE_SOURCE_CREDENTIAL_ID)

        # 2. destination credential
        destination_credential_id = self._resolve_destination(company_id, connector_id, deadline)
        log.done(Step.RESOLVE_DESTINATION)

        # 3. destination database handle
        tenant_db = self._connect_destination(destination_credential_id, connector_id, deadline)
        log.done(Step.CONNECT_DESTINATION)
        try:
            # 4. duplicate guard (fast path; the unique constraint is authoritative)
            self._check_duplicate(platform, account_id, connector_id, deadline)
            log.done(Step.CHECK_DUPLICATE)

            # 5. secret
            self._store_secret(credentials, platform, company_id, connector_id, source_credential_id, deadline)
            log.register(Compensation.DELETE_SECRET, lambda: self._delete_secret(source_credential_id))
            log.done(Step.STORE_SECRET)

            # 6-9. both stores
            self._register(
                log,
                platform=platform,
                company_id=company_id,
                connector_id=connector_id,
                name=name,
                source_credential_id=source_credential_id,
                destination_credential_id=destination_credential_id,
                extra_information=credentials.extra_information(platform.account_key),
                account_id=account_id,
                deadline=deadline,
            )

            result = ProvisioningResult(
                connector_id=connector_id,
                source_credential_id=source_credential_id,
                destination_credential_id=destination_credential_id,
                table_name=table_name,
                status=ProvisioningStatus.COMPLETED,
                steps=log.completed,
            )

            # 10. ingestion table, outside any transaction
            try:
                deadline.check(Step.CREATE_TABLE.value)
                tenant_db.create_ingestion_table(table_name)
            except (GatewayError, DeadlineExceeded) as exc:
                logger.warning("Connector %s registered but table %s not created: %s", connector_id, table_name, exc)
                result.status = ProvisioningStatus.TABLE_PENDING
                result.error = TableCreationFailed(
                    f"Could not create ingestion table {table_name}: {exc}",
                    table_name=table_name,
                    connector_id=connector_id,
                )
                return result
            log.done(Step.CREATE_TABLE)
        finally:
            tenant_db.dispose()

        # 11. backfill
        try:
            deadline.check(Step.TRIGGER_INGESTION.value)
            self.ingestion.trigger_historical(
                platform.connector_type,
                connector_id,
                self.settings.backfill_days,
                timeout=deadline.timeout(self.settings.http_read_timeout),
            )
        except (GatewayError, DeadlineExceeded) as exc:
            logger.warning("Connector %s provisioned but backfill not triggered: %s", connector_id, exc)
            result.status = ProvisioningStatus.INGESTION_PENDING
            result.error = IngestionTriggerFailed(f"Historical ingestion not triggered: {exc}", connector_id=connector_id)
            return result
        log.done(Step.TRIGGER_INGESTION)

        logger.info("Connector %s provisioned (table %s)", connector_id, table_name)
        return result

    def retry_table_creation(self, connector_id: uuid.UUID, *, deadline: Optional[Deadline] = None) -> str:
        """Create the ingestion table of an already registered connector. Safe to repeat."""
        deadline = deadline or Deadline(self.settings.saga_timeout_seconds)
        connector = self._load_connector(connector_id, deadline)
        platform = resolve_platform(connector.connector_type)
        table_name = table_name_for(platform, connector.account_key)
        tenant_db = self._connect_destination(connector.destination_credential_id, connector_id, deadline)
        try:
            deadline.check(Step.CREATE_TABLE.value)
            tenant_db.create_ingestion_table(table_name)
        except (GatewayError, DeadlineExceeded) as exc:
            raise TableCreationFailed(
                f"Could not create ingestion table {table_name}: {exc}", table_name=table_name, connector_id=connector_id
            ) from exc
        finally:
            tenant_db.dispose()
        return table_name

    def retry_ingestion(self, connector_id: uuid.UUID, *, deadline: Optional[Deadline] = None) -> None:
        deadline = deadline or Deadline(self.settings.saga_timeout_seconds)
        connector = self._load_connector(connector_id, deadline)
        platform = resolve_platform(connector.connector_type)
        try:
            deadline.check(Step.TRIGGER_INGESTION.value)
            self.ingestion.trigger_historical(
                platform.connector_type,
                connector_id,
                self.settings.backfill_days,
                timeout=deadline.timeout(self.settings.http_read_timeout),
            )
        except (GatewayError, DeadlineExceeded) as exc:
            raise IngestionTriggerFailed(f"Historical ingestion not triggered: {exc}", connector_id=connector_id) from exc

    # --- steps ---
    def _resolve_destination(self, company_id: uuid.UUID, connector_id: uuid.UUID, deadline: Deadline) -> uuid.UUID:
        deadline.check(Step.RESOLVE_DESTINATION.value)
        try:
            credential_id = self.mapping_factory().get_destination_credential_id(company_id)
        except GatewayError as exc:
            raise UnreachableDependency(f"Mapping store unavailable: {exc}", connector_id=connector_id) from exc
        if credential_id is None:
            raise DestinationNotConfigured(company_id, connector_id=connector_id)
        return credential_id

    def _connect_destination(self, credential_id: uuid.UUID, connector_id: uuid.UUID, deadline: Deadline) -> TenantDatabaseGateway:
        deadline.check(Step.CONNECT_DESTINATION.value)
        try:
            return self.tenant_connector(credential_id, timeout=deadline.timeout(self.settings.http_read_timeout))
        except GatewayError as exc:
            raise DestinationUnreachable(f"Destination database unreachable: {exc}", connector_id=connector_id) from exc

    def _check_duplicate(self, platform: PlatformSpec, account_id: str, connector_id: uuid.UUID, deadline: Deadline) -> None:
        deadline.check(Step.CHECK_DUPLICATE.value)
        registry = self.registry_factory()
        try:
            existing = registry.find_by_account(platform.connector_type.value, account_id)
            clash = existing or registry.get_connector(connector_id)
        except GatewayError as exc:
            raise UnreachableDependency(f"Registry store unavailable: {exc}", connector_id=connector_id) from exc
        if existing is not None:
            raise ConnectorAlreadyExists(
                f"{platform.display_name} account {account_id} is already connected (connector {existing.id})",
                connector_id=connector_id,
            )
        if clash is not None:
            raise ConnectorAlreadyExists(f"Connector {connector_id} already exists", connector_id=connector_id)

    def _store_secret(
        self,
        credentials: PlatformCredentials,
        platform: PlatformSpec,
        company_id: uuid.UUID,
        connector_id: uuid.UUID,
        source_credential_id: uuid.UUID,
        deadline: Deadline,
    ) -> None:
        deadline.check(Step.STORE_SECRET.value)
        try:
            self.vault.store(
                source_credential_id,
                json.dumps(credentials.secret_payload(platform.account_key)),
                f"{company_id} - {platform.display_name}",
                timeout=deadline.timeout(self.settings.http_read_timeout),
            )
        except GatewayError as exc:
            raise UnreachableDependency(f"Could not store credentials in vault: {exc}", connector_id=connector_id) from exc

    def _register(
        self,
        log: SagaLog,
        *,
        platform: PlatformSpec,
        company_id: uuid.UUID,
        connector_id: uuid.UUID,
        name: str,
        source_credential_id: uuid.UUID,
        destination_credential_id: uuid.UUID,
        extra_information: dict,
        account_id: str,
        deadline: Deadline,
    ) -> None:
        registry = self.registry_factory()
        mapping = self.mapping_factory()

        # 6-7. open both transactions and write both sides
        try:
            deadline.check(Step.BEGIN_TRANSACTIONS.value)
            registry.begin(timeout=deadline.remaining())
            log.register(Compensation.ROLLBACK_REGISTRY, registry.rollback)
            registry.lock_connector(connector_id)
            mapping.begin(timeout=deadline.remaining())
            log.register(Compensation.ROLLBACK_MAPPING, mapping.rollback)
            log.done(Step.BEGIN_TRANSACTIONS)

            deadline.check(Step.INSERT_ROWS.value)
            registry.insert_connector(
                connector_id=connector_id,
                connector_type=platform.connector_type.value,
                name=name,
                source_credential_id=source_credential_id,
                destination_credential_id=destination_credential_id,
                account_key=account_id,
                extra_information=extra_information,
                table_type=platform.table_type.value,
            )
            mapping.insert_mapping(
                company_id=company_id,
                connector_id=connector_id,
                connector_type=platform.connector_type.value,
                display_name=name,
                extra_information=extra_information,
            )
            log.done(Step.INSERT_ROWS)
            deadline.check(Step.COMMIT.value)
        except Exception as exc:
            # 8. roll back both, then drop the secret
            failures = log.unwind()
            logger.warning("Provisioning of connector %s rolled back: %s", connector_id, exc)
            if isinstance(exc, DuplicateAccountError):
                raise self._with_failures(
                    ConnectorAlreadyExists(
                        f"{platform.display_name} account {account_id} is already connected", connector_id=connector_id
                    ),
                    failures,
                ) from exc
            if isinstance(exc, (GatewayError, ProvisioningError)):
                raise self._with_failures(
                    ProvisioningFailed(f"Provisioning failed and was rolled back: {exc}", connector_id=connector_id),
                    failures,
                ) from exc
            raise

        # 9. commit registry, then mapping
        try:
            registry.commit()
        except GatewayError as exc:
            log.discard(Compensation.ROLLBACK_REGISTRY)
            failures = log.unwind()
            logger.warning("Registry commit failed for connector %s, rolled back: %s", connector_id, exc)
            raise self._with_failures(
                ProvisioningFailed(f"Registry commit failed: {exc}", connector_id=connector_id), failures
            ) from exc
        log.discard(Compensation.ROLLBACK_REGISTRY)
        log.register(Compensation.DELETE_REGISTRY_ROWS, lambda: self._delete_registry_rows(connector_id))

        try:
            mapping.commit()
        except GatewayError as exc:
            log.discard(Compensation.ROLLBACK_MAPPING)
            failures = log.unwind()
            reconciled = all(f.compensation != Compensation.DELETE_REGISTRY_ROWS for f in failures)
            err = self._with_failures(
                PartialCommitFailure(
                    f"Mapping commit failed after registry commit for connector {connector_id}: {exc}",
                    connector_id=connector_id,
                    reconciled=reconciled,
                ),
                failures,
            )
            if reconciled:
                logger.error(
                    "PARTIAL COMMIT: connector %s (company %s) registry rows committed then removed after mapping commit failed: %s",
                    connector_id, company_id, exc,
                )
            else:
                logger.critical(
                    "PARTIAL COMMIT UNRECONCILED: connector %s (company %s, source credential %s, destination credential %s) "
                    "exists in the registry without a company mapping; manual cleanup required. cause=%s compensation_failures=%s",
                    connector_id, company_id, source_credential_id, destination_credential_id,
                    exc, "; ".join(str(f) for f in failures),
                )
            raise err from exc
        log.discard(Compensation.ROLLBACK_MAPPING, Compensation.DELETE_REGISTRY_ROWS, Compensation.DELETE_SECRET)
        log.done(Step.COMMIT)

    # --- compensations ---
    def _delete_secret(self, source_credential_id: uuid.UUID) -> None:
        # Runs even when the request deadline is spent, on the configured timeout.
        try:
            self.vault.delete(source_credential_id, timeout=self.settings.http_read_timeout)
        except SecretNotFound:
            pass

    def _delete_registry_rows(self, connector_id: uuid.UUID) -> None:
        registry = self.registry_factory()
        registry.begin(timeout=self.settings.statement_timeout_ms / 1000)
        try:
            registry.lock_connector(connector_id)
            registry.delete_connector(connector_id)
            registry.commit()
        except Exception:
            registry.rollback()
            raise

    def _load_connector(self, connector_id: uuid.UUID, deadline: Deadline) -> ConnectorRecord:
        deadline.check("load connector")
        try:
            connector = self.registry_factory().get_connector(connector_id)
        except GatewayError as exc:
            raise UnreachableDependency(f"Registry store unavailable: {exc}", connector_id=connector_id) from exc
        if connector is None:
            raise ConnectorNotFound(f"Connector {connector_id} not found", connector_id=connector_id)
        return connector

    @staticmethod
    def _with_failures(err: ProvisioningError, failures: List[CompensationFailure]) -> ProvisioningError:
        err.compensation_failures = list(failures)
        return err
