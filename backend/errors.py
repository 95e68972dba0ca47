"""
Provisioning / teardown error taxonomy.

Every error carries a stable ``classification`` string so callers (and the HTTP
layer) can tell an ordinary failure apart from a true cross-store inconsistency.
"""
from __future__ import annotations

from typing import Any, List, Optional
from uuid import UUID


class ProvisioningError(Exception):
    classification = "provisioning_error"

    def __init__(self, message: str, *, connector_id: Optional[UUID] = None) -> None:
        super().__init__(message)
        self.message = message
        self.connector_id = connector_id
        # Filled in by the saga when a compensation itself failed.
        self.compensation_failures: List[Any] = []

    def __str__(self) -> str:
        return self.message


# --- configuration ---
class ConfigurationError(ProvisioningError):
    classification = "configuration_error"


class DestinationNotConfigured(ConfigurationError):
    classification = "destination_not_configured"

    def __init__(self, company_id: UUID, *, connector_id: Optional[UUID] = None) -> None:
        super().__init__(f"No destination database configured for company {company_id}", connector_id=connector_id)
        self.company_id = company_id


class UnsupportedConnectorType(ConfigurationError):
    classification = "unsupported_connector_type"


class InvalidAccountIdentifier(ConfigurationError):
    classification = "invalid_account_identifier"


class ConnectorNotFound(ConfigurationError):
    classification = "connector_not_found"


# --- dependencies ---
class UnreachableDependency(ProvisioningError):
    classification = "unreachable_dependency"


class DestinationUnreachable(UnreachableDependency):
    classification = "destination_unreachable"


class DeadlineExceeded(UnreachableDependency):
    classification = "deadline_exceeded"


# --- duplicates ---
class DuplicateConnector(ProvisioningError):
    classification = "duplicate_connector"


class ConnectorAlreadyExists(DuplicateConnector):
    classification = "connector_already_exists"


# --- transactional phase ---
class ProvisioningFailed(ProvisioningError):
    """A failure inside the transactional phase. Both stores were rolled back."""

    classification = "provisioning_failed"


class PartialCommitFailure(ProvisioningError):
    """
    The registry store committed but the mapping store did not.
    ``reconciled`` tells whether the reversing delete of the registry rows went through;
    when it did not, the stores disagree until an operator intervenes.
    """

    classification = "partial_commit_failure"

    def __init__(self, message: str, *, connector_id: Optional[UUID] = None, reconciled: bool = False) -> None:
        super().__init__(message, connector_id=connector_id)
        self.reconciled = reconciled


# --- after commit ---
class TableLifecycleError(ProvisioningError):
    classification = "table_lifecycle_error"

    def __init__(self, message: str, *, table_name: str, connector_id: Optional[UUID] = None) -> None:
        super().__init__(message, connector_id=connector_id)
        self.table_name = table_name


class TableCreationFailed(TableLifecycleError):
    classification = "table_creation_failed"


class TableDropFailed(TableLifecycleError):
    classification = "table_drop_failed"


class IngestionTriggerFailed(ProvisioningError):
    classification = "ingestion_trigger_failed"


# --- teardown ---
class TeardownPartialFailure(ProvisioningError):
    classification = "teardown_partial_failure"

    def __init__(self, connector_id: UUID, failures: List[Any]) -> None:
        steps = ", ".join(f.step.value for f in failures)
        super().__init__(f"Teardown of connector {connector_id} failed at: {steps}", connector_id=connector_id)
        self.failures = list(failures)
