"""
Forward steps and compensations for the provisioning / teardown sagas.

A ``SagaLog`` lives for exactly one saga invocation. Forward steps are recorded as
they complete; compensations are registered as soon as there is something to undo
and unwound newest-first when a later step fails.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Tuple

logger = logging.getLogger(__name__)


class Step(str, Enum):
    GENERATE_SOURCE_CREDENTIAL_ID = "generate_source_credential_id"
    RESOLVE_DESTINATION = "resolve_destination"
    CONNECT_DESTINATION = "connect_destination"
    CHECK_DUPLICATE = "check_duplicate"
    STORE_SECRET = "store_secret"
    BEGIN_TRANSACTIONS = "begin_transactions"
    INSERT_ROWS = "insert_rows"
    COMMIT = "commit"
    CREATE_TABLE = "create_table"
    TRIGGER_INGESTION = "trigger_ingestion"


class TeardownStep(str, Enum):
    RESOLVE_CONNECTOR = "resolve_connector"
    DELETE_MAPPING = "delete_mapping"
    DELETE_SECRET = "delete_secret"
    DELETE_CONNECTOR = "delete_connector"
    DROP_TABLE = "drop_table"


class Compensation(str, Enum):
    ROLLBACK_REGISTRY = "rollback_registry"
    ROLLBACK_MAPPING = "rollback_mapping"
    DELETE_SECRET = "delete_secret"
    DELETE_REGISTRY_ROWS = "delete_registry_rows"


@dataclass
class CompensationFailure:
    compensation: Compensation
    error: Exception

    def __str__(self) -> str:
        return f"{self.compensation.value}: {self.error}"


@dataclass
class SagaLog:
    connector_id: uuid.UUID
    completed: List[Step] = field(default_factory=list)
    _pending: List[Tuple[Compensation, Callable[[], None]]] = field(default_factory=list)

    def done(self, step: Step) -> None:
        self.completed.append(step)
        logger.debug("connector %s: %s done", self.connector_id, step.value)

    def register(self, compensation: Compensation, action: Callable[[], None]) -> None:
        self._pending.append((compensation, action))

    def discard(self, *compensations: Compensation) -> None:
        """Forget compensations that no longer apply (e.g. a rollback after the commit succeeded)."""
        self._pending = [(c, a) for c, a in self._pending if c not in compensations]

    @property
    def pending(self) -> List[Compensation]:
        return [c for c, _ in self._pending]

    def unwind(self) -> List[CompensationFailure]:
        """Run every pending compensation newest-first. A failing one does not stop the rest."""
        failures: List[CompensationFailure] = []
        while self._pending:
            compensation, action = self._pending.pop()
            try:
                action()
                logger.info("connector %s: compensation %s done", self.connector_id, compensation.value)
            except Exception as exc:
                logger.error("connector %s: compensation %s failed: %s", self.connector_id, compensation.value, exc)
                failures.append(CompensationFailure(compensation, exc))
        return failures
