import uuid

import pytest
from sqlalchemy import func, select

from constants import ConnectorType
from errors import InvalidAccountIdentifier, TableDropFailed, TeardownPartialFailure, UnsupportedConnectorType
from gateways.errors import StoreError, TenantDatabaseError
from gateways.registry import RegistryStoreGateway
from gateways.tenant_db import TenantDatabaseGateway
from models.connector import Connector, SubConnector
from models.mapping import CompanyConnectorMapping
from services.saga_log import TeardownStep
from services.teardown import TeardownSaga


def count(sessions, model):
    with sessions() as s:
        return s.scalar(select(func.count()).select_from(model))


@pytest.fixture
def provisioned(provisioning_saga, credentials, company_id):
    connector_id = uuid.uuid4()
    result = provisioning_saga.provision(credentials, company_id, connector_id, ConnectorType.GOOGLE_ADS)
    assert result.is_success
    return result


def test_deprovision_removes_all_artifacts(
    teardown_saga, provisioned, company_id, vault, tenant_db, registry_sessions, mapping_sessions
):
    report = teardown_saga.deprovision(provisioned.connector_id, "123", "gad", company_id=company_id)

    assert report.ok
    assert report.table_name == "gad_123"
    assert report.completed == [
        TeardownStep.RESOLVE_CONNECTOR,
        TeardownStep.DELETE_MAPPING,
        TeardownStep.DELETE_SECRET,
        TeardownStep.DELETE_CONNECTOR,
        TeardownStep.DROP_TABLE,
    ]
    assert count(registry_sessions, Connector) == 0
    assert count(registry_sessions, SubConnector) == 0
    assert count(mapping_sessions, CompanyConnectorMapping) == 0
    assert provisioned.source_credential_id not in vault.secrets
    # the company's destination credential is not the connector's to delete
    assert provisioned.destination_credential_id in vault.secrets
    assert not tenant_db.table_exists("gad_123")


def test_deprovision_twice_is_idempotent(teardown_saga, provisioned, company_id, registry_sessions, tenant_db):
    first = teardown_saga.deprovision(provisioned.connector_id, "123", "gad", company_id=company_id)
    second = teardown_saga.deprovision(provisioned.connector_id, "123", "gad", company_id=company_id)

    assert first.ok and second.ok
    assert second.failures == []
    assert TeardownStep.DELETE_SECRET in second.skipped
    assert TeardownStep.DELETE_CONNECTOR in second.skipped
    assert TeardownStep.DROP_TABLE in second.completed
    assert not tenant_db.table_exists("gad_123")
    assert count(registry_sessions, Connector) == 0
    second.raise_for_failures()


def test_deprovision_unknown_connector_is_success(teardown_saga, company_id):
    report = teardown_saga.deprovision(uuid.uuid4(), "999", "fad", company_id=company_id)
    assert report.ok
    assert report.skipped == [TeardownStep.DELETE_SECRET, TeardownStep.DELETE_CONNECTOR]
    assert TeardownStep.DROP_TABLE in report.completed


def test_reprovision_after_teardown(teardown_saga, provisioning_saga, provisioned, credentials, company_id, tenant_db):
    teardown_saga.deprovision(provisioned.connector_id, "123", "gad", company_id=company_id)

    new_id = uuid.uuid4()
    result = provisioning_saga.provision(credentials, company_id, new_id, ConnectorType.GOOGLE_ADS)
    assert result.is_success
    assert result.connector_id == new_id
    assert tenant_db.table_exists("gad_123")


def test_failures_are_collected_and_later_steps_still_run(
    teardown_saga, provisioned, company_id, vault, tenant_db, registry_sessions, mapping_sessions
):
    vault.fail_on = {"delete"}
    report = teardown_saga.deprovision(provisioned.connector_id, "123", "gad", company_id=company_id)

    assert not report.ok
    assert [f.step for f in report.failures] == [TeardownStep.DELETE_SECRET]
    assert TeardownStep.DELETE_MAPPING in report.completed
    assert TeardownStep.DELETE_CONNECTOR in report.completed
    assert TeardownStep.DROP_TABLE in report.completed
    assert count(mapping_sessions, CompanyConnectorMapping) == 0
    assert count(registry_sessions, Connector) == 0
    assert not tenant_db.table_exists("gad_123")

    with pytest.raises(TeardownPartialFailure) as exc_info:
        report.raise_for_failures()
    assert exc_info.value.failures == report.failures
    assert "delete_secret" in str(exc_info.value)


def test_unresolvable_connector_keeps_registry_row(
    teardown_saga, provisioned, company_id, vault, tenant_db, registry_sessions, mapping_sessions, monkeypatch
):
    def unavailable(self, connector_id):
        raise StoreError("registry: get_connector failed: connection refused")

    monkeypatch.setattr(RegistryStoreGateway, "get_connector", unavailable)
    report = teardown_saga.deprovision(provisioned.connector_id, "123", "gad", company_id=company_id)

    failed = [f.step for f in report.failures]
    assert TeardownStep.RESOLVE_CONNECTOR in failed
    assert TeardownStep.DELETE_SECRET in failed
    assert TeardownStep.DELETE_CONNECTOR in failed
    # the table is found through the company destination
    assert TeardownStep.DROP_TABLE in report.completed
    assert not tenant_db.table_exists("gad_123")
    assert count(mapping_sessions, CompanyConnectorMapping) == 0
    assert count(registry_sessions, Connector) == 1
    assert provisioned.source_credential_id in vault.secrets

    # once the registry answers again, a retry finishes the job
    monkeypatch.undo()
    retry = teardown_saga.deprovision(provisioned.connector_id, "123", "gad", company_id=company_id)
    assert retry.ok
    assert count(registry_sessions, Connector) == 0
    assert provisioned.source_credential_id not in vault.secrets


def test_retry_after_failed_drop_still_drops_table(
    teardown_saga, provisioned, company_id, tenant_db, registry_sessions, monkeypatch
):
    def locked(self, name):
        raise TenantDatabaseError(f"Could not drop table {name}: lock timeout")

    monkeypatch.setattr(TenantDatabaseGateway, "drop_table", locked)
    first = teardown_saga.deprovision(provisioned.connector_id, "123", "gad", company_id=company_id)
    assert [f.step for f in first.failures] == [TeardownStep.DROP_TABLE]
    assert count(registry_sessions, Connector) == 0
    assert tenant_db.table_exists("gad_123")

    # registry row is gone; the table is located through the company destination
    monkeypatch.undo()
    retry = teardown_saga.deprovision(provisioned.connector_id, "123", "gad", company_id=company_id)
    assert retry.ok
    assert TeardownStep.DROP_TABLE in retry.completed
    assert TeardownStep.DROP_TABLE not in retry.skipped
    assert not tenant_db.table_exists("gad_123")


def test_unresolvable_destination_is_a_failure_not_a_skip(
    teardown_saga, provisioned, company_id, tenant_db, monkeypatch
):
    def locked(self, name):
        raise TenantDatabaseError(f"Could not drop table {name}: lock timeout")

    monkeypatch.setattr(TenantDatabaseGateway, "drop_table", locked)
    teardown_saga.deprovision(provisioned.connector_id, "123", "gad", company_id=company_id)
    monkeypatch.undo()

    retry = teardown_saga.deprovision(provisioned.connector_id, "123", "gad", company_id=uuid.uuid4())
    assert not retry.ok
    assert [f.step for f in retry.failures] == [TeardownStep.DROP_TABLE]
    assert TeardownStep.DROP_TABLE not in retry.skipped
    assert tenant_db.table_exists("gad_123")


def test_unconfigured_company_reports_table_step(teardown_saga):
    report = teardown_saga.deprovision(uuid.uuid4(), "123", "gad", company_id=uuid.uuid4())
    assert [f.step for f in report.failures] == [TeardownStep.DROP_TABLE]


def test_drop_table_failure_is_reported(
    settings, vault, registry_factory, mapping_factory, provisioned, company_id, registry_sessions
):
    def unreachable(credential_id, timeout=None):
        raise TenantDatabaseError("Destination database unreachable: connection refused")

    saga = TeardownSaga(
        settings,
        vault=vault,
        registry_factory=registry_factory,
        mapping_factory=mapping_factory,
        tenant_connector=unreachable,
    )
    report = saga.deprovision(provisioned.connector_id, "123", "gad", company_id=company_id)

    assert [f.step for f in report.failures] == [TeardownStep.DROP_TABLE]
    assert isinstance(report.failures[0].error, TableDropFailed)
    assert report.failures[0].error.table_name == "gad_123"
    assert count(registry_sessions, Connector) == 0


def test_invalid_account_id_is_rejected_before_any_step(teardown_saga, vault):
    with pytest.raises(InvalidAccountIdentifier):
        teardown_saga.deprovision(uuid.uuid4(), "123;drop", "gad", company_id=uuid.uuid4())
    assert vault.calls == []


def test_unknown_source_abbreviation(teardown_saga):
    with pytest.raises(UnsupportedConnectorType):
        teardown_saga.deprovision(uuid.uuid4(), "123", "xyz", company_id=uuid.uuid4())
