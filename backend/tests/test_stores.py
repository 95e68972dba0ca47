import uuid
from types import SimpleNamespace

import pytest

from constants import ConnectorTableType, ConnectorType
from gateways.errors import DuplicateAccountError, StoreError


def insert(registry, connector_id=None, account="123", connector_type=ConnectorType.GOOGLE_ADS):
    connector_id = connector_id or uuid.uuid4()
    registry.insert_connector(
        connector_id=connector_id,
        connector_type=connector_type.value,
        name="Google Ads",
        source_credential_id=uuid.uuid4(),
        destination_credential_id=uuid.uuid4(),
        account_key=account,
        extra_information={"loginCustomerId": account},
        table_type=ConnectorTableType.GOOGLE_ADS.value,
    )
    return connector_id


def test_registry_insert_commit_and_read(registry_factory):
    registry = registry_factory()
    registry.begin()
    assert registry.in_transaction
    connector_id = insert(registry)
    registry.commit()
    assert not registry.in_transaction

    record = registry_factory().get_connector(connector_id)
    assert record.account_key == "123"
    assert record.extra_information == {"loginCustomerId": "123"}
    assert registry_factory().find_by_account(ConnectorType.GOOGLE_ADS.value, "123").id == connector_id
    assert registry_factory().find_by_account(ConnectorType.FACEBOOK_ADS.value, "123") is None


def test_registry_rollback_discards_rows(registry_factory):
    registry = registry_factory()
    registry.begin()
    connector_id = insert(registry)
    registry.rollback()
    assert registry_factory().get_connector(connector_id) is None
    # nothing open any more; a second rollback is a no-op
    registry.rollback()


def test_registry_duplicate_account_maps_to_duplicate_error(registry_factory):
    first = registry_factory()
    first.begin()
    insert(first)
    first.commit()

    second = registry_factory()
    second.begin()
    with pytest.raises(DuplicateAccountError):
        insert(second)
    second.rollback()


def test_registry_writes_require_open_transaction(registry_factory):
    registry = registry_factory()
    with pytest.raises(StoreError):
        insert(registry)
    with pytest.raises(StoreError):
        registry.commit()
    with pytest.raises(StoreError):
        registry.lock_connector(uuid.uuid4())


def test_lock_connector_takes_advisory_lock_on_postgresql(registry_factory, monkeypatch):
    registry = registry_factory()
    registry.begin()
    session = registry._session
    issued = []
    monkeypatch.setattr(session, "get_bind", lambda *a, **k: SimpleNamespace(dialect=SimpleNamespace(name="postgresql")))
    monkeypatch.setattr(session, "execute", lambda stmt, params=None, **k: issued.append((str(stmt), params)))

    connector_id = uuid.uuid4()
    registry.lock_connector(connector_id)
    registry.rollback()

    assert issued == [("SELECT pg_advisory_xact_lock(:key)", {"key": connector_id.int & 0x7FFF_FFFF_FFFF_FFFF})]
    assert 0 <= issued[0][1]["key"] < 2 ** 63


def test_lock_connector_is_a_no_op_on_sqlite(registry_factory, monkeypatch):
    registry = registry_factory()
    registry.begin()
    issued = []
    monkeypatch.setattr(registry._session, "execute", lambda stmt, params=None, **k: issued.append(str(stmt)))
    registry.lock_connector(uuid.uuid4())
    registry.rollback()
    assert issued == []


def test_registry_begin_twice_is_an_error(registry_factory):
    registry = registry_factory()
    registry.begin()
    with pytest.raises(StoreError):
        registry.begin()
    registry.rollback()


def test_registry_delete_connector(registry_factory):
    registry = registry_factory()
    registry.begin()
    connector_id = insert(registry)
    registry.commit()

    assert registry_factory().delete_connector(connector_id) is True
    assert registry_factory().delete_connector(connector_id) is False
    assert registry_factory().get_connector(connector_id) is None


def test_registry_connectors_by_ids(registry_factory):
    registry = registry_factory()
    registry.begin()
    a = insert(registry, account="111")
    b = insert(registry, account="222")
    registry.commit()
    found = {c.id for c in registry_factory().connectors_by_ids([a, b, uuid.uuid4()])}
    assert found == {a, b}
    assert registry_factory().connectors_by_ids([]) == []


def test_registry_execute_raw_query(registry_factory):
    registry = registry_factory()
    registry.begin()
    insert(registry, account="777")
    rows = registry.execute("SELECT account_key FROM connectors WHERE account_key = :a", {"a": "777"})
    registry.commit()
    assert [r["account_key"] for r in rows] == ["777"]


def test_registry_execute_translates_errors(registry_factory):
    with pytest.raises(StoreError):
        registry_factory().execute("SELECT * FROM no_such_table")


def test_mapping_destination_round_trip(mapping_factory):
    mapping = mapping_factory()
    company, credential = uuid.uuid4(), uuid.uuid4()
    assert mapping.get_destination_credential_id(company) is None
    mapping.set_destination_credential_id(company, credential)
    assert mapping_factory().get_destination_credential_id(company) == credential

    replacement = uuid.uuid4()
    mapping_factory().set_destination_credential_id(company, replacement)
    assert mapping_factory().get_destination_credential_id(company) == replacement


def test_mapping_insert_list_delete(mapping_factory):
    company = uuid.uuid4()
    mapping = mapping_factory()
    mapping.begin()
    ids = []
    for connector_type in (ConnectorType.GOOGLE_ADS, ConnectorType.FACEBOOK_ADS):
        connector_id = uuid.uuid4()
        ids.append(connector_id)
        mapping.insert_mapping(
            company_id=company,
            connector_id=connector_id,
            connector_type=connector_type.value,
            display_name=connector_type.name,
            extra_information={},
        )
    mapping.commit()

    assert {m.connector_id for m in mapping_factory().list_for_company(company)} == set(ids)
    only_fb = mapping_factory().list_for_company(company, ConnectorType.FACEBOOK_ADS.value)
    assert [m.connector_id for m in only_fb] == [ids[1]]
    assert mapping_factory().list_for_company(uuid.uuid4()) == []

    assert mapping_factory().delete_mapping(ids[0]) is True
    assert mapping_factory().delete_mapping(ids[0]) is False
    assert mapping_factory().get_mapping(ids[0]) is None
    assert mapping_factory().get_mapping(ids[1]).company_id == company


def test_mapping_insert_requires_transaction(mapping_factory):
    with pytest.raises(StoreError):
        mapping_factory().insert_mapping(
            company_id=uuid.uuid4(),
            connector_id=uuid.uuid4(),
            connector_type=ConnectorType.GOOGLE_ADS.value,
            display_name="x",
            extra_information={},
        )
