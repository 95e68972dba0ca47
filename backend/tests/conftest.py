import json
import uuid
from functools import partial

import pytest

from config import Settings
from db import make_engine, make_session_factory
from gateways.errors import IngestionTriggerError, SecretNotFound, VaultUnavailable
from gateways.mapping import MappingStoreGateway
from gateways.registry import RegistryStoreGateway
from gateways.tenant_db import TenantDatabaseGateway, connect_tenant_database
from models.base import MappingBase, RegistryBase
from models.connector import Connector, SubConnector  # noqa: F401
from models.mapping import CompanyConnectorMapping, CompanyDestination  # noqa: F401
from schemas.connector import PlatformCredentials
from services.provisioning import ProvisioningSaga
from services.teardown import TeardownSaga


class FakeVault:
    """In-memory stand-in for VaultClient. ``fail_on`` holds method names that raise VaultUnavailable."""

    def __init__(self):
        self.secrets = {}
        self.labels = {}
        self.fail_on = set()
        self.calls = []

    def _maybe_fail(self, method):
        self.calls.append(method)
        if method in self.fail_on:
            raise VaultUnavailable(f"vault {method} unavailable")

    def store(self, credential_id, secret_json, label, timeout=None):
        self._maybe_fail("store")
        self.secrets[credential_id] = secret_json
        self.labels[credential_id] = label

    def fetch(self, credential_id, timeout=None):
        self._maybe_fail("fetch")
        if credential_id not in self.secrets:
            raise SecretNotFound(f"Credential {credential_id} not found", status_code=404)
        return json.loads(self.secrets[credential_id])

    def delete(self, credential_id, timeout=None):
        self._maybe_fail("delete")
        if credential_id not in self.secrets:
            raise SecretNotFound(f"Credential {credential_id} not found", status_code=404)
        del self.secrets[credential_id]
        self.labels.pop(credential_id, None)


class FakeIngestion:
    def __init__(self):
        self.calls = []
        self.fail = False

    def trigger_historical(self, connector_type, connector_id, duration_days, timeout=None):
        if self.fail:
            raise IngestionTriggerError("ingestion service returned 503", status_code=503)
        self.calls.append((connector_type, connector_id, duration_days))
        return {"status": "queued"}


@pytest.fixture
def settings(tmp_path):
    return Settings(
        registry_database_url=f"sqlite:///{tmp_path / 'registry.db'}",
        mapping_database_url=f"sqlite:///{tmp_path / 'mapping.db'}",
        vault_url="http://vault.test",
        vault_token="vault-token",
        ingestion_url="http://ingestion.test",
        ingestion_token="ingestion-token",
        http_backoff_base=0,
    )


@pytest.fixture
def registry_sessions(settings):
    engine = make_engine(settings.registry_database_url)
    RegistryBase.metadata.create_all(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def mapping_sessions(settings):
    engine = make_engine(settings.mapping_database_url)
    MappingBase.metadata.create_all(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def registry_factory(registry_sessions, settings):
    return partial(RegistryStoreGateway, registry_sessions, statement_timeout_ms=settings.statement_timeout_ms)


@pytest.fixture
def mapping_factory(mapping_sessions, settings):
    return partial(MappingStoreGateway, mapping_sessions, statement_timeout_ms=settings.statement_timeout_ms)


@pytest.fixture
def vault():
    return FakeVault()


@pytest.fixture
def ingestion():
    return FakeIngestion()


@pytest.fixture
def tenant_url(tmp_path):
    return f"sqlite:///{tmp_path / 'tenant.db'}"


@pytest.fixture
def company_id(vault, mapping_factory, tenant_url):
    """A company whose destination database is configured and reachable."""
    company = uuid.uuid4()
    destination_credential_id = uuid.uuid4()
    vault.secrets[destination_credential_id] = json.dumps({"url": tenant_url})
    mapping_factory().set_destination_credential_id(company, destination_credential_id)
    return company


@pytest.fixture
def tenant_db(tenant_url):
    gateway = TenantDatabaseGateway(make_engine(tenant_url))
    yield gateway
    gateway.dispose()


@pytest.fixture
def tenant_connector(vault):
    return partial(connect_tenant_database, vault)


@pytest.fixture
def provisioning_saga(settings, vault, registry_factory, mapping_factory, tenant_connector, ingestion):
    return ProvisioningSaga(
        settings,
        vault=vault,
        registry_factory=registry_factory,
        mapping_factory=mapping_factory,
        tenant_connector=tenant_connector,
        ingestion=ingestion,
    )


@pytest.fixture
def teardown_saga(settings, vault, registry_factory, mapping_factory, tenant_connector):
    return TeardownSaga(
        settings,
        vault=vault,
        registry_factory=registry_factory,
        mapping_factory=mapping_factory,
        tenant_connector=tenant_connector,
    )


@pytest.fixture
def credentials():
    return PlatformCredentials(refresh_token="1//refresh-token", account_id="123", account_name="Acme Ads")
