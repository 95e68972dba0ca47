"""
Builds the sagas from validated settings. Engines, HTTP sessions and session
factories are shared; store gateways are created per saga invocation.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache, partial

from config import Settings, get_settings
from db import make_engine, make_session_factory
from gateways.ingestion import IngestionTriggerClient
from gateways.mapping import MappingStoreGateway
from gateways.registry import RegistryStoreGateway
from gateways.tenant_db import connect_tenant_database
from gateways.vault import VaultClient
from services.directory import ConnectorDirectory
from services.provisioning import ProvisioningSaga
from services.teardown import TeardownSaga


@dataclass(frozen=True)
class Services:
    provisioning: ProvisioningSaga
    teardown: TeardownSaga
    directory: ConnectorDirectory


def build_services(settings: Settings) -> Services:
    registry_sessions = make_session_factory(make_engine(settings.registry_database_url))
    mapping_sessions = make_session_factory(make_engine(settings.mapping_database_url))
    registry_factory = partial(
        RegistryStoreGateway, registry_sessions, statement_timeout_ms=settings.statement_timeout_ms
    )
    mapping_factory = partial(
        MappingStoreGateway, mapping_sessions, statement_timeout_ms=settings.statement_timeout_ms
    )
    vault = VaultClient(
        base_url=settings.vault_url,
        token=settings.vault_token,
        connect_timeout=settings.http_connect_timeout,
        read_timeout=settings.http_read_timeout,
        retry_max=settings.http_retry_max,
        backoff_base=settings.http_backoff_base,
    )
    ingestion = IngestionTriggerClient(
        base_url=settings.ingestion_url,
        token=settings.ingestion_token,
        connect_timeout=settings.http_connect_timeout,
        read_timeout=settings.http_read_timeout,
    )
    tenant_connector = partial(connect_tenant_database, vault, statement_timeout_ms=settings.statement_timeout_ms)
    return Services(
        provisioning=ProvisioningSaga(
            settings,
            vault=vault,
            registry_factory=registry_factory,
            mapping_factory=mapping_factory,
            tenant_connector=tenant_connector,
            ingestion=ingestion,
        ),
        teardown=TeardownSaga(
            settings,
            vault=vault,
            registry_factory=registry_factory,
            mapping_factory=mapping_factory,
            tenant_connector=tenant_connector,
        ),
        directory=ConnectorDirectory(registry_factory=registry_factory, mapping_factory=mapping_factory),
    )


@lru_cache(maxsize=1)
def get_services() -> Services:
    return build_services(get_settings())


# FastAPI dependencies
def get_provisioning_saga() -> ProvisioningSaga:
    return get_services().provisioning


def get_teardown_saga() -> TeardownSaga:
    return get_services().teardown


def get_directory() -> ConnectorDirectory:
    return get_services().directory
