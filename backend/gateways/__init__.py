from .errors import (
    DuplicateAccountError,
    GatewayError,
    IngestionTriggerError,
    InvalidIdentifier,
    SecretNotFound,
    StoreError,
    StoreTimeout,
    TenantDatabaseError,
    VaultError,
    VaultUnavailable,
)
from .ingestion import IngestionTriggerClient
from .mapping import MappingRecord, MappingStoreGateway
from .registry import ConnectorRecord, RegistryStoreGateway
from .tenant_db import TenantDatabaseGateway, connect_tenant_database
from .vault import VaultClient
from .identifiers import build_identifier, ingestion_table_name, is_valid_account_id
