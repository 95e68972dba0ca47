"""
Global and domain-specific constants for connector provisioning.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Final, Optional


class ConnectorType(str, Enum):
    # Values are shared with the ingestion service, do not change them.
    FRESHSALES = "3ec459aa-ecbd-4829-a89a-9d4284887a1a"
    GOOGLE_ADS = "800c28ce-43ea-44b8-b6fc-077f44566296"
    FACEBOOK_ADS = "d80731db-155e-4a24-bc58-158a57edabd7"
    GOOGLE_ANALYTICS = "cc991d2b-dc83-458e-8e8d-9b47164c735f"


class ConnectorTableType(str, Enum):
    FRESHSALES_CONTACTS = "d56fd051-ae14-40b4-ab4b-ec449738d2ff"
    FRESHSALES_CONTACT_DETAILS = "b8936660-e580-4ab3-84f6-49b8a2342d0c"
    GOOGLE_ADS = "4cf54b5c-66eb-4eeb-9a84-71dc42635c13"
    FACEBOOK_ADS = "169fbcec-811a-4e27-9ace-9087ee8cf3d5"
    GOOGLE_ANALYTICS = "c9d5f4f9-630b-4e89-a886-23a6271d54c9"


class SourceAbbreviation(str, Enum):
    GOOGLE_ADS = "gad"
    FACEBOOK_ADS = "fad"
    GOOGLE_ANALYTICS = "ga"


@dataclass(frozen=True)
class PlatformSpec:
    connector_type: ConnectorType
    display_name: str
    abbreviation: SourceAbbreviation
    account_key: str          # key of the external account id inside extra_information
    table_type: ConnectorTableType
    ingestion_path: str       # path segment of the ingestion service's historical endpoint


PLATFORMS: Final[Dict[ConnectorType, PlatformSpec]] = {
    ConnectorType.GOOGLE_ADS: PlatformSpec(
        connector_type=ConnectorType.GOOGLE_ADS,
        display_name="Google Ads",
        abbreviation=SourceAbbreviation.GOOGLE_ADS,
        account_key="loginCustomerId",
        table_type=ConnectorTableType.GOOGLE_ADS,
        ingestion_path="googleads",
    ),
    ConnectorType.GOOGLE_ANALYTICS: PlatformSpec(
        connector_type=ConnectorType.GOOGLE_ANALYTICS,
        display_name="Google Analytics",
        abbreviation=SourceAbbreviation.GOOGLE_ANALYTICS,
        account_key="propertyId",
        table_type=ConnectorTableType.GOOGLE_ANALYTICS,
        ingestion_path="googleanalytics",
    ),
    ConnectorType.FACEBOOK_ADS: PlatformSpec(
        connector_type=ConnectorType.FACEBOOK_ADS,
        display_name="Facebook Ads",
        abbreviation=SourceAbbreviation.FACEBOOK_ADS,
        account_key="adAccountId",
        table_type=ConnectorTableType.FACEBOOK_ADS,
        ingestion_path="facebookads",
    ),
}


def platform_for(connector_type: ConnectorType) -> Optional[PlatformSpec]:
    return PLATFORMS.get(ConnectorType(connector_type))


def platform_for_abbreviation(abbreviation: str) -> Optional[PlatformSpec]:
    for spec in PLATFORMS.values():
        if spec.abbreviation.value == abbreviation:
            return spec
    return None


# Tenant ingestion tables
IDENTIFIER_MAX_LENGTH: Final[int] = 63  # PostgreSQL NAMEDATALEN - 1
DEFAULT_BACKFILL_DAYS: Final[int] = 45

# Settings keys (avoid string literals elsewhere)
REGISTRY_DATABASE_URL: Final[str] = "REGISTRY_DATABASE_URL"
MAPPING_DATABASE_URL: Final[str] = "MAPPING_DATABASE_URL"
VAULT_URL: Final[str] = "VAULT_URL"
VAULT_TOKEN: Final[str] = "VAULT_TOKEN"
INGESTION_URL: Final[str] = "INGESTION_URL"
INGESTION_TOKEN: Final[str] = "INGESTION_TOKEN"
BACKFILL_DAYS: Final[str] = "BACKFILL_DAYS"
HTTP_CONNECT_TIMEOUT: Final[str] = "HTTP_CONNECT_TIMEOUT"
HTTP_READ_TIMEOUT: Final[str] = "HTTP_READ_TIMEOUT"
HTTP_RETRY_MAX: Final[str] = "HTTP_RETRY_MAX"
HTTP_BACKOFF_BASE: Final[str] = "HTTP_BACKOFF_BASE"
STATEMENT_TIMEOUT_MS: Final[str] = "STATEMENT_TIMEOUT_MS"
SAGA_TIMEOUT_SECONDS: Final[str] = "SAGA_TIMEOUT_SECONDS"
JWT_SECRET: Final[str] = "JWT_SECRET"
LOG_LEVEL: Final[str] = "LOG_LEVEL"
