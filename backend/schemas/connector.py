"""
Connector API Pydantic Schemas
Production-grade: type-safe, linted, API versioned.
"""
from typing import Any, Dict, List, Optional
from uuid import UUID
from pydantic import BaseModel, Field, field_validator

from constants import ConnectorType
from gateways.identifiers import canonical_account_id, is_valid_account_id


class PlatformCredentials(BaseModel):
    """What the OAuth flow hands over: a refresh token and the external account it unlocks."""

    refresh_token: str = Field(..., min_length=1)
    account_id: str = Field(..., min_length=1, max_length=48)
    account_name: Optional[str] = None
    google_account_id: Optional[str] = None  # Google Ads only
    extra: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("account_id")
    @classmethod
    def validate_account_id(cls, v: str) -> str:
        if not is_valid_account_id(v):
            raise ValueError("account_id may only contain letters, digits and underscores")
        return canonical_account_id(v)

    def secret_payload(self, account_key: str) -> Dict[str, Any]:
        # extra first: it never overrides the token or the account
        payload: Dict[str, Any] = dict(self.extra)
        payload["refreshToken"] = self.refresh_token
        payload[account_key] = self.account_id
        if self.google_account_id:
            payload["googleAccountId"] = self.google_account_id
        return payload

    def extra_information(self, account_key: str) -> Dict[str, Any]:
        info: Dict[str, Any] = {account_key: self.account_id}
        if self.account_name:
            info["accountName"] = self.account_name
        return info

    def __repr__(self) -> str:
        # never leak the refresh token into logs
        return f"PlatformCredentials(account_id={self.account_id!r})"

    __str__ = __repr__


class ConnectorProvisionRequest(BaseModel):
    connector_type: ConnectorType
    credentials: PlatformCredentials
    connector_id: Optional[UUID] = None
    display_name: Optional[str] = Field(None, max_length=255)


class ConnectorProvisionResponse(BaseModel):
    connector_id: UUID
    status: str
    table_name: str
    error: Optional[str] = None
    classification: Optional[str] = None


class TeardownFailureInfo(BaseModel):
    step: str
    error: str


class ConnectorTeardownResponse(BaseModel):
    connector_id: UUID
    ok: bool
    completed: List[str]
    skipped: List[str]
    failures: List[TeardownFailureInfo]


class ConnectorSummary(BaseModel):
    connector_id: UUID
    connector_type: ConnectorType
    display_name: str
    account_id: Optional[str] = None
    extra_information: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None


class ConnectorListResponse(BaseModel):
    connectors: List[ConnectorSummary]


class TableRetryResponse(BaseModel):
    connector_id: UUID
    table_name: str
