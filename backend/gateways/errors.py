"""
Errors raised by the external-system gateways.
The sagas translate these into the provisioning taxonomy in ``errors``.
"""
from __future__ import annotations

from typing import Optional


class GatewayError(Exception):
    pass


class VaultError(GatewayError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class VaultUnavailable(VaultError):
    pass


class SecretNotFound(VaultError):
    pass


class StoreError(GatewayError):
    pass


class StoreTimeout(StoreError):
    pass


class DuplicateAccountError(StoreError):
    """The registry's unique (connector_type, account_key) constraint rejected an insert."""


class TenantDatabaseError(GatewayError):
    pass


class IngestionTriggerError(GatewayError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidIdentifier(GatewayError, ValueError):
    pass
