"""
Credential vault (KMS) HTTP client.
Stores opaque secret blobs by id; callers only ever hold the id.
"""
from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Callable, Dict, Optional

import requests

from gateways.errors import SecretNotFound, VaultError, VaultUnavailable

logger = logging.getLogger(__name__)


class VaultClient:
    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        retry_max: int = 3,
        backoff_base: float = 1.0,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.connect_timeout = float(connect_timeout)
        self.read_timeout = float(read_timeout)
        self.retry_max = int(retry_max)
        self.backoff_base = float(backoff_base)
        self.session = session or requests.Session()
        self._clock = clock
        self._sleep = sleep
        self.session.headers.update({"Authorization": f"Bearer {token}"})

    def store(self, credential_id: uuid.UUID, secret_json: str, label: str, timeout: Optional[float] = None) -> None:
        """Create or replace the secret under ``credential_id``. PUT, so a retried call is harmless."""
        self._request("PUT", credential_id, timeout, json={"secret": secret_json, "label": label})
        logger.info("Stored credential %s (%s)", credential_id, label)

    def fetch(self, credential_id: uuid.UUID, timeout: Optional[float] = None) -> Dict[str, Any]:
        resp = self._request("GET", credential_id, timeout)
        try:
            body = resp.json()
            secret = body.get("secret", body) if isinstance(body, dict) else body
            return json.loads(secret) if isinstance(secret, str) else secret
        except ValueError as exc:
            raise VaultError(f"Vault returned a malformed secret for {credential_id}") from exc

    def delete(self, credential_id: uuid.UUID, timeout: Optional[float] = None) -> None:
        """Raises SecretNotFound when there is nothing to delete."""
        self._request("DELETE", credential_id, timeout)
        logger.info("Deleted credential %s", credential_id)

    def _timeout(self, left: Optional[float]) -> tuple[float, float]:
        if left is None:
            return (self.connect_timeout, self.read_timeout)
        # (connect, read) tuple, both capped by what is left of the caller's deadline
        return (min(self.connect_timeout, left), min(self.read_timeout, left))

    def _request(self, method: str, credential_id: uuid.UUID, timeout: Optional[float], **kwargs: Any) -> requests.Response:
        """
        ``timeout`` is the budget for the whole call, retries and backoff included:
        no attempt or sleep runs past it.
        """
        url = f"{self.base_url}/credentials/{credential_id}"
        expires_at = self._clock() + timeout if timeout is not None else None
        # Retry transport errors only, with exponential backoff
        backoff = self.backoff_base
        resp = None
        for attempt in range(self.retry_max):
            left = None if expires_at is None else expires_at - self._clock()
            if left is not None and left <= 0:
                raise VaultUnavailable(f"Vault {method} {credential_id} gave up: deadline spent after {attempt} attempt(s)")
            try:
                resp = self.session.request(method, url, timeout=self._timeout(left), **kwargs)
                break
            except requests.exceptions.RequestException as e:
                left = None if expires_at is None else expires_at - self._clock()
                if attempt < self.retry_max - 1 and (left is None or left > backoff):
                    logger.warning("Vault %s %s failed (attempt %d/%d): %s", method, credential_id, attempt + 1, self.retry_max, e)
                    self._sleep(backoff)
                    backoff *= 2
                else:
                    raise VaultUnavailable(f"Vault unreachable: {e}") from e
        if resp.status_code == 404:
            raise SecretNotFound(f"Credential {credential_id} not found", status_code=404)
        if resp.status_code >= 500:
            raise VaultUnavailable(f"Vault {method} {credential_id} failed: {resp.status_code} {resp.text}", status_code=resp.status_code)
        if not resp.ok:
            raise VaultError(f"Vault {method} {credential_id} failed: {resp.status_code} {resp.text}", status_code=resp.status_code)
        return resp
