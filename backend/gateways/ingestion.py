"""
Client for the ingestion service's historical backfill endpoint.
Fire-and-report: a failure here never unwinds provisioning.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

import requests

from constants import ConnectorType, platform_for
from gateways.errors import IngestionTriggerError

logger = logging.getLogger(__name__)


class IngestionTriggerClient:
    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.connect_timeout = float(connect_timeout)
        self.read_timeout = float(read_timeout)
        self.session = session or requests.Session()

    def trigger_historical(
        self,
        connector_type: ConnectorType,
        connector_id: uuid.UUID,
        duration_days: int,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        platform = platform_for(connector_type)
        if platform is None:
            raise IngestionTriggerError(f"No ingestion endpoint for connector type {connector_type}")
        url = f"{self.base_url}/{platform.ingestion_path}/historical"
        data = {"connectorId": str(connector_id), "duration": str(int(duration_days))}
        read = self.read_timeout if timeout is None else min(self.read_timeout, timeout)
        connect = self.connect_timeout if timeout is None else min(self.connect_timeout, timeout)
        try:
            resp = self.session.post(
                url,
                data=data,
                headers={"Authorization": f"Bearer {self.token}"},
                timeout=(connect, read),
                allow_redirects=True,
            )
        except requests.exceptions.RequestException as e:
            raise IngestionTriggerError(f"Ingestion service unreachable: {e}") from e
        if not resp.ok:
            raise IngestionTriggerError(
                f"Historical ingestion trigger failed: {resp.status_code} {resp.text}", status_code=resp.status_code
            )
        logger.info("Triggered %d-day backfill for connector %s (%s)", duration_days, connector_id, platform.display_name)
        try:
            return resp.json()
        except ValueError:
            return {}
