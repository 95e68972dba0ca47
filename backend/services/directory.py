from __future__ import annotations

import uuid
from typing import Callable, List, Optional

from constants import ConnectorType, platform_for
from gateways.mapping import MappingStoreGateway
from gateways.registry import RegistryStoreGateway
from schemas.connector import ConnectorSummary


class ConnectorDirectory:
    """Read side: which connectors a company has, joined across both stores."""

    def __init__(
        self,
        *,
        registry_factory: Callable[[], RegistryStoreGateway],
        mapping_factory: Callable[[], MappingStoreGateway],
    ) -> None:
        self.registry_factory = registry_factory
        self.mapping_factory = mapping_factory

    def list_connectors(self, company_id: uuid.UUID, connector_type: Optional[ConnectorType] = None) -> List[ConnectorSummary]:
        mappings = self.mapping_factory().list_for_company(
            company_id, connector_type.value if connector_type is not None else None
        )
        if not mappings:
            return []
        connectors = {c.id: c for c in self.registry_factory().connectors_by_ids(m.connector_id for m in mappings)}
        out: List[ConnectorSummary] = []
        for m in mappings:
            # A mapping without a registry row is mid-provision or mid-teardown; hide it.
            connector = connectors.get(m.connector_id)
            if connector is None:
                continue
            platform = platform_for(ConnectorType(m.connector_type))
            account_id = connector.account_key
            if platform is not None:
                account_id = connector.extra_information.get(platform.account_key, account_id)
            out.append(
                ConnectorSummary(
                    connector_id=m.connector_id,
                    connector_type=ConnectorType(m.connector_type),
                    display_name=m.display_name,
                    account_id=account_id,
                    extra_information=m.extra_information,
                    created_at=m.created_at.isoformat() if m.created_at else None,
                )
            )
        return out

    def owns(self, company_id: uuid.UUID, connector_id: uuid.UUID) -> bool:
        """
        Whether ``company_id`` may act on ``connector_id``.

        The mapping row decides when it exists. After a partial teardown the mapping is
        gone but the registry row may remain; it then belongs to the company whose
        destination it points at. A connector with neither row left is nobody's, so
        any company may finish tearing down its own copy of the table.
        """
        mapping = self.mapping_factory().get_mapping(connector_id)
        if mapping is not None:
            return mapping.company_id == company_id
        connector = self.registry_factory().get_connector(connector_id)
        if connector is None:
            return True
        return connector.destination_credential_id == self.mapping_factory().get_destination_credential_id(company_id)
