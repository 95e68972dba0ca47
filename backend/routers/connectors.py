"""
Connectors API endpoints
Production-grade: FastAPI router, error handling, type hints. Thin layer over the provisioning/teardown sagas.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from uuid import UUID, uuid4
from typing import Optional

from constants import ConnectorType
from errors import ConnectorNotFound
from services.directory import ConnectorDirectory
from services.factory import get_directory, get_provisioning_saga, get_teardown_saga
from services.provisioning import ProvisioningSaga, resolve_platform
from services.teardown import TeardownSaga
from schemas.connector import (
    ConnectorListResponse,
    ConnectorProvisionRequest,
    ConnectorProvisionResponse,
    ConnectorTeardownResponse,
    TableRetryResponse,
    TeardownFailureInfo,
)
from gateways.identifiers import is_valid_account_id


def check_auth_and_company(company_id: UUID, request: Request) -> dict:
    """The token's company claim must name the company in the path."""
    auth = getattr(request.state, "auth", None) or {}
    if not auth.get("company") or str(auth["company"]) != str(company_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tenant context missing or mismatch in token")
    return auth


def require_owned_connector(
    company_id: UUID,
    connector_id: UUID,
    directory: ConnectorDirectory = Depends(get_directory),
) -> UUID:
    # 404 rather than 403: another company's connector ids are not disclosed
    if not directory.owns(company_id, connector_id):
        raise ConnectorNotFound(f"Connector {connector_id} not found", connector_id=connector_id)
    return connector_id


router = APIRouter(
    prefix="/api/v1/companies/{company_id}/connectors",
    tags=["Connectors"],
    dependencies=[Depends(check_auth_and_company)],
)


@router.get("", response_model=ConnectorListResponse)
def list_connectors(
    company_id: UUID,
    connector_type: Optional[ConnectorType] = Query(None, description="Only connectors of this type"),
    directory: ConnectorDirectory = Depends(get_directory),
):
    return ConnectorListResponse(connectors=directory.list_connectors(company_id, connector_type))


@router.post("", response_model=ConnectorProvisionResponse, status_code=status.HTTP_201_CREATED)
def provision_connector(
    company_id: UUID,
    request: ConnectorProvisionRequest,
    saga: ProvisioningSaga = Depends(get_provisioning_saga),
):
    """
    Attach a data source to the company. Hard failures come back as error responses
    (see the exception handlers in main); a connector that registered but is not yet
    ingest-ready comes back 201 with a non-"completed" status and the reason.
    """
    connector_id = request.connector_id or uuid4()
    result = saga.provision(
        request.credentials,
        company_id,
        connector_id,
        request.connector_type,
        display_name=request.display_name,
    )
    return ConnectorProvisionResponse(
        connector_id=result.connector_id,
        status=result.status.value,
        table_name=result.table_name,
        error=str(result.error) if result.error else None,
        classification=result.error.classification if result.error else None,
    )


@router.delete("/{connector_id}", response_model=ConnectorTeardownResponse)
def delete_connector(
    company_id: UUID,
    account_id: str = Query(..., description="External account id (login customer id, property id, ad account id)"),
    connector_type: ConnectorType = Query(...),
    connector_id: UUID = Depends(require_owned_connector),
    saga: TeardownSaga = Depends(get_teardown_saga),
):
    if not is_valid_account_id(account_id):
        raise HTTPException(status_code=400, detail="Invalid account_id")
    platform = resolve_platform(connector_type)
    report = saga.deprovision(connector_id, account_id, platform.abbreviation.value, company_id=company_id)
    # Partial failures are not hidden behind a single error: the caller gets every failed step.
    return ConnectorTeardownResponse(
        connector_id=connector_id,
        ok=report.ok,
        completed=[s.value for s in report.completed],
        skipped=[s.value for s in report.skipped],
        failures=[TeardownFailureInfo(step=f.step.value, error=str(f.error)) for f in report.failures],
    )


@router.post("/{connector_id}/table", response_model=TableRetryResponse)
def retry_table_creation(
    connector_id: UUID = Depends(require_owned_connector),
    saga: ProvisioningSaga = Depends(get_provisioning_saga),
):
    table_name = saga.retry_table_creation(connector_id)
    return TableRetryResponse(connector_id=connector_id, table_name=table_name)


@router.post("/{connector_id}/ingestion", status_code=status.HTTP_202_ACCEPTED)
def retry_ingestion(
    connector_id: UUID = Depends(require_owned_connector),
    saga: ProvisioningSaga = Depends(get_provisioning_saga),
):
    saga.retry_ingestion(connector_id)
    return {"connector_id": str(connector_id), "status": "triggered"}
