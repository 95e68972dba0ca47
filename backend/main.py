import logging
import os
from contextlib import asynccontextmanager

import jwt
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import get_settings
from errors import (
    ConfigurationError,
    ConnectorNotFound,
    DestinationNotConfigured,
    DuplicateConnector,
    IngestionTriggerFailed,
    PartialCommitFailure,
    ProvisioningError,
    ProvisioningFailed,
    TableLifecycleError,
    UnreachableDependency,
)
from gateways.errors import InvalidIdentifier
from routers.connectors import router as connector_router

# Configure root logging (stdout handler) with level from env
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
try:
    level = getattr(logging, log_level)
except Exception:
    level = logging.INFO
logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("connector_provisioning")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Fail fast on bad configuration instead of mid-saga.
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level)
    logger.info("Configuration loaded (vault=%s, ingestion=%s)", settings.vault_url, settings.ingestion_url)
    yield


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(connector_router)

# First match wins: subclasses before their bases.
ERROR_STATUS = [
    (DestinationNotConfigured, 404),
    (ConnectorNotFound, 404),
    (ConfigurationError, 400),
    (DuplicateConnector, 409),
    (UnreachableDependency, 503),
    (ProvisioningFailed, 502),
    (PartialCommitFailure, 500),
    (TableLifecycleError, 500),
    (IngestionTriggerFailed, 502),
]


def status_for(exc: ProvisioningError) -> int:
    for cls, code in ERROR_STATUS:
        if isinstance(exc, cls):
            return code
    return 500


@app.exception_handler(ProvisioningError)
async def provisioning_error_handler(request: Request, exc: ProvisioningError):
    code = status_for(exc)
    if code >= 500:
        logger.error("%s %s failed: [%s] %s", request.method, request.url.path, exc.classification, exc)
    body = {"detail": str(exc), "classification": exc.classification}
    if isinstance(exc, PartialCommitFailure):
        body["reconciled"] = exc.reconciled
    return JSONResponse(status_code=code, content=body)


@app.exception_handler(InvalidIdentifier)
async def invalid_identifier_handler(request: Request, exc: InvalidIdentifier):
    return JSONResponse(status_code=400, content={"detail": str(exc), "classification": "invalid_account_identifier"})


# --- Global auth middleware to protect APIs ---
JWT_ALGORITHM = "HS256"

PUBLIC_PATH_PREFIXES = [
    "/api/health",
]


def _is_public_path(path: str) -> bool:
    for p in PUBLIC_PATH_PREFIXES:
        if path.startswith(p):
            return True
    return False


@app.middleware("http")
async def auth_middleware(request: Request, call_next):
    path = request.url.path
    # Only guard API routes and allow public paths
    if path.startswith("/api/") and not _is_public_path(path):
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.lower().startswith("bearer "):
            return JSONResponse(status_code=401, content={"detail": "Not authenticated"})
        token = auth_header.split(" ", 1)[1].strip()
        try:
            payload = jwt.decode(token, get_settings().jwt_secret, algorithms=[JWT_ALGORITHM])
        except jwt.PyJWTError:
            return JSONResponse(status_code=401, content={"detail": "Invalid or expired token"})
        request.state.auth = {
            "user": payload.get("user"),
            "company": payload.get("company"),
            "sub": payload.get("sub"),
        }
    response = await call_next(request)
    return response


@app.get("/api/health")
def health():
    return {"status": "ok"}
