import uuid

import pytest
from pydantic import ValidationError

from config import Settings
from errors import DeadlineExceeded
from gateways.errors import InvalidIdentifier
from gateways.identifiers import build_identifier, canonical_account_id, ingestion_table_name, is_valid_account_id
from schemas.connector import PlatformCredentials
from services.saga_log import Compensation, SagaLog
from utils.deadline import Deadline


@pytest.mark.parametrize(
    "abbr,account,expected",
    [("gad", "1234567890", "gad_1234567890"), ("fad", "act_98765", "fad_act_98765"), ("ga", "345678", "ga_345678")],
)
def test_ingestion_table_name(abbr, account, expected):
    assert ingestion_table_name(abbr, account) == expected


def test_identifiers_are_lowercased():
    assert build_identifier("GA", "Prop_1") == "ga_prop_1"


@pytest.mark.parametrize("account", ["123-456-7890", "a b", "x;drop", "é1", ""])
def test_unsafe_account_ids(account):
    assert not is_valid_account_id(account)
    with pytest.raises(InvalidIdentifier):
        ingestion_table_name("gad", account)


def test_identifier_length_limit():
    assert build_identifier("x" * 63) == "x" * 63
    with pytest.raises(InvalidIdentifier):
        build_identifier("gad", "1" * 60)


def test_credentials_validate_and_hide_token():
    creds = PlatformCredentials(refresh_token="secret-refresh", account_id=" 123 ", google_account_id="g-1")
    assert creds.account_id == "123"
    assert "secret-refresh" not in repr(creds)
    assert "secret-refresh" not in str(creds)
    assert creds.secret_payload("loginCustomerId") == {
        "refreshToken": "secret-refresh",
        "loginCustomerId": "123",
        "googleAccountId": "g-1",
    }
    with pytest.raises(ValidationError):
        PlatformCredentials(refresh_token="r", account_id="123-456")


def test_credentials_account_id_is_canonical():
    assert PlatformCredentials(refresh_token="r", account_id=" ACT_9 ").account_id == "act_9"
    assert canonical_account_id("Act_9") == canonical_account_id("act_9") == "act_9"
    with pytest.raises(InvalidIdentifier):
        canonical_account_id("act-9")


def test_extra_cannot_override_token_or_account():
    creds = PlatformCredentials(
        refresh_token="real-token",
        account_id="123",
        extra={"refreshToken": "forged", "loginCustomerId": "999", "managerId": "42"},
    )
    assert creds.secret_payload("loginCustomerId") == {
        "refreshToken": "real-token",
        "loginCustomerId": "123",
        "managerId": "42",
    }


def test_deadline_with_fake_clock():
    now = [100.0]
    deadline = Deadline(10, clock=lambda: now[0])
    assert deadline.remaining() == 10
    assert deadline.timeout(30) == 10
    assert deadline.timeout(3) == 3
    deadline.check("anything")

    now[0] = 111.0
    assert deadline.expired
    assert deadline.timeout() == 0
    with pytest.raises(DeadlineExceeded):
        deadline.check("commit")


def test_saga_log_unwinds_newest_first_and_collects_failures():
    order = []

    def failing():
        order.append("rollback_mapping")
        raise RuntimeError("connection lost")

    log = SagaLog(uuid.uuid4())
    log.register(Compensation.DELETE_SECRET, lambda: order.append("delete_secret"))
    log.register(Compensation.ROLLBACK_REGISTRY, lambda: order.append("rollback_registry"))
    log.register(Compensation.ROLLBACK_MAPPING, failing)
    log.discard(Compensation.ROLLBACK_REGISTRY)
    assert log.pending == [Compensation.DELETE_SECRET, Compensation.ROLLBACK_MAPPING]

    failures = log.unwind()
    assert order == ["rollback_mapping", "delete_secret"]
    assert [f.compensation for f in failures] == [Compensation.ROLLBACK_MAPPING]
    assert log.pending == []


BASE_ENV = {
    "REGISTRY_DATABASE_URL": "postgresql+psycopg2://u:p@registry/db",
    "MAPPING_DATABASE_URL": "postgresql+psycopg2://u:p@mapping/db",
    "VAULT_URL": "https://vault.internal/",
    "VAULT_TOKEN": "v",
    "INGESTION_URL": "https://ingest.internal",
    "INGESTION_TOKEN": "i",
}


def test_settings_from_env_defaults():
    settings = Settings.from_env(BASE_ENV)
    assert settings.vault_url == "https://vault.internal"
    assert settings.backfill_days == 45
    assert settings.http_retry_max == 3
    assert settings.log_level == "INFO"


def test_settings_from_env_overrides():
    settings = Settings.from_env({**BASE_ENV, "BACKFILL_DAYS": "30", "LOG_LEVEL": "debug", "SAGA_TIMEOUT_SECONDS": "5"})
    assert settings.backfill_days == 30
    assert settings.log_level == "DEBUG"
    assert settings.saga_timeout_seconds == 5


@pytest.mark.parametrize(
    "env",
    [
        {k: v for k, v in BASE_ENV.items() if k != "VAULT_URL"},
        {**BASE_ENV, "INGESTION_URL": "ftp://ingest"},
        {**BASE_ENV, "LOG_LEVEL": "LOUD"},
        {**BASE_ENV, "BACKFILL_DAYS": "0"},
    ],
)
def test_settings_rejects_bad_config(env):
    with pytest.raises(ValidationError):
        Settings.from_env(env)
