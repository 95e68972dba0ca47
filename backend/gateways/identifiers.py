"""
SQL identifier helpers for tenant ingestion tables.
Identifiers are never interpolated unchecked: they are allow-listed here and
quoted by the dialect at the call site.
"""
import re

from constants import IDENTIFIER_MAX_LENGTH
from gateways.errors import InvalidIdentifier

_IDENTIFIER_RE = re.compile(r"^[a-z0-9_]+$")


def build_identifier(*parts: str) -> str:
    """
    Join parts with underscores into a lower-case identifier.
    Only ASCII letters, digits and underscores are accepted.
    """
    if not parts:
        raise InvalidIdentifier("Identifier needs at least one part")
    name = "_".join(str(p).strip().lower() for p in parts)
    if not _IDENTIFIER_RE.match(name) or any(not str(p).strip() for p in parts):
        raise InvalidIdentifier(f"Invalid identifier {name!r}: only letters, digits and underscores are allowed")
    if len(name) > IDENTIFIER_MAX_LENGTH:
        raise InvalidIdentifier(f"Identifier {name!r} exceeds {IDENTIFIER_MAX_LENGTH} characters")
    return name


def ingestion_table_name(source_abbreviation: str, external_account_id: str) -> str:
    # e.g. gad_1234567890, fad_act_98765, ga_345678
    return build_identifier(source_abbreviation, external_account_id)


def is_valid_account_id(external_account_id: str) -> bool:
    try:
        build_identifier(external_account_id)
    except InvalidIdentifier:
        return False
    return True


def canonical_account_id(external_account_id: str) -> str:
    """
    The one form of an external account id used for the registry key, the
    duplicate check and the table name. Raises InvalidIdentifier when unsafe.
    """
    return build_identifier(external_account_id)
