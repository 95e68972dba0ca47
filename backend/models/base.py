"""
Declarative bases. The registry and mapping stores are separate databases,
so each gets its own metadata.
"""
from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# JSONB on PostgreSQL, plain JSON elsewhere (tests run against SQLite).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class RegistryBase(DeclarativeBase):
    pass


class MappingBase(DeclarativeBase):
    pass
