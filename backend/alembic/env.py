"""
Alembic environment configuration for migrations.
The registry and mapping stores are separate databases; pick one with
``alembic -x store=registry upgrade registry@head`` (or ``store=mapping``).
Database URLs come from environment variables.
"""
from logging.config import fileConfig
import os
from sqlalchemy import engine_from_config, pool
from alembic import context
import sys
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))
from models.base import RegistryBase, MappingBase
from models.connector import Connector, SubConnector  # noqa: F401  (register tables)
from models.mapping import CompanyConnectorMapping, CompanyDestination  # noqa: F401
import constants as C

# Alembic Config object
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

STORES = {
    "registry": (C.REGISTRY_DATABASE_URL, RegistryBase.metadata),
    "mapping": (C.MAPPING_DATABASE_URL, MappingBase.metadata),
}

store = context.get_x_argument(as_dictionary=True).get("store", "registry")
if store not in STORES:
    raise SystemExit(f"Unknown store {store!r}; expected one of {sorted(STORES)}")
url_env, target_metadata = STORES[store]


def get_url():
    url = os.getenv(url_env)
    if not url:
        raise SystemExit(f"{url_env} is not set")
    return url


def run_migrations_offline():
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        version_table=f"alembic_version_{store}",
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = engine_from_config(
        {**config.get_section(config.config_ini_section), "sqlalchemy.url": get_url()},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            version_table=f"alembic_version_{store}",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
