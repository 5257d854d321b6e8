import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from tenant_billing.core.database import Base
from tenant_billing.business.billing import models as billing_models  # noqa: F401
from tenant_billing.business.currency import models as currency_models  # noqa: F401
from tenant_billing.business.payments import models as payments_models  # noqa: F401
from tenant_billing.business.subscription import models as subscription_models  # noqa: F401
from tenant_billing.business.tenants import models as tenant_models  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    url = os.getenv("DATABASE_URL", config.get_main_option("sqlalchemy.url"))
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = os.getenv("DATABASE_URL", section.get("sqlalchemy.url", ""))
    connectable = engine_from_config(
        section,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
