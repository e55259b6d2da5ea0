from logging.config import fileConfig
from sqlalchemy import engine_from_config
from sqlalchemy import pool
from alembic import context
import os
import sys
from pathlib import Path

# Ensure project root is on path so "tales" can be imported when Alembic runs
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from tales.db.models import Base
from tales.db.session import normalize_database_url

config = context.config
fileConfig(config.config_file_name)

target_metadata = Base.metadata

def get_url():
    return normalize_database_url(os.environ.get("DATABASE_URL", ""))

def run_migrations_offline():
    url = get_url()
    context.configure(url=url, target_metadata=target_metadata, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()

def run_migrations_online():
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = get_url()
    connectable = engine_from_config(configuration, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
