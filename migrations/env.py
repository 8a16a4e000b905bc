import logging
import os
import sys

from alembic import context

# Ensure the project root is importable so app and extensions resolve
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app import create_app  # noqa: E402
from extensions import db as _db  # noqa: E402

config = context.config
logger = logging.getLogger('alembic.env')

target_metadata = _db.metadata

app = create_app()


def run_migrations_offline():
    """Emit SQL for the configured database URL without connecting."""
    url = app.config['SQLALCHEMY_DATABASE_URI']
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    """Run migrations against the Flask app's engine."""
    with app.app_context():
        connectable = _db.engine

        with connectable.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                compare_type=True,
            )

            with context.begin_transaction():
                context.run_migrations()
                logger.info("Migrations applied")


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
