"""Idempotent schema setup for the attestation ledger.

``ensure_schema`` creates the ledger table and its indices when absent. When the
table already exists it only applies additive, backward-compatible changes:
missing columns are added with server defaults so pre-existing rows stay valid,
and missing indices are created. Nothing is ever dropped or rewritten.
"""

import logging

from alembic.operations import Operations
from alembic.runtime.migration import MigrationContext
from sqlalchemy import Column, String, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from attest_api.errors import SchemaError
from attest_api.models import ATTESTATION_TABLE, AttestationRecord, FileStatus

logger = logging.getLogger(__name__)


def _additive_columns() -> list[Column]:
    """Columns introduced after the first release of the ledger table."""
    return [
        Column(
            "file_status",
            String(50),
            nullable=False,
            server_default=FileStatus.ACTIVE.value,
        ),
    ]


def ensure_schema(engine: Engine) -> bool:
    """Create or additively migrate the ledger table.

    Returns True if the table was created by this call, False if it already
    existed. Raises SchemaError on any failure; callers must not accept intake
    requests after that.
    """
    table = AttestationRecord.__table__
    try:
        inspector = inspect(engine)
        if not inspector.has_table(ATTESTATION_TABLE):
            table.create(bind=engine, checkfirst=True)
            logger.info(f"Created ledger table {ATTESTATION_TABLE}")
            return True

        existing_columns = {column["name"] for column in inspector.get_columns(ATTESTATION_TABLE)}
        missing = [column for column in _additive_columns() if column.name not in existing_columns]

        with engine.begin() as connection:
            if missing:
                operations = Operations(MigrationContext.configure(connection))
                for column in missing:
                    operations.add_column(ATTESTATION_TABLE, column)
                    logger.info(f"Added column {ATTESTATION_TABLE}.{column.name}")
            for index in table.indexes:
                index.create(bind=connection, checkfirst=True)
        return False
    except SQLAlchemyError as e:
        logger.error(f"Ledger schema setup failed: {e}")
        raise SchemaError(f"Could not create or migrate table {ATTESTATION_TABLE}: {e}") from e


def schema_ready(engine: Engine) -> bool:
    """Check that the ledger table exists with every expected column."""
    try:
        inspector = inspect(engine)
        if not inspector.has_table(ATTESTATION_TABLE):
            return False
        columns = {column["name"] for column in inspector.get_columns(ATTESTATION_TABLE)}
    except SQLAlchemyError as e:
        logger.error(f"Schema check failed: {e}")
        return False
    return {column.name for column in AttestationRecord.__table__.columns} <= columns
