"""Run generated grant statements against a live database.

Any SQLAlchemy URL works; MySQL needs a driver such as PyMySQL
(`mysql+pymysql://admin:secret@db/mysql`). All statements run in one
transaction, stopping at the first failure.
"""
from typing import List

import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from ..errors import GrantApplyError

logger = structlog.get_logger(__name__)


def split_statements(sql: str) -> List[str]:
    """One statement per line, as generate_grant_statements writes them."""
    return [line.strip().rstrip(';') for line in sql.splitlines() if line.strip()]


def apply_grants(sql: str, database_url: str) -> int:
    """Execute the statements of `sql` on the database at `database_url`.

    Returns:
        Number of statements executed

    Raises:
        GrantApplyError: If the URL, the driver or a statement is rejected
    """
    statements = split_statements(sql)
    try:
        engine = create_engine(database_url)
    except (SQLAlchemyError, ImportError) as e:
        raise GrantApplyError(f"Cannot connect with {database_url!r}: {e}") from e

    try:
        with engine.begin() as conn:
            for statement in statements:
                # Colons are literal here, never bind parameters
                conn.execute(text(statement.replace(':', '\\:')))
                logger.debug("statement_applied", statement=statement)
    except SQLAlchemyError as e:
        raise GrantApplyError(f"Applying grants failed: {e}") from e
    finally:
        engine.dispose()

    logger.info("grants_applied", url=engine.url.render_as_string(hide_password=True),
                statements=len(statements))
    return len(statements)
