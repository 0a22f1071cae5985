"""Turn a UsageStore into MySQL GRANT statements for one database user."""
from typing import List

import structlog

from ..analyzer.usage import UsageRecord, UsageStore

logger = structlog.get_logger(__name__)

ALL_PRIVILEGES = ('SELECT', 'INSERT', 'UPDATE', 'DELETE')


def record_privileges(record: UsageRecord) -> List[str]:
    """Privileges a record needs, in SELECT, INSERT, UPDATE, DELETE order."""
    flags = (record.select, record.insert, record.update, record.delete)
    return [privilege for privilege, active in zip(ALL_PRIVILEGES, flags) if active]


def generate_grant_statements(store: UsageStore, username: str, *,
                              clear_all_grants: bool = False,
                              flush_privileges: bool = True,
                              host: str = '%') -> str:
    """Build the SQL granting `username` exactly the privileges the code uses.

    Args:
        store: Result of an analysis (or of read_store/merge_stores)
        username: Database user receiving the grants
        clear_all_grants: Start with a REVOKE of all CRUD privileges on *.*
        flush_privileges: End with FLUSH PRIVILEGES
        host: Host part of the database account

    Returns:
        Newline separated SQL statements
    """
    account = f"'{username}'@'{host}'"
    statements = []

    if clear_all_grants:
        statements.append(f"REVOKE {', '.join(ALL_PRIVILEGES)} ON *.* FROM {account};")

    for record in store.records():
        for privilege in record_privileges(record):
            statements.append(f"GRANT {privilege} ON {record.table} TO {account};")

    if flush_privileges:
        statements.append("FLUSH PRIVILEGES;")

    logger.debug("grants_generated", account=account, statements=len(statements))
    return '\n'.join(statements)
