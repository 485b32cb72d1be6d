# backend/modules/orders/utils/storage_timeout.py

import logging
from typing import Set

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# Error codes raised when a statement is cut short by a configured timeout
TIMEOUT_ERROR_CODES: Set[str] = {
    # PostgreSQL
    "57014",  # query_canceled (statement_timeout)
    "55P03",  # lock_not_available (lock_timeout)
    # MySQL
    "1205",  # Lock wait timeout exceeded
    "3024",  # Query execution was interrupted, maximum statement execution time exceeded
    # SQLite
    "database is locked",
}


def apply_statement_timeout(db: Session, seconds: float) -> None:
    """
    Bound every statement in the current transaction to ``seconds``.

    Only PostgreSQL understands transaction-scoped timeouts; other dialects
    rely on the driver's own busy timeout.
    """
    if db.get_bind().dialect.name != "postgresql":
        return

    milliseconds = max(1, int(seconds * 1000))
    db.execute(text(f"SET LOCAL statement_timeout = {milliseconds}"))
    db.execute(text(f"SET LOCAL lock_timeout = {milliseconds}"))
    logger.debug(f"Storage timeout set to {milliseconds}ms for current transaction")


def is_timeout_error(error: Exception) -> bool:
    """Check if a database error was caused by a statement or lock timeout"""
    if not isinstance(error, (OperationalError, DBAPIError)):
        return False

    orig = getattr(error, "orig", None)
    if orig is not None and getattr(orig, "pgcode", None):
        return orig.pgcode in TIMEOUT_ERROR_CODES

    if orig is not None and getattr(orig, "args", None):
        error_code = str(orig.args[0])
        return any(code in error_code for code in TIMEOUT_ERROR_CODES)

    return "timeout" in str(error).lower()
