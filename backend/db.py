"""
Database connection helper.

Every request carries its own connection string, so this module opens a
fresh `psycopg` connection per call. There is no pooling and no reuse
across requests.

Usage:
    from db import get_conn
    with get_conn(conninfo, timeout=10) as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1;")

Using the connection as a context manager commits on success, rolls back
on error, and always closes it.
"""

import logging

import psycopg

from errors import InvalidRequest, StoreConnectionError

logger = logging.getLogger(__name__)

SUPPORTED_TYPE = "postgresql"
CONNINFO_PREFIXES = ("postgres://", "postgresql://")


def validate_conninfo(conninfo: str | None, db_type: str | None, check_format: bool = False) -> None:
    """Check a client-supplied target. Raises `InvalidRequest`.

    `check_format` additionally requires a URL-style connection string;
    only the connection test insists on it; psycopg itself also accepts
    `key=value` strings.
    """

    if not conninfo or not db_type:
        raise InvalidRequest("Connection string and type are required")
    if db_type != SUPPORTED_TYPE:
        raise InvalidRequest("Only PostgreSQL is supported currently")
    if check_format and not conninfo.startswith(CONNINFO_PREFIXES):
        raise InvalidRequest("Invalid PostgreSQL connection string format")


def get_conn(conninfo: str, timeout: int, autocommit: bool = False) -> psycopg.Connection:
    """Return a new psycopg connection to `conninfo`.

    `timeout` bounds connection establishment only; statements have no
    timeout. Read-only callers pass `autocommit=True` so that one failed
    statement does not abort the rest of the call's queries.
    """

    try:
        return psycopg.connect(conninfo, connect_timeout=timeout, autocommit=autocommit)
    except psycopg.OperationalError as e:
        logger.warning("Could not connect to store: %s", e)
        raise StoreConnectionError(str(e)) from e
