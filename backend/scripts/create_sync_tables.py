"""Apply the sync schema to a store ahead of the first push.

Usage:
    python scripts/create_sync_tables.py [connection_string]

Defaults to `DB_URL` from the environment / `.env`.
"""

import sys

from db import get_conn
from schema import INDEXES, TABLES, ensure_schema
from settings import settings


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    conninfo = argv[0] if argv else settings.db_url

    print('Connecting to', conninfo)
    with get_conn(conninfo, settings.sync_connect_timeout) as conn:
        ensure_schema(conn)
    print(f'DDL applied ({len(TABLES)} tables, {len(INDEXES)} indexes)')


if __name__ == '__main__':
    main()
