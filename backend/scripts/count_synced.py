"""Print row counts for every synced table.

Usage:
    python scripts/count_synced.py [connection_string]
"""

import sys

from db import get_conn
from repo_sync import INSPECT_COLUMNS, SyncRepo
from settings import settings


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    conninfo = argv[0] if argv else settings.db_url

    counts = {}
    with get_conn(conninfo, settings.sync_connect_timeout, autocommit=True) as conn:
        repo = SyncRepo(conn)
        for table in INSPECT_COLUMNS:
            counts[table] = repo.count_rows(table)
            print(f'{table}: {counts[table]} rows')
    return counts


if __name__ == '__main__':
    main()
