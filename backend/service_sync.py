"""
Service / facade layer for the sync protocol.

This module implements the protocol rules before and around any DB
interaction. It is free of SQL: it calls `SyncRepo` for every statement.

Key responsibilities:
- validate the client-supplied target (type, connection string)
- own the one-connection-per-call lifecycle
- run the schema bootstrap before any push
- apply merge order and count what was written
- compute the pull horizon (never less than `pull_window_days` back)
- decide which fetch failures abort a pull and which degrade
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import psycopg
from pydantic import ValidationError

from db import get_conn, validate_conninfo
from errors import InvalidRequest
from models import SyncCounts, SyncData
from repo_sync import INSPECT_COLUMNS, SyncRepo
from schema import ensure_schema
from settings import settings

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


def ms_to_iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


def compute_horizon(last_sync_ms: int, now: int, window_days: int) -> int:
    """Earliest instant a pull looks past.

    A pull always covers at least `window_days`, so a device that synced a
    minute ago still re-fetches the whole window. Re-delivery is harmless
    because pushes are idempotent.
    """

    return min(last_sync_ms, now - window_days * DAY_MS)


def count_records(data: SyncData) -> SyncCounts:
    return SyncCounts(
        user_profile=1 if data.user_profile else 0,
        food_entries=len(data.food_entries),
        workout_entries=len(data.workout_entries),
        biomarker_entries=len(data.biomarker_entries),
        goals=len(data.goals),
    )


def select_outgoing(local: SyncData, last_sync_ms: int, now: int, first_sync: bool) -> SyncData:
    """Pick the local records a bidirectional sync should push.

    Regular syncs push what changed after `last_sync_ms`. A first sync
    pushes only recent entries (and recent goals) plus the profile.
    """

    if first_sync:
        entry_floor = now - settings.first_sync_entry_days * DAY_MS
        goal_floor = now - settings.first_sync_goal_days * DAY_MS
    else:
        entry_floor = goal_floor = last_sync_ms

    def newer(ts: Optional[int], floor: int) -> bool:
        return ts is not None and ts > floor

    profile = local.user_profile
    if profile and not first_sync:
        changed = profile.updated_at or profile.created_at
        if not newer(changed, last_sync_ms):
            profile = None

    return SyncData(
        user_profile=profile,
        food_entries=[e for e in local.food_entries if newer(e.timestamp, entry_floor)],
        workout_entries=[e for e in local.workout_entries if newer(e.timestamp, entry_floor)],
        biomarker_entries=[e for e in local.biomarker_entries if newer(e.timestamp, entry_floor)],
        goals=[g for g in local.goals if newer(g.created_at, goal_floor)],
    )


class SyncService:
    """Protocol rules + validation + connection lifecycle.

    Example usage:
        svc = SyncService()
        counts = svc.push(conninfo, "postgresql", data)
        counts, pulled = svc.pull(conninfo, "postgresql", last_sync_ms)
    """

    def __init__(self, repo_cls=SyncRepo, clock=now_ms):
        self.repo_cls = repo_cls
        self.clock = clock

    def test_connection(self, conninfo: str | None, db_type: str | None) -> str:
        """Open a connection, run one trivial query, close it."""

        validate_conninfo(conninfo, db_type, check_format=True)
        with get_conn(conninfo, settings.test_connect_timeout, autocommit=True) as conn:
            self.repo_cls(conn).ping()
        logger.info("PostgreSQL connection test successful")
        return "PostgreSQL connection successful"

    def push(self, conninfo: str | None, db_type: str | None, data: SyncData | None) -> SyncCounts:
        """Write a batch to the store.

        Food, workout and biomarker rows are first-write-wins; goals and
        the profile are last-write-wins on their mutable fields. The batch
        is committed once: a failing record rolls back every data write of
        this call and the error propagates.
        """

        if not conninfo or not db_type or data is None:
            raise InvalidRequest("Connection string, type, and data are required")
        validate_conninfo(conninfo, db_type)

        now = self.clock()
        with get_conn(conninfo, settings.sync_connect_timeout) as conn:
            ensure_schema(conn)
            counts = self._merge(self.repo_cls(conn), data, now)
        logger.info("Pushed %d records: %s", counts.total(), counts.to_wire())
        return counts

    def pull(
        self, conninfo: str | None, db_type: str | None, last_sync_ms: int | None
    ) -> Tuple[SyncCounts, SyncData]:
        """Fetch every record newer than the horizon."""

        validate_conninfo(conninfo, db_type)
        now = self.clock()
        last = last_sync_ms or 0
        horizon = compute_horizon(last, now, settings.pull_window_days)
        logger.info("Pull: last sync %d, horizon %d", last, horizon)

        with get_conn(conninfo, settings.sync_connect_timeout, autocommit=True) as conn:
            data = self._fetch(conn, self.repo_cls(conn), horizon)
        counts = count_records(data)
        logger.info("Pulled %d records: %s", counts.total(), counts.to_wire())
        return counts, data

    def bidirectional_sync(
        self,
        conninfo: str | None,
        db_type: str | None,
        local_data: SyncData,
        last_sync_ms: int | None,
    ) -> Tuple[SyncCounts, SyncCounts, SyncData]:
        """Push local changes since the last sync, then pull.

        Returns (synced counts, pulled counts, pulled data).
        """

        validate_conninfo(conninfo, db_type)

        now = self.clock()
        last = last_sync_ms or 0
        first_sync = last < now - settings.first_sync_threshold_days * DAY_MS
        outgoing = select_outgoing(local_data, last, now, first_sync)
        if first_sync:
            horizon = now - settings.first_sync_pull_days * DAY_MS
        else:
            horizon = compute_horizon(last, now, settings.pull_window_days)
        logger.info(
            "Bidirectional sync: last sync %d, first sync %s, pushing %d of %d records, horizon %d",
            last, first_sync, outgoing.record_count(), local_data.record_count(), horizon,
        )

        with get_conn(conninfo, settings.sync_connect_timeout) as conn:
            ensure_schema(conn)
            repo = self.repo_cls(conn)
            synced = self._merge(repo, outgoing, now)
            conn.commit()
            pulled = self._fetch(conn, repo, horizon)
        return synced, count_records(pulled), pulled

    def inspect(self, conninfo: str | None) -> Dict[str, Any]:
        """Row counts and a few recent rows per table.

        A table that cannot be read gets an error marker instead of failing
        the whole report.
        """

        if not conninfo:
            raise InvalidRequest("Connection string is required")

        now = self.clock()
        inspection: Dict[str, Any] = {}
        with get_conn(conninfo, settings.sync_connect_timeout, autocommit=True) as conn:
            repo = self.repo_cls(conn)
            for table in INSPECT_COLUMNS:
                try:
                    count = repo.count_rows(table)
                    recent = repo.recent_rows(table, settings.inspect_sample_size)
                except psycopg.Error as e:
                    logger.warning("Inspecting %s failed: %s", table, e)
                    inspection[table] = {"count": 0, "recent": [], "error": "Table may not exist"}
                    continue
                inspection[table] = {
                    "count": count,
                    "recent": [_with_dates(row) for row in recent],
                }

        return {
            "success": True,
            "current_time": now,
            "current_time_date": ms_to_iso(now),
            "inspection": inspection,
        }

    def _merge(self, repo: SyncRepo, data: SyncData, now: int) -> SyncCounts:
        # Counts are attempted writes; a skipped duplicate still counts.
        counts = SyncCounts()

        if data.user_profile:
            repo.upsert_profile(data.user_profile, now)
            counts.user_profile = 1

        for entry in data.food_entries:
            repo.insert_food(entry)
            counts.food_entries += 1

        for entry in data.workout_entries:
            repo.insert_workout(entry)
            counts.workout_entries += 1

        for entry in data.biomarker_entries:
            repo.insert_biomarker(entry)
            counts.biomarker_entries += 1

        for goal in data.goals:
            repo.upsert_goal(goal, now)
            counts.goals += 1

        return counts

    def _fetch(self, conn, repo: SyncRepo, horizon: int) -> SyncData:
        data = SyncData(
            food_entries=repo.fetch_food_since(horizon),
            workout_entries=repo.fetch_workouts_since(horizon),
            biomarker_entries=repo.fetch_biomarkers_since(horizon),
        )

        # Goals and the profile degrade to empty on failure, including stored
        # rows that do not form a valid record. Each runs in its own
        # (sub)transaction so a failure cannot poison the next query.
        try:
            with conn.transaction():
                data.goals = repo.fetch_goals_since(horizon)
        except (psycopg.Error, ValidationError) as e:
            logger.error("Error pulling goals: %s", e)

        try:
            with conn.transaction():
                data.user_profile = repo.fetch_profile_since(horizon)
        except (psycopg.Error, ValidationError) as e:
            logger.error("Error pulling user profile: %s", e)

        return data


def _with_dates(row: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(row)
    for key in ("timestamp", "created_at", "updated_at"):
        value = row.get(key)
        if isinstance(value, int):
            out[f"{key}_date"] = ms_to_iso(value)
    return out
