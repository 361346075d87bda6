"""
SQLite Event Store - Append-only event log with atomic batches

The log is the source of truth for every budget version:
- Rows are only ever inserted; deleting a version is itself an event
- One command's events commit together or not at all, even across streams
- (stream_id, version) is unique, and each batch states the stream version it
  was built against (optimistic locking)
- `seq` records commit order, which is the order replay uses
"""

import json
import sqlite3
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from budget_versioning.kernel.errors import EventStoreError, StreamVersionConflict
from budget_versioning.kernel.events import Event
from budget_versioning.kernel.logging import get_logger
from budget_versioning.kernel.metrics import (
    events_appended_total,
    events_loaded_total,
    stream_version_conflicts_total,
)
from budget_versioning.kernel.retry import retry_on_sqlite_lock

logger = get_logger(__name__)

_COLUMNS = (
    "event_id",
    "stream_id",
    "stream_type",
    "version",
    "command_id",
    "event_type",
    "occurred_at",
    "actor_id",
    "payload_json",
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT NOT NULL UNIQUE,
    stream_id TEXT NOT NULL,
    stream_type TEXT NOT NULL,
    version INTEGER NOT NULL,
    command_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    occurred_at TEXT NOT NULL,
    actor_id TEXT,
    payload_json TEXT NOT NULL,
    UNIQUE(stream_id, version)
);
CREATE INDEX IF NOT EXISTS idx_events_stream ON events(stream_id, version);
CREATE INDEX IF NOT EXISTS idx_events_command ON events(command_id);
"""


def _to_row(event: Event) -> tuple:
    return (
        event.event_id,
        event.stream_id,
        event.stream_type,
        event.version,
        event.command_id,
        event.event_type,
        event.occurred_at.isoformat(),
        event.actor_id,
        json.dumps(event.payload),
    )


def _from_row(row: sqlite3.Row) -> Event:
    fields = {column: row[column] for column in _COLUMNS if column != "payload_json"}
    fields["occurred_at"] = datetime.fromisoformat(fields["occurred_at"])
    return Event(**fields, payload=json.loads(row["payload_json"]))


def _group_by_stream(events: list[Event]) -> dict[str, list[Event]]:
    """Split a batch per stream, checking each stream is numbered without gaps"""
    streams: dict[str, list[Event]] = defaultdict(list)
    for event in events:
        streams[event.stream_id].append(event)

    for stream_id, stream_events in streams.items():
        versions = [e.version for e in stream_events]
        if versions != list(range(versions[0], versions[0] + len(versions))):
            raise EventStoreError(
                f"Events for stream {stream_id} are not consecutively versioned: {versions}"
            )
    return streams


class SQLiteEventStore:
    """
    Event log in a single SQLite file (WAL mode)

    A connection is opened per call, so one store may be shared by threads.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.executescript(_SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection; uncommitted work is discarded on close"""
        conn = sqlite3.connect(str(self.db_path), timeout=5.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _select(self, where: str = "", params: tuple = (), order_by: str = "seq") -> list[Event]:
        query = f"SELECT {', '.join(_COLUMNS)} FROM events {where} ORDER BY {order_by}"
        with self._connect() as conn:
            events = [_from_row(row) for row in conn.execute(query, params)]

        for event in events:
            events_loaded_total.labels(stream_type=event.stream_type).inc()
        return events

    @retry_on_sqlite_lock()
    def append_batch(self, events: list[Event]) -> list[Event]:
        """
        Append the events of one command in a single transaction

        A batch may touch several streams (activation archives one version and
        activates another). For each stream, the first event must follow the
        stream's stored version.

        Args:
            events: Events in application order

        Returns:
            The appended events

        Raises:
            StreamVersionConflict: A stream moved since the batch was built
            EventStoreError: Gaps in a stream's numbering, or a constraint failure
        """
        if not events:
            return []

        streams = _group_by_stream(events)
        placeholders = ", ".join("?" for _ in _COLUMNS)

        with self._connect() as conn:
            # Take the write lock before reading stream versions
            conn.execute("BEGIN IMMEDIATE")
            try:
                for stream_id, stream_events in streams.items():
                    expected = stream_events[0].version - 1
                    actual = self._stream_version(conn, stream_id)
                    if actual != expected:
                        stream_version_conflicts_total.labels(
                            stream_type=stream_events[0].stream_type
                        ).inc()
                        raise StreamVersionConflict(stream_id, expected, actual)

                conn.executemany(
                    f"INSERT INTO events ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                    [_to_row(event) for event in events],
                )
            except StreamVersionConflict:
                conn.rollback()
                raise
            except sqlite3.IntegrityError as exc:
                conn.rollback()
                raise EventStoreError(f"Failed to append events: {exc}") from exc
            conn.commit()

        for event in events:
            events_appended_total.labels(
                stream_type=event.stream_type, event_type=event.event_type
            ).inc()
        logger.debug(
            "Event batch appended",
            command_id=events[0].command_id,
            event_count=len(events),
            stream_count=len(streams),
        )
        return events

    @retry_on_sqlite_lock()
    def load_stream(self, stream_id: str) -> list[Event]:
        """Events of one version stream in version order (empty if unknown)"""
        return self._select("WHERE stream_id = ?", (stream_id,), order_by="version")

    @retry_on_sqlite_lock()
    def load_all_events(self) -> list[Event]:
        """Every event in commit order, for rebuilding the read model"""
        return self._select()

    def get_stream_version(self, stream_id: str) -> int:
        """Stored version of a stream (0 if it has no events)"""
        with self._connect() as conn:
            return self._stream_version(conn, stream_id)

    @staticmethod
    def _stream_version(conn: sqlite3.Connection, stream_id: str) -> int:
        row = conn.execute(
            "SELECT COALESCE(MAX(version), 0) FROM events WHERE stream_id = ?",
            (stream_id,),
        ).fetchone()
        return row[0]

    def count_events(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
