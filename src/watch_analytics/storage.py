"""SQLite storage backend for watch analytics."""

import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

logger = logging.getLogger("watch-analytics")

CONTENT_TYPES = ("episode", "movie")

# Show watch statuses
STATUS_NOT_WATCHED = "NOT_WATCHED"
STATUS_WATCHING = "WATCHING"
STATUS_WATCHED = "WATCHED"
STATUS_UP_TO_DATE = "UP_TO_DATE"
STATUS_UNAIRED = "UNAIRED"


class DataAccessError(Exception):
    """Raised when the underlying database cannot be read or written."""


def to_utc(dt: datetime) -> datetime:
    """Return dt as an aware UTC datetime. Naive values are taken to be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# Register datetime adapters/converters (required for Python 3.12+)


def _adapt_datetime(dt: datetime) -> str:
    """Convert datetime to a UTC ISO format string for SQLite storage."""
    return to_utc(dt).isoformat()


def _convert_datetime(data: bytes) -> datetime:
    """Convert ISO format string from SQLite to an aware UTC datetime."""
    return to_utc(datetime.fromisoformat(data.decode()))


def _parse_timestamp(val) -> datetime | None:
    """Handle both datetime objects and ISO strings (SQLite aggregates return strings)."""
    if val is None:
        return None
    if isinstance(val, str):
        return to_utc(datetime.fromisoformat(val))
    return to_utc(val)


sqlite3.register_adapter(datetime, _adapt_datetime)
sqlite3.register_converter("TIMESTAMP", _convert_datetime)


@dataclass(frozen=True)
class WatchEvent:
    """A completed episode or movie for one profile.

    Immutable. The timestamp is normalised to UTC on construction.
    """

    profile_id: int
    content_id: int
    content_type: str  # 'episode' or 'movie'
    timestamp: datetime
    show_id: int | None = None  # Episodes only
    show_title: str = ""

    def __post_init__(self):
        """Validate content type and normalise the timestamp."""
        if self.content_type not in CONTENT_TYPES:
            raise ValueError(f"content_type must be one of {CONTENT_TYPES}, got '{self.content_type}'")
        if self.content_type == "episode" and self.show_id is None:
            raise ValueError("Episode events require a show_id")
        object.__setattr__(self, "timestamp", to_utc(self.timestamp))


@dataclass
class ShowProgress:
    """Watch progress of one show on a profile's watchlist."""

    show_id: int
    show_title: str
    status: str  # 'NOT_WATCHED', 'WATCHING', 'WATCHED', 'UP_TO_DATE', 'UNAIRED'
    created_at: datetime  # When the show was added to the watchlist
    first_watched_at: datetime | None = None
    last_watched_at: datetime | None = None
    watched_episodes: int = 0
    unwatched_aired_episodes: int = 0


# Default database path
DEFAULT_DB_PATH = Path.home() / ".watch-analytics" / "data.db"


class SQLiteStorage:
    """SQLite-backed store of watch events and show progress."""

    def __init__(self, db_path: str | Path | None = None):
        """Initialize storage with optional custom DB path."""
        if db_path is None:
            db_path = os.environ.get("WATCH_ANALYTICS_DB", str(DEFAULT_DB_PATH))

        self.db_path = Path(db_path)
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create database directory {self.db_path.parent}: {e}")
            raise DataAccessError(
                f"Cannot create database directory {self.db_path.parent}: {e}"
            ) from e

        self._init_db()

    @contextmanager
    def _connect(self):
        """Context manager for database connections.

        Any sqlite3 failure is re-raised as DataAccessError.
        """
        try:
            conn = sqlite3.connect(
                self.db_path,
                detect_types=sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
            )
        except sqlite3.Error as e:
            logger.error(f"Cannot open database {self.db_path}: {e}")
            raise DataAccessError(f"Cannot open database {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Database error on {self.db_path}: {e}")
            raise DataAccessError(str(e)) from e
        finally:
            conn.close()

    def execute_query(self, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        """Execute a SQL query and return all results.

        Args:
            sql: SQL query string
            params: Query parameters (tuple or list)

        Returns:
            List of sqlite3.Row objects
        """
        with self._connect() as conn:
            return conn.execute(sql, params).fetchall()

    def _init_db(self):
        """Create tables if they don't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS shows (
                    id INTEGER PRIMARY KEY,
                    title TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS episodes (
                    id INTEGER PRIMARY KEY,
                    show_id INTEGER NOT NULL,
                    air_date TIMESTAMP
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_episodes_show ON episodes(show_id)")

            # Watchlist membership and show-level status per profile
            conn.execute("""
                CREATE TABLE IF NOT EXISTS show_watch_status (
                    profile_id INTEGER NOT NULL,
                    show_id INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    created_at TIMESTAMP NOT NULL,
                    PRIMARY KEY (profile_id, show_id)
                )
            """)

            # One row per completed episode or movie (denormalized for fast queries)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS watch_events (
                    id INTEGER PRIMARY KEY,
                    profile_id INTEGER NOT NULL,
                    content_id INTEGER NOT NULL,
                    content_type TEXT NOT NULL,
                    show_id INTEGER,
                    show_title TEXT,
                    timestamp TIMESTAMP NOT NULL,
                    UNIQUE(profile_id, content_type, content_id)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_watch_events_profile "
                "ON watch_events(profile_id, timestamp)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_watch_events_show "
                "ON watch_events(profile_id, show_id)"
            )
        logger.debug(f"Initialized schema at {self.db_path}")

    # Catalog operations

    def upsert_show(self, show_id: int, title: str) -> None:
        """Add or update a show."""
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO shows (id, title) VALUES (?, ?)",
                (show_id, title),
            )

    def add_episodes_batch(self, episodes: list[tuple[int, int, datetime | None]]) -> int:
        """Add (episode_id, show_id, air_date) rows. Returns count added."""
        with self._connect() as conn:
            cursor = conn.executemany(
                "INSERT OR REPLACE INTO episodes (id, show_id, air_date) VALUES (?, ?, ?)",
                episodes,
            )
            return cursor.rowcount

    def set_show_status(
        self,
        profile_id: int,
        show_id: int,
        status: str,
        created_at: datetime,
    ) -> None:
        """Add a show to a profile's watchlist or update its status."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO show_watch_status (profile_id, show_id, status, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(profile_id, show_id) DO UPDATE SET status = excluded.status
                """,
                (profile_id, show_id, status, created_at),
            )

    # Watch event operations

    def add_watch_event(self, event: WatchEvent) -> bool:
        """Record a completion. Returns False if it was already recorded."""
        return self.add_watch_events_batch([event]) == 1

    def add_watch_events_batch(self, events: list[WatchEvent]) -> int:
        """Add multiple events in a single transaction. Returns count added."""
        with self._connect() as conn:
            cursor = conn.executemany(
                """
                INSERT OR IGNORE INTO watch_events (
                    profile_id, content_id, content_type, show_id, show_title, timestamp
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        e.profile_id,
                        e.content_id,
                        e.content_type,
                        e.show_id,
                        e.show_title,
                        e.timestamp,
                    )
                    for e in events
                ],
            )
            return cursor.rowcount

    def fetch_watch_events(
        self,
        profile_id: int,
        window_days: int | None = None,
        content_type: str | None = None,
        now: datetime | None = None,
    ) -> list[WatchEvent]:
        """Get a profile's completions ordered by timestamp.

        Args:
            profile_id: Profile to fetch
            window_days: Only include completions from the last N days
            content_type: Optional 'episode' or 'movie' filter
            now: Reference time for the window (default: current UTC time)

        Returns:
            List of WatchEvent objects, oldest first (empty if none match)
        """
        conditions = ["profile_id = ?"]
        params: list = [profile_id]

        if window_days is not None:
            reference = to_utc(now) if now else datetime.now(timezone.utc)
            conditions.append("timestamp >= ?")
            params.append(reference - timedelta(days=window_days))
        if content_type:
            conditions.append("content_type = ?")
            params.append(content_type)

        # Safe: where_clause is built from hardcoded condition strings, not user input
        where_clause = " AND ".join(conditions)
        rows = self.execute_query(
            f"""
            SELECT profile_id, content_id, content_type, show_id, show_title, timestamp
            FROM watch_events
            WHERE {where_clause}
            ORDER BY timestamp, id
            """,
            params,
        )

        return [self._row_to_event(row) for row in rows]

    def _row_to_event(self, row: sqlite3.Row) -> WatchEvent:
        """Convert a database row to a WatchEvent object."""
        return WatchEvent(
            profile_id=row["profile_id"],
            content_id=row["content_id"],
            content_type=row["content_type"],
            timestamp=_parse_timestamp(row["timestamp"]),
            show_id=row["show_id"],
            show_title=row["show_title"] or "",
        )

    # Show progress operations

    def fetch_show_progress(
        self,
        profile_id: int,
        now: datetime | None = None,
    ) -> list[ShowProgress]:
        """Get per-show watch progress for every show on a profile's watchlist.

        Args:
            profile_id: Profile to fetch
            now: Reference time deciding which episodes have aired

        Returns:
            List of ShowProgress objects ordered by show id
        """
        reference = to_utc(now) if now else datetime.now(timezone.utc)
        rows = self.execute_query(
            """
            SELECT
                sws.show_id,
                s.title AS show_title,
                sws.status,
                sws.created_at,
                MIN(we.timestamp) AS first_watched_at,
                MAX(we.timestamp) AS last_watched_at,
                COUNT(we.id) AS watched_episodes,
                (
                    SELECT COUNT(*) FROM episodes e
                    WHERE e.show_id = sws.show_id
                      AND e.air_date IS NOT NULL
                      AND e.air_date <= ?
                      AND NOT EXISTS (
                          SELECT 1 FROM watch_events w2
                          WHERE w2.profile_id = sws.profile_id
                            AND w2.content_type = 'episode'
                            AND w2.content_id = e.id
                      )
                ) AS unwatched_aired_episodes
            FROM show_watch_status sws
            JOIN shows s ON s.id = sws.show_id
            LEFT JOIN watch_events we
                ON we.profile_id = sws.profile_id
                AND we.show_id = sws.show_id
                AND we.content_type = 'episode'
            WHERE sws.profile_id = ?
            GROUP BY sws.show_id, s.title, sws.status, sws.created_at
            ORDER BY sws.show_id
            """,
            (reference, profile_id),
        )

        return [
            ShowProgress(
                show_id=row["show_id"],
                show_title=row["show_title"],
                status=row["status"],
                created_at=_parse_timestamp(row["created_at"]),
                first_watched_at=_parse_timestamp(row["first_watched_at"]),
                last_watched_at=_parse_timestamp(row["last_watched_at"]),
                watched_episodes=row["watched_episodes"],
                unwatched_aired_episodes=row["unwatched_aired_episodes"],
            )
            for row in rows
        ]

    # Utility operations

    def get_db_stats(self) -> dict:
        """Get database statistics."""
        with self._connect() as conn:
            event_count = conn.execute("SELECT COUNT(*) FROM watch_events").fetchone()[0]
            profile_count = conn.execute(
                "SELECT COUNT(DISTINCT profile_id) FROM watch_events"
            ).fetchone()[0]
            show_count = conn.execute("SELECT COUNT(*) FROM shows").fetchone()[0]
            episode_count = conn.execute("SELECT COUNT(*) FROM episodes").fetchone()[0]

            date_range = conn.execute(
                "SELECT MIN(timestamp) as min_ts, MAX(timestamp) as max_ts FROM watch_events"
            ).fetchone()

            db_size = self.db_path.stat().st_size if self.db_path.exists() else 0

            def to_iso(val):
                parsed = _parse_timestamp(val)
                return parsed.isoformat() if parsed else None

            return {
                "event_count": event_count,
                "profile_count": profile_count,
                "show_count": show_count,
                "episode_count": episode_count,
                "earliest_event": to_iso(date_range["min_ts"]),
                "latest_event": to_iso(date_range["max_ts"]),
                "db_size_bytes": db_size,
                "db_path": str(self.db_path),
            }
