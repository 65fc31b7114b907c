"""Pytest configuration and shared fixtures."""

import atexit
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Keep the server module's default storage out of the home directory
_server_db_dir = tempfile.TemporaryDirectory()
atexit.register(_server_db_dir.cleanup)
os.environ.setdefault("WATCH_ANALYTICS_DB", str(Path(_server_db_dir.name) / "server-test.db"))

from watch_analytics.storage import (  # noqa: E402
    STATUS_NOT_WATCHED,
    STATUS_WATCHED,
    STATUS_WATCHING,
    SQLiteStorage,
    WatchEvent,
)

# Sunday, 2025-06-15 12:00 UTC
NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    """Fixed reference time shared by fixtures and assertions."""
    return NOW


@pytest.fixture
def storage():
    """Create a temporary storage instance for testing.

    This is the base fixture for all storage-dependent tests.
    Use this when you need an empty database.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        yield SQLiteStorage(db_path)


@pytest.fixture
def populated_storage(storage):
    """Storage with one realistic profile (1) and an empty profile (2).

    Contains, relative to NOW:
    - Breaking Point (10): WATCHING, 4 episodes binged 95 days ago, 6 aired left
    - Slow Burn (20): WATCHING, 2 episodes 40 and 35 days ago, 3 aired left, 1 unaired
    - Backlog Show (30): NOT_WATCHED, added 45 days ago
    - Old Backlog (40): NOT_WATCHED, added 400 days ago
    - Finished Fast (50): WATCHED, 3 episodes 10, 7 and 4 days ago
    - One movie watched 3 days ago
    """
    shows = [
        (10, "Breaking Point", STATUS_WATCHING, NOW - timedelta(days=100)),
        (20, "Slow Burn", STATUS_WATCHING, NOW - timedelta(days=50)),
        (30, "Backlog Show", STATUS_NOT_WATCHED, NOW - timedelta(days=45)),
        (40, "Old Backlog", STATUS_NOT_WATCHED, NOW - timedelta(days=400)),
        (50, "Finished Fast", STATUS_WATCHED, NOW - timedelta(days=20)),
    ]
    for show_id, title, status, created_at in shows:
        storage.upsert_show(show_id, title)
        storage.set_show_status(1, show_id, status, created_at)

    episodes = [(101 + i, 10, NOW - timedelta(days=200)) for i in range(10)]
    episodes += [(201 + i, 20, NOW - timedelta(days=60)) for i in range(5)]
    episodes.append((206, 20, NOW + timedelta(days=7)))
    episodes += [(301, 30, NOW - timedelta(days=30)), (401, 40, NOW - timedelta(days=30))]
    episodes += [(501 + i, 50, NOW - timedelta(days=30)) for i in range(3)]
    storage.add_episodes_batch(episodes)

    binge_start = NOW - timedelta(days=95)
    events = [
        WatchEvent(1, 101 + i, "episode", binge_start + timedelta(hours=2 * i), 10, "Breaking Point")
        for i in range(4)
    ]
    events += [
        WatchEvent(1, 201, "episode", NOW - timedelta(days=40), 20, "Slow Burn"),
        WatchEvent(1, 202, "episode", NOW - timedelta(days=35), 20, "Slow Burn"),
    ]
    events += [
        WatchEvent(1, 501 + i, "episode", NOW - timedelta(days=days), 50, "Finished Fast")
        for i, days in enumerate((10, 7, 4))
    ]
    events.append(WatchEvent(1, 900, "movie", NOW - timedelta(days=3), show_title="The Movie"))
    storage.add_watch_events_batch(events)

    return storage
