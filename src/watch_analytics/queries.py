"""Analytic entry points: fetch a profile snapshot and compute one statistic."""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timedelta, timezone

from watch_analytics.patterns import (
    DEFAULT_VELOCITY_DAYS,
    abandonment_risk_stats,
    binge_stats,
    build_monthly_viewing,
    build_velocity_samples,
    daily_activity,
    monthly_activity,
    seasonal_stats,
    streak_stats,
    time_to_watch_stats,
    velocity_stats,
    weekly_activity,
)
from watch_analytics.storage import SQLiteStorage, WatchEvent, to_utc

logger = logging.getLogger("watch-analytics")


def resolve_now(now: datetime | None = None) -> datetime:
    """Return now as aware UTC, defaulting to the current time."""
    return to_utc(now) if now else datetime.now(timezone.utc)


def get_cutoff(now: datetime, days: int | float) -> datetime:
    """Calculate cutoff datetime N days before now."""
    return now - timedelta(days=days)


def months_before(now: datetime, months: int) -> datetime:
    """Same day-of-month N calendar months earlier, clamped to the month's length."""
    month_index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(month_index, 12)
    day = min(now.day, calendar.monthrange(year, month + 1)[1])
    return now.replace(year=year, month=month + 1, day=day)


def _since(events: list[WatchEvent], cutoff: datetime) -> list[WatchEvent]:
    return [e for e in events if e.timestamp >= cutoff]


def compute_binge_stats(storage: SQLiteStorage, profile_id: int) -> dict:
    """Get binge-watching statistics for a profile.

    A binge is 3+ episodes of the same show, each within 24 hours of the last.

    Args:
        storage: Storage instance
        profile_id: Profile to analyze

    Returns:
        Dict with session count, average length, longest session and top shows
    """
    events = storage.fetch_watch_events(profile_id, content_type="episode")
    logger.debug(f"Computing binge stats for profile {profile_id} from {len(events)} events")
    return binge_stats(events)


def compute_streak_stats(
    storage: SQLiteStorage,
    profile_id: int,
    now: datetime | None = None,
) -> dict:
    """Get watch streak statistics for a profile.

    Args:
        storage: Storage instance
        profile_id: Profile to analyze
        now: Reference time deciding whether the last streak is current

    Returns:
        Dict with current/longest streak, streaks of 7+ days and average length
    """
    now = resolve_now(now)
    events = storage.fetch_watch_events(profile_id, content_type="episode")
    logger.debug(f"Computing streak stats for profile {profile_id} from {len(events)} events")
    return streak_stats(events, now.date())


def compute_velocity_stats(
    storage: SQLiteStorage,
    profile_id: int,
    days: int = DEFAULT_VELOCITY_DAYS,
    now: datetime | None = None,
) -> dict:
    """Get watching velocity for a profile over a lookback window.

    Args:
        storage: Storage instance
        profile_id: Profile to analyze
        days: Lookback window in days (default: 30)
        now: End of the window

    Returns:
        Dict with episodes per day/week/month, most active hour/day and trend
    """
    now = resolve_now(now)
    events = storage.fetch_watch_events(
        profile_id, window_days=days, content_type="episode", now=now
    )
    samples = build_velocity_samples(events)
    logger.debug(
        f"Computing velocity for profile {profile_id}: {len(events)} events, {len(samples)} slots"
    )
    return velocity_stats(samples)


def compute_seasonal_stats(storage: SQLiteStorage, profile_id: int) -> dict:
    """Get viewing counts by month and season for a profile."""
    events = storage.fetch_watch_events(profile_id, content_type="episode")
    logger.debug(f"Computing seasonal stats for profile {profile_id} from {len(events)} events")
    return seasonal_stats(build_monthly_viewing(events))


def compute_time_to_watch_stats(
    storage: SQLiteStorage,
    profile_id: int,
    now: datetime | None = None,
) -> dict:
    """Get time-to-watch and backlog aging statistics for a profile.

    Args:
        storage: Storage instance
        profile_id: Profile to analyze
        now: Reference time for backlog aging

    Returns:
        Dict with average days to start/complete, fastest completions and backlog buckets
    """
    now = resolve_now(now)
    progress = storage.fetch_show_progress(profile_id, now=now)
    logger.debug(f"Computing time-to-watch for profile {profile_id} over {len(progress)} shows")
    return time_to_watch_stats(progress, now)


def compute_abandonment_risk_stats(
    storage: SQLiteStorage,
    profile_id: int,
    now: datetime | None = None,
) -> dict:
    """Get shows at risk of abandonment and the overall abandonment rate.

    Args:
        storage: Storage instance
        profile_id: Profile to analyze
        now: Reference time for idle days and aired episodes

    Returns:
        Dict with at-risk shows (longest idle first) and abandonment rate percentage
    """
    now = resolve_now(now)
    progress = storage.fetch_show_progress(profile_id, now=now)
    logger.debug(f"Computing abandonment risk for profile {profile_id} over {len(progress)} shows")
    return abandonment_risk_stats(progress, now)


def compute_daily_activity(
    storage: SQLiteStorage,
    profile_id: int,
    days: int = 30,
    now: datetime | None = None,
) -> list[dict]:
    """Episodes watched per day over the last N days, newest first."""
    now = resolve_now(now)
    events = storage.fetch_watch_events(
        profile_id, window_days=days, content_type="episode", now=now
    )
    return daily_activity(events)


def compute_weekly_activity(
    storage: SQLiteStorage,
    profile_id: int,
    weeks: int = 12,
    now: datetime | None = None,
) -> list[dict]:
    """Episodes watched per week over the last N weeks, newest first."""
    now = resolve_now(now)
    events = storage.fetch_watch_events(
        profile_id, window_days=weeks * 7, content_type="episode", now=now
    )
    return weekly_activity(events)


def compute_monthly_activity(
    storage: SQLiteStorage,
    profile_id: int,
    months: int = 12,
    now: datetime | None = None,
) -> list[dict]:
    """Episodes and movies watched per month over the last N months, newest first."""
    now = resolve_now(now)
    events = storage.fetch_watch_events(profile_id)
    return monthly_activity(_since(events, months_before(now, months)))


def compute_profile_insights(
    storage: SQLiteStorage,
    profile_id: int,
    now: datetime | None = None,
) -> dict:
    """Compute every analytic for a profile from a single snapshot.

    Args:
        storage: Storage instance
        profile_id: Profile to analyze
        now: Reference time shared by all analytics

    Returns:
        Dict keyed by analytic name
    """
    now = resolve_now(now)
    events = storage.fetch_watch_events(profile_id, content_type="episode")
    progress = storage.fetch_show_progress(profile_id, now=now)
    logger.debug(
        f"Computing insights for profile {profile_id}: {len(events)} events, {len(progress)} shows"
    )

    recent = _since(events, get_cutoff(now, days=DEFAULT_VELOCITY_DAYS))

    return {
        "profileId": profile_id,
        "generatedAt": now.isoformat(),
        "bingeWatching": binge_stats(events),
        "watchStreaks": streak_stats(events, now.date()),
        "watchingVelocity": velocity_stats(build_velocity_samples(recent)),
        "seasonalViewing": seasonal_stats(build_monthly_viewing(events)),
        "timeToWatch": time_to_watch_stats(progress, now),
        "abandonmentRisk": abandonment_risk_stats(progress, now),
    }
