"""Temporal pattern detection over a profile's watch history.

Every function here works on an in-memory snapshot already fetched from
storage. Nothing reads the clock: callers pass ``now`` or ``today``.
Grouping is done with insertion-ordered dicts so that "first encountered"
tie-breaks are stable.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from watch_analytics.storage import STATUS_NOT_WATCHED, STATUS_WATCHING, ShowProgress, WatchEvent

# Binge detection
BINGE_MIN_EPISODES = 3
BINGE_MAX_GAP = timedelta(hours=24)
TOP_BINGED_SHOWS = 5

# Streaks
LONG_STREAK_DAYS = 7

# Velocity
DEFAULT_VELOCITY_DAYS = 30
TREND_MIN_ACTIVE_DAYS = 14
TREND_THRESHOLD_PCT = 10

# Time to watch / abandonment
FASTEST_COMPLETIONS = 5
BACKLOG_THRESHOLDS = (30, 90, 365)
AT_RISK_IDLE_DAYS = 30
ABANDONED_IDLE_DAYS = 90

# Indexed by day_of_week - 1 (1 = Sunday)
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

# Indexed by month - 1
MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

SEASON_MONTHS = {
    "spring": (3, 4, 5),
    "summer": (6, 7, 8),
    "fall": (9, 10, 11),
    "winter": (12, 1, 2),
}


def round_half_up(value: float, places: int = 1) -> float:
    """Round half away from zero for non-negative values (not banker's rounding)."""
    factor = 10**places
    return math.floor(value * factor + 0.5) / factor


def calendar_days_between(start: datetime, end: datetime) -> int:
    """Whole UTC calendar days from start to end (negative if end is earlier)."""
    return (end.date() - start.date()).days


def _episodes(events: list[WatchEvent]) -> list[WatchEvent]:
    return [e for e in events if e.content_type == "episode"]


def _day_of_week(d: date) -> int:
    """1 = Sunday ... 7 = Saturday."""
    return d.isoweekday() % 7 + 1


def _first_max(counts: dict) -> tuple:
    """Return (key, count) of the first strict maximum in insertion order."""
    best_key, best_count = None, 0
    for key, count in counts.items():
        if count > best_count:
            best_key, best_count = key, count
    return best_key, best_count


# Binge sessions


@dataclass(frozen=True)
class BingeSession:
    """Three or more same-show episodes, each within 24 hours of the previous."""

    show_id: int
    show_title: str
    episode_count: int
    start_timestamp: datetime


def detect_binge_sessions(events: list[WatchEvent]) -> list[BingeSession]:
    """Group consecutive same-show completions into binge sessions.

    Args:
        events: Episode completions sorted by (show_id, timestamp)

    Returns:
        Sessions in scan order
    """
    sessions: list[BingeSession] = []

    def close(buffer: list[WatchEvent]):
        if len(buffer) >= BINGE_MIN_EPISODES:
            first = buffer[0]
            sessions.append(
                BingeSession(
                    show_id=first.show_id,
                    show_title=first.show_title,
                    episode_count=len(buffer),
                    start_timestamp=first.timestamp,
                )
            )

    current: list[WatchEvent] = []
    for event in events:
        if current:
            last = current[-1]
            if event.show_id == last.show_id and event.timestamp - last.timestamp <= BINGE_MAX_GAP:
                current.append(event)
                continue
            close(current)
        current = [event]

    close(current)
    return sessions


def empty_binge_stats() -> dict:
    return {
        "bingeSessionCount": 0,
        "averageEpisodesPerBinge": 0,
        "longestBingeSession": {"showTitle": "", "episodeCount": 0, "date": ""},
        "topBingedShows": [],
    }


def summarize_binge_sessions(sessions: list[BingeSession]) -> dict:
    """Summarize detected sessions into binge-watching stats."""
    if not sessions:
        return empty_binge_stats()

    longest = sessions[0]
    for session in sessions[1:]:
        if session.episode_count > longest.episode_count:
            longest = session

    total_episodes = sum(s.episode_count for s in sessions)

    per_show: dict[int, dict] = {}
    for session in sessions:
        entry = per_show.setdefault(
            session.show_id,
            {"showId": session.show_id, "showTitle": session.show_title, "bingeSessionCount": 0},
        )
        entry["bingeSessionCount"] += 1

    # sorted() is stable, so ties keep first-encounter order
    top_shows = sorted(per_show.values(), key=lambda x: x["bingeSessionCount"], reverse=True)

    return {
        "bingeSessionCount": len(sessions),
        "averageEpisodesPerBinge": round_half_up(total_episodes / len(sessions)),
        "longestBingeSession": {
            "showTitle": longest.show_title,
            "episodeCount": longest.episode_count,
            "date": longest.start_timestamp.date().isoformat(),
        },
        "topBingedShows": top_shows[:TOP_BINGED_SHOWS],
    }


def binge_stats(events: list[WatchEvent]) -> dict:
    """Binge-watching stats for a profile's completions (any order)."""
    episodes = sorted(_episodes(events), key=lambda e: (e.show_id, e.timestamp))
    return summarize_binge_sessions(detect_binge_sessions(episodes))


# Streaks


@dataclass(frozen=True)
class Streak:
    """A run of consecutive calendar days with at least one completion."""

    start_date: date
    end_date: date
    length_in_days: int


def merge_streaks(dates: list[date]) -> list[Streak]:
    """Merge distinct ascending dates into streaks of consecutive days."""
    if not dates:
        return []

    streaks = []
    start = end = dates[0]
    length = 1
    for current in dates[1:]:
        if (current - end).days == 1:
            end = current
            length += 1
        else:
            streaks.append(Streak(start, end, length))
            start = end = current
            length = 1

    streaks.append(Streak(start, end, length))
    return streaks


def empty_streak_stats() -> dict:
    return {
        "currentStreak": 0,
        "longestStreak": 0,
        "currentStreakStartDate": "",
        "longestStreakPeriod": {"startDate": "", "endDate": "", "days": 0},
        "streaksOver7Days": 0,
        "averageStreakLength": 0,
    }


def summarize_streaks(streaks: list[Streak], today: date) -> dict:
    """Summarize streaks relative to today's UTC date.

    The last streak is current only if it ends today or yesterday.
    """
    if not streaks:
        return empty_streak_stats()

    longest = streaks[0]
    for streak in streaks[1:]:
        if streak.length_in_days > longest.length_in_days:
            longest = streak

    last = streaks[-1]
    is_current = last.end_date in (today, today - timedelta(days=1))

    return {
        "currentStreak": last.length_in_days if is_current else 0,
        "longestStreak": longest.length_in_days,
        "currentStreakStartDate": last.start_date.isoformat() if is_current else "",
        "longestStreakPeriod": {
            "startDate": longest.start_date.isoformat(),
            "endDate": longest.end_date.isoformat(),
            "days": longest.length_in_days,
        },
        "streaksOver7Days": sum(1 for s in streaks if s.length_in_days >= LONG_STREAK_DAYS),
        "averageStreakLength": round_half_up(
            sum(s.length_in_days for s in streaks) / len(streaks)
        ),
    }


def streak_stats(events: list[WatchEvent], today: date) -> dict:
    """Watch streak stats over the distinct UTC dates with episode completions."""
    dates = sorted({e.timestamp.date() for e in _episodes(events)})
    return summarize_streaks(merge_streaks(dates), today)


# Velocity


@dataclass(frozen=True)
class VelocitySample:
    """Completions within one (date, hour, day-of-week) slot."""

    watch_date: date
    watch_hour: int
    day_of_week: int  # 1 = Sunday ... 7 = Saturday
    episode_count: int
    show_count: int


def build_velocity_samples(events: list[WatchEvent]) -> list[VelocitySample]:
    """Aggregate episode completions into slots, newest date first."""
    slots: dict[tuple, list[WatchEvent]] = {}
    for event in _episodes(events):
        ts = event.timestamp
        slots.setdefault((ts.date(), ts.hour), []).append(event)

    ordered = sorted(slots.items(), key=lambda item: (-item[0][0].toordinal(), item[0][1]))
    return [
        VelocitySample(
            watch_date=watch_date,
            watch_hour=hour,
            day_of_week=_day_of_week(watch_date),
            episode_count=len(slot_events),
            show_count=len({e.show_id for e in slot_events}),
        )
        for (watch_date, hour), slot_events in ordered
    ]


def velocity_trend(samples: list[VelocitySample], unique_days: int) -> str:
    """Compare the recent half of the rows to the older half.

    The split is by row index, not by calendar midpoint.

    Returns:
        'increasing', 'decreasing', or 'stable'
    """
    if unique_days < TREND_MIN_ACTIVE_DAYS:
        return "stable"

    midpoint = len(samples) // 2
    recent_half = samples[:midpoint]
    older_half = samples[midpoint:]

    def per_day(rows: list[VelocitySample]) -> float:
        days = len({r.watch_date for r in rows})
        return sum(r.episode_count for r in rows) / days if days > 0 else 0

    recent_avg = per_day(recent_half)
    older_avg = per_day(older_half)
    pct_change = ((recent_avg - older_avg) / older_avg) * 100 if older_avg > 0 else 0

    if pct_change > TREND_THRESHOLD_PCT:
        return "increasing"
    if pct_change < -TREND_THRESHOLD_PCT:
        return "decreasing"
    return "stable"


def empty_velocity_stats() -> dict:
    return {
        "episodesPerWeek": 0,
        "episodesPerMonth": 0,
        "averageEpisodesPerDay": 0,
        "mostActiveDay": "N/A",
        "mostActiveHour": 0,
        "velocityTrend": "stable",
    }


def velocity_stats(samples: list[VelocitySample]) -> dict:
    """Throughput, peak slot and trend from velocity samples."""
    if not samples:
        return empty_velocity_stats()

    total_episodes = sum(s.episode_count for s in samples)
    unique_days = len({s.watch_date for s in samples})
    average_per_day = total_episodes / unique_days if unique_days > 0 else 0

    hour_counts: dict[int, int] = {}
    day_counts: dict[int, int] = {}
    for s in samples:
        hour_counts[s.watch_hour] = hour_counts.get(s.watch_hour, 0) + s.episode_count
        day_counts[s.day_of_week] = day_counts.get(s.day_of_week, 0) + s.episode_count

    most_active_hour, _ = _first_max(hour_counts)
    most_active_day, _ = _first_max(day_counts)

    return {
        "episodesPerWeek": round_half_up(average_per_day * 7),
        "episodesPerMonth": math.floor(average_per_day * 30 + 0.5),
        "averageEpisodesPerDay": round_half_up(average_per_day),
        "mostActiveDay": DAY_NAMES[most_active_day - 1] if most_active_day else "Sunday",
        "mostActiveHour": most_active_hour if most_active_hour is not None else 0,
        "velocityTrend": velocity_trend(samples, unique_days),
    }


# Seasonal viewing


@dataclass(frozen=True)
class MonthlyViewing:
    month: int  # 1-12
    month_name: str
    episode_count: int


def build_monthly_viewing(events: list[WatchEvent]) -> list[MonthlyViewing]:
    """Episode completions per calendar month (all years), ordered by month."""
    counts: dict[int, int] = {}
    for event in _episodes(events):
        month = event.timestamp.month
        counts[month] = counts.get(month, 0) + 1

    return [
        MonthlyViewing(month=month, month_name=MONTH_NAMES[month - 1], episode_count=counts[month])
        for month in sorted(counts)
    ]


def empty_seasonal_stats() -> dict:
    return {
        "viewingByMonth": {},
        "viewingBySeason": {season: 0 for season in SEASON_MONTHS},
        "peakViewingMonth": "N/A",
        "slowestViewingMonth": "N/A",
    }


def seasonal_stats(rows: list[MonthlyViewing]) -> dict:
    """Bucket monthly counts by month name and season; find peak and slowest."""
    if not rows:
        return empty_seasonal_stats()

    viewing_by_month = {row.month_name: row.episode_count for row in rows}

    viewing_by_season = {season: 0 for season in SEASON_MONTHS}
    for row in rows:
        for season, months in SEASON_MONTHS.items():
            if row.month in months:
                viewing_by_season[season] += row.episode_count
                break

    peak_month, peak_count = "", 0
    slowest_month, slowest_count = "", math.inf
    for row in rows:
        if row.episode_count > peak_count:
            peak_month, peak_count = row.month_name, row.episode_count
        if row.episode_count < slowest_count:
            slowest_month, slowest_count = row.month_name, row.episode_count

    return {
        "viewingByMonth": viewing_by_month,
        "viewingBySeason": viewing_by_season,
        "peakViewingMonth": peak_month or "N/A",
        "slowestViewingMonth": slowest_month or "N/A",
    }


# Time to watch


@dataclass(frozen=True)
class BacklogEntry:
    """Discovery-to-start and start-to-finish latency for one show."""

    show_id: int
    show_title: str
    created_at: datetime
    first_watched_at: datetime | None = None
    last_watched_at: datetime | None = None
    days_to_start: int | None = None
    days_to_complete: int | None = None

    @classmethod
    def from_progress(cls, progress: ShowProgress) -> "BacklogEntry":
        first, last = progress.first_watched_at, progress.last_watched_at
        return cls(
            show_id=progress.show_id,
            show_title=progress.show_title,
            created_at=progress.created_at,
            first_watched_at=first,
            last_watched_at=last,
            days_to_start=calendar_days_between(progress.created_at, first) if first else None,
            days_to_complete=calendar_days_between(first, last) if first and last else None,
        )


def empty_time_to_watch_stats() -> dict:
    return {
        "averageDaysToStartShow": 0,
        "averageDaysToCompleteShow": 0,
        "fastestCompletions": [],
        "backlogAging": {
            "unwatchedOver30Days": 0,
            "unwatchedOver90Days": 0,
            "unwatchedOver365Days": 0,
        },
    }


def time_to_watch_stats(progress: list[ShowProgress], now: datetime) -> dict:
    """Latency from watchlist add to first watch and from first to last watch.

    Backlog buckets overlap: a show idle for 400 days counts in all three.
    """
    if not progress:
        return empty_time_to_watch_stats()

    entries = [BacklogEntry.from_progress(p) for p in progress]

    started = [e.days_to_start for e in entries if e.days_to_start is not None and e.days_to_start >= 0]
    average_to_start = sum(started) / len(started) if started else 0

    completed = [e for e in entries if e.days_to_complete is not None and e.days_to_complete > 0]
    average_to_complete = (
        sum(e.days_to_complete for e in completed) / len(completed) if completed else 0
    )
    fastest = sorted(completed, key=lambda e: e.days_to_complete)[:FASTEST_COMPLETIONS]

    idle_days = [(now - e.created_at).days for e in entries if e.first_watched_at is None]
    over_30, over_90, over_365 = (
        sum(1 for days in idle_days if days > threshold) for threshold in BACKLOG_THRESHOLDS
    )

    return {
        "averageDaysToStartShow": round_half_up(average_to_start),
        "averageDaysToCompleteShow": round_half_up(average_to_complete),
        "fastestCompletions": [
            {"showId": e.show_id, "showTitle": e.show_title, "daysToComplete": e.days_to_complete}
            for e in fastest
        ],
        "backlogAging": {
            "unwatchedOver30Days": over_30,
            "unwatchedOver90Days": over_90,
            "unwatchedOver365Days": over_365,
        },
    }


# Abandonment risk


@dataclass(frozen=True)
class RiskEntry:
    show_id: int
    show_title: str
    days_since_last_watch: int
    unwatched_aired_episodes: int
    status: str


def _days_idle(progress: ShowProgress, now: datetime) -> int | None:
    if progress.last_watched_at is None:
        return None
    return calendar_days_between(progress.last_watched_at, now)


def find_at_risk_shows(progress: list[ShowProgress], now: datetime) -> list[RiskEntry]:
    """Shows in progress that stalled 30+ days with aired episodes left to watch.

    Returns:
        Entries sorted by days since last watch, longest idle first
    """
    at_risk = []
    for p in progress:
        idle = _days_idle(p, now)
        if (
            p.status == STATUS_WATCHING
            and idle is not None
            and idle >= AT_RISK_IDLE_DAYS
            and p.unwatched_aired_episodes > 0
        ):
            at_risk.append(
                RiskEntry(
                    show_id=p.show_id,
                    show_title=p.show_title,
                    days_since_last_watch=idle,
                    unwatched_aired_episodes=p.unwatched_aired_episodes,
                    status=p.status,
                )
            )

    at_risk.sort(key=lambda r: r.days_since_last_watch, reverse=True)
    return at_risk


def abandonment_rate(progress: list[ShowProgress], now: datetime) -> float:
    """Percentage of started shows left idle in WATCHING for 90+ days."""
    started = [
        p
        for p in progress
        if p.status in (STATUS_WATCHING, STATUS_NOT_WATCHED) and p.watched_episodes > 0
    ]
    if not started:
        return 0

    abandoned = [
        p
        for p in started
        if p.status == STATUS_WATCHING and (_days_idle(p, now) or 0) >= ABANDONED_IDLE_DAYS
    ]
    return round_half_up(len(abandoned) / len(started) * 100)


def abandonment_risk_stats(progress: list[ShowProgress], now: datetime) -> dict:
    return {
        "showsAtRisk": [
            {
                "showId": r.show_id,
                "showTitle": r.show_title,
                "daysSinceLastWatch": r.days_since_last_watch,
                "unwatchedEpisodes": r.unwatched_aired_episodes,
                "status": r.status,
            }
            for r in find_at_risk_shows(progress, now)
        ],
        "showAbandonmentRate": abandonment_rate(progress, now),
    }


# Activity timelines


def daily_activity(events: list[WatchEvent]) -> list[dict]:
    """Episodes and distinct shows per UTC date, newest first."""
    days: dict[date, list[WatchEvent]] = {}
    for event in _episodes(events):
        days.setdefault(event.timestamp.date(), []).append(event)

    return [
        {
            "date": day.isoformat(),
            "episodesWatched": len(day_events),
            "showsWatched": len({e.show_id for e in day_events}),
        }
        for day, day_events in sorted(days.items(), reverse=True)
    ]


def weekly_activity(events: list[WatchEvent]) -> list[dict]:
    """Episodes per Monday-start week, newest first."""
    weeks: dict[date, int] = {}
    for event in _episodes(events):
        day = event.timestamp.date()
        week_start = day - timedelta(days=day.weekday())
        weeks[week_start] = weeks.get(week_start, 0) + 1

    return [
        {"weekStart": week_start.isoformat(), "episodesWatched": count}
        for week_start, count in sorted(weeks.items(), reverse=True)
    ]


def monthly_activity(events: list[WatchEvent]) -> list[dict]:
    """Episodes and movies per YYYY-MM month, newest first."""
    months: dict[str, dict] = {}
    for event in events:
        key = event.timestamp.strftime("%Y-%m")
        entry = months.setdefault(key, {"month": key, "episodesWatched": 0, "moviesWatched": 0})
        if event.content_type == "episode":
            entry["episodesWatched"] += 1
        else:
            entry["moviesWatched"] += 1

    return [months[key] for key in sorted(months, reverse=True)]
