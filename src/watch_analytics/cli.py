"""Command-line interface for watch analytics."""

import argparse
import json

from watch_analytics.queries import (
    compute_abandonment_risk_stats,
    compute_binge_stats,
    compute_daily_activity,
    compute_monthly_activity,
    compute_profile_insights,
    compute_seasonal_stats,
    compute_streak_stats,
    compute_time_to_watch_stats,
    compute_velocity_stats,
    compute_weekly_activity,
)
from watch_analytics.storage import SQLiteStorage

# Formatter registry: list of (predicate, formatter) tuples
# Each predicate checks if this formatter can handle the data
# Order matters - first match wins
_FORMATTERS: list[tuple[callable, callable]] = []


def _register_formatter(predicate: callable):
    """Decorator to register a formatter with its predicate."""

    def decorator(formatter: callable):
        _FORMATTERS.append((predicate, formatter))
        return formatter

    return decorator


@_register_formatter(lambda d: "bingeWatching" in d and "watchStreaks" in d)
def _format_insights(data: dict) -> list[str]:
    binge = data["bingeWatching"]
    streaks = data["watchStreaks"]
    velocity = data["watchingVelocity"]
    seasonal = data["seasonalViewing"]
    time_to_watch = data["timeToWatch"]
    risk = data["abandonmentRisk"]
    return [
        f"Insights for profile {data['profileId']}:",
        f"  Binge sessions: {binge['bingeSessionCount']}",
        f"  Current streak: {streaks['currentStreak']} days (longest {streaks['longestStreak']})",
        f"  Episodes per week: {velocity['episodesPerWeek']} ({velocity['velocityTrend']})",
        f"  Peak month: {seasonal['peakViewingMonth']}",
        f"  Avg days to start: {time_to_watch['averageDaysToStartShow']}",
        f"  Shows at risk: {len(risk['showsAtRisk'])}",
        f"  Abandonment rate: {risk['showAbandonmentRate']}%",
    ]


@_register_formatter(lambda d: "bingeSessionCount" in d)
def _format_binge(data: dict) -> list[str]:
    lines = [
        f"Binge sessions: {data['bingeSessionCount']}",
        f"Avg episodes per binge: {data['averageEpisodesPerBinge']}",
    ]
    longest = data["longestBingeSession"]
    if longest["episodeCount"]:
        lines.append(
            f"Longest binge: {longest['showTitle']} ({longest['episodeCount']} episodes on {longest['date']})"
        )
    if data["topBingedShows"]:
        lines.append("")
        lines.append("Top binged shows:")
        for show in data["topBingedShows"]:
            lines.append(f"  {show['showTitle']}: {show['bingeSessionCount']}")
    return lines


@_register_formatter(lambda d: "currentStreak" in d)
def _format_streaks(data: dict) -> list[str]:
    lines = [f"Current streak: {data['currentStreak']} days"]
    if data["currentStreakStartDate"]:
        lines[0] += f" (since {data['currentStreakStartDate']})"
    period = data["longestStreakPeriod"]
    longest = f"Longest streak: {data['longestStreak']} days"
    if period["startDate"]:
        longest += f" ({period['startDate']} to {period['endDate']})"
    lines.append(longest)
    lines.append(f"Streaks of 7+ days: {data['streaksOver7Days']}")
    lines.append(f"Avg streak length: {data['averageStreakLength']}")
    return lines


@_register_formatter(lambda d: "velocityTrend" in d)
def _format_velocity(data: dict) -> list[str]:
    arrow = {"increasing": "↑", "decreasing": "↓", "stable": "→"}[data["velocityTrend"]]
    return [
        f"Episodes per day: {data['averageEpisodesPerDay']}",
        f"Episodes per week: {data['episodesPerWeek']}",
        f"Episodes per month: {data['episodesPerMonth']}",
        f"Most active: {data['mostActiveDay']} at {data['mostActiveHour']:02d}:00",
        f"Trend: {arrow} {data['velocityTrend']}",
    ]


@_register_formatter(lambda d: "viewingBySeason" in d)
def _format_seasonal(data: dict) -> list[str]:
    lines = ["Viewing by season:"]
    for season, count in data["viewingBySeason"].items():
        lines.append(f"  {season}: {count}")
    lines.append("")
    lines.append(f"Peak month: {data['peakViewingMonth']}")
    lines.append(f"Slowest month: {data['slowestViewingMonth']}")
    return lines


@_register_formatter(lambda d: "backlogAging" in d)
def _format_time_to_watch(data: dict) -> list[str]:
    backlog = data["backlogAging"]
    lines = [
        f"Avg days to start a show: {data['averageDaysToStartShow']}",
        f"Avg days to complete a show: {data['averageDaysToCompleteShow']}",
        "",
        "Backlog (never started):",
        f"  over 30 days: {backlog['unwatchedOver30Days']}",
        f"  over 90 days: {backlog['unwatchedOver90Days']}",
        f"  over 365 days: {backlog['unwatchedOver365Days']}",
    ]
    if data["fastestCompletions"]:
        lines.append("")
        lines.append("Fastest completions:")
        for show in data["fastestCompletions"]:
            lines.append(f"  {show['showTitle']}: {show['daysToComplete']} days")
    return lines


@_register_formatter(lambda d: "showAbandonmentRate" in d)
def _format_abandonment(data: dict) -> list[str]:
    lines = [
        f"Abandonment rate: {data['showAbandonmentRate']}%",
        f"Shows at risk: {len(data['showsAtRisk'])}",
    ]
    for show in data["showsAtRisk"][:20]:
        lines.append(
            f"  {show['showTitle']}: idle {show['daysSinceLastWatch']} days, "
            f"{show['unwatchedEpisodes']} unwatched"
        )
    return lines


@_register_formatter(lambda d: "timeline" in d and "period" in d)
def _format_activity(data: dict) -> list[str]:
    lines = [f"{data['period'].capitalize()} activity:"]
    for entry in data["timeline"][:30]:
        key = entry.get("date") or entry.get("weekStart") or entry.get("month")
        line = f"  {key}: {entry['episodesWatched']} episodes"
        if "moviesWatched" in entry:
            line += f", {entry['moviesWatched']} movies"
        lines.append(line)
    if not data["timeline"]:
        lines.append("  (no activity)")
    return lines


@_register_formatter(lambda d: "event_count" in d)
def _format_status(data: dict) -> list[str]:
    lines = [
        f"Database: {data.get('db_path', 'unknown')}",
        f"Size: {data.get('db_size_bytes', 0) / 1024:.1f} KB",
        f"Events: {data['event_count']}",
        f"Profiles: {data['profile_count']}",
        f"Shows: {data.get('show_count', 0)}",
    ]
    if data.get("earliest_event"):
        lines.append(f"Date range: {data['earliest_event'][:10]} to {data['latest_event'][:10]}")
    return lines


def format_output(data: dict, json_output: bool = False) -> str:
    """Format output as JSON or human-readable."""
    if json_output:
        return json.dumps(data, indent=2, default=str)

    # Find matching formatter from registry
    for predicate, formatter in _FORMATTERS:
        if predicate(data):
            return "\n".join(formatter(data))

    # Fallback to JSON if no formatter matches
    return json.dumps(data, indent=2, default=str)


def cmd_status(args):
    """Show database status."""
    storage = SQLiteStorage()
    print(format_output(storage.get_db_stats(), args.json))


def cmd_binge(args):
    """Show binge-watching stats."""
    storage = SQLiteStorage()
    result = compute_binge_stats(storage, args.profile_id)
    print(format_output(result, args.json))


def cmd_streaks(args):
    """Show watch streaks."""
    storage = SQLiteStorage()
    result = compute_streak_stats(storage, args.profile_id)
    print(format_output(result, args.json))


def cmd_velocity(args):
    """Show watching velocity."""
    storage = SQLiteStorage()
    result = compute_velocity_stats(storage, args.profile_id, days=args.days)
    print(format_output(result, args.json))


def cmd_seasonal(args):
    """Show seasonal viewing."""
    storage = SQLiteStorage()
    result = compute_seasonal_stats(storage, args.profile_id)
    print(format_output(result, args.json))


def cmd_time_to_watch(args):
    """Show time-to-watch and backlog aging."""
    storage = SQLiteStorage()
    result = compute_time_to_watch_stats(storage, args.profile_id)
    print(format_output(result, args.json))


def cmd_abandonment(args):
    """Show abandonment risk."""
    storage = SQLiteStorage()
    result = compute_abandonment_risk_stats(storage, args.profile_id)
    print(format_output(result, args.json))


def cmd_activity(args):
    """Show activity timeline."""
    storage = SQLiteStorage()
    if args.period == "weekly":
        timeline = compute_weekly_activity(storage, args.profile_id, weeks=args.span or 12)
    elif args.period == "monthly":
        timeline = compute_monthly_activity(storage, args.profile_id, months=args.span or 12)
    else:
        timeline = compute_daily_activity(storage, args.profile_id, days=args.span or 30)
    result = {"profile_id": args.profile_id, "period": args.period, "timeline": timeline}
    print(format_output(result, args.json))


def cmd_insights(args):
    """Show all analytics for a profile."""
    storage = SQLiteStorage()
    result = compute_profile_insights(storage, args.profile_id)
    print(format_output(result, args.json))


def main():
    """CLI entry point."""
    epilog = """
Examples:
  watch-analytics-cli status                 # Database stats
  watch-analytics-cli binge 1                # Binge sessions for profile 1
  watch-analytics-cli velocity 1 --days 60   # Velocity over 60 days
  watch-analytics-cli activity 1 --period weekly
  watch-analytics-cli insights 1             # Everything at once

All commands support --json for machine-readable output.
Data location: ~/.watch-analytics/data.db (override with WATCH_ANALYTICS_DB)
"""
    parser = argparse.ArgumentParser(
        description="Watch Analytics CLI - Analyze a profile's viewing habits",
        prog="watch-analytics-cli",
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # status
    sub = subparsers.add_parser("status", help="Show database status")
    sub.set_defaults(func=cmd_status)

    # binge
    sub = subparsers.add_parser("binge", help="Show binge-watching sessions")
    sub.add_argument("profile_id", type=int, help="Profile ID")
    sub.set_defaults(func=cmd_binge)

    # streaks
    sub = subparsers.add_parser("streaks", help="Show watch streaks")
    sub.add_argument("profile_id", type=int, help="Profile ID")
    sub.set_defaults(func=cmd_streaks)

    # velocity
    sub = subparsers.add_parser("velocity", help="Show watching velocity and trend")
    sub.add_argument("profile_id", type=int, help="Profile ID")
    sub.add_argument("--days", type=int, default=30, help="Lookback window (default: 30)")
    sub.set_defaults(func=cmd_velocity)

    # seasonal
    sub = subparsers.add_parser("seasonal", help="Show viewing by month and season")
    sub.add_argument("profile_id", type=int, help="Profile ID")
    sub.set_defaults(func=cmd_seasonal)

    # time-to-watch
    sub = subparsers.add_parser("time-to-watch", help="Show time to start/complete and backlog")
    sub.add_argument("profile_id", type=int, help="Profile ID")
    sub.set_defaults(func=cmd_time_to_watch)

    # abandonment
    sub = subparsers.add_parser("abandonment", help="Show shows at risk of abandonment")
    sub.add_argument("profile_id", type=int, help="Profile ID")
    sub.set_defaults(func=cmd_abandonment)

    # activity
    sub = subparsers.add_parser("activity", help="Show activity timeline")
    sub.add_argument("profile_id", type=int, help="Profile ID")
    sub.add_argument(
        "--period",
        choices=["daily", "weekly", "monthly"],
        default="daily",
        help="Timeline granularity (default: daily)",
    )
    sub.add_argument(
        "--span", type=int, help="Days, weeks or months to look back (default: 30/12/12)"
    )
    sub.set_defaults(func=cmd_activity)

    # insights
    sub = subparsers.add_parser("insights", help="Show every analytic for a profile")
    sub.add_argument("profile_id", type=int, help="Profile ID")
    sub.set_defaults(func=cmd_insights)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
