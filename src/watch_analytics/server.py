"""MCP Watch Analytics Server.

Provides tools for analyzing a profile's viewing history:
- get_status: Database stats
- get_binge_stats: Binge-watching sessions
- get_watch_streaks: Consecutive-day streaks
- get_watching_velocity: Throughput, peak hour/day and trend
- get_seasonal_viewing: Counts by month and season
- get_time_to_watch: Time to start/complete shows and backlog aging
- get_abandonment_risk: Stalled shows and abandonment rate
- get_activity_timeline: Daily/weekly/monthly activity
- get_profile_insights: Everything above in one call
"""

import logging
import os
from pathlib import Path

from fastmcp import FastMCP

from watch_analytics import __version__
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

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("watch-analytics")
if os.environ.get("DEV_MODE"):
    logger.setLevel(logging.DEBUG)

ACTIVITY_PERIODS = ("daily", "weekly", "monthly")

# Initialize MCP server
mcp = FastMCP("watch-analytics")

# Initialize storage
storage = SQLiteStorage()


@mcp.resource("watch-analytics://guide", description="Usage guide and metric definitions")
def usage_guide() -> str:
    """Return the watch analytics usage guide from external markdown file."""
    guide_path = Path(__file__).parent / "guide.md"
    try:
        return guide_path.read_text()
    except FileNotFoundError:
        return "# Watch Analytics Usage Guide\n\nGuide file not found."


@mcp.tool()
def get_status() -> dict:
    """Get database stats.

    Returns:
        Status info including event count, profile count and DB size
    """
    return {
        "status": "ok",
        "version": __version__,
        **storage.get_db_stats(),
    }


@mcp.tool()
def get_binge_stats(profile_id: int) -> dict:
    """Get binge-watching statistics (3+ same-show episodes, each within 24h).

    Args:
        profile_id: Profile to analyze

    Returns:
        Session count, average episodes per binge, longest session, top binged shows
    """
    return compute_binge_stats(storage, profile_id)


@mcp.tool()
def get_watch_streaks(profile_id: int) -> dict:
    """Get consecutive-day watch streaks.

    Args:
        profile_id: Profile to analyze

    Returns:
        Current and longest streak, streaks of 7+ days, average streak length
    """
    return compute_streak_stats(storage, profile_id)


@mcp.tool()
def get_watching_velocity(profile_id: int, days: int = 30) -> dict:
    """Get watching velocity over a lookback window.

    Args:
        profile_id: Profile to analyze
        days: Lookback window in days (default: 30)

    Returns:
        Episodes per day/week/month, most active day and hour, trend
    """
    return compute_velocity_stats(storage, profile_id, days=days)


@mcp.tool()
def get_seasonal_viewing(profile_id: int) -> dict:
    """Get viewing counts by month and season.

    Args:
        profile_id: Profile to analyze

    Returns:
        Counts by month name and season, peak and slowest month
    """
    return compute_seasonal_stats(storage, profile_id)


@mcp.tool()
def get_time_to_watch(profile_id: int) -> dict:
    """Get time from watchlist add to first watch, first to last watch, and backlog aging.

    Args:
        profile_id: Profile to analyze

    Returns:
        Average days to start/complete, fastest completions, backlog buckets
    """
    return compute_time_to_watch_stats(storage, profile_id)


@mcp.tool()
def get_abandonment_risk(profile_id: int) -> dict:
    """Get in-progress shows stalled for 30+ days and the abandonment rate.

    Args:
        profile_id: Profile to analyze

    Returns:
        Shows at risk (longest idle first) and abandonment rate percentage
    """
    return compute_abandonment_risk_stats(storage, profile_id)


@mcp.tool()
def get_activity_timeline(profile_id: int, period: str = "daily", span: int | None = None) -> dict:
    """Get an activity timeline.

    Args:
        profile_id: Profile to analyze
        period: 'daily', 'weekly' or 'monthly' (default: daily)
        span: Days, weeks or months to look back (default: 30, 12, 12)

    Returns:
        Timeline entries, newest first
    """
    if period not in ACTIVITY_PERIODS:
        raise ValueError(f"period must be one of {ACTIVITY_PERIODS}, got '{period}'")

    if period == "weekly":
        timeline = compute_weekly_activity(storage, profile_id, weeks=span or 12)
    elif period == "monthly":
        timeline = compute_monthly_activity(storage, profile_id, months=span or 12)
    else:
        timeline = compute_daily_activity(storage, profile_id, days=span or 30)

    return {"profile_id": profile_id, "period": period, "timeline": timeline}


@mcp.tool()
def get_profile_insights(profile_id: int) -> dict:
    """Get every analytic for a profile in one call.

    Args:
        profile_id: Profile to analyze

    Returns:
        Binge, streak, velocity, seasonal, time-to-watch and abandonment stats
    """
    return compute_profile_insights(storage, profile_id)


def create_app():
    """Create the ASGI app for uvicorn."""
    # stateless_http=True allows resilience to server restarts
    return mcp.http_app(stateless_http=True)


def main():
    """Run the MCP server."""
    import uvicorn

    port = int(os.environ.get("PORT", 8082))
    host = os.environ.get("HOST", "127.0.0.1")

    print(f"Starting Watch Analytics on {host}:{port}")
    print(f"MCP endpoint: http://{host}:{port}/mcp")

    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    main()
