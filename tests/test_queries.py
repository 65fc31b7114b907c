"""Tests for the analytic entry points."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from watch_analytics.patterns import (
    empty_binge_stats,
    empty_seasonal_stats,
    empty_streak_stats,
    empty_time_to_watch_stats,
    empty_velocity_stats,
)
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
    get_cutoff,
    months_before,
    resolve_now,
)
from watch_analytics.storage import STATUS_WATCHING, DataAccessError

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


class TestHelpers:
    """Tests for time helpers."""

    def test_resolve_now_default_is_utc(self):
        assert resolve_now().tzinfo == timezone.utc

    def test_resolve_now_converts(self):
        plus_one = timezone(timedelta(hours=1))
        assert resolve_now(datetime(2025, 1, 1, 0, 30, tzinfo=plus_one)) == datetime(
            2024, 12, 31, 23, 30, tzinfo=timezone.utc
        )

    def test_get_cutoff(self):
        assert get_cutoff(NOW, days=7) == NOW - timedelta(days=7)
        assert get_cutoff(NOW, days=0.5) == NOW - timedelta(hours=12)

    def test_months_before(self):
        assert months_before(NOW, 12) == datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
        assert months_before(datetime(2025, 1, 10, tzinfo=timezone.utc), 1).month == 12

    def test_months_before_clamps_day(self):
        assert months_before(datetime(2025, 3, 31, tzinfo=timezone.utc), 1).date().isoformat() == (
            "2025-02-28"
        )


class TestComputeBingeStats:
    """Tests for compute_binge_stats."""

    def test_basic(self, populated_storage):
        result = compute_binge_stats(populated_storage, 1)
        assert result["bingeSessionCount"] == 1
        assert result["averageEpisodesPerBinge"] == 4.0
        assert result["longestBingeSession"] == {
            "showTitle": "Breaking Point",
            "episodeCount": 4,
            "date": "2025-03-12",
        }
        assert result["topBingedShows"] == [
            {"showId": 10, "showTitle": "Breaking Point", "bingeSessionCount": 1}
        ]

    def test_empty_profile(self, populated_storage):
        assert compute_binge_stats(populated_storage, 2) == empty_binge_stats()


class TestComputeStreakStats:
    """Tests for compute_streak_stats."""

    def test_isolated_days(self, populated_storage):
        result = compute_streak_stats(populated_storage, 1, now=NOW)
        assert result["currentStreak"] == 0
        assert result["longestStreak"] == 1
        assert result["longestStreakPeriod"]["startDate"] == "2025-03-12"
        assert result["streaksOver7Days"] == 0
        assert result["averageStreakLength"] == 1.0

    def test_current_streak(self, populated_storage):
        """The last episode was watched on 2025-06-11."""
        result = compute_streak_stats(populated_storage, 1, now=datetime(2025, 6, 12, tzinfo=timezone.utc))
        assert result["currentStreak"] == 1
        assert result["currentStreakStartDate"] == "2025-06-11"

    def test_empty_profile(self, populated_storage):
        assert compute_streak_stats(populated_storage, 2, now=NOW) == empty_streak_stats()


class TestComputeVelocityStats:
    """Tests for compute_velocity_stats."""

    def test_default_window(self, populated_storage):
        result = compute_velocity_stats(populated_storage, 1, now=NOW)
        assert result["averageEpisodesPerDay"] == 1.0
        assert result["episodesPerWeek"] == 7.0
        assert result["episodesPerMonth"] == 30
        assert result["mostActiveHour"] == 12
        # 2025-06-11 is the newest slot and wins the tie
        assert result["mostActiveDay"] == "Wednesday"
        assert result["velocityTrend"] == "stable"

    def test_wider_window(self, populated_storage):
        """Nine episodes over six active days."""
        result = compute_velocity_stats(populated_storage, 1, days=365, now=NOW)
        assert result["averageEpisodesPerDay"] == 1.5
        assert result["episodesPerMonth"] == 45

    def test_window_with_no_events(self, populated_storage):
        result = compute_velocity_stats(populated_storage, 1, days=1, now=NOW)
        assert result == empty_velocity_stats()


class TestComputeSeasonalStats:
    """Tests for compute_seasonal_stats."""

    def test_basic(self, populated_storage):
        result = compute_seasonal_stats(populated_storage, 1)
        assert result["viewingByMonth"] == {"March": 4, "May": 2, "June": 3}
        assert result["viewingBySeason"] == {"spring": 6, "summer": 3, "fall": 0, "winter": 0}
        assert result["peakViewingMonth"] == "March"
        assert result["slowestViewingMonth"] == "May"

    def test_movies_not_counted(self, populated_storage):
        result = compute_seasonal_stats(populated_storage, 1)
        assert sum(result["viewingByMonth"].values()) == 9

    def test_empty_profile(self, populated_storage):
        assert compute_seasonal_stats(populated_storage, 2) == empty_seasonal_stats()


class TestComputeTimeToWatchStats:
    """Tests for compute_time_to_watch_stats."""

    def test_basic(self, populated_storage):
        result = compute_time_to_watch_stats(populated_storage, 1, now=NOW)
        assert result["averageDaysToStartShow"] == 8.3
        assert result["averageDaysToCompleteShow"] == 5.5
        assert result["fastestCompletions"] == [
            {"showId": 20, "showTitle": "Slow Burn", "daysToComplete": 5},
            {"showId": 50, "showTitle": "Finished Fast", "daysToComplete": 6},
        ]
        assert result["backlogAging"] == {
            "unwatchedOver30Days": 2,
            "unwatchedOver90Days": 1,
            "unwatchedOver365Days": 1,
        }

    def test_empty_profile(self, populated_storage):
        assert compute_time_to_watch_stats(populated_storage, 2, now=NOW) == (
            empty_time_to_watch_stats()
        )


class TestComputeAbandonmentRiskStats:
    """Tests for compute_abandonment_risk_stats."""

    def test_basic(self, populated_storage):
        result = compute_abandonment_risk_stats(populated_storage, 1, now=NOW)
        assert result["showsAtRisk"] == [
            {
                "showId": 10,
                "showTitle": "Breaking Point",
                "daysSinceLastWatch": 95,
                "unwatchedEpisodes": 6,
                "status": STATUS_WATCHING,
            },
            {
                "showId": 20,
                "showTitle": "Slow Burn",
                "daysSinceLastWatch": 35,
                "unwatchedEpisodes": 3,
                "status": STATUS_WATCHING,
            },
        ]
        assert result["showAbandonmentRate"] == 50.0

    def test_newly_aired_episode_counts(self, populated_storage):
        later = NOW + timedelta(days=8)
        result = compute_abandonment_risk_stats(populated_storage, 1, now=later)
        slow_burn = [s for s in result["showsAtRisk"] if s["showId"] == 20][0]
        assert slow_burn["unwatchedEpisodes"] == 4
        assert slow_burn["daysSinceLastWatch"] == 43

    def test_empty_profile(self, populated_storage):
        result = compute_abandonment_risk_stats(populated_storage, 2, now=NOW)
        assert result == {"showsAtRisk": [], "showAbandonmentRate": 0}


class TestActivityTimelines:
    """Tests for daily, weekly and monthly activity."""

    def test_daily(self, populated_storage):
        result = compute_daily_activity(populated_storage, 1, now=NOW)
        assert [d["date"] for d in result] == ["2025-06-11", "2025-06-08", "2025-06-05"]
        assert all(d["episodesWatched"] == 1 for d in result)

    def test_weekly(self, populated_storage):
        result = compute_weekly_activity(populated_storage, 1, now=NOW)
        assert result == [
            {"weekStart": "2025-06-09", "episodesWatched": 1},
            {"weekStart": "2025-06-02", "episodesWatched": 2},
            {"weekStart": "2025-05-05", "episodesWatched": 2},
        ]

    def test_monthly(self, populated_storage):
        result = compute_monthly_activity(populated_storage, 1, now=NOW)
        assert result == [
            {"month": "2025-06", "episodesWatched": 3, "moviesWatched": 1},
            {"month": "2025-05", "episodesWatched": 2, "moviesWatched": 0},
            {"month": "2025-03", "episodesWatched": 4, "moviesWatched": 0},
        ]

    def test_monthly_span(self, populated_storage):
        result = compute_monthly_activity(populated_storage, 1, months=3, now=NOW)
        assert [m["month"] for m in result] == ["2025-06", "2025-05"]

    def test_empty_profile(self, populated_storage):
        assert compute_daily_activity(populated_storage, 2, now=NOW) == []
        assert compute_weekly_activity(populated_storage, 2, now=NOW) == []
        assert compute_monthly_activity(populated_storage, 2, now=NOW) == []


class TestComputeProfileInsights:
    """Tests for compute_profile_insights."""

    def test_matches_individual_analytics(self, populated_storage):
        result = compute_profile_insights(populated_storage, 1, now=NOW)

        assert result["profileId"] == 1
        assert result["generatedAt"] == NOW.isoformat()
        assert result["bingeWatching"] == compute_binge_stats(populated_storage, 1)
        assert result["watchStreaks"] == compute_streak_stats(populated_storage, 1, now=NOW)
        assert result["watchingVelocity"] == compute_velocity_stats(populated_storage, 1, now=NOW)
        assert result["seasonalViewing"] == compute_seasonal_stats(populated_storage, 1)
        assert result["timeToWatch"] == compute_time_to_watch_stats(populated_storage, 1, now=NOW)
        assert result["abandonmentRisk"] == compute_abandonment_risk_stats(
            populated_storage, 1, now=NOW
        )

    def test_empty_profile(self, populated_storage):
        result = compute_profile_insights(populated_storage, 2, now=NOW)
        assert result["bingeWatching"] == empty_binge_stats()
        assert result["abandonmentRisk"]["showsAtRisk"] == []


class TestDataAccessErrors:
    """Storage failures propagate to the caller."""

    def test_event_fetch_failure(self, populated_storage):
        with patch.object(
            populated_storage, "fetch_watch_events", side_effect=DataAccessError("disk I/O error")
        ):
            with pytest.raises(DataAccessError):
                compute_binge_stats(populated_storage, 1)

    def test_progress_fetch_failure(self, populated_storage):
        with patch.object(
            populated_storage, "fetch_show_progress", side_effect=DataAccessError("locked")
        ):
            with pytest.raises(DataAccessError):
                compute_abandonment_risk_stats(populated_storage, 1, now=NOW)
