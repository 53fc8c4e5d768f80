#!/usr/bin/env python3
"""
Test suite for the derivation engine (scores, ranks and policy flags)
"""

import pandas as pd
import pytest
from datetime import datetime, timedelta, timezone

from conftest import boundary
from warstats.analytics.derivation import (competition_ranks, demotion_threshold,
                                           derive_player_view, is_joined_recently,
                                           is_promotion_ready, leaderboard_frame, week_labels)
from warstats.config import DEFAULT_CONFIG
from warstats.models import NOT_APPLICABLE, Member, Participant, WeeklyWarRecord
from warstats.normalizers.week_key import WeekKeyResolver

MIDWEEK = datetime(2026, 1, 21, 18, 0, tzinfo=timezone.utc)


def week(key, points_by_tag):
    participants = tuple(
        Participant(tag=tag, name=tag.lstrip("#"), war_points=points, decks_used=4)
        for tag, points in points_by_tag.items()
    )
    return WeeklyWarRecord(week_key=key, label=None, participants=participants)


def streak(points, count, latest=None):
    """count weekly records, most recent first, every one scoring points for #A."""
    latest = latest or boundary(2026, 1, 19)
    return [week(latest - timedelta(weeks=i), {"#A": points}) for i in range(count)]


class TestRanks:

    def test_competition_ranking_with_ties(self):
        ranks = competition_ranks({"#A": 1800, "#B": 1800, "#C": 1500, "#D": None})
        assert ranks == {"#A": 1, "#B": 1, "#C": 3}

    def test_not_applicable_is_unranked(self):
        assert competition_ranks({"#A": NOT_APPLICABLE, "#B": 0}) == {"#B": 1}

    def test_no_scores(self):
        assert competition_ranks({}) == {}


class TestScores:

    def setup_method(self):
        self.weeks = [
            week(boundary(2026, 1, 19), {"#A": None}),
            week(boundary(2026, 1, 12), {"#A": 900, "#B": 1200}),
            week(boundary(2026, 1, 5), {"#A": 800}),
        ]

    def test_absent_member_scores_zero_and_null_is_kept(self):
        roster = [Member("#A", "A"), Member("#B", "B")]
        rows = derive_player_view(roster, self.weeks, now=MIDWEEK)
        assert rows[0].scores["01/19/2026"] is None
        assert rows[1].scores["01/19/2026"] == 0
        assert rows[1].scores["01/12/2026"] == 1200

    def test_weeks_before_joining_are_not_applicable(self):
        joined = boundary(2026, 1, 12) + timedelta(days=1)
        rows = derive_player_view([Member("#B", "B", first_seen=joined)], self.weeks, now=MIDWEEK)
        scores = rows[0].scores
        assert scores["01/19/2026"] == 0
        assert scores["01/12/2026"] is NOT_APPLICABLE
        assert scores["01/05/2026"] is NOT_APPLICABLE

    def test_unknown_tenure_is_never_backfilled(self):
        rows = derive_player_view([Member("#B", "B", first_seen=None)], self.weeks, now=MIDWEEK)
        assert NOT_APPLICABLE not in rows[0].scores.values()

    def test_tagless_participant_matched_by_name(self):
        weeks = [WeeklyWarRecord(boundary(2026, 1, 19), None,
                                 (Participant(None, "alice", 1700, 3),))]
        rows = derive_player_view([Member("#A", "Alice")], weeks, now=MIDWEEK)
        assert rows[0].scores["01/19/2026"] == 1700
        assert rows[0].decks_used == 3
        assert rows[0].current_rank == 1

    def test_rank_uses_most_recent_week(self):
        roster = [Member("#A", "A"), Member("#B", "B")]
        rows = derive_player_view(roster, self.weeks[1:], now=MIDWEEK)
        assert [r.current_rank for r in rows] == [2, 1]

    def test_member_missing_from_latest_week_is_unranked(self):
        roster = [Member("#A", "A"), Member("#B", "B")]
        rows = derive_player_view(roster, [week(boundary(2026, 1, 12), {"#A": 1800})], now=MIDWEEK)
        assert rows[1].scores == {"01/12/2026": 0}
        assert [r.current_rank for r in rows] == [1, None]

    def test_rank_counts_participants_outside_the_roster(self):
        latest = week(boundary(2026, 1, 12), {"#A": 1500, "#GONE": 1900, "#C": 1900, "#N": None})
        roster = [Member("#A", "A"), Member("#C", "C"), Member("#N", "N")]
        rows = derive_player_view(roster, [latest], now=MIDWEEK)
        assert [r.current_rank for r in rows] == [3, 1, None]

    def test_row_serialization(self):
        joined = boundary(2026, 1, 12) + timedelta(days=1)
        row = derive_player_view([Member("#B", "B", first_seen=joined)], self.weeks, now=MIDWEEK)[0]
        data = row.to_dict()
        assert data["scores"] == {"01/19/2026": 0, "01/12/2026": "N/A", "01/05/2026": "N/A"}
        assert data["currentRank"] is None
        assert data["isCurrent"] is True
        assert data["firstSeen"] == joined.isoformat()

    def test_empty_history_gives_neutral_rows(self):
        rows = derive_player_view([Member("#A", "A", role="elder")], [], now=MIDWEEK)
        row = rows[0]
        assert row.scores == {}
        assert row.current_rank is None
        assert row.decks_used is None
        assert not row.promotion_ready
        assert not row.demotion_risk


class TestPromotion:

    def test_full_streak_qualifies(self):
        rows = derive_player_view([Member("#A", "A")], streak(1600, 12), now=MIDWEEK)
        assert rows[0].promotion_ready

    def test_one_short_week_breaks_the_streak(self):
        weeks = streak(1700, 12)
        weeks[5] = week(weeks[5].week_key, {"#A": 1599})
        rows = derive_player_view([Member("#A", "A")], weeks, now=MIDWEEK)
        assert not rows[0].promotion_ready

    def test_null_week_breaks_the_streak(self):
        weeks = streak(1700, 12)
        weeks[11] = week(weeks[11].week_key, {"#A": None})
        rows = derive_player_view([Member("#A", "A")], weeks, now=MIDWEEK)
        assert not rows[0].promotion_ready

    def test_not_enough_history(self):
        rows = derive_player_view([Member("#A", "A")], streak(2000, 11), now=MIDWEEK)
        assert not rows[0].promotion_ready

    def test_top_roles_are_never_ready(self):
        roster = [Member("#A", "A", role="coleader")]
        assert not derive_player_view(roster, streak(2000, 12), now=MIDWEEK)[0].promotion_ready
        assert not is_promotion_ready("leader", [2000] * 12, 1600, 12)

    def test_display_window_does_not_shorten_the_streak(self):
        rows = derive_player_view([Member("#A", "A", role="elder")], streak(1650, 12),
                                  now=MIDWEEK, display_weeks=10)
        assert len(rows[0].scores) == 10
        assert rows[0].promotion_ready

    def test_not_applicable_breaks_the_streak(self):
        scores = [1700] * 11 + [NOT_APPLICABLE]
        assert not is_promotion_ready("member", scores, 1600, 12)


class TestJoinedRecently:

    def test_window(self):
        assert is_joined_recently(MIDWEEK - timedelta(days=3), MIDWEEK, 7)
        assert not is_joined_recently(MIDWEEK - timedelta(days=8), MIDWEEK, 7)
        assert not is_joined_recently(None, MIDWEEK, 7)


class TestDemotion:

    def setup_method(self):
        self.key = boundary(2026, 1, 19)
        self.resolver = WeekKeyResolver()

    def derive(self, roster, points_by_tag, now):
        return derive_player_view(roster, [week(self.key, points_by_tag)], now=now)

    def test_thresholds_switch_at_the_boundary(self):
        assert demotion_threshold(self.key - timedelta(hours=2), self.resolver, DEFAULT_CONFIG) == (self.key, 1200)
        assert demotion_threshold(self.key, self.resolver, DEFAULT_CONFIG) == (self.key, 1600)
        assert demotion_threshold(MIDWEEK, self.resolver, DEFAULT_CONFIG) == (None, None)

    def test_pre_rollover_window(self):
        roster = [Member("#A", "A"), Member("#B", "B", role="elder")]
        rows = self.derive(roster, {"#A": 1100, "#B": 1300}, self.key - timedelta(hours=2))
        assert [r.demotion_risk for r in rows] == [True, False]

    def test_post_rollover_window(self):
        roster = [Member("#A", "A"), Member("#B", "B")]
        rows = self.derive(roster, {"#A": 1500, "#B": 1700}, self.key + timedelta(hours=2))
        assert [r.demotion_risk for r in rows] == [True, False]

    def test_outside_window_never_flags(self):
        rows = self.derive([Member("#A", "A")], {"#A": 10}, MIDWEEK)
        assert not rows[0].demotion_risk

    def test_top_roles_never_flagged(self):
        roster = [Member("#A", "A", role="leader"), Member("#B", "B", role="coleader")]
        rows = self.derive(roster, {"#A": 10, "#B": 10}, self.key + timedelta(hours=1))
        assert not any(r.demotion_risk for r in rows)

    def test_null_flags_and_not_applicable_does_not(self):
        now = self.key + timedelta(hours=2)
        roster = [Member("#A", "A"), Member("#B", "B", first_seen=self.key + timedelta(hours=1))]
        rows = self.derive(roster, {"#A": None}, now)
        assert rows[0].demotion_risk
        assert rows[1].scores["01/19/2026"] is NOT_APPLICABLE
        assert not rows[1].demotion_risk
        assert rows[1].joined_recently

    def test_backward_keys_check_the_week_that_opened_at_the_previous_boundary(self):
        resolver = WeekKeyResolver(direction="backward")
        config = {**DEFAULT_CONFIG, "ROLL_DIRECTION": "backward"}
        opened = boundary(2026, 1, 12)
        assert demotion_threshold(self.key - timedelta(hours=2), resolver, config) == (opened, 1200)
        assert demotion_threshold(self.key + timedelta(hours=2), resolver, config) == (opened, 1600)

        roster = [Member("#A", "A"), Member("#B", "B")]
        weeks = [week(opened, {"#A": 1100, "#B": 1300})]
        rows = derive_player_view(roster, weeks, config, now=self.key - timedelta(hours=2), resolver=resolver)
        assert [r.demotion_risk for r in rows] == [True, False]

    def test_missing_week_never_flags(self):
        weeks = [week(self.key - timedelta(weeks=1), {"#A": 0})]
        rows = derive_player_view([Member("#A", "A")], weeks, now=self.key + timedelta(hours=1))
        assert not rows[0].demotion_risk


class TestLeaderboardFrame:

    def setup_method(self):
        self.resolver = WeekKeyResolver()
        self.weeks = [
            week(boundary(2026, 1, 12), {"#AAA": 1800, "#BBB": None}),
            week(boundary(2026, 1, 5), {"#AAA": 1500, "#BBB": 1700}),
        ]
        self.roster = [
            Member("#BBB", "Bob"),
            Member("#CCC", "Cara", role="coleader", first_seen=datetime(2026, 1, 10, tzinfo=timezone.utc)),
            Member("#AAA", "Alice", role="elder"),
        ]

    def test_frame_layout_and_order(self):
        rows = derive_player_view(self.roster, self.weeks, now=MIDWEEK)
        labels = week_labels(self.weeks, self.resolver)
        df = leaderboard_frame(rows, labels)

        assert labels == ["01/12/2026", "01/05/2026"]
        assert list(df["name"]) == ["Alice", "Bob", "Cara"]
        assert str(df["current_rank"].dtype) == "Int64"
        assert df.loc[0, "current_rank"] == 1
        assert df["current_rank"][1:].isna().all()
        assert df["01/12/2026"].dtype == object

        assert df.loc[0, "01/12/2026"] == 1800
        assert pd.isna(df.loc[1, "01/12/2026"])
        assert df.loc[1, "01/05/2026"] == 1700
        assert df.loc[2, "01/12/2026"] == 0
        assert df.loc[2, "01/05/2026"] == "N/A"

    def test_empty_roster(self):
        df = leaderboard_frame([], ["01/12/2026"])
        assert df.empty
        assert "01/12/2026" in df.columns


if __name__ == "__main__":
    pytest.main([__file__])
