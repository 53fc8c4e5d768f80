#!/usr/bin/env python3
"""
Test suite for war record reconciliation and the War-Log Merger
"""

import pytest
from datetime import datetime

from conftest import CHICAGO, boundary
from warstats.merge.reconcile import merge_participant_lists, merge_records, prefer_label
from warstats.merge.war_log_merger import (WarLogMerger, build_label, merge_week_lists,
                                           to_weekly_record)
from warstats.models import Participant, RawWarRecord, WeeklyWarRecord
from warstats.normalizers.week_key import WeekKeyResolver


def P(tag, name, points, decks):
    return Participant(tag=tag, name=name, war_points=points, decks_used=decks)


def week(key, participants, label=None):
    return WeeklyWarRecord(week_key=key, label=label, participants=tuple(participants))


class TestParticipantMerge:

    def test_higher_score_wins_and_higher_decks_are_grafted(self):
        a = week(boundary(2026, 1, 12), [P("#X", "Xena", 500, 2)])
        b = week(boundary(2026, 1, 12), [P("#X", "Xena", 300, 4)])
        merged = merge_records(a, b)
        assert merged.participants == (P("#X", "Xena", 500, 4),)

    def test_reported_zero_beats_no_data(self):
        merged = merge_participant_lists([P("#X", "Xena", None, 3)], [P("#X", "Xena", 0, 1)])
        assert merged == [P("#X", "Xena", 0, 3)]

    def test_null_survives_when_nothing_better_is_known(self):
        merged = merge_participant_lists([P("#X", "Xena", None, None)], [P("#X", "Xena", None, None)])
        assert merged == [P("#X", "Xena", None, None)]

    def test_name_fallback_is_case_insensitive(self):
        merged = merge_participant_lists([P(None, "bob", 100, 1)], [P("#B", "Bob", 200, None)])
        assert merged == [P("#B", "Bob", 200, 1)]

    def test_same_name_different_tags_stay_apart(self):
        merged = merge_participant_lists([P("#B1", "Bob", 100, 1)], [P("#B2", "Bob", 200, 2)])
        assert {p.tag for p in merged} == {"#B1", "#B2"}

    def test_tagless_name_shared_by_two_tags_stays_apart(self):
        a = [P("#A", "Bob", 100, 1)]
        b = [P(None, "bob", 200, 2), P("#B", "Bob", 300, 3)]
        forward = merge_participant_lists(a, b)
        assert forward == merge_participant_lists(b, a)
        assert forward == [P("#B", "Bob", 300, 3), P(None, "bob", 200, 2), P("#A", "Bob", 100, 1)]

    def test_tagless_entry_waits_for_tags_from_later_lists(self):
        merged = merge_participant_lists([P(None, "bob", 200, 2)], [P("#A", "Bob", 100, 1)])
        assert merged == [P("#A", "bob", 200, 2)]

    def test_duplicates_within_one_list_are_folded(self):
        merged = merge_participant_lists([P("#X", "Xena", 100, 1), P("#X", "Xena", 150, 0)])
        assert merged == [P("#X", "Xena", 150, 1)]


class TestRecordMerge:

    def setup_method(self):
        key = boundary(2026, 1, 12)
        self.a = week(key, [
            P("#X", "Alice", 500, 2),
            P(None, "bob", 100, 1),
            P("#C", "Cara", None, 0),
        ], label="01/12/2026")
        self.b = week(key, [
            P("#X", "alice", 300, 4),
            P("#B", "Bob", 200, None),
            P("#D", "Dan", 0, 0),
        ], label="Season 127 Week 2")

    def test_merge_is_commutative(self):
        assert merge_records(self.a, self.b) == merge_records(self.b, self.a)

    def test_merge_is_commutative_with_colliding_names(self):
        key = boundary(2026, 1, 12)
        a = week(key, [P("#A", "Bob", 100, 1)])
        b = week(key, [P(None, "bob", 200, 2), P("#B", "Bob", 300, 3)])
        assert merge_records(a, b) == merge_records(b, a)
        bob_a = [p for p in merge_records(a, b).participants if p.tag == "#A"][0]
        assert bob_a.war_points == 100

    def test_merge_is_idempotent(self):
        once = merge_records(self.a, self.b)
        assert merge_records(once, self.b) == once
        assert merge_records(once, once) == once

    def test_longer_label_kept(self):
        assert merge_records(self.a, self.b).label == "Season 127 Week 2"
        assert prefer_label(None, "Season 1") == "Season 1"
        assert prefer_label(None, None) is None


class TestMergeWeekLists:

    def setup_method(self):
        self.resolver = WeekKeyResolver()

    def test_sorted_most_recent_first_and_trimmed(self):
        records = [week(boundary(2026, 1, d), [P("#X", "X", d, 1)]) for d in (5, 19, 12)]
        records.append(week(boundary(2025, 12, 29), [P("#X", "X", 1, 1)]))
        merged = merge_week_lists([], records, self.resolver, max_weeks=3)
        assert [r.week_key for r in merged] == [boundary(2026, 1, 19), boundary(2026, 1, 12), boundary(2026, 1, 5)]

    def test_same_calendar_date_is_collapsed(self):
        canonical = week(boundary(2026, 1, 12), [P("#X", "X", 500, 2)], label="Season 127 Week 2")
        legacy = week(datetime(2026, 1, 12, 0, 0, tzinfo=CHICAGO), [P("#X", "X", 300, 4)], label="Week 2")
        merged = merge_week_lists([legacy], [canonical], self.resolver, max_weeks=10)
        assert len(merged) == 1
        assert merged[0].week_key == boundary(2026, 1, 12)
        assert merged[0].label == "Season 127 Week 2"
        assert merged[0].participants == (P("#X", "X", 500, 4),)

    def test_remerging_is_idempotent(self):
        existing = [week(boundary(2026, 1, 5), [P("#X", "X", 1700, 16)])]
        incoming = [week(boundary(2026, 1, 12), [P("#X", "X", 500, 2), P("#Y", "Y", None, 0)])]
        once = merge_week_lists(existing, incoming, self.resolver, max_weeks=10)
        twice = merge_week_lists(once, incoming, self.resolver, max_weeks=10)
        assert once == twice


class TestWarLogMerger:

    def test_raw_records_are_converted(self, sample_raw_records, resolver):
        record = to_weekly_record(sample_raw_records[0], resolver)
        assert record.week_key == boundary(2026, 1, 12)
        assert record.label == "Season 127 Week 2"
        assert [p.tag for p in record.participants] == ["#AAA", "#BBB"]
        assert record.participants[0].war_points == 2900

    def test_build_label(self):
        assert build_label(RawWarRecord(source="warlog", season_id=110)) == "Season 110"
        assert build_label(RawWarRecord(source="manual", label=" Week 3 ")) == "Week 3"
        assert build_label(RawWarRecord(source="riverrace")) is None

    def test_merge_persists_to_store(self, merger, store, sample_raw_records, now):
        merged = merger.merge(sample_raw_records, now)
        assert [r.week_key for r in merged] == [boundary(2026, 1, 12), boundary(2026, 1, 5)]
        assert store.load_weeks() == merged

        older = merged[1]
        bob = [p for p in older.participants if p.tag == "#BBB"][0]
        assert bob.war_points is None

    def test_merging_twice_changes_nothing(self, merger, sample_raw_records, now):
        first = merger.merge(sample_raw_records, now)
        second = merger.merge(sample_raw_records, now)
        assert first == second

    def test_retention_window(self, store, resolver, now):
        merger = WarLogMerger(store, resolver, max_weeks=2)
        for day in (5, 12, 19):
            merger.merge([week(boundary(2026, 1, day), [P("#X", "X", day, 1)])], now)
        stored = store.load_weeks()
        assert [r.week_key for r in stored] == [boundary(2026, 1, 19), boundary(2026, 1, 12)]
        assert merger.merged_weeks(1) == stored[:1]


if __name__ == "__main__":
    pytest.main([__file__])
