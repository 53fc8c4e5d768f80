#!/usr/bin/env python3
"""
War-Log Merger

Merges freshly fetched war records (historical log entries, live race
snapshots, manual imports) into the persisted weekly ledger. Records are
keyed by their canonical week key; records sharing a key are reconciled with
the rules in warstats.merge.reconcile, same-calendar-date duplicates are
folded, the result is trimmed to the retention window and written back.

This class is the only writer of the weekly ledger.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Union

from warstats.merge.reconcile import collapse_records, merge_participant_lists, trim_records
from warstats.models import RawWarRecord, WeeklyWarRecord
from warstats.normalizers.participant_normalizer import normalize_participants
from warstats.normalizers.week_key import WeekKeyResolver

logger = logging.getLogger(__name__)


def build_label(raw: RawWarRecord) -> Optional[str]:
    """
    Human label for a raw record.

    An explicit label wins; otherwise a season/section pair becomes
    "Season 110 Week 2" (upstream section indices are zero-based). Records
    with nothing but a date get no label.
    """
    if raw.label and raw.label.strip():
        return raw.label.strip()
    if raw.season_id in (None, ""):
        return None
    label = f"Season {raw.season_id}"
    if isinstance(raw.section_index, int) and not isinstance(raw.section_index, bool):
        label += f" Week {raw.section_index + 1}"
    return label


def to_weekly_record(raw: RawWarRecord, resolver: WeekKeyResolver,
                     now: Optional[datetime] = None) -> WeeklyWarRecord:
    """
    Convert one raw upstream record into a canonical weekly record.

    Args:
        raw: Raw record straight from a provider
        resolver: Week-key resolver
        now: Evaluation instant for records without a date

    Returns:
        WeeklyWarRecord with normalized, deduplicated participants
    """
    participants = merge_participant_lists(normalize_participants(raw.participants))
    return WeeklyWarRecord(
        week_key=resolver.resolve(raw, now),
        label=build_label(raw),
        participants=tuple(participants),
    )


def merge_week_lists(existing: Iterable[WeeklyWarRecord],
                     incoming: Iterable[WeeklyWarRecord],
                     resolver: WeekKeyResolver,
                     max_weeks: int) -> List[WeeklyWarRecord]:
    """
    Merge two collections of weekly records without touching storage.

    Records are grouped by the local calendar date of their week key, so two
    keys that name the same boundary day fold together even if one of them was
    stored with a different time-of-day.

    Returns:
        Merged records, most recent first, at most max_weeks long
    """
    combined = list(existing) + list(incoming)
    collapsed = collapse_records(combined, key_func=lambda r: resolver.local_date(r.week_key))
    canonical = [
        WeeklyWarRecord(
            week_key=resolver.roll_to_boundary(record.week_key),
            label=record.label,
            participants=record.participants,
        )
        for record in collapsed
    ]
    # Re-rolling can only move a key within its own boundary day's week
    canonical = collapse_records(canonical, key_func=lambda r: r.week_key)
    return trim_records(canonical, max_weeks)


class WarLogMerger:
    """Reads the weekly ledger, merges new records into it and writes it back."""

    def __init__(self, store, resolver: WeekKeyResolver, max_weeks: int = 260):
        """
        Args:
            store: HistoryStore owning the weekly ledger
            resolver: Week-key resolver shared with the rest of the pipeline
            max_weeks: Retention window in weeks
        """
        self.store = store
        self.resolver = resolver
        self.max_weeks = max_weeks

    def _canonical(self, records, now: Optional[datetime]) -> List[WeeklyWarRecord]:
        return [to_weekly_record(record, self.resolver, now) if isinstance(record, RawWarRecord) else record
                for record in records]

    def merge(self, records: Iterable[Union[RawWarRecord, WeeklyWarRecord]],
              now: Optional[datetime] = None) -> List[WeeklyWarRecord]:
        """
        Merge a batch of records into the ledger and persist the result.

        Args:
            records: Raw provider records and/or already canonical records
            now: Evaluation instant (used for undated live snapshots)

        Returns:
            The full merged ledger, most recent first
        """
        incoming = self._canonical(records, now)
        existing = self.store.load_weeks()
        merged = merge_week_lists(existing, incoming, self.resolver, self.max_weeks)
        self.store.save_weeks(merged)

        logger.info(f"🔄 Merged {len(incoming)} incoming record(s) into "
                    f"{len(existing)} stored week(s) -> {len(merged)} week(s)")
        return merged

    def preview(self, records: Iterable[Union[RawWarRecord, WeeklyWarRecord]],
                now: Optional[datetime] = None) -> List[WeeklyWarRecord]:
        """Merge a batch of records among themselves without reading or writing the ledger."""
        return merge_week_lists([], self._canonical(records, now), self.resolver, self.max_weeks)

    def merged_weeks(self, max_weeks: Optional[int] = None) -> List[WeeklyWarRecord]:
        """Most recent max_weeks records from the ledger (read only)."""
        weeks = self.store.load_weeks()
        if max_weeks is None:
            return weeks
        return weeks[:max(max_weeks, 0)]
