#!/usr/bin/env python3
"""
Member Tracker

Keeps the member-history ledger in step with the live roster. A member's
firstSeen is written once, the first time the tag shows up, and never
changes afterwards. Members who leave stay in the ledger as former members.

The very first run has no way to know when the existing members joined, so
everyone seen on that run is stored with tenureKnown = False and is reported
without a join date.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from warstats.models import Member, normalize_role
from warstats.normalizers.participant_normalizer import normalize_player_name, normalize_tag
from warstats.store.history_store import HistoryStore, MemberHistoryEntry, MemberLedger

logger = logging.getLogger(__name__)


def _to_member(entry: MemberHistoryEntry, is_current: bool) -> Member:
    return Member(
        tag=entry.tag,
        name=entry.name,
        role=entry.role,
        first_seen=entry.first_seen if entry.tenure_known else None,
        is_current=is_current,
    )


class MemberTracker:
    """Merges live roster fetches into the member-history ledger."""

    def __init__(self, store: HistoryStore):
        self.store = store

    def attach(self, members: Iterable[Dict[str, Any]], now: Optional[datetime] = None,
               persist: bool = True) -> List[Member]:
        """
        Record a live roster fetch.

        Args:
            members: Raw member dictionaries from the provider
            now: Observation instant
            persist: False to work on a blank ledger and write nothing
                (generated demo rosters)

        Returns:
            The current members, in roster order
        """
        now = now or datetime.now(timezone.utc)
        ledger = self.store.load_member_ledger() if persist else MemberLedger()
        first_run = not ledger.entries and ledger.seeded_at is None
        if first_run and persist:
            ledger.seeded_at = now
            logger.info("🌱 Seeding member history; existing members get no join date")

        current = []
        added = 0
        for raw in members:
            if not isinstance(raw, dict):
                continue
            tag = normalize_tag(raw.get("tag"))
            if not tag:
                logger.warning(f"⚠️ Skipping roster entry without a tag: {raw!r}")
                continue

            existing = ledger.entries.get(tag)
            if existing is None:
                added += 1
            entry = MemberHistoryEntry(
                tag=tag,
                name=normalize_player_name(raw.get("name")) or (existing.name if existing else tag),
                role=normalize_role(raw.get("role")),
                first_seen=existing.first_seen if existing and existing.first_seen else now,
                last_seen=now,
                tenure_known=existing.tenure_known if existing else not first_run,
            )
            ledger.entries[tag] = entry
            current.append(_to_member(entry, is_current=True))

        if persist:
            self.store.save_member_ledger(ledger)
        if added and not first_run:
            logger.info(f"👋 {added} new member(s) joined")
        logger.debug(f"Tracked {len(current)} current member(s), {len(ledger.entries)} in ledger")
        return current

    def roster(self, current: List[Member], include_former: bool = True) -> List[Member]:
        """
        Current members, followed by former members from the ledger when requested.
        """
        if not include_former:
            return list(current)

        current_tags = {member.tag for member in current}
        ledger = self.store.load_member_ledger()
        former = [
            _to_member(entry, is_current=False)
            for tag, entry in sorted(ledger.entries.items())
            if tag not in current_tags
        ]
        return list(current) + former
