#!/usr/bin/env python3
"""
Refresh Cycle - fetch, reconcile and publish

One refresh is one logical transaction:

1. fetch the roster and record it in the member ledger
2. fetch the war log (or the current race when the log is disabled)
3. normalize, resolve week keys and merge into the weekly ledger
4. publish a new WarSnapshot

A provider failure or a failed write aborts the cycle before step 4, so the
previously published snapshot stays in place. In demo mode nothing is
written: the generated data is merged in memory and published as is, and
the supplementary jobs are skipped. The supplementary jobs (hourly
current-week capture, daily war-log check, rollover snapshots) live here as
well and are run by the same scheduler.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from warstats.merge.war_log_merger import WarLogMerger
from warstats.models import RawWarRecord, WeeklyWarRecord
from warstats.normalizers.participant_normalizer import normalize_participants
from warstats.normalizers.week_key import WeekKeyResolver, week_key_to_string
from warstats.pipeline.member_tracker import MemberTracker
from warstats.pipeline.snapshot import SnapshotCell, WarSnapshot
from warstats.providers.provider_base import ClanDataProvider, EndpointDisabledError, ProviderError
from warstats.store.history_store import HistoryStore

logger = logging.getLogger(__name__)

NOTICE_HISTORY_LIMITED = ("The war log endpoint is disabled upstream; "
                          "new results are limited to the current week.")
NOTICE_DEMO = "Demo mode: showing generated data because no valid API key is configured."
NOTICE_STALE = "The last refresh failed; showing the last known data."


class RefreshCycle:
    """Runs refreshes and the supplementary capture jobs against one provider."""

    def __init__(self, config: Dict[str, Any], provider: ClanDataProvider, store: HistoryStore,
                 merger: WarLogMerger, tracker: MemberTracker, cell: SnapshotCell,
                 resolver: WeekKeyResolver):
        self.config = config
        self.provider = provider
        self.store = store
        self.merger = merger
        self.tracker = tracker
        self.cell = cell
        self.resolver = resolver

        self.war_log_available: Optional[bool] = None
        self.last_failure: Optional[str] = None
        self.last_failure_at: Optional[datetime] = None

    def _fail(self, step: str, error: Exception, now: datetime) -> bool:
        logger.error(f"[FAILED] {step}: {error}")
        self.last_failure = str(error)
        self.last_failure_at = now
        return False

    def _fetch_war_records(self) -> List[RawWarRecord]:
        try:
            records = self.provider.fetch_war_log()
        except EndpointDisabledError:
            if self.war_log_available is not False:
                logger.warning("⚠️ War log endpoint is disabled; falling back to the current race")
            self.war_log_available = False
            return self.provider.fetch_current_race()
        if self.war_log_available is False:
            logger.info("✅ War log endpoint is available again")
        self.war_log_available = True
        return records

    def run(self, now: Optional[datetime] = None) -> bool:
        """
        Run one refresh cycle.

        Args:
            now: Evaluation instant (defaults to the wall clock)

        Returns:
            True if a new snapshot was published
        """
        now = now or datetime.now(timezone.utc)
        logger.info("[START] Refresh")

        demo = self.provider.is_demo
        try:
            current = self.tracker.attach(self.provider.fetch_members(), now, persist=not demo)
            everyone = list(current) if demo else self.tracker.roster(current, include_former=True)
            records = self._fetch_war_records()
            weeks = self.merger.preview(records, now) if demo else self.merger.merge(records, now)
        except (ProviderError, OSError) as e:
            return self._fail("Refresh", e, now)

        notices = []
        if not self.war_log_available:
            notices.append(NOTICE_HISTORY_LIMITED)
        if demo:
            notices.append(NOTICE_DEMO)

        self.cell.publish(WarSnapshot(
            members_current=tuple(current),
            members_all=tuple(everyone),
            weeks=tuple(weeks),
            war_log_available=bool(self.war_log_available),
            demo_mode=demo,
            refreshed_at=now,
            notices=tuple(notices),
        ))
        self.last_failure = None
        self.last_failure_at = None

        logger.info(f"[SUCCESS] Refresh: {len(current)} members, {len(weeks)} weeks")
        return True

    def notices(self) -> List[str]:
        """Banners for the presentation layer."""
        snapshot = self.cell.get()
        if snapshot is None:
            return []
        notices = list(snapshot.notices)
        if self.last_failure_at is not None and self.last_failure_at >= snapshot.refreshed_at:
            notices.append(NOTICE_STALE)
        return notices

    def _skip_demo(self, job: str) -> bool:
        if self.provider.is_demo:
            logger.debug(f"{job} skipped in demo mode")
            return True
        return False

    def _republish(self, weeks: List[WeeklyWarRecord]) -> None:
        snapshot = self.cell.get()
        if snapshot is not None:
            self.cell.publish(snapshot.with_weeks(weeks))

    # ------------------------------------------------------------------
    # Supplementary jobs
    # ------------------------------------------------------------------

    def capture_current_week(self, now: Optional[datetime] = None) -> bool:
        """Merge the race in progress into the current week's record."""
        now = now or datetime.now(timezone.utc)
        if self._skip_demo("Current week capture"):
            return True
        try:
            records = self.provider.fetch_current_race()
            if not records:
                return True
            weeks = self.merger.merge(records, now)
        except (ProviderError, OSError) as e:
            return self._fail("Current week capture", e, now)

        self._republish(weeks)
        logger.info("📸 Captured current week from the live race")
        return True

    def check_war_log(self, now: Optional[datetime] = None) -> bool:
        """Check whether the war log endpoint is back and merge its items if it is."""
        now = now or datetime.now(timezone.utc)
        if self._skip_demo("War log check"):
            return True
        try:
            records = self.provider.fetch_war_log()
        except EndpointDisabledError:
            logger.info("War log endpoint still disabled")
            self.war_log_available = False
            return True
        except ProviderError as e:
            return self._fail("War log check", e, now)

        if self.war_log_available is False:
            logger.info("✅ War log endpoint is available again")
        self.war_log_available = True
        try:
            weeks = self.merger.merge(records, now)
        except OSError as e:
            return self._fail("War log check", e, now)
        self._republish(weeks)
        return True

    def in_rollover_window(self, now: datetime) -> Optional[datetime]:
        """
        Returns:
            The boundary being crossed when now is inside the capture window, else None
        """
        boundary = self.resolver.nearest_boundary(now)
        before = timedelta(minutes=self.config["ROLLOVER_SNAPSHOT_MINUTES_BEFORE"])
        after = timedelta(minutes=self.config["ROLLOVER_SNAPSHOT_MINUTES_AFTER"])
        if boundary - before <= now <= boundary + after:
            return boundary
        return None

    def capture_rollover_snapshot(self, now: Optional[datetime] = None) -> bool:
        """
        Sample the live race around the weekly reset.

        Samples are kept per week in the snapshot ledger. When the race total
        drops to zero after a non-zero sample, that last non-zero sample is
        kept as preReset. Non-zero samples are merged into the closing week.
        """
        now = now or datetime.now(timezone.utc)
        boundary = self.in_rollover_window(now)
        if boundary is None or self._skip_demo("Rollover snapshot"):
            return True

        try:
            records = self.provider.fetch_current_race()
        except ProviderError as e:
            return self._fail("Rollover snapshot", e, now)
        if not records:
            return True

        participants = normalize_participants(records[0].participants)
        total = sum(p.war_points or 0 for p in participants)
        sample = {
            "capturedAt": week_key_to_string(now),
            "totalFame": total,
            "participants": [p.to_dict() for p in participants],
        }

        try:
            ledger = self.store.load_snapshot_ledger()
            week = ledger["weeks"].setdefault(week_key_to_string(boundary), {"samples": [], "preReset": None})
            previous = [s for s in week.get("samples", []) if s.get("totalFame")]
            if total == 0 and previous and not week.get("preReset"):
                week["preReset"] = previous[-1]
                logger.info(f"🔁 Race reset detected; kept pre-reset sample ({previous[-1]['totalFame']} fame)")
            week.setdefault("samples", []).append(sample)
            self.store.save_snapshot_ledger(ledger)

            if total > 0:
                record = WeeklyWarRecord(week_key=boundary, label=None, participants=tuple(participants))
                self._republish(self.merger.merge([record], now))
        except OSError as e:
            return self._fail("Rollover snapshot", e, now)

        logger.info(f"📸 Rollover sample for {self.resolver.week_label(boundary)}: {total} fame")
        return True
