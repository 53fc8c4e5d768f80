#!/usr/bin/env python3
"""
War Stats Service

Wires the engine together for one clan: provider, history store, merger,
member tracker, refresh cycle and scheduler. This is the interface the CLI
and the dashboard talk to.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from warstats.analytics.derivation import derive_player_view, leaderboard_frame, week_labels
from warstats.config import load_config
from warstats.ingest.manual_import import import_manual_war
from warstats.merge.war_log_merger import WarLogMerger
from warstats.models import Member, PlayerRow, WeeklyWarRecord
from warstats.normalizers.week_key import WeekKeyResolver
from warstats.pipeline.member_tracker import MemberTracker
from warstats.pipeline.refresh import RefreshCycle
from warstats.pipeline.scheduler import RefreshScheduler, ScheduledJob
from warstats.pipeline.snapshot import SnapshotCell
from warstats.providers import ClanDataProvider, build_provider
from warstats.store.history_store import HistoryStore

logger = logging.getLogger(__name__)

NOTICE_SINGLE_WEEK = "Only one week of war data is available so far."


class WarStatsService:
    """Owns the pipeline objects for one clan and data directory."""

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 provider: Optional[ClanDataProvider] = None):
        """
        Args:
            config: Effective configuration (load_config() when omitted)
            provider: Data provider (chosen from the API key when omitted)
        """
        self.config = config if config is not None else load_config()
        self.resolver = WeekKeyResolver.from_config(self.config)
        self.store = HistoryStore(Path(self.config["DATA_DIR"]), self.config["HISTORY_MAX_WEEKS"], self.resolver)
        self.merger = WarLogMerger(self.store, self.resolver, self.config["HISTORY_MAX_WEEKS"])
        self.tracker = MemberTracker(self.store)
        self.cell = SnapshotCell()
        self.provider = provider or build_provider(self.config)
        self.cycle = RefreshCycle(self.config, self.provider, self.store, self.merger,
                                  self.tracker, self.cell, self.resolver)

        if self.provider.is_demo:
            logger.warning("⚠️ No valid API key configured; running in DEMO MODE")

    # ------------------------------------------------------------------
    # Exposed interface
    # ------------------------------------------------------------------

    def refresh(self, now: Optional[datetime] = None) -> bool:
        return self.cycle.run(now)

    def get_merged_weeks(self, max_weeks: int) -> List[WeeklyWarRecord]:
        """Merged weekly records, most recent first."""
        return self.merger.merged_weeks(max_weeks)

    def derive_player_view(self, roster: Sequence[Member], weeks: Sequence[WeeklyWarRecord],
                           now: Optional[datetime] = None) -> List[PlayerRow]:
        return derive_player_view(roster, weeks, self.config, now, self.resolver,
                                  display_weeks=self.config["DISPLAY_WEEKS"])

    def notices(self) -> List[str]:
        notices = self.cycle.notices()
        snapshot = self.cell.get()
        if snapshot is not None and len(snapshot.weeks) == 1:
            notices.append(NOTICE_SINGLE_WEEK)
        return notices

    def leaderboard(self, now: Optional[datetime] = None,
                    include_former: bool = False) -> Tuple[pd.DataFrame, List[str]]:
        """
        Build the leaderboard frame from the latest snapshot.

        Runs a refresh first when nothing has been published yet.

        Returns:
            (frame, week labels shown)
        """
        now = now or datetime.now(timezone.utc)
        if self.cell.get() is None:
            self.refresh(now)

        # Roster and weeks both come from the one published snapshot
        snapshot = self.cell.get()
        if snapshot is None:
            roster: List[Member] = []
            published: List[WeeklyWarRecord] = []
        else:
            roster = list(snapshot.members_all if include_former else snapshot.members_current)
            published = list(snapshot.weeks)

        # Enough weeks for the promotion streak even if fewer are displayed
        needed = max(self.config["DISPLAY_WEEKS"], self.config["PROMOTION_STREAK_WEEKS"])
        weeks = published[:needed]
        rows = self.derive_player_view(roster, weeks, now)
        labels = week_labels(weeks, self.resolver, self.config["DISPLAY_WEEKS"])
        return leaderboard_frame(rows, labels), labels

    def import_manual(self, csv_path: Union[str, Path], year: Optional[int] = None) -> List[WeeklyWarRecord]:
        return import_manual_war(csv_path, self.merger, year=year)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def build_scheduler(self) -> RefreshScheduler:
        jobs = [
            ScheduledJob("refresh", self.config["REFRESH_INTERVAL_SECONDS"], self.cycle.run),
            ScheduledJob("rollover-snapshot", self.config["ROLLOVER_SNAPSHOT_INTERVAL_SECONDS"],
                         self.cycle.capture_rollover_snapshot),
            ScheduledJob("current-week-capture", self.config["CAPTURE_INTERVAL_SECONDS"],
                         self.cycle.capture_current_week),
            ScheduledJob("war-log-check", self.config["WARLOG_CHECK_INTERVAL_SECONDS"],
                         self.cycle.check_war_log),
        ]
        return RefreshScheduler(jobs, failure_backoff_intervals=self.config["FAILURE_BACKOFF_INTERVALS"])
