#!/usr/bin/env python3
"""
Published snapshot of the latest completed refresh.

Readers only ever see a WarSnapshot that a refresh finished building; the
cell swaps the whole object in one assignment, so no reader observes a
half-updated state and no lock is needed.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Tuple

from warstats.models import Member, WeeklyWarRecord


@dataclass(frozen=True)
class WarSnapshot:
    members_current: Tuple[Member, ...]
    members_all: Tuple[Member, ...]
    weeks: Tuple[WeeklyWarRecord, ...]
    war_log_available: bool
    demo_mode: bool
    refreshed_at: datetime
    notices: Tuple[str, ...] = ()

    def with_weeks(self, weeks) -> "WarSnapshot":
        return replace(self, weeks=tuple(weeks))


class SnapshotCell:
    """Single-writer holder of the latest WarSnapshot."""

    def __init__(self):
        self._snapshot: Optional[WarSnapshot] = None

    def get(self) -> Optional[WarSnapshot]:
        return self._snapshot

    def publish(self, snapshot: WarSnapshot) -> None:
        self._snapshot = snapshot
