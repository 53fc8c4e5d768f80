#!/usr/bin/env python3
"""
Week-Key Resolver

Computes the canonical "week-ending" instant for a war record. A policy week
ends on a fixed weekday at a fixed civil time in a reference timezone
(Monday 04:30 America/Chicago by default). Every record that belongs to the
same physical week resolves to the same instant, which the merger then uses
as its key.

Dates taken from a record are rolled at calendar-date granularity: the date
moves to the nearest boundary weekday in the configured direction and the
time-of-day is pinned to the boundary time. Records without any date (live
race snapshots) resolve against the wall clock at instant granularity.
"""

import logging
import math
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Optional, Union
from zoneinfo import ZoneInfo

import pandas as pd

from warstats.config import DEFAULT_CONFIG, parse_boundary_time
from warstats.models import RawWarRecord

logger = logging.getLogger(__name__)

# Upstream compact timestamp, e.g. 20260112T094052.000Z
COMPACT_FORMATS = ("%Y%m%dT%H%M%S.%fZ", "%Y%m%dT%H%M%SZ")
US_DATE_PATTERN = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{4})\s*$")


class WeekKeyResolver:
    """Resolves raw war records and timestamps to canonical week-ending instants."""

    def __init__(self, weekday: int = 0, boundary_time: Union[str, time] = "04:30",
                 tz: str = "America/Chicago", direction: str = "forward"):
        """
        Args:
            weekday: Boundary weekday, 0 = Monday .. 6 = Sunday
            boundary_time: Boundary civil time ("HH:MM" or datetime.time)
            tz: IANA name of the reference timezone
            direction: "forward" rolls dates to the next boundary weekday,
                "backward" to the previous one
        """
        if direction not in ("forward", "backward"):
            raise ValueError(f"Unknown roll direction: {direction}")
        self.weekday = weekday
        self.boundary_time = parse_boundary_time(boundary_time)
        self.tz = ZoneInfo(tz)
        self.direction = direction

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "WeekKeyResolver":
        config = config or DEFAULT_CONFIG
        return cls(
            weekday=config.get("BOUNDARY_WEEKDAY", 0),
            boundary_time=config.get("BOUNDARY_TIME", "04:30"),
            tz=config.get("BOUNDARY_TIMEZONE", "America/Chicago"),
            direction=config.get("ROLL_DIRECTION", "forward"),
        )

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse_timestamp(self, value: Any) -> Optional[datetime]:
        """
        Parse any upstream date representation into an aware datetime.

        Naive values are taken to be civil time in the reference timezone.
        Unparsable values return None.
        """
        if value is None or isinstance(value, bool):
            return None

        if isinstance(value, datetime):
            return value if value.tzinfo else value.replace(tzinfo=self.tz)

        if isinstance(value, date):
            return datetime.combine(value, self.boundary_time, tzinfo=self.tz)

        if isinstance(value, (int, float)):
            # Small integers are season numbers, not timestamps
            if not math.isfinite(value) or value < 1e9:
                return None
            seconds = value / 1000 if value >= 1e12 else value
            try:
                return datetime.fromtimestamp(seconds, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                logger.debug(f"Timestamp out of range: {value!r}")
                return None

        if not isinstance(value, str) or not value.strip():
            return None

        text = value.strip()

        for fmt in COMPACT_FORMATS:
            try:
                return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
            except ValueError:
                continue

        us_match = US_DATE_PATTERN.match(text)
        if us_match:
            month, day, year = (int(g) for g in us_match.groups())
            try:
                return datetime.combine(date(year, month, day), self.boundary_time, tzinfo=self.tz)
            except ValueError:
                return None

        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=self.tz)
        except ValueError:
            pass

        parsed = pd.to_datetime(text, errors="coerce")
        if pd.isna(parsed):
            return None
        parsed = parsed.to_pydatetime()
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=self.tz)

    # ------------------------------------------------------------------
    # Boundary arithmetic
    # ------------------------------------------------------------------

    def _pin(self, day: date) -> datetime:
        return datetime.combine(day, self.boundary_time, tzinfo=self.tz)

    def roll_to_boundary(self, moment: datetime) -> datetime:
        """
        Roll a timestamp to its week-ending boundary.

        The local calendar date moves to the nearest boundary weekday in the
        configured direction (staying put when it already is one) and the time
        is pinned to the boundary time. Rolling a boundary returns it
        unchanged.
        """
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=self.tz)
        local_day = moment.astimezone(self.tz).date()
        if self.direction == "forward":
            shift = (self.weekday - local_day.weekday()) % 7
        else:
            shift = -((local_day.weekday() - self.weekday) % 7)
        return self._pin(local_day + timedelta(days=shift))

    def week_key_for(self, value: Any) -> Optional[datetime]:
        """Parse value and roll it to its boundary; None if either step fails."""
        parsed = self.parse_timestamp(value)
        if parsed is None:
            return None
        try:
            return self.roll_to_boundary(parsed)
        except (OverflowError, ValueError):
            # Dates at the edge of the calendar have no boundary to roll to
            logger.debug(f"No week boundary for {parsed!r}")
            return None

    def next_boundary(self, now: datetime) -> datetime:
        """First boundary instant at or after now."""
        now_local = now.astimezone(self.tz)
        candidate = self._pin(now_local.date() + timedelta(days=(self.weekday - now_local.weekday()) % 7))
        if candidate < now_local:
            candidate = self._pin(candidate.date() + timedelta(days=7))
        return candidate

    def previous_boundary(self, now: datetime) -> datetime:
        """Last boundary instant at or before now."""
        now_local = now.astimezone(self.tz)
        candidate = self._pin(now_local.date() - timedelta(days=(now_local.weekday() - self.weekday) % 7))
        if candidate > now_local:
            candidate = self._pin(candidate.date() - timedelta(days=7))
        return candidate

    def key_for_week_ending(self, boundary: datetime) -> datetime:
        """Key of the week that closes at boundary: the boundary itself going forward,
        the boundary that opened it going backward."""
        if self.direction == "forward":
            return boundary
        return self.previous_boundary(boundary - timedelta(seconds=1))

    def nearest_boundary(self, now: datetime) -> datetime:
        before = self.previous_boundary(now)
        after = self.next_boundary(now)
        return before if (now - before) <= (after - now) else after

    def current_week_key(self, now: Optional[datetime] = None) -> datetime:
        """
        Week key for a snapshot that carries no server-supplied date.

        Forward: the boundary that will close the week in progress.
        Backward: the boundary that opened it.
        """
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=self.tz)
        if self.direction == "forward":
            return self.next_boundary(now)
        return self.previous_boundary(now)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, record: Union[RawWarRecord, Dict[str, Any], datetime, str],
                now: Optional[datetime] = None) -> datetime:
        """
        Resolve a raw record (or a bare timestamp) to its canonical week key.

        Resolution order: end date, creation date, season identifier. When no
        field parses, the key is computed from the wall clock.

        Args:
            record: RawWarRecord, upstream dictionary or timestamp
            now: Evaluation instant for the wall-clock fallback

        Returns:
            Aware datetime in the reference timezone
        """
        if isinstance(record, RawWarRecord):
            candidates = (record.end_date, record.created_date, record.season_id)
        elif isinstance(record, dict):
            candidates = (
                record.get("weekKey"), record.get("endDate"),
                record.get("createdDate"), record.get("seasonId"),
            )
        else:
            candidates = (record,)

        present = [c for c in candidates if c not in (None, "")]
        for candidate in present:
            week_key = self.week_key_for(candidate)
            if week_key is not None:
                return week_key

        if present:
            logger.warning(f"⚠️ Unparsable war date fields {present!r}; using current week")
        return self.current_week_key(now)

    # ------------------------------------------------------------------
    # Presentation helpers
    # ------------------------------------------------------------------

    def week_label(self, week_key: datetime) -> str:
        """Column label for a week: its local boundary date as MM/DD/YYYY."""
        return week_key.astimezone(self.tz).strftime("%m/%d/%Y")

    def local_date(self, week_key: datetime) -> date:
        return week_key.astimezone(self.tz).date()


def week_key_to_string(week_key: datetime) -> str:
    """Serialized form of a week key (UTC, second precision)."""
    return week_key.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
