#!/usr/bin/env python3
"""
History Store - durable ledgers behind the war stats engine.

Three whole-document JSON ledgers live in the data directory:

- war-history.json    weekly war records keyed by week key (bounded window)
- members.json        first-seen / last-seen metadata per member tag
- war-snapshots.json  rollover-time samples of the live race per week

Loading never fails: a missing file is an empty ledger and a corrupt one is
logged and treated as empty. Writes go through safe_write_json so a crash
mid-write leaves the previous document in place, and each written file is
checked against the checksum computed before the rename.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from warstats.io.safe_write import safe_write_json, verify_file_integrity
from warstats.merge.reconcile import collapse_records, trim_records
from warstats.models import WeeklyWarRecord, normalize_role
from warstats.normalizers.participant_normalizer import normalize_participants
from warstats.normalizers.week_key import WeekKeyResolver, week_key_to_string

logger = logging.getLogger(__name__)

WAR_HISTORY_FILE = "war-history.json"
MEMBERS_FILE = "members.json"
SNAPSHOTS_FILE = "war-snapshots.json"


@dataclass
class MemberHistoryEntry:
    tag: str
    name: str
    role: str = "member"
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    # False for members already present when the ledger was first seeded
    tenure_known: bool = True


@dataclass
class MemberLedger:
    seeded_at: Optional[datetime] = None
    entries: Dict[str, MemberHistoryEntry] = field(default_factory=dict)


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return week_key_to_string(value) if value else None


class HistoryStore:
    """Loads and saves the weekly, member and snapshot ledgers."""

    def __init__(self, data_dir: Union[str, Path] = "data", max_weeks: int = 260,
                 resolver: Optional[WeekKeyResolver] = None):
        """
        Initialize the store.

        Args:
            data_dir: Directory holding the JSON ledgers
            max_weeks: Retention window for the weekly ledger
            resolver: Week-key resolver used to re-canonicalize stored keys
        """
        self.data_dir = Path(data_dir)
        self.max_weeks = max_weeks
        self.resolver = resolver or WeekKeyResolver()
        self.weeks_path = self.data_dir / WAR_HISTORY_FILE
        self.members_path = self.data_dir / MEMBERS_FILE
        self.snapshots_path = self.data_dir / SNAPSHOTS_FILE

    # ------------------------------------------------------------------
    # Raw document access
    # ------------------------------------------------------------------

    def _read_document(self, path: Path, required_key: str, expected_type: type) -> Dict[str, Any]:
        """
        Read one JSON ledger document.

        Returns:
            The parsed document, or {} if the file is missing, unreadable or
            does not have the expected shape
        """
        if not path.exists():
            return {}

        try:
            with open(path, 'r', encoding='utf-8') as f:
                document = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            logger.warning(f"⚠️ Could not load {path.name}, starting from an empty ledger: {e}")
            return {}

        if not isinstance(document, dict) or not isinstance(document.get(required_key), expected_type):
            logger.warning(f"⚠️ {path.name} has an unexpected layout (no '{required_key}'), "
                           f"starting from an empty ledger")
            return {}
        return document

    def _write_document(self, document: Dict[str, Any], path: Path) -> None:
        result = safe_write_json(document, path)
        if not verify_file_integrity(path, result["checksum"]):
            raise OSError(f"{path.name} does not match its checksum after writing")

    # ------------------------------------------------------------------
    # Weekly ledger
    # ------------------------------------------------------------------

    def record_to_dict(self, record: WeeklyWarRecord) -> Dict[str, Any]:
        return {
            "weekKey": week_key_to_string(record.week_key),
            "label": record.label,
            "participants": [p.to_dict() for p in record.participants],
        }

    def record_from_dict(self, item: Dict[str, Any]) -> Optional[WeeklyWarRecord]:
        """
        Rebuild a weekly record from its stored form.

        Older documents keyed weeks by endDate/createdDate; those are accepted
        and re-canonicalized. Items with no usable date are skipped.
        """
        if not isinstance(item, dict):
            return None

        week_key = None
        for field_name in ("weekKey", "endDate", "createdDate"):
            week_key = self.resolver.week_key_for(item.get(field_name))
            if week_key is not None:
                break
        if week_key is None:
            return None

        label = item.get("label") if isinstance(item.get("label"), str) else None
        participants = item.get("participants") if isinstance(item.get("participants"), list) else []
        return WeeklyWarRecord(
            week_key=week_key,
            label=label,
            participants=tuple(normalize_participants(participants)),
        )

    def load_weeks(self) -> List[WeeklyWarRecord]:
        """
        Load the weekly ledger.

        Returns:
            Records most recent first, one per week key, within the window
        """
        document = self._read_document(self.weeks_path, "items", list)
        records = []
        skipped = 0
        for item in document.get("items", []):
            record = self.record_from_dict(item)
            if record is None:
                skipped += 1
            else:
                records.append(record)
        if skipped:
            logger.warning(f"⚠️ Skipped {skipped} stored war record(s) without a usable date")

        records = collapse_records(records, key_func=lambda r: r.week_key)
        return records[:self.max_weeks]

    def save_weeks(self, records: List[WeeklyWarRecord]) -> List[WeeklyWarRecord]:
        """
        Persist the weekly ledger, enforcing one record per key and the window.

        Returns:
            The records actually written
        """
        records = collapse_records(records, key_func=lambda r: r.week_key)
        records = trim_records(records, self.max_weeks)
        self._write_document({"items": [self.record_to_dict(r) for r in records]}, self.weeks_path)
        logger.debug(f"Saved {len(records)} week(s) to {self.weeks_path}")
        return records

    def upsert_week(self, record: WeeklyWarRecord) -> List[WeeklyWarRecord]:
        """Insert or replace the record with the same week key, then trim and save."""
        records = [r for r in self.load_weeks() if r.week_key != record.week_key]
        records.append(record)
        return self.save_weeks(records)

    def trim(self) -> List[WeeklyWarRecord]:
        """Re-apply the retention window to the stored ledger."""
        return self.save_weeks(self.load_weeks())

    # ------------------------------------------------------------------
    # Member ledger
    # ------------------------------------------------------------------

    def load_member_ledger(self) -> MemberLedger:
        document = self._read_document(self.members_path, "items", list)
        ledger = MemberLedger(seeded_at=self.resolver.parse_timestamp(document.get("seededAt")))

        for item in document.get("items", []):
            if not isinstance(item, dict) or not isinstance(item.get("tag"), str):
                continue
            entry = MemberHistoryEntry(
                tag=item["tag"],
                name=str(item.get("name") or item["tag"]),
                role=normalize_role(item.get("role")),
                first_seen=self.resolver.parse_timestamp(item.get("firstSeen")),
                last_seen=self.resolver.parse_timestamp(item.get("lastSeen")),
                tenure_known=bool(item.get("tenureKnown", True)),
            )
            ledger.entries[entry.tag] = entry
        return ledger

    def save_member_ledger(self, ledger: MemberLedger) -> None:
        items = [
            {
                "tag": entry.tag,
                "name": entry.name,
                "role": entry.role,
                "firstSeen": _format_timestamp(entry.first_seen),
                "lastSeen": _format_timestamp(entry.last_seen),
                "tenureKnown": entry.tenure_known,
            }
            for entry in sorted(ledger.entries.values(), key=lambda e: e.tag)
        ]
        self._write_document({"seededAt": _format_timestamp(ledger.seeded_at), "items": items},
                             self.members_path)

    # ------------------------------------------------------------------
    # Rollover snapshot ledger
    # ------------------------------------------------------------------

    def load_snapshot_ledger(self) -> Dict[str, Any]:
        document = self._read_document(self.snapshots_path, "weeks", dict)
        return {"weeks": document.get("weeks", {})}

    def save_snapshot_ledger(self, ledger: Dict[str, Any]) -> None:
        weeks = ledger.get("weeks", {})
        # Same retention window as the weekly ledger
        kept = dict(sorted(weeks.items(), reverse=True)[:self.max_weeks])
        self._write_document({"weeks": kept}, self.snapshots_path)
