#!/usr/bin/env python3
"""
Canonical War Stats Types

Strict internal shapes for members, weekly war records and derived player
rows. Loosely-typed upstream JSON only ever lives inside RawWarRecord; every
other type here is built from already-normalized values.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union


ROLES = ("member", "elder", "coleader", "leader")

# Roles that can never be promoted further / never be demoted by war policy
TOP_ROLES = ("coleader", "leader")
BOTTOM_ROLES = ("member", "elder")

# Upstream role spellings -> canonical role
ROLE_ALIASES = {
    "member": "member",
    "elder": "elder",
    "admin": "elder",
    "coleader": "coleader",
    "co-leader": "coleader",
    "co_leader": "coleader",
    "leader": "leader",
}


def normalize_role(role: Any) -> str:
    """Map an upstream role string onto the canonical role enum (defaults to member)."""
    if not isinstance(role, str):
        return "member"
    return ROLE_ALIASES.get(role.strip().lower(), "member")


class NotApplicable:
    """Score marker for player-weeks that predate the player's membership."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "N/A"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self):
        return (NotApplicable, ())


NOT_APPLICABLE = NotApplicable()

Score = Union[int, None, NotApplicable]


@dataclass(frozen=True)
class Member:
    tag: str
    name: str
    role: str = "member"
    first_seen: Optional[datetime] = None
    is_current: bool = True


@dataclass(frozen=True)
class Participant:
    """
    One player's line within a weekly record.

    war_points=None means the upstream reported "no data" for this player,
    which is not the same thing as having played and scored 0.
    """
    tag: Optional[str]
    name: Optional[str]
    war_points: Optional[int]
    decks_used: Optional[int]

    @property
    def identity(self) -> str:
        return self.tag if self.tag else (self.name or "")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tag": self.tag,
            "name": self.name,
            "warPoints": self.war_points,
            "decksUsed": self.decks_used,
        }


@dataclass(frozen=True)
class WeeklyWarRecord:
    week_key: datetime
    label: Optional[str]
    participants: Tuple[Participant, ...] = ()


@dataclass(frozen=True)
class RawWarRecord:
    """
    Upstream war entry as received, before key resolution.

    source is one of "warlog", "riverrace", "manual", "history" or "demo".
    The date fields stay in their raw form; the week-key resolver decides
    which of them to trust.
    """
    source: str
    participants: Tuple[Dict[str, Any], ...] = ()
    end_date: Any = None
    created_date: Any = None
    season_id: Any = None
    section_index: Any = None
    label: Optional[str] = None
    state: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], source: str,
                     clan_tag: Optional[str] = None) -> "RawWarRecord":
        """Build a raw record from one upstream war-log item of any known shape."""
        if not isinstance(payload, dict):
            return cls(source=source)

        return cls(
            source=source,
            participants=tuple(_extract_participants(payload, clan_tag)),
            end_date=payload.get("endDate"),
            created_date=payload.get("createdDate"),
            season_id=payload.get("seasonId"),
            section_index=payload.get("sectionIndex"),
            label=payload.get("label") if isinstance(payload.get("label"), str) else None,
            state=payload.get("state"),
        )


def _extract_participants(payload: Dict[str, Any], clan_tag: Optional[str]) -> List[Dict[str, Any]]:
    participants = payload.get("participants")
    if isinstance(participants, list):
        return [p for p in participants if isinstance(p, dict)]

    standings = payload.get("standings")
    if not isinstance(standings, list):
        return []

    candidates = []
    for standing in standings:
        if not isinstance(standing, dict):
            continue
        clan = standing.get("clan") if isinstance(standing.get("clan"), dict) else standing
        if isinstance(clan.get("participants"), list):
            candidates.append(clan)

    if clan_tag:
        wanted = "#" + clan_tag.lstrip("#").upper()
        for clan in candidates:
            if str(clan.get("tag", "")).upper() == wanted:
                return [p for p in clan["participants"] if isinstance(p, dict)]

    if len(candidates) == 1 or (candidates and not clan_tag):
        return [p for p in candidates[0]["participants"] if isinstance(p, dict)]
    return []


@dataclass
class PlayerRow:
    tag: str
    name: str
    role: str
    scores: Dict[str, Score] = field(default_factory=dict)
    current_rank: Optional[int] = None
    promotion_ready: bool = False
    joined_recently: bool = False
    demotion_risk: bool = False
    decks_used: Optional[int] = None
    first_seen: Optional[datetime] = None
    is_current: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tag": self.tag,
            "name": self.name,
            "role": self.role,
            "scores": {
                label: ("N/A" if score is NOT_APPLICABLE else score)
                for label, score in self.scores.items()
            },
            "currentRank": self.current_rank,
            "promotionReady": self.promotion_ready,
            "joinedRecently": self.joined_recently,
            "demotionRisk": self.demotion_risk,
            "decksUsed": self.decks_used,
            "firstSeen": self.first_seen.isoformat() if self.first_seen else None,
            "isCurrent": self.is_current,
        }
