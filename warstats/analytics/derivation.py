#!/usr/bin/env python3
"""
Derivation Engine

Turns the member roster and the merged weekly ledger into leaderboard rows:
per-week scores (with N/A for weeks before a member joined), the current-week
competition rank, promotion readiness, the joined-recently flag and the
rollover-window demotion risk.

Score semantics:
- int      points recorded for the week (a roster member missing from a
           week's participants scored 0)
- None     upstream reported "no data" for that player
- N/A      the week closed before the player joined the clan
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from warstats.config import DEFAULT_CONFIG
from warstats.models import (BOTTOM_ROLES, NOT_APPLICABLE, TOP_ROLES, Member, Participant,
                             PlayerRow, Score, WeeklyWarRecord)
from warstats.normalizers.participant_normalizer import name_key
from warstats.normalizers.week_key import WeekKeyResolver
from warstats.schema.leaderboard_schema import validate_dataframe

logger = logging.getLogger(__name__)


class _WeekIndex:
    """Participant lookup for one week: tag first, then name for tagless entries."""

    def __init__(self, record: WeeklyWarRecord):
        self.by_tag: Dict[str, Participant] = {}
        self.by_name: Dict[str, Participant] = {}
        for participant in record.participants:
            if participant.tag:
                self.by_tag[participant.tag] = participant
            elif participant.name:
                self.by_name.setdefault(name_key(participant.name), participant)

    def lookup(self, member: Member) -> Optional[Participant]:
        if member.tag in self.by_tag:
            return self.by_tag[member.tag]
        return self.by_name.get(name_key(member.name))


def is_scored(score: Score) -> bool:
    """True for an actual points value (not None, not N/A)."""
    return isinstance(score, int) and not isinstance(score, bool)


def member_score(member: Member, record: WeeklyWarRecord, index: _WeekIndex) -> Score:
    if member.first_seen is not None and record.week_key < member.first_seen:
        return NOT_APPLICABLE
    participant = index.lookup(member)
    if participant is None:
        return 0
    return participant.war_points


def competition_ranks(scores: Dict[str, Score]) -> Dict[str, int]:
    """
    Standard competition ranking ("1,1,3") over scored entries only.

    Args:
        scores: Mapping of member tag to score

    Returns:
        Mapping of tag to rank; None and N/A entries are left out
    """
    scored = pd.Series({tag: score for tag, score in scores.items() if is_scored(score)}, dtype="float64")
    if scored.empty:
        return {}
    ranks = scored.rank(method="min", ascending=False)
    return {tag: int(rank) for tag, rank in ranks.items()}


def _participant_id(participant: Participant) -> Optional[str]:
    if participant.tag:
        return participant.tag
    key = name_key(participant.name)
    return f"name:{key}" if key else None


def week_ranks(record: WeeklyWarRecord) -> Dict[str, int]:
    """Competition ranks among everyone who took part in a week, roster or not."""
    scores = {}
    for participant in record.participants:
        pid = _participant_id(participant)
        if pid is not None:
            scores[pid] = participant.war_points
    return competition_ranks(scores)


def is_promotion_ready(role: str, streak_scores: Sequence[Score], requirement: int,
                       streak_weeks: int) -> bool:
    """
    Promotion needs streak_weeks consecutive qualifying weeks, newest first.

    Any None, N/A or below-requirement week breaks the streak; fewer than
    streak_weeks weeks of history can never qualify.
    """
    if role in TOP_ROLES or len(streak_scores) < streak_weeks:
        return False
    return all(is_scored(score) and score >= requirement
               for score in streak_scores[:streak_weeks])


def is_joined_recently(first_seen: Optional[datetime], now: datetime, days: float) -> bool:
    if first_seen is None:
        return False
    return first_seen <= now and (now - first_seen) <= timedelta(days=days)


def demotion_threshold(now: datetime, resolver: WeekKeyResolver,
                       config: Dict[str, Any]):
    """
    Work out whether now lies in the rollover checkpoint window.

    The week checked on both sides of the rollover is the one that closes at
    the boundary; its key depends on the resolver's roll direction.

    Returns:
        (week_key, threshold): the week key being checked and the score it
        must reach, or (None, None) outside the window
    """
    boundary = resolver.nearest_boundary(now)
    before = timedelta(hours=config["DEMOTION_WINDOW_BEFORE_HOURS"])
    after = timedelta(hours=config["DEMOTION_WINDOW_AFTER_HOURS"])

    if boundary - before <= now < boundary:
        return resolver.key_for_week_ending(boundary), config["DEMOTION_THRESHOLD_PRE_ROLLOVER"]
    if boundary <= now <= boundary + after:
        return resolver.key_for_week_ending(boundary), config["DEMOTION_THRESHOLD_POST_ROLLOVER"]
    return None, None


def is_demotion_risk(role: str, score: Score, threshold: Optional[int]) -> bool:
    if threshold is None or role not in BOTTOM_ROLES:
        return False
    if score is NOT_APPLICABLE:
        return False
    if score is None:
        return True
    return score < threshold


def derive_player_view(roster: Sequence[Member], weeks: Sequence[WeeklyWarRecord],
                       config: Optional[Dict[str, Any]] = None,
                       now: Optional[datetime] = None,
                       resolver: Optional[WeekKeyResolver] = None,
                       display_weeks: Optional[int] = None) -> List[PlayerRow]:
    """
    Build one leaderboard row per roster member.

    Args:
        roster: Members to report on (current and, optionally, former)
        weeks: Merged weekly records, most recent first
        config: Policy configuration (DEFAULT_CONFIG keys)
        now: Evaluation instant
        resolver: Week-key resolver (labels and rollover boundary)
        display_weeks: Number of weeks exposed in each row's scores; the
            flags still look at every week passed in

    Returns:
        PlayerRow list in roster order
    """
    config = {**DEFAULT_CONFIG, **(config or {})}
    now = now or datetime.now(timezone.utc)
    resolver = resolver or WeekKeyResolver.from_config(config)

    weeks = sorted(weeks, key=lambda r: r.week_key, reverse=True)
    indexes = [_WeekIndex(record) for record in weeks]
    labels = [resolver.week_label(record.week_key) for record in weeks]
    shown = len(weeks) if display_weeks is None else max(display_weeks, 0)

    checked_key, threshold = demotion_threshold(now, resolver, config)
    checked_week = None
    if checked_key is not None:
        checked_week = next((i for i, r in enumerate(weeks) if r.week_key == checked_key), None)

    all_scores: List[List[Score]] = []
    for member in roster:
        all_scores.append([member_score(member, record, index)
                           for record, index in zip(weeks, indexes)])

    ranks = week_ranks(weeks[0]) if weeks else {}

    rows = []
    for member, scores in zip(roster, all_scores):
        latest = indexes[0].lookup(member) if indexes else None
        # Members missing from the latest week scored 0 but are not ranked
        current_rank = None
        if latest is not None and is_scored(scores[0]):
            current_rank = ranks.get(_participant_id(latest))
        demotion = False
        if checked_week is not None:
            demotion = is_demotion_risk(member.role, scores[checked_week], threshold)

        rows.append(PlayerRow(
            tag=member.tag,
            name=member.name,
            role=member.role,
            scores=dict(zip(labels[:shown], scores[:shown])),
            current_rank=current_rank,
            promotion_ready=is_promotion_ready(
                member.role, scores, config["WAR_POINT_REQUIREMENT"], config["PROMOTION_STREAK_WEEKS"]),
            joined_recently=is_joined_recently(member.first_seen, now, config["JOINED_RECENTLY_DAYS"]),
            demotion_risk=demotion,
            decks_used=latest.decks_used if latest else None,
            first_seen=member.first_seen,
            is_current=member.is_current,
        ))

    logger.debug(f"Derived {len(rows)} player row(s) over {len(weeks)} week(s)")
    return rows


def week_labels(weeks: Sequence[WeeklyWarRecord], resolver: WeekKeyResolver,
                display_weeks: Optional[int] = None) -> List[str]:
    labels = [resolver.week_label(r.week_key)
              for r in sorted(weeks, key=lambda r: r.week_key, reverse=True)]
    return labels if display_weeks is None else labels[:display_weeks]


def _score_cell(score: Score):
    if score is NOT_APPLICABLE:
        return "N/A"
    return score


def leaderboard_frame(rows: Sequence[PlayerRow], labels: Sequence[str]) -> pd.DataFrame:
    """
    Flatten player rows into a validated leaderboard DataFrame.

    Week columns hold ints, None (no data) or the string "N/A". Rows are sorted
    by current rank with unranked players last, then by name.
    """
    df = pd.DataFrame({
        "tag": pd.Series([row.tag for row in rows], dtype=object),
        "name": pd.Series([row.name for row in rows], dtype=object),
        "role": pd.Series([row.role for row in rows], dtype=object),
        "current_rank": pd.array([row.current_rank for row in rows], dtype="Int64"),
        "promotion_ready": pd.Series([row.promotion_ready for row in rows], dtype=bool),
        "joined_recently": pd.Series([row.joined_recently for row in rows], dtype=bool),
        "demotion_risk": pd.Series([row.demotion_risk for row in rows], dtype=bool),
        "decks_used": pd.array([row.decks_used for row in rows], dtype="Int64"),
        "is_current": pd.Series([row.is_current for row in rows], dtype=bool),
    })
    # Object columns keep 0, None and "N/A" apart
    for label in labels:
        df[label] = pd.Series([_score_cell(row.scores.get(label, NOT_APPLICABLE)) for row in rows],
                              dtype=object, index=df.index)

    if not df.empty:
        df = df.assign(_name_key=df["name"].str.casefold())
        df = df.sort_values(["current_rank", "_name_key"], na_position="last").drop(columns="_name_key")
        df = df.reset_index(drop=True)

    return validate_dataframe(df)
