#!/usr/bin/env python3
"""
War Record Reconciliation

Pure merge rules for weekly war records that share a week key:

- participants match by tag; a tagless participant falls back to a
  case-insensitive name match, but only against a name that a single tag
  carries;
- the participant reporting the higher score supplies the base record, and
  a higher deck count from the other side is grafted onto it (score and
  deck count are reconciled independently);
- the longer, more descriptive label is kept.

Every rule is symmetric, so merging two records in either order yields the
same result, and merging a record into itself changes nothing.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from warstats.models import Participant, WeeklyWarRecord
from warstats.normalizers.participant_normalizer import name_key

logger = logging.getLogger(__name__)


def _score_key(participant: Participant):
    # A reported score (even 0) always outranks "no data"
    return (participant.war_points is not None, participant.war_points or 0)


def _max_optional(a: Optional[int], b: Optional[int]) -> Optional[int]:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def _pick_name(a: Optional[str], b: Optional[str]) -> Optional[str]:
    names = [n for n in (a, b) if n]
    if not names:
        return None
    return min(names, key=lambda n: (n.casefold(), n))


def merge_participant(first: Participant, second: Participant) -> Participant:
    """
    Reconcile two observations of the same player in the same week.

    Args:
        first: One observation
        second: The other observation

    Returns:
        Participant with the higher score as base and the higher deck count
    """
    first_key, second_key = _score_key(first), _score_key(second)
    if first_key > second_key:
        winner, loser = first, second
        name = winner.name or loser.name
    elif second_key > first_key:
        winner, loser = second, first
        name = winner.name or loser.name
    else:
        winner, loser = first, second
        name = _pick_name(first.name, second.name)

    return Participant(
        tag=winner.tag or loser.tag,
        name=name,
        war_points=winner.war_points,
        decks_used=_max_optional(winner.decks_used, loser.decks_used),
    )


def _sort_participants(participants: Iterable[Participant]) -> List[Participant]:
    return sorted(
        participants,
        key=lambda p: (
            p.war_points is None,
            -(p.war_points or 0),
            name_key(p.name),
            p.tag or "",
        ),
    )


def merge_participant_lists(*lists: Sequence[Participant]) -> List[Participant]:
    """
    Fold participant lists into one deduplicated list.

    Duplicates inside a single list are folded as well. Tagged entries are
    resolved first; a tagless entry then joins the tagged player with the same
    name only when exactly one tag carries that name. Tagless entries whose
    name belongs to several tags, or to none, are folded by name and kept
    apart. The output is sorted by score (descending, nulls last) and then by
    name so that the result does not depend on input order.
    """
    by_tag: Dict[str, Participant] = {}
    tags_by_name: Dict[str, Set[str]] = {}
    tagless: Dict[str, Participant] = {}
    nameless: List[Participant] = []

    for participants in lists:
        for participant in participants:
            key = name_key(participant.name)
            if participant.tag:
                current = by_tag.get(participant.tag)
                by_tag[participant.tag] = participant if current is None else merge_participant(current, participant)
                if key:
                    tags_by_name.setdefault(key, set()).add(participant.tag)
            elif key:
                current = tagless.get(key)
                tagless[key] = participant if current is None else merge_participant(current, participant)
            else:
                nameless.append(participant)

    merged = list(nameless)
    ambiguous = 0
    for key, participant in tagless.items():
        tags = tags_by_name.get(key, set())
        if len(tags) == 1:
            tag = next(iter(tags))
            by_tag[tag] = merge_participant(by_tag[tag], participant)
        else:
            ambiguous += len(tags) > 1
            merged.append(participant)
    if ambiguous:
        logger.debug(f"Kept {ambiguous} tagless participant(s) apart: name shared by several tags")

    merged.extend(by_tag.values())
    return _sort_participants(merged)


def prefer_label(a: Optional[str], b: Optional[str]) -> Optional[str]:
    """Keep the longer (more descriptive) label; ties break lexicographically."""
    labels = [label for label in (a, b) if label]
    if not labels:
        return None
    return max(labels, key=lambda label: (len(label), label))


def merge_records(first: WeeklyWarRecord, second: WeeklyWarRecord) -> WeeklyWarRecord:
    """Merge two records that describe the same week."""
    return WeeklyWarRecord(
        week_key=first.week_key,
        label=prefer_label(first.label, second.label),
        participants=tuple(merge_participant_lists(first.participants, second.participants)),
    )


def collapse_records(records: Iterable[WeeklyWarRecord],
                     key_func: Callable[[WeeklyWarRecord], object]) -> List[WeeklyWarRecord]:
    """
    Fold records sharing key_func(record) into one record each.

    Args:
        records: Weekly records, possibly with duplicates
        key_func: Grouping key (the week key itself, or its calendar date)

    Returns:
        One record per key, sorted most recent first
    """
    grouped: Dict[object, WeeklyWarRecord] = {}
    folded = 0
    for record in records:
        key = key_func(record)
        if key in grouped:
            grouped[key] = merge_records(grouped[key], record)
            folded += 1
        else:
            grouped[key] = WeeklyWarRecord(
                week_key=record.week_key,
                label=record.label,
                participants=tuple(merge_participant_lists(record.participants)),
            )
    if folded:
        logger.debug(f"Folded {folded} duplicate weekly record(s)")
    return sorted(grouped.values(), key=lambda r: r.week_key, reverse=True)


def trim_records(records: Sequence[WeeklyWarRecord], max_weeks: int) -> List[WeeklyWarRecord]:
    """Keep the most recent max_weeks records (input must be sorted newest first)."""
    if len(records) > max_weeks:
        logger.info(f"📚 Trimmed war history to the last {max_weeks} weeks "
                    f"({len(records) - max_weeks} evicted)")
    return list(records[:max_weeks])
