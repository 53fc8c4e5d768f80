#!/usr/bin/env python3
"""
Participant Record Normalizer

Maps heterogeneous upstream participant records onto the canonical
Participant shape. The upstream feed names the same number differently
depending on the endpoint (warPoints in the historical log, fame in the live
river race, sometimes only battle counts), so each canonical field is resolved
through an ordered list of accessor strategies: the first one that yields a
value wins.

Nothing here raises on missing or malformed fields. A record that cannot be
resolved falls back to the defaults instead of aborting the pipeline.
"""

import logging
import math
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from warstats.models import Participant

logger = logging.getLogger(__name__)

# Marker returned by an accessor that has nothing to offer
MISSING = object()

Accessor = Callable[[Dict[str, Any]], Any]


def coerce_count(value: Any) -> Any:
    """
    Coerce an upstream numeric value to a non-negative int.

    Returns MISSING for values that are not numbers (so the next strategy is
    tried) rather than raising.
    """
    if isinstance(value, bool) or value is None:
        return MISSING
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return MISSING
        return max(int(value), 0)
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        if re.fullmatch(r"-?\d+(\.\d+)?", text):
            return max(int(float(text)), 0)
    return MISSING


def field_value(name: str) -> Accessor:
    """Accessor for a plain numeric field; a null value counts as absent."""
    def accessor(record: Dict[str, Any]) -> Any:
        return coerce_count(record.get(name))
    accessor.__name__ = f"field_value({name})"
    return accessor


def nullable_field_value(name: str) -> Accessor:
    """
    Accessor for a field whose explicit null is meaningful.

    A present-but-null value resolves to None ("no data reported"); an absent
    key or an unparsable value falls through to the next strategy.
    """
    def accessor(record: Dict[str, Any]) -> Any:
        if name not in record:
            return MISSING
        value = record[name]
        if value is None:
            return None
        if isinstance(value, str) and value.strip().lower() in ("n/a", "na", "null", ""):
            return None
        return coerce_count(value)
    accessor.__name__ = f"nullable_field_value({name})"
    return accessor


def constant(value: Any) -> Accessor:
    def accessor(record: Dict[str, Any]) -> Any:
        return value
    accessor.__name__ = f"constant({value!r})"
    return accessor


WAR_POINTS_STRATEGIES: Tuple[Accessor, ...] = (
    nullable_field_value("warPoints"),
    field_value("fame"),
    field_value("battlesPlayed"),
    field_value("wins"),
    constant(0),
)

DECKS_USED_STRATEGIES: Tuple[Accessor, ...] = (
    field_value("decksUsed"),
    field_value("battlesPlayed"),
    constant(0),
)


def resolve_field(record: Dict[str, Any], strategies: Sequence[Accessor]) -> Any:
    """
    Evaluate accessor strategies in order, first match wins.

    Args:
        record: Raw upstream record
        strategies: Ordered accessors

    Returns:
        The first value that is not MISSING, or None if every strategy misses
    """
    for strategy in strategies:
        try:
            value = strategy(record)
        except (AttributeError, TypeError, ValueError) as e:
            logger.debug(f"Accessor {getattr(strategy, '__name__', strategy)} failed: {e}")
            continue
        if value is not MISSING:
            return value
    return None


def normalize_tag(tag: Any) -> Optional[str]:
    """Canonical player tag: upper case with a single leading '#'."""
    if not isinstance(tag, str):
        return None
    cleaned = re.sub(r"[^A-Za-z0-9]", "", tag.replace("%23", ""))
    return f"#{cleaned.upper()}" if cleaned else None


def normalize_player_name(name: Any) -> Optional[str]:
    if not isinstance(name, str):
        return None
    cleaned = re.sub(r"\s+", " ", name.replace("\xa0", " ")).strip()
    return cleaned or None


def name_key(name: Optional[str]) -> str:
    """Case-insensitive key used for name-based participant matching."""
    return (name or "").casefold()


def normalize_participant(record: Dict[str, Any]) -> Optional[Participant]:
    """
    Produce a canonical participant from one raw upstream record.

    Args:
        record: Raw participant dictionary

    Returns:
        Participant, or None when the record carries neither tag nor name
    """
    if not isinstance(record, dict):
        logger.debug(f"Skipping non-mapping participant record: {record!r}")
        return None

    tag = normalize_tag(record.get("tag"))
    name = normalize_player_name(record.get("name"))
    if not tag and not name:
        logger.debug(f"Skipping participant without tag or name: {record!r}")
        return None

    return Participant(
        tag=tag,
        name=name,
        war_points=resolve_field(record, WAR_POINTS_STRATEGIES),
        decks_used=resolve_field(record, DECKS_USED_STRATEGIES),
    )


def normalize_participants(records: Iterable[Dict[str, Any]]) -> List[Participant]:
    """Normalize a participant list, dropping unidentifiable entries."""
    participants = []
    dropped = 0
    for record in records or ():
        participant = normalize_participant(record)
        if participant is None:
            dropped += 1
        else:
            participants.append(participant)
    if dropped:
        logger.warning(f"⚠️ Dropped {dropped} participant record(s) without tag or name")
    return participants
