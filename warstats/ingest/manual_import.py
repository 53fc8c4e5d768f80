#!/usr/bin/env python3
"""
Manual War Import

Loads hand-transcribed war results from a CSV export of the in-game clan
screen. The sheet holds two weeks side by side:

    ,1/8 through 1/11,,,1/1 through 1/4,,
    Name,Rank (Season 127 Week 2),Points,Decks,Rank (Season 127 Week 1),Points,Decks
    GladiatorMax,1,2900,16,3,2500,14
    ...

Blank and "n/a" cells mean no data. Players are identified by name only.
Both weeks go through the War-Log Merger like any other source.
"""

import logging
import re
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import pandas as pd

from warstats.models import RawWarRecord

logger = logging.getLogger(__name__)

MANUAL_COLUMNS = 7
# (rank, points, decks) column positions of the current and the prior week
WEEK_COLUMN_GROUPS = ((1, 2, 3), (4, 5, 6))
DATE_RANGE_PATTERN = re.compile(r"(\d{1,2})/(\d{1,2})\s+through\s+(\d{1,2})/(\d{1,2})", re.IGNORECASE)


class ManualImportError(ValueError):
    """Raised when a manual war sheet cannot be understood."""


def parse_value(cell: Any) -> Optional[Union[int, str]]:
    """Numeric cells become ints; blank and n/a cells become None."""
    text = str(cell or "").strip()
    if not text or text.lower() == "n/a":
        return None
    try:
        return int(float(text.replace(",", "")))
    except ValueError:
        return text


def parse_date_range(text: str, year: int) -> Tuple[date, date]:
    """
    Parse "1/8 through 1/11" into start and end dates.

    Raises:
        ManualImportError: If the text has no date range
    """
    match = DATE_RANGE_PATTERN.search(str(text or ""))
    if not match:
        raise ManualImportError(f"Expected a date range like '1/8 through 1/11', got {text!r}")
    start_month, start_day, end_month, end_day = (int(g) for g in match.groups())
    try:
        start = date(year, start_month, start_day)
        end = date(year, end_month, end_day)
    except ValueError as e:
        raise ManualImportError(f"Invalid date in range {text!r}: {e}") from e
    if end < start:
        # Range crosses new year
        start = date(year - 1, start_month, start_day)
    return start, end


def _week_label(header: str) -> str:
    return str(header or "").replace("Rank (", "").replace(")", "").strip()


def load_manual_sheet(csv_path: Union[str, Path]) -> pd.DataFrame:
    """Read the sheet as raw strings, padded to the expected column count."""
    df = pd.read_csv(
        csv_path,
        header=None,
        names=list(range(MANUAL_COLUMNS)),
        index_col=False,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
    )
    return df.fillna("")


def parse_manual_sheet(df: pd.DataFrame, year: int) -> List[RawWarRecord]:
    """
    Turn a loaded sheet into one raw record per week column group.

    Args:
        df: Sheet from load_manual_sheet
        year: Calendar year of the date ranges

    Returns:
        Raw records (current week first)
    """
    if len(df) < 3:
        raise ManualImportError("Manual sheet needs two header lines and at least one player row")

    date_row, header_row = df.iloc[0], df.iloc[1]
    records = []
    for rank_col, points_col, decks_col in WEEK_COLUMN_GROUPS:
        start, end = parse_date_range(date_row[rank_col], year)
        label = (f"{_week_label(header_row[rank_col])} "
                 f"({start.month}/{start.day}/{start.year}-{end.month}/{end.day}/{end.year})")

        participants: List[Dict[str, Any]] = []
        for _, row in df.iloc[2:].iterrows():
            name = str(row[0]).strip()
            if not name:
                continue
            rank = parse_value(row[rank_col])
            points = parse_value(row[points_col])
            decks = parse_value(row[decks_col])
            if rank is None and points is None and decks is None:
                continue
            participants.append({"name": name, "warPoints": points, "decksUsed": decks})

        records.append(RawWarRecord(
            source="manual",
            participants=tuple(participants),
            end_date=end,
            created_date=start,
            label=label,
        ))
        logger.info(f"📝 {label}: {len(participants)} participant(s)")
    return records


def import_manual_war(csv_path: Union[str, Path], merger, year: Optional[int] = None, now=None):
    """
    Import a manual war sheet into the weekly ledger.

    Args:
        csv_path: Path to the CSV sheet
        merger: WarLogMerger that owns the weekly ledger
        year: Year of the sheet's date ranges (defaults to the current year)
        now: Evaluation instant passed on to the merger

    Returns:
        The merged ledger, most recent first
    """
    path = Path(csv_path)
    if not path.exists():
        raise FileNotFoundError(f"Manual war sheet not found: {path}")

    year = year or date.today().year
    records = parse_manual_sheet(load_manual_sheet(path), year)
    merged = merger.merge(records, now)
    logger.info(f"✅ Manual war history imported from {path}")
    return merged
