#!/usr/bin/env python3
"""
Leaderboard Schema Definition

Pandera schema for the leaderboard frame handed to the presentation layer
and the CSV export. Week score columns are named by their MM/DD/YYYY label
and are not declared individually; a dataframe-level check keeps their cells
to points, null or "N/A".
"""

import logging
import numbers
import re

import pandas as pd
import pandera as pa
from pandera.typing import DataFrame, Series

from warstats.models import ROLES

logger = logging.getLogger(__name__)

WEEK_LABEL_PATTERN = re.compile(r"^\d{2}/\d{2}/\d{4}$")


def _valid_score_cell(value) -> bool:
    if isinstance(value, str):
        return value == "N/A"
    if isinstance(value, bool):
        return False
    if value is None or value is pd.NA:
        return True
    if isinstance(value, float):
        return pd.isna(value) or (value.is_integer() and value >= 0)
    if isinstance(value, numbers.Integral):
        return value >= 0
    return False


class LeaderboardSchema(pa.DataFrameModel):
    """
    Pandera schema for the derived leaderboard.

    Fields:
    - tag: Player tag ("#" + upper-case alphanumerics)
    - name: Display name
    - role: member / elder / coleader / leader
    - current_rank: Competition rank in the most recent week (nullable)
    - promotion_ready / joined_recently / demotion_risk: policy flags
    - decks_used: Decks used in the most recent week (nullable)
    - is_current: False for former members kept for tenure reporting
    """

    tag: Series[str] = pa.Field(
        description="Player tag",
        regex=r"^#[0-9A-Z]+$"
    )

    name: Series[str] = pa.Field(
        description="Player display name"
    )

    role: Series[str] = pa.Field(
        description="Clan role",
        isin=list(ROLES)
    )

    current_rank: Series[pd.Int64Dtype] = pa.Field(
        description="Standard competition rank for the most recent week",
        nullable=True,
        ge=1
    )

    promotion_ready: Series[bool] = pa.Field(description="Promotion streak satisfied")
    joined_recently: Series[bool] = pa.Field(description="First seen within the trailing window")
    demotion_risk: Series[bool] = pa.Field(description="Below threshold inside the rollover window")

    decks_used: Series[pd.Int64Dtype] = pa.Field(
        description="Decks used in the most recent week",
        nullable=True,
        ge=0
    )

    is_current: Series[bool] = pa.Field(description="Present in the live roster")

    class Config:
        """Pandera configuration."""
        coerce = True
        strict = False  # week columns vary with the data

    @pa.dataframe_check
    def week_cells_are_scores(cls, df: DataFrame) -> Series[bool]:
        """Every week column cell is a non-negative int, null or "N/A"."""
        week_columns = [c for c in df.columns if WEEK_LABEL_PATTERN.match(str(c))]
        valid = pd.Series(True, index=df.index)
        for column in week_columns:
            valid &= df[column].map(_valid_score_cell).astype(bool)
        return valid


def validate_dataframe(df, schema=LeaderboardSchema):
    """
    Validate a DataFrame against the LeaderboardSchema.

    Args:
        df: pandas DataFrame to validate
        schema: Pandera schema class (default: LeaderboardSchema)

    Returns:
        Validated DataFrame

    Raises:
        pa.errors.SchemaError: If validation fails
    """
    try:
        return schema.validate(df)
    except (pa.errors.SchemaError, pa.errors.SchemaErrors) as e:
        logger.error(f"Schema validation failed: {e}")
        logger.error(f"DataFrame shape: {df.shape}, columns: {list(df.columns)}")
        if getattr(e, 'failure_cases', None) is not None:
            logger.error(f"Failure cases:\n{e.failure_cases}")
        raise
