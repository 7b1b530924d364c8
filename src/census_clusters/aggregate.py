"""Roll cleaned tract counts up to county or state level.

Sum first, normalize second: every field is additive at tract level (counts,
population-weighted income and commute), so summing is exact. Dividing the
sums by total population afterwards yields proportions and per-capita
averages for the region.
"""

import polars as pl

from census_clusters.config import COUNTY, COUNTY_KEY, STATE, TOTAL_POP
from census_clusters.tracts import numeric_columns

LEVEL_KEYS = {
    "county": [STATE, COUNTY, COUNTY_KEY],
    "state": [STATE],
}


def sum_by(df: pl.DataFrame, keys: list[str]) -> pl.DataFrame:
    """Sum every numeric non-identifier column within each key group."""
    columns = numeric_columns(df)
    return df.group_by(keys).agg(pl.col(columns).sum()).sort(keys)


def normalize_by_population(df: pl.DataFrame) -> pl.DataFrame:
    """Divide every summed field except total population by total population."""
    columns = [c for c in numeric_columns(df) if c != TOTAL_POP]
    return df.with_columns(pl.col(c) / pl.col(TOTAL_POP) for c in columns)


def aggregate(df: pl.DataFrame, level: str) -> pl.DataFrame:
    """Collapse clean tracts to ``level`` ("county" or "state")."""
    if level not in LEVEL_KEYS:
        msg = f"Unknown aggregation level {level!r}; expected one of {sorted(LEVEL_KEYS)}"
        raise ValueError(msg)
    return normalize_by_population(sum_by(df, LEVEL_KEYS[level]))
