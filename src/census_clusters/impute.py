"""Hierarchical mean imputation for tract-level fields.

Missing values are filled by an ordered list of resolvers. Each resolver only
touches values the previous ones left missing:

  1. mean of the same field across tracts in the same county (State|County key)
  2. mean of the same field across tracts in the same state

Anything still missing after the last resolver raises MissingDataError.
"""

from dataclasses import dataclass

import polars as pl

from census_clusters.config import COUNTY_KEY, STATE
from census_clusters.errors import MissingDataError


@dataclass(frozen=True)
class GroupMeanResolver:
    """Fill nulls with the mean of the column over rows sharing ``key``.

    Rows whose key is null belong to no group and are left for the next resolver.
    """

    key: str
    label: str

    def resolve(self, df: pl.DataFrame, columns: list[str]) -> pl.DataFrame:
        keyed = pl.col(self.key).is_not_null()
        return df.with_columns(
            pl.col(c).fill_null(
                pl.when(keyed).then(pl.col(c).mean().over(self.key))
            )
            for c in columns
        )


DEFAULT_RESOLVERS = (
    GroupMeanResolver(key=COUNTY_KEY, label="county mean"),
    GroupMeanResolver(key=STATE, label="state mean"),
)


def null_counts(df: pl.DataFrame, columns: list[str]) -> dict[str, int]:
    """Per-column null counts, only for columns that have any."""
    counts = df.select(pl.col(columns).null_count()).row(0, named=True)
    return {c: n for c, n in counts.items() if n > 0}


def impute_missing(
    df: pl.DataFrame,
    columns: list[str],
    resolvers: tuple[GroupMeanResolver, ...] = DEFAULT_RESOLVERS,
) -> tuple[pl.DataFrame, dict[str, dict[str, int]]]:
    """Apply resolvers in order until no value in ``columns`` is missing.

    Columns come back as Float64 and float NaN is treated as missing. Returns
    the filled frame and, per resolver label, how many values it filled in
    each column.
    """
    df = df.with_columns(pl.col(columns).cast(pl.Float64).fill_nan(None))

    filled: dict[str, dict[str, int]] = {}
    remaining = null_counts(df, columns)
    for resolver in resolvers:
        if not remaining:
            break
        df = resolver.resolve(df, list(remaining))
        after = null_counts(df, list(remaining))
        filled[resolver.label] = {
            c: n - after.get(c, 0) for c, n in remaining.items() if n - after.get(c, 0) > 0
        }
        remaining = after

    if remaining:
        raise MissingDataError(remaining)
    return df, filled
