"""Loading and cleaning of the per-tract demographic survey table."""

from pathlib import Path

import polars as pl

from census_clusters.config import (
    COUNTY,
    COUNTY_KEY,
    ERROR_COLUMNS,
    EXCLUDED_TERRITORIES,
    IDENTIFIERS,
    PERCENT_COLUMNS,
    STATE,
    TOTAL_POP,
    WEIGHTED_COLUMNS,
)
from census_clusters.impute import DEFAULT_RESOLVERS, GroupMeanResolver, impute_missing, null_counts


def load_tracts(path: Path) -> pl.DataFrame:
    """Read the raw tract CSV. Empty cells become nulls."""
    return pl.read_csv(path, null_values=["", "NA"], infer_schema_length=10000)


def numeric_columns(df: pl.DataFrame) -> list[str]:
    """Numeric columns that are not identifiers, in table order."""
    return [
        c for c, dtype in df.schema.items()
        if c not in IDENTIFIERS and dtype.is_numeric()
    ]


def drop_error_columns(df: pl.DataFrame) -> pl.DataFrame:
    """Drop margin-of-error columns (named ones plus anything ending in 'Err')."""
    drop = [c for c in df.columns if c in ERROR_COLUMNS or c.endswith("Err")]
    return df.drop(drop)


def add_county_key(df: pl.DataFrame) -> pl.DataFrame:
    """County names repeat across states, so key counties as 'State|County'.

    The key is null when either part is null.
    """
    return df.with_columns(
        pl.concat_str(
            [pl.col(STATE), pl.col(COUNTY)], separator="|", ignore_nulls=False
        ).alias(COUNTY_KEY)
    )


def exclude_tracts(df: pl.DataFrame) -> tuple[pl.DataFrame, dict[str, int]]:
    """Drop excluded territories and tracts with no usable population.

    A tract whose TotalPop is missing cannot be weighted or converted to
    counts, so it is dropped too, under its own reason. Returns (kept, counts
    of dropped rows per reason).
    """
    in_territory = pl.col(STATE).is_in(list(EXCLUDED_TERRITORIES))
    territory_rows = df.filter(in_territory).height
    df = df.filter(~in_territory)

    missing_rows = df.filter(pl.col(TOTAL_POP).is_null()).height
    df = df.filter(pl.col(TOTAL_POP).is_not_null())

    empty_rows = df.filter(pl.col(TOTAL_POP) == 0).height
    df = df.filter(pl.col(TOTAL_POP) != 0)

    return df, {
        "excluded_territory": territory_rows,
        "zero_population": empty_rows,
        "missing_population": missing_rows,
    }


def check_percent_ranges(df: pl.DataFrame) -> None:
    """Raise if any percentage field is outside [0, 100]."""
    present = [c for c in PERCENT_COLUMNS if c in df.columns]
    bad = {
        c: n
        for c, n in df.select(
            ((pl.col(c) < 0) | (pl.col(c) > 100)).sum() for c in present
        ).row(0, named=True).items()
        if n
    }
    if bad:
        msg = f"Percentage fields outside [0, 100]: {bad}"
        raise ValueError(msg)


def percent_to_counts(df: pl.DataFrame) -> pl.DataFrame:
    """Replace each percentage field with a whole-person count."""
    present = [c for c in PERCENT_COLUMNS if c in df.columns]
    return df.with_columns(
        (pl.col(c) / 100 * pl.col(TOTAL_POP)).round(0).cast(pl.Int64) for c in present
    )


def weight_by_population(df: pl.DataFrame) -> pl.DataFrame:
    """Multiply per-person averages by population.

    Dividing the aggregated sum by aggregated population then recovers the
    true regional average instead of an average of tract averages.
    """
    present = [c for c in WEIGHTED_COLUMNS if c in df.columns]
    return df.with_columns(pl.col(c) * pl.col(TOTAL_POP) for c in present)


def clean_tracts(
    df: pl.DataFrame,
    resolvers: tuple[GroupMeanResolver, ...] = DEFAULT_RESOLVERS,
) -> tuple[pl.DataFrame, dict]:
    """Run the full tract cleaning sequence.

    Order matters: imputation works on percentages, and percentages must be
    converted to counts before anything is summed.

    Returns (clean_tracts, manifest).
    """
    manifest: dict = {"rows_before": df.height}

    before = set(df.columns)
    df = drop_error_columns(df)
    manifest["columns_dropped"] = sorted(before - set(df.columns))
    df = add_county_key(df)
    df, dropped = exclude_tracts(df)
    manifest["rows_dropped"] = dropped

    columns = [c for c in numeric_columns(df) if c != TOTAL_POP]
    manifest["missing_before_imputation"] = null_counts(df, columns)
    df, filled = impute_missing(df, columns, resolvers)
    manifest["imputed"] = filled

    check_percent_ranges(df)
    df = percent_to_counts(df)
    df = weight_by_population(df)

    manifest["rows_after"] = df.height
    manifest["counties"] = df[COUNTY_KEY].n_unique()
    manifest["states"] = df[STATE].n_unique()

    print(f"  Tracts: {manifest['rows_before']:,} -> {df.height:,} "
          f"(territory: {dropped['excluded_territory']}, "
          f"zero population: {dropped['zero_population']}, "
          f"missing population: {dropped['missing_population']})")
    for label, counts in filled.items():
        print(f"  Imputed by {label}: {sum(counts.values())} values in {len(counts)} columns")
    return df, manifest
