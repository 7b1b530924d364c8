"""State-level vote shares from county presidential returns, joined to demographics."""

import warnings
from pathlib import Path

import polars as pl

from census_clusters.config import (
    A_LEADS,
    CANDIDATE_A,
    CANDIDATE_B,
    ELECTION_COLUMNS,
    ELECTION_YEAR,
    SHARE_A,
    SHARE_B,
    STATE,
)
from census_clusters.errors import JoinMismatchError


def load_elections(path: Path) -> pl.DataFrame:
    """Read the election CSV, keeping only the columns the merger uses."""
    df = pl.read_csv(path, null_values=["", "NA"], infer_schema_length=10000)
    return df.select(list(ELECTION_COLUMNS.values()))


def state_vote_shares(
    df: pl.DataFrame,
    year: int = ELECTION_YEAR,
    candidate_a: str = CANDIDATE_A,
    candidate_b: str = CANDIDATE_B,
) -> pl.DataFrame:
    """Each state's vote share for two candidates in one election year.

    Rows for the same candidate (one per county and party line) are summed
    before dividing by the state's total vote across all candidates.

    Returns DataFrame with: State, share_a, share_b, a_leads.
    """
    cols = ELECTION_COLUMNS
    votes = (
        df.filter(pl.col(cols["year"]) == year)
        .drop_nulls(cols["votes"])
        .group_by(cols["state"], cols["candidate"])
        .agg(pl.col(cols["votes"]).sum())
    )
    if votes.height == 0:
        msg = f"No election rows for year {year}"
        raise ValueError(msg)

    votes = votes.with_columns(
        (pl.col(cols["votes"]) / pl.col(cols["votes"]).sum().over(cols["state"]))
        .alias("share")
    )

    def candidate_share(candidate: str, alias: str) -> pl.DataFrame:
        return votes.filter(pl.col(cols["candidate"]) == candidate).select(
            pl.col(cols["state"]).alias(STATE), pl.col("share").alias(alias)
        )

    states = votes.select(pl.col(cols["state"]).alias(STATE)).unique()
    shares = (
        states.join(candidate_share(candidate_a, SHARE_A), on=STATE, how="left")
        .join(candidate_share(candidate_b, SHARE_B), on=STATE, how="left")
        .with_columns(pl.col(SHARE_A, SHARE_B).fill_null(0.0))
        .with_columns((pl.col(SHARE_A) > pl.col(SHARE_B)).alias(A_LEADS))
        .sort(STATE)
    )
    return shares


def merge_elections(states: pl.DataFrame, shares: pl.DataFrame) -> pl.DataFrame:
    """Inner-join state demographics and vote shares on state name.

    States present on only one side are dropped; a JoinMismatchError warning
    lists them.
    """
    demo_keys = set(states[STATE].to_list())
    vote_keys = set(shares[STATE].to_list())
    demographic_only = sorted(demo_keys - vote_keys)
    election_only = sorted(vote_keys - demo_keys)
    if demographic_only or election_only:
        print(f"  Join mismatch: demographics only {demographic_only}, "
              f"elections only {election_only}")
        warnings.warn(JoinMismatchError(demographic_only, election_only), stacklevel=2)

    merged = states.join(shares, on=STATE, how="inner").sort(STATE)
    print(f"  Merged: {merged.height} states, candidate A leads in {merged[A_LEADS].sum()}")
    return merged
