"""Shared synthetic tract and election tables."""

import numpy as np
import polars as pl
import pytest

STATES = ["Alpha", "Bravo", "Charlie", "Delta", "Echo", "Foxtrot", "Golf"]


def make_tracts(states: list[str] = STATES, tracts_per_state: int = 3, seed: int = 0):
    """Random but realistic tract table, two counties per state."""
    rng = np.random.default_rng(seed)
    rows = []
    tract_id = 1000
    for state in states:
        for t in range(tracts_per_state):
            pop = int(rng.integers(500, 5000))
            men = int(pop * rng.uniform(0.45, 0.55))
            hispanic = float(rng.uniform(0, 40))
            rows.append({
                "CensusTract": tract_id,
                "State": state,
                "County": f"County {t % 2}",
                "TotalPop": pop,
                "Men": men,
                "Women": pop - men,
                "Hispanic": hispanic,
                "White": float(rng.uniform(0, 100 - hispanic)),
                "Black": float(rng.uniform(0, 20)),
                "Poverty": float(rng.uniform(5, 35)),
                "Unemployment": float(rng.uniform(2, 15)),
                "Transit": float(rng.uniform(0, 30)),
                "Income": float(rng.uniform(30000, 90000)),
                "IncomeErr": float(rng.uniform(1000, 5000)),
                "IncomePerCap": float(rng.uniform(15000, 50000)),
                "IncomePerCapErr": float(rng.uniform(500, 3000)),
                "MeanCommute": float(rng.uniform(15, 40)),
            })
            tract_id += 1
    return pl.DataFrame(rows)


def make_elections(states: list[str] = STATES, year: int = 2016):
    """County returns where candidate A leads in every other state."""
    rows = []
    for i, state in enumerate(states):
        a, b = (600, 400) if i % 2 == 0 else (350, 650)
        for county in ("County 0", "County 1"):
            rows += [
                {"year": year, "state": state, "candidate": "Donald Trump",
                 "candidatevotes": a},
                {"year": year, "state": state, "candidate": "Hillary Clinton",
                 "candidatevotes": b},
                {"year": year, "state": state, "candidate": "Other",
                 "candidatevotes": 50},
            ]
        rows.append({"year": year - 4, "state": state, "candidate": "Donald Trump",
                     "candidatevotes": 1})
    return pl.DataFrame(rows)


@pytest.fixture
def raw_tracts() -> pl.DataFrame:
    return make_tracts()


@pytest.fixture
def raw_elections() -> pl.DataFrame:
    return make_elections()
