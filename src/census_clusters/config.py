"""Configuration constants for the state demographic clustering pipeline."""

from pathlib import Path

DATA_DIR = Path("data")
TRACTS_FILE = DATA_DIR / "acs2015_census_tract_data.csv"
ELECTIONS_FILE = DATA_DIR / "countypres_2000-2016.csv"
PROCESSED_DIR = DATA_DIR / "processed"

# Tract table identifiers
TRACT_ID = "CensusTract"
STATE = "State"
COUNTY = "County"
COUNTY_KEY = "county_key"
TOTAL_POP = "TotalPop"
IDENTIFIERS = (TRACT_ID, STATE, COUNTY, COUNTY_KEY)

EXCLUDED_TERRITORIES = ("Puerto Rico",)

# Margin-of-error columns carry no signal beyond their estimates
ERROR_COLUMNS = ("IncomeErr", "IncomePerCapErr")

# Fields published as a percentage of the tract population
PERCENT_COLUMNS = (
    "Hispanic", "White", "Black", "Native", "Asian", "Pacific",
    "Poverty", "ChildPoverty",
    "Professional", "Service", "Office", "Construction", "Production",
    "Drive", "Carpool", "Transit", "Walk", "OtherTransp", "WorkAtHome",
    "PrivateWork", "PublicWork", "SelfEmployed", "FamilyWork",
    "Unemployment",
)

# Per-person averages; multiplied by TotalPop so sums stay additive
WEIGHTED_COLUMNS = ("Income", "IncomePerCap", "MeanCommute")

# Election table (county-level presidential returns)
ELECTION_YEAR = 2016
CANDIDATE_A = "Donald Trump"
CANDIDATE_B = "Hillary Clinton"
ELECTION_COLUMNS = {
    "year": "year",
    "state": "state",
    "candidate": "candidate",
    "votes": "candidatevotes",
}
SHARE_A = "share_a"
SHARE_B = "share_b"
A_LEADS = "a_leads"
LABEL_COLUMNS = (SHARE_A, SHARE_B, A_LEADS)

# Feature pruning
CORRELATION_THRESHOLD = 0.9

# Component selection: keep leading PCs explaining at least VARIANCE_FLOOR each.
# Setting CUMULATIVE_TARGET switches to "smallest prefix reaching the target".
VARIANCE_FLOOR = 0.05
CUMULATIVE_TARGET: float | None = None

# Clustering
LINKAGE_METHOD = "complete"
LINKAGE_METHODS = ("complete", "single", "average", "centroid")
MONOTONIC_METHODS = ("complete", "single", "average")
