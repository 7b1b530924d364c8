"""Exception and warning types raised by the pipeline stages."""


class MissingDataError(ValueError):
    """A field is still missing after every imputation fallback."""

    def __init__(self, columns: dict[str, int]):
        self.columns = columns
        detail = ", ".join(f"{c} ({n})" for c, n in sorted(columns.items()))
        super().__init__(f"Values could not be imputed at any fallback level: {detail}")


class DegenerateCorrelationError(ValueError):
    """The correlation matrix of the feature table is undefined."""


class JoinMismatchError(UserWarning):
    """State keys present in only one of the demographic and election tables.

    Emitted with ``warnings.warn``; the unmatched rows are dropped.
    """

    def __init__(self, demographic_only: list[str], election_only: list[str]):
        self.demographic_only = demographic_only
        self.election_only = election_only
        super().__init__(
            f"{len(demographic_only)} state(s) without election results "
            f"{demographic_only}, {len(election_only)} election state(s) without "
            f"demographics {election_only}"
        )
