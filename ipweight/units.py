"""
Unit records and their conversion to the tabular form the estimators use.

The estimators work on a ``pandas.DataFrame`` with one row per unit. When
data arrives as a mapping of unit ID to record, build the frame with
``units_to_frame``::

    units = {
        "a": Unit(treatment=True,  outcome=3100.0, covariates=(34.0, 12.0)),
        "b": Unit(treatment=False, outcome=2950.0, covariates=(29.0, 10.0)),
    }
    df = units_to_frame(units, covariate_names=["age", "schooling"])
"""
from __future__ import annotations

from collections.abc import Hashable, Mapping, Sequence
from dataclasses import dataclass

import pandas as pd


@dataclass(frozen=True)
class Unit:
    """One observational unit: treatment status, outcome and covariates."""

    treatment: bool
    outcome: float
    covariates: tuple[float, ...] = ()

    def __post_init__(self) -> None:
        if self.treatment is None:
            raise ValueError("Unit treatment must be True or False, not missing.")
        object.__setattr__(self, "treatment", bool(self.treatment))
        object.__setattr__(self, "outcome", float(self.outcome))
        object.__setattr__(self, "covariates", tuple(float(c) for c in self.covariates))


def units_to_frame(
    units: Mapping[Hashable, Unit],
    covariate_names: Sequence[str] | None = None,
    treatment: str = "treatment",
    outcome: str = "outcome",
) -> pd.DataFrame:
    """
    Convert a mapping of unit ID to ``Unit`` into a dataframe indexed by ID.

    Parameters
    ----------
    units : Mapping
        Unit ID to ``Unit``. Every unit must carry the same number of
        covariates.
    covariate_names : sequence of str, optional
        Column names for the covariates, in tuple order. Defaults to
        ``x0, x1, ...``.
    treatment, outcome : str
        Column names for the treatment indicator and the outcome.

    Raises
    ------
    ``ValueError``
        If covariate counts differ between units, the number of names does
        not match, or a name is duplicated or collides with the treatment or
        outcome column.
    """
    widths = {len(u.covariates) for u in units.values()}
    if len(widths) > 1:
        raise ValueError(
            f"All units must have the same number of covariates. "
            f"Found lengths: {sorted(widths)}"
        )
    width = widths.pop() if widths else len(covariate_names or ())

    if covariate_names is None:
        names = [f"x{i}" for i in range(width)]
    else:
        names = list(covariate_names)
        if len(names) != width:
            raise ValueError(
                f"Got {len(names)} covariate name(s) for {width} covariate(s) per unit."
            )

    columns = [treatment, outcome, *names]
    if len(set(columns)) != len(columns):
        raise ValueError(
            f"Column names must be unique; got treatment={treatment!r}, "
            f"outcome={outcome!r}, covariates={names}."
        )

    rows = [(u.treatment, u.outcome, *u.covariates) for u in units.values()]
    frame = pd.DataFrame(rows, index=pd.Index(list(units.keys()), name="unit"), columns=columns)
    return frame.astype({treatment: bool, outcome: float, **{n: float for n in names}})
