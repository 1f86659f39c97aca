"""Input checks shared by the estimators and diagnostics."""
from __future__ import annotations

import numpy as np
import pandas as pd


def treatment_indicator(data: pd.DataFrame, treatment: str) -> np.ndarray:
    """Return the treatment column as a boolean array, rejecting gaps and non-binary values."""
    if treatment not in data.columns:
        raise ValueError(f"Treatment column '{treatment}' not found in dataframe.")

    column = data[treatment]
    n_missing = int(column.isna().sum())
    if n_missing:
        raise ValueError(
            f"Treatment '{treatment}' has {n_missing} missing value(s). "
            f"Every unit needs a treatment status."
        )

    values = set(column.unique())
    if not values <= {0, 1}:
        raise ValueError(
            f"Treatment '{treatment}' must be binary (0/1 or bool). "
            f"Found values: {sorted(values, key=str)}"
        )
    return column.to_numpy().astype(bool)


def outcome_values(data: pd.DataFrame, outcome: str) -> np.ndarray:
    if outcome not in data.columns:
        raise ValueError(f"Outcome column '{outcome}' not found in dataframe.")

    column = data[outcome]
    if not pd.api.types.is_numeric_dtype(column):
        raise ValueError(f"Outcome '{outcome}' must be numeric, got dtype {column.dtype}.")
    n_missing = int(column.isna().sum())
    if n_missing:
        raise ValueError(f"Outcome '{outcome}' has {n_missing} missing value(s).")
    return column.to_numpy(dtype=float)


def aligned_values(values, data: pd.DataFrame, name: str) -> np.ndarray:
    """
    Return ``values`` as a float array in the row order of ``data``.

    A ``pd.Series`` is aligned on the index, so per-unit vectors survive a
    reordering of the table. Anything else must already have one entry per
    row.
    """
    if isinstance(values, pd.Series) and not values.index.equals(data.index):
        missing = data.index.difference(values.index)
        if len(missing):
            raise ValueError(
                f"No {name} for {len(missing)} unit(s), e.g. {list(missing[:3])}."
            )
        values = values.reindex(data.index)

    arr = np.asarray(values, dtype=float)
    if arr.shape != (len(data),):
        raise ValueError(
            f"Expected one {name} per unit ({len(data)}), got shape {arr.shape}."
        )
    return arr


def check_trim_bounds(lower: float, upper: float) -> None:
    if not 0.0 <= lower < upper <= 1.0:
        raise ValueError(
            f"Trimming bounds must satisfy 0 <= lower < upper <= 1; "
            f"got lower={lower}, upper={upper}."
        )
