"""
Weight diagnostics for inverse-probability weighting.

Two questions matter after weighting:

1. How much information is left? Extreme weights concentrate the estimate on
   a handful of units; Kish's effective sample size measures that.
2. Did weighting balance the covariates? The standardized mean difference
   (SMD) of each covariate before and after weighting answers it.
   ``|SMD| < 0.1`` is the usual threshold for adequate balance.

References
----------
Kish, L. (1965). *Survey Sampling*. Wiley.

Austin, P. C., & Stuart, E. A. (2015). Moving towards best practice when
using inverse probability of treatment weighting (IPTW) using the propensity
score to estimate causal treatment effects in observational studies.
*Statistics in Medicine*, 34(28), 3661-3679.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np
import pandas as pd

from ._exceptions import EmptyGroupError
from ._validation import aligned_values, treatment_indicator

logger = logging.getLogger(__name__)

_BALANCE_COLUMNS = [
    "covariate",
    "mean_treated", "mean_control", "smd",
    "weighted_mean_treated", "weighted_mean_control", "weighted_smd",
]


def effective_sample_size(weights) -> float:
    """
    Kish effective sample size, ``(Σw)² / Σw²``.

    Equals the number of units when all weights are equal and shrinks as the
    weights become more uneven.

    Raises
    ------
    ``ValueError``
        If ``weights`` is empty or sums to zero.
    """
    w = np.asarray(weights, dtype=float)
    if w.size == 0:
        raise ValueError("Cannot compute an effective sample size from no weights.")
    total = w.sum()
    if total <= 0:
        raise ValueError("Weights must have a positive sum.")
    return float(total ** 2 / np.sum(w ** 2))


def _variance(x: np.ndarray) -> float:
    return float(np.var(x, ddof=1)) if len(x) > 1 else 0.0


def _smd(mean_treated: float, mean_control: float, pooled_sd: float) -> float:
    if pooled_sd == 0:
        return 0.0
    return float((mean_treated - mean_control) / pooled_sd)


def balance_table(
    data: pd.DataFrame,
    weights,
    covariates: Sequence[str],
    treatment: str = "treatment",
) -> pd.DataFrame:
    """
    Covariate balance before and after inverse-probability weighting.

    The pooled standard deviation is taken from the *unweighted* group
    variances in both columns, so the two SMDs share a denominator and differ
    only through the weighted means.

    Parameters
    ----------
    data : pd.DataFrame
        Unit table with the treatment and covariate columns.
    weights : pd.Series or array-like
        Per-unit weights, e.g. from ``compute_weights``.
    covariates : sequence of str
        Columns to check.
    treatment : str
        Name of the binary treatment column.

    Returns
    -------
    pd.DataFrame
        Indexed by covariate, with unweighted and weighted group means and
        SMDs.

    Raises
    ------
    ``EmptyGroupError``
        If a treatment group is empty or carries no weight.
    """
    t = treatment_indicator(data, treatment)
    w = aligned_values(weights, data, "weight")
    if not t.any() or t.all():
        raise EmptyGroupError("Balance needs both treated and control units.")
    if w[t].sum() <= 0 or w[~t].sum() <= 0:
        raise EmptyGroupError("Each treatment group needs a positive total weight.")

    rows = []
    for name in covariates:
        if name not in data.columns:
            raise ValueError(f"Covariate column '{name}' not found in dataframe.")
        x = data[name].to_numpy(dtype=float)
        x_t, x_c = x[t], x[~t]
        pooled_sd = np.sqrt((_variance(x_t) + _variance(x_c)) / 2)

        mean_t, mean_c = float(x_t.mean()), float(x_c.mean())
        wmean_t = float(np.average(x_t, weights=w[t]))
        wmean_c = float(np.average(x_c, weights=w[~t]))
        rows.append((
            name,
            mean_t, mean_c, _smd(mean_t, mean_c, pooled_sd),
            wmean_t, wmean_c, _smd(wmean_t, wmean_c, pooled_sd),
        ))

    table = pd.DataFrame(rows, columns=_BALANCE_COLUMNS).set_index("covariate")
    if rows:
        logger.info(
            "Mean |SMD| across %d covariate(s): %.3f unweighted, %.3f weighted",
            len(rows), table["smd"].abs().mean(), table["weighted_smd"].abs().mean(),
        )
    return table
