from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from ._check import RefutationCheck, RefutationReport
from ..estimators.ipw import (
    PropensityModel,
    compute_weights,
    fit_propensity,
    trim_common_support,
    weighted_ate,
)

logger = logging.getLogger(__name__)

_RCC_SEED     = 54321
_PLACEBO_SEED = 99999
_RCC_COL      = "_rcc"

# Both re-estimation checks pass when the ATE moves by at most this many
# outcome standard deviations.
_REFUTATION_TOLERANCE = 0.2

_SUPPORT_BOUNDS      = (0.01, 0.99)
_MAX_OUTSIDE_SUPPORT = 0.05


def _tolerance(data: pd.DataFrame, outcome: str) -> float:
    return _REFUTATION_TOLERANCE * float(np.std(data[outcome].to_numpy(dtype=float), ddof=1))


def _reestimate(
    data: pd.DataFrame,
    treatment: str,
    outcome: str,
    model: PropensityModel,
    trim: tuple[float, float] | None,
) -> float:
    ps = fit_propensity(data, model, treatment=treatment)
    if trim is not None:
        data, ps = trim_common_support(data, ps, *trim)
    weights = compute_weights(data, ps, treatment=treatment)
    return weighted_ate(data, weights, treatment, outcome)


def _check_placebo_treatment(
    data: pd.DataFrame,
    treatment: str,
    outcome: str,
    model: PropensityModel,
    trim: tuple[float, float] | None,
    tolerance: float,
) -> RefutationCheck:
    """
    Permute treatment labels at random and re-run the IPW pipeline.

    Permuted labels carry no effect, so the placebo ATE should be close to
    zero. A placebo ATE beyond the tolerance suggests the original result
    is driven by the propensity model rather than by treatment.
    """
    rng = np.random.default_rng(_PLACEBO_SEED)
    augmented = data.assign(**{treatment: rng.permutation(data[treatment].to_numpy())})

    try:
        placebo_ate = _reestimate(augmented, treatment, outcome, model, trim)
    except (ValueError, np.linalg.LinAlgError) as exc:
        logger.warning("Placebo re-estimation failed: %s", exc)
        return RefutationCheck(
            name="Placebo treatment",
            passed=False,
            detail=f"IPW failed on permuted treatment ({type(exc).__name__}), check data quality.",
        )

    passed = abs(placebo_ate) <= tolerance
    if passed:
        detail = (
            f"placebo ATE = {placebo_ate:.4f}  (≤ tolerance {tolerance:.4f})  "
            f"Permuting treatment labels yields near-zero effect, as expected."
        )
    else:
        detail = (
            f"placebo ATE = {placebo_ate:.4f}  (> tolerance {tolerance:.4f})  "
            f"A randomly permuted treatment produced a large effect; the original "
            f"result may be an artefact of the propensity model."
        )
    return RefutationCheck(
        name="Placebo treatment", passed=passed, detail=detail,
        statistic=abs(placebo_ate), threshold=tolerance,
    )


def _check_random_common_cause(
    data: pd.DataFrame,
    treatment: str,
    outcome: str,
    model: PropensityModel,
    trim: tuple[float, float] | None,
    original_ate: float,
    tolerance: float,
) -> RefutationCheck:
    """
    Add a pure-noise covariate to the propensity model and re-run IPW.

    The noise is unrelated to treatment and outcome, so the ATE should not
    move by more than the tolerance.
    """
    rng = np.random.default_rng(_RCC_SEED)

    col = _RCC_COL
    while col in data.columns:
        col = "_" + col

    augmented = data.assign(**{col: rng.normal(size=len(data))})
    noisy_model = PropensityModel((*model.covariates, col), model.link)

    try:
        new_ate = _reestimate(augmented, treatment, outcome, noisy_model, trim)
    except (ValueError, np.linalg.LinAlgError) as exc:
        logger.warning("Random common cause re-estimation failed: %s", exc)
        return RefutationCheck(
            name="Random common cause",
            passed=False,
            detail=f"IPW failed after adding random covariate ({type(exc).__name__}), check data quality.",
        )

    shift = abs(new_ate - original_ate)
    passed = shift <= tolerance
    if passed:
        detail = f"estimate shifted by {shift:.4f}  (≤ tolerance {tolerance:.4f})"
    else:
        detail = (
            f"estimate shifted by {shift:.4f}  (> tolerance {tolerance:.4f})  "
            f"Adding a random common cause destabilised the ATE estimate."
        )
    return RefutationCheck(
        name="Random common cause", passed=passed, detail=detail,
        statistic=shift, threshold=tolerance,
    )


def _check_common_support(propensities: pd.Series) -> RefutationCheck:
    """
    Check positivity: the share of units with extreme fitted propensities.

    Units near 0 or 1 get very large weights and dominate the estimate.
    """
    lower, upper = _SUPPORT_BOUNDS
    p = propensities.to_numpy(dtype=float)
    share = float(np.mean((p <= lower) | (p >= upper)))

    passed = share <= _MAX_OUTSIDE_SUPPORT
    detail = (
        f"{share:.1%} of units have propensity outside ({lower}, {upper})  "
        f"({'≤' if passed else '>'} {_MAX_OUTSIDE_SUPPORT:.0%})"
    )
    if not passed:
        detail += "  Overlap is poor; consider trimming or a different propensity model."
    return RefutationCheck(
        name="Common support", passed=passed, detail=detail,
        statistic=share, threshold=_MAX_OUTSIDE_SUPPORT,
    )


class IPWRefutationReport(RefutationReport):
    """
    Results of refutation checks run against an IPW estimation.

    Obtain via ``IPWResult.refute(data)``. Each check is a
    ``RefutationCheck`` in ``.checks``. The overall verdict is ``.passed``.

    Example::

        result = InverseProbabilityWeighting(
            treatment="education", outcome="income", covariates=["ability"]
        ).fit(df)
        report = result.refute(df)
        print(report.summary())
    """

    def _header_lines(self) -> list[str]:
        return [f"IPW Refutation Report: {self._treatment} → {self._outcome}"]
