from __future__ import annotations

import logging
import warnings
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from scipy.special import expit
from scipy.stats import norm
from statsmodels.tools.sm_exceptions import PerfectSeparationError, PerfectSeparationWarning

from .._exceptions import DegenerateSampleError, DegenerateWeightError, EmptyGroupError
from .._validation import (
    aligned_values,
    check_trim_bounds,
    outcome_values,
    treatment_indicator,
)
from ..diagnostics import balance_table, effective_sample_size
from ..refutations._check import Assumption

logger = logging.getLogger(__name__)

IPW_ASSUMPTIONS: list[Assumption] = [
    Assumption("Unconfoundedness: no unobserved confounders given the propensity covariates", testable=False),
    Assumption("Positivity: every unit has a propensity strictly between 0 and 1", testable=True),
    Assumption("Correct specification of the propensity model", testable=False),
    Assumption("Stable Unit Treatment Value Assumption (SUTVA)", testable=False),
]

DEFAULT_TRIM = (0.01, 0.99)

_FITTERS = {"logit": smf.logit, "probit": smf.probit}
_INVERSE_LINKS = {"logit": expit, "probit": norm.cdf}


def _term(name: str) -> str:
    return name if name.isidentifier() else f"Q({name!r})"


# ── Propensity model specification ─────────────────────────────────────────────

@dataclass(frozen=True)
class PropensityModel:
    """
    Which covariates enter the propensity model, and through which link.

    An empty ``covariates`` tuple gives an intercept-only model: every unit
    gets the same propensity (the treatment base rate), and the IPW estimate
    reduces to the naive difference in means.
    """

    covariates: tuple[str, ...] = ()
    link: str = "logit"

    def __post_init__(self) -> None:
        covariates = self.covariates
        if isinstance(covariates, str):
            covariates = (covariates,)
        object.__setattr__(self, "covariates", tuple(covariates))

        if self.link not in _FITTERS:
            raise ValueError(
                f"Unknown link '{self.link}'. Choose one of: {sorted(_FITTERS)}"
            )
        if len(set(self.covariates)) != len(self.covariates):
            raise ValueError(f"Duplicate propensity covariates: {list(self.covariates)}")

    def formula(self, treatment: str) -> str:
        """Patsy formula regressing ``treatment`` on the covariates."""
        rhs = " + ".join(_term(c) for c in self.covariates) if self.covariates else "1"
        return f"{_term(treatment)} ~ {rhs}"


# ── Core operations ────────────────────────────────────────────────────────────

def fit_propensity(
    data: pd.DataFrame,
    model: PropensityModel,
    treatment: str = "treatment",
) -> pd.Series:
    """
    Fit the propensity model and return one probability of treatment per unit.

    The binary-choice fit is delegated to statsmodels; the fitted linear
    predictor is mapped through the inverse link, so the probabilities are
    monotone in it.

    Parameters
    ----------
    data : pd.DataFrame
        Unit table with a binary treatment column and the model's covariates.
    model : PropensityModel
        Covariates and link function.
    treatment : str
        Name of the treatment column.

    Returns
    -------
    pd.Series
        Named ``"propensity"``, indexed like ``data``.

    Raises
    ------
    ``DegenerateSampleError``
        If every unit (or no unit) is treated.
    ``DegenerateWeightError``
        If the fitter reports perfect separation.
    ``ValueError``
        If a column is missing, has gaps, or treatment is not binary.
    """
    t = treatment_indicator(data, treatment)

    if treatment in model.covariates:
        raise ValueError(f"Treatment '{treatment}' cannot be one of its own covariates.")
    absent = [c for c in model.covariates if c not in data.columns]
    if absent:
        raise ValueError(f"Covariate column(s) not found in dataframe: {absent}")
    with_gaps = [c for c in model.covariates if data[c].isna().any()]
    if with_gaps:
        raise ValueError(f"Covariate column(s) with missing values: {with_gaps}")

    n_treated = int(t.sum())
    if n_treated == 0 or n_treated == len(t):
        raise DegenerateSampleError(
            f"Treatment '{treatment}' has no variation: {n_treated} of {len(t)} "
            f"unit(s) are treated. The propensity model needs both treated and "
            f"untreated units."
        )

    separated = (
        f"The {model.link} propensity model perfectly separates treated from "
        f"untreated units, so fitted propensities hit 0 or 1. Drop or coarsen "
        f"the separating covariates, or collect more overlapping data."
    )
    frame = data[[*model.covariates]].assign(**{treatment: t.astype(float)})
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", PerfectSeparationWarning)
            fit = _FITTERS[model.link](model.formula(treatment), data=frame).fit(disp=0)
    except (PerfectSeparationError, PerfectSeparationWarning) as exc:
        raise DegenerateWeightError(separated) from exc

    # fittedvalues is the linear predictor for discrete-choice models.
    linear = np.asarray(fit.fittedvalues, dtype=float)
    ps = _INVERSE_LINKS[model.link](linear)
    if ((ps <= 0.0) | (ps >= 1.0)).any():
        raise DegenerateWeightError(separated)

    logger.debug(
        "Fitted %s propensity model '%s' on %d unit(s)",
        model.link, model.formula(treatment), len(ps),
    )
    return pd.Series(ps, index=data.index, name="propensity")


def compute_weights(
    data: pd.DataFrame,
    probabilities,
    treatment: str = "treatment",
) -> pd.Series:
    """
    Inverse-probability weights: ``1/p`` for treated, ``1/(1-p)`` for untreated.

    ``probabilities`` may be a ``pd.Series`` aligned on ``data.index`` (as
    returned by ``fit_propensity``) or an array with one entry per row.

    Raises
    ------
    ``DegenerateWeightError``
        If any propensity is exactly 0 or 1, or a weight overflows.
    ``ValueError``
        If a propensity is missing or outside ``[0, 1]``.
    """
    t = treatment_indicator(data, treatment)
    p = aligned_values(probabilities, data, "propensity")

    if np.isnan(p).any():
        raise ValueError(f"{int(np.isnan(p).sum())} propensity value(s) are missing.")
    if ((p < 0) | (p > 1)).any():
        raise ValueError("Propensities must lie in [0, 1].")

    boundary = (p == 0.0) | (p == 1.0)
    if boundary.any():
        raise DegenerateWeightError(
            f"{int(boundary.sum())} unit(s) have a fitted propensity of exactly 0 or 1 "
            f"(e.g. {list(data.index[boundary][:3])}); their weight would be infinite. "
            f"Trim extreme propensities with trim_common_support() or revise the "
            f"propensity model."
        )

    with np.errstate(over="ignore"):
        w = np.where(t, 1.0 / p, 1.0 / (1.0 - p))
    if not np.isfinite(w).all():
        raise DegenerateWeightError(
            "Propensities too close to 0 or 1 produced non-finite weights. "
            "Trim extreme propensities or revise the propensity model."
        )
    if len(w):
        logger.debug("Weights for %d unit(s): min %.4f, max %.4f", len(w), w.min(), w.max())
    return pd.Series(w, index=data.index, name="weight")


def weighted_group_means(
    data: pd.DataFrame,
    weights,
    treatment: str = "treatment",
    outcome: str = "outcome",
) -> tuple[float, float]:
    """
    Weight-normalised mean outcome of the treated and of the untreated group.

    Each mean is ``Σ w·y / Σ w`` within its group, the Horvitz-Thompson ratio
    form. Scaling every weight in one group by the same constant leaves that
    group's mean unchanged.

    Raises
    ------
    ``EmptyGroupError``
        If a group has no units or its weights sum to zero.
    ``ValueError``
        If weights are negative or non-finite, or the outcome is invalid.
    """
    t = treatment_indicator(data, treatment)
    y = outcome_values(data, outcome)
    w = aligned_values(weights, data, "weight")

    if not np.isfinite(w).all():
        raise ValueError("Weights must be finite.")
    if (w < 0).any():
        raise ValueError("Weights must be non-negative.")

    def group_mean(mask: np.ndarray, label: str) -> float:
        total = w[mask].sum()
        if not mask.any() or total <= 0:
            raise EmptyGroupError(
                f"The {label} group has {int(mask.sum())} unit(s) with total weight "
                f"{total:.4g}; a weighted mean needs a positive total weight."
            )
        return float(np.sum(w[mask] * y[mask]) / total)

    return group_mean(t, "treated"), group_mean(~t, "untreated")


def weighted_ate(
    data: pd.DataFrame,
    weights,
    treatment: str = "treatment",
    outcome: str = "outcome",
) -> float:
    """
    IPW estimate of the average treatment effect.

    ``ATE = mean_treated - mean_untreated`` with both means from
    ``weighted_group_means``. No standard error is computed.
    """
    mean_treated, mean_untreated = weighted_group_means(data, weights, treatment, outcome)
    return mean_treated - mean_untreated


def difference_in_means(
    data: pd.DataFrame,
    treatment: str = "treatment",
    outcome: str = "outcome",
) -> float:
    """Naive contrast: mean outcome of treated minus untreated, unweighted."""
    return weighted_ate(data, np.ones(len(data)), treatment, outcome)


def trim_common_support(
    data: pd.DataFrame,
    probabilities,
    lower: float = DEFAULT_TRIM[0],
    upper: float = DEFAULT_TRIM[1],
) -> tuple[pd.DataFrame, pd.Series]:
    """
    Drop units whose propensity lies outside the open interval ``(lower, upper)``.

    Returns the retained rows and their propensities. The estimand changes
    to the ATE over the retained population.
    """
    check_trim_bounds(lower, upper)
    p = aligned_values(probabilities, data, "propensity")

    keep = (p > lower) & (p < upper)
    n_dropped = int((~keep).sum())
    if n_dropped:
        logger.info(
            "Trimmed %d of %d unit(s) with propensity outside (%s, %s)",
            n_dropped, len(p), lower, upper,
        )
    kept = data[keep]
    return kept, pd.Series(p[keep], index=kept.index, name="propensity")


# ── Result ─────────────────────────────────────────────────────────────────────

class IPWResult:
    """
    The result of an inverse-probability-weighting estimation.

    Holds the ATE alongside the naive difference in means, so the
    confounding bias removed by weighting is visible, plus the fitted
    propensities and weights for diagnostics. No standard error or
    confidence interval is computed.
    """

    def __init__(
        self,
        mean_treated: float,
        mean_control: float,
        unadjusted_effect: float,
        propensities: pd.Series,
        weights: pd.Series,
        treated: pd.Series,
        treatment: str,
        outcome: str,
        model: PropensityModel,
        trim: tuple[float, float] | None,
    ) -> None:
        self._mean_treated = mean_treated
        self._mean_control = mean_control
        self._unadjusted_effect = unadjusted_effect
        self._propensities = propensities
        self._weights = weights
        self._treated = treated
        self._treatment = treatment
        self._outcome = outcome
        self._model = model
        self._trim = trim

    @property
    def effect(self) -> float:
        """ATE: weighted treated mean minus weighted control mean."""
        return self._mean_treated - self._mean_control

    @property
    def unadjusted_effect(self) -> float:
        """Naive mean difference Y|T=1 minus Y|T=0, over all units, no weighting."""
        return self._unadjusted_effect

    @property
    def mean_treated(self) -> float:
        return self._mean_treated

    @property
    def mean_control(self) -> float:
        return self._mean_control

    @property
    def propensities(self) -> pd.Series:
        """Fitted propensity for every unit, before any trimming."""
        return self._propensities.copy()

    @property
    def weights(self) -> pd.Series:
        """Inverse-probability weight for every unit kept in the estimate."""
        return self._weights.copy()

    @property
    def covariates(self) -> tuple[str, ...]:
        """Covariates of the propensity model."""
        return self._model.covariates

    @property
    def link(self) -> str:
        return self._model.link

    @property
    def n_treated(self) -> int:
        return int(self._treated.sum())

    @property
    def n_control(self) -> int:
        return int((~self._treated).sum())

    @property
    def n_trimmed(self) -> int:
        """Units dropped by common-support trimming."""
        return len(self._propensities) - len(self._weights)

    @property
    def effective_sample_size(self) -> tuple[float, float]:
        """Kish effective sample size of the (treated, control) groups."""
        t = self._treated.to_numpy()
        w = self._weights.to_numpy()
        return effective_sample_size(w[t]), effective_sample_size(w[~t])

    @property
    def assumptions(self) -> list[Assumption]:
        """Modelling assumptions required for a causal interpretation."""
        return list(IPW_ASSUMPTIONS)

    def balance(self, data: pd.DataFrame) -> pd.DataFrame:
        """
        Covariate balance before and after weighting.

        Parameters
        ----------
        data : pd.DataFrame
            The same dataframe passed to ``fit()``.
        """
        kept = data.loc[self._weights.index]
        return balance_table(kept, self._weights, self._model.covariates, self._treatment)

    def executive_summary(self) -> str:
        """Narrative explanation of the method, propensity model, assumptions, and result."""
        from .._explain import explain_ipw
        return explain_ipw(self)

    def summary(self) -> str:
        covs = list(self._model.covariates)
        bias = self.unadjusted_effect - self.effect
        ess_t, ess_c = self.effective_sample_size

        lines = [
            "",
            f"IPW Causal Effect: {self._treatment} → {self._outcome}",
            f"  Estimand: ATE (average treatment effect)",
            "─" * 54,
        ]

        if covs:
            lines += [
                f"  ATE estimate         : {self.effect:>10.4f}  (weighting on: {', '.join(covs)})",
                f"  Unadjusted estimate  : {self.unadjusted_effect:>10.4f}  (naive mean difference)",
                f"  Confounding bias     : {bias:>+10.4f}",
            ]
        else:
            lines += [
                f"  ATE estimate         : {self.effect:>10.4f}  (intercept-only propensity model)",
            ]

        lines += [
            "",
            f"  Weighted mean, T=1   : {self.mean_treated:>10.4f}",
            f"  Weighted mean, T=0   : {self.mean_control:>10.4f}",
            f"  Units                : {self.n_treated} treated, {self.n_control} control",
            f"  Effective sample size: {ess_t:.1f} treated, {ess_c:.1f} control",
        ]
        if self._trim is not None:
            lo, hi = self._trim
            lines.append(
                f"  Trimmed              : {self.n_trimmed} unit(s) outside ({lo}, {hi})"
            )

        lines += [
            "",
            f"  Propensity model: {self.link}; weights 1/p (treated), 1/(1-p) (control)",
            "",
            "  Assumptions",
            "  " + "┄" * 48,
        ]
        for a in IPW_ASSUMPTIONS:
            lines.append(f"  {a.fmt_tag()}  {a.name}")
        lines.append("")
        return "\n".join(lines)

    def refute(self, data: pd.DataFrame):
        """
        Run refutation checks against this IPW estimation.

        Currently runs:

        - **Placebo treatment**: randomly permutes treatment labels and
          re-runs the pipeline. The placebo ATE should be near zero.
        - **Random common cause**: adds a random noise covariate to the
          propensity model and checks that the ATE is stable.
        - **Common support**: checks that few units have extreme fitted
          propensities.

        Parameters
        ----------
        data : pd.DataFrame
            The same dataframe passed to ``fit()``.
        """
        from ..refutations.ipw import (
            IPWRefutationReport,
            _check_common_support,
            _check_placebo_treatment,
            _check_random_common_cause,
            _tolerance,
        )
        tolerance = _tolerance(data, self._outcome)
        checks = [
            _check_placebo_treatment(
                data, self._treatment, self._outcome,
                self._model, self._trim, tolerance,
            ),
            _check_random_common_cause(
                data, self._treatment, self._outcome,
                self._model, self._trim, self.effect, tolerance,
            ),
            _check_common_support(self._propensities),
        ]
        return IPWRefutationReport(
            checks=checks,
            treatment=self._treatment,
            outcome=self._outcome,
        )

    def __repr__(self) -> str:
        return self.summary()


# ── Estimator ──────────────────────────────────────────────────────────────────

class InverseProbabilityWeighting:
    """
    Observational estimator of the ATE by inverse-probability weighting.

    1. Fits a logit or probit model of treatment on the given covariates.
    2. Optionally drops units with extreme propensities (``trim``).
    3. Weights each unit by the inverse probability of the treatment it
       actually received.
    4. Estimates the ATE as the difference of the weight-normalised group
       means.

    Requires **binary treatment** (0/1 or bool) with both classes present.

    Example::

        result = InverseProbabilityWeighting(
            treatment="education", outcome="income", covariates=["ability"]
        ).fit(df)
        print(result.summary())
    """

    def __init__(
        self,
        treatment: str,
        outcome: str,
        covariates: Sequence[str] = (),
        link: str = "logit",
        trim: tuple[float, float] | None = None,
    ) -> None:
        self._treatment = treatment
        self._outcome = outcome
        self._model = PropensityModel(covariates, link)
        self._trim = tuple(trim) if trim is not None else None
        self._validate_inputs()

    def _validate_inputs(self) -> None:
        if self._treatment == self._outcome:
            raise ValueError("Treatment and outcome must be different variables.")
        for label, var in [("Treatment", self._treatment), ("Outcome", self._outcome)]:
            if var in self._model.covariates:
                raise ValueError(f"{label} '{var}' cannot also be a propensity covariate.")
        if self._trim is not None:
            if len(self._trim) != 2:
                raise ValueError("trim must be a (lower, upper) pair or None.")
            check_trim_bounds(*self._trim)

    @property
    def model(self) -> PropensityModel:
        return self._model

    def fit(self, data: pd.DataFrame) -> IPWResult:
        """
        Fit propensities, weight units, and estimate the ATE.

        Parameters
        ----------
        data : pd.DataFrame
            Must contain a binary treatment column, a numeric outcome column,
            and every propensity covariate.

        Raises
        ------
        ``DegenerateSampleError``
            If treatment has no variation.
        ``DegenerateWeightError``
            If a fitted propensity is 0 or 1 and no trimming removes it.
        ``EmptyGroupError``
            If trimming empties a treatment group.
        ``ValueError``
            If columns are missing or malformed.
        """
        T, Y = self._treatment, self._outcome
        for label, var in [("Treatment", T), ("Outcome", Y)]:
            if var not in data.columns:
                raise ValueError(f"{label} column '{var}' not found in dataframe.")
        outcome_values(data, Y)

        ps = fit_propensity(data, self._model, treatment=T)

        sample, sample_ps = data, ps
        if self._trim is not None:
            sample, sample_ps = trim_common_support(data, ps, *self._trim)

        weights = compute_weights(sample, sample_ps, treatment=T)
        mean_treated, mean_control = weighted_group_means(sample, weights, T, Y)
        unadjusted = difference_in_means(data, T, Y)

        treated = pd.Series(treatment_indicator(sample, T), index=sample.index, name=T)
        logger.debug(
            "IPW %s → %s: ATE %.4f, naive %.4f, %d unit(s)",
            T, Y, mean_treated - mean_control, unadjusted, len(sample),
        )
        return IPWResult(
            mean_treated=mean_treated,
            mean_control=mean_control,
            unadjusted_effect=unadjusted,
            propensities=ps,
            weights=weights,
            treated=treated,
            treatment=T,
            outcome=Y,
            model=self._model,
            trim=self._trim,
        )
