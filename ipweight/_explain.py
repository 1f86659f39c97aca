"""
Narrative explanation renderer for IPW results.

``explain_ipw`` takes a fitted ``IPWResult`` and returns a formatted
multi-line string; ``IPWResult.executive_summary()`` calls it.
"""
from __future__ import annotations

_SEP = "━" * 66


# ── Shared helpers ─────────────────────────────────────────────────────────────

def _list_vars(names: list[str]) -> str:
    if len(names) == 1:
        return names[0]
    return ", ".join(names[:-1]) + f" and {names[-1]}"


def _binary_effect_phrase(effect: float, treatment: str, outcome: str) -> str:
    direction = "increase" if effect >= 0 else "decrease"
    return (
        f"across the whole population, receiving {treatment} is estimated to cause "
        f"an {direction} of {abs(effect):.4f} in {outcome} compared to not being treated"
    )


# ── Section builders ───────────────────────────────────────────────────────────

def _propensity_section(result) -> str:
    T = result._treatment
    covs = list(result.covariates)
    link = "logistic (logit)" if result.link == "logit" else "probit"
    lines = ["PROPENSITY MODEL"]
    if covs:
        lines.append(
            f"The probability of receiving {T} was modelled with a {link} regression "
            f"on {_list_vars(covs)}. These are treated as the complete set of "
            f"confounders of {T} and {result._outcome}."
        )
    else:
        lines.append(
            f"No covariates were supplied, so every unit was given the same "
            f"propensity (the share of treated units). The estimate is then the "
            f"naive difference in means and corrects for no confounding."
        )

    p = result.propensities
    lines.append(
        f"Fitted propensities range from {p.min():.4f} to {p.max():.4f}."
    )
    if result.n_trimmed:
        lo, hi = result._trim
        lines.append(
            f"{result.n_trimmed} unit(s) with propensities outside ({lo}, {hi}) were "
            f"trimmed; the estimate applies to the remaining population."
        )
    return "\n".join(lines)


def _assumptions_section(assumptions: list) -> str:
    n = len(assumptions)
    n_u = sum(1 for a in assumptions if not a.testable)
    n_t = n - n_u

    if n_u == n:
        intro = (
            f"All {n} required assumptions are untestable from the data alone "
            f"and must be justified on substantive grounds."
        )
    elif n_t == n:
        intro = f"All {n} required assumptions can be empirically checked in the data."
    else:
        intro = (
            f"{n_u} of the {n} required assumptions {'is' if n_u == 1 else 'are'} untestable "
            f"and must be justified on substantive grounds; "
            f"{n_t} can be checked in the data."
        )

    lines = ["ASSUMPTIONS", intro, ""]
    for a in assumptions:
        lines.append(f"  {a.fmt_tag()}  {a.name}")
    return "\n".join(lines)


# ── Method-specific explanation ────────────────────────────────────────────────

def explain_ipw(result) -> str:
    T, Y = result._treatment, result._outcome
    covs = list(result.covariates)
    bias = result.unadjusted_effect - result.effect
    ess_t, ess_c = result.effective_sample_size

    comparison = []
    if covs:
        comparison = [
            "",
            f"The unweighted (naive) mean difference was {result.unadjusted_effect:.4f}. "
            f"The difference of {abs(bias):.4f} is the estimated confounding bias "
            f"removed by weighting on {_list_vars(covs)}.",
        ]

    blocks = [
        "\n".join([_SEP, "Executive Summary — Inverse Probability Weighting",
                   f"  {T} → {Y}  |  estimand: ATE", _SEP]),

        "\n".join([
            "METHOD",
            f"Inverse Probability Weighting (IPW) estimates the Average Treatment "
            f"Effect (ATE) of {T} on {Y}. Each unit is weighted by the reciprocal of "
            f"its estimated probability of receiving the treatment it actually "
            f"received, which re-creates a population in which treatment is "
            f"independent of the modelled covariates. The weighted mean of {Y} is "
            f"computed separately for treated and control units, each normalised by "
            f"its group's total weight (the Horvitz-Thompson ratio form), and the "
            f"ATE is their difference. No standard error is reported.",
        ]),

        _propensity_section(result),
        _assumptions_section(result.assumptions),

        "\n".join([
            "RESULT",
            f"{_binary_effect_phrase(result.effect, T, Y).capitalize()} "
            f"(ATE = {result.effect:.4f}; weighted means {result.mean_treated:.4f} "
            f"treated vs {result.mean_control:.4f} control).",
            *comparison,
            "",
            f"Weighting leaves an effective sample size of {ess_t:.1f} of "
            f"{result.n_treated} treated and {ess_c:.1f} of {result.n_control} "
            f"control units.",
        ]),

        "\n".join([
            "CAVEATS",
            f"The central assumption is that no unobserved confounders remain once "
            f"the propensity covariates are accounted for, and it cannot be tested. "
            f"IPW is sensitive to a misspecified propensity model and to "
            f"propensities near 0 or 1, which produce very large weights; a small "
            f"effective sample size relative to the group size is a warning sign. "
            f"Check covariate balance after weighting before interpreting the ATE "
            f"causally.",
        ]),

        _SEP,
    ]
    return "\n\n".join(blocks)
