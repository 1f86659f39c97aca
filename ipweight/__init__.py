# refutations must load before estimators: estimators.ipw imports
# refutations._check, and refutations.ipw imports estimators.ipw.
from .refutations import IPWRefutationReport, RefutationCheck
from .refutations._check import Assumption
from .estimators.ipw import (
    InverseProbabilityWeighting,
    IPWResult,
    PropensityModel,
    compute_weights,
    difference_in_means,
    fit_propensity,
    trim_common_support,
    weighted_ate,
    weighted_group_means,
)
from .diagnostics import balance_table, effective_sample_size
from .units import Unit, units_to_frame
from ._exceptions import DegenerateSampleError, DegenerateWeightError, EmptyGroupError

__all__ = [
    "InverseProbabilityWeighting", "IPWResult", "PropensityModel",
    "fit_propensity", "compute_weights", "weighted_ate", "weighted_group_means",
    "difference_in_means", "trim_common_support",
    "balance_table", "effective_sample_size",
    "Unit", "units_to_frame",
    "IPWRefutationReport", "RefutationCheck", "Assumption",
    "DegenerateSampleError", "DegenerateWeightError", "EmptyGroupError",
]
