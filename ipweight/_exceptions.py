class DegenerateSampleError(ValueError):
    """
    Raised when the treatment indicator has no variation.

    A propensity model needs at least one treated and one untreated unit;
    with a single class the fitter has nothing to separate.
    """


class DegenerateWeightError(ValueError):
    """
    Raised when a fitted propensity is exactly 0 or 1.

    The inverse-probability weight of such a unit would be infinite. Trimming
    extreme propensities or changing the covariate specification usually
    resolves it.
    """


class EmptyGroupError(ValueError):
    """Raised when a treatment group is empty or its weights sum to zero."""
