from .ipw import InverseProbabilityWeighting, IPWResult, PropensityModel

__all__ = ["InverseProbabilityWeighting", "IPWResult", "PropensityModel"]
