from ._check import RefutationCheck
from .ipw import IPWRefutationReport

__all__ = ["IPWRefutationReport", "RefutationCheck"]
