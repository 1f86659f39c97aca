"""
Inverse Probability Weighting — basic example
==============================================
Estimate the ATE of a binary treatment (further education) on income
whilst adjusting for a confounding variable (ability) by weighting.
"""

import numpy as np
import pandas as pd
from ipweight import InverseProbabilityWeighting

RNG = np.random.default_rng(0)
N = 3_000

# ── 1. Simulate data ──────────────────────────────────────────────────────────
ability   = RNG.normal(size=N)
ps_latent = 0.5 * ability + RNG.normal(size=N)
education = (ps_latent > np.median(ps_latent)).astype(float)   # binary 0/1
income    = 2.0 * education + 0.8 * ability + RNG.normal(size=N)

df = pd.DataFrame({"ability": ability, "education": education, "income": income})

# ── 2. Estimate via IPW ───────────────────────────────────────────────────────
result = InverseProbabilityWeighting(
    treatment="education", outcome="income", covariates=["ability"]
).fit(df)

print(result.summary())
print(result.balance(df))
