"""
Inverse Probability Weighting — refutation checks
==================================================
After fitting, run refutation checks to probe whether the ATE estimate
is stable and not spurious.

  - Placebo treatment: permuting treatment labels should yield ~0 effect.
  - Random common cause: adding a noise covariate should not shift the ATE.
  - Common support: few units should have propensities near 0 or 1.
"""

import numpy as np
import pandas as pd
from ipweight import InverseProbabilityWeighting

RNG = np.random.default_rng(2)
N = 3_000

# ── 1. Well-specified data (checks should pass) ───────────────────────────────
ability   = RNG.normal(size=N)
ps_latent = 0.5 * ability + RNG.normal(size=N)
education = (ps_latent > np.median(ps_latent)).astype(float)
income    = 2.0 * education + 0.8 * ability + RNG.normal(size=N)

df = pd.DataFrame({"ability": ability, "education": education, "income": income})

result = InverseProbabilityWeighting(
    treatment="education", outcome="income", covariates=["ability"]
).fit(df)

print("=== Original estimate ===")
print(result.summary())
print(result.executive_summary())

print("=== Refutation report ===")
report = result.refute(df)
print(report.summary())

# ── 2. Poor overlap: strong selection on ability, then trimming ───────────────
selective = 3.0 * ability + RNG.normal(scale=0.5, size=N)
df_poor = df.assign(education=(selective > np.median(selective)).astype(float))

trimmed = InverseProbabilityWeighting(
    treatment="education", outcome="income", covariates=["ability"], trim=(0.05, 0.95)
).fit(df_poor)

print("=== Poor overlap, trimmed to (0.05, 0.95) ===")
print(trimmed.summary())
print(trimmed.refute(df_poor).summary())
