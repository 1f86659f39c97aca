import numpy as np
import pandas as pd
import pytest

from ipweight import (
    DegenerateSampleError,
    DegenerateWeightError,
    EmptyGroupError,
    PropensityModel,
    compute_weights,
    difference_in_means,
    fit_propensity,
    trim_common_support,
    weighted_ate,
    weighted_group_means,
)


N = 1_000


def make_data(true_ate=2.0, n=N, seed=42):
    """Confounded by ability; fixed seed so every call returns the same dataframe."""
    rng = np.random.default_rng(seed)
    ability   = rng.normal(size=n)
    ps_latent = 0.5 * ability + rng.normal(size=n)
    education = (ps_latent > np.median(ps_latent)).astype(float)
    income    = true_ate * education + 0.8 * ability + rng.normal(size=n)
    return pd.DataFrame({"ability": ability, "education": education, "income": income})


def four_units():
    """Two treated and two untreated units with known propensities."""
    data = pd.DataFrame(
        {
            "treatment": [True, True, False, False],
            "outcome": [3100.0, 3050.0, 3000.0, 2950.0],
        },
        index=pd.Index(["a", "b", "c", "d"], name="unit"),
    )
    ps = pd.Series([0.8, 0.6, 0.3, 0.5], index=data.index, name="propensity")
    return data, ps


class TestWorkedExample:
    def test_weights(self):
        data, ps = four_units()
        w = compute_weights(data, ps)
        assert w.name == "weight"
        assert list(w.index) == ["a", "b", "c", "d"]
        assert w.tolist() == pytest.approx([1 / 0.8, 1 / 0.6, 1 / 0.7, 1 / 0.5])

    def test_group_means(self):
        data, ps = four_units()
        mean_treated, mean_untreated = weighted_group_means(data, compute_weights(data, ps))
        assert mean_treated == pytest.approx((3100 / 0.8 + 3050 / 0.6) / (1 / 0.8 + 1 / 0.6))
        assert mean_treated == pytest.approx(3071.43, abs=0.01)
        assert mean_untreated == pytest.approx((3000 / 0.7 + 2950 / 0.5) / (1 / 0.7 + 1 / 0.5))
        assert mean_untreated == pytest.approx(2970.83, abs=0.01)

    def test_ate(self):
        data, ps = four_units()
        ate = weighted_ate(data, compute_weights(data, ps))
        assert ate == pytest.approx(100.60, abs=0.01)

    def test_ratio_form_not_simple_average(self):
        data, ps = four_units()
        w = compute_weights(data, ps).to_numpy()
        t = data["treatment"].to_numpy()
        y = data["outcome"].to_numpy()
        naive_ht = np.sum(w[t] * y[t]) / t.sum() - np.sum(w[~t] * y[~t]) / (~t).sum()
        assert weighted_ate(data, w) != pytest.approx(naive_ht)


class TestComputeWeights:
    def test_untreated_with_propensity_one_raises(self):
        data = pd.DataFrame({"treatment": [True, False], "outcome": [1.0, 0.0]})
        with pytest.raises(DegenerateWeightError, match="exactly 0 or 1"):
            compute_weights(data, [0.5, 1.0])

    def test_treated_with_propensity_zero_raises(self):
        data = pd.DataFrame({"treatment": [True, False], "outcome": [1.0, 0.0]})
        with pytest.raises(DegenerateWeightError):
            compute_weights(data, [0.0, 0.5])

    def test_any_boundary_propensity_raises(self):
        # The treated unit's own weight would be finite, but p = 1 signals separation.
        data = pd.DataFrame({"treatment": [True, False], "outcome": [1.0, 0.0]})
        with pytest.raises(DegenerateWeightError):
            compute_weights(data, [1.0, 0.5])

    def test_overflowing_weight_raises(self):
        data = pd.DataFrame({"treatment": [True, False], "outcome": [1.0, 0.0]})
        with pytest.raises(DegenerateWeightError):
            compute_weights(data, [1e-320, 0.5])

    def test_empty_table_gives_empty_weights(self):
        data = pd.DataFrame({"treatment": pd.Series([], dtype=bool)})
        w = compute_weights(data, [])
        assert w.empty
        assert w.name == "weight"

    def test_error_is_value_error(self):
        assert issubclass(DegenerateWeightError, ValueError)

    def test_missing_propensity_raises(self):
        data = pd.DataFrame({"treatment": [True, False], "outcome": [1.0, 0.0]})
        with pytest.raises(ValueError, match="missing"):
            compute_weights(data, [np.nan, 0.5])

    def test_out_of_range_propensity_raises(self):
        data = pd.DataFrame({"treatment": [True, False], "outcome": [1.0, 0.0]})
        with pytest.raises(ValueError, match=r"\[0, 1\]"):
            compute_weights(data, [1.2, 0.5])

    def test_wrong_length_raises(self):
        data = pd.DataFrame({"treatment": [True, False], "outcome": [1.0, 0.0]})
        with pytest.raises(ValueError, match="one propensity per unit"):
            compute_weights(data, [0.5])

    def test_series_missing_unit_raises(self):
        data, ps = four_units()
        with pytest.raises(ValueError, match="No propensity"):
            compute_weights(data, ps.drop("c"))

    def test_non_binary_treatment_raises(self):
        data = pd.DataFrame({"treatment": [0, 2], "outcome": [1.0, 0.0]})
        with pytest.raises(ValueError, match="binary"):
            compute_weights(data, [0.5, 0.5])

    def test_missing_treatment_value_raises(self):
        data = pd.DataFrame({"treatment": [1.0, np.nan], "outcome": [1.0, 0.0]})
        with pytest.raises(ValueError, match="missing"):
            compute_weights(data, [0.5, 0.5])


class TestWeightedAte:
    def test_rescaling_one_group_leaves_ate_unchanged(self):
        df = make_data()
        ps = fit_propensity(df, PropensityModel(("ability",)), treatment="education")
        w = compute_weights(df, ps, treatment="education")
        ate = weighted_ate(df, w, "education", "income")

        treated = df["education"] == 1
        rescaled = w.where(~treated, w * 7.5).where(treated, w * 0.01)
        assert weighted_ate(df, rescaled, "education", "income") == pytest.approx(ate, rel=1e-9)

    def test_reordering_units_leaves_ate_unchanged(self):
        df = make_data()
        ps = fit_propensity(df, PropensityModel(("ability",)), treatment="education")
        w = compute_weights(df, ps, treatment="education")
        ate = weighted_ate(df, w, "education", "income")

        shuffled = df.sample(frac=1.0, random_state=3)
        assert weighted_ate(shuffled, w, "education", "income") == pytest.approx(ate, rel=1e-12)

    def test_reordering_before_fitting_leaves_ate_unchanged(self):
        df = make_data()
        model = PropensityModel(("ability",))

        def pipeline(data):
            ps = fit_propensity(data, model, treatment="education")
            return weighted_ate(data, compute_weights(data, ps, "education"), "education", "income")

        shuffled = df.sample(frac=1.0, random_state=11)
        assert pipeline(shuffled) == pytest.approx(pipeline(df), rel=1e-6)

    def test_zero_weight_group_raises(self):
        data, _ = four_units()
        with pytest.raises(EmptyGroupError, match="treated"):
            weighted_ate(data, [0.0, 0.0, 1.0, 1.0])

    def test_missing_group_raises(self):
        data = pd.DataFrame({"treatment": [True, True], "outcome": [1.0, 2.0]})
        with pytest.raises(EmptyGroupError, match="untreated"):
            weighted_ate(data, [1.0, 1.0])

    def test_negative_weight_raises(self):
        data, _ = four_units()
        with pytest.raises(ValueError, match="non-negative"):
            weighted_ate(data, [1.0, -1.0, 1.0, 1.0])

    def test_infinite_weight_raises(self):
        data, _ = four_units()
        with pytest.raises(ValueError, match="finite"):
            weighted_ate(data, [1.0, np.inf, 1.0, 1.0])

    def test_missing_outcome_column_raises(self):
        data, _ = four_units()
        with pytest.raises(ValueError, match="Outcome column"):
            weighted_ate(data, [1.0] * 4, outcome="wage")

    def test_difference_in_means(self):
        data, _ = four_units()
        assert difference_in_means(data) == pytest.approx(3075.0 - 2975.0)


class TestFitPropensity:
    @classmethod
    def setup_class(cls):
        cls.df = make_data()
        cls.ps = fit_propensity(cls.df, PropensityModel(("ability",)), treatment="education")

    def test_returns_aligned_series(self):
        assert isinstance(self.ps, pd.Series)
        assert self.ps.name == "propensity"
        assert self.ps.index.equals(self.df.index)

    def test_strictly_inside_unit_interval(self):
        assert ((self.ps > 0) & (self.ps < 1)).all()

    def test_monotone_in_confounder(self):
        ordered = self.ps.to_numpy()[np.argsort(self.df["ability"].to_numpy())]
        assert np.all(np.diff(ordered) >= 0)

    def test_probit_close_to_logit(self):
        probit = fit_propensity(
            self.df, PropensityModel(("ability",), link="probit"), treatment="education"
        )
        assert ((probit > 0) & (probit < 1)).all()
        assert np.corrcoef(probit, self.ps)[0, 1] > 0.99

    def test_intercept_only_gives_base_rate(self):
        ps = fit_propensity(self.df, PropensityModel(), treatment="education")
        assert ps.to_numpy() == pytest.approx(np.full(N, self.df["education"].mean()), abs=1e-6)

    def test_bool_treatment_column(self):
        df = self.df.assign(education=self.df["education"].astype(bool))
        ps = fit_propensity(df, PropensityModel(("ability",)), treatment="education")
        assert ps.to_numpy() == pytest.approx(self.ps.to_numpy(), abs=1e-8)

    def test_covariate_name_needing_quotes(self):
        df = self.df.rename(columns={"ability": "test score"})
        ps = fit_propensity(df, PropensityModel(("test score",)), treatment="education")
        assert ps.to_numpy() == pytest.approx(self.ps.to_numpy(), abs=1e-8)

    def test_all_treated_raises(self):
        df = self.df.assign(education=1.0)
        with pytest.raises(DegenerateSampleError, match="no variation"):
            fit_propensity(df, PropensityModel(("ability",)), treatment="education")

    def test_none_treated_raises(self):
        df = self.df.assign(education=0.0)
        with pytest.raises(DegenerateSampleError):
            fit_propensity(df, PropensityModel(("ability",)), treatment="education")

    def test_empty_table_raises(self):
        with pytest.raises(DegenerateSampleError):
            fit_propensity(self.df.iloc[:0], PropensityModel(("ability",)), treatment="education")

    @pytest.mark.parametrize("link", ["logit", "probit"])
    def test_perfect_separation_raises(self, link):
        x = np.linspace(-3, 3, 60)
        df = pd.DataFrame({"x": x, "education": (x > 0).astype(float)})
        with pytest.raises(DegenerateWeightError, match="perfectly separates"):
            fit_propensity(df, PropensityModel(("x",), link), treatment="education")

    def test_missing_covariate_column_raises(self):
        with pytest.raises(ValueError, match="not found"):
            fit_propensity(self.df, PropensityModel(("age",)), treatment="education")

    def test_covariate_with_gaps_raises(self):
        df = self.df.copy()
        df.loc[0, "ability"] = np.nan
        with pytest.raises(ValueError, match="missing values"):
            fit_propensity(df, PropensityModel(("ability",)), treatment="education")

    def test_treatment_as_covariate_raises(self):
        with pytest.raises(ValueError, match="own covariates"):
            fit_propensity(self.df, PropensityModel(("education",)), treatment="education")

    def test_does_not_mutate_input(self):
        before = self.df.copy()
        fit_propensity(self.df, PropensityModel(("ability",)), treatment="education")
        pd.testing.assert_frame_equal(self.df, before)


class TestPropensityModel:
    def test_unknown_link_raises(self):
        with pytest.raises(ValueError, match="link"):
            PropensityModel(("ability",), link="cloglog")

    def test_duplicate_covariates_raise(self):
        with pytest.raises(ValueError, match="Duplicate"):
            PropensityModel(("ability", "ability"))

    def test_string_covariate_is_one_column(self):
        assert PropensityModel("ability").covariates == ("ability",)

    def test_formula(self):
        assert PropensityModel(("a", "b")).formula("t") == "t ~ a + b"
        assert PropensityModel().formula("t") == "t ~ 1"

    def test_frozen(self):
        model = PropensityModel(("ability",))
        with pytest.raises(AttributeError):
            model.link = "probit"


class TestRandomAssignment:
    def test_ipw_approaches_naive_difference(self):
        rng = np.random.default_rng(5)
        n = 20_000
        x = rng.normal(size=n)
        t = rng.random(size=n) < 0.3
        y = 1.5 * t + x + rng.normal(size=n)
        df = pd.DataFrame({"x": x, "treatment": t, "outcome": y})

        ps = fit_propensity(df, PropensityModel(("x",)))
        ipw = weighted_ate(df, compute_weights(df, ps))
        assert ipw == pytest.approx(difference_in_means(df), abs=0.05)

    def test_intercept_only_equals_naive_difference(self):
        df = make_data()
        ps = fit_propensity(df, PropensityModel(), treatment="education")
        ipw = weighted_ate(df, compute_weights(df, ps, "education"), "education", "income")
        assert ipw == pytest.approx(difference_in_means(df, "education", "income"), abs=1e-9)


class TestTrimCommonSupport:
    def test_drops_units_outside_bounds(self):
        data = pd.DataFrame(
            {"treatment": [True, False, True, False], "outcome": [1.0, 2.0, 3.0, 4.0]},
            index=["a", "b", "c", "d"],
        )
        ps = pd.Series([0.005, 0.5, 0.995, 0.3], index=data.index)
        kept, kept_ps = trim_common_support(data, ps)
        assert list(kept.index) == ["b", "d"]
        assert kept_ps.index.equals(kept.index)
        assert kept_ps.tolist() == [0.5, 0.3]

    def test_bounds_are_exclusive(self):
        data = pd.DataFrame({"treatment": [True, False], "outcome": [1.0, 2.0]})
        kept, _ = trim_common_support(data, [0.1, 0.9], lower=0.1, upper=0.9)
        assert len(kept) == 0

    def test_trimming_every_unit_leaves_empty_group(self):
        data = pd.DataFrame({"treatment": [True, False], "outcome": [1.0, 2.0]})
        kept, kept_ps = trim_common_support(data, [0.1, 0.9], lower=0.1, upper=0.9)
        weights = compute_weights(kept, kept_ps)
        assert weights.empty
        with pytest.raises(EmptyGroupError, match="The treated group has 0 unit"):
            weighted_ate(kept, weights)

    def test_trimming_one_group_leaves_empty_group(self):
        data = pd.DataFrame(
            {"treatment": [True, True, False, False], "outcome": [1.0, 2.0, 3.0, 4.0]}
        )
        kept, kept_ps = trim_common_support(data, [0.995, 0.999, 0.5, 0.3])
        assert not kept["treatment"].any()
        with pytest.raises(EmptyGroupError, match="The treated group has 0 unit"):
            weighted_ate(kept, compute_weights(kept, kept_ps))

    def test_trimming_removes_degenerate_weights(self):
        data = pd.DataFrame(
            {"treatment": [True, False, True, False], "outcome": [1.0, 2.0, 3.0, 4.0]}
        )
        ps = [1.0, 0.5, 0.4, 0.0]
        with pytest.raises(DegenerateWeightError):
            compute_weights(data, ps)
        kept, kept_ps = trim_common_support(data, ps)
        assert weighted_ate(kept, compute_weights(kept, kept_ps)) == pytest.approx(1.0)

    @pytest.mark.parametrize("lower, upper", [(0.5, 0.5), (-0.1, 0.9), (0.1, 1.1), (0.9, 0.1)])
    def test_invalid_bounds_raise(self, lower, upper):
        data = pd.DataFrame({"treatment": [True, False], "outcome": [1.0, 2.0]})
        with pytest.raises(ValueError, match="bounds"):
            trim_common_support(data, [0.5, 0.5], lower=lower, upper=upper)
