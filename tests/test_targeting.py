"""Tests for the fluctuation, the clever covariate and the targeting step."""

import numpy as np
import pandas as pd
import pytest
from sklearn.dummy import DummyClassifier, DummyRegressor
from sklearn.linear_model import LinearRegression, LogisticRegression
from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import PolynomialFeatures

from targeted_inference.engine import (
    Fluctuation,
    NuisanceSpec,
    TMLECache,
    clever_covariate_and_weights,
    compute_offset,
    indicator_values,
    run_targeting,
    truncate,
)
from targeted_inference.estimands import ATE, CM, IATE, indicator_fns
from targeted_inference.inference import EICEstimate, TMLEResult, compute_std, estimate_variance

CONFOUNDERS = ["W1", "W2", "W3"]


def iate_t1_t2(**kwargs):
    return IATE(
        "Y",
        {"T1": {"case": 1, "control": 0}, "T2": {"case": 1, "control": 0}},
        treatment_confounders=CONFOUNDERS,
        **kwargs,
    )


def propensity_learner():
    return LogisticRegression(C=1e6, max_iter=1000)


def interaction_classifier():
    return make_pipeline(
        PolynomialFeatures(degree=2, interaction_only=True, include_bias=False),
        LogisticRegression(C=1e6, max_iter=5000),
    )


def run(dataset, estimand, spec, **kwargs):
    cache = TMLECache(dataset)
    cache.update(estimand=estimand, spec=spec)
    return run_targeting(cache, verbose=0, **kwargs), cache


class TestFluctuation:

    def test_gaussian_recovers_epsilon(self, seed):
        np.random.seed(seed)
        n = 500
        H = np.random.randn(n)
        offset = np.random.randn(n)
        y = offset + 2.0 * H + 0.1 * np.random.randn(n)
        fluctuation = Fluctuation("gaussian").fit(H, offset, y)
        assert fluctuation.epsilon_ == pytest.approx(2.0, abs=0.05)
        np.testing.assert_allclose(fluctuation.predict_mean(H, offset), offset + fluctuation.epsilon_ * H)

    def test_binomial_predictions_are_probabilities(self, seed):
        np.random.seed(seed)
        n = 500
        H = np.random.randn(n)
        offset = np.zeros(n)
        y = np.random.binomial(1, 1 / (1 + np.exp(-0.5 * H)))
        fluctuation = Fluctuation("binomial").fit(H, offset, y)
        assert fluctuation.epsilon_ == pytest.approx(0.5, abs=0.3)
        mean = fluctuation.predict_mean(H, offset)
        assert ((mean > 0) & (mean < 1)).all()

    def test_unknown_family(self):
        with pytest.raises(ValueError, match="poisson"):
            Fluctuation("poisson")

    def test_offset(self):
        np.testing.assert_allclose(compute_offset([0.5, 0.2], probabilistic=False), [0.5, 0.2])
        offset = compute_offset([0.0, 0.5, 1.0], probabilistic=True)
        assert np.isfinite(offset).all()
        assert offset[1] == pytest.approx(0.0)
        assert offset[0] == pytest.approx(-offset[2])


class TestCleverCovariate:

    @pytest.fixture
    def treatments(self):
        return pd.DataFrame({"T1": [1, 1, 0, 0, 2], "T2": ["a", "b", "a", "b", "a"]})

    def test_indicator_values(self, treatments):
        indicators = indicator_fns(IATE(
            "Y", {"T1": {"case": 1, "control": 0}, "T2": {"case": "b", "control": "a"}}
        ))
        np.testing.assert_array_equal(
            indicator_values(indicators, treatments), [-1.0, 1.0, 1.0, -1.0, 0.0]
        )

    def test_truncate(self):
        np.testing.assert_allclose(truncate(np.array([0.0, 0.5, 1.0]), 0.01), [0.01, 0.5, 0.99])

    def test_unweighted_and_weighted(self, treatments):
        indicators = {(1, "a"): 2.0, (0, "a"): -1.0}
        covariate, weights = clever_covariate_and_weights(
            treatments, treatments, [], indicators, threshold=0.1
        )
        np.testing.assert_allclose(covariate, np.array([2.0, 0.0, -1.0, 0.0, 0.0]) / 0.9)
        np.testing.assert_allclose(weights, 1.0)

        covariate, weights = clever_covariate_and_weights(
            treatments, treatments, [], indicators, threshold=0.1, weighted_fluctuation=True
        )
        np.testing.assert_allclose(covariate, [1.0, 0.0, -1.0, 0.0, 0.0])
        np.testing.assert_allclose(weights, np.array([2.0, 1.0, 1.0, 1.0, 1.0]) / 0.9)

    def test_warns_when_no_row_matches(self, treatments):
        with pytest.warns(UserWarning, match="zero for every observation"):
            clever_covariate_and_weights(treatments, treatments, [], {(5, "z"): 1.0})


class TestTargeting:

    def test_result_structure(self, continuous_iate_dgp):
        spec = NuisanceSpec(outcome_mean=LinearRegression(), propensity_score=propensity_learner())
        result, cache = run(continuous_iate_dgp["data"], iate_t1_t2(), spec)

        assert isinstance(result, TMLEResult)
        assert isinstance(result.tmle, EICEstimate)
        assert result.tmle.n == continuous_iate_dgp["n"]
        assert result.tmle.ic.shape == (continuous_iate_dgp["n"],)
        assert result.tmle.estimator == "TMLE"
        assert result.ose.estimator == "OSE"
        assert cache.fluctuation is not None
        assert cache.data["fluctuation_settings"] == (1e-8, False)

    def test_targeted_ic_has_zero_mean(self, continuous_iate_dgp):
        spec = NuisanceSpec(outcome_mean=LinearRegression(), propensity_score=propensity_learner())
        result, _ = run(continuous_iate_dgp["data"], iate_t1_t2(), spec)
        assert abs(result.tmle.ic.mean()) < 1e-6

    def test_standard_errors_from_influence_curves(self, continuous_iate_dgp):
        spec = NuisanceSpec(outcome_mean=LinearRegression(), propensity_score=propensity_learner())
        result, _ = run(continuous_iate_dgp["data"], iate_t1_t2(), spec)
        n = continuous_iate_dgp["n"]
        for estimate in (result.tmle, result.ose):
            assert estimate.std == pytest.approx(compute_std(estimate.ic))
            assert estimate.std**2 == pytest.approx(estimate_variance(estimate.ic))
            assert estimate.se == pytest.approx(estimate.std / np.sqrt(n))
        assert compute_std(result.tmle.ic, use_bessel=False) < result.tmle.std

    def test_continuous_misspecified_outcome(self, continuous_iate_dgp):
        """A linear outcome model misses the interaction, the propensity model is correct."""
        spec = NuisanceSpec(outcome_mean=LinearRegression(), propensity_score=propensity_learner())
        result, _ = run(continuous_iate_dgp["data"], iate_t1_t2(), spec)
        truth = continuous_iate_dgp["truth"]

        assert abs(result.initial_estimate) < 1e-8
        assert abs(result.tmle.estimate - truth) < 4 * result.tmle.se
        assert abs(result.ose.estimate - truth) < 4 * result.ose.se

    def test_binary_constant_outcome_model(self, binary_iate_dgp):
        """TMLE corrects a constant outcome model through the propensity score."""
        spec = NuisanceSpec(outcome_mean=DummyClassifier(), propensity_score=propensity_learner())
        result, cache = run(binary_iate_dgp["data"], iate_t1_t2(), spec)
        truth = binary_iate_dgp["truth"]

        assert cache.spec.fluctuation_family() == "binomial"
        assert abs(result.initial_estimate) < 1e-12
        assert abs(result.tmle.estimate - truth) < 4 * result.tmle.se
        assert abs(result.ose.estimate - truth) < 4 * result.ose.se

    @pytest.mark.slow
    def test_binary_correct_outcome_model(self, binary_iate_dgp):
        spec = NuisanceSpec(outcome_mean=interaction_classifier(), propensity_score=propensity_learner())
        result, _ = run(binary_iate_dgp["data"], iate_t1_t2(), spec)
        truth = binary_iate_dgp["truth"]

        assert abs(result.initial_estimate - truth) < 4 * result.tmle.se
        assert abs(result.tmle.estimate - truth) < 4 * result.tmle.se
        assert abs(result.tmle.estimate - result.ose.estimate) < result.tmle.se

    @pytest.mark.slow
    def test_weighted_fluctuation(self, binary_iate_dgp):
        spec = NuisanceSpec(outcome_mean=DummyClassifier(), propensity_score=propensity_learner())
        result, cache = run(binary_iate_dgp["data"], iate_t1_t2(), spec, weighted_fluctuation=True)
        truth = binary_iate_dgp["truth"]

        assert cache.data["fluctuation_settings"] == (1e-8, True)
        assert abs(result.tmle.estimate - truth) < 4 * result.tmle.se

    def test_gaussian_fluctuation_of_classifier(self, binary_iate_dgp):
        spec = NuisanceSpec(
            outcome_mean=DummyClassifier(),
            propensity_score=propensity_learner(),
            fluctuation="gaussian",
        )
        result, _ = run(binary_iate_dgp["data"], iate_t1_t2(), spec)
        assert np.isfinite(result.tmle.estimate)

    def test_save_ic(self, continuous_iate_dgp):
        spec = NuisanceSpec(outcome_mean=LinearRegression(), propensity_score=propensity_learner())
        result, _ = run(continuous_iate_dgp["data"], iate_t1_t2(), spec, save_ic=False)
        assert result.tmle.ic is None
        assert result.ose.row_index is None
        assert result.tmle.se > 0


class TestCategoricalTreatments:

    def test_counterfactual_mean(self, small_dataset):
        spec = NuisanceSpec(outcome_mean=LinearRegression(), propensity_score=LogisticRegression())
        estimand = CM("Y", {"T2": "AC"}, treatment_confounders=["W1"])
        result, cache = run(small_dataset, estimand, spec)
        assert np.isfinite(result.tmle.estimate)
        assert result.tmle.se > 0
        assert list(cache.encoder.model.transform(small_dataset[["T2"]]).columns) == ["T2_AC", "T2_CC"]

    def test_missing_values_drop_rows(self, small_dataset):
        spec = NuisanceSpec(outcome_mean=LinearRegression(), propensity_score=LogisticRegression())
        estimand = ATE(
            "Y", {"T1": {"case": 1, "control": 0}},
            treatment_confounders=["W1", "W2"],
            outcome_extra_covariates=["C"],
        )
        result, _ = run(small_dataset, estimand, spec)
        assert result.tmle.n == len(small_dataset) - 15
        assert not result.tmle.row_index.isin(range(15)).any()

    def test_fit_reuse_messages(self, small_dataset, capsys):
        spec = NuisanceSpec(outcome_mean=DummyRegressor(), propensity_score=LogisticRegression())
        cache = TMLECache(small_dataset)
        cache.update(estimand=ATE("Y", {"T2": {"case": "AC", "control": "AA"}}, ["W1"]), spec=spec)
        run_targeting(cache, verbose=1)
        first = capsys.readouterr().out
        assert "Fitting the nuisance functions..." in first
        assert "Done." in first

        outcome_fit = cache.outcome_mean
        cache.update(estimand=ATE("Y", {"T2": {"case": "CC", "control": "AA"}}, ["W1"]))
        run_targeting(cache, verbose=1)
        second = capsys.readouterr().out
        assert "Reusing previous P(T2 | W1)" in second
        assert "Reusing previous E[Y | T2, W1]" in second
        assert cache.outcome_mean is outcome_fit
