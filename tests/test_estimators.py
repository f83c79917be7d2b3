"""Tests for the high level estimation API."""

import numpy as np
import pandas as pd
import pytest
from sklearn.base import clone
from sklearn.linear_model import LinearRegression, LogisticRegression

from targeted_inference import (
    ATE,
    CM,
    IATE,
    ComposedEstimand,
    ComposedEstimate,
    NuisanceSpec,
    OneSampleHotellingT2Test,
    StaticSCM,
    TMLEResult,
    TMLEstimator,
    estimate_composed,
    generate_ates,
    significance_test,
    tmle,
)
from targeted_inference.errors import EstimandValidationError
from targeted_inference.estimands import ConditionalDistribution, difference


@pytest.fixture
def scm():
    return StaticSCM(outcomes=["Y"], treatments=["T1", "T2"], confounders=["W1", "W2", "W3"])


@pytest.fixture
def spec():
    return NuisanceSpec(outcome_mean=LinearRegression(), propensity_score=LogisticRegression(max_iter=1000))


@pytest.fixture
def mixed_outcomes(seed):
    """One treatment with a binary and a continuous outcome."""
    np.random.seed(seed)
    n = 500
    W = np.random.randn(n)
    T = np.random.binomial(1, 1 / (1 + np.exp(-0.5 * W)))
    Yb = np.random.binomial(1, 1 / (1 + np.exp(-(0.5 * T + W))))
    Yc = 1.0 + 2.0 * T + W + np.random.randn(n)
    return pd.DataFrame({"W": W, "T": T, "Yb": Yb, "Yc": Yc})


def mixed_composed():
    contrast = {"T": {"case": 1, "control": 0}}
    return ComposedEstimand(difference, (ATE("Yb", contrast), ATE("Yc", contrast)))


class TestTmle:

    def test_identifies_causal_estimand(self, continuous_iate_dgp, scm, spec):
        causal = IATE("Y", {"T1": {"case": 1, "control": 0}, "T2": {"case": 1, "control": 0}})
        result, cache = tmle(causal, spec, continuous_iate_dgp["data"], scm=scm, verbose=0)
        assert isinstance(result, TMLEResult)
        assert cache.estimand.confounders_of("T1") == ("W1", "W2", "W3")
        assert abs(result.tmle.estimate - continuous_iate_dgp["truth"]) < 4 * result.tmle.se

    def test_causal_estimand_without_scm(self, continuous_iate_dgp, spec):
        with pytest.raises(EstimandValidationError, match="identify"):
            tmle(CM("Y", {"T1": 1}), spec, continuous_iate_dgp["data"], verbose=0)

    def test_shared_cache(self, continuous_iate_dgp, scm, spec):
        data = continuous_iate_dgp["data"]
        _, cache = tmle(ATE("Y", {"T1": {"case": 1, "control": 0}}), spec, data, scm=scm, verbose=0)
        propensity = cache.propensity_score[ConditionalDistribution("T1", ("W1", "W2", "W3"))]
        _, same = tmle(CM("Y", {"T1": 1}), spec, data, scm=scm, cache=cache, verbose=0)
        assert same is cache
        assert cache.propensity_score[ConditionalDistribution("T1", ("W1", "W2", "W3"))] is propensity


class TestEstimateComposed:

    def test_generated_ates(self, small_dataset, spec):
        composed = generate_ates(small_dataset, ["T2"], "Y", confounders=["W1"])
        result, results, cache = estimate_composed(composed, spec, small_dataset, verbose=0)

        assert isinstance(result, ComposedEstimate)
        assert result.estimate.shape == (3,)
        assert result.cov.shape == (3, 3)
        assert set(results) == set(composed.args)
        assert len(cache.propensity_score) == 1
        for i, estimand in enumerate(composed.args):
            assert result.estimate[i] == pytest.approx(results[estimand].tmle.estimate)
        assert isinstance(significance_test(result), OneSampleHotellingT2Test)

    def test_difference_on_different_rows(self, small_dataset, spec):
        first = ATE("Y", {"T1": {"case": 1, "control": 0}}, ["W1"])
        second = ATE("Y", {"T1": {"case": 1, "control": 0}}, ["W2"])
        composed = ComposedEstimand(difference, (first, second))
        result, results, _ = estimate_composed(composed, spec, small_dataset, verbose=0)

        assert results[first].tmle.n == len(small_dataset)
        assert results[second].tmle.n == len(small_dataset) - 5
        assert result.n == len(small_dataset)
        expected = results[first].tmle.estimate - results[second].tmle.estimate
        assert result.estimate[0] == pytest.approx(expected)

    @pytest.mark.parametrize("ordering", ["groups", "brute_force", "given"])
    def test_orderings_agree(self, small_dataset, spec, ordering):
        composed = generate_ates(small_dataset, ["T2"], "Y", confounders=["W1"])
        reference, _, _ = estimate_composed(composed, spec, small_dataset, verbose=0, ordering="given")
        result, _, _ = estimate_composed(composed, spec, small_dataset, verbose=0, ordering=ordering)
        np.testing.assert_allclose(result.estimate, reference.estimate)

    def test_one_step_components(self, small_dataset, spec):
        composed = generate_ates(small_dataset, ["T2"], "Y", confounders=["W1"])
        result, results, _ = estimate_composed(composed, spec, small_dataset, estimator="ose", verbose=0)
        assert result.estimate[0] == pytest.approx(results[composed.args[0]].ose.estimate)

    def test_unknown_options(self, small_dataset, spec):
        composed = generate_ates(small_dataset, ["T2"], "Y", confounders=["W1"])
        with pytest.raises(ValueError, match="estimator"):
            estimate_composed(composed, spec, small_dataset, estimator="aipw", verbose=0)
        with pytest.raises(ValueError, match="ordering"):
            estimate_composed(composed, spec, small_dataset, ordering="random", verbose=0)

    def test_spec_per_outcome(self, mixed_outcomes):
        outcomes = []

        def spec_for(outcome):
            outcomes.append(outcome)
            learner = LogisticRegression(max_iter=1000) if outcome == "Yb" else LinearRegression()
            return NuisanceSpec(outcome_mean=learner, propensity_score=LogisticRegression(max_iter=1000))

        scm = StaticSCM(["Yb", "Yc"], ["T"], ["W"])
        result, results, cache = estimate_composed(
            mixed_composed(), spec_for, mixed_outcomes, scm=scm, ordering="given", verbose=0
        )
        assert outcomes == ["Yb", "Yc"]
        assert isinstance(cache.spec.outcome_mean, LinearRegression)
        assert len(cache.propensity_score) == 1
        assert np.isfinite(result.estimate).all()


class TestTMLEstimator:

    def test_clone(self, scm):
        est = TMLEstimator(scm=scm, threshold=0.01, verbose=0)
        cloned = clone(est)
        assert cloned.threshold == 0.01
        assert cloned.verbose == 0
        assert not hasattr(cloned, "results_")

    def test_fit(self, continuous_iate_dgp, scm):
        est = TMLEstimator(scm=scm, verbose=0)
        causal = IATE("Y", {"T1": {"case": 1, "control": 0}, "T2": {"case": 1, "control": 0}})
        result = est.fit(continuous_iate_dgp["data"], causal)

        assert est.is_fitted_
        assert est.results_ is result
        assert isinstance(est.cache_.spec.outcome_mean, LinearRegression)
        summary = result.summary()
        assert "TMLE" in summary
        assert "OSE" in summary
        assert "IATE = " in summary
        assert "TMLEResult" in repr(result)
        assert np.isfinite(est.cache_.last_fluctuation_epsilon)

    def test_binary_outcome_default_learner(self, binary_iate_dgp, scm):
        est = TMLEstimator(scm=scm, verbose=0)
        est.fit(binary_iate_dgp["data"], ATE("Y", {"T1": {"case": 1, "control": 0}}))
        assert isinstance(est.cache_.spec.outcome_mean, LogisticRegression)
        assert est.cache_.spec.fluctuation_family() == "binomial"

    def test_cache_reused_across_fits(self, continuous_iate_dgp, scm):
        data = continuous_iate_dgp["data"]
        est = TMLEstimator(scm=scm, verbose=0)
        est.fit(data, ATE("Y", {"T1": {"case": 1, "control": 0}}))
        cache = est.cache_
        outcome_fit = cache.outcome_mean

        est.fit(data, ATE("Y", {"T1": {"case": 0, "control": 1}}))
        assert est.cache_ is cache
        assert cache.outcome_mean is outcome_fit

        est.fit(data.copy(), ATE("Y", {"T1": {"case": 1, "control": 0}}))
        assert est.cache_ is not cache

    def test_fit_composed(self, small_dataset):
        est = TMLEstimator(verbose=0)
        composed = generate_ates(small_dataset, ["T2"], "Y", confounders=["W1"])
        result = est.fit(small_dataset, composed)
        assert isinstance(result, ComposedEstimate)
        assert len(est.component_results_) == 3
        assert "Composed Estimate" in result.summary()

    def test_fit_empty_composed(self, small_dataset):
        est = TMLEstimator(verbose=0)
        with pytest.raises(ValueError, match="no components"):
            est.fit(small_dataset, ComposedEstimand(difference, ()))

    def test_fit_composed_mixed_outcome_types(self, mixed_outcomes):
        est = TMLEstimator(scm=StaticSCM(["Yb", "Yc"], ["T"], ["W"]), ordering="given", verbose=0)
        result = est.fit(mixed_outcomes, mixed_composed())

        assert result.is_univariate
        assert np.isfinite(result.estimate).all()
        assert np.isfinite(result.cov).all()
        assert isinstance(est.cache_.spec.outcome_mean, LinearRegression)
        binary, continuous = sorted(est.component_results_, key=lambda e: e.outcome)
        assert -1.0 <= est.component_results_[binary].initial_estimate <= 1.0
        assert abs(est.component_results_[continuous].tmle.estimate - 2.0) < 0.5

    def test_fit_composed_shares_given_learner(self, mixed_outcomes):
        learner = LinearRegression()
        est = TMLEstimator(
            outcome_mean=learner, scm=StaticSCM(["Yb", "Yc"], ["T"], ["W"]), verbose=0
        )
        result = est.fit(mixed_outcomes, mixed_composed())
        assert est.cache_.spec.outcome_mean is learner
        assert len(est.component_results_) == 2
        assert np.isfinite(result.estimate).all()
