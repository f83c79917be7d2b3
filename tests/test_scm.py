"""Tests for causal graphs and identification."""

import pytest

from targeted_inference.errors import CycleError, MissingVertexError
from targeted_inference.estimands import ATE, CM, IATE, ComposedEstimand, StatisticalEstimand, difference
from targeted_inference.scm import SCM, BackdoorAdjustment, StaticSCM, identify


@pytest.fixture
def scm():
    return SCM.from_equations({
        "Y": ["T1", "T2", "W1", "W2", "C"],
        "T1": ["W1", "W2"],
        "T2": ["W2"],
    })


class TestSCM:
    """Test suite for the SCM graph."""

    def test_parents_sorted(self, scm):
        assert scm.parents("Y") == ("C", "T1", "T2", "W1", "W2")
        assert scm.parents("T2") == ("W2",)
        assert scm.parents("W1") == ()

    def test_equations_accumulate_parents(self):
        scm = SCM([("Y", ["T"])])
        scm.add_equation("Y", ["W"])
        assert scm.parents("Y") == ("T", "W")
        assert set(scm.vertices()) == {"T", "W", "Y"}

    def test_cycle_leaves_graph_unchanged(self, scm):
        before = scm.equations()
        with pytest.raises(CycleError):
            scm.add_equation("W2", ["Y", "Z"])
        assert scm.equations() == before
        assert "Z" not in scm
        assert scm.parents("W2") == ()

    def test_cycle_error_is_value_error(self):
        with pytest.raises(ValueError):
            SCM({"A": ["B"], "B": ["A"]})

    def test_missing_vertex(self, scm):
        with pytest.raises(MissingVertexError, match="T3"):
            scm.parents("T3")

    def test_static_scm(self):
        scm = StaticSCM(outcomes=["Y1", "Y2"], treatments=["T"], confounders=["W1", "W2"])
        assert scm.parents("T") == ("W1", "W2")
        assert scm.parents("Y1") == ("T", "W1", "W2")
        assert scm.parents("Y2") == ("T", "W1", "W2")


class TestIdentify:
    """Test suite for backdoor identification."""

    def test_confounders_are_parents(self, scm):
        causal = IATE("Y", {
            "T1": {"case": 1, "control": 0},
            "T2": {"case": 1, "control": 0},
        })
        statistical = identify(causal, scm)
        assert isinstance(statistical, StatisticalEstimand)
        assert statistical.confounders_of("T1") == scm.parents("T1")
        assert statistical.confounders_of("T2") == scm.parents("T2")
        assert statistical.treatment_values == causal.treatment_values
        assert statistical.outcome_extra_covariates == ()

    def test_extra_covariates(self, scm):
        causal = CM("Y", {"T1": 1})
        statistical = identify(causal, scm, BackdoorAdjustment(outcome_extra_covariates=["C"]))
        assert statistical.outcome_extra_covariates == ("C",)

    def test_statistical_is_unchanged(self, scm):
        statistical = ATE("Y", {"T1": {"case": 1, "control": 0}}, treatment_confounders=["W1"])
        assert identify(statistical, scm) is statistical

    def test_missing_treatment(self, scm):
        with pytest.raises(MissingVertexError):
            identify(ATE("Y", {"T3": {"case": 1, "control": 0}}), scm)

    def test_composed_identified_argwise(self, scm):
        composed = ComposedEstimand(difference, (
            CM("Y", {"T1": 1}),
            CM("Y", {"T1": 0}),
        ))
        identified = identify(composed, scm)
        assert identified.f is difference
        assert all(isinstance(arg, StatisticalEstimand) for arg in identified.args)
        assert identified.args[0].confounders_of("T1") == ("W1", "W2")
