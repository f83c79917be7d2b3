"""Pytest configuration and fixtures for targeted_inference tests."""

import itertools

import numpy as np
import pandas as pd
import pytest
from scipy.special import expit


@pytest.fixture
def seed():
    """Random seed for reproducibility."""
    return 42


def _confounders(n):
    return {
        "W1": np.random.binomial(1, 0.5, size=n),
        "W2": np.random.binomial(1, 0.5, size=n),
        "W3": np.random.binomial(1, 0.5, size=n),
    }


def _treatments(W):
    """T1 and T2 are independent given W, both logistic-linear in W."""
    p1 = expit(0.3 + 0.5 * W["W1"] - 1.0 * W["W2"])
    p2 = expit(-0.5 + 1.0 * W["W3"] + 0.5 * W["W1"])
    return np.random.binomial(1, p1), np.random.binomial(1, p2)


def binary_outcome_logit(w1, w2, w3, t1, t2):
    return -1 + 2 * w1 + w2 - 2 * w3 - t1 + t2 + 2 * t1 * t2


def continuous_outcome_mean(w1, w2, w3, t1, t2):
    return 1 + 2 * w1 - w2 + 0.5 * w3 + t1 + 0.5 * t2 + 1.5 * t1 * t2


def true_iate(mean_fn):
    """Average over the 8 equiprobable confounder settings."""
    total = 0.0
    for w1, w2, w3 in itertools.product((0, 1), repeat=3):
        total += (
            mean_fn(w1, w2, w3, 1, 1)
            - mean_fn(w1, w2, w3, 1, 0)
            - mean_fn(w1, w2, w3, 0, 1)
            + mean_fn(w1, w2, w3, 0, 0)
        )
    return total / 8


@pytest.fixture
def binary_iate_dgp(seed):
    """Binary outcome, two binary treatments, three binary confounders.

    logit P(Y=1) = -1 + 2W1 + W2 - 2W3 - T1 + T2 + 2 T1 T2
    """
    np.random.seed(seed)
    n = 5000
    W = _confounders(n)
    T1, T2 = _treatments(W)
    Y = np.random.binomial(1, expit(binary_outcome_logit(W["W1"], W["W2"], W["W3"], T1, T2)))
    df = pd.DataFrame({**W, "T1": T1, "T2": T2, "Y": Y})

    return {
        "data": df,
        "truth": true_iate(lambda *args: expit(binary_outcome_logit(*args))),
        "n": n,
    }


@pytest.fixture
def continuous_iate_dgp(seed):
    """Continuous outcome with a T1 x T2 interaction of 1.5."""
    np.random.seed(seed)
    n = 2000
    W = _confounders(n)
    T1, T2 = _treatments(W)
    Y = continuous_outcome_mean(W["W1"], W["W2"], W["W3"], T1, T2) + np.random.randn(n) * 0.5
    df = pd.DataFrame({**W, "T1": T1, "T2": T2, "Y": Y})

    return {
        "data": df,
        "truth": true_iate(continuous_outcome_mean),
        "n": n,
    }


@pytest.fixture
def small_dataset(seed):
    """Small mixed-type dataset with missing values for cache tests."""
    np.random.seed(seed)
    n = 300
    W1 = np.random.randn(n)
    W2 = np.random.randn(n)
    T1 = np.random.binomial(1, expit(0.5 * W1), size=n)
    T2 = np.random.choice(["AA", "AC", "CC"], size=n)
    Y = W1 + T1 + np.random.randn(n)
    C = np.random.randn(n)
    df = pd.DataFrame({"W1": W1, "W2": W2, "T1": T1, "T2": T2, "C": C, "Y": Y})
    df.loc[:9, "C"] = np.nan
    df.loc[10:14, "W2"] = np.nan
    return df


@pytest.fixture
def generation_dataset():
    """Dataset with missing treatment values used to generate estimands."""
    return pd.DataFrame({
        "T1": [0, 1, 2, None],
        "T2": ["AC", "CC", None, "AA"],
        "W1": [1, 2, 3, 4],
        "W2": [1, 2, 3, 4],
        "C": [1, 2, 3, 4],
        "Y1": [1, 2, 3, 4],
        "Y2": [1, 2, 3, 4],
    })
