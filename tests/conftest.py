"""
Shared fixtures: simulated workshop datasets and small synthetic DGPs
with known effects.
"""

import numpy as np
import pandas as pd
import pytest

from causal_methods.data import simulate_survey, simulate_mortality
from causal_methods.recode import prepare_survey, prepare_mortality


@pytest.fixture(scope="session")
def survey_raw():
    return simulate_survey(n_per_country=300, seed=1)


@pytest.fixture(scope="session")
def survey(survey_raw):
    return prepare_survey(survey_raw)


@pytest.fixture(scope="session")
def mortality():
    return prepare_mortality(simulate_mortality(seed=3))


@pytest.fixture
def matching_df():
    """
    Selection on observables, true ATT = 2.

    T ~ Bernoulli(logistic(-0.7 + x1 + 0.5*x2))
    y = 1 + 2*T + x1 + x2 + eps
    """
    rng = np.random.RandomState(7)
    n = 400
    x1 = rng.normal(0, 1, n)
    x2 = (rng.uniform(size=n) < 0.4).astype(float)
    p = 1 / (1 + np.exp(-(-0.7 + x1 + 0.5 * x2)))
    t = (rng.uniform(size=n) < p).astype(float)
    y = 1 + 2 * t + x1 + x2 + rng.normal(0, 0.5, n)
    return pd.DataFrame({"y": y, "t": t, "x1": x1, "x2": x2})


@pytest.fixture
def rdd_data():
    """Sharp design at 0 with a jump of 2 and slope 1."""
    rng = np.random.RandomState(11)
    n = 2000
    x = rng.uniform(-1, 1, n)
    y = 0.5 + 1.0 * x + 2.0 * (x >= 0) + rng.normal(0, 0.3, n)
    return y, x
