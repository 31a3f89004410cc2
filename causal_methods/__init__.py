"""
causal_methods -- from-scratch estimators for the causal-inference workshop.

t-tests, regression with fixed effects and interactions, propensity
scores, nearest / caliper / full matching with balance diagnostics, and
regression discontinuity, implemented on numpy / scipy with no
black-box econometrics packages.
"""

from .utils import ols_fit, add_const
from . import config
from . import data
from . import recode
from . import ttest
from . import ols
from . import heteroskedasticity
from . import fixed_effects
from . import logit
from . import propensity
from . import matching
from . import balance
from . import rdd
from . import bootstrap
from . import plots
from . import report
