"""
Workshop-wide settings: where data lives, survey missing codes and the
defaults used by the matching and RDD sections.
"""

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]

DATA_DIR = Path(os.environ.get("CAUSAL_WORKSHOP_DATA", PROJECT_ROOT / "data"))
OUTPUT_DIR = Path(os.environ.get("CAUSAL_WORKSHOP_OUTPUT", PROJECT_ROOT / "output"))

SURVEY_FILE = "survey.csv"
MORTALITY_FILE = "mortality.dta"

# Carpenter & Dobkin (2009) age-cell mortality rates, as distributed with
# Mastering 'Metrics.
MORTALITY_URL = (
    "https://www.masteringmetrics.com/wp-content/uploads/2015/01/AEJfigs.dta"
)
DOWNLOAD_TIMEOUT = 60

# ESS non-response codes (refusal / don't know / no answer) per variable.
SURVEY_MISSING_BY_COLUMN = {
    "ppltrst": (77, 88, 99),
    "eisced": (0, 55, 77, 88, 99),
    "agea": (999,),
    "gndr": (9,),
    "hinctnta": (77, 88, 99),
    "polintr": (7, 8, 9),
}

# eisced >= 6 is a bachelor's degree or above
UNIVERSITY_FROM = 6

DEFAULT_COUNTRY = "DE"
MLDA_CUTOFF = 21.0
DEFAULT_CALIPER = 0.2
DEFAULT_SEED = 42
