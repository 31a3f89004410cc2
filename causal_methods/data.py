"""
Dataset loaders for the two workshop documents.
================================================

1. **Survey** -- European Social Survey style microdata, one row per
   respondent, raw ESS codes (``cntry``, ``eisced``, ``ppltrst``, ``agea``,
   ``gndr``, ``hinctnta``, ``polintr``). ESS files require registration,
   so the file has to be placed in ``DATA_DIR`` by hand.

2. **Mortality** -- Carpenter & Dobkin (2009) death rates per 100,000 by
   age cell around the minimum legal drinking age. Downloaded on demand
   and cached in ``DATA_DIR``.

Both loaders fall back to simulated data with the same column layout when
``source="auto"`` and nothing can be read. The frame's ``attrs["source"]``
records where the rows came from.
"""

from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd
import requests

from . import config

SURVEY_SOURCES = ("auto", "file", "simulate")
MORTALITY_SOURCES = ("auto", "file", "download", "simulate")

MORTALITY_OUTCOMES = (
    "all", "internal", "external", "mva", "suicide", "homicide",
    "alcohol", "drugs",
)

# Country intercepts for the simulated survey (trust scale 0-10).
_COUNTRY_TRUST = {
    "DE": 0.3, "FR": -0.6, "GB": 0.2, "SE": 1.4, "PL": -1.0,
    "ES": -0.2, "NL": 0.9, "IT": -0.8,
}


def simulate_survey(countries: Sequence[str] = ("DE", "FR", "GB", "SE", "PL", "ES"),
                    n_per_country: int = 800, seed: Optional[int] = 42) -> pd.DataFrame:
    """
    Simulate ESS-coded survey responses.

    DGP (per respondent, unobserved ``ability`` ~ N(0, 1)):
        P(university) = logistic(-0.9 + 0.9*ability - 0.02*(age-45) + 0.15*female + shift_c)
        income decile = 5.5 + 1.2*university + 1.3*ability + noise
        trust = 4.8 + alpha_c + 0.6*university + 0.5*female*university
                + 0.15*(income-5.5) + 0.5*ability + 0.01*(age-45) + eps

    Non-response codes are injected at realistic rates so that the
    recoding step has something to do.

    Returns
    -------
    DataFrame with columns idno, cntry, eisced, ppltrst, agea, gndr,
    hinctnta, polintr.
    """
    if seed is not None:
        np.random.seed(seed)

    frames = []
    for c, country in enumerate(countries):
        n = n_per_country
        alpha = _COUNTRY_TRUST.get(country, 0.0)
        ability = np.random.normal(0, 1, n)
        age = np.random.randint(18, 90, n)
        female = (np.random.uniform(size=n) < 0.52).astype(int)

        lin = (-0.9 + 0.9 * ability - 0.02 * (age - 45) + 0.15 * female
               + 0.25 * alpha)
        univ = (np.random.uniform(size=n) < 1 / (1 + np.exp(-lin))).astype(int)

        lower = np.random.choice([1, 2, 3, 4, 5], n, p=[0.1, 0.2, 0.3, 0.25, 0.15])
        upper = np.random.choice([6, 7], n, p=[0.65, 0.35])
        eisced = np.where(univ == 1, upper, lower)

        income = 5.5 + 1.2 * univ + 1.3 * ability + np.random.normal(0, 1.8, n)
        income = np.clip(np.round(income), 1, 10).astype(int)

        polintr = 2.8 - 0.4 * univ - 0.3 * ability + np.random.normal(0, 0.7, n)
        polintr = np.clip(np.round(polintr), 1, 4).astype(int)

        trust = (4.8 + alpha + 0.6 * univ + 0.5 * female * univ
                 + 0.15 * (income - 5.5) + 0.5 * ability + 0.01 * (age - 45)
                 + np.random.normal(0, 1.6, n))
        trust = np.clip(np.round(trust), 0, 10).astype(int)

        frame = pd.DataFrame({
            "idno": np.arange(n) + 100000 * (c + 1),
            "cntry": country,
            "eisced": eisced,
            "ppltrst": trust,
            "agea": age,
            "gndr": np.where(female == 1, 2, 1),
            "hinctnta": income,
            "polintr": polintr,
        })
        frames.append(frame)

    df = pd.concat(frames, ignore_index=True)

    def _inject(col, codes, rate):
        hit = np.random.uniform(size=len(df)) < rate
        df.loc[hit, col] = np.random.choice(codes, hit.sum())

    _inject("ppltrst", [77, 88], 0.015)
    _inject("eisced", [55, 77, 88], 0.02)
    _inject("agea", [999], 0.005)
    _inject("gndr", [9], 0.002)
    _inject("hinctnta", [77, 88, 99], 0.08)
    _inject("polintr", [7, 8], 0.01)

    df.attrs["source"] = "simulated"
    return df


def simulate_mortality(n_cells: int = 48, seed: Optional[int] = 42) -> pd.DataFrame:
    """
    Simulate age-cell death rates around the minimum legal drinking age.

    Cells are equally spaced between 19 and 23 years. Each cause has a
    linear age profile, a jump at 21, and sampling noise; ``external`` is
    the sum of the external causes and ``all = internal + external``.
    """
    if seed is not None:
        np.random.seed(seed)

    agecell = 19 + (np.arange(n_cells) + 0.5) * (4.0 / n_cells)
    a = agecell - config.MLDA_CUTOFF
    over = (a >= 0).astype(float)

    def _cause(level, slope, jump, sd):
        return level + slope * a + jump * over + np.random.normal(0, sd, n_cells)

    mva = _cause(31.0, -0.9, 4.5, 1.2)
    suicide = _cause(11.5, 0.3, 1.8, 0.8)
    homicide = _cause(16.5, -0.2, 0.1, 0.9)
    extother = _cause(13.0, -0.4, 1.2, 0.8)
    internal = _cause(17.0, 0.5, 0.4, 0.7)
    alcohol = _cause(0.9, 0.05, 0.4, 0.15)
    drugs = _cause(4.0, 0.3, 0.5, 0.4)
    external = mva + suicide + homicide + extother

    df = pd.DataFrame({
        "agecell": agecell,
        "all": internal + external,
        "internal": internal,
        "external": external,
        "mva": mva,
        "suicide": suicide,
        "homicide": homicide,
        "alcohol": alcohol,
        "drugs": drugs,
        "extother": extother,
    })
    df.attrs["source"] = "simulated"
    return df


def read_table(path) -> pd.DataFrame:
    """Read a CSV / TSV / Stata file into a DataFrame, chosen by suffix."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(path)
    if suffix in (".tsv", ".tab"):
        return pd.read_csv(path, sep="\t")
    if suffix == ".dta":
        return pd.read_stata(path, convert_categoricals=False)
    raise ValueError(f"Unsupported file type: {path.name} (expected .csv, .tsv, .tab or .dta)")


def download_file(url: str, dest, timeout: int = config.DOWNLOAD_TIMEOUT) -> Path:
    """
    Download ``url`` to ``dest`` and return the path.

    Raises
    ------
    RuntimeError
        If the request fails or returns a non-2xx status.
    """
    dest = Path(dest)
    try:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Download failed for {url}: {e}") from e
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(resp.content)
    return dest


def load_survey(path=None, source: str = "auto", seed: Optional[int] = 42) -> pd.DataFrame:
    """
    Load the survey microdata.

    Parameters
    ----------
    path : str or Path, optional
        File to read. Defaults to ``DATA_DIR / SURVEY_FILE``.
    source : {"auto", "file", "simulate"}
        "file" requires the file to exist, "simulate" skips it, "auto"
        reads it when present and simulates otherwise.
    seed : int, optional
        Seed for the simulated fallback.
    """
    if source not in SURVEY_SOURCES:
        raise ValueError(f"source must be one of {SURVEY_SOURCES}, got {source!r}")
    if source == "simulate":
        return simulate_survey(seed=seed)

    path = Path(path) if path is not None else config.DATA_DIR / config.SURVEY_FILE
    if path.exists():
        df = read_table(path)
        df.attrs["source"] = str(path)
        return df
    if source == "file":
        raise RuntimeError(
            f"Survey file not found at {path}. Download an ESS round and "
            f"save it there, or use source='simulate'."
        )
    return simulate_survey(seed=seed)


def load_mortality(path=None, source: str = "auto", url: str = config.MORTALITY_URL,
                   seed: Optional[int] = 42) -> pd.DataFrame:
    """
    Load the age-cell mortality table.

    ``source="auto"`` tries the cached file, then a download, then falls
    back to simulation. ``"file"`` and ``"download"`` raise
    ``RuntimeError`` instead of falling back. ``seed`` seeds the simulation.
    """
    if source not in MORTALITY_SOURCES:
        raise ValueError(f"source must be one of {MORTALITY_SOURCES}, got {source!r}")
    if source == "simulate":
        return simulate_mortality(seed=seed)

    path = Path(path) if path is not None else config.DATA_DIR / config.MORTALITY_FILE

    if source in ("auto", "file") and path.exists():
        df = read_table(path)
        df.attrs["source"] = str(path)
        return df
    if source == "file":
        raise RuntimeError(f"Mortality file not found at {path}")

    try:
        download_file(url, path)
    except RuntimeError:
        if source == "download":
            raise
        return simulate_mortality(seed=seed)
    df = read_table(path)
    df.attrs["source"] = url
    return df
