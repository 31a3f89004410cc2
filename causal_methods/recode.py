"""
Variable recoding for the workshop datasets.

Survey: non-response codes to NaN, ordinal education collapsed to a
university indicator, gender to a female dummy. Mortality: running
variable centred at the drinking-age cutoff plus the treatment dummy.
"""

import numpy as np
import pandas as pd

from . import config


def clean_missing(df, columns=None, codes=None):
    """
    Replace survey non-response codes with NaN.

    Parameters
    ----------
    df : DataFrame
    columns : list of str, optional
        Columns to clean. Defaults to every column listed in
        ``config.SURVEY_MISSING_BY_COLUMN`` that is present.
    codes : sequence or dict, optional
        A single sequence of codes applied to every column, or a
        ``{column: codes}`` mapping. Defaults to the per-column ESS codes.

    Returns
    -------
    DataFrame (copy) with codes replaced by NaN.
    """
    out = df.copy()
    if codes is None:
        codes = config.SURVEY_MISSING_BY_COLUMN
    if columns is None:
        columns = [c for c in config.SURVEY_MISSING_BY_COLUMN if c in out.columns]

    for col in columns:
        col_codes = codes.get(col, ()) if isinstance(codes, dict) else codes
        out[col] = out[col].where(~out[col].isin(list(col_codes)))
    return out


def collapse_education(eisced, university_from=config.UNIVERSITY_FROM, other=55):
    """
    Collapse the 7-level ES-ISCED scale into a binary university indicator.

    Levels ``>= university_from`` map to 1, lower levels to 0. The
    "other" category and anything outside 1-7 become NaN.
    """
    s = pd.Series(eisced, dtype=float)
    valid = s.between(1, 7) & (s != other)
    out = (s >= university_from).astype(float)
    return out.where(valid)


def recode_female(gndr):
    """ESS gndr (1 male, 2 female) to a 0/1 female dummy, NaN otherwise."""
    s = pd.Series(gndr, dtype=float)
    return (s == 2).astype(float).where(s.isin([1, 2]))


def center(x, cutoff):
    """Centre a running variable so the threshold sits at zero."""
    return x - cutoff


def treatment_indicator(x, cutoff):
    """Sharp assignment: 1 at or above the cutoff, 0 below."""
    return (np.asarray(x) >= cutoff).astype(float)


def subset_country(df, country, column="country"):
    """
    Keep the rows of a single country.

    Raises
    ------
    ValueError
        If no rows match.
    """
    out = df[df[column] == country].copy()
    if out.empty:
        available = sorted(df[column].dropna().unique())
        raise ValueError(f"No rows for country {country!r}; available: {available}")
    return out


def add_interaction(df, a, b, name=None):
    """Append the product column ``a:b`` (or ``name``) to a copy of ``df``."""
    out = df.copy()
    out[name or f"{a}:{b}"] = out[a] * out[b]
    return out


def prepare_survey(df, university_from=config.UNIVERSITY_FROM, dropna=True):
    """
    Full recoding pipeline for the survey microdata.

    Returns
    -------
    DataFrame with columns country, trust, univ, female, age, income,
    polintr (and eisced for reference). Rows with any missing analysis
    variable are dropped when ``dropna`` is True.
    """
    clean = clean_missing(df)
    out = pd.DataFrame({
        "country": clean["cntry"].astype(str),
        "trust": clean["ppltrst"].astype(float),
        "eisced": clean["eisced"].astype(float),
        "univ": collapse_education(clean["eisced"], university_from).values,
        "female": recode_female(clean["gndr"]).values,
        "age": clean["agea"].astype(float),
    }, index=clean.index)
    if "hinctnta" in clean.columns:
        out["income"] = clean["hinctnta"].astype(float)
    if "polintr" in clean.columns:
        out["polintr"] = clean["polintr"].astype(float)

    if dropna:
        out = out.dropna().reset_index(drop=True)
    out.attrs["source"] = df.attrs.get("source", "unknown")
    return out


def prepare_mortality(df, cutoff=config.MLDA_CUTOFF, outcomes=None):
    """
    Recode the mortality table for RDD.

    Adds ``age`` (agecell centred at the cutoff) and ``over21`` (treatment
    dummy), and drops cells with a missing running variable or outcome.
    """
    out = df.copy()
    if outcomes is None:
        outcomes = [c for c in ("all", "internal", "external", "mva")
                    if c in out.columns]
    out = out.dropna(subset=["agecell"] + list(outcomes))
    out["age"] = center(out["agecell"].astype(float), cutoff)
    out["over21"] = treatment_indicator(out["agecell"], cutoff)
    out = out.reset_index(drop=True)
    out.attrs["source"] = df.attrs.get("source", "unknown")
    return out
