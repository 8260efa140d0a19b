# Purpose: Utility functions for robust fixture loading, parsing, and numeric conversion in the analytics engine.
# This module provides helpers for reading JSON fixtures, parsing dates and coercing numeric fields,
# with strong error handling and logging. Missing or invalid numbers always become NaN, never 0.

import json
import logging
from typing import Optional, Any, List
import pandas as pd
import numpy as np

logger = logging.getLogger(__name__)


def read_json_robustly(filepath: str) -> Optional[Any]:
    """
    Attempts to read a JSON fixture robustly, handling common errors gracefully.
    Returns the decoded document if successful, or None if an error occurs.
    Logs errors with details for diagnostics.
    """
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        logger.error(f"File not found: {filepath}", exc_info=True)
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error in {filepath}: {e}", exc_info=True)
    except UnicodeDecodeError as e:
        logger.error(f"Unicode decode error in {filepath}: {e}", exc_info=True)
    except Exception as e:
        logger.error(f"Unexpected error reading {filepath}: {e}", exc_info=True)
    return None


def parse_dates_robustly(series: pd.Series, formats: list = None) -> pd.Series:
    """
    Attempts to parse a pandas Series of date strings using multiple common formats and pandas inference.
    Tries standard formats (YYYY-MM-DD, DD/MM/YYYY, ISO8601), then falls back to pandas' flexible parser.
    Logs warnings on failures and returns a Series with NaT for unparseable values.
    Args:
        series (pd.Series): Series of date strings to parse.
        formats (list, optional): List of date formats to try. If None, uses defaults.
    Returns:
        pd.Series: Series of parsed dates (dtype 'datetime64[ns]'), with NaT for unparseable values.
    """
    if not isinstance(series, pd.Series):
        logger.error("parse_dates_robustly: Input must be a pandas Series")
        return pd.Series(dtype='datetime64[ns]')

    if series.empty:
        return pd.Series(dtype='datetime64[ns]')

    if pd.api.types.is_datetime64_any_dtype(series):
        return series

    if formats is None:
        formats = ["%Y-%m-%d", "%d/%m/%Y", "%Y-%m-%dT%H:%M:%S"]

    parsed = pd.Series([pd.NaT] * len(series), index=series.index, dtype='datetime64[ns]')
    for fmt in formats:
        mask = parsed.isna() & series.notna()
        if mask.any():
            parsed.loc[mask] = pd.to_datetime(series[mask], format=fmt, errors="coerce")

    # Final fallback: pandas flexible parser
    mask = parsed.isna() & series.notna()
    if mask.any():
        try:
            parsed.loc[mask] = pd.to_datetime(series[mask], errors="coerce")
        except (ValueError, TypeError) as e:
            logger.warning(f"Error in fallback flexible date parsing: {e}")

    nat_count = parsed.isna().sum() - series.isna().sum()
    if nat_count > 0:
        failed_examples = series[parsed.isna() & series.notna()].unique()[:5]
        logger.warning(
            f"parse_dates_robustly: {nat_count}/{len(series)} values could not be parsed as dates. "
            f"Examples of failed values: {list(failed_examples)}"
        )
    return parsed


def convert_to_numeric_robustly(series: pd.Series, log: bool = True) -> pd.Series:
    """
    Converts a pandas Series to numeric, coercing errors to NaN.
    Zeros are kept: a zero vega or volatility is a value, not a missing field.
    Logs the number of values coerced to NaN.
    """
    numeric = pd.to_numeric(series, errors="coerce")
    coerced_nans = numeric.isna().sum() - series.isna().sum()
    if log:
        if coerced_nans > 0:
            logger.warning(
                f"convert_to_numeric_robustly: {coerced_nans} values could not be converted to numeric and were set to NaN. Examples: {series[numeric.isna() & series.notna()].unique()[:5]}"
            )
        else:
            logger.debug(
                f"convert_to_numeric_robustly: All {len(series)} values converted to numeric."
            )
    return numeric.astype(float)


def coerce_numeric_columns(df: pd.DataFrame, columns: List[str]) -> pd.DataFrame:
    """Returns a copy of *df* with every listed column that exists converted to float (NaN on failure)."""
    out = df.copy()
    for col in columns:
        if col in out.columns:
            out[col] = convert_to_numeric_robustly(out[col], log=False)
    return out


def is_missing(value: Any) -> bool:
    """True for None, NaN and NaT; False for any other scalar."""
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def to_optional_float(value: Any) -> Optional[float]:
    """Returns *value* as a float, or None when it is missing or not numeric."""
    if is_missing(value):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if np.isnan(result):
        return None
    return result
