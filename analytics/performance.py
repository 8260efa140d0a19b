# Purpose: Time-series transforms for price histories.
# Base-100 rebasing of a price path, point-to-point percentage performance, and the
# reference-point lookup used for 1W / 1M / 3M / MTD / YTD returns.

import logging
from typing import Dict, List, Optional, Sequence

import pandas as pd

from core import config
from core.data_utils import to_optional_float

logger = logging.getLogger(__name__)

PERIODS = ["1W", "1M", "3M", "MTD", "YTD"]


def rebase_to_base_100(values: Sequence[float], start_index: int = 0) -> List[float]:
    """
    Rebase a series so that values[start_index] == 100:
    Pt(rebased) = (Pt / P0) * 100

    A zero base gives a flat line of 100. Empty input or an out-of-range
    start_index gives an empty list.
    """
    values = list(values)
    if not values or start_index < 0 or start_index >= len(values):
        return []

    base_value = values[start_index]
    if base_value == 0:
        return [100.0 for _ in values]
    return [(value / base_value) * 100 for value in values]


def calculate_periodic_performance(current_price: float, reference_price: float) -> float:
    """Performance (%) = (P_current / P_reference - 1) x 100, or 0 for a zero reference."""
    if reference_price == 0:
        return 0.0
    return ((current_price / reference_price) - 1) * 100


def calculate_ytd_performance(current_price: float, start_of_year_price: float) -> float:
    return calculate_periodic_performance(current_price, start_of_year_price)


def calculate_mtd_performance(current_price: float, start_of_month_price: float) -> float:
    return calculate_periodic_performance(current_price, start_of_month_price)


def calculate_3m_performance(current_price: float, three_months_ago_price: float) -> float:
    return calculate_periodic_performance(current_price, three_months_ago_price)


def get_reference_date(as_of, period: str) -> pd.Timestamp:
    """Target date for a performance period, measured back from *as_of*.

    Raises:
        ValueError: For an unknown period code.
    """
    as_of = pd.Timestamp(as_of).normalize()
    if period == "YTD":
        return as_of.replace(month=1, day=1)
    if period == "MTD":
        return as_of.replace(day=1)
    if period == "3M":
        return as_of - pd.DateOffset(months=3)
    if period == "1M":
        return as_of - pd.DateOffset(months=1)
    if period == "1W":
        return as_of - pd.Timedelta(days=7)
    raise ValueError(f"Unknown performance period '{period}'. Expected one of {PERIODS}")


def find_reference_point(history: pd.DataFrame, target_date) -> Optional[pd.Series]:
    """Closest history row dated at or before *target_date*.

    Falls back to the earliest row when the target predates all history.
    Returns None for an empty history. *history* must be sorted by date.
    """
    if history is None or history.empty:
        return None
    target = pd.Timestamp(target_date)
    on_or_before = history[history[config.DATE_COL] <= target]
    if on_or_before.empty:
        return history.iloc[0]
    return on_or_before.iloc[-1]


def calculate_performance(
    history: pd.DataFrame,
    as_of=None,
    price_col: str = config.CB_PRICE_PCT_COL,
) -> Dict[str, Optional[float]]:
    """Trailing 1D / 1W / 1M / 3M / YTD performance (%) of one bond.

    *as_of* defaults to the last history date. 1D compares with the previous
    observation; the other periods use find_reference_point.
    """
    result: Dict[str, Optional[float]] = {
        config.PERF_1D_COL: None,
        config.PERF_1W_COL: 0.0,
        config.PERF_1M_COL: 0.0,
        config.PERF_3M_COL: 0.0,
        config.PERF_YTD_COL: 0.0,
    }
    if history is None or history.empty:
        return result

    if as_of is not None:
        history = history[history[config.DATE_COL] <= pd.Timestamp(as_of)]
        if history.empty:
            logger.warning(f"No history on or before {as_of}; performance left at defaults.")
            return result

    latest = history.iloc[-1]
    latest_price = to_optional_float(latest[price_col])
    if latest_price is None:
        logger.warning("Latest price missing; performance left at defaults.")
        return result
    as_of_date = pd.Timestamp(as_of) if as_of is not None else latest[config.DATE_COL]

    if len(history) > 1:
        previous_price = to_optional_float(history.iloc[-2][price_col])
        if previous_price is not None:
            result[config.PERF_1D_COL] = calculate_periodic_performance(latest_price, previous_price)

    for period, col in (
        ("1W", config.PERF_1W_COL),
        ("1M", config.PERF_1M_COL),
        ("3M", config.PERF_3M_COL),
        ("YTD", config.PERF_YTD_COL),
    ):
        reference = find_reference_point(history, get_reference_date(as_of_date, period))
        reference_price = to_optional_float(reference[price_col])
        if reference_price is None:
            result[col] = None
            continue
        result[col] = calculate_periodic_performance(latest_price, reference_price)
    return result
