# analytics/aggregation.py
# This file contains the query helpers used by the universe and portfolio pages.
# It includes filtering, sorting and pagination of the bond frame, group-by and cross-tab
# rollups over bucketed dimensions, and the portfolio / market summary figures.
# Bucket labels are recomputed on every call; maturity buckets move with the evaluation date.

import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from core import config
from core.data_utils import coerce_numeric_columns, is_missing
from analytics.classification import (
    get_rating_group,
    classify_market_cap_size,
    classify_residual_maturity,
)
from analytics.volatility_signals import calculate_average_volatility_spreads

logger = logging.getLogger(__name__)

DIMENSIONS = ["sector", "rating", "size", "maturity", "profile"]

_DIMENSION_COLUMNS = {
    "sector": config.SECTOR_COL,
    "rating": config.RATING_COL,
    "size": config.AMOUNT_ISSUED_COL,
    "maturity": config.MATURITY_DATE_COL,
    "profile": config.PROFILE_COL,
}

# === Filtering ================================================================


def filter_bonds(
    bonds: pd.DataFrame,
    search: Optional[str] = None,
    sector: Optional[Sequence[str]] = None,
    country: Optional[Sequence[str]] = None,
    rating: Optional[Sequence[str]] = None,
    currency: Optional[Sequence[str]] = None,
    size: Optional[Sequence[str]] = None,
    profile: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Apply the universe filters to the bond frame.

    Args:
        bonds: The bond frame to be filtered.
        search: Case-insensitive substring matched against ISIN, issuer and country.
        sector, country, currency, profile: Allowed raw values (empty or None = no filter).
        rating: Allowed rating groups (Investment Grade / High Yield / Not Rated).
        size: Allowed market-cap buckets.

    Returns:
        Filtered DataFrame (copy).
    """
    filtered = bonds.copy()
    if filtered.empty:
        return filtered

    if search:
        needle = search.lower()
        mask = pd.Series(False, index=filtered.index)
        for col in (config.ISIN_COL, config.ISSUER_COL, config.COUNTRY_COL):
            if col in filtered.columns:
                mask |= filtered[col].astype(str).str.lower().str.contains(needle, regex=False)
        filtered = filtered[mask]

    for values, col in (
        (sector, config.SECTOR_COL),
        (country, config.COUNTRY_COL),
        (currency, config.CURRENCY_COL),
        (profile, config.PROFILE_COL),
    ):
        if values:
            if col not in filtered.columns:
                logger.warning(f"Filter column '{col}' not found; filter ignored.")
                continue
            filtered = filtered[filtered[col].isin(list(values))]

    if rating:
        groups = dimension_values(filtered, "rating")
        filtered = filtered[groups.isin(list(rating))]

    if size:
        buckets = dimension_values(filtered, "size")
        filtered = filtered[buckets.isin(list(size))]

    logger.debug(f"filter_bonds: {len(bonds)} -> {len(filtered)} bonds")
    return filtered.copy()


# === Sorting & pagination =====================================================


def sort_bonds(bonds: pd.DataFrame, field: str, direction: str = "asc") -> pd.DataFrame:
    """Sort the bond frame on *field*; missing values always go last.

    Numeric columns sort numerically, anything else as case-insensitive text.
    An unknown field leaves the order unchanged.
    """
    ascending = direction.lower() == "asc"

    if field not in bonds.columns:
        logger.warning("Sort column '%s' not found. Leaving order unchanged.", field)
        return bonds.copy()

    if pd.api.types.is_numeric_dtype(bonds[field]) or pd.api.types.is_datetime64_any_dtype(bonds[field]):
        return bonds.sort_values(by=field, ascending=ascending, na_position="last", kind="mergesort")
    return bonds.sort_values(
        by=field,
        ascending=ascending,
        na_position="last",
        kind="mergesort",
        key=lambda col: col.where(col.isna(), col.astype(str).str.lower()),
    )


def calculate_total_pages(total_items: int, page_size: int) -> int:
    return math.ceil(total_items / page_size) if page_size > 0 else 0


def paginate_data(
    bonds: pd.DataFrame,
    page: int,
    page_size: int = config.BONDS_PER_PAGE,
    page_window: int = 2,
) -> Tuple[pd.DataFrame, Dict]:
    """Paginate the given DataFrame (pages are 1-based).

    Returns a subset DataFrame and a dictionary with pagination metadata.
    Out-of-range pages are clamped to the first / last page.
    """
    total_items = len(bonds)
    page_size = max(1, page_size)
    total_pages = calculate_total_pages(total_items, page_size) or 1
    page = max(1, min(page, total_pages))

    start_idx = (page - 1) * page_size
    end_idx = start_idx + page_size

    context: Dict[str, Any] = {
        "page": page,
        "per_page": page_size,
        "total_items": total_items,
        "total_pages": total_pages,
        "has_prev": page > 1,
        "has_next": page < total_pages,
        "prev_num": page - 1,
        "next_num": page + 1,
        "start_page_display": max(1, page - page_window),
        "end_page_display": min(total_pages, page + page_window),
    }
    return bonds.iloc[start_idx:end_idx], context


def get_unique_values(bonds: pd.DataFrame, field: str) -> List[str]:
    """Sorted distinct values of *field* as strings (for filter drop-downs)."""
    if field not in bonds.columns:
        return []
    return sorted({str(v) for v in bonds[field].tolist()})


# === Group-by / cross-tab =====================================================


def dimension_values(bonds: pd.DataFrame, dimension: str, today=None) -> pd.Series:
    """Current bucket label of every bond along *dimension*.

    sector and profile are raw columns, rating goes through the rating
    normaliser, size through the market-cap sizer and maturity through the
    residual-maturity bucketer evaluated at *today*.
    """
    if bonds.empty:
        return pd.Series(dtype=object, index=bonds.index)
    if dimension not in _DIMENSION_COLUMNS:
        logger.warning(f"Unknown dimension '{dimension}'. Expected one of {DIMENSIONS}")
        return pd.Series("Unknown", index=bonds.index, dtype=object)
    column = _DIMENSION_COLUMNS[dimension]
    if column not in bonds.columns:
        logger.warning(f"Column '{column}' missing; every bond is 'Unknown' along {dimension}")
        return pd.Series("Unknown", index=bonds.index, dtype=object)
    if dimension == "sector":
        return bonds[config.SECTOR_COL].astype(str)
    if dimension == "profile":
        return bonds[config.PROFILE_COL].astype(str)
    if dimension == "rating":
        return bonds[config.RATING_COL].apply(get_rating_group)
    if dimension == "size":
        amounts = pd.to_numeric(bonds[config.AMOUNT_ISSUED_COL], errors="coerce")
        return amounts.apply(classify_market_cap_size)
    return bonds[config.MATURITY_DATE_COL].apply(lambda d: classify_residual_maturity(d, today))


def _notional(bonds: pd.DataFrame) -> pd.Series:
    if config.OUTSTANDING_COL not in bonds.columns:
        return pd.Series(0.0, index=bonds.index)
    return pd.to_numeric(bonds[config.OUTSTANDING_COL], errors="coerce").fillna(0.0)


def aggregate_by_dimension(
    bonds: pd.DataFrame,
    dimension: str,
    value: str = "market_cap",
    today=None,
) -> pd.DataFrame:
    """Totals per bucket: outstanding notional (value='market_cap') or bond count (value='count')."""
    columns = ["name", "value"]
    if bonds.empty:
        return pd.DataFrame(columns=columns)

    keys = dimension_values(bonds, dimension, today)
    if value == "count":
        totals = keys.groupby(keys, sort=False).size()
    elif value == "market_cap":
        notional = _notional(bonds)
        totals = notional.groupby(keys, sort=False).sum()
    else:
        raise ValueError(f"Unknown aggregate value '{value}'. Expected 'market_cap' or 'count'.")
    return pd.DataFrame({"name": totals.index.astype(str), "value": totals.to_numpy()}, columns=columns)


def get_cross_filter_data(
    bonds: pd.DataFrame,
    primary_dimension: str,
    secondary_dimension: str,
    metric: str = config.DELTA_COL,
    today=None,
) -> pd.DataFrame:
    """Cross-tab of *bonds* on two dimensions.

    For each (primary, secondary) pair: the bond count, the summed outstanding
    notional and the mean of *metric*. Bonds with a missing metric still count
    but do not enter the mean.
    """
    columns = ["primary", "secondary", "count", "market_cap", "avg_metric"]
    if bonds.empty:
        return pd.DataFrame(columns=columns)

    frame = pd.DataFrame({
        "primary": dimension_values(bonds, primary_dimension, today),
        "secondary": dimension_values(bonds, secondary_dimension, today),
        "market_cap": _notional(bonds),
        "metric": pd.to_numeric(bonds[metric], errors="coerce") if metric in bonds.columns else np.nan,
    })
    grouped = frame.groupby(["primary", "secondary"], sort=False)
    result = pd.DataFrame({
        "count": grouped.size(),
        "market_cap": grouped["market_cap"].sum(),
        "avg_metric": grouped["metric"].mean(),
    }).reset_index()
    return result[columns]


# === Portfolio / market summaries ===============================================


def _weighted_average(values: pd.Series, weights: pd.Series) -> float:
    total = weights.sum()
    if total <= 0:
        return 0.0
    return float((values.fillna(0.0) * weights).sum() / total)


def calculate_portfolio_metrics(bonds: pd.DataFrame) -> Dict[str, Any]:
    """Portfolio-level figures for the overview cards.

    Greeks are weighted by outstanding notional. Vol averages use Balanced /
    Mixed profile bonds, credit spread averages use Bond profile bonds. The
    peer vol statistics come from the same frame.
    """
    if bonds.empty:
        return {
            "total_notional": 0.0,
            "total_ul_exposure": 0.0,
            "portfolio_delta": 0.0,
            "portfolio_gamma": 0.0,
            "portfolio_vega": 0.0,
            "avg_implied_vol": 0.0,
            "avg_historical_vol": 0.0,
            "avg_bondfloor": 0.0,
            "avg_distance_to_bondfloor": 0.0,
            "avg_credit_spread": 0.0,
            "total_delta_adjusted_exposure": 0.0,
            "avg_ytm": 0.0,
            "avg_prime": 0.0,
            "avg_duration": 0.0,
            "avg_vol_spread": None,
            "std_dev_vol_spread": None,
            "count_balanced_bonds": 0,
        }

    frame = coerce_numeric_columns(bonds, [
        config.OUTSTANDING_COL, config.UL_OUTSTANDING_COL, config.DELTA_COL, config.GAMMA_COL,
        config.VEGA_COL, config.IMPLIED_VOL_COL, config.HIST_VOL_COL, config.BONDFLOOR_PCT_COL,
        config.DISTANCE_TO_BONDFLOOR_COL, config.CREDIT_SPREAD_COL, config.YTM_COL, config.PRIME_COL,
        config.DURATION_COL, config.STOCK_PRICE_COL,
    ])

    def col(name: str) -> pd.Series:
        return frame[name] if name in frame.columns else pd.Series(np.nan, index=frame.index)

    def mean_or_zero(series: pd.Series) -> float:
        value = series.mean()
        return 0.0 if pd.isna(value) else float(value)

    notional = col(config.OUTSTANDING_COL).fillna(0.0)
    balanced = frame[col(config.PROFILE_COL).isin(["Balanced", "Mixed"])] if config.PROFILE_COL in frame else frame.iloc[0:0]
    bond_profile = frame[col(config.PROFILE_COL) == "Bond"] if config.PROFILE_COL in frame else frame.iloc[0:0]
    peer_stats = calculate_average_volatility_spreads(bonds)

    avg_historical_vol = (
        mean_or_zero(balanced[config.HIST_VOL_COL]) if not balanced.empty else mean_or_zero(col(config.HIST_VOL_COL))
    )

    return {
        "total_notional": float(notional.sum()),
        "total_ul_exposure": float(col(config.UL_OUTSTANDING_COL).fillna(0.0).sum()),
        "portfolio_delta": _weighted_average(col(config.DELTA_COL), notional),
        "portfolio_gamma": _weighted_average(col(config.GAMMA_COL), notional),
        "portfolio_vega": _weighted_average(col(config.VEGA_COL), notional),
        "avg_implied_vol": mean_or_zero(balanced[config.IMPLIED_VOL_COL]) if not balanced.empty else 0.0,
        "avg_historical_vol": avg_historical_vol,
        "avg_bondfloor": mean_or_zero(col(config.BONDFLOOR_PCT_COL)),
        "avg_distance_to_bondfloor": mean_or_zero(col(config.DISTANCE_TO_BONDFLOOR_COL)),
        "avg_credit_spread": mean_or_zero(bond_profile[config.CREDIT_SPREAD_COL]) if not bond_profile.empty else 0.0,
        "total_delta_adjusted_exposure": float(
            (col(config.DELTA_COL) * col(config.UL_OUTSTANDING_COL) * col(config.STOCK_PRICE_COL)).sum()
        ),
        "avg_ytm": mean_or_zero(col(config.YTM_COL)),
        "avg_prime": mean_or_zero(col(config.PRIME_COL)),
        "avg_duration": mean_or_zero(col(config.DURATION_COL)),
        "avg_vol_spread": peer_stats.mean_spread,
        "std_dev_vol_spread": peer_stats.std_dev_spread,
        "count_balanced_bonds": peer_stats.eligible_count,
    }


def calculate_market_summary(bonds: pd.DataFrame) -> Dict[str, Any]:
    """Universe headline figures: count, total notional and simple averages."""
    if bonds.empty:
        return {"total_cbs": 0, "total_market_cap": 0.0, "avg_yield": None, "avg_delta": None, "avg_spread": None}
    frame = coerce_numeric_columns(bonds, [config.OUTSTANDING_COL, config.YTM_COL, config.DELTA_COL, config.CREDIT_SPREAD_COL])

    def mean_or_none(name: str) -> Optional[float]:
        if name not in frame.columns:
            return None
        value = frame[name].mean()
        return None if pd.isna(value) else float(value)

    return {
        "total_cbs": len(frame),
        "total_market_cap": float(frame[config.OUTSTANDING_COL].fillna(0.0).sum()),
        "avg_yield": mean_or_none(config.YTM_COL),
        "avg_delta": mean_or_none(config.DELTA_COL),
        "avg_spread": mean_or_none(config.CREDIT_SPREAD_COL),
    }


def calculate_portfolio_attribution(bonds: pd.DataFrame) -> Dict[str, float]:
    """Notional-weighted daily performance attribution.

    Only bonds with a 1D performance take part; a missing contribution counts
    as zero for that bond.
    """
    keys = ["total_performance"] + list(config.ATTRIBUTION_COLS)
    if bonds.empty or config.PERF_1D_COL not in bonds.columns:
        return {key: 0.0 for key in keys}

    frame = coerce_numeric_columns(
        bonds, [config.PERF_1D_COL, config.OUTSTANDING_COL] + list(config.ATTRIBUTION_COLS.values())
    )
    frame = frame[frame[config.PERF_1D_COL].notna()]
    notional = frame[config.OUTSTANDING_COL].fillna(0.0)

    result = {"total_performance": _weighted_average(frame[config.PERF_1D_COL], notional)}
    for key, col in config.ATTRIBUTION_COLS.items():
        values = frame[col] if col in frame.columns else pd.Series(0.0, index=frame.index)
        result[key] = _weighted_average(values, notional)
    return result


def get_cheap_rich_analysis(bonds: pd.DataFrame) -> pd.DataFrame:
    """Market price vs theoretical value, largest absolute mispricing first."""
    columns = [config.ISIN_COL, config.ISSUER_COL, "Market Price", "Theo Value", "Mispricing", "Mispricing %"]
    if bonds.empty:
        return pd.DataFrame(columns=columns)

    frame = coerce_numeric_columns(bonds, [config.PRICE_COL, config.THEO_VALUE_COL])
    out = pd.DataFrame({
        config.ISIN_COL: frame[config.ISIN_COL],
        config.ISSUER_COL: frame[config.ISSUER_COL],
        "Market Price": frame[config.PRICE_COL],
        "Theo Value": frame[config.THEO_VALUE_COL],
    })
    out["Mispricing"] = out["Market Price"] - out["Theo Value"]
    out["Mispricing %"] = (out["Mispricing"] / out["Theo Value"].replace(0, np.nan)) * 100
    out = out.reindex(out["Mispricing %"].abs().sort_values(ascending=False, na_position="last").index)
    return out[columns].reset_index(drop=True)


def _flag(value: Any) -> bool:
    return not is_missing(value) and bool(value)


def get_upcoming_events(
    bonds: pd.DataFrame,
    today=None,
    horizon_days: Optional[int] = None,
) -> pd.DataFrame:
    """Soft-call and put dates falling within the next *horizon_days*, soonest first."""
    columns = ["ISIN", "Issuer", "Event Type", "Event Date", "Days to Event",
               "Trigger Level", "Current Level", "Is Triggered"]
    horizon = config.EVENTS_HORIZON_DAYS if horizon_days is None else horizon_days
    now = pd.Timestamp(today) if today is not None else pd.Timestamp(datetime.now())

    events: List[Dict[str, Any]] = []
    for _, bond in bonds.iterrows():
        if _flag(bond.get(config.IS_SOFT_CALL_COL)) and pd.notna(bond.get(config.CALL_FIRST_DATE_COL)) \
                and pd.notna(bond.get(config.CALL_TRIGGER_COL)):
            call_date = pd.Timestamp(bond[config.CALL_FIRST_DATE_COL])
            days = math.floor((call_date - now) / pd.Timedelta(days=1))
            if 0 <= days <= horizon:
                parity = bond.get(config.PARITY_PCT_COL)
                events.append({
                    "ISIN": bond[config.ISIN_COL],
                    "Issuer": bond.get(config.ISSUER_COL),
                    "Event Type": "Call",
                    "Event Date": call_date,
                    "Days to Event": days,
                    "Trigger Level": bond[config.CALL_TRIGGER_COL],
                    "Current Level": parity,
                    "Is Triggered": bool(pd.notna(parity) and parity >= bond[config.CALL_TRIGGER_COL]),
                })

        if _flag(bond.get(config.IS_PUTABLE_COL)) and pd.notna(bond.get(config.PUT_DATE_COL)) \
                and pd.notna(bond.get(config.PUT_PRICE_COL)):
            put_date = pd.Timestamp(bond[config.PUT_DATE_COL])
            days = math.floor((put_date - now) / pd.Timedelta(days=1))
            if 0 <= days <= horizon:
                events.append({
                    "ISIN": bond[config.ISIN_COL],
                    "Issuer": bond.get(config.ISSUER_COL),
                    "Event Type": "Put",
                    "Event Date": put_date,
                    "Days to Event": days,
                    "Trigger Level": None,
                    "Current Level": bond.get(config.PRICE_COL),
                    "Is Triggered": None,
                })

    if not events:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame(events, columns=columns).sort_values("Days to Event", kind="mergesort").reset_index(drop=True)

