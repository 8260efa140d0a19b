# Purpose: Relative-value signal engine for convertible bonds.
# Computes, per bond, the volatility spread (implied - historical), its valuation category,
# a downside-risk estimate and, against the peer statistics of the same batch,
# the spread to average, the z-score and the trading observation.
# Missing inputs propagate as None / "" through every step; nothing here raises on bad numbers.

import logging
import math
from typing import Any, List, Mapping, Optional

import numpy as np
import pandas as pd

from core import config
from core.data_utils import to_optional_float, coerce_numeric_columns
from analytics.models import EnhancedMetrics, PeerVolStats
from analytics.classification import (
    standardize_rating,
    classify_credit_risk,
    classify_residual_maturity,
)

logger = logging.getLogger(__name__)

UNDERPRICED = "underpriced"
FAIR_VALUE = "fair value"
OVERPRICED = "overpriced"
EXPENSIVE = "expensive"

METRIC_COLUMNS: List[str] = [
    "Vol Spread",
    "Relative Situation",
    "Downside Risk",
    "Spread to Average",
    "Z-Score",
    "Observation",
    "Standardized Rating",
    "Credit Risk",
    "Residual Maturity",
]


def calculate_vol_spread(implied_vol: Any, historical_vol: Any) -> Optional[float]:
    """Vol spread = implied vol - historical vol, or None if either is missing."""
    implied = to_optional_float(implied_vol)
    historical = to_optional_float(historical_vol)
    if implied is None or historical is None:
        return None
    return implied - historical


def determine_relative_situation(vol_spread: Optional[float]) -> str:
    vol_spread = to_optional_float(vol_spread)
    if vol_spread is None:
        return ""
    if vol_spread < 0:
        return UNDERPRICED
    if vol_spread < config.FAIR_VALUE_MAX:
        return FAIR_VALUE
    if vol_spread < config.OVERPRICED_MAX:
        return OVERPRICED
    return EXPENSIVE


def calculate_downside_risk(vol_spread: Optional[float], vega: Any) -> Optional[float]:
    """Downside risk = vol spread * vega, defined only for a strictly positive spread."""
    vol_spread = to_optional_float(vol_spread)
    vega = to_optional_float(vega)
    if vol_spread is None or vega is None or vol_spread <= 0:
        return None
    return vol_spread * vega


def _eligible_peers(bonds: pd.DataFrame) -> pd.DataFrame:
    frame = coerce_numeric_columns(bonds, [config.VEGA_COL, config.IMPLIED_VOL_COL, config.HIST_VOL_COL])
    if config.VEGA_COL not in frame.columns or config.IMPLIED_VOL_COL not in frame.columns:
        return frame.iloc[0:0]
    mask = (frame[config.VEGA_COL] > config.PEER_VEGA_MIN) & frame[config.IMPLIED_VOL_COL].notna()
    return frame[mask]


def calculate_average_volatility_spreads(bonds: pd.DataFrame) -> PeerVolStats:
    """Peer statistics of vol spread over bonds with vega > 0.25 and a numeric implied vol.

    The standard deviation is the population one (divides by the count).
    An eligible bond whose historical vol is missing makes the whole statistic
    unavailable rather than being dropped silently.
    """
    eligible = _eligible_peers(bonds)
    count = len(eligible)
    if count == 0:
        logger.warning("No bonds eligible for peer volatility statistics (vega > %s).", config.PEER_VEGA_MIN)
        return PeerVolStats(mean_spread=None, std_dev_spread=None, eligible_count=0)

    if config.HIST_VOL_COL not in eligible.columns:
        logger.warning("Historical vol column missing; peer volatility statistics unavailable.")
        return PeerVolStats(mean_spread=None, std_dev_spread=None, eligible_count=count)

    spreads = (eligible[config.IMPLIED_VOL_COL] - eligible[config.HIST_VOL_COL]).to_numpy(dtype=float)
    if np.isnan(spreads).any():
        logger.warning(
            f"{int(np.isnan(spreads).sum())} of {count} eligible bonds have no historical vol; "
            "peer volatility statistics unavailable."
        )
        return PeerVolStats(mean_spread=None, std_dev_spread=None, eligible_count=count)

    mean_spread = float(spreads.mean())
    std_dev = float(math.sqrt(((spreads - mean_spread) ** 2).sum() / count))
    logger.debug(f"Peer vol stats: mean={mean_spread:.4f}, std={std_dev:.4f}, count={count}")
    return PeerVolStats(mean_spread=mean_spread, std_dev_spread=std_dev, eligible_count=count)


def calculate_spread_to_average(
    vol_spread: Optional[float], average_vol_spread: Optional[float]
) -> Optional[float]:
    vol_spread = to_optional_float(vol_spread)
    average_vol_spread = to_optional_float(average_vol_spread)
    if vol_spread is None or average_vol_spread is None:
        return None
    return vol_spread - average_vol_spread


def calculate_z_score(
    spread_to_average: Optional[float], standard_deviation: Optional[float]
) -> Optional[float]:
    spread_to_average = to_optional_float(spread_to_average)
    standard_deviation = to_optional_float(standard_deviation)
    if spread_to_average is None or standard_deviation is None or standard_deviation == 0:
        return None
    return spread_to_average / standard_deviation


def determine_observation(
    spread_to_average: Optional[float],
    z_score: Optional[float],
    relative_situation: str,
) -> str:
    """Trading observation for one bond.

    Fires only when |spread to average| > 2 and |z| > 1, and the sign of the
    peer-relative spread agrees with the valuation category: cheap bonds must
    also be cheap against peers to signal a rebound, rich bonds must be rich
    against peers to signal downside.
    """
    spread_to_average = to_optional_float(spread_to_average)
    z_score = to_optional_float(z_score)
    if spread_to_average is None or z_score is None:
        return ""

    if abs(spread_to_average) <= config.OBSERVATION_MIN_SPREAD:
        return ""
    significant = abs(z_score) > config.OBSERVATION_MIN_ABS_Z

    if relative_situation in (FAIR_VALUE, UNDERPRICED) and spread_to_average < 0 and significant:
        return config.REBOUND_OBSERVATION
    if relative_situation in (OVERPRICED, EXPENSIVE) and spread_to_average > 0 and significant:
        return config.DOWNSIDE_OBSERVATION
    return ""


def calculate_enhanced_metrics(
    bond: Mapping[str, Any],
    peer_stats: PeerVolStats,
    today=None,
) -> EnhancedMetrics:
    """All derived metrics for one bond against the peer statistics of its own batch."""
    vol_spread = calculate_vol_spread(bond.get(config.IMPLIED_VOL_COL), bond.get(config.HIST_VOL_COL))
    relative_situation = determine_relative_situation(vol_spread)
    downside_risk = calculate_downside_risk(vol_spread, bond.get(config.VEGA_COL))
    spread_to_average = calculate_spread_to_average(vol_spread, peer_stats.mean_spread)
    z_score = calculate_z_score(spread_to_average, peer_stats.std_dev_spread)
    observation = determine_observation(spread_to_average, z_score, relative_situation)

    standardized_rating = standardize_rating(bond.get(config.RATING_COL))
    credit_risk = classify_credit_risk(standardized_rating)
    residual_maturity = classify_residual_maturity(bond.get(config.MATURITY_DATE_COL), today)

    return EnhancedMetrics(
        vol_spread=vol_spread,
        relative_situation=relative_situation,
        downside_risk=downside_risk,
        spread_to_average=spread_to_average,
        z_score=z_score,
        observation=observation,
        standardized_rating=standardized_rating,
        credit_risk=credit_risk,
        residual_maturity=residual_maturity,
    )


def get_enhanced_bond_metrics(bonds: pd.DataFrame, today=None) -> pd.DataFrame:
    """Returns a copy of *bonds* with the metric columns appended.

    Peer statistics are computed from *bonds* itself, so a filtered portfolio
    is always scored against its own population. Metric columns already on
    *bonds* are replaced, never duplicated.
    """
    if bonds is None:
        return pd.DataFrame(columns=METRIC_COLUMNS)
    base = bonds.drop(columns=METRIC_COLUMNS, errors="ignore")
    if base.empty:
        return pd.DataFrame(columns=list(base.columns) + METRIC_COLUMNS)

    peer_stats = calculate_average_volatility_spreads(base)
    rows = [
        list(calculate_enhanced_metrics(row, peer_stats, today).to_dict().values())
        for _, row in base.iterrows()
    ]
    metrics_df = pd.DataFrame(rows, columns=METRIC_COLUMNS, index=base.index)
    return pd.concat([base, metrics_df], axis=1)


def get_trading_signals(bonds: pd.DataFrame, today=None) -> pd.DataFrame:
    """One row per bond: identifier, issuer, signal metrics and the vol inputs they came from."""
    columns = [
        config.ISIN_COL,
        config.ISSUER_COL,
        "Vol Spread",
        "Relative Situation",
        "Downside Risk",
        "Spread to Average",
        "Z-Score",
        "Observation",
        config.VEGA_COL,
        config.IMPLIED_VOL_COL,
        config.HIST_VOL_COL,
    ]
    enhanced = get_enhanced_bond_metrics(bonds, today)
    if enhanced.empty:
        return pd.DataFrame(columns=columns)
    for col in columns:
        if col not in enhanced.columns:
            enhanced[col] = None
    return enhanced[columns].reset_index(drop=True)
