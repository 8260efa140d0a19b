# Purpose: Classification utilities for convertible bonds.
# Maps vendor rating strings (S&P and Moody's notation) onto a canonical letter tier,
# buckets tiers into IG / HY / NR, sizes issues by amount issued and buckets residual maturity.
# All functions are pure; the maturity bucket takes the evaluation date as a parameter.

import logging
from datetime import datetime
from typing import Dict, Optional

import pandas as pd

from core import config
from core.data_utils import is_missing
from analytics.models import RatingResult

logger = logging.getLogger(__name__)

NOT_RATED = "NR"
_NOT_RATED_ALIASES = {"NR", "Not Rated"}

# Moody's tier -> canonical tier. S&P tiers are already canonical.
_MOODYS_TIERS: Dict[str, str] = {
    "Aaa": "AAA",
    "Aa": "AA",
    "A": "A",
    "Baa": "BBB",
    "Ba": "BB",
    "B": "B",
    "Caa": "CCC",
    "Ca": "CC",
    "C": "C",
}
_SP_TIERS = ["AAA", "AA", "A", "BBB", "BB", "B", "CCC", "CC", "C"]


def _build_rating_lookup() -> Dict[str, str]:
    lookup: Dict[str, str] = {}
    for tier in _SP_TIERS:
        for notch in ("", "+", "-"):
            lookup[f"{tier}{notch}"] = tier
    for prefix, tier in _MOODYS_TIERS.items():
        for notch in ("1", "2", "3"):
            lookup[f"{prefix}{notch}"] = tier
    return lookup


# Exact literal forms only; "BAA2" or "bbb" are not recognised.
RATING_LOOKUP: Dict[str, str] = _build_rating_lookup()


def parse_rating(issuer_rating: Optional[str]) -> RatingResult:
    """Looks up *issuer_rating* in the rating table.

    Returns a RatingResult whose ``tier`` is None when the string is not a known
    S&P or Moody's notch, so callers can tell a fallback apart from a real tier.
    """
    if is_missing(issuer_rating):
        return RatingResult(raw="", tier=NOT_RATED)
    raw = str(issuer_rating).strip()
    if raw in _NOT_RATED_ALIASES:
        return RatingResult(raw=raw, tier=NOT_RATED)
    return RatingResult(raw=raw, tier=RATING_LOOKUP.get(raw))


def standardize_rating(issuer_rating: Optional[str]) -> str:
    """Folds an S&P (``A+``, ``BBB-``) or Moody's (``A1``, ``Baa2``) rating to its letter tier.

    ``NR`` and ``Not Rated`` become ``NR``. Anything else is logged and echoed
    back trimmed, so downstream prefix matching still sees the vendor string.
    """
    result = parse_rating(issuer_rating)
    if result.recognized:
        return result.tier
    logger.warning(f"Rating not found for: '{result.raw}'")
    return result.raw


def classify_credit_risk(standardized_rating: str) -> str:
    """IG for AAA/AA/A/BBB, NR for anything starting with 'N', HY otherwise."""
    if standardized_rating.startswith("N"):
        return "NR"
    if standardized_rating.startswith("A") or standardized_rating == "BBB":
        return "IG"
    return "HY"


def get_rating_group(issuer_rating: Optional[str]) -> str:
    """Display label (Investment Grade / High Yield / Not Rated) for a raw rating string."""
    bucket = classify_credit_risk(standardize_rating(issuer_rating))
    return config.RATING_GROUP_LABELS[bucket]


def classify_market_cap_size(market_cap_eur: float) -> str:
    """
    Classification by market cap size:
    - Small Cap: market cap < 2.5 billion EUR
    - Mid Cap: 2.5B <= market cap < 6.9 billion EUR
    - Large Cap: market cap >= 6.9 billion EUR
    - Unknown: market cap missing
    """
    if is_missing(market_cap_eur):
        return "Unknown"
    if market_cap_eur < config.SMALL_CAP_MAX:
        return "Small Cap"
    if market_cap_eur < config.LARGE_CAP_MIN:
        return "Mid Cap"
    return "Large Cap"


def _as_timestamp(value) -> pd.Timestamp:
    ts = pd.Timestamp(value)
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts


def years_to_maturity(maturity_date, today=None) -> float:
    """(maturity_date - today) in 365-day years; *today* defaults to the current clock."""
    now = _as_timestamp(today) if today is not None else pd.Timestamp(datetime.now())
    delta = _as_timestamp(maturity_date) - now
    return delta / pd.Timedelta(days=config.DAYS_PER_YEAR)


def classify_residual_maturity(maturity_date, today=None) -> str:
    """Buckets residual maturity into <1Y, ]1,2], ]2,5] or >5Y (boundaries closed on the right).

    The bucket depends on the evaluation date, so results must not be cached
    across days. Pass *today* explicitly for reproducible output.
    """
    years = years_to_maturity(maturity_date, today)
    if years <= 1:
        return "<1Y"
    if years <= 2:
        return "]1,2]"
    if years <= 5:
        return "]2,5]"
    return ">5Y"
