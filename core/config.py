# Purpose: This file defines configuration variables for the Convertible Bond Analytics engine.
# It centralizes column names, classification and signal thresholds, and the logging setup
# so they can be adjusted (mostly through settings.yaml) without modifying the analytics code.

"""
Configuration settings for the analytics engine.
"""

import os
from pathlib import Path
from typing import Dict

from core.settings_loader import (
    get_app_config,
    get_classification_thresholds,
    get_signal_thresholds,
    get_history_settings,
    get_data_files,
)

# Base directory of the application (core/ lives one level below the project root)
BASE_DIR = Path(__file__).resolve().parent.parent

# Standard column name constants for the bond frame
ISIN_COL = "ISIN"
BBG_CODE_COL = "Bloomberg Code"
ISSUER_COL = "Issuer"
SECTOR_COL = "Sector"
INDUSTRY_COL = "Industry"
COUNTRY_COL = "Country"
CURRENCY_COL = "Currency"
RATING_COL = "Rating"
MATURITY_DATE_COL = "Maturity Date"
ISSUE_DATE_COL = "Issue Date"
COUPON_COL = "Coupon"
AMOUNT_ISSUED_COL = "Amount Issued"
OUTSTANDING_COL = "Outstanding Amount"
UL_OUTSTANDING_COL = "UL Outstanding"
SIZE_COL = "Size"
PROFILE_COL = "Profile"
PRICE_COL = "Price"
THEO_VALUE_COL = "Theo Value"
STOCK_PRICE_COL = "Stock Price"
DELTA_COL = "Delta"
GAMMA_COL = "Gamma"
VEGA_COL = "Vega"
THETA_COL = "Theta"
IMPLIED_VOL_COL = "Implied Vol"
HIST_VOL_COL = "Historical Vol"
YTM_COL = "YTM"
CREDIT_SPREAD_COL = "Credit Spread"
BONDFLOOR_PCT_COL = "Bondfloor %"
DISTANCE_TO_BONDFLOOR_COL = "Distance to Bondfloor"
PRIME_COL = "Prime %"
PARITY_PCT_COL = "Parity %"
DURATION_COL = "Duration"

# Soft call / put columns
IS_PUTABLE_COL = "Is Putable"
PUT_DATE_COL = "Put Date"
PUT_PRICE_COL = "Put Price"
IS_SOFT_CALL_COL = "Is Soft Call"
CALL_TRIGGER_COL = "Call Trigger"
CALL_FIRST_DATE_COL = "Call First Date"

# Performance columns
PERF_1D_COL = "Perf 1D"
PERF_1W_COL = "Perf 1W"
PERF_1M_COL = "Perf 1M"
PERF_3M_COL = "Perf 3M"
PERF_YTD_COL = "Perf YTD"

# Attribution contribution columns (daily, in %)
ATTRIBUTION_COLS: Dict[str, str] = {
    "share_contrib": "Share Contrib",
    "credit_spread_contrib": "Credit Spread Contrib",
    "carry_contrib": "Carry Contrib",
    "rate_contrib": "Rate Contrib",
    "valuation": "Valuation",
    "fx_contrib": "FX Contrib",
    "delta_neutral": "Delta Neutral",
}

# History frame columns
DATE_COL = "Date"
CB_PRICE_PCT_COL = "CB Market Price %"

# Rating group labels offered by the filter drop-downs
RATING_GROUP_LABELS: Dict[str, str] = {
    "IG": "Investment Grade",
    "HY": "High Yield",
    "NR": "Not Rated",
}

# -------------------------------------------
# Data folder / fixture configuration
# -------------------------------------------
# Priority order for determining the data folder location:
# 1. Environment variable `CB_ANALYTICS_DATA_FOLDER` (absolute or relative)
# 2. `data_folder` entry inside settings.yaml (app_config)
# 3. Default folder name "Data" (relative to the project root)
DATA_FOLDER_ENV_VAR = "CB_ANALYTICS_DATA_FOLDER"
DEFAULT_DATA_FOLDER = "Data"

_data_files = get_data_files()
STATIC_FIELDS_FILENAME: str = _data_files.get("static_fields", "static_fields.json")
HISTORY_FILENAME: str = _data_files.get("history", "cbhist.json")

# --- Classification thresholds ---
_classification = get_classification_thresholds()
SMALL_CAP_MAX: float = float(_classification.get("small_cap_max", 2_500_000_000))
LARGE_CAP_MIN: float = float(_classification.get("large_cap_min", 6_900_000_000))

# Residual maturity is measured in 365-day years, not calendar years
DAYS_PER_YEAR: int = 365

# --- Relative-value signal thresholds ---
_signals = get_signal_thresholds()
PEER_VEGA_MIN: float = float(_signals.get("peer_vega_min", 0.25))
FAIR_VALUE_MAX: float = float(_signals.get("fair_value_max", 4))
OVERPRICED_MAX: float = float(_signals.get("overpriced_max", 8))
OBSERVATION_MIN_SPREAD: float = float(_signals.get("observation_min_spread_to_average", 2))
OBSERVATION_MIN_ABS_Z: float = float(_signals.get("observation_min_abs_z_score", 1))

REBOUND_OBSERVATION = "High probability of a rebound"
DOWNSIDE_OBSERVATION = "High probability of downside"

# --- History ---
_history = get_history_settings()
HISTORY_WINDOW: int = int(_history.get("window_days", 30))
EVENTS_HORIZON_DAYS: int = int(_history.get("events_horizon_days", 180))

# Number of bonds to display per page in the universe table
BONDS_PER_PAGE: int = 50

# Logging configuration, applied by core.utils.setup_logging
LOG_FOLDER: str = get_app_config().get("log_folder", "instance")

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {"format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {
            "level": "INFO",
            "formatter": "standard",
            "class": "logging.StreamHandler",
        },
        "file": {
            "level": "DEBUG",
            "formatter": "standard",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": os.path.join(BASE_DIR, LOG_FOLDER, "analytics.log"),
            "maxBytes": 1024 * 1024 * 10,  # 10 MB
            "backupCount": 5,
        },
    },
    "loggers": {
        "": {  # root logger
            "handlers": ["console", "file"],
            "level": "DEBUG",
            "propagate": True,
        },
    },
}
