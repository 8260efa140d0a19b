# Purpose: Data source for the analytics engine.
# Loads the two JSON fixtures (static_fields.json with per-bond terms, cbhist.json with the daily
# market history) once into an explicit cache object and exposes the bond frame and per-bond histories.
# Consumers receive the BondDataSource by injection; there is no module-level cache.

import os
import logging
from typing import Dict, List, Optional

import pandas as pd

from core import config
from core.data_utils import (
    read_json_robustly,
    parse_dates_robustly,
    convert_to_numeric_robustly,
    to_optional_float,
)
from analytics.classification import classify_market_cap_size
from analytics.performance import calculate_performance

logger = logging.getLogger(__name__)

# cbhist.json field -> history frame column
HISTORY_FIELD_MAP: Dict[str, str] = {
    "DATE": config.DATE_COL,
    "CB Market Price": "CB Market Price",
    "CB Market Price %": config.CB_PRICE_PCT_COL,
    "CB OUTSTANDING": config.OUTSTANDING_COL,
    "Stock price": config.STOCK_PRICE_COL,
    "Theo Value": config.THEO_VALUE_COL,
    "Bondfloor % ": config.BONDFLOOR_PCT_COL,
    "Distance to bondfloor": config.DISTANCE_TO_BONDFLOOR_COL,
    "Credit spread": config.CREDIT_SPREAD_COL,
    "Implied Spread (bp)": "Implied Spread",
    "YTM %": config.YTM_COL,
    "Duration": config.DURATION_COL,
    "His vol": config.HIST_VOL_COL,
    "ImpVol (%)": config.IMPLIED_VOL_COL,
    "Delta%": config.DELTA_COL,
    "Gamma": config.GAMMA_COL,
    "Vega": config.VEGA_COL,
    "Theta": config.THETA_COL,
    "Parity %": config.PARITY_PCT_COL,
    "Prime %": config.PRIME_COL,
    "UL OUTSTANDING": config.UL_OUTSTANDING_COL,
    "CB perf": "CB Perf",
    "Share contrib% ": config.ATTRIBUTION_COLS["share_contrib"],
    "creditSpread contrib%": config.ATTRIBUTION_COLS["credit_spread_contrib"],
    "CARRY contrib% ": config.ATTRIBUTION_COLS["carry_contrib"],
    "Rate contrib%": config.ATTRIBUTION_COLS["rate_contrib"],
    "Valuation": config.ATTRIBUTION_COLS["valuation"],
    "FX CONTRIB": config.ATTRIBUTION_COLS["fx_contrib"],
    "Delta neutral": config.ATTRIBUTION_COLS["delta_neutral"],
}
HISTORY_CODE_FIELD = "Bloomberg code ( ticker or ISIN)"

# Fields copied from the latest history point onto the bond row
LATEST_POINT_COLUMNS: List[str] = [
    config.CB_PRICE_PCT_COL,
    config.OUTSTANDING_COL,
    config.STOCK_PRICE_COL,
    config.THEO_VALUE_COL,
    config.BONDFLOOR_PCT_COL,
    config.DISTANCE_TO_BONDFLOOR_COL,
    config.CREDIT_SPREAD_COL,
    config.YTM_COL,
    config.DURATION_COL,
    config.HIST_VOL_COL,
    config.IMPLIED_VOL_COL,
    config.DELTA_COL,
    config.GAMMA_COL,
    config.VEGA_COL,
    config.THETA_COL,
    config.PARITY_PCT_COL,
    config.PRIME_COL,
    config.UL_OUTSTANDING_COL,
] + list(config.ATTRIBUTION_COLS.values())

INVESTMENT_GRADE_COUNTRIES = {"FRANCE", "GERMANY", "NETHERLANDS", "BELGIUM", "AUSTRIA"}
INVESTMENT_GRADE_SECTORS = ["Utilities", "Consumer, Non-cyclical", "Financial"]


def determine_rating(sector: str, country: str) -> str:
    """Heuristic issuer rating used when the fixture carries none."""
    sector = sector or ""
    country = (country or "").upper()
    if country in INVESTMENT_GRADE_COUNTRIES and any(s in sector for s in INVESTMENT_GRADE_SECTORS):
        return "BBB"
    if country in INVESTMENT_GRADE_COUNTRIES:
        return "BBB-"
    return "BB+"


def determine_profile(delta: Optional[float], bondfloor_percent: Optional[float]) -> str:
    """Equity / Bond / HY / Mixed profile from the latest delta and bondfloor."""
    if pd.notna(delta) and delta > 0.7:
        return "Equity"
    if pd.notna(delta) and delta < 0.3:
        return "Bond"
    if pd.notna(bondfloor_percent) and bondfloor_percent < 70:
        return "HY"
    return "Mixed"


def _as_float(value) -> float:
    result = to_optional_float(value)
    return float("nan") if result is None else result


def _as_date(value) -> pd.Timestamp:
    if value is None or value == "":
        return pd.NaT
    return pd.to_datetime(value, errors="coerce")


class BondDataSource:
    """Parses the fixtures of one data folder once and serves bonds and histories from memory."""

    def __init__(
        self,
        data_folder: str,
        static_filename: str = config.STATIC_FIELDS_FILENAME,
        history_filename: str = config.HISTORY_FILENAME,
    ):
        self.data_folder = data_folder
        self.static_path = os.path.join(data_folder, static_filename)
        self.history_path = os.path.join(data_folder, history_filename)
        self._static: Optional[Dict[str, dict]] = None
        self._histories: Optional[Dict[str, pd.DataFrame]] = None
        self._bonds: Dict[Optional[pd.Timestamp], pd.DataFrame] = {}

    # --- Raw fixtures -----------------------------------------------------

    def load_static_data(self) -> Dict[str, dict]:
        """Static terms keyed by Bloomberg code."""
        if self._static is not None:
            return self._static

        document = read_json_robustly(self.static_path)
        records = document.get("convertible_bonds", []) if isinstance(document, dict) else []
        if document is not None and not records:
            logger.warning(f"No 'convertible_bonds' entries in {self.static_path}")

        static: Dict[str, dict] = {}
        for record in records:
            code = record.get("bloomberg_code")
            if not code:
                logger.warning(f"Static record without bloomberg_code skipped: {record.get('name')}")
                continue
            static[code] = record
        logger.info(f"Loaded static data for {len(static)} bonds from {self.static_path}")
        self._static = static
        return static

    def load_historical_data(self) -> Dict[str, pd.DataFrame]:
        """Daily history per Bloomberg code, sorted by date."""
        if self._histories is not None:
            return self._histories

        document = read_json_robustly(self.history_path)
        if not isinstance(document, list) or not document:
            logger.warning(f"No historical data points in {self.history_path}")
            self._histories = {}
            return self._histories

        raw = pd.DataFrame(document)
        if HISTORY_CODE_FIELD not in raw.columns or "DATE" not in raw.columns:
            logger.error(f"History file {self.history_path} lacks '{HISTORY_CODE_FIELD}' or 'DATE'")
            self._histories = {}
            return self._histories

        frame = pd.DataFrame({"code": raw[HISTORY_CODE_FIELD].astype(str)})
        for source, target in HISTORY_FIELD_MAP.items():
            if source not in raw.columns:
                frame[target] = float("nan")
            elif target == config.DATE_COL:
                frame[target] = parse_dates_robustly(raw[source])
            else:
                frame[target] = convert_to_numeric_robustly(raw[source], log=False)
        frame = frame.dropna(subset=[config.DATE_COL])

        histories = {
            code: group.drop(columns="code").sort_values(config.DATE_COL, kind="mergesort").reset_index(drop=True)
            for code, group in frame.groupby("code", sort=False)
        }
        logger.info(f"Loaded {len(frame)} history points for {len(histories)} bonds from {self.history_path}")
        self._histories = histories
        return histories

    # --- Bonds ------------------------------------------------------------

    def _build_bond_row(self, code: str, static: dict, history: pd.DataFrame, as_of) -> dict:
        issuer = static.get("issuer", {})
        terms = static.get("bond_characteristics", {})
        put_option = static.get("put_option", {})
        soft_call = static.get("soft_call", {})
        latest = history.iloc[-1]

        amount_issued = _as_float(terms.get("amount_issued"))
        row = {
            config.ISIN_COL: code,
            config.BBG_CODE_COL: code,
            config.ISSUER_COL: static.get("name", code),
            config.SECTOR_COL: issuer.get("sector"),
            config.INDUSTRY_COL: issuer.get("industry"),
            config.COUNTRY_COL: issuer.get("country"),
            config.CURRENCY_COL: terms.get("currency"),
            config.COUPON_COL: _as_float(terms.get("coupon_percent")),
            config.ISSUE_DATE_COL: _as_date(terms.get("issue_date")),
            config.MATURITY_DATE_COL: _as_date(terms.get("maturity_date")),
            config.RATING_COL: static.get("rating") or determine_rating(issuer.get("sector"), issuer.get("country")),
            config.AMOUNT_ISSUED_COL: amount_issued,
            config.SIZE_COL: classify_market_cap_size(amount_issued),
            config.PROFILE_COL: determine_profile(latest[config.DELTA_COL], latest[config.BONDFLOOR_PCT_COL]),
            config.PRICE_COL: latest[config.CB_PRICE_PCT_COL],
            config.IS_PUTABLE_COL: bool(put_option.get("is_putable", False)),
            config.PUT_DATE_COL: _as_date(put_option.get("put_date")),
            config.PUT_PRICE_COL: _as_float(put_option.get("put_price_percent")),
            config.IS_SOFT_CALL_COL: bool(soft_call.get("has_soft_call", False)),
            config.CALL_TRIGGER_COL: _as_float(soft_call.get("call_trigger_percent")),
            config.CALL_FIRST_DATE_COL: _as_date(soft_call.get("first_call_date")),
        }
        for col in LATEST_POINT_COLUMNS:
            row.setdefault(col, latest[col])

        performance = calculate_performance(history, as_of=as_of)
        # The fixture's own daily CB perf wins over the price-derived 1D figure
        if pd.notna(latest["CB Perf"]) and latest["CB Perf"] != 0:
            performance[config.PERF_1D_COL] = latest["CB Perf"]
        row.update(performance)
        return row

    def load_convertible_bonds(self, as_of=None) -> pd.DataFrame:
        """Bond frame merging static terms with the latest history point (on or before *as_of*)."""
        key = pd.Timestamp(as_of) if as_of is not None else None
        if key in self._bonds:
            return self._bonds[key].copy()

        static_data = self.load_static_data()
        histories = self.load_historical_data()

        rows = []
        for code, static in static_data.items():
            history = histories.get(code)
            if history is not None and key is not None:
                history = history[history[config.DATE_COL] <= key]
            if history is None or history.empty:
                logger.warning(f"No historical data for {code}")
                continue
            rows.append(self._build_bond_row(code, static, history, key))

        bonds = pd.DataFrame(rows)
        logger.info(f"Built bond frame with {len(bonds)} bonds")
        # Only the most recent as_of is kept
        self._bonds = {key: bonds}
        return bonds.copy()

    # --- Histories --------------------------------------------------------

    def get_bond_history(self, bloomberg_code: str) -> pd.DataFrame:
        history = self.load_historical_data().get(bloomberg_code)
        if history is None:
            return pd.DataFrame(columns=list(HISTORY_FIELD_MAP.values()))
        return history.copy()

    def get_histories(self, bloomberg_codes: Optional[List[str]] = None) -> Dict[str, pd.DataFrame]:
        """Histories for the given codes (all bonds when None); unknown codes are skipped."""
        histories = self.load_historical_data()
        if bloomberg_codes is None:
            return {code: history.copy() for code, history in histories.items()}
        return {code: histories[code].copy() for code in bloomberg_codes if code in histories}

    def get_historical_data_in_range(self, start_date, end_date) -> Dict[str, pd.DataFrame]:
        """Per-bond history restricted to [start_date, end_date]; bonds with no point in range are dropped."""
        start, end = pd.Timestamp(start_date), pd.Timestamp(end_date)
        result = {}
        for code, history in self.load_historical_data().items():
            in_range = history[(history[config.DATE_COL] >= start) & (history[config.DATE_COL] <= end)]
            if not in_range.empty:
                result[code] = in_range.reset_index(drop=True)
        return result

    def get_latest_data_points(self) -> pd.DataFrame:
        """Last history row of every bond, indexed by Bloomberg code."""
        latest = {code: history.iloc[-1] for code, history in self.load_historical_data().items() if not history.empty}
        if not latest:
            return pd.DataFrame(columns=list(HISTORY_FIELD_MAP.values()))
        return pd.DataFrame.from_dict(latest, orient="index")

    def clear_cache(self) -> None:
        """Drop parsed fixtures so the next call reads the files again."""
        self._static = None
        self._histories = None
        self._bonds = {}
        logger.info(f"Cleared bond data cache for {self.data_folder}")
