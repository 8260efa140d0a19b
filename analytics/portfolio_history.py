# Purpose: Builds the rebased history series shown on the portfolio and market pages.
# Combines per-bond price histories into notional-weighted (portfolio) or equal-weighted (market)
# CB / equity / delta-neutral series over the most recent window of dates, rebased to 100.

import logging
from typing import Dict, List, Optional

import pandas as pd

from core import config
from analytics.performance import rebase_to_base_100

logger = logging.getLogger(__name__)

HISTORY_COLUMNS = [config.DATE_COL, "CB", "Equity", "Delta Neutral"]


def _recent_dates(histories: Dict[str, pd.DataFrame], window: int) -> List[pd.Timestamp]:
    """Union of each bond's last *window* dates, keeping the most recent *window* of them."""
    all_dates = set()
    for history in histories.values():
        all_dates.update(history[config.DATE_COL].tail(window))
    return sorted(all_dates)[-window:]


def _combine_histories(
    bonds: pd.DataFrame,
    histories: Dict[str, pd.DataFrame],
    window: int,
    weighted: bool,
) -> pd.DataFrame:
    if bonds is None or bonds.empty:
        return pd.DataFrame(columns=HISTORY_COLUMNS)

    available = {
        code: histories[code]
        for code in bonds[config.BBG_CODE_COL]
        if code in histories and not histories[code].empty
    }
    if not available:
        logger.warning("None of the selected bonds has price history.")
        return pd.DataFrame(columns=HISTORY_COLUMNS)

    if weighted:
        notional = pd.to_numeric(bonds[config.OUTSTANDING_COL], errors="coerce").fillna(0.0)
        total_notional = notional.sum()
        weights = {
            code: (amount / total_notional if total_notional else 0.0)
            for code, amount in zip(bonds[config.BBG_CODE_COL], notional)
        }
    else:
        weights = {code: 1.0 for code in available}

    indexed = {code: history.set_index(config.DATE_COL) for code, history in available.items()}

    dates, cb_values, equity_values, delta_neutral_values = [], [], [], []
    for date in _recent_dates(available, window):
        cb_sum = equity_sum = delta_neutral_sum = total_weight = 0.0
        for code, history in indexed.items():
            if date not in history.index:
                continue
            point = history.loc[date]
            if isinstance(point, pd.DataFrame):
                point = point.iloc[-1]
            weight = weights.get(code, 0.0)
            cb_price = point[config.CB_PRICE_PCT_COL]
            stock_price = point[config.STOCK_PRICE_COL]
            # Delta-neutral strips the equity component: CB - delta x stock
            delta_neutral = cb_price - point[config.DELTA_COL] * stock_price
            cb_sum += cb_price * weight
            equity_sum += stock_price * weight
            delta_neutral_sum += delta_neutral * weight
            total_weight += weight

        if total_weight > 0:
            dates.append(date)
            cb_values.append(cb_sum / total_weight)
            equity_values.append(equity_sum / total_weight)
            delta_neutral_values.append(delta_neutral_sum / total_weight)

    out = pd.DataFrame({
        config.DATE_COL: dates,
        "CB": rebase_to_base_100(cb_values),
        "Equity": rebase_to_base_100(equity_values),
        "Delta Neutral": rebase_to_base_100(delta_neutral_values),
    }, columns=HISTORY_COLUMNS)
    return out.round({"CB": 2, "Equity": 2, "Delta Neutral": 2})


def calculate_portfolio_history(
    bonds: pd.DataFrame,
    histories: Dict[str, pd.DataFrame],
    window: Optional[int] = None,
) -> pd.DataFrame:
    """Notional-weighted CB / equity / delta-neutral history of *bonds*, rebased to 100.

    On each date the weighted sum is divided by the weight of the bonds that
    have a price that day.
    """
    return _combine_histories(bonds, histories, window or config.HISTORY_WINDOW, weighted=True)


def generate_market_index_data(
    bonds: pd.DataFrame,
    histories: Dict[str, pd.DataFrame],
    window: Optional[int] = None,
) -> pd.DataFrame:
    """Equal-weighted market index of *bonds*, rebased to 100."""
    return _combine_histories(bonds, histories, window or config.HISTORY_WINDOW, weighted=False)


def generate_historical_data(history: pd.DataFrame, window: Optional[int] = None) -> pd.DataFrame:
    """One bond's recent CB and underlying prices rebased to 100, with raw delta and historical vol."""
    columns = [config.DATE_COL, "CB Price", "Underlying Price", config.DELTA_COL, config.HIST_VOL_COL]
    if history is None or history.empty:
        logger.warning("No historical data for bond")
        return pd.DataFrame(columns=columns)

    recent = history.tail(window or config.HISTORY_WINDOW)
    out = pd.DataFrame({
        config.DATE_COL: recent[config.DATE_COL].to_list(),
        "CB Price": rebase_to_base_100(recent[config.CB_PRICE_PCT_COL].to_list()),
        "Underlying Price": rebase_to_base_100(recent[config.STOCK_PRICE_COL].to_list()),
        config.DELTA_COL: recent[config.DELTA_COL].to_list(),
        config.HIST_VOL_COL: recent[config.HIST_VOL_COL].to_list(),
    }, columns=columns)
    return out.round({"CB Price": 2, "Underlying Price": 2})
