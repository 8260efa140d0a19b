# Purpose: Command-line runner for the convertible bond analytics engine.
# Loads the JSON fixtures from the data folder, scores the selected portfolio against its own peers,
# and prints peer statistics, trading signals, a two-dimensional cross-tab and the rebased portfolio history.

import argparse
import logging
import sys
from datetime import datetime
from typing import List, Optional

import pandas as pd

from core import config
from core.utils import get_data_folder_path, setup_logging
from data_processing.bond_loader import BondDataSource
from analytics.volatility_signals import calculate_average_volatility_spreads, get_trading_signals
from analytics.aggregation import DIMENSIONS, get_cross_filter_data, paginate_data, sort_bonds
from analytics.portfolio_history import calculate_portfolio_history

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Convertible bond relative-value analytics")
    parser.add_argument("--data-folder", help="Folder holding static_fields.json and cbhist.json")
    parser.add_argument("--as-of", help="Evaluation date (YYYY-MM-DD); defaults to the latest history date")
    parser.add_argument(
        "--isin",
        action="append",
        default=None,
        help="Bloomberg code / ISIN to include in the portfolio (repeatable); all bonds when omitted",
    )
    parser.add_argument("--primary", default="sector", choices=DIMENSIONS, help="Cross-tab row dimension")
    parser.add_argument("--secondary", default="rating", choices=DIMENSIONS, help="Cross-tab column dimension")
    parser.add_argument("--page", type=int, default=1, help="Signals page to print (1-based)")
    parser.add_argument("--page-size", type=int, default=config.BONDS_PER_PAGE, help="Signals per page")
    parser.add_argument("--log-level", default="INFO", help="Console log level")
    return parser


def select_portfolio(bonds: pd.DataFrame, codes: Optional[List[str]]) -> pd.DataFrame:
    """Rows of *bonds* whose code is in *codes*; unknown codes are logged."""
    if not codes:
        return bonds
    known = set(bonds[config.BBG_CODE_COL]) if not bonds.empty else set()
    missing = [code for code in codes if code not in known]
    if missing:
        logger.warning(f"Unknown bond codes ignored: {missing}")
    return bonds[bonds[config.BBG_CODE_COL].isin(codes)].reset_index(drop=True)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(console_level=args.log_level.upper())

    data_folder = args.data_folder or get_data_folder_path()
    logger.info(f"Using data folder: {data_folder}")
    as_of = pd.Timestamp(args.as_of) if args.as_of else None

    source = BondDataSource(data_folder)
    bonds = source.load_convertible_bonds(as_of=as_of)
    if bonds.empty:
        logger.error(f"No bonds with history found in {data_folder}")
        return 1

    portfolio = select_portfolio(bonds, args.isin)
    if portfolio.empty:
        logger.error("Portfolio selection is empty")
        return 1

    today = as_of if as_of is not None else pd.Timestamp(datetime.now()).normalize()

    peer_stats = calculate_average_volatility_spreads(portfolio)
    print("Peer volatility statistics")
    print(f"  eligible bonds : {peer_stats.eligible_count}")
    print(f"  mean spread    : {peer_stats.mean_spread}")
    print(f"  std dev spread : {peer_stats.std_dev_spread}")

    signals = sort_bonds(get_trading_signals(portfolio, today=today), "Z-Score", "asc")
    page_df, page_info = paginate_data(signals, args.page, args.page_size)
    print(f"\nTrading signals (page {page_info['page']}/{page_info['total_pages']}, "
          f"{page_info['total_items']} bonds)")
    print(page_df.to_string(index=False))

    cross_tab = get_cross_filter_data(portfolio, args.primary, args.secondary, today=today)
    print(f"\nCross-tab {args.primary} x {args.secondary}")
    print(cross_tab.to_string(index=False))

    codes = portfolio[config.BBG_CODE_COL].tolist()
    histories = source.get_histories(codes)
    if as_of is not None:
        histories = {code: h[h[config.DATE_COL] <= as_of] for code, h in histories.items()}
    history = calculate_portfolio_history(portfolio, histories)
    print("\nPortfolio history (base 100)")
    print(history.to_string(index=False))
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except Exception as e:
        logger.error(f"Error in run_analytics (CLI): {e}", exc_info=True)
        sys.exit(1)
