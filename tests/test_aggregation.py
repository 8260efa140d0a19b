# Purpose: Tests for filtering, sorting, pagination, group-by / cross-tab rollups and portfolio summaries.

import numpy as np
import pandas as pd
import pytest

from core import config
from analytics.aggregation import (
    filter_bonds,
    sort_bonds,
    calculate_total_pages,
    paginate_data,
    get_unique_values,
    dimension_values,
    aggregate_by_dimension,
    get_cross_filter_data,
    calculate_portfolio_metrics,
    calculate_market_summary,
    calculate_portfolio_attribution,
    get_cheap_rich_analysis,
    get_upcoming_events,
)
from conftest import make_bond


def test_filter_bonds_search_and_raw_columns(bonds_df):
    assert list(filter_bonds(bonds_df, search="issuer b2")[config.ISIN_COL]) == ["B2"]
    assert list(filter_bonds(bonds_df, sector=["Industrial"])[config.ISIN_COL]) == ["B1", "B3"]
    assert len(filter_bonds(bonds_df, sector=[])) == 4
    assert filter_bonds(bonds_df, currency=["USD"]).empty


def test_filter_bonds_rating_group_and_size(bonds_df):
    assert list(filter_bonds(bonds_df, rating=["High Yield"])[config.ISIN_COL]) == ["B3"]
    assert list(filter_bonds(bonds_df, rating=["Investment Grade"])[config.ISIN_COL]) == ["B1", "B2"]
    assert list(filter_bonds(bonds_df, size=["Mid Cap"])[config.ISIN_COL]) == ["B2"]


def test_sort_bonds_numeric_text_and_unknown(bonds_df):
    by_vol = sort_bonds(bonds_df, config.IMPLIED_VOL_COL, "desc")
    assert list(by_vol[config.ISIN_COL]) == ["B4", "B2", "B3", "B1"]

    by_sector = sort_bonds(bonds_df, config.SECTOR_COL, "asc")
    assert list(by_sector[config.SECTOR_COL]) == ["Industrial", "Industrial", "Technology", "Utilities"]

    unchanged = sort_bonds(bonds_df, "Missing")
    assert list(unchanged[config.ISIN_COL]) == ["B1", "B2", "B3", "B4"]


def test_sort_bonds_missing_values_last(bonds_df):
    bonds_df.loc[1, config.IMPLIED_VOL_COL] = np.nan
    bonds_df[config.SECTOR_COL] = ["b", None, "a", "C"]
    assert sort_bonds(bonds_df, config.IMPLIED_VOL_COL, "asc")[config.ISIN_COL].iloc[-1] == "B2"
    assert sort_bonds(bonds_df, config.IMPLIED_VOL_COL, "desc")[config.ISIN_COL].iloc[-1] == "B2"
    assert list(sort_bonds(bonds_df, config.SECTOR_COL, "asc")[config.ISIN_COL]) == ["B3", "B1", "B4", "B2"]


def test_paginate_data(bonds_df):
    assert calculate_total_pages(4, 3) == 2
    page_df, ctx = paginate_data(bonds_df, page=2, page_size=3)
    assert list(page_df[config.ISIN_COL]) == ["B4"]
    assert ctx["total_pages"] == 2
    assert ctx["has_prev"] and not ctx["has_next"]

    _, clamped = paginate_data(bonds_df, page=9, page_size=3)
    assert clamped["page"] == 2

    empty_df, empty_ctx = paginate_data(bonds_df.iloc[0:0], page=1)
    assert empty_df.empty
    assert empty_ctx["total_pages"] == 1


def test_get_unique_values(bonds_df):
    assert get_unique_values(bonds_df, config.SECTOR_COL) == ["Industrial", "Technology", "Utilities"]
    assert get_unique_values(bonds_df, "Missing") == []


def test_dimension_values(bonds_df):
    assert list(dimension_values(bonds_df, "rating")) == [
        "Investment Grade", "Investment Grade", "High Yield", "Not Rated"
    ]
    assert list(dimension_values(bonds_df, "size")) == ["Small Cap", "Mid Cap", "Small Cap", "Small Cap"]
    assert set(dimension_values(bonds_df, "maturity", today="2025-01-01")) == {"]2,5]"}
    assert set(dimension_values(bonds_df, "colour")) == {"Unknown"}


def test_aggregate_by_dimension_market_cap_and_count(bonds_df):
    by_sector = aggregate_by_dimension(bonds_df, "sector").set_index("name")["value"]
    assert by_sector["Industrial"] == 1.5e9
    assert by_sector["Utilities"] == 3e9
    assert by_sector["Technology"] == 0.5e9

    by_rating = aggregate_by_dimension(bonds_df, "rating", value="count").set_index("name")["value"]
    assert by_rating.to_dict() == {"Investment Grade": 2, "High Yield": 1, "Not Rated": 1}

    with pytest.raises(ValueError):
        aggregate_by_dimension(bonds_df, "sector", value="median")


def test_maturity_bucket_moves_with_evaluation_date(bonds_df):
    early = aggregate_by_dimension(bonds_df, "maturity", value="count", today="2025-01-01")
    late = aggregate_by_dimension(bonds_df, "maturity", value="count", today="2027-12-31")
    assert list(early["name"]) == ["]2,5]"]
    assert list(late["name"]) == ["<1Y"]


def test_get_cross_filter_data(bonds_df):
    bonds_df.loc[2, config.DELTA_COL] = np.nan
    out = get_cross_filter_data(bonds_df, "sector", "rating")
    assert list(out.columns) == ["primary", "secondary", "count", "market_cap", "avg_metric"]
    assert out["count"].sum() == 4
    cell = out[(out["primary"] == "Industrial") & (out["secondary"] == "Investment Grade")].iloc[0]
    assert cell["count"] == 1
    assert cell["market_cap"] == 1e9
    assert cell["avg_metric"] == pytest.approx(0.5)
    missing_metric = out[(out["primary"] == "Industrial") & (out["secondary"] == "High Yield")].iloc[0]
    assert missing_metric["count"] == 1
    assert np.isnan(missing_metric["avg_metric"])


def test_cross_filter_empty_frame():
    out = get_cross_filter_data(pd.DataFrame(), "sector", "rating")
    assert out.empty


def test_calculate_portfolio_metrics(bonds_df):
    metrics = calculate_portfolio_metrics(bonds_df)
    assert metrics["total_notional"] == 5e9
    assert metrics["portfolio_delta"] == pytest.approx(0.5)
    assert metrics["avg_implied_vol"] == pytest.approx(35.5)
    assert metrics["avg_vol_spread"] == pytest.approx(5.0)
    assert metrics["count_balanced_bonds"] == 3
    # No Bond profile in the frame
    assert metrics["avg_credit_spread"] == 0.0


def test_calculate_portfolio_metrics_empty():
    metrics = calculate_portfolio_metrics(pd.DataFrame())
    assert metrics["total_notional"] == 0.0
    assert metrics["avg_vol_spread"] is None


def test_calculate_market_summary(bonds_df):
    summary = calculate_market_summary(bonds_df)
    assert summary["total_cbs"] == 4
    assert summary["total_market_cap"] == 5e9
    assert summary["avg_delta"] == pytest.approx(0.5)
    assert calculate_market_summary(pd.DataFrame())["avg_yield"] is None


def test_calculate_portfolio_attribution(bonds_df):
    bonds_df[config.PERF_1D_COL] = [1.0, 2.0, np.nan, 0.0]
    bonds_df[config.ATTRIBUTION_COLS["share_contrib"]] = [0.5, 1.5, 9.0, 0.0]
    result = calculate_portfolio_attribution(bonds_df)
    # Weights over B1, B2, B4 only: 1e9, 3e9, 0.5e9
    assert result["total_performance"] == pytest.approx((1.0 * 1 + 2.0 * 3) / 4.5)
    assert result["share_contrib"] == pytest.approx((0.5 * 1 + 1.5 * 3) / 4.5)
    assert result["fx_contrib"] == 0.0


def test_get_cheap_rich_analysis_orders_by_abs_mispricing():
    bonds = pd.DataFrame([
        make_bond("C1", **{config.PRICE_COL: 101.0, config.THEO_VALUE_COL: 100.0}),
        make_bond("C2", **{config.PRICE_COL: 95.0, config.THEO_VALUE_COL: 100.0}),
        make_bond("C3", **{config.PRICE_COL: 100.0, config.THEO_VALUE_COL: 0.0}),
    ])
    out = get_cheap_rich_analysis(bonds)
    assert list(out[config.ISIN_COL]) == ["C2", "C1", "C3"]
    assert out.loc[0, "Mispricing %"] == pytest.approx(-5.0)
    assert np.isnan(out.loc[2, "Mispricing %"])


def test_get_upcoming_events():
    bonds = pd.DataFrame([
        make_bond("E1", **{config.IS_SOFT_CALL_COL: True, config.CALL_FIRST_DATE_COL: pd.Timestamp("2025-02-01"),
                           config.CALL_TRIGGER_COL: 130.0, config.PARITY_PCT_COL: 135.0}),
        make_bond("E2", **{config.IS_PUTABLE_COL: True, config.PUT_DATE_COL: pd.Timestamp("2025-01-11"),
                           config.PUT_PRICE_COL: 100.0}),
        make_bond("E3", **{config.IS_PUTABLE_COL: True, config.PUT_DATE_COL: pd.Timestamp("2026-06-01"),
                           config.PUT_PRICE_COL: 100.0}),
        make_bond("E4", **{config.IS_SOFT_CALL_COL: True, config.CALL_FIRST_DATE_COL: pd.Timestamp("2024-12-01"),
                           config.CALL_TRIGGER_COL: 130.0}),
    ])
    events = get_upcoming_events(bonds, today="2025-01-01")
    assert list(events["ISIN"]) == ["E2", "E1"]
    assert list(events["Days to Event"]) == [10, 31]
    call = events.iloc[1]
    assert call["Event Type"] == "Call"
    assert bool(call["Is Triggered"]) is True


def test_get_upcoming_events_uses_clock(freeze_time):
    bonds = pd.DataFrame([
        make_bond("E2", **{config.IS_PUTABLE_COL: True, config.PUT_DATE_COL: pd.Timestamp("2025-01-13"),
                           config.PUT_PRICE_COL: 100.0}),
    ])
    with freeze_time:
        events = get_upcoming_events(bonds)
    # Frozen at 2025-01-03 10:00, so the 10-day gap floors to 9
    assert list(events["Days to Event"]) == [9]


def test_get_upcoming_events_none():
    assert get_upcoming_events(pd.DataFrame([make_bond("E0")]), today="2025-01-01").empty


def test_dimension_on_frame_without_its_column(bonds_df, caplog):
    no_rating = bonds_df.drop(columns=[config.RATING_COL])
    assert set(dimension_values(no_rating, "rating")) == {"Unknown"}
    assert any("missing" in rec.getMessage() for rec in caplog.records)

    by_rating = aggregate_by_dimension(no_rating, "rating", value="count")
    assert by_rating.to_dict("records") == [{"name": "Unknown", "value": 4}]
    assert list(filter_bonds(no_rating, rating=["Unknown"])[config.ISIN_COL]) == ["B1", "B2", "B3", "B4"]

    bare = bonds_df[[config.ISIN_COL, config.DELTA_COL]]
    cross = get_cross_filter_data(bare, "sector", "maturity")
    assert len(cross) == 1
    assert cross.loc[0, "count"] == 4
    assert cross.loc[0, "market_cap"] == 0.0
