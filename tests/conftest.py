# Add project root to sys.path for module imports
import os, sys
import json
import pytest
import pandas as pd

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from core import config  # noqa: E402


def write_json(path: str, payload) -> None:
    """Utility to quickly materialize small JSON fixtures."""
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f)


def make_bond(code, **overrides):
    """One bond row with every column the analytics read; override what the test cares about."""
    row = {
        config.ISIN_COL: code,
        config.BBG_CODE_COL: code,
        config.ISSUER_COL: f"Issuer {code}",
        config.SECTOR_COL: "Industrial",
        config.COUNTRY_COL: "FRANCE",
        config.CURRENCY_COL: "EUR",
        config.RATING_COL: "BBB",
        config.MATURITY_DATE_COL: pd.Timestamp("2028-06-30"),
        config.AMOUNT_ISSUED_COL: 1_000_000_000,
        config.OUTSTANDING_COL: 1_000_000_000,
        config.UL_OUTSTANDING_COL: 10_000_000,
        config.SIZE_COL: "Small Cap",
        config.PROFILE_COL: "Mixed",
        config.PRICE_COL: 100.0,
        config.THEO_VALUE_COL: 100.0,
        config.STOCK_PRICE_COL: 50.0,
        config.DELTA_COL: 0.5,
        config.GAMMA_COL: 1.0,
        config.VEGA_COL: 0.5,
        config.IMPLIED_VOL_COL: 25.0,
        config.HIST_VOL_COL: 22.0,
        config.YTM_COL: 1.0,
        config.CREDIT_SPREAD_COL: 100.0,
        config.BONDFLOOR_PCT_COL: 90.0,
        config.DISTANCE_TO_BONDFLOOR_COL: 10.0,
        config.PRIME_COL: 20.0,
        config.PARITY_PCT_COL: 80.0,
        config.DURATION_COL: 3.0,
        config.PERF_1D_COL: 0.5,
        config.IS_PUTABLE_COL: False,
        config.PUT_DATE_COL: pd.NaT,
        config.PUT_PRICE_COL: float("nan"),
        config.IS_SOFT_CALL_COL: False,
        config.CALL_TRIGGER_COL: float("nan"),
        config.CALL_FIRST_DATE_COL: pd.NaT,
    }
    for key in config.ATTRIBUTION_COLS.values():
        row[key] = 0.0
    row.update(overrides)
    return row


@pytest.fixture
def bonds_df():
    """Four bonds: three vega-eligible peers (spreads 3, 5, 7) and one low-vega bond."""
    return pd.DataFrame([
        make_bond("B1", **{config.IMPLIED_VOL_COL: 25.0, config.HIST_VOL_COL: 22.0,
                           config.SECTOR_COL: "Industrial", config.RATING_COL: "A+",
                           config.OUTSTANDING_COL: 1_000_000_000}),
        make_bond("B2", **{config.IMPLIED_VOL_COL: 30.0, config.HIST_VOL_COL: 25.0,
                           config.SECTOR_COL: "Utilities", config.RATING_COL: "Baa3",
                           config.OUTSTANDING_COL: 3_000_000_000, config.AMOUNT_ISSUED_COL: 3_000_000_000}),
        make_bond("B3", **{config.IMPLIED_VOL_COL: 27.0, config.HIST_VOL_COL: 20.0,
                           config.SECTOR_COL: "Industrial", config.RATING_COL: "Ba1",
                           config.OUTSTANDING_COL: 500_000_000}),
        make_bond("B4", **{config.VEGA_COL: 0.1, config.IMPLIED_VOL_COL: 60.0, config.HIST_VOL_COL: 10.0,
                           config.SECTOR_COL: "Technology", config.RATING_COL: "NR",
                           config.OUTSTANDING_COL: 500_000_000}),
    ])


def make_history(dates, cb_prices, stock_prices, deltas=None, hist_vols=None):
    n = len(dates)
    return pd.DataFrame({
        config.DATE_COL: pd.to_datetime(dates),
        config.CB_PRICE_PCT_COL: cb_prices,
        config.STOCK_PRICE_COL: stock_prices,
        config.DELTA_COL: deltas if deltas is not None else [0.5] * n,
        config.HIST_VOL_COL: hist_vols if hist_vols is not None else [20.0] * n,
    })


@pytest.fixture
def histories():
    dates = ["2025-01-01", "2025-01-02", "2025-01-03"]
    return {
        "B1": make_history(dates, [100.0, 110.0, 120.0], [50.0, 55.0, 60.0]),
        "B2": make_history(dates, [200.0, 200.0, 210.0], [10.0, 10.0, 11.0]),
    }


STATIC_FIXTURE = {
    "convertible_bonds": [
        {
            "name": "ENGIE SA 1 1/4 01/15/30",
            "bloomberg_code": "FR001",
            "issuer": {"country": "FRANCE", "sector": "Utilities", "industry": "Electric"},
            "bond_characteristics": {
                "maturity_date": "2030-01-15",
                "issue_date": "2023-01-15",
                "coupon_percent": 1.25,
                "amount_issued": 3000000000,
                "currency": "EUR",
            },
            "put_option": {"is_putable": True, "put_date": "2025-03-01", "put_price_percent": 100},
            "soft_call": {"has_soft_call": False},
        },
        {
            "name": "SPOTIFY USA 0 03/15/26",
            "bloomberg_code": "US002",
            "issuer": {"country": "UNITED STATES", "sector": "Communications", "industry": "Internet"},
            "bond_characteristics": {
                "maturity_date": "2026-03-15",
                "amount_issued": 1500000000,
                "currency": "USD",
            },
            "put_option": {"is_putable": False},
            "soft_call": {"has_soft_call": True, "first_call_date": "2025-02-01", "call_trigger_percent": 130},
        },
        {
            "name": "NO HISTORY CO",
            "bloomberg_code": "XS003",
            "issuer": {"country": "GERMANY", "sector": "Industrial"},
            "bond_characteristics": {"maturity_date": "2027-01-01", "amount_issued": 500000000, "currency": "EUR"},
        },
    ]
}

HISTORY_FIXTURE = [
    {"Bloomberg code ( ticker or ISIN)": "FR001", "DATE": "2024-12-31", "CB Market Price %": 100.0,
     "CB OUTSTANDING": 3000000000, "Stock price": 14.0, "Delta%": 0.25, "Vega": 0.45,
     "ImpVol (%)": 16.0, "His vol": 18.0, "Bondfloor % ": 95.0},
    {"Bloomberg code ( ticker or ISIN)": "FR001", "DATE": "2025-01-03", "CB Market Price %": 102.0,
     "CB OUTSTANDING": 3000000000, "Stock price": 14.5, "Delta%": 0.27, "Vega": 0.46,
     "ImpVol (%)": 16.2, "His vol": 18.1, "Bondfloor % ": 95.2, "CB perf": 0.3, "Share contrib% ": 0.2},
    {"Bloomberg code ( ticker or ISIN)": "FR001", "DATE": "2025-01-02", "CB Market Price %": 101.0,
     "CB OUTSTANDING": 3000000000, "Stock price": 14.4, "Delta%": 0.27, "Vega": 0.45,
     "ImpVol (%)": 16.1, "His vol": 18.2, "Bondfloor % ": 95.1},
    {"Bloomberg code ( ticker or ISIN)": "US002", "DATE": "2025-01-03", "CB Market Price %": 97.2,
     "CB OUTSTANDING": 1500000000, "Stock price": 455.0, "Delta%": 0.85, "Vega": 0.19,
     "ImpVol (%)": 39.0, "His vol": None, "Parity %": 131.0},
]


@pytest.fixture
def fixture_folder(tmp_path):
    """Data folder holding small static_fields.json and cbhist.json fixtures."""
    write_json(str(tmp_path / config.STATIC_FIELDS_FILENAME), STATIC_FIXTURE)
    write_json(str(tmp_path / config.HISTORY_FILENAME), HISTORY_FIXTURE)
    return str(tmp_path)


@pytest.fixture
def app_config(mocker, tmp_path):
    """Patch core.settings_loader.load_settings to return test config."""
    mocker.patch(
        "core.settings_loader.load_settings",
        return_value={"app_config": {"data_folder": str(tmp_path)}},
    )
    return str(tmp_path)


@pytest.fixture
def freeze_time():
    """Use freezegun.freeze_time for tests that rely on 'today'."""
    from freezegun import freeze_time
    return freeze_time("2025-01-03 10:00:00")
