# Purpose: Tests for the robust fixture helpers in core/data_utils.py.

import json

import numpy as np
import pandas as pd
from pandas.api.types import is_datetime64_any_dtype

from core.data_utils import (
    read_json_robustly,
    parse_dates_robustly,
    convert_to_numeric_robustly,
    coerce_numeric_columns,
    is_missing,
    to_optional_float,
)


def test_read_json_robustly_valid_and_invalid(tmp_path, caplog):
    good = tmp_path / "good.json"
    good.write_text(json.dumps({"convertible_bonds": []}), encoding="utf-8")
    assert read_json_robustly(str(good)) == {"convertible_bonds": []}

    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    assert read_json_robustly(str(bad)) is None
    assert read_json_robustly(str(tmp_path / "missing.json")) is None

    messages = [rec.getMessage() for rec in caplog.records if rec.levelname == "ERROR"]
    assert any("JSON decode error" in msg for msg in messages)
    assert any("File not found" in msg for msg in messages)


def test_parse_dates_robustly_mixed_formats():
    """Ensure parse_dates_robustly correctly parses multiple date formats and flags invalid ones."""
    date_strings = pd.Series(["2024-06-01", "01/07/2024", "2024-08-01T12:34:56", "not a date"])

    parsed = parse_dates_robustly(date_strings)

    assert parsed.notna().sum() == 3, "Expected three successfully parsed dates."
    assert parsed.iloc[1] == pd.Timestamp("2024-07-01")
    assert is_datetime64_any_dtype(parsed)


def test_convert_to_numeric_keeps_zeros_and_logs(caplog):
    series = pd.Series(["1.2", "0", "bad", None])

    result = convert_to_numeric_robustly(series)

    assert result.iloc[0] == 1.2
    # A zero vega is a value, not a missing field
    assert result.iloc[1] == 0.0
    assert np.isnan(result.iloc[2])
    assert np.isnan(result.iloc[3])
    assert pd.api.types.is_float_dtype(result)
    assert any("could not be converted" in rec.getMessage() for rec in caplog.records)


def test_coerce_numeric_columns_ignores_absent_columns():
    df = pd.DataFrame({"Vega": ["0.3", "x"], "Name": ["a", "b"]})
    out = coerce_numeric_columns(df, ["Vega", "Delta"])
    assert out["Vega"].iloc[0] == 0.3
    assert np.isnan(out["Vega"].iloc[1])
    assert "Delta" not in out.columns
    # Input is not modified
    assert df["Vega"].iloc[0] == "0.3"


def test_is_missing_and_to_optional_float():
    assert is_missing(None)
    assert is_missing(np.nan)
    assert is_missing(pd.NaT)
    assert not is_missing(0)
    assert not is_missing("NR")

    assert to_optional_float("2.5") == 2.5
    assert to_optional_float(0) == 0.0
    assert to_optional_float("n/a") is None
    assert to_optional_float(np.nan) is None
