"""Tests for data loading and sample data generation."""

import numpy as np
import pandas as pd
import pytest

from qrm_toolkit.data_loader import (
    SAMPLE_ASSETS,
    generate_market_factors,
    generate_sample_returns,
    load_prices,
    load_returns,
    prices_to_returns,
    write_sample_data,
)


def _make_csv(tmp_path, frame: pd.DataFrame, name: str = "returns.csv"):
    path = tmp_path / name
    frame.to_csv(path, index=False)
    return path


def test_load_returns_sorts_by_date(tmp_path):
    path = _make_csv(tmp_path, pd.DataFrame({
        "Date": ["2024-01-03", "2024-01-02", "2024-01-04"],
        "A": [0.02, 0.01, 0.03],
        "B": [-0.01, 0.0, 0.01],
    }))
    returns = load_returns(path)
    assert list(returns.columns) == ["A", "B"]
    assert returns.index.is_monotonic_increasing
    assert returns["A"].tolist() == [0.01, 0.02, 0.03]


def test_missing_date_column_raises(tmp_path):
    path = _make_csv(tmp_path, pd.DataFrame({"A": [0.01], "B": [0.02]}))
    with pytest.raises(ValueError, match="Date"):
        load_returns(path)


def test_no_asset_columns_raises(tmp_path):
    path = _make_csv(tmp_path, pd.DataFrame({"Date": ["2024-01-02"]}))
    with pytest.raises(ValueError, match="no asset columns"):
        load_returns(path)


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_returns(tmp_path / "nope.csv")


def test_prices_to_returns(tmp_path):
    path = _make_csv(tmp_path, pd.DataFrame({
        "Date": ["2024-01-02", "2024-01-03", "2024-01-04"],
        "A": [100.0, 110.0, 99.0],
    }), name="prices.csv")
    returns = prices_to_returns(load_prices(path))
    assert len(returns) == 2
    np.testing.assert_allclose(returns["A"].values, [0.10, -0.10])


def test_sample_returns_shape_and_names():
    returns = generate_sample_returns(rng=42)
    assert returns.shape == (504, 4)
    assert list(returns.columns) == SAMPLE_ASSETS
    assert returns.index.name == "Date"
    assert (returns.index.dayofweek < 5).all()


def test_sample_returns_reproducible():
    pd.testing.assert_frame_equal(generate_sample_returns(rng=1), generate_sample_returns(rng=1))


def test_market_factors_align_with_returns():
    returns = generate_sample_returns(n_days=100, rng=0)
    factors = generate_market_factors(returns, rng=0)
    assert list(factors.columns) == ["Market", "Risk_Free", "SMB", "HML"]
    assert factors.index.equals(returns.index)


def test_written_sample_data_loads(tmp_path):
    paths = write_sample_data(tmp_path, rng=3)
    assert all(p.exists() for p in paths)
    returns = load_returns(paths[0])
    assert list(returns.columns) == SAMPLE_ASSETS
    assert len(returns) == 504
