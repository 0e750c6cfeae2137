"""Load return matrices from CSV files and generate sample datasets."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd

from qrm_toolkit.optimizer import TRADING_DAYS

SAMPLE_ASSETS = ["US_Large_Cap", "US_Small_Cap", "International", "Bonds"]
SAMPLE_ANNUAL_RETURNS = np.array([0.10, 0.12, 0.08, 0.04])
SAMPLE_ANNUAL_VOLS = np.array([0.15, 0.22, 0.18, 0.05])
SAMPLE_CORRELATIONS = np.array([
    [1.00, 0.80, 0.70, 0.20],
    [0.80, 1.00, 0.65, 0.15],
    [0.70, 0.65, 1.00, 0.25],
    [0.20, 0.15, 0.25, 1.00],
])
SAMPLE_START = "2022-01-03"


def load_returns(path: str | Path, date_column: str = "Date") -> pd.DataFrame:
    """
    Load a return matrix from CSV.

    Args:
        path: CSV with a date column and one column of periodic returns per asset.
        date_column: Name of the date column.

    Returns:
        DataFrame indexed by date, one float column per asset.
    """
    df = _read_csv(path)
    return _index_by_date(df, date_column, "Returns")


def load_prices(path: str | Path, date_column: str = "Date") -> pd.DataFrame:
    """Load a price matrix from CSV, indexed by date."""
    df = _read_csv(path)
    return _index_by_date(df, date_column, "Prices")


def prices_to_returns(prices: pd.DataFrame) -> pd.DataFrame:
    """Daily simple returns; the first (undefined) row is dropped."""
    return prices.pct_change().iloc[1:]


def generate_sample_returns(
    n_days: int = 504,
    rng: np.random.Generator | int | None = None,
) -> pd.DataFrame:
    """
    Correlated daily returns for a four-asset sample universe.

    Annual expected returns, volatilities and correlations are fixed;
    they are converted to daily moments and drawn from a multivariate normal.
    """
    rng = np.random.default_rng(rng)
    daily_mu = SAMPLE_ANNUAL_RETURNS / TRADING_DAYS
    daily_vol = SAMPLE_ANNUAL_VOLS / np.sqrt(TRADING_DAYS)
    cov = np.diag(daily_vol) @ SAMPLE_CORRELATIONS @ np.diag(daily_vol)
    draws = rng.multivariate_normal(daily_mu, cov, size=n_days)
    dates = pd.bdate_range(start=SAMPLE_START, periods=n_days, name="Date")
    return pd.DataFrame(draws, index=dates, columns=SAMPLE_ASSETS)


def generate_market_factors(
    returns: pd.DataFrame,
    rng: np.random.Generator | int | None = None,
) -> pd.DataFrame:
    """Market, risk-free, SMB and HML factor series aligned with ``returns``."""
    rng = np.random.default_rng(rng)
    n = len(returns)
    return pd.DataFrame(
        {
            "Market": returns.iloc[:, 0].values + rng.normal(0, 0.002, n),
            "Risk_Free": np.full(n, 0.02 / TRADING_DAYS),
            "SMB": rng.normal(0, 0.005, n),
            "HML": rng.normal(0, 0.004, n),
        },
        index=returns.index,
    )


def write_sample_data(
    output_dir: str | Path = "data",
    rng: np.random.Generator | int | None = None,
) -> list[Path]:
    """Write the sample returns and market factors as CSV files."""
    rng = np.random.default_rng(rng)
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    returns = generate_sample_returns(rng=rng)
    factors = generate_market_factors(returns, rng=rng)

    paths = [out / "portfolio_returns_sample.csv", out / "market_factors_sample.csv"]
    returns.to_csv(paths[0], index_label="Date")
    factors.to_csv(paths[1], index_label="Date")
    return paths


def _index_by_date(df: pd.DataFrame, date_column: str, label: str) -> pd.DataFrame:
    if date_column not in df.columns:
        raise ValueError(f"{label} CSV must contain a '{date_column}' column")
    df[date_column] = pd.to_datetime(df[date_column])
    df = df.sort_values(date_column).set_index(date_column)
    if df.shape[1] == 0:
        raise ValueError(f"{label} CSV has no asset columns")
    return df.astype(float)


def _read_csv(path: str | Path) -> pd.DataFrame:
    """Read a CSV, raising a clear error if the file is missing."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")
    return pd.read_csv(path)
