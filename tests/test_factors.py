"""Tests for factor models."""

import numpy as np
import pandas as pd
import pytest

from qrm_toolkit.exceptions import InsufficientDataError
from qrm_toolkit.factors import (
    factor_diagnostics,
    multi_factor_model,
    pca_risk_factors,
    risk_attribution,
    single_factor_model,
    style_analysis,
)


def _make_market(n_days: int = 2000, seed: int = 0) -> pd.Series:
    rng = np.random.default_rng(seed)
    dates = pd.bdate_range(start="2020-01-01", periods=n_days)
    return pd.Series(rng.normal(0.0004, 0.015, n_days), index=dates, name="market")


def _make_asset_returns(n_days: int = 500) -> pd.DataFrame:
    rng = np.random.default_rng(21)
    common = rng.normal(0, 0.01, n_days)
    return pd.DataFrame({
        f"Asset_{i}": common * load + rng.normal(0, 0.005, n_days)
        for i, load in enumerate([1.0, 0.8, 1.2, 0.3], start=1)
    })


def test_capm_recovers_beta():
    market = _make_market()
    noise = np.random.default_rng(1).normal(0, 0.01, len(market))
    asset = 0.0002 + 1.2 * market + noise

    result = single_factor_model(asset, market)
    assert result.beta == pytest.approx(1.2, abs=0.1)
    assert abs(result.alpha - 0.0002) < 0.001
    assert 0 < result.r_squared < 1
    assert result.n_obs == len(market)


def test_capm_exact_fit():
    market = _make_market(200)
    result = single_factor_model(0.001 + 2.0 * market, market, risk_free_rate=0.0)
    assert result.beta == pytest.approx(2.0)
    assert result.alpha == pytest.approx(0.001)
    assert result.r_squared == pytest.approx(1.0)


def test_tracking_error_and_information_ratio():
    market = _make_market()
    asset = 0.0003 + market + np.random.default_rng(2).normal(0, 0.004, len(market))
    result = single_factor_model(asset, market)
    assert result.tracking_error == pytest.approx(result.residuals.std(ddof=1))
    assert result.information_ratio == pytest.approx(result.alpha / result.tracking_error)


def test_fama_french_recovers_loadings():
    rng = np.random.default_rng(3)
    market = _make_market()
    smb = pd.Series(rng.normal(0, 0.005, len(market)), index=market.index)
    hml = pd.Series(rng.normal(0, 0.004, len(market)), index=market.index)
    asset = 1.0 * market + 0.5 * smb - 0.3 * hml + rng.normal(0, 0.002, len(market))

    result = multi_factor_model(asset, market, smb, hml)
    assert set(result.betas) == {"market", "smb", "hml"}
    assert result.betas["market"] == pytest.approx(1.0, abs=0.05)
    assert result.betas["smb"] == pytest.approx(0.5, abs=0.05)
    assert result.betas["hml"] == pytest.approx(-0.3, abs=0.05)
    assert result.tracking_error is None


def test_incomplete_rows_are_dropped():
    market = _make_market(100)
    asset = 1.1 * market
    asset.iloc[:10] = np.nan
    assert single_factor_model(asset, market).n_obs == 90


def test_too_few_observations_raise():
    with pytest.raises(InsufficientDataError):
        single_factor_model([0.01, 0.02], [0.01, 0.03])


def test_mismatched_array_lengths_raise():
    with pytest.raises(ValueError, match="lengths differ"):
        single_factor_model(np.zeros(10), np.zeros(11))


def test_pca_loadings_are_orthonormal():
    result = pca_risk_factors(_make_asset_returns(), n_factors=3)
    loadings = result.loadings.values
    assert loadings.shape == (4, 3)
    np.testing.assert_allclose(loadings.T @ loadings, np.eye(3), atol=1e-10)
    assert result.factor_names == ["PC1", "PC2", "PC3"]


def test_pca_variance_explained():
    result = pca_risk_factors(_make_asset_returns(), n_factors=4)
    explained = result.variance_explained.values
    assert np.all(np.diff(explained) <= 1e-12)
    assert result.cumulative_variance.iloc[-1] == pytest.approx(1.0)
    # one common factor drives most of the variance
    assert explained[0] > 0.5


def test_pca_factor_count_validated():
    with pytest.raises(ValueError, match="n_factors"):
        pca_risk_factors(_make_asset_returns(), n_factors=5)


def test_pca_constant_column_raises():
    returns = _make_asset_returns()
    returns["Asset_4"] = 0.0
    with pytest.raises(ValueError, match="Constant"):
        pca_risk_factors(returns)


def test_risk_attribution_sums_to_total():
    rng = np.random.default_rng(4)
    factors = pd.DataFrame({
        "Market": rng.normal(0, 0.01, 500),
        "Value": rng.normal(0, 0.005, 500),
    })
    portfolio = 0.9 * factors["Market"] + 0.4 * factors["Value"] + rng.normal(0, 0.003, 500)

    result = risk_attribution(portfolio, factors)
    assert result.risk_percentages.sum() == pytest.approx(100.0)
    assert "Specific Risk" in result.risk_percentages.index
    assert result.risk_percentages["Market"] > result.risk_percentages["Value"]


def test_style_analysis_recovers_mix():
    rng = np.random.default_rng(5)
    benchmarks = pd.DataFrame(
        rng.normal(0.0005, 0.01, size=(60, 3)), columns=["Growth", "Value", "Bonds"]
    )
    fund = 0.6 * benchmarks["Growth"] + 0.4 * benchmarks["Value"]

    result = style_analysis(fund, benchmarks, window_length=36)
    assert len(result.rolling_weights) == 25
    np.testing.assert_allclose(result.average_weights.values, [0.6, 0.4, 0.0], atol=1e-8)
    np.testing.assert_allclose(result.rolling_rsquared.values, 1.0, atol=1e-10)


def test_style_analysis_policies():
    rng = np.random.default_rng(6)
    benchmarks = pd.DataFrame(rng.normal(0, 0.01, size=(40, 2)), columns=["A", "B"])
    fund = 1.2 * benchmarks["A"] - 0.2 * benchmarks["B"]

    raw = style_analysis(fund, benchmarks, window_length=20, policies=())
    np.testing.assert_allclose(raw.average_weights.values, [1.2, -0.2], atol=1e-8)

    long_only = style_analysis(fund, benchmarks, window_length=20)
    np.testing.assert_allclose(long_only.average_weights.values, [1.0, 0.0], atol=1e-8)


def test_style_analysis_short_history_raises():
    benchmarks = pd.DataFrame(np.ones((10, 2)), columns=["A", "B"])
    with pytest.raises(InsufficientDataError):
        style_analysis(benchmarks["A"], benchmarks, window_length=36)


def test_diagnostics_on_normal_residuals():
    market = _make_market()
    asset = 0.8 * market + np.random.default_rng(7).normal(0, 0.01, len(market))
    diag = factor_diagnostics(single_factor_model(asset, market), lags=10)

    assert 2.5 < diag.kurtosis < 3.5
    for p in (diag.jarque_bera_pvalue, diag.ljung_box_pvalue, diag.breusch_pagan_pvalue):
        assert 0.0 <= p <= 1.0
    assert diag.ljung_box_stat >= 0


def test_diagnostics_lag_validated():
    market = _make_market(50)
    result = single_factor_model(market * 1.1 + 0.0001 * np.arange(50), market)
    with pytest.raises(ValueError, match="lags"):
        factor_diagnostics(result, lags=50)
