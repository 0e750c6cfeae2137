"""Tests for Value at Risk and Expected Shortfall."""

import logging

import numpy as np
import pytest
from scipy.stats import norm

from qrm_toolkit.exceptions import InsufficientDataError
from qrm_toolkit.var import VaRCalculator


def _make_returns(n_days: int = 252) -> np.ndarray:
    rng = np.random.default_rng(42)
    return rng.normal(0.0005, 0.012, n_days)


def _make_calculator() -> VaRCalculator:
    return VaRCalculator(_make_returns(), portfolio_value=1_000_000)


def test_historical_var_is_empirical_quantile():
    returns = _make_returns()
    result = VaRCalculator(returns).historical(0.95)
    assert result.var_percent == pytest.approx(np.quantile(returns, 0.05))
    assert result.var_dollar == pytest.approx(abs(result.var_percent) * 1_000_000)


def test_var_99_greater_than_var_95():
    calc = _make_calculator()
    assert calc.historical(0.99).var_dollar >= calc.historical(0.95).var_dollar
    assert calc.parametric(0.99).var_dollar >= calc.parametric(0.95).var_dollar


def test_parametric_var_uses_normal_quantile():
    returns = _make_returns()
    result = VaRCalculator(returns).parametric(0.99)
    expected = returns.mean() + norm.ppf(0.01) * returns.std(ddof=1)
    assert result.var_percent == pytest.approx(expected)
    assert result.sd == pytest.approx(returns.std(ddof=1))


def test_monte_carlo_var_reproducible_with_seed():
    calc = _make_calculator()
    a = calc.monte_carlo(0.95, n_simulations=5000, rng=7)
    b = calc.monte_carlo(0.95, n_simulations=5000, rng=7)
    c = calc.monte_carlo(0.95, n_simulations=5000, rng=8)
    assert a.var_percent == b.var_percent
    assert a.var_percent != c.var_percent
    assert a.n_simulations == 5000


def test_monte_carlo_var_close_to_parametric():
    calc = _make_calculator()
    mc = calc.monte_carlo(0.95, n_simulations=200_000, rng=1)
    assert mc.var_percent == pytest.approx(calc.parametric(0.95).var_percent, rel=0.05)


def test_expected_shortfall_beyond_var():
    calc = _make_calculator()
    es = calc.expected_shortfall(0.95)
    assert es.es_percent <= es.var_threshold
    assert es.es_dollar >= calc.historical(0.95).var_dollar


def test_analysis_table():
    table = _make_calculator().analysis()
    assert list(table.columns) == [
        "confidence_level", "historical_var", "parametric_var", "expected_shortfall",
    ]
    assert list(table["confidence_level"]) == [0.90, 0.95, 0.99]
    assert (table["historical_var"] > 0).all()


def test_missing_values_are_dropped():
    returns = _make_returns()
    returns[:5] = np.nan
    calc = VaRCalculator(returns)
    assert len(calc.returns) == len(returns) - 5


def test_too_few_returns_raise():
    with pytest.raises(InsufficientDataError):
        VaRCalculator([0.01, np.nan])


def test_confidence_outside_unit_interval_raises():
    with pytest.raises(ValueError, match="Confidence"):
        _make_calculator().historical(95)


def test_short_history_logs_warning(caplog):
    calc = VaRCalculator(_make_returns(20))
    with caplog.at_level(logging.WARNING, logger="qrm_toolkit"):
        calc.historical(0.95)
    assert "observations" in caplog.text
