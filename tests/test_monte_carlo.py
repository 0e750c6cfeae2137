"""Tests for the Monte Carlo simulation module."""

import numpy as np
import pandas as pd
import pytest

from qrm_toolkit.exceptions import SingularMatrixError
from qrm_toolkit.monte_carlo import MonteCarloEngine, SimulationResult


def _make_returns() -> pd.DataFrame:
    rng = np.random.default_rng(42)
    n_days = 100
    return pd.DataFrame({
        "Equity": rng.normal(0.0006, 0.012, n_days),
        "Bonds": rng.normal(0.0002, 0.004, n_days),
    })


def _make_engine(**kwargs) -> MonteCarloEngine:
    params = {"n_simulations": 100, "horizon": 50, "rng": 42}
    params.update(kwargs)
    return MonteCarloEngine.from_returns(_make_returns(), [0.6, 0.4], **params)


def test_simulation_output_shape():
    result = _make_engine().run()

    assert isinstance(result, SimulationResult)
    assert result.paths.shape == (100, 51)  # n_simulations x (horizon + 1)
    assert result.final_values.shape == (100,)
    assert result.final_returns.shape == (100,)
    assert result.n_simulations == 100
    assert result.horizon == 50


def test_simulation_with_seed_reproducible():
    result1 = _make_engine(n_simulations=50, horizon=30, rng=123).run()
    result2 = _make_engine(n_simulations=50, horizon=30, rng=123).run()

    np.testing.assert_array_almost_equal(result1.final_values, result2.final_values)
    np.testing.assert_array_almost_equal(result1.paths, result2.paths)


def test_simulation_different_seeds_differ():
    result1 = _make_engine(n_simulations=50, horizon=30, rng=1).run()
    result2 = _make_engine(n_simulations=50, horizon=30, rng=2).run()

    assert not np.allclose(result1.final_values, result2.final_values)


def test_probability_of_loss_between_0_and_1():
    result = _make_engine(n_simulations=500).run()
    assert 0.0 <= result.prob_loss <= 1.0


def test_all_paths_start_at_initial_value():
    result = _make_engine(initial_value=250_000).run()
    np.testing.assert_array_almost_equal(result.paths[:, 0], np.full(100, 250_000.0))


def test_weights_are_normalised():
    engine = MonteCarloEngine.from_returns(_make_returns(), [3, 2], rng=0)
    np.testing.assert_allclose(engine.weights, [0.6, 0.4])


def test_portfolio_moments_reported():
    returns = _make_returns()
    result = _make_engine().run()
    w = np.array([0.6, 0.4])
    assert result.portfolio_return == pytest.approx(float(returns.mean().values @ w))
    assert result.portfolio_vol == pytest.approx(float(np.sqrt(w @ returns.cov().values @ w)))


def test_confidence_levels_populated():
    result = _make_engine(n_simulations=200).run()

    for q in [1, 5, 10, 25, 50, 75, 90, 95, 99]:
        assert q in result.confidence_levels
    assert result.confidence_levels[5] <= result.confidence_levels[95]


def test_final_returns_consistent_with_values():
    result = _make_engine(n_simulations=50, horizon=30).run()

    expected = (result.final_values - result.initial_value) / result.initial_value
    np.testing.assert_array_almost_equal(result.final_returns, expected)


def test_percentile_paths_ordered():
    result = _make_engine(n_simulations=200).run()
    bands = result.percentile_paths((5, 50, 95))
    assert bands.shape == (3, 51)
    assert np.all(bands[0] <= bands[1])
    assert np.all(bands[1] <= bands[2])


def test_stress_test_shocks_day_one():
    result = _make_engine().stress_test(shock_pct=-0.20)
    np.testing.assert_allclose(result.paths[:, 1], 800_000.0)
    assert result.paths[0, 0] == 1_000_000.0


def test_shape_mismatch_raises():
    with pytest.raises(ValueError, match="Shape mismatch"):
        MonteCarloEngine(np.zeros(2), np.eye(2), [1.0, 0.0, 0.0])


def test_non_positive_definite_covariance_raises():
    engine = MonteCarloEngine(np.zeros(2), np.ones((2, 2)), [0.5, 0.5], rng=0)
    with pytest.raises(SingularMatrixError):
        engine.run()
