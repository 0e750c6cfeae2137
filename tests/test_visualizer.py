"""Smoke tests for chart generation."""

import numpy as np

from qrm_toolkit.data_loader import generate_market_factors, generate_sample_returns
from qrm_toolkit.factors import single_factor_model
from qrm_toolkit.frontier import efficient_frontier
from qrm_toolkit.monte_carlo import MonteCarloEngine
from qrm_toolkit.optimizer import minimum_variance
from qrm_toolkit.visualizer import generate_dashboard, plot_factor_model


def test_dashboard_writes_all_charts(tmp_path):
    returns = generate_sample_returns(n_days=200, rng=0)
    weights = np.full(4, 0.25)
    sim = MonteCarloEngine.from_returns(returns, weights, n_simulations=30, horizon=15, rng=0).run()

    paths = generate_dashboard(
        returns,
        list(efficient_frontier(returns, n_portfolios=10)),
        {"Minimum Variance": minimum_variance(returns).weights_series},
        sim,
        returns @ weights,
        var_threshold=-0.01,
        output_dir=tmp_path,
    )
    assert len(paths) == 5
    assert all(p.exists() for p in paths)


def test_factor_model_chart(tmp_path):
    returns = generate_sample_returns(n_days=200, rng=1)
    factors = generate_market_factors(returns, rng=1)
    result = single_factor_model(returns["US_Small_Cap"], factors["Market"])
    output = tmp_path / "factor.png"
    plot_factor_model(result, "US_Small_Cap", output=output)
    assert output.exists()
