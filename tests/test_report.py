"""Tests for report assembly and the command-line pipeline."""

import json

import numpy as np
import pytest

from qrm_toolkit.cli import build_parser, run
from qrm_toolkit.data_loader import generate_sample_returns
from qrm_toolkit.frontier import efficient_frontier
from qrm_toolkit.monte_carlo import MonteCarloEngine
from qrm_toolkit.optimizer import minimum_variance
from qrm_toolkit.report import build_report_data, export_json
from qrm_toolkit.risk_budget import risk_budgeting_portfolio
from qrm_toolkit.var import VaRCalculator


def _make_report() -> dict:
    returns = generate_sample_returns(n_days=250, rng=42)
    weights = np.full(4, 0.25)
    var_table = VaRCalculator(returns @ weights).analysis()
    sim = MonteCarloEngine.from_returns(returns, weights, n_simulations=50, horizon=20, rng=0).run()
    return build_report_data(
        returns,
        var_table,
        {"Minimum Variance": minimum_variance(returns)},
        risk_budgeting_portfolio(returns),
        list(efficient_frontier(returns, n_portfolios=10)),
        sim,
    )


def test_report_sections():
    data = _make_report()
    for key in ("generated_at", "data", "var_analysis", "portfolios",
                "risk_budgeting", "efficient_frontier", "monte_carlo"):
        assert key in data
    assert data["data"]["observations"] == 250
    assert data["efficient_frontier"]["n_points"] == 10
    assert "stress_tests" not in data


def test_export_json_round_trips(tmp_path):
    path = export_json(_make_report(), tmp_path / "nested" / "report.json")
    loaded = json.loads(path.read_text())
    assert loaded["portfolios"]["Minimum Variance"]["weights"]
    assert isinstance(loaded["risk_budgeting"]["converged"], bool)


def test_cli_pipeline_writes_report(tmp_path):
    args = build_parser().parse_args([
        "--seed", "1",
        "--simulations", "50",
        "--horizon", "10",
        "--frontier-points", "10",
        "--no-charts",
        "-o", str(tmp_path),
    ])
    run(args)
    report = json.loads((tmp_path / "qrm_report.json").read_text())
    assert set(report["stress_tests"]) == {
        "baseline", "market_crash", "interest_rate_shock", "correlation_breakdown",
    }


def test_cli_missing_file_exits(tmp_path):
    args = build_parser().parse_args(["--returns", str(tmp_path / "missing.csv"), "-o", str(tmp_path)])
    with pytest.raises(SystemExit) as exc:
        run(args)
    assert exc.value.code == 1


def test_cli_zero_sum_weights_exit(tmp_path):
    args = build_parser().parse_args(["--weights", "1,-1,0.5,-0.5", "-o", str(tmp_path)])
    with pytest.raises(SystemExit) as exc:
        run(args)
    assert exc.value.code == 1
