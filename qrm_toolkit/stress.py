"""Historical stress scenarios and their effect on portfolio VaR."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

import numpy as np
import pandas as pd

from qrm_toolkit.linalg import as_return_matrix

SCENARIO_TYPES = ("market_crash", "interest_rate_shock", "correlation_breakdown")

# indexed by severity - 1 (mild, moderate, severe)
CRASH_DECLINES = (0.10, 0.15, 0.25)
RATE_INCREASES = (0.02, 0.03, 0.05)
BOND_DURATION = 5.0
EQUITY_RATE_SENSITIVITY = 0.5
CRISIS_CORRELATION = 0.8
CORRELATION_BLEND = 0.7


@dataclass(frozen=True)
class StressScenario:
    """A named set of stressed asset returns."""

    name: str
    description: str
    returns: pd.DataFrame


@dataclass(frozen=True)
class StressResult:
    """Portfolio performance under one scenario (percent units)."""

    name: str
    description: str
    portfolio_returns: pd.Series
    var: dict[float, float]  # confidence level -> VaR as a positive percentage
    mean_return: float
    volatility: float


def generate_stress_scenarios(
    returns: pd.DataFrame | np.ndarray,
    scenario_type: str = "market_crash",
    severity: int = 2,
    rng: np.random.Generator | int | None = None,
) -> dict[str, StressScenario]:
    """
    Build a stress scenario from historical returns.

    Args:
        returns: Historical return matrix, assets in columns.
        scenario_type: One of ``market_crash``, ``interest_rate_shock``,
            ``correlation_breakdown``.
        severity: 1 (mild), 2 (moderate) or 3 (severe).
        rng: Generator or seed, used by ``correlation_breakdown``.

    Returns:
        Mapping from scenario type to the generated scenario.
    """
    if scenario_type not in SCENARIO_TYPES:
        raise ValueError(f"Unknown scenario type {scenario_type!r}; expected one of {SCENARIO_TYPES}")
    if severity not in (1, 2, 3):
        raise ValueError(f"Severity must be 1, 2 or 3, got {severity}")

    frame = as_return_matrix(returns)

    if scenario_type == "market_crash":
        decline = CRASH_DECLINES[severity - 1]
        scenario = StressScenario(
            name=f"Market Crash - Severity {severity}",
            description=f"All assets decline by {decline:.0%}",
            returns=frame - decline,
        )

    elif scenario_type == "interest_rate_shock":
        rate_increase = RATE_INCREASES[severity - 1]
        # first half of the columns are treated as bonds, the rest as equities
        n_bonds = frame.shape[1] // 2
        impact = np.where(
            np.arange(frame.shape[1]) < n_bonds,
            -rate_increase * BOND_DURATION,
            -rate_increase * EQUITY_RATE_SENSITIVITY,
        )
        scenario = StressScenario(
            name=f"Interest Rate Shock - Severity {severity}",
            description=f"Interest rates increase by {rate_increase * 10_000:.0f} bps",
            returns=frame + impact,
        )

    else:
        rng = np.random.default_rng(rng)
        corr = frame.corr().values
        n = corr.shape[0]
        stressed_corr = (1 - CORRELATION_BLEND) * corr + CORRELATION_BLEND * np.full((n, n), CRISIS_CORRELATION)
        np.fill_diagonal(stressed_corr, 1.0)
        sds = frame.std().values
        stressed_cov = np.diag(sds) @ stressed_corr @ np.diag(sds)
        draws = rng.multivariate_normal(frame.mean().values, stressed_cov, size=len(frame))
        scenario = StressScenario(
            name=f"Correlation Breakdown - Severity {severity}",
            description=f"Asset correlations increase to {CRISIS_CORRELATION} during crisis",
            returns=pd.DataFrame(draws, index=frame.index, columns=frame.columns),
        )

    return {scenario_type: scenario}


def portfolio_stress_test(
    returns: pd.DataFrame | np.ndarray,
    weights: np.ndarray | Sequence[float],
    scenarios: Mapping[str, StressScenario],
    confidence_levels: Sequence[float] = (0.95, 0.99),
) -> dict[str, StressResult]:
    """Compare historical portfolio VaR with VaR under each stress scenario."""
    frame = as_return_matrix(returns)
    w = np.asarray(weights, dtype=float)
    if w.shape[0] != frame.shape[1]:
        raise ValueError(f"Expected {frame.shape[1]} weights, got {w.shape[0]}")

    results = {
        "baseline": _evaluate("Historical Baseline", "", frame, w, confidence_levels),
    }
    for key, scenario in scenarios.items():
        results[key] = _evaluate(
            scenario.name, scenario.description, scenario.returns, w, confidence_levels
        )
    return results


def scenario_summary(results: Mapping[str, StressResult]) -> pd.DataFrame:
    """One row per scenario: mean return, volatility and VaR, in percent."""
    rows = []
    for result in results.values():
        row = {
            "Scenario": result.name,
            "Mean_Return": round(result.mean_return, 2),
            "Volatility": round(result.volatility, 2),
        }
        for level, value in result.var.items():
            row[f"VaR_{round(level * 100):d}"] = round(value, 2)
        rows.append(row)
    return pd.DataFrame(rows)


def _evaluate(
    name: str,
    description: str,
    returns: pd.DataFrame,
    weights: np.ndarray,
    confidence_levels: Sequence[float],
) -> StressResult:
    port = (returns @ weights).dropna().rename("portfolio_return")
    var = {
        level: float(-np.quantile(port.values, 1 - level) * 100)
        for level in confidence_levels
    }
    return StressResult(
        name=name,
        description=description,
        portfolio_returns=port,
        var=var,
        mean_return=float(port.mean() * 100),
        volatility=float(port.std() * 100),
    )
