"""Mean-variance portfolio optimization and portfolio statistics."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

import numpy as np
import pandas as pd

from qrm_toolkit.linalg import (
    as_return_matrix,
    estimate_moments,
    quadratic_form,
    safe_inverse,
)
from qrm_toolkit.qp import solve_qp

TRADING_DAYS = 252
DEFAULT_RISK_FREE_RATE = 0.02 / TRADING_DAYS


@dataclass(frozen=True)
class PortfolioStatistics:
    """Derived statistics of a weight vector; weights are normalised first."""

    expected_return: float
    variance: float
    risk: float
    sharpe_ratio: float

    def to_dict(self) -> dict:
        return {
            "Expected_Return": round(self.expected_return, 6),
            "Variance": round(self.variance, 8),
            "Risk": round(self.risk, 6),
            "Sharpe_Ratio": round(self.sharpe_ratio, 4),
        }


@dataclass(frozen=True)
class OptimizedPortfolio:
    """Weights produced by an optimizer together with their statistics."""

    assets: list[str]
    weights: np.ndarray
    stats: PortfolioStatistics

    @property
    def weights_series(self) -> pd.Series:
        return pd.Series(self.weights, index=self.assets, name="weight")

    def to_dict(self) -> dict:
        return {
            "weights": {a: round(float(w), 6) for a, w in zip(self.assets, self.weights)},
            "stats": self.stats.to_dict(),
        }


class WeightPolicy(str, Enum):
    """Post-processing steps a caller may apply to raw weights."""

    NORMALIZE = "normalize"
    CLIP_NEGATIVE = "clip-negative"


def apply_weight_policies(
    weights: np.ndarray,
    policies: Iterable[WeightPolicy | str],
) -> np.ndarray:
    """Apply post-processing policies to a weight vector in the order given."""
    w = np.asarray(weights, dtype=float).copy()
    for policy in policies:
        policy = WeightPolicy(policy)
        if policy is WeightPolicy.CLIP_NEGATIVE:
            w = np.maximum(w, 0.0)
        elif policy is WeightPolicy.NORMALIZE:
            total = w.sum()
            if total == 0:
                raise ValueError("Cannot normalize weights that sum to zero")
            w = w / total
    return w


# ------------------------------------------------------------------
# Moment-level solvers
# ------------------------------------------------------------------


def statistics_from_moments(
    weights: np.ndarray,
    mu: np.ndarray,
    cov: np.ndarray,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> PortfolioStatistics:
    """Return, variance, risk and Sharpe ratio after normalising the weights."""
    w = apply_weight_policies(weights, [WeightPolicy.NORMALIZE])
    port_return = float(w @ np.asarray(mu, dtype=float))
    variance = quadratic_form(w, cov)
    risk = float(np.sqrt(variance))
    sharpe = (port_return - risk_free_rate) / risk if risk > 0 else float("nan")
    return PortfolioStatistics(
        expected_return=port_return,
        variance=variance,
        risk=risk,
        sharpe_ratio=float(sharpe),
    )


def min_variance_weights(cov: np.ndarray | pd.DataFrame) -> np.ndarray:
    """Global minimum-variance weights; short positions allowed."""
    sigma = np.asarray(cov, dtype=float)
    n = sigma.shape[0]
    result = solve_qp(2 * sigma, np.zeros(n), A=np.ones((1, n)), b=np.array([1.0]), meq=1)
    return result.solution


def target_return_weights(
    mu: np.ndarray | pd.Series,
    cov: np.ndarray | pd.DataFrame,
    target: float,
) -> np.ndarray:
    """Minimum-variance weights with expected return fixed at ``target``."""
    sigma = np.asarray(cov, dtype=float)
    mu = np.asarray(mu, dtype=float)
    n = sigma.shape[0]
    A = np.vstack([np.ones(n), mu])
    result = solve_qp(2 * sigma, np.zeros(n), A=A, b=np.array([1.0, target]), meq=2)
    return result.solution


def tangency_weights(
    mu: np.ndarray | pd.Series,
    cov: np.ndarray | pd.DataFrame,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> np.ndarray:
    """
    Closed-form maximum-Sharpe weights, Sigma^-1 (mu - rf) over its sum.

    The raw sum is used as-is: when every excess return is negative the
    sum can be negative and the division flips all signs.
    """
    inv_cov = safe_inverse(cov)
    raw = inv_cov @ (np.asarray(mu, dtype=float) - risk_free_rate)
    return raw / raw.sum()


# ------------------------------------------------------------------
# Return-matrix operations
# ------------------------------------------------------------------


def portfolio_stats(
    weights: np.ndarray | pd.Series,
    returns: pd.DataFrame | np.ndarray,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> PortfolioStatistics:
    """
    Statistics of a weight vector against a return matrix.

    Weights are always rescaled to sum to one, so any positive multiple of
    a weight vector gives identical statistics. A Series is aligned to the
    return matrix columns by label.
    """
    frame = as_return_matrix(returns)
    mu, cov = estimate_moments(frame)
    w = _weights_array(weights, list(frame.columns))
    return statistics_from_moments(w, mu.values, cov.values, risk_free_rate)


def minimum_variance(
    returns: pd.DataFrame | np.ndarray,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> OptimizedPortfolio:
    """Minimum-variance portfolio subject only to the budget constraint."""
    frame = as_return_matrix(returns)
    mu, cov = estimate_moments(frame)
    w = min_variance_weights(cov.values)
    return OptimizedPortfolio(
        assets=list(frame.columns),
        weights=w,
        stats=statistics_from_moments(w, mu.values, cov.values, risk_free_rate),
    )


def maximum_sharpe(
    returns: pd.DataFrame | np.ndarray,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> OptimizedPortfolio:
    """Tangency portfolio; raises SingularMatrixError if Sigma is not invertible."""
    frame = as_return_matrix(returns)
    mu, cov = estimate_moments(frame)
    w = tangency_weights(mu.values, cov.values, risk_free_rate)
    return OptimizedPortfolio(
        assets=list(frame.columns),
        weights=w,
        stats=statistics_from_moments(w, mu.values, cov.values, risk_free_rate),
    )


def _weights_array(weights: np.ndarray | pd.Series, assets: list[str]) -> np.ndarray:
    if isinstance(weights, pd.Series):
        missing = [a for a in assets if a not in weights.index]
        if missing:
            raise ValueError(f"Weights missing assets: {missing}")
        weights = weights.reindex(assets).values
    w = np.asarray(weights, dtype=float).reshape(-1)
    if w.shape[0] != len(assets):
        raise ValueError(f"Expected {len(assets)} weights, got {w.shape[0]}")
    return w
