"""Risk budgeting by fixed-point iteration on risk-contribution shares."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Mapping, Sequence

import numpy as np
import pandas as pd

from qrm_toolkit.exceptions import InfeasibleError, SingularMatrixError
from qrm_toolkit.linalg import as_return_matrix, estimate_moments
from qrm_toolkit.optimizer import (
    DEFAULT_RISK_FREE_RATE,
    PortfolioStatistics,
    statistics_from_moments,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskBudgetResult:
    """Outcome of a risk budgeting run.

    ``converged`` is False when the iteration cap was hit first; ``weights``
    is then the iterate whose contributions came closest to the targets and
    ``residual`` says how close.
    """

    assets: list[str]
    weights: np.ndarray
    risk_contributions: np.ndarray
    target_budgets: np.ndarray
    iterations: int
    converged: bool
    residual: float
    stats: PortfolioStatistics | None = None

    @property
    def weights_series(self) -> pd.Series:
        return pd.Series(self.weights, index=self.assets, name="weight")

    def to_dict(self) -> dict:
        return {
            "weights": {a: round(float(w), 6) for a, w in zip(self.assets, self.weights)},
            "risk_contributions": {
                a: round(float(c), 6) for a, c in zip(self.assets, self.risk_contributions)
            },
            "iterations": self.iterations,
            "converged": self.converged,
            "residual": self.residual,
            "stats": self.stats.to_dict() if self.stats is not None else None,
        }


def risk_contributions(weights: np.ndarray, cov: np.ndarray | pd.DataFrame) -> np.ndarray:
    """Fraction of portfolio volatility attributable to each position."""
    w = np.asarray(weights, dtype=float)
    sigma = np.asarray(cov, dtype=float)
    vol = np.sqrt(w @ sigma @ w)
    if not np.isfinite(vol) or vol <= 0:
        raise SingularMatrixError(f"Portfolio volatility is {vol:.3g}; risk contributions are undefined")
    marginal = sigma @ w / vol
    contrib = w * marginal
    return contrib / contrib.sum()


def risk_budget_weights(
    cov: np.ndarray | pd.DataFrame,
    budgets: Sequence[float] | np.ndarray | None = None,
    max_iter: int = 100,
    tol: float = 1e-6,
    assets: list[str] | None = None,
) -> RiskBudgetResult:
    """
    Find weights whose risk-contribution shares match ``budgets``.

    Starting from equal weights, each step scales every weight by
    target / current share and renormalises, until the largest share error
    drops below ``tol`` or ``max_iter`` steps have run.
    """
    sigma = np.asarray(cov, dtype=float)
    n = sigma.shape[0]
    if assets is None:
        assets = [f"Asset_{i + 1}" for i in range(n)]
    target = _validate_budgets(budgets, n)
    if max_iter < 1:
        raise ValueError("max_iter must be at least 1")

    weights = np.full(n, 1.0 / n)
    best_weights, best_contrib, best_residual = weights, None, np.inf
    converged = False
    iterations = 0

    for iterations in range(1, max_iter + 1):
        contrib = risk_contributions(weights, sigma)
        residual = float(np.max(np.abs(contrib - target)))
        if residual < best_residual:
            best_weights, best_contrib, best_residual = weights, contrib, residual
        if residual < tol:
            converged = True
            break
        if np.any(contrib <= 0):
            bad = [assets[i] for i in np.flatnonzero(contrib <= 0)]
            raise InfeasibleError(f"Non-positive risk contribution for {bad}; budgets unreachable")
        weights = weights * (target / contrib)
        weights = weights / weights.sum()

    if converged:
        logger.debug("Risk budgeting converged after %d iterations", iterations)
    else:
        logger.warning(
            "Risk budgeting stopped at %d iterations; max contribution error %.3g",
            iterations, best_residual,
        )

    return RiskBudgetResult(
        assets=list(assets),
        weights=best_weights,
        risk_contributions=best_contrib,
        target_budgets=target,
        iterations=iterations,
        converged=converged,
        residual=best_residual,
    )


def risk_budgeting_portfolio(
    returns: pd.DataFrame | np.ndarray,
    risk_budgets: Mapping[str, float] | Sequence[float] | None = None,
    max_iter: int = 100,
    tol: float = 1e-6,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> RiskBudgetResult:
    """Risk budgeting portfolio on a return matrix; equal budgets by default."""
    frame = as_return_matrix(returns)
    assets = list(frame.columns)
    mu, cov = estimate_moments(frame)

    if isinstance(risk_budgets, Mapping):
        missing = [a for a in assets if a not in risk_budgets]
        extra = [k for k in risk_budgets if k not in assets]
        if missing or extra:
            raise ValueError(f"Risk budgets do not match assets (missing {missing}, unknown {extra})")
        risk_budgets = [risk_budgets[a] for a in assets]

    result = risk_budget_weights(cov.values, risk_budgets, max_iter=max_iter, tol=tol, assets=assets)
    stats = statistics_from_moments(result.weights, mu.values, cov.values, risk_free_rate)
    return replace(result, stats=stats)


def _validate_budgets(budgets: Sequence[float] | np.ndarray | None, n: int) -> np.ndarray:
    if budgets is None:
        return np.full(n, 1.0 / n)
    target = np.asarray(budgets, dtype=float).reshape(-1)
    if target.shape[0] != n:
        raise ValueError(f"Expected {n} risk budgets, got {target.shape[0]}")
    if np.any(target <= 0):
        raise ValueError("Risk budgets must be positive")
    if abs(target.sum() - 1.0) > 1e-8:
        raise ValueError(f"Risk budgets must sum to 1, got {target.sum():.10f}")
    return target
