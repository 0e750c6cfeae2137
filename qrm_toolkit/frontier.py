"""Efficient frontier sweep over target returns."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator

import numpy as np
import pandas as pd

from qrm_toolkit.exceptions import ConvergenceError, InfeasibleError, SingularMatrixError
from qrm_toolkit.linalg import as_return_matrix, estimate_moments
from qrm_toolkit.optimizer import (
    DEFAULT_RISK_FREE_RATE,
    statistics_from_moments,
    target_return_weights,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrontierPoint:
    """One solved point of the frontier."""

    target_return: float
    realized_return: float
    risk: float
    weights: np.ndarray
    sharpe_ratio: float

    def to_dict(self) -> dict:
        return {
            "target_return": self.target_return,
            "realized_return": self.realized_return,
            "risk": self.risk,
            "sharpe_ratio": self.sharpe_ratio,
            "weights": [float(w) for w in self.weights],
        }


def efficient_frontier(
    returns: pd.DataFrame | np.ndarray,
    n_portfolios: int = 50,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> Iterator[FrontierPoint]:
    """
    Yield minimum-variance portfolios for evenly spaced target returns.

    Targets run from the lowest to the highest single-asset expected return,
    both inclusive. A target whose optimization fails is skipped, so fewer
    than ``n_portfolios`` points may be produced.
    """
    if n_portfolios < 1:
        raise ValueError("n_portfolios must be at least 1")
    frame = as_return_matrix(returns)
    mu, cov = estimate_moments(frame)
    mu_arr, cov_arr = mu.values, cov.values

    for target in np.linspace(mu_arr.min(), mu_arr.max(), n_portfolios):
        try:
            w = target_return_weights(mu_arr, cov_arr, target)
        except (InfeasibleError, SingularMatrixError, ConvergenceError) as exc:
            logger.debug("Skipping frontier target %.6g: %s", target, exc)
            continue
        stats = statistics_from_moments(w, mu_arr, cov_arr, risk_free_rate)
        yield FrontierPoint(
            target_return=float(target),
            realized_return=stats.expected_return,
            risk=stats.risk,
            weights=w,
            sharpe_ratio=stats.sharpe_ratio,
        )


def frontier_frame(points: Iterable[FrontierPoint]) -> pd.DataFrame:
    """Tabulate frontier points for display or charting."""
    rows = [
        {
            "Target": p.target_return,
            "Return": p.realized_return,
            "Risk": p.risk,
            "Sharpe": p.sharpe_ratio,
        }
        for p in points
    ]
    return pd.DataFrame(rows, columns=["Target", "Return", "Risk", "Sharpe"])


def max_sharpe_point(points: Iterable[FrontierPoint]) -> FrontierPoint | None:
    """Frontier point with the highest Sharpe ratio, or None for an empty frontier."""
    best = None
    for p in points:
        if best is None or p.sharpe_ratio > best.sharpe_ratio:
            best = p
    return best
