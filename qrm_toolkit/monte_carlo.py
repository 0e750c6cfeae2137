"""Monte Carlo simulation of portfolio value paths."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd

from qrm_toolkit.linalg import cholesky_factor, estimate_moments, quadratic_form

PERCENTILES = (1, 5, 10, 25, 50, 75, 90, 95, 99)


@dataclass(frozen=True)
class SimulationResult:
    """Container for Monte Carlo simulation outputs."""

    paths: np.ndarray          # shape (n_simulations, horizon + 1), portfolio values
    final_values: np.ndarray   # shape (n_simulations,)
    final_returns: np.ndarray  # shape (n_simulations,)
    initial_value: float
    horizon: int
    n_simulations: int
    confidence_levels: dict[float, float]  # percentile -> final portfolio value
    portfolio_return: float    # expected daily portfolio return
    portfolio_vol: float       # daily portfolio volatility

    @property
    def mean_final_value(self) -> float:
        return float(np.mean(self.final_values))

    @property
    def median_final_value(self) -> float:
        return float(np.median(self.final_values))

    @property
    def std_final_value(self) -> float:
        return float(np.std(self.final_values))

    @property
    def mean_return(self) -> float:
        return float(np.mean(self.final_returns))

    @property
    def prob_loss(self) -> float:
        """Probability of ending below the initial value."""
        return float(np.mean(self.final_values < self.initial_value))

    def percentile(self, q: float) -> float:
        return float(np.percentile(self.final_values, q))

    def percentile_paths(self, percentiles: Sequence[float] = (5, 25, 50, 75, 95)) -> np.ndarray:
        """Per-day percentiles across paths, shape (len(percentiles), horizon + 1)."""
        return np.percentile(self.paths, list(percentiles), axis=0)


class MonteCarloEngine:
    """Correlated normal-return simulator for a weighted portfolio."""

    def __init__(
        self,
        expected_returns: np.ndarray | pd.Series,
        covariance: np.ndarray | pd.DataFrame,
        weights: np.ndarray | Sequence[float],
        initial_value: float = 1_000_000,
        n_simulations: int = 1000,
        horizon: int = 252,
        rng: np.random.Generator | int | None = None,
    ) -> None:
        """
        Args:
            expected_returns: Mean daily return per asset.
            covariance: Daily covariance matrix of asset returns.
            weights: Portfolio weights; normalised to sum to one.
            initial_value: Starting portfolio value.
            n_simulations: Number of simulation paths.
            horizon: Number of trading days to simulate forward.
            rng: Generator or seed. All randomness is drawn from it.
        """
        self.mu = np.asarray(expected_returns, dtype=float)
        self.cov = np.asarray(covariance, dtype=float)
        w = np.asarray(weights, dtype=float)
        if w.shape != self.mu.shape or self.cov.shape != (len(w), len(w)):
            raise ValueError(
                f"Shape mismatch: weights {w.shape}, returns {self.mu.shape}, covariance {self.cov.shape}"
            )
        if n_simulations < 1 or horizon < 1:
            raise ValueError("n_simulations and horizon must be at least 1")
        self.weights = w / w.sum()
        self.initial_value = float(initial_value)
        self.n_simulations = n_simulations
        self.horizon = horizon
        self.rng = np.random.default_rng(rng)

    @classmethod
    def from_returns(
        cls,
        returns: pd.DataFrame | np.ndarray,
        weights: np.ndarray | Sequence[float],
        **kwargs,
    ) -> "MonteCarloEngine":
        """Build an engine from the sample moments of a return matrix."""
        mu, cov = estimate_moments(returns)
        return cls(mu.values, cov.values, weights, **kwargs)

    # ------------------------------------------------------------------
    # Core simulation
    # ------------------------------------------------------------------

    def run(self) -> SimulationResult:
        """
        Run the simulation.

        Steps:
            1. Cholesky-decompose the covariance matrix.
            2. Draw correlated normal shocks per asset per day.
            3. Compound the weighted portfolio return along each path.
        """
        L = cholesky_factor(self.cov)

        # shape: (n_simulations, horizon, n_assets)
        Z = self.rng.standard_normal(
            (self.n_simulations, self.horizon, len(self.weights))
        )
        asset_returns = self.mu + Z @ L.T
        port_returns = asset_returns @ self.weights  # (n_sim, horizon)

        paths = np.empty((self.n_simulations, self.horizon + 1))
        paths[:, 0] = self.initial_value
        paths[:, 1:] = self.initial_value * np.cumprod(1 + port_returns, axis=1)
        return self._result(paths)

    # ------------------------------------------------------------------
    # Scenario helpers
    # ------------------------------------------------------------------

    def stress_test(self, shock_pct: float = -0.20) -> SimulationResult:
        """
        Simulate paths where day one is replaced by an immediate shock and
        later days keep their simulated growth.

        Args:
            shock_pct: Fractional shock on day 1 (e.g. -0.20 = 20 % drop).
        """
        base = self.run()
        shocked = np.empty_like(base.paths)
        shocked[:, 0] = self.initial_value
        # growth relative to day 1 is unchanged, only the level moves
        shocked[:, 1:] = (
            self.initial_value * (1 + shock_pct) * base.paths[:, 1:] / base.paths[:, [1]]
        )
        return self._result(shocked)

    def _result(self, paths: np.ndarray) -> SimulationResult:
        final_values = paths[:, -1]
        final_returns = (final_values - self.initial_value) / self.initial_value
        confidence_levels = {
            q: float(np.percentile(final_values, q)) for q in PERCENTILES
        }
        return SimulationResult(
            paths=paths,
            final_values=final_values,
            final_returns=final_returns,
            initial_value=self.initial_value,
            horizon=self.horizon,
            n_simulations=self.n_simulations,
            confidence_levels=confidence_levels,
            portfolio_return=float(self.weights @ self.mu),
            portfolio_vol=float(np.sqrt(quadratic_form(self.weights, self.cov))),
        )
