"""Value at Risk and Expected Shortfall for a single return series."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd
from scipy.stats import norm

from qrm_toolkit.exceptions import InsufficientDataError

logger = logging.getLogger(__name__)

DEFAULT_PORTFOLIO_VALUE = 1_000_000
DEFAULT_CONFIDENCE_LEVELS = (0.90, 0.95, 0.99)
MIN_RELIABLE_OBSERVATIONS = 30


@dataclass(frozen=True)
class VaRResult:
    """Value at Risk at one confidence level.

    ``var_percent`` is the loss quantile of the return distribution and keeps
    its sign (negative for a loss); ``var_dollar`` is its magnitude in money.
    """

    method: str
    confidence_level: float
    var_percent: float
    var_dollar: float
    mean: float | None = None
    sd: float | None = None
    n_simulations: int | None = None

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "confidence_level": self.confidence_level,
            "var_percent": round(self.var_percent, 6),
            "var_dollar": round(self.var_dollar, 2),
        }


@dataclass(frozen=True)
class ShortfallResult:
    """Expected Shortfall: mean return beyond the historical VaR threshold."""

    confidence_level: float
    es_percent: float
    es_dollar: float
    var_threshold: float

    def to_dict(self) -> dict:
        return {
            "confidence_level": self.confidence_level,
            "es_percent": round(self.es_percent, 6),
            "es_dollar": round(self.es_dollar, 2),
            "var_threshold": round(self.var_threshold, 6),
        }


class VaRCalculator:
    """Compute VaR and Expected Shortfall on a series of portfolio returns."""

    def __init__(
        self,
        returns: pd.Series | np.ndarray | Sequence[float],
        portfolio_value: float = DEFAULT_PORTFOLIO_VALUE,
    ) -> None:
        """
        Args:
            returns: Periodic portfolio returns; missing values are dropped.
            portfolio_value: Money value used to express VaR in dollars.
        """
        arr = np.asarray(returns, dtype=float).reshape(-1)
        self.returns = arr[~np.isnan(arr)]
        if len(self.returns) < 2:
            raise InsufficientDataError(
                f"Need at least 2 valid returns, got {len(self.returns)}"
            )
        self.portfolio_value = portfolio_value

    # ------------------------------------------------------------------
    # Value at Risk
    # ------------------------------------------------------------------

    def historical(self, confidence: float = 0.95) -> VaRResult:
        """Historical VaR: empirical quantile of the observed returns."""
        alpha = _alpha(confidence)
        if len(self.returns) < MIN_RELIABLE_OBSERVATIONS:
            logger.warning(
                "Only %d observations; at least %d recommended for reliable VaR",
                len(self.returns), MIN_RELIABLE_OBSERVATIONS,
            )
        q = float(np.quantile(self.returns, alpha))
        return VaRResult(
            method="historical",
            confidence_level=confidence,
            var_percent=q,
            var_dollar=abs(q * self.portfolio_value),
        )

    def parametric(self, confidence: float = 0.95) -> VaRResult:
        """Parametric VaR assuming normally distributed returns."""
        alpha = _alpha(confidence)
        mean = float(np.mean(self.returns))
        sd = float(np.std(self.returns, ddof=1))
        q = mean + float(norm.ppf(alpha)) * sd
        return VaRResult(
            method="parametric",
            confidence_level=confidence,
            var_percent=q,
            var_dollar=abs(q * self.portfolio_value),
            mean=mean,
            sd=sd,
        )

    def monte_carlo(
        self,
        confidence: float = 0.95,
        n_simulations: int = 10_000,
        rng: np.random.Generator | int | None = None,
    ) -> VaRResult:
        """
        Monte Carlo VaR from normal draws with the sample mean and sd.

        Args:
            rng: Generator or seed; pass one for reproducible results.
        """
        alpha = _alpha(confidence)
        rng = np.random.default_rng(rng)
        mean = float(np.mean(self.returns))
        sd = float(np.std(self.returns, ddof=1))
        simulated = rng.normal(mean, sd, n_simulations)
        q = float(np.quantile(simulated, alpha))
        return VaRResult(
            method="monte_carlo",
            confidence_level=confidence,
            var_percent=q,
            var_dollar=abs(q * self.portfolio_value),
            mean=mean,
            sd=sd,
            n_simulations=n_simulations,
        )

    # ------------------------------------------------------------------
    # Expected Shortfall
    # ------------------------------------------------------------------

    def expected_shortfall(self, confidence: float = 0.95) -> ShortfallResult:
        """Mean of returns at or below the historical VaR threshold."""
        alpha = _alpha(confidence)
        threshold = float(np.quantile(self.returns, alpha))
        tail = self.returns[self.returns <= threshold]
        es = float(np.mean(tail))
        return ShortfallResult(
            confidence_level=confidence,
            es_percent=es,
            es_dollar=abs(es * self.portfolio_value),
            var_threshold=threshold,
        )

    # ------------------------------------------------------------------
    # Summary table
    # ------------------------------------------------------------------

    def analysis(
        self,
        confidence_levels: Sequence[float] = DEFAULT_CONFIDENCE_LEVELS,
    ) -> pd.DataFrame:
        """Dollar historical VaR, parametric VaR and ES for each confidence level."""
        rows = []
        for level in confidence_levels:
            rows.append({
                "confidence_level": level,
                "historical_var": self.historical(level).var_dollar,
                "parametric_var": self.parametric(level).var_dollar,
                "expected_shortfall": self.expected_shortfall(level).es_dollar,
            })
        return pd.DataFrame(rows)


def _alpha(confidence: float) -> float:
    if not 0 < confidence < 1:
        raise ValueError(f"Confidence level must lie in (0, 1), got {confidence}")
    return 1 - confidence
