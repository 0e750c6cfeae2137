"""Matplotlib charts for optimization, simulation and factor results."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import matplotlib
matplotlib.use("Agg")  # non-interactive backend for CI / headless
import matplotlib.pyplot as plt
import matplotlib.ticker as mticker
import numpy as np
import pandas as pd

from qrm_toolkit.factors import FactorModelResult
from qrm_toolkit.frontier import FrontierPoint, frontier_frame, max_sharpe_point
from qrm_toolkit.monte_carlo import SimulationResult


# ------------------------------------------------------------------
# Style defaults
# ------------------------------------------------------------------

COLORS = {
    "primary": "#1a73e8",
    "secondary": "#34a853",
    "danger": "#ea4335",
    "warning": "#fbbc05",
    "neutral": "#5f6368",
    "bg": "#fafafa",
}


def _apply_style(ax: plt.Axes) -> None:
    ax.set_facecolor(COLORS["bg"])
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    ax.tick_params(labelsize=9)


def _save(fig: plt.Figure, output: str | Path | None) -> plt.Figure:
    fig.tight_layout()
    if output:
        fig.savefig(str(output), dpi=150, bbox_inches="tight")
    return fig


# ------------------------------------------------------------------
# Individual charts
# ------------------------------------------------------------------


def plot_efficient_frontier(
    points: Sequence[FrontierPoint],
    returns: pd.DataFrame,
    output: str | Path | None = None,
) -> plt.Figure:
    """Frontier curve with individual assets and the highest-Sharpe point."""
    frame = frontier_frame(points)
    fig, ax = plt.subplots(figsize=(9, 6))
    _apply_style(ax)

    ax.plot(frame["Risk"], frame["Return"], color=COLORS["primary"], linewidth=2, label="Efficient Frontier")
    ax.scatter(
        returns.std(), returns.mean(),
        color=COLORS["danger"], s=40, zorder=3, label="Individual Assets",
    )
    for name in returns.columns:
        ax.annotate(name, (returns[name].std(), returns[name].mean()), fontsize=8,
                    xytext=(4, 4), textcoords="offset points")

    best = max_sharpe_point(points)
    if best is not None:
        ax.scatter(best.risk, best.realized_return, color=COLORS["secondary"], s=80,
                   zorder=4, label="Max Sharpe Portfolio")

    ax.set_xlim(left=0)
    ax.set_title("Efficient Frontier", fontsize=13, fontweight="bold")
    ax.set_xlabel("Risk (Standard Deviation)")
    ax.set_ylabel("Expected Return")
    ax.legend(fontsize=9, loc="upper left")
    return _save(fig, output)


def plot_simulation_paths(
    sim: SimulationResult,
    n_paths: int = 200,
    percentiles: Sequence[float] = (5, 25, 50, 75, 95),
    output: str | Path | None = None,
) -> plt.Figure:
    """A sample of simulated paths with per-day percentile lines."""
    fig, ax = plt.subplots(figsize=(10, 5))
    _apply_style(ax)

    idx = np.linspace(0, sim.n_simulations - 1, min(n_paths, sim.n_simulations), dtype=int)
    for i in idx:
        ax.plot(sim.paths[i], alpha=0.08, color=COLORS["primary"], linewidth=0.6)

    bands = sim.percentile_paths(percentiles)
    mid = len(percentiles) // 2
    for q, band in zip(percentiles, bands):
        is_mid = q == percentiles[mid]
        ax.plot(
            band,
            color=COLORS["secondary"] if is_mid else COLORS["warning"],
            linewidth=2 if is_mid else 1,
            linestyle="-" if is_mid else "--",
            label=f"{q:g}th percentile",
        )
    ax.axhline(sim.initial_value, linestyle=":", color=COLORS["danger"], linewidth=1, label="Initial Value")

    ax.set_title(f"Monte Carlo Portfolio Simulation ({sim.n_simulations:,} paths)", fontsize=13, fontweight="bold")
    ax.set_xlabel("Trading Days")
    ax.set_ylabel("Portfolio Value ($)")
    ax.yaxis.set_major_formatter(mticker.FuncFormatter(lambda x, _: f"${x:,.0f}"))
    ax.legend(fontsize=8)
    return _save(fig, output)


def plot_return_distribution(
    returns: np.ndarray | pd.Series,
    var_threshold: float | None = None,
    confidence: float = 0.95,
    output: str | Path | None = None,
) -> plt.Figure:
    """Histogram of portfolio returns with an optional VaR threshold line."""
    fig, ax = plt.subplots(figsize=(9, 5))
    _apply_style(ax)

    values = np.asarray(returns, dtype=float) * 100
    ax.hist(values, bins=30, color=COLORS["primary"], alpha=0.7, edgecolor="white", linewidth=0.3)

    if var_threshold is not None:
        ax.axvline(
            var_threshold * 100,
            color=COLORS["danger"],
            linewidth=2,
            linestyle="--",
            label=f"{confidence:.0%} VaR ({var_threshold * 100:.2f}%)",
        )
        ax.legend(fontsize=9)

    ax.set_title("Distribution of Daily Returns", fontsize=13, fontweight="bold")
    ax.set_xlabel("Return (%)")
    ax.set_ylabel("Frequency")
    return _save(fig, output)


def plot_weights(
    portfolios: dict[str, pd.Series],
    output: str | Path | None = None,
) -> plt.Figure:
    """Grouped bar chart of weights; bars can be negative for short positions."""
    table = pd.DataFrame(portfolios)
    fig, ax = plt.subplots(figsize=(9, 5))
    _apply_style(ax)

    table.plot.bar(ax=ax, width=0.8, color=list(COLORS.values())[: table.shape[1]])
    ax.axhline(0, color=COLORS["neutral"], linewidth=0.8)
    ax.yaxis.set_major_formatter(mticker.FuncFormatter(lambda x, _: f"{x * 100:.0f}%"))
    ax.set_title("Portfolio Weights", fontsize=13, fontweight="bold")
    ax.set_ylabel("Weight")
    ax.tick_params(axis="x", rotation=30)
    ax.legend(fontsize=9)
    return _save(fig, output)


def plot_correlation_matrix(
    returns: pd.DataFrame,
    output: str | Path | None = None,
) -> plt.Figure:
    """Heatmap of asset return correlations."""
    corr = returns.corr()
    fig, ax = plt.subplots(figsize=(8, 6))

    cax = ax.matshow(corr.values, cmap="RdYlGn", vmin=-1, vmax=1)
    fig.colorbar(cax, ax=ax, fraction=0.046, pad=0.04)

    ax.set_xticks(range(len(corr)))
    ax.set_yticks(range(len(corr)))
    ax.set_xticklabels(corr.columns, rotation=45, ha="left", fontsize=9)
    ax.set_yticklabels(corr.columns, fontsize=9)

    for i in range(len(corr)):
        for j in range(len(corr)):
            ax.text(j, i, f"{corr.iloc[i, j]:.2f}", ha="center", va="center", fontsize=8)

    ax.set_title("Asset Return Correlation Matrix", fontsize=13, fontweight="bold", pad=40)
    return _save(fig, output)


def plot_factor_model(
    result: FactorModelResult,
    asset_name: str = "Asset",
    output: str | Path | None = None,
) -> plt.Figure:
    """Fitted vs actual, residuals vs fitted, residual Q-Q and residual histogram."""
    from scipy import stats

    fitted = result.fitted_values.values
    resid = result.residuals.values
    fig, axes = plt.subplots(2, 2, figsize=(10, 8))
    for ax in axes.flat:
        _apply_style(ax)

    ax = axes[0, 0]
    ax.scatter(fitted, fitted + resid, s=8, alpha=0.6, color=COLORS["primary"])
    lims = [min(fitted.min(), (fitted + resid).min()), max(fitted.max(), (fitted + resid).max())]
    ax.plot(lims, lims, color=COLORS["danger"], linewidth=1.5)
    ax.set_title(f"{asset_name} - Fitted vs Actual (R² = {result.r_squared:.3f})", fontsize=10)
    ax.set_xlabel("Fitted Returns")
    ax.set_ylabel("Actual Returns")

    ax = axes[0, 1]
    ax.scatter(fitted, resid, s=8, alpha=0.6, color=COLORS["primary"])
    ax.axhline(0, color=COLORS["danger"], linewidth=1.5)
    ax.set_title("Residuals vs Fitted", fontsize=10)
    ax.set_xlabel("Fitted Returns")
    ax.set_ylabel("Residuals")

    ax = axes[1, 0]
    stats.probplot(resid, dist="norm", plot=ax)
    ax.set_title("Q-Q Plot of Residuals", fontsize=10)

    ax = axes[1, 1]
    ax.hist(resid, bins=20, color=COLORS["primary"], alpha=0.7, edgecolor="white")
    ax.set_title("Distribution of Residuals", fontsize=10)
    ax.set_xlabel("Residuals")
    return _save(fig, output)


# ------------------------------------------------------------------
# Full dashboard
# ------------------------------------------------------------------


def generate_dashboard(
    returns: pd.DataFrame,
    frontier: Sequence[FrontierPoint],
    portfolios: dict[str, pd.Series],
    sim: SimulationResult,
    portfolio_returns: pd.Series,
    var_threshold: float | None = None,
    output_dir: str | Path = "output",
) -> list[Path]:
    """Generate all charts and save to output_dir. Returns list of file paths."""
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    paths_saved: list[Path] = []

    charts = [
        ("efficient_frontier.png", lambda: plot_efficient_frontier(frontier, returns, output=out / "efficient_frontier.png")),
        ("simulation_paths.png", lambda: plot_simulation_paths(sim, output=out / "simulation_paths.png")),
        ("return_distribution.png", lambda: plot_return_distribution(portfolio_returns, var_threshold, output=out / "return_distribution.png")),
        ("weights.png", lambda: plot_weights(portfolios, output=out / "weights.png")),
        ("correlation.png", lambda: plot_correlation_matrix(returns, output=out / "correlation.png")),
    ]

    for name, fn in charts:
        fn()
        plt.close("all")
        paths_saved.append(out / name)

    return paths_saved
