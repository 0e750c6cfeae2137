"""Command-line interface for the QRM toolkit."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from qrm_toolkit.data_loader import (
    generate_market_factors,
    generate_sample_returns,
    load_prices,
    load_returns,
    prices_to_returns,
)
from qrm_toolkit.exceptions import QRMError
from qrm_toolkit.factors import multi_factor_model, pca_risk_factors
from qrm_toolkit.frontier import efficient_frontier, max_sharpe_point
from qrm_toolkit.logging_config import setup_logging
from qrm_toolkit.monte_carlo import MonteCarloEngine
from qrm_toolkit.optimizer import TRADING_DAYS, maximum_sharpe, minimum_variance
from qrm_toolkit.report import build_report_data, export_json
from qrm_toolkit.risk_budget import risk_budgeting_portfolio
from qrm_toolkit.stress import generate_stress_scenarios, portfolio_stress_test, scenario_summary
from qrm_toolkit.var import VaRCalculator
from qrm_toolkit.visualizer import generate_dashboard, plot_factor_model


console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qrm",
        description="Quantitative risk analysis: VaR, portfolio optimization, Monte Carlo and stress tests.",
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--returns",
        type=str,
        default=None,
        help="CSV of daily asset returns with a Date column (default: generated sample data)",
    )
    source.add_argument(
        "--prices",
        type=str,
        default=None,
        help="CSV of daily asset prices with a Date column",
    )
    parser.add_argument(
        "--weights",
        type=str,
        default=None,
        help="Comma-separated portfolio weights in column order (default: equal weights)",
    )
    parser.add_argument(
        "--portfolio-value",
        type=float,
        default=1_000_000,
        help="Portfolio value in dollars (default: 1,000,000)",
    )
    parser.add_argument(
        "--risk-free-rate",
        type=float,
        default=0.02,
        help="Annual risk-free rate (default: 0.02)",
    )
    parser.add_argument(
        "--frontier-points",
        type=int,
        default=50,
        help="Number of target returns on the efficient frontier (default: 50)",
    )
    parser.add_argument(
        "--simulations", "-n",
        type=int,
        default=1000,
        help="Number of Monte Carlo simulations (default: 1,000)",
    )
    parser.add_argument(
        "--horizon", "-d",
        type=int,
        default=252,
        help="Simulation horizon in trading days (default: 252 = 1 year)",
    )
    parser.add_argument(
        "--severity",
        type=int,
        choices=(1, 2, 3),
        default=2,
        help="Stress scenario severity (default: 2)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for reproducibility",
    )
    parser.add_argument(
        "--output-dir", "-o",
        type=str,
        default="output",
        help="Output directory for reports and charts (default: output/)",
    )
    parser.add_argument(
        "--no-charts",
        action="store_true",
        help="Skip chart generation",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        help="Logging level (default: WARNING)",
    )

    return parser


def _parse_weights(raw: str | None, n_assets: int) -> np.ndarray:
    if raw is None:
        return np.full(n_assets, 1.0 / n_assets)
    weights = np.array([float(x) for x in raw.split(",")])
    if len(weights) != n_assets:
        raise ValueError(f"Expected {n_assets} weights, got {len(weights)}")
    if weights.sum() == 0:
        raise ValueError("Weights must not sum to zero")
    return weights / weights.sum()


def run(args: argparse.Namespace) -> None:
    """Execute the full analysis pipeline."""
    setup_logging(args.log_level, console=Console(stderr=True))
    rng = np.random.default_rng(args.seed)

    console.print(Panel.fit(
        "[bold blue]QRM Toolkit[/bold blue]\n"
        "VaR, portfolio optimization, Monte Carlo and stress testing",
        border_style="blue",
    ))

    # ------------------------------------------------------------------ Load data
    console.print("\n[bold]Loading data...[/bold]")
    factors = None
    try:
        if args.returns:
            returns = load_returns(args.returns)
        elif args.prices:
            returns = prices_to_returns(load_prices(args.prices))
        else:
            returns = generate_sample_returns(rng=rng)
            factors = generate_market_factors(returns, rng=rng)
            console.print("  Using generated sample data")
        weights = _parse_weights(args.weights, returns.shape[1])
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[red]Error loading data:[/red] {exc}")
        sys.exit(1)

    rf = args.risk_free_rate / TRADING_DAYS
    assets = list(returns.columns)
    console.print(f"  Assets: {', '.join(assets)}")
    console.print(f"  Observations: {len(returns)}")

    portfolio_returns = (returns @ weights).rename("portfolio_return")

    # ------------------------------------------------------------ VaR analysis
    console.print("\n[bold]Computing Value at Risk...[/bold]")
    calc = VaRCalculator(portfolio_returns, portfolio_value=args.portfolio_value)
    var_table = calc.analysis()

    table = Table(title="Value at Risk")
    for col in ("Confidence", "Historical VaR", "Parametric VaR", "Expected Shortfall"):
        table.add_column(col, justify="right")
    for row in var_table.itertuples(index=False):
        table.add_row(
            f"{row.confidence_level:.0%}",
            f"${row.historical_var:,.0f}",
            f"${row.parametric_var:,.0f}",
            f"${row.expected_shortfall:,.0f}",
        )
    console.print(table)

    # ----------------------------------------------------------- Optimization
    console.print("\n[bold]Optimizing portfolios...[/bold]")
    portfolios = {}
    for name, fn in (("Minimum Variance", minimum_variance), ("Maximum Sharpe", maximum_sharpe)):
        try:
            portfolios[name] = fn(returns, risk_free_rate=rf)
        except QRMError as exc:
            console.print(f"[red]{name} failed:[/red] {exc}")

    risk_budget = None
    try:
        risk_budget = risk_budgeting_portfolio(returns, risk_free_rate=rf)
    except QRMError as exc:
        console.print(f"[red]Risk budgeting failed:[/red] {exc}")

    summary = Table(title="Optimized Portfolios")
    summary.add_column("Portfolio", style="cyan")
    for asset in assets:
        summary.add_column(asset, justify="right")
    summary.add_column("Risk", justify="right")
    summary.add_column("Sharpe", justify="right")
    rows = [(name, p.weights, p.stats) for name, p in portfolios.items()]
    if risk_budget is not None:
        rows.append(("Risk Budgeting", risk_budget.weights, risk_budget.stats))
    for name, w, stats in rows:
        summary.add_row(
            name,
            *(f"{x * 100:.1f}%" for x in w),
            f"{stats.risk * 100:.3f}%",
            f"{stats.sharpe_ratio:.4f}",
        )
    console.print(summary)
    if risk_budget is not None and not risk_budget.converged:
        console.print(
            f"[yellow]Risk budgeting did not converge (residual {risk_budget.residual:.2e})[/yellow]"
        )

    frontier = list(efficient_frontier(returns, n_portfolios=args.frontier_points, risk_free_rate=rf))
    best = max_sharpe_point(frontier)
    console.print(
        f"  Efficient frontier: {len(frontier)} of {args.frontier_points} points solved"
        + (f", best Sharpe {best.sharpe_ratio:.4f} at risk {best.risk * 100:.3f}%" if best else "")
    )

    # --------------------------------------------------------- Factor analysis
    console.print("\n[bold]Analyzing risk factors...[/bold]")
    try:
        pca = pca_risk_factors(returns, n_factors=min(3, len(assets)))
        pca_table = Table(title="Principal Components")
        pca_table.add_column("Component", style="cyan")
        pca_table.add_column("Variance Explained", justify="right")
        pca_table.add_column("Cumulative", justify="right")
        for name in pca.factor_names:
            pca_table.add_row(
                name,
                f"{pca.variance_explained[name] * 100:.1f}%",
                f"{pca.cumulative_variance[name] * 100:.1f}%",
            )
        console.print(pca_table)
    except (QRMError, ValueError) as exc:
        console.print(f"[red]PCA failed:[/red] {exc}")

    ff_result = None
    if factors is not None:
        ff_result = multi_factor_model(
            portfolio_returns, factors["Market"], factors["SMB"], factors["HML"], risk_free_rate=rf,
        )
        ff_table = Table(title="Fama-French Regression (portfolio)")
        ff_table.add_column("Parameter", style="cyan")
        ff_table.add_column("Value", justify="right")
        ff_table.add_row("Alpha (annualized)", f"{ff_result.alpha * TRADING_DAYS * 100:.2f}%")
        for name, beta in ff_result.betas.items():
            ff_table.add_row(f"Beta {name}", f"{beta:.4f}")
        ff_table.add_row("R-squared", f"{ff_result.r_squared:.4f}")
        console.print(ff_table)

    # ---------------------------------------------------------- Monte Carlo
    console.print(f"\n[bold]Running Monte Carlo simulation ({args.simulations:,} paths, {args.horizon} days)...[/bold]")
    sim_result = None
    try:
        engine = MonteCarloEngine.from_returns(
            returns,
            weights,
            initial_value=args.portfolio_value,
            n_simulations=args.simulations,
            horizon=args.horizon,
            rng=rng,
        )
        sim_result = engine.run()
    except QRMError as exc:
        console.print(f"[red]Monte Carlo simulation failed:[/red] {exc}")

    if sim_result is not None:
        mc_table = Table(title="Monte Carlo Results")
        mc_table.add_column("Metric", style="cyan")
        mc_table.add_column("Value", justify="right")
        mc_table.add_row("Initial Value", f"${sim_result.initial_value:,.2f}")
        mc_table.add_row("Mean Final Value", f"${sim_result.mean_final_value:,.2f}")
        mc_table.add_row("Median Final Value", f"${sim_result.median_final_value:,.2f}")
        mc_table.add_row("Probability of Loss", f"{sim_result.prob_loss * 100:.1f}%")
        mc_table.add_row("5th Percentile", f"${sim_result.percentile(5):,.2f}")
        mc_table.add_row("95th Percentile", f"${sim_result.percentile(95):,.2f}")
        console.print(mc_table)

    # ------------------------------------------------------------- Stress test
    console.print(f"\n[bold]Running stress scenarios (severity {args.severity})...[/bold]")
    scenarios = {}
    for scenario_type in ("market_crash", "interest_rate_shock", "correlation_breakdown"):
        scenarios.update(generate_stress_scenarios(returns, scenario_type, args.severity, rng=rng))
    stress_results = portfolio_stress_test(returns, weights, scenarios)
    stress_frame = scenario_summary(stress_results)

    stress_table = Table(title="Stress Test Results (%)")
    for col in stress_frame.columns:
        stress_table.add_column(col.replace("_", " "), justify="left" if col == "Scenario" else "right")
    for row in stress_frame.itertuples(index=False):
        stress_table.add_row(*(str(v) for v in row))
    console.print(stress_table)

    # ----------------------------------------------------------- Export reports
    output_dir = Path(args.output_dir)
    report_data = build_report_data(
        returns, var_table, portfolios, risk_budget, frontier, sim_result, stress_results,
    )
    json_path = export_json(report_data, output_dir / "qrm_report.json")
    console.print(f"\n[green]JSON report saved:[/green] {json_path}")

    if not args.no_charts and sim_result is not None:
        console.print("[bold]Generating charts...[/bold]")
        weight_sets = {name: p.weights_series for name, p in portfolios.items()}
        if risk_budget is not None:
            weight_sets["Risk Budgeting"] = risk_budget.weights_series
        chart_paths = generate_dashboard(
            returns,
            frontier,
            weight_sets,
            sim_result,
            portfolio_returns,
            var_threshold=calc.historical(0.95).var_percent,
            output_dir=output_dir,
        )
        if ff_result is not None:
            chart_paths.append(output_dir / "factor_model.png")
            plot_factor_model(ff_result, "Portfolio", output=chart_paths[-1])
        for p in chart_paths:
            console.print(f"  [green]Saved:[/green] {p}")

    console.print("\n[bold green]Analysis complete.[/bold green]")


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    run(args)


if __name__ == "__main__":
    main()
