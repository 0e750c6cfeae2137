"""Assemble analysis results into a JSON report."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Sequence

import numpy as np
import pandas as pd

from qrm_toolkit.frontier import FrontierPoint, max_sharpe_point
from qrm_toolkit.monte_carlo import SimulationResult
from qrm_toolkit.optimizer import OptimizedPortfolio
from qrm_toolkit.risk_budget import RiskBudgetResult
from qrm_toolkit.stress import StressResult


def build_report_data(
    returns: pd.DataFrame,
    var_table: pd.DataFrame,
    portfolios: Mapping[str, OptimizedPortfolio],
    risk_budget: RiskBudgetResult | None,
    frontier: Sequence[FrontierPoint],
    sim_result: SimulationResult | None,
    stress_results: Mapping[str, StressResult] | None = None,
) -> dict:
    """Assemble all analysis data into a single dictionary."""
    best = max_sharpe_point(frontier)
    data = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "data": {
            "assets": list(returns.columns),
            "observations": int(len(returns)),
            "start": str(returns.index[0]),
            "end": str(returns.index[-1]),
        },
        "var_analysis": var_table.round(2).to_dict(orient="records"),
        "portfolios": {name: p.to_dict() for name, p in portfolios.items()},
        "risk_budgeting": risk_budget.to_dict() if risk_budget is not None else None,
        "efficient_frontier": {
            "n_points": len(frontier),
            "min_risk": min((p.risk for p in frontier), default=None),
            "max_sharpe": best.to_dict() if best is not None else None,
        },
    }
    if sim_result is not None:
        data["monte_carlo"] = {
            "n_simulations": sim_result.n_simulations,
            "horizon_days": sim_result.horizon,
            "initial_value": round(sim_result.initial_value, 2),
            "mean_final_value": round(sim_result.mean_final_value, 2),
            "median_final_value": round(sim_result.median_final_value, 2),
            "std_final_value": round(sim_result.std_final_value, 2),
            "probability_of_loss": round(sim_result.prob_loss, 4),
            "percentiles": {
                f"p{int(k)}": round(v, 2)
                for k, v in sim_result.confidence_levels.items()
            },
        }
    if stress_results:
        data["stress_tests"] = {
            key: {
                "name": r.name,
                "description": r.description,
                "mean_return_pct": round(r.mean_return, 4),
                "volatility_pct": round(r.volatility, 4),
                "var_pct": {f"{level:g}": round(v, 4) for level, v in r.var.items()},
            }
            for key, r in stress_results.items()
        }
    return data


def export_json(
    data: dict,
    output: str | Path = "output/qrm_report.json",
) -> Path:
    """Write the report data to a JSON file."""
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, default=_json_default))
    return path


def _json_default(obj):
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
