"""Factor models: CAPM, Fama-French, PCA, risk attribution and style analysis."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from qrm_toolkit.exceptions import InsufficientDataError
from qrm_toolkit.linalg import as_return_matrix
from qrm_toolkit.optimizer import DEFAULT_RISK_FREE_RATE, WeightPolicy, apply_weight_policies

ArrayLike = pd.Series | np.ndarray | Sequence[float]


@dataclass(frozen=True)
class FactorModelResult:
    """Fitted linear factor model of excess asset returns."""

    alpha: float
    betas: dict[str, float]
    r_squared: float
    residual_volatility: float
    fitted_values: pd.Series
    residuals: pd.Series
    regressors: pd.DataFrame
    tracking_error: float | None = None
    information_ratio: float | None = None

    @property
    def beta(self) -> float:
        """Market beta."""
        return self.betas["market"]

    @property
    def n_obs(self) -> int:
        return len(self.residuals)

    def to_dict(self) -> dict:
        out = {
            "alpha": self.alpha,
            "betas": dict(self.betas),
            "r_squared": self.r_squared,
            "residual_volatility": self.residual_volatility,
        }
        if self.tracking_error is not None:
            out["tracking_error"] = self.tracking_error
            out["information_ratio"] = self.information_ratio
        return out


@dataclass(frozen=True)
class PCAResult:
    loadings: pd.DataFrame            # assets x components
    scores: pd.DataFrame              # observations x components
    variance_explained: pd.Series
    cumulative_variance: pd.Series
    factor_names: list[str]
    n_factors: int


@dataclass(frozen=True)
class RiskAttribution:
    betas: pd.Series
    factor_contributions: pd.Series
    specific_risk: float
    total_variance: float
    risk_percentages: pd.Series       # factors plus "Specific Risk", in percent


@dataclass(frozen=True)
class StyleAnalysisResult:
    rolling_weights: pd.DataFrame
    rolling_rsquared: pd.Series
    average_weights: pd.Series
    window_length: int


@dataclass(frozen=True)
class FactorDiagnostics:
    """Residual diagnostics of a fitted factor model."""

    mean: float
    sd: float
    skewness: float
    kurtosis: float
    jarque_bera_pvalue: float
    ljung_box_stat: float
    ljung_box_pvalue: float
    breusch_pagan_stat: float
    breusch_pagan_pvalue: float


# ------------------------------------------------------------------
# Regression models
# ------------------------------------------------------------------


def single_factor_model(
    asset_returns: ArrayLike,
    market_returns: ArrayLike,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> FactorModelResult:
    """CAPM regression of asset excess returns on market excess returns."""
    data = _align({"asset": asset_returns, "market": market_returns})
    y = data["asset"] - risk_free_rate
    X = data[["market"]] - risk_free_rate
    fit = _fit(y, X)

    tracking_error = float(np.std(fit.residuals.values, ddof=1))
    return FactorModelResult(
        alpha=fit.alpha,
        betas=fit.betas,
        r_squared=fit.r_squared,
        residual_volatility=fit.residual_volatility,
        fitted_values=fit.fitted_values,
        residuals=fit.residuals,
        regressors=X,
        tracking_error=tracking_error,
        information_ratio=fit.alpha / tracking_error if tracking_error > 0 else float("nan"),
    )


def multi_factor_model(
    asset_returns: ArrayLike,
    market_returns: ArrayLike,
    smb_returns: ArrayLike,
    hml_returns: ArrayLike,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> FactorModelResult:
    """
    Fama-French three-factor regression.

    Only the asset and market series are converted to excess returns; SMB
    and HML are already long-short returns.
    """
    data = _align({
        "asset": asset_returns,
        "market": market_returns,
        "smb": smb_returns,
        "hml": hml_returns,
    })
    y = data["asset"] - risk_free_rate
    X = data[["market", "smb", "hml"]].copy()
    X["market"] = X["market"] - risk_free_rate
    return _fit(y, X)


def _fit(y: pd.Series, X: pd.DataFrame) -> FactorModelResult:
    n, k = X.shape
    if n <= k + 1:
        raise InsufficientDataError(f"Need more than {k + 1} observations for {k} factors, got {n}")

    design = np.column_stack([np.ones(n), X.values])
    coef, *_ = np.linalg.lstsq(design, y.values, rcond=None)
    fitted = design @ coef
    resid = y.values - fitted
    rss = float(resid @ resid)
    tss = float(((y.values - y.values.mean()) ** 2).sum())

    return FactorModelResult(
        alpha=float(coef[0]),
        betas={name: float(c) for name, c in zip(X.columns, coef[1:])},
        r_squared=1 - rss / tss if tss > 0 else float("nan"),
        residual_volatility=float(np.sqrt(rss / (n - k - 1))),
        fitted_values=pd.Series(fitted, index=y.index, name="fitted"),
        residuals=pd.Series(resid, index=y.index, name="residual"),
        regressors=X,
    )


# ------------------------------------------------------------------
# Principal components
# ------------------------------------------------------------------


def pca_risk_factors(returns: pd.DataFrame | np.ndarray, n_factors: int = 3) -> PCAResult:
    """Principal components of standardised returns (complete rows only)."""
    frame = as_return_matrix(returns).dropna()
    n_obs, n_assets = frame.shape
    if not 1 <= n_factors <= n_assets:
        raise ValueError(f"n_factors must lie in [1, {n_assets}], got {n_factors}")
    if n_obs < 2:
        raise InsufficientDataError(f"Need at least 2 complete rows for PCA, got {n_obs}")
    sd = frame.std()
    if (sd == 0).any():
        raise ValueError(f"Constant return series cannot be scaled: {sd.index[sd == 0].tolist()}")

    z = (frame - frame.mean()) / sd
    _, s, vt = np.linalg.svd(z.values, full_matrices=False)
    names = [f"PC{i + 1}" for i in range(n_factors)]
    components = vt.T[:, :n_factors]
    variance = s ** 2 / (n_obs - 1)
    explained = variance / variance.sum()

    return PCAResult(
        loadings=pd.DataFrame(components, index=frame.columns, columns=names),
        scores=pd.DataFrame(z.values @ components, index=frame.index, columns=names),
        variance_explained=pd.Series(explained[:n_factors], index=names),
        cumulative_variance=pd.Series(np.cumsum(explained)[:n_factors], index=names),
        factor_names=names,
        n_factors=n_factors,
    )


# ------------------------------------------------------------------
# Attribution
# ------------------------------------------------------------------


def risk_attribution(
    portfolio_returns: ArrayLike,
    factor_returns: pd.DataFrame,
) -> RiskAttribution:
    """Split portfolio variance into factor contributions and specific risk."""
    factors = as_return_matrix(factor_returns)
    data = _align({"portfolio": portfolio_returns, **{c: factors[c] for c in factors.columns}})
    X = data[list(factors.columns)]
    fit = _fit(data["portfolio"], X)

    betas = pd.Series(fit.betas)
    contributions = betas ** 2 * X.var()
    specific = float(np.var(fit.residuals.values, ddof=1))
    total = float(contributions.sum() + specific)
    percentages = pd.concat([contributions, pd.Series({"Specific Risk": specific})]) / total * 100

    return RiskAttribution(
        betas=betas,
        factor_contributions=contributions,
        specific_risk=specific,
        total_variance=total,
        risk_percentages=percentages,
    )


def style_analysis(
    fund_returns: ArrayLike,
    benchmark_returns: pd.DataFrame,
    window_length: int = 36,
    policies: Iterable[WeightPolicy | str] = (WeightPolicy.CLIP_NEGATIVE, WeightPolicy.NORMALIZE),
) -> StyleAnalysisResult:
    """
    Rolling returns-based style analysis.

    Each window regresses fund returns on the benchmarks without an
    intercept. The raw coefficients are then passed through ``policies`` in
    order; the default clips short positions and rescales to one.
    """
    benchmarks = as_return_matrix(benchmark_returns)
    policies = [WeightPolicy(p) for p in policies]
    data = _align({"fund": fund_returns, **{c: benchmarks[c] for c in benchmarks.columns}})
    names = list(benchmarks.columns)
    y_all = data["fund"].values
    X_all = data[names].values
    n_obs = len(data)
    if n_obs < window_length:
        raise InsufficientDataError(f"Need {window_length} observations, got {n_obs}")

    weights, rsquared, labels = [], [], []
    for end in range(window_length, n_obs + 1):
        y = y_all[end - window_length:end]
        X = X_all[end - window_length:end]
        coef, *_ = np.linalg.lstsq(X, y, rcond=None)
        coef = np.nan_to_num(coef)
        resid = y - X @ coef
        # uncentred R-squared, as for a model without intercept
        rsquared.append(1 - float(resid @ resid) / float(y @ y))
        weights.append(apply_weight_policies(coef, policies))
        labels.append(data.index[end - 1])

    rolling = pd.DataFrame(weights, index=labels, columns=names)
    return StyleAnalysisResult(
        rolling_weights=rolling,
        rolling_rsquared=pd.Series(rsquared, index=labels, name="r_squared"),
        average_weights=rolling.mean(),
        window_length=window_length,
    )


# ------------------------------------------------------------------
# Diagnostics
# ------------------------------------------------------------------


def factor_diagnostics(result: FactorModelResult, lags: int = 10) -> FactorDiagnostics:
    """Normality, autocorrelation (Ljung-Box) and heteroscedasticity (Breusch-Pagan) checks."""
    resid = result.residuals.values
    n = len(resid)
    if not 1 <= lags < n:
        raise ValueError(f"lags must lie in [1, {n - 1}], got {lags}")

    _, jb_pvalue = stats.jarque_bera(resid)

    centred = resid - resid.mean()
    # Ljung-Box Q = n(n+2) sum_k acf_k^2 / (n-k), chi-squared with `lags` dof
    denom = float(centred @ centred)
    acf = np.array([centred[k:] @ centred[:-k] / denom for k in range(1, lags + 1)])
    lb_stat = float(n * (n + 2) * np.sum(acf ** 2 / (n - np.arange(1, lags + 1))))

    # Koenker's studentised form: n * R^2 of squared residuals on the regressors
    X = result.regressors.values
    design = np.column_stack([np.ones(n), X])
    e2 = resid ** 2
    coef, *_ = np.linalg.lstsq(design, e2, rcond=None)
    aux_resid = e2 - design @ coef
    aux_tss = float(((e2 - e2.mean()) ** 2).sum())
    aux_r2 = 1 - float(aux_resid @ aux_resid) / aux_tss if aux_tss > 0 else 0.0
    bp_stat = n * aux_r2

    return FactorDiagnostics(
        mean=float(resid.mean()),
        sd=float(np.std(resid, ddof=1)),
        skewness=float(stats.skew(resid)),
        kurtosis=float(stats.kurtosis(resid, fisher=False)),
        jarque_bera_pvalue=float(jb_pvalue),
        ljung_box_stat=lb_stat,
        ljung_box_pvalue=float(stats.chi2.sf(lb_stat, lags)),
        breusch_pagan_stat=float(bp_stat),
        breusch_pagan_pvalue=float(stats.chi2.sf(bp_stat, X.shape[1])),
    )


def _align(columns: dict[str, ArrayLike]) -> pd.DataFrame:
    """Combine series into one frame, aligning on index, and drop incomplete rows."""
    if all(isinstance(v, pd.Series) for v in columns.values()):
        data = pd.concat({k: v.astype(float) for k, v in columns.items()}, axis=1)
    else:
        arrays = {k: np.asarray(v, dtype=float).reshape(-1) for k, v in columns.items()}
        lengths = {len(a) for a in arrays.values()}
        if len(lengths) != 1:
            raise ValueError(f"Series lengths differ: { {k: len(a) for k, a in arrays.items()} }")
        data = pd.DataFrame(arrays)
    return data.dropna()
