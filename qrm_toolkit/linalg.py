"""Moment estimation and guarded matrix operations for return matrices."""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from qrm_toolkit.exceptions import InsufficientDataError, SingularMatrixError

logger = logging.getLogger(__name__)

MAX_CONDITION_NUMBER = 1e12
MISSING_POLICIES = ("pairwise", "listwise")


def as_return_matrix(returns: pd.DataFrame | np.ndarray) -> pd.DataFrame:
    """
    Coerce input into a float DataFrame with one column per asset.

    Plain arrays get column names ``Asset_1 .. Asset_n``; column order is
    preserved because it fixes the position of each asset in weight vectors.
    """
    if isinstance(returns, pd.DataFrame):
        frame = returns.astype(float)
    else:
        arr = np.asarray(returns, dtype=float)
        if arr.ndim != 2:
            raise ValueError(f"Return matrix must be 2-D, got shape {arr.shape}")
        frame = pd.DataFrame(
            arr, columns=[f"Asset_{i + 1}" for i in range(arr.shape[1])]
        )
    if frame.shape[1] == 0 or frame.shape[0] == 0:
        raise ValueError("Return matrix is empty")
    return frame


def expected_returns(returns: pd.DataFrame | np.ndarray) -> pd.Series:
    """Column means, ignoring missing values."""
    frame = as_return_matrix(returns)
    mu = frame.mean(skipna=True)
    empty = mu.index[mu.isna()].tolist()
    if empty:
        raise InsufficientDataError(f"No valid observations for assets: {empty}")
    return mu.rename("expected_return")


def covariance_matrix(
    returns: pd.DataFrame | np.ndarray,
    missing: str = "pairwise",
) -> pd.DataFrame:
    """
    Sample covariance matrix (ddof=1).

    Args:
        returns: Return matrix, assets in columns.
        missing: ``"pairwise"`` uses every row where both assets of a pair
            are observed; ``"listwise"`` first drops rows with any gap.
    """
    if missing not in MISSING_POLICIES:
        raise ValueError(f"missing must be one of {MISSING_POLICIES}, got {missing!r}")

    frame = as_return_matrix(returns)
    if missing == "listwise":
        before = len(frame)
        frame = frame.dropna()
        if len(frame) < before:
            logger.debug("Listwise deletion dropped %d of %d rows", before - len(frame), before)

    observed = frame.notna().astype(int)
    counts = observed.T @ observed
    if counts.values.min() < 2:
        i, j = np.unravel_index(np.argmin(counts.values), counts.shape)
        raise InsufficientDataError(
            f"Fewer than 2 joint observations for pair "
            f"({frame.columns[i]}, {frame.columns[j]}): {counts.values[i, j]}"
        )
    return frame.cov(min_periods=2)


def estimate_moments(
    returns: pd.DataFrame | np.ndarray,
    missing: str = "pairwise",
) -> tuple[pd.Series, pd.DataFrame]:
    """Expected-return vector and covariance matrix of a return matrix."""
    return expected_returns(returns), covariance_matrix(returns, missing=missing)


def quadratic_form(weights: np.ndarray, matrix: np.ndarray) -> float:
    """Evaluate w' M w."""
    w = np.asarray(weights, dtype=float)
    return float(w @ np.asarray(matrix, dtype=float) @ w)


def check_invertible(
    matrix: np.ndarray | pd.DataFrame,
    max_condition: float = MAX_CONDITION_NUMBER,
) -> np.ndarray:
    """Return the matrix as an array, or raise SingularMatrixError."""
    m = np.asarray(matrix, dtype=float)
    if m.ndim != 2 or m.shape[0] != m.shape[1]:
        raise ValueError(f"Expected a square matrix, got shape {m.shape}")
    if not np.all(np.isfinite(m)):
        raise SingularMatrixError("Matrix contains non-finite entries")
    cond = np.linalg.cond(m)
    if not np.isfinite(cond) or cond > max_condition:
        raise SingularMatrixError(
            f"Matrix is singular or ill-conditioned (condition number {cond:.3g})"
        )
    return m


def safe_inverse(
    matrix: np.ndarray | pd.DataFrame,
    max_condition: float = MAX_CONDITION_NUMBER,
) -> np.ndarray:
    """Invert a matrix after checking its condition number."""
    m = check_invertible(matrix, max_condition)
    try:
        return np.linalg.inv(m)
    except np.linalg.LinAlgError as exc:
        raise SingularMatrixError(str(exc)) from exc


def cholesky_factor(matrix: np.ndarray | pd.DataFrame) -> np.ndarray:
    """Lower Cholesky factor of a positive-definite matrix."""
    m = np.asarray(matrix, dtype=float)
    try:
        return np.linalg.cholesky(m)
    except np.linalg.LinAlgError as exc:
        raise SingularMatrixError(f"Matrix is not positive-definite: {exc}") from exc
