"""Error types raised by the toolkit."""

from __future__ import annotations


class QRMError(Exception):
    """Base class for every toolkit error."""


class InsufficientDataError(QRMError, ValueError):
    """Too few valid observations to compute a statistic."""


class SingularMatrixError(QRMError):
    """A covariance (or QP) matrix is not invertible or not positive-definite."""


class InfeasibleError(QRMError):
    """No weight vector satisfies all optimization constraints together."""


class ConvergenceError(QRMError):
    """An iterative solver exceeded its iteration cap."""
