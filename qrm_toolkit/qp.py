"""Dense quadratic programming with the Goldfarb-Idnani dual active-set method."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from qrm_toolkit.exceptions import ConvergenceError, InfeasibleError
from qrm_toolkit.linalg import check_invertible, cholesky_factor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QPSolution:
    """Optimum of a quadratic program."""

    solution: np.ndarray     # shape (n,)
    value: float             # objective at the solution
    multipliers: np.ndarray  # shape (m,), zero for inactive constraints
    active: tuple[int, ...]  # indices of binding constraint rows
    iterations: int


def solve_qp(
    D: np.ndarray,
    d: np.ndarray | None = None,
    A: np.ndarray | None = None,
    b: np.ndarray | None = None,
    meq: int = 0,
    max_iter: int | None = None,
    tol: float = 1e-10,
) -> QPSolution:
    """
    Solve  min 1/2 w'Dw - d'w  subject to  A[:meq] w = b[:meq],  A[meq:] w >= b[meq:].

    The method starts from the unconstrained minimiser and adds the most
    violated constraint at each step, releasing active inequalities whose
    multipliers would turn negative. Equality rows are added first, in
    order, and never released.

    Args:
        D: Symmetric positive-definite matrix, shape (n, n).
        d: Linear term, shape (n,). Defaults to zeros.
        A: Constraint rows, shape (m, n).
        b: Constraint right-hand sides, shape (m,).
        meq: Number of leading rows of A that are equalities.
        max_iter: Cap on active-set steps (default 10 * (n + m) + 10).
        tol: Feasibility tolerance on constraint slacks.

    Raises:
        SingularMatrixError: D is not positive-definite.
        InfeasibleError: the constraints cannot all hold.
        ConvergenceError: the step cap was reached.
    """
    G = np.asarray(D, dtype=float)
    if G.ndim != 2 or G.shape[0] != G.shape[1]:
        raise ValueError(f"D must be square, got shape {G.shape}")
    if not np.allclose(G, G.T):
        raise ValueError("D must be symmetric")
    n = G.shape[0]

    d = np.zeros(n) if d is None else np.asarray(d, dtype=float).reshape(-1)
    if A is None:
        A = np.empty((0, n))
        b = np.empty(0)
    elif b is None:
        raise ValueError("b is required when A is given")
    A = np.atleast_2d(np.asarray(A, dtype=float))
    b = np.asarray(b, dtype=float).reshape(-1)
    m = A.shape[0]
    if d.shape != (n,):
        raise ValueError(f"d must have length {n}, got {d.shape}")
    if A.shape[1] != n or b.shape != (m,):
        raise ValueError(f"A must be (m, {n}) and b of length m; got A {A.shape}, b {b.shape}")
    if not 0 <= meq <= m:
        raise ValueError(f"meq must lie in [0, {m}], got {meq}")
    cap = max_iter if max_iter is not None else 10 * (n + m) + 10

    check_invertible(G)
    L_inv = np.linalg.inv(cholesky_factor(G))
    G_inv = L_inv.T @ L_inv

    normals = A.copy()
    rhs = b.copy()
    signs = np.ones(m)

    x = G_inv @ d
    active: list[int] = []
    u = np.zeros(0)
    pending_eq = list(range(meq))
    iterations = 0

    while True:
        # -- pick the constraint to add
        if pending_eq:
            p = pending_eq.pop(0)
            if normals[p] @ x - rhs[p] > 0:
                normals[p] *= -1
                rhs[p] *= -1
                signs[p] = -1.0
        else:
            inactive = [j for j in range(meq, m) if j not in active]
            if not inactive:
                break
            slacks = normals[inactive] @ x - rhs[inactive]
            k = int(np.argmin(slacks))
            if slacks[k] >= -tol * (1.0 + abs(rhs[inactive[k]])):
                break
            p = inactive[k]

        n_p = normals[p]
        u_plus = 0.0

        # -- step until p becomes active (possibly releasing others on the way)
        while True:
            iterations += 1
            if iterations > cap:
                raise ConvergenceError(f"QP active-set loop exceeded {cap} steps")

            z, r = _step_directions(G_inv, normals[active], n_p)

            t1, drop = np.inf, -1
            for k, j in enumerate(active):
                if j >= meq and r[k] > 0:
                    ratio = u[k] / r[k]
                    if ratio < t1:
                        t1, drop = ratio, k

            slack = n_p @ x - rhs[p]
            if np.linalg.norm(z) > tol * max(np.linalg.norm(G_inv @ n_p), 1e-300):
                t2 = max(-slack / (z @ n_p), 0.0)
            else:
                t2 = np.inf

            t = min(t1, t2)
            if not np.isfinite(t):
                if p < meq and abs(slack) <= tol * (1.0 + abs(rhs[p])):
                    logger.debug("Equality row %d is redundant; skipped", p)
                    break
                raise InfeasibleError(
                    f"Constraint row {p} cannot be satisfied together with the active set"
                )

            if np.isfinite(t2):
                x = x + t * z
            u = u - t * r
            u_plus += t

            if t2 <= t1:
                active.append(p)
                u = np.append(u, u_plus)
                break

            del active[drop]
            u = np.delete(u, drop)

    multipliers = np.zeros(m)
    for k, j in enumerate(active):
        multipliers[j] = signs[j] * u[k]

    value = float(0.5 * x @ G @ x - d @ x)
    logger.debug("QP solved in %d steps with %d active constraints", iterations, len(active))
    return QPSolution(
        solution=x,
        value=value,
        multipliers=multipliers,
        active=tuple(sorted(active)),
        iterations=iterations,
    )


def _step_directions(
    G_inv: np.ndarray,
    active_normals: np.ndarray,
    n_p: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    """Primal direction z = H n_p and dual direction r = N* n_p for the active set."""
    if active_normals.shape[0] == 0:
        return G_inv @ n_p, np.zeros(0)
    N = active_normals.T
    G_inv_N = G_inv @ N
    r = np.linalg.solve(N.T @ G_inv_N, G_inv_N.T @ n_p)
    z = G_inv @ n_p - G_inv_N @ r
    return z, r
