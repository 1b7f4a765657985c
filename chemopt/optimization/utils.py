"""
Numerical helper routines for the optimization solvers.

The residual of the mass-balance constraints is the quantity most sensitive
to round-off in equilibrium calculations: amounts of species span many
orders of magnitude while element amounts are of order one. The residual is
therefore accumulated with Kahan's compensated summation.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np


def norminf(vec: np.ndarray) -> float:
    """Infinity norm of a vector, zero for an empty one."""
    vec = np.asarray(vec, dtype=float).reshape(-1)
    if vec.size == 0:
        return 0.0
    return float(np.max(np.abs(vec)))


def multi_kahan_sum(a_mat: np.ndarray, x: np.ndarray) -> np.ndarray:
    """
    Compute ``A @ x`` with compensated summation along each row.

    Parameters
    ----------
    a_mat:
        Matrix of shape ``(m, n)``.
    x:
        Vector of size ``n``.

    Returns
    -------
    np.ndarray
        Vector of size ``m``.
    """
    a_mat = np.asarray(a_mat, dtype=float)
    x = np.asarray(x, dtype=float).reshape(-1)
    res = np.zeros(a_mat.shape[0])
    for i in range(a_mat.shape[0]):
        total = 0.0
        comp = 0.0
        for aij, xj in zip(a_mat[i], x):
            y = float(aij) * float(xj) - comp
            t = total + y
            comp = (t - total) - y
            total = t
        res[i] = total
    return res


def fraction_to_the_boundary(
    p: np.ndarray, dp: np.ndarray, tau: float = 1.0
) -> Tuple[float, int]:
    """
    Largest step ``alpha in (0, 1]`` keeping ``p + alpha * dp >= (1 - tau) * p``.

    Parameters
    ----------
    p:
        Distance of each variable to its bound (non-negative).
    dp:
        Step direction.
    tau:
        Fraction of the distance to the boundary allowed; ``1.0`` lets the
        limiting variable land exactly on its bound.

    Returns
    -------
    Tuple[float, int]
        The step length and the index of the limiting variable, or
        ``p.size`` when no variable limits the step. On ties the first
        limiting index is kept.
    """
    p = np.asarray(p, dtype=float).reshape(-1)
    dp = np.asarray(dp, dtype=float).reshape(-1)
    alpha = 1.0
    ilimiting = p.size
    for i in range(p.size):
        if dp[i] < 0.0:
            trial = -tau * p[i] / dp[i]
            if trial < alpha:
                alpha = trial
                ilimiting = i
    return alpha, ilimiting


__all__ = ["fraction_to_the_boundary", "multi_kahan_sum", "norminf"]
