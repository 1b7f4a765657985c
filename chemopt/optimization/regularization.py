"""Convex regularization of optimization problems.

Species with amounts close to zero make the Gibbs energy Hessian badly
scaled. Adding the term ``0.5 * rho * ||D x||^2`` with
``D = 1 / sqrt(max(x0, l))`` improves the conditioning of the Newton
systems near the bounds. The scaling is frozen at the initial guess ``x0``.
"""

from __future__ import annotations

from dataclasses import replace

import numpy as np

from .core import HessianMode, ObjectiveResult, OptimumProblem


def scaling_factors(x0: np.ndarray, lower: np.ndarray) -> np.ndarray:
    """Return ``D = 1 / sqrt(max(x0, l))`` floored at machine epsilon."""
    x0 = np.asarray(x0, dtype=float).reshape(-1)
    lower = np.asarray(lower, dtype=float).reshape(-1)
    if x0.size != lower.size:
        x0 = lower.copy()
    base = np.maximum(np.maximum(x0, lower), np.finfo(float).eps)
    return 1.0 / np.sqrt(base)


def regularized(problem: OptimumProblem, x0: np.ndarray, rho: float) -> OptimumProblem:
    """
    Wrap ``problem`` so its objective includes ``0.5 * rho * ||D x||^2``.

    Parameters
    ----------
    problem:
        Problem to wrap. It is left untouched.
    x0:
        Point defining the scaling ``D``; an ``x0`` of the wrong size is
        replaced by the lower bounds.
    rho:
        Regularization weight. Zero returns an objective whose results are
        those of the wrapped objective.

    Returns
    -------
    OptimumProblem
        A new problem sharing ``A``, ``b`` and ``l`` with ``problem``.
    """
    if rho < 0.0:
        raise ValueError("rho must be non-negative")

    objective = problem.objective
    if rho == 0.0:
        return OptimumProblem(A=problem.A, b=problem.b, l=problem.l, objective=objective)

    d2 = scaling_factors(x0, problem.l) ** 2

    def regularized_objective(x: np.ndarray) -> ObjectiveResult:
        f = objective(x)
        x = np.asarray(x, dtype=float)
        hessian = replace(f.hessian)
        if hessian.mode is HessianMode.DIAGONAL:
            hessian.diagonal = np.asarray(hessian.diagonal, dtype=float) + rho * d2
        elif hessian.mode is HessianMode.DENSE:
            hessian.dense = np.asarray(hessian.dense, dtype=float) + np.diag(rho * d2)
        return ObjectiveResult(
            val=f.val + 0.5 * rho * float(np.sum(d2 * x * x)),
            grad=np.asarray(f.grad, dtype=float) + rho * d2 * x,
            hessian=hessian,
        )

    return OptimumProblem(
        A=problem.A, b=problem.b, l=problem.l, objective=regularized_objective
    )


__all__ = ["regularized", "scaling_factors"]
