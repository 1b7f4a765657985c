"""
Two-phase revised simplex method for linear problems.

Problems are given in the same form as for the Newton solvers,

```
    minimize    c^T x
    subject to  A x = b
                x >= l
```

with the cost vector ``c`` taken as the gradient of the objective at the
current state. For a Gibbs energy objective this is the linearization used
to compute an initial guess of the equilibrium composition. The variables
are shifted to ``u = x - l >= 0`` and phase I minimizes the sum of
artificial variables to find a basic feasible point; phase II then
minimizes the cost starting from the phase I basis.

References:
    - Nocedal & Wright, *Numerical Optimization*, 2nd edition, Chapter 13.
    - Bertsimas & Tsitsiklis, *Introduction to Linear Optimization*, 1997.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

import numpy as np

from ..logging import get_logger
from .core import OptimumProblem, OptimumResult, OptimumState
from .options import OptimumOptions
from .utils import norminf

logger = get_logger(__name__)

PIVOT_TOL = 1e-12


class SimplexStatus(Enum):
    """Exit status of a simplex phase."""

    OPTIMAL = "optimal"
    INFEASIBLE = "infeasible"
    UNBOUNDED = "unbounded"
    MAX_ITER = "max_iter"
    NUMERICAL_ERROR = "numerical_error"


@dataclass
class SimplexState:
    """Basis and iterate of the simplex method in shifted variables."""

    u: np.ndarray
    objective: float
    basis: List[int]
    iterations: int
    status: SimplexStatus
    message: str


@dataclass
class _StandardForm:
    A: np.ndarray
    b: np.ndarray
    signs: np.ndarray
    n: int
    m: int


def _standard_form(problem: OptimumProblem) -> _StandardForm:
    a_mat = problem.A.copy()
    rhs = problem.b - problem.A @ problem.l
    signs = np.where(rhs < 0.0, -1.0, 1.0)
    a_mat *= signs[:, np.newaxis]
    rhs = rhs * signs
    return _StandardForm(A=a_mat, b=rhs, signs=signs, n=problem.n, m=problem.m)


def _revised_simplex(
    a_mat: np.ndarray,
    b: np.ndarray,
    c: np.ndarray,
    basis: List[int],
    maxiter: int,
    eligible: Optional[Iterable[int]] = None,
    num_real: Optional[int] = None,
) -> SimplexState:
    m, n = a_mat.shape
    candidates = list(range(n)) if eligible is None else sorted(eligible)
    basis = basis.copy()
    nit = 0

    def _failed(status: SimplexStatus, message: str) -> SimplexState:
        return SimplexState(
            u=np.zeros(n),
            objective=np.inf,
            basis=basis,
            iterations=nit,
            status=status,
            message=message,
        )

    while nit < maxiter:
        nit += 1
        basis_matrix = a_mat[:, basis]
        try:
            u_basic = np.linalg.solve(basis_matrix, b)
            y = np.linalg.solve(basis_matrix.T, c[basis])
        except np.linalg.LinAlgError:
            return _failed(SimplexStatus.NUMERICAL_ERROR, "Basis matrix singular")

        reduced = c - a_mat.T @ y
        entering = None
        min_value = -PIVOT_TOL
        for j in candidates:
            if j in basis:
                continue
            if reduced[j] < min_value:
                min_value = reduced[j]
                entering = j

        if entering is None:
            u = np.zeros(n)
            u[basis] = u_basic
            return SimplexState(
                u=u,
                objective=float(c @ u),
                basis=basis,
                iterations=nit,
                status=SimplexStatus.OPTIMAL,
                message="Optimal basis found",
            )

        direction = np.linalg.solve(basis_matrix, a_mat[:, entering])
        positive = direction > PIVOT_TOL
        ratios = np.full_like(u_basic, np.inf)
        ratios[positive] = np.maximum(u_basic[positive], 0.0) / direction[positive]
        if num_real is not None:
            # Artificial variables left in the basis after phase I must stay at zero.
            artificial = np.array([k >= num_real for k in basis]) & (
                np.abs(direction) > PIVOT_TOL
            )
            ratios[artificial] = 0.0
            positive = positive | artificial
        if not np.any(positive):
            return _failed(SimplexStatus.UNBOUNDED, f"Unbounded along variable {entering}")
        basis[int(np.argmin(ratios))] = entering

    return _failed(SimplexStatus.MAX_ITER, "Maximum number of iterations reached")


class OptimumSolverSimplex:
    """
    Simplex solver for the linearization of an optimization problem.

    :meth:`feasible` runs phase I and remembers the basis it finds;
    :meth:`simplex` runs phase II from that basis; :meth:`solve` runs both.
    """

    def __init__(self) -> None:
        self._basis: Optional[List[int]] = None

    def feasible(
        self,
        problem: OptimumProblem,
        state: OptimumState,
        options: Optional[OptimumOptions] = None,
    ) -> OptimumResult:
        """Find a basic feasible point of ``A x = b, x >= l``."""
        options = options if options is not None else OptimumOptions()
        self._basis = None
        begin = time.perf_counter()
        result = OptimumResult()
        std = _standard_form(problem)

        a_phase = np.hstack([std.A, np.eye(std.m)])
        c_phase = np.concatenate([np.zeros(std.n), np.ones(std.m)])
        basis = list(range(std.n, std.n + std.m))

        if std.m == 0:
            phase = SimplexState(
                u=np.zeros(std.n),
                objective=0.0,
                basis=[],
                iterations=0,
                status=SimplexStatus.OPTIMAL,
                message="No constraints",
            )
        else:
            phase = _revised_simplex(a_phase, std.b, c_phase, basis, options.max_iterations)
        result.iterations = phase.iterations

        if phase.status is not SimplexStatus.OPTIMAL:
            result.message = f"Phase I failed: {phase.message}"
        elif phase.objective > options.tolerance:
            result.message = "Problem is infeasible"
        else:
            self._basis = phase.basis
            state.x = problem.l + phase.u[: std.n]
            result.error = norminf(problem.A @ state.x - problem.b)
            result.succeeded = True
            result.message = "Feasible point found"

        result.time = time.perf_counter() - begin
        logger.debug("Simplex phase I: %s", result.message)
        return result

    def simplex(
        self,
        problem: OptimumProblem,
        state: OptimumState,
        options: Optional[OptimumOptions] = None,
    ) -> OptimumResult:
        """Minimize the linearized objective from the basis found by :meth:`feasible`."""
        options = options if options is not None else OptimumOptions()
        if self._basis is None:
            raise RuntimeError("feasible must succeed before simplex is called")
        begin = time.perf_counter()
        result = OptimumResult()
        std = _standard_form(problem)

        f = problem.objective(state.x)
        state.f = f
        cost = np.asarray(f.grad, dtype=float).reshape(-1)
        if not np.all(np.isfinite(cost)):
            result.message = "Objective returned non-finite gradient"
            result.time = time.perf_counter() - begin
            logger.warning("Simplex phase II: %s", result.message)
            return result

        if std.m == 0:
            if np.any(cost < -PIVOT_TOL):
                result.message = "Problem is unbounded"
            else:
                state.x = problem.l.copy()
                state.y = np.zeros(0)
                state.z = cost.copy()
                result.error = 0.0
                result.succeeded = True
                result.message = "Optimal basis found"
            result.time = time.perf_counter() - begin
            return result

        a_phase = np.hstack([std.A, np.eye(std.m)])
        c_phase = np.concatenate([cost, np.zeros(std.m)])
        phase = _revised_simplex(
            a_phase,
            std.b,
            c_phase,
            self._basis,
            options.max_iterations,
            eligible=range(std.n),
            num_real=std.n,
        )
        result.iterations = phase.iterations

        if phase.status is SimplexStatus.OPTIMAL:
            self._basis = phase.basis
            basis_matrix = a_phase[:, phase.basis]
            y_std = np.linalg.solve(basis_matrix.T, c_phase[phase.basis])
            state.x = problem.l + phase.u[: std.n]
            state.y = y_std * std.signs
            state.z = cost - problem.A.T @ state.y
            result.error = norminf(problem.A @ state.x - problem.b)
            result.succeeded = True
        result.message = phase.message
        result.time = time.perf_counter() - begin
        logger.debug("Simplex phase II: %s", result.message)
        return result

    def solve(
        self,
        problem: OptimumProblem,
        state: OptimumState,
        options: Optional[OptimumOptions] = None,
    ) -> OptimumResult:
        """Run phase I and phase II, updating ``state`` in place."""
        first = self.feasible(problem, state, options)
        if not first.succeeded:
            return first
        second = self.simplex(problem, state, options)
        second.iterations += first.iterations
        second.time += first.time
        return second


__all__ = ["OptimumSolverSimplex", "SimplexState", "SimplexStatus"]
