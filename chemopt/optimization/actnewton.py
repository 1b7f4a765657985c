"""
Active-set Newton method for equality and bound constrained problems.

The solver minimizes ``f(x)`` subject to ``A x = b`` and ``x >= l`` by
splitting the variables into a free set ``F`` and a set ``L`` of variables
pinned at their lower bounds. Each iteration

1. prices the bound multipliers ``z_L = g_L - A_L^T y`` and releases the
   variable with the most negative one into ``F``;
2. computes a Newton step on ``F`` from the KKT equation
   ``H_FF dx - A_F^T dy = -(g_F - A_F^T y)``, ``A_F dx = -(A x - b)``;
3. takes the largest step that keeps ``F`` feasible and pins the limiting
   variable, if any, at its bound.

The iteration stops when the maximum of the optimality error
``|g_F - A_F^T y|`` and the feasibility error ``|A x - b|`` drops below the
tolerance. Numerical failures never raise: they are reported through
:attr:`OptimumResult.succeeded` with the partial iterate left in the state.

References:
    - Nocedal & Wright, *Numerical Optimization*, 2nd edition, Chapter 16.
    - Leal et al., *A robust and efficient numerical method for multiphase
      equilibrium calculations*, Fluid Phase Equilibria (2014).
"""

from __future__ import annotations

import copy
import time
from typing import List, Optional, Tuple

import numpy as np

from ..logging import get_logger
from .core import (
    Hessian,
    HessianMode,
    OptimumConfigurationError,
    OptimumProblem,
    OptimumResult,
    OptimumState,
)
from .kkt import KktMatrix, KktSolution, KktSolver, KktVector
from .options import OptimumOptions
from .outputter import Outputter
from .regularization import regularized
from .utils import fraction_to_the_boundary, multi_kahan_sum, norminf

logger = get_logger(__name__)


def _check_hessian_mode(hessian: Hessian) -> None:
    if hessian.mode not in (HessianMode.DENSE, HessianMode.DIAGONAL):
        raise OptimumConfigurationError(
            "Could not solve the optimization problem with the given Hessian: "
            "the active-set Newton solver only accepts dense or diagonal "
            f"Hessian matrices, got {hessian.mode.value}."
        )


class ActiveSetIteration:
    """
    Working data of a single active-set Newton solve.

    The phases of one iteration are exposed as methods so that the solver
    loop reads as a sequence of named steps. A new instance is created for
    every solve and never shared between calls.

    Attributes:
        F: Indices of the free variables.
        L: Indices of the variables pinned at their lower bounds.
        xF: Values of the free variables, ordered as ``F``.
    """

    def __init__(
        self,
        problem: OptimumProblem,
        state: OptimumState,
        kkt: KktSolver,
        result: OptimumResult,
    ) -> None:
        self.problem = problem
        self.state = state
        self.kkt = kkt
        self.result = result

        n, m = problem.n, problem.m
        lower = problem.l

        x = np.asarray(state.x, dtype=float).reshape(-1)
        if x.size != n:
            x = np.zeros(n)
        state.x = np.where(x > lower, x, lower)
        state.y = np.asarray(state.y, dtype=float).reshape(-1)
        state.z = np.asarray(state.z, dtype=float).reshape(-1)
        if state.y.size != m:
            state.y = np.zeros(m)
        if state.z.size != n:
            state.z = np.zeros(n)

        self.L: List[int] = [i for i in range(n) if state.x[i] == lower[i]]
        self.F: List[int] = [i for i in range(n) if state.x[i] != lower[i]]
        self.xF = state.x[self.F].copy()

        self.h = np.zeros(m)
        self.grad = np.zeros(n)
        self.gF = np.zeros(0)
        self.sol: Optional[KktSolution] = None
        self.alpha = float("nan")
        self.errorf = float("inf")
        self.errorh = float("inf")
        self.error = float("inf")

    def partition(self) -> Tuple[List[int], List[int]]:
        """Return copies of the free and bound index sets."""
        return list(self.F), list(self.L)

    def update_state(self) -> bool:
        """
        Evaluate the objective and constraints at the current iterate.

        Returns False when the objective value or gradient is not finite.

        Raises:
            OptimumConfigurationError: If the objective returns a Hessian
                mode other than dense or diagonal.
        """
        problem = self.problem
        state = self.state
        lower = problem.l
        a_mat = problem.A

        state.x[self.F] = self.xF
        state.x[self.L] = lower[self.L]

        f = problem.objective(state.x)
        state.f = f
        _check_hessian_mode(f.hessian)
        self.h = multi_kahan_sum(a_mat, state.x) - problem.b

        grad = np.asarray(f.grad, dtype=float).reshape(-1)
        self.grad = grad
        if not (np.isfinite(f.val) and np.all(np.isfinite(grad))):
            return False

        y = state.y
        if y.size and self.F and not np.any(y):
            y[:] = np.linalg.lstsq(a_mat[:, self.F].T, grad[self.F], rcond=None)[0]

        z_bound = grad[self.L] - a_mat[:, self.L].T @ y
        state.z[:] = 0.0
        state.z[self.L] = z_bound

        if self.L:
            imin = int(np.argmin(z_bound))
            minz = z_bound[imin]
            # With no free variable a zero multiplier is released too
            if minz < 0.0 or (not self.F and minz <= 0.0):
                ifree = self.L.pop(imin)
                self.F.append(ifree)
                self.xF = np.append(self.xF, lower[ifree])
                state.z[ifree] = 0.0
                logger.debug("Released variable %d from its bound (z=%g)", ifree, minz)

        self.gF = grad[self.F]
        return True

    def restricted_hessian(self) -> Hessian:
        """Hessian of the objective restricted to the free variables."""
        hessian = self.state.f.hessian
        _check_hessian_mode(hessian)
        if hessian.mode is HessianMode.DENSE:
            dense = np.asarray(hessian.dense, dtype=float)
            return Hessian.from_dense(dense[np.ix_(self.F, self.F)])
        diagonal = np.asarray(hessian.diagonal, dtype=float).reshape(-1)
        return Hessian.from_diagonal(diagonal[self.F])

    def compute_newton_step(self) -> bool:
        """
        Solve the KKT equation for the Newton step of the free variables.

        Returns False when the step has non-finite entries.
        """
        a_free = self.problem.A[:, self.F]
        y = self.state.y
        nfree = len(self.F)

        lhs = KktMatrix(
            H=self.restricted_hessian(), A=a_free, x=self.xF, z=np.zeros(nfree)
        )
        self.kkt.decompose(lhs)

        rhs = KktVector(
            rx=-(self.gF - a_free.T @ y),
            ry=-self.h,
            rz=np.zeros(nfree),
        )
        self.sol = self.kkt.solve(rhs)

        timings = self.kkt.result()
        self.result.time_linear_systems += timings.time_decompose + timings.time_solve
        return self.sol.is_finite()

    def update_iterates(self) -> None:
        """Take the fraction-to-the-boundary step and pin the limiting variable."""
        sol = self.sol
        lower_free = self.problem.l[self.F]
        alpha, ilimiting = fraction_to_the_boundary(self.xF - lower_free, sol.dx, 1.0)
        self.alpha = alpha

        self.xF = self.xF + alpha * sol.dx
        self.state.y += alpha * sol.dy
        self.state.x[self.F] = self.xF

        if ilimiting < len(self.F):
            ibound = self.F.pop(ilimiting)
            self.L.append(ibound)
            self.xF = np.delete(self.xF, ilimiting)
            logger.debug("Variable %d reached its bound (alpha=%g)", ibound, alpha)

    def update_errors(self) -> None:
        """Compute the optimality, feasibility and total errors."""
        a_free = self.problem.A[:, self.F]
        self.errorf = norminf(self.gF - a_free.T @ self.state.y)
        self.errorh = norminf(self.h)
        self.error = max(self.errorf, self.errorh)
        self.result.error = self.error

    def converged(self, tolerance: float) -> bool:
        """Mark the result as succeeded if the error is below ``tolerance``."""
        if self.error < tolerance:
            self.result.succeeded = True
            return True
        return False


class OptimumSolverActNewton:
    """
    Active-set Newton solver for Gibbs energy minimization problems.

    The solver keeps no per-solve data between calls: each call to
    :meth:`solve` works on its own :class:`ActiveSetIteration`, so a single
    instance can be reused for any number of independent states.

    Example:
        >>> import numpy as np
        >>> from chemopt.optimization import (
        ...     Hessian, ObjectiveResult, OptimumProblem, OptimumSolverActNewton,
        ...     OptimumState)
        >>> def objective(x):
        ...     return ObjectiveResult(x @ x, 2 * x, Hessian.from_diagonal(2 * np.ones(2)))
        >>> problem = OptimumProblem(A=[[1.0, 1.0]], b=[1.0], l=[0.0, 0.0],
        ...                          objective=objective)
        >>> state = OptimumState(x=[0.2, 0.8])
        >>> OptimumSolverActNewton().solve(problem, state).succeeded
        True
    """

    def __init__(self) -> None:
        self._kkt = KktSolver()

    def clone(self) -> "OptimumSolverActNewton":
        return copy.deepcopy(self)

    def solve(
        self,
        problem: OptimumProblem,
        state: OptimumState,
        options: Optional[OptimumOptions] = None,
    ) -> OptimumResult:
        """
        Solve ``problem`` starting from ``state``, updating it in place.

        Raises:
            OptimumConfigurationError: If the objective returns a Hessian
                mode other than dense or diagonal.
        """
        options = options if options is not None else OptimumOptions()
        problem = regularized(problem, state.x, options.regularization)
        return self._solve(problem, state, options)

    def _solve(
        self,
        problem: OptimumProblem,
        state: OptimumState,
        options: OptimumOptions,
    ) -> OptimumResult:
        begin = time.perf_counter()

        self._kkt.set_options(options.kkt)
        outputter = Outputter(options.output)
        result = OptimumResult()

        iteration = ActiveSetIteration(problem, state, self._kkt, result)
        failed = False
        state_ok = iteration.update_state()
        if state_ok:
            iteration.update_errors()
        self._output_header(outputter, options, iteration)

        while True:
            if result.iterations >= options.max_iterations:
                result.message = "Maximum number of iterations reached"
                break
            result.iterations += 1
            if not state_ok:
                result.message = "Objective returned non-finite value or gradient"
                failed = True
                break
            if not iteration.compute_newton_step():
                result.message = "Newton step has non-finite entries"
                failed = True
                break
            iteration.update_iterates()
            state_ok = iteration.update_state()
            if not state_ok:
                result.message = "Objective returned non-finite value or gradient"
                failed = True
                break
            iteration.update_errors()
            self._output_state(outputter, iteration)
            logger.debug(
                "Iteration %d: error=%.3e (optimality=%.3e, feasibility=%.3e), alpha=%g",
                result.iterations,
                iteration.error,
                iteration.errorf,
                iteration.errorh,
                iteration.alpha,
            )
            if iteration.converged(options.tolerance):
                result.message = "Converged"
                break

        outputter.output_header()
        result.time = time.perf_counter() - begin

        if result.succeeded:
            logger.info(
                "Converged in %d iterations (error=%.3e)", result.iterations, result.error
            )
        elif failed:
            logger.warning(
                "Calculation failed at iteration %d: %s", result.iterations, result.message
            )
        else:
            logger.info(
                "Did not converge after %d iterations: %s", result.iterations, result.message
            )
        return result

    @staticmethod
    def _output_header(
        outputter: Outputter, options: OptimumOptions, iteration: ActiveSetIteration
    ) -> None:
        if not options.output.active:
            return
        state = iteration.state
        out = options.output
        outputter.add_entry("iter")
        outputter.add_entries(out.xprefix, state.x.size, out.xnames)
        outputter.add_entries(out.yprefix, state.y.size, out.ynames)
        outputter.add_entries(out.zprefix, state.z.size, out.znames)
        for name in ("f(x)", "h(x)", "errorf", "errorh", "error", "alpha"):
            outputter.add_entry(name)
        outputter.output_header()

        outputter.add_value(iteration.result.iterations)
        outputter.add_values(state.x)
        outputter.add_values(state.y)
        outputter.add_values(state.z)
        outputter.add_value(state.f.val)
        outputter.add_value(norminf(iteration.h))
        outputter.add_values(["---"] * 4)
        outputter.output_state()

    @staticmethod
    def _output_state(outputter: Outputter, iteration: ActiveSetIteration) -> None:
        state = iteration.state
        outputter.add_value(iteration.result.iterations)
        outputter.add_values(state.x)
        outputter.add_values(state.y)
        outputter.add_values(state.z)
        outputter.add_value(state.f.val)
        outputter.add_value(norminf(iteration.h))
        outputter.add_value(iteration.errorf)
        outputter.add_value(iteration.errorh)
        outputter.add_value(iteration.error)
        outputter.add_value(iteration.alpha)
        outputter.output_state()


__all__ = ["ActiveSetIteration", "OptimumSolverActNewton"]
