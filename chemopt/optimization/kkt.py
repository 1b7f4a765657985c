"""
Karush-Kuhn-Tucker linear systems and diagnostics.

Every Newton step of the equilibrium solvers requires the solution of

```
    H dx - A^T dy - dz = rx
    A dx              = ry
    Z dx + X dz       = rz
```

where ``X = diag(x)`` and ``Z = diag(z)``. The bound multipliers are
eliminated through ``dz = (rz - Z dx) / X`` so that only the reduced system

```
    [H + Z/X   -A^T] [dx]   [rx + rz/X]
    [A           0 ] [dy] = [ry       ]
```

is factorized. Terms with ``z == 0`` contribute nothing, which keeps the
elimination well defined for primal variables sitting on their bounds.

Dense Hessians are factorized exactly with one of the strategies of
:class:`~chemopt.optimization.options.KktMethod`. Diagonal Hessians, the
common case for ideal mixtures, never build the full matrix: variables with
a nonzero entry of ``D = H + Z/X`` are eliminated through the Schur
complement ``A_P D_P^-1 A_P^T`` and the remaining ones, such as pure
condensed phases with a zero Hessian entry, are solved together with ``dy``.

Singular systems are not an error here. They are reported through the
logger and show up as non-finite entries in the solution, which the calling
solver treats as a failed Newton step.
"""

from __future__ import annotations

import time
import warnings
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
import scipy.linalg as la

from ..logging import get_logger
from .core import (
    Hessian,
    HessianMode,
    OptimumConfigurationError,
    OptimumProblem,
    OptimumState,
)
from .options import KktMethod, KktOptions
from .utils import norminf

logger = get_logger(__name__)


@dataclass
class KktMatrix:
    """Left-hand side of the KKT equation."""

    H: Hessian
    A: np.ndarray
    x: np.ndarray
    z: np.ndarray


@dataclass
class KktVector:
    """Right-hand side of the KKT equation."""

    rx: np.ndarray
    ry: np.ndarray
    rz: np.ndarray


@dataclass
class KktSolution:
    """Solution of the KKT equation."""

    dx: np.ndarray
    dy: np.ndarray
    dz: np.ndarray

    def is_finite(self) -> bool:
        return bool(
            np.all(np.isfinite(self.dx))
            and np.all(np.isfinite(self.dy))
            and np.all(np.isfinite(self.dz))
        )


@dataclass
class KktResult:
    """Timings and status of the last decomposition and solve."""

    time_decompose: float = 0.0
    time_solve: float = 0.0
    succeeded: bool = False


def _lu_factor(matrix: np.ndarray) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    if matrix.size == 0:
        return None
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", la.LinAlgWarning)
        factors = la.lu_factor(matrix, check_finite=False)
    for warning in caught:
        logger.warning("KKT factorization: %s", warning.message)
    return factors


def _lu_solve(
    factors: Optional[Tuple[np.ndarray, np.ndarray]], rhs: np.ndarray
) -> np.ndarray:
    if factors is None:
        return np.zeros(rhs.shape)
    return la.lu_solve(factors, rhs, check_finite=False)


def _ratio(num: np.ndarray, den: np.ndarray) -> np.ndarray:
    """Elementwise ``num / den`` with zero wherever ``num`` is zero."""
    out = np.zeros_like(num, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        np.divide(num, den, out=out, where=num != 0.0)
    return out


class KktSolver:
    """
    Decompose and solve KKT equations.

    Example:
        >>> import numpy as np
        >>> from chemopt.optimization import Hessian
        >>> from chemopt.optimization.kkt import KktMatrix, KktSolver, KktVector
        >>> solver = KktSolver()
        >>> lhs = KktMatrix(Hessian.from_diagonal([2.0, 2.0]), np.array([[1.0, 1.0]]),
        ...                 np.ones(2), np.zeros(2))
        >>> solver.decompose(lhs)
        >>> sol = solver.solve(KktVector(np.zeros(2), np.array([1.0]), np.zeros(2)))
        >>> sol.dx
        array([0.5, 0.5])
    """

    def __init__(self, options: Optional[KktOptions] = None) -> None:
        self._options = options if options is not None else KktOptions()
        self._result = KktResult()
        self._lhs: Optional[KktMatrix] = None
        self._mode: Optional[str] = None
        self._factors: Dict[str, object] = {}

    def set_options(self, options: KktOptions) -> None:
        self._options = options

    def options(self) -> KktOptions:
        return self._options

    def result(self) -> KktResult:
        return self._result

    def decompose(self, lhs: KktMatrix) -> None:
        """Factorize the KKT matrix ``lhs`` for subsequent calls to :meth:`solve`."""
        begin = time.perf_counter()

        a_mat = np.asarray(lhs.A, dtype=float)
        x = np.asarray(lhs.x, dtype=float).reshape(-1)
        z = np.asarray(lhs.z, dtype=float).reshape(-1)
        n = x.size
        m = a_mat.shape[0]
        zx = _ratio(z, x)

        self._lhs = lhs
        self._factors = {}

        if lhs.H.mode is HessianMode.DIAGONAL:
            diag = np.asarray(lhs.H.diagonal, dtype=float).reshape(-1) + zx
            ipos = np.flatnonzero(diag != 0.0)
            izero = np.flatnonzero(diag == 0.0)
            dinv = 1.0 / diag[ipos]
            a_pos = a_mat[:, ipos]
            a_zero = a_mat[:, izero]
            # Variables with a zero diagonal stay coupled to dy:
            # [A_P D_P^-1 A_P^T  A_0] [dy  ]
            # [A_0^T             0  ] [dx_0]
            nzero = izero.size
            matrix = np.block(
                [
                    [(a_pos * dinv) @ a_pos.T, a_zero],
                    [a_zero.T, np.zeros((nzero, nzero))],
                ]
            )
            self._mode = "diagonal"
            self._factors = {
                "ipos": ipos,
                "izero": izero,
                "dinv": dinv,
                "lu": _lu_factor(matrix),
            }
        elif lhs.H.mode is HessianMode.DENSE:
            hess = np.asarray(lhs.H.dense, dtype=float) + np.diag(zx)
            method = self._options.method
            if method is KktMethod.RANGESPACE:
                hlu = _lu_factor(hess)
                hinv_at = _lu_solve(hlu, a_mat.T)
                self._factors = {
                    "hlu": hlu,
                    "hinv_at": hinv_at,
                    "schur": _lu_factor(a_mat @ hinv_at),
                }
            else:
                kkt = np.block([[hess, -a_mat.T], [a_mat, np.zeros((m, m))]])
                if method is KktMethod.LSTSQ:
                    self._factors = {"matrix": kkt}
                else:
                    self._factors = {"lu": _lu_factor(kkt)}
            self._mode = method.value
        else:
            raise OptimumConfigurationError(
                "Could not solve the KKT equation with the given Hessian: "
                f"only dense or diagonal Hessians are supported, got {lhs.H.mode.value}."
            )

        logger.debug("Decomposed KKT matrix (n=%d, m=%d, mode=%s)", n, m, self._mode)
        self._result.time_decompose = time.perf_counter() - begin

    def solve(self, rhs: KktVector) -> KktSolution:
        """Solve the KKT equation with the last decomposed matrix."""
        if self._lhs is None:
            raise RuntimeError("decompose must be called before solve")
        begin = time.perf_counter()

        lhs = self._lhs
        a_mat = np.asarray(lhs.A, dtype=float)
        x = np.asarray(lhs.x, dtype=float).reshape(-1)
        z = np.asarray(lhs.z, dtype=float).reshape(-1)
        n = x.size
        rx = np.asarray(rhs.rx, dtype=float).reshape(-1)
        ry = np.asarray(rhs.ry, dtype=float).reshape(-1)
        rz = np.asarray(rhs.rz, dtype=float).reshape(-1)
        r1 = rx + _ratio(rz, x)

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            if self._mode == "diagonal":
                ipos = self._factors["ipos"]
                izero = self._factors["izero"]
                dinv = self._factors["dinv"]
                m = ry.size
                hr = dinv * r1[ipos]
                vec = np.concatenate([ry - a_mat[:, ipos] @ hr, -r1[izero]])
                sol = _lu_solve(self._factors["lu"], vec)
                dy = sol[:m]
                dx = np.zeros(n)
                dx[izero] = sol[m:]
                dx[ipos] = hr + dinv * (a_mat[:, ipos].T @ dy)
            elif self._mode == KktMethod.RANGESPACE.value:
                hr = _lu_solve(self._factors["hlu"], r1)
                dy = _lu_solve(self._factors["schur"], ry - a_mat @ hr)
                dx = hr + self._factors["hinv_at"] @ dy
            else:
                vec = np.concatenate([r1, ry])
                if self._mode == KktMethod.LSTSQ.value:
                    sol = self._lstsq(self._factors["matrix"], vec)
                else:
                    sol = _lu_solve(self._factors["lu"], vec)
                dx, dy = sol[:n], sol[n:]
            dz = _ratio(rz - z * dx, x)

        solution = KktSolution(dx=dx, dy=dy, dz=dz)
        self._result.succeeded = solution.is_finite()
        self._result.time_solve = time.perf_counter() - begin
        return solution

    @staticmethod
    def _lstsq(matrix: np.ndarray, vec: np.ndarray) -> np.ndarray:
        if matrix.size == 0:
            return np.zeros(vec.shape)
        if not np.all(np.isfinite(matrix)):
            return np.full(vec.shape, np.nan)
        sol, *_ = np.linalg.lstsq(matrix, vec, rcond=None)
        return sol


def kkt_residuals(problem: OptimumProblem, state: OptimumState) -> Dict[str, float]:
    """
    Compute infinity norms of the KKT residuals of ``state``.

    The objective is evaluated at ``state.x`` unless ``state.f`` already
    holds it.
    """

    x = np.asarray(state.x, dtype=float).reshape(-1)
    y = np.asarray(state.y, dtype=float).reshape(-1)
    z = np.asarray(state.z, dtype=float).reshape(-1)
    if y.size != problem.m:
        y = np.zeros(problem.m)
    if z.size != problem.n:
        z = np.zeros(problem.n)
    f = state.f if state.f is not None else problem.objective(x)
    grad = np.asarray(f.grad, dtype=float).reshape(-1)
    slack = x - problem.l

    return {
        "feasibility": norminf(problem.A @ x - problem.b),
        "optimality": norminf(grad - problem.A.T @ y - z),
        "bounds": norminf(np.minimum(slack, 0.0)),
        "dual_feasibility": norminf(np.minimum(z, 0.0)),
        "complementarity": norminf(slack * z),
    }


def is_kkt_optimal(
    problem: OptimumProblem, state: OptimumState, tol: float = 1e-6
) -> bool:
    """Return True if all KKT residuals of ``state`` are below ``tol``."""

    residuals = kkt_residuals(problem, state)
    return all(value <= tol for value in residuals.values())


__all__ = [
    "KktMatrix",
    "KktResult",
    "KktSolution",
    "KktSolver",
    "KktVector",
    "is_kkt_optimal",
    "kkt_residuals",
]
