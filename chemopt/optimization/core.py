"""
Problem, state and result containers for the optimization layer.

Chemical equilibrium is posed as the minimization of the Gibbs energy of the
system subject to mass balance and non-negative amounts:

```
    minimize    f(x)
    subject to  A x = b
                x >= l
```

The domain layer supplies ``f`` as a callback returning an
:class:`ObjectiveResult` with value, gradient and a :class:`Hessian`
descriptor. The solvers in this subpackage only interact with that callback
and with the matrices bundled in :class:`OptimumProblem`.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

import numpy as np


class OptimumConfigurationError(RuntimeError):
    """Raised when a problem cannot be solved with the chosen configuration.

    Unlike numerical failures, which are reported through
    :attr:`OptimumResult.succeeded`, this error signals input the solver
    can never handle, such as an unsupported Hessian mode.
    """


class HessianMode(Enum):
    """Representation of the Hessian returned by an objective callback."""

    DENSE = "dense"
    DIAGONAL = "diagonal"
    INVERSE = "inverse"


@dataclass
class Hessian:
    """
    Hessian descriptor of an objective function.

    Only the field matching :attr:`mode` is meaningful: ``dense`` holds the
    full matrix, ``diagonal`` holds the diagonal entries and ``inverse``
    holds an approximation of the inverse matrix.
    """

    mode: HessianMode = HessianMode.DENSE
    dense: Optional[np.ndarray] = None
    diagonal: Optional[np.ndarray] = None
    inverse: Optional[np.ndarray] = None

    @classmethod
    def from_dense(cls, matrix: np.ndarray) -> "Hessian":
        return cls(mode=HessianMode.DENSE, dense=np.asarray(matrix, dtype=float))

    @classmethod
    def from_diagonal(cls, vector: np.ndarray) -> "Hessian":
        return cls(
            mode=HessianMode.DIAGONAL,
            diagonal=np.asarray(vector, dtype=float).reshape(-1),
        )


@dataclass
class ObjectiveResult:
    """Value, gradient and Hessian of an objective at a point."""

    val: float
    grad: np.ndarray
    hessian: Hessian = field(default_factory=Hessian)


Objective = Callable[[np.ndarray], ObjectiveResult]


@dataclass(frozen=True)
class OptimumProblem:
    """
    Immutable description of an equality and bound constrained problem.

    Attributes:
        A: Constraint matrix of shape ``(m, n)``.
        b: Right-hand side of the equality constraints (size ``m``).
        l: Lower bounds of the variables (size ``n``).
        objective: Callback mapping a point ``x`` to an
            :class:`ObjectiveResult`.
    """

    A: np.ndarray
    b: np.ndarray
    l: np.ndarray
    objective: Objective

    def __post_init__(self) -> None:
        a_mat = np.atleast_2d(np.asarray(self.A, dtype=float))
        b_vec = np.asarray(self.b, dtype=float).reshape(-1)
        l_vec = np.asarray(self.l, dtype=float).reshape(-1)
        if a_mat.ndim != 2:
            raise ValueError("Constraint matrix A must be two-dimensional")
        if a_mat.shape[1] != l_vec.shape[0]:
            raise ValueError(
                f"A has {a_mat.shape[1]} columns but l has {l_vec.shape[0]} entries"
            )
        if a_mat.shape[0] != b_vec.shape[0]:
            raise ValueError(
                f"A has {a_mat.shape[0]} rows but b has {b_vec.shape[0]} entries"
            )
        if not callable(self.objective):
            raise ValueError("objective must be callable")
        object.__setattr__(self, "A", a_mat)
        object.__setattr__(self, "b", b_vec)
        object.__setattr__(self, "l", l_vec)

    @property
    def n(self) -> int:
        """Number of variables."""
        return self.A.shape[1]

    @property
    def m(self) -> int:
        """Number of equality constraints."""
        return self.A.shape[0]


@dataclass
class OptimumState:
    """
    Mutable iterate of an optimization calculation.

    The state is owned by the caller and updated in place by every solve, so
    a converged state can seed the next calculation. Use :meth:`copy` to
    keep independent states for independent solves.

    Attributes:
        x: Primal variables.
        y: Lagrange multipliers of the equality constraints.
        z: Lagrange multipliers of the lower bounds.
        f: Objective evaluated at the last iterate (None before a solve).
    """

    x: np.ndarray = field(default_factory=lambda: np.zeros(0))
    y: np.ndarray = field(default_factory=lambda: np.zeros(0))
    z: np.ndarray = field(default_factory=lambda: np.zeros(0))
    f: Optional[ObjectiveResult] = None

    def __post_init__(self) -> None:
        self.x = np.array(self.x, dtype=float).reshape(-1)
        self.y = np.array(self.y, dtype=float).reshape(-1)
        self.z = np.array(self.z, dtype=float).reshape(-1)

    def copy(self) -> "OptimumState":
        """Return a deep copy that shares no arrays with this state."""
        return copy.deepcopy(self)


@dataclass
class OptimumResult:
    """
    Outcome of a single solve.

    Attributes:
        succeeded: True when the error dropped below the tolerance.
        iterations: Number of iterations performed. A calculation stopped by
            the iteration cap reports exactly ``max_iterations``.
        error: Last computed error norm (``inf`` when never computed).
        time: Wall time spent in the solve, in seconds.
        time_linear_systems: Time spent decomposing and solving linear
            systems, in seconds.
        message: Human-readable explanation of the exit.
    """

    succeeded: bool = False
    iterations: int = 0
    error: float = float("inf")
    time: float = 0.0
    time_linear_systems: float = 0.0
    message: str = ""


__all__ = [
    "Hessian",
    "HessianMode",
    "Objective",
    "ObjectiveResult",
    "OptimumConfigurationError",
    "OptimumProblem",
    "OptimumResult",
    "OptimumState",
]
