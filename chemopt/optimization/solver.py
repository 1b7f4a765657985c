"""Method selection for optimization calculations."""

from __future__ import annotations

import copy
from enum import Enum
from typing import Optional, Union

from .actnewton import OptimumSolverActNewton
from .core import OptimumProblem, OptimumResult, OptimumState
from .options import OptimumOptions
from .simplex import OptimumSolverSimplex


class OptimumMethod(Enum):
    """Available optimization methods."""

    ACTNEWTON = "actnewton"
    SIMPLEX = "simplex"


_SOLVERS = {
    OptimumMethod.ACTNEWTON: OptimumSolverActNewton,
    OptimumMethod.SIMPLEX: OptimumSolverSimplex,
}


class OptimumSolver:
    """
    Solve optimization problems with a chosen method.

    Example:
        >>> from chemopt.optimization import OptimumMethod, OptimumSolver
        >>> solver = OptimumSolver("simplex")
        >>> solver.method
        <OptimumMethod.SIMPLEX: 'simplex'>
    """

    def __init__(self, method: Union[OptimumMethod, str] = OptimumMethod.ACTNEWTON) -> None:
        self.set_method(method)

    def set_method(self, method: Union[OptimumMethod, str]) -> None:
        self.method = OptimumMethod(method)
        self._solver = _SOLVERS[self.method]()

    def solve(
        self,
        problem: OptimumProblem,
        state: OptimumState,
        options: Optional[OptimumOptions] = None,
    ) -> OptimumResult:
        """Solve ``problem`` from ``state`` with the selected method."""
        return self._solver.solve(problem, state, options)

    def clone(self) -> "OptimumSolver":
        return copy.deepcopy(self)


__all__ = ["OptimumMethod", "OptimumSolver"]
