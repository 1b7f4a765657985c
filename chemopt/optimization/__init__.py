"""
Optimization layer of chemopt.

This subpackage implements the numerical core used to minimize the Gibbs
energy of chemical systems: an active-set Newton solver operating on KKT
systems, a two-phase simplex method for linearized problems, and the
supporting problem, state, option and diagnostic types.

Example
-------
>>> import numpy as np
>>> from chemopt.optimization import (
...     Hessian, ObjectiveResult, OptimumProblem, OptimumSolver, OptimumState)
>>> def objective(x):
...     return ObjectiveResult(x @ x, 2 * x, Hessian.from_dense(2 * np.eye(2)))
>>> problem = OptimumProblem(A=[[1.0, 1.0]], b=[1.0], l=[0.0, 0.0], objective=objective)
>>> state = OptimumState()
>>> result = OptimumSolver().solve(problem, state)
>>> result.succeeded, np.round(state.x, 6)
(True, array([0.5, 0.5]))
"""

from . import actnewton, core, kkt, options, outputter, regularization, simplex, solver, utils
from .actnewton import ActiveSetIteration, OptimumSolverActNewton
from .core import (
    Hessian,
    HessianMode,
    Objective,
    ObjectiveResult,
    OptimumConfigurationError,
    OptimumProblem,
    OptimumResult,
    OptimumState,
)
from .kkt import (
    KktMatrix,
    KktResult,
    KktSolution,
    KktSolver,
    KktVector,
    is_kkt_optimal,
    kkt_residuals,
)
from .options import KktMethod, KktOptions, OptimumOptions, OutputterOptions
from .outputter import Outputter
from .regularization import regularized, scaling_factors
from .simplex import OptimumSolverSimplex, SimplexStatus
from .solver import OptimumMethod, OptimumSolver
from .utils import fraction_to_the_boundary, multi_kahan_sum, norminf

__all__ = [
    "actnewton",
    "core",
    "kkt",
    "options",
    "outputter",
    "regularization",
    "simplex",
    "solver",
    "utils",
    # Core types
    "Hessian",
    "HessianMode",
    "Objective",
    "ObjectiveResult",
    "OptimumConfigurationError",
    "OptimumProblem",
    "OptimumResult",
    "OptimumState",
    # Options
    "KktMethod",
    "KktOptions",
    "OptimumOptions",
    "OutputterOptions",
    # KKT systems
    "KktMatrix",
    "KktResult",
    "KktSolution",
    "KktSolver",
    "KktVector",
    "is_kkt_optimal",
    "kkt_residuals",
    # Solvers
    "ActiveSetIteration",
    "OptimumMethod",
    "OptimumSolver",
    "OptimumSolverActNewton",
    "OptimumSolverSimplex",
    "SimplexStatus",
    # Helpers
    "Outputter",
    "fraction_to_the_boundary",
    "multi_kahan_sum",
    "norminf",
    "regularized",
    "scaling_factors",
]
