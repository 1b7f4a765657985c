"""chemopt - the constrained optimization core of a chemical equilibrium toolkit."""

__version__ = "0.1.0"

from .logging import configure_logging, get_logger, set_log_level

# Optimization layer
from .optimization import (
    ActiveSetIteration,
    Hessian,
    HessianMode,
    KktMethod,
    KktOptions,
    KktSolver,
    ObjectiveResult,
    OptimumConfigurationError,
    OptimumMethod,
    OptimumOptions,
    OptimumProblem,
    OptimumResult,
    OptimumSolver,
    OptimumSolverActNewton,
    OptimumSolverSimplex,
    OptimumState,
    Outputter,
    OutputterOptions,
    is_kkt_optimal,
    kkt_residuals,
    regularized,
)

__all__ = [
    "__version__",
    # Logging
    "configure_logging",
    "get_logger",
    "set_log_level",
    # Problem definition
    "Hessian",
    "HessianMode",
    "ObjectiveResult",
    "OptimumProblem",
    "OptimumState",
    "OptimumResult",
    "OptimumConfigurationError",
    # Options
    "KktMethod",
    "KktOptions",
    "OptimumOptions",
    "OutputterOptions",
    # Solvers
    "ActiveSetIteration",
    "KktSolver",
    "OptimumMethod",
    "OptimumSolver",
    "OptimumSolverActNewton",
    "OptimumSolverSimplex",
    # Diagnostics
    "Outputter",
    "is_kkt_optimal",
    "kkt_residuals",
    "regularized",
]
