"""Configuration dataclasses for the optimization solvers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class KktMethod(Enum):
    """Factorization strategy of the KKT solver for dense Hessians."""

    PARTIAL_PIV_LU = "partial_piv_lu"
    LSTSQ = "lstsq"
    RANGESPACE = "rangespace"


@dataclass
class KktOptions:
    """Options forwarded to :class:`~chemopt.optimization.kkt.KktSolver`.

    Diagonal Hessians always use the diagonal Schur-complement path, so
    ``method`` only matters for dense Hessians.
    """

    method: KktMethod = KktMethod.PARTIAL_PIV_LU

    def __post_init__(self) -> None:
        self.method = KktMethod(self.method)


@dataclass
class OutputterOptions:
    """
    Formatting of the per-iteration diagnostic table.

    Attributes:
        active: Print the table when True.
        width: Minimum width of each column; longer cells are not cut.
        precision: Number of digits printed for floats.
        scientific: Print floats in scientific notation.
        fixed: Print floats in fixed-point notation.
        separator: String placed between columns.
        xprefix, yprefix, zprefix: Prefixes of the column labels of the
            primal, equality dual and bound dual variables.
        xnames, ynames, znames: Optional explicit column labels replacing
            the ``prefix[i]`` labels.
    """

    active: bool = False
    width: int = 15
    precision: int = 6
    scientific: bool = False
    fixed: bool = False
    separator: str = "|"
    xprefix: str = "x"
    yprefix: str = "y"
    zprefix: str = "z"
    xnames: Optional[List[str]] = None
    ynames: Optional[List[str]] = None
    znames: Optional[List[str]] = None

    def __post_init__(self) -> None:
        if self.width <= 0:
            raise ValueError("width must be positive")
        if self.precision < 0:
            raise ValueError("precision must be non-negative")


@dataclass
class OptimumOptions:
    """
    Options of an optimization calculation.

    Attributes:
        tolerance: Convergence threshold on the maximum of the feasibility
            and optimality errors.
        max_iterations: Maximum number of Newton iterations.
        regularization: Weight ``rho`` of the convex regularization term
            added by :func:`~chemopt.optimization.regularization.regularized`;
            zero disables it.
        kkt: Options of the KKT linear-system solver.
        output: Options of the diagnostic table.
    """

    tolerance: float = 1e-6
    max_iterations: int = 200
    regularization: float = 0.0
    kkt: KktOptions = field(default_factory=KktOptions)
    output: OutputterOptions = field(default_factory=OutputterOptions)

    def __post_init__(self) -> None:
        if not self.tolerance > 0.0:
            raise ValueError("tolerance must be positive")
        if self.max_iterations < 0:
            raise ValueError("max_iterations must be non-negative")
        if self.regularization < 0.0:
            raise ValueError("regularization must be non-negative")


__all__ = ["KktMethod", "KktOptions", "OptimumOptions", "OutputterOptions"]
