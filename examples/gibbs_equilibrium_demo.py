"""
Example: Gibbs energy minimization with chemopt

This example computes the equilibrium composition of water vapour partially
dissociated at high temperature,

    H2O = H2 + 1/2 O2

by minimizing the dimensionless Gibbs energy of an ideal gas mixture

    G/RT = sum_i n_i * (g_i + ln(n_i / N) + ln(P))

subject to the conservation of the elements H and O. The standard Gibbs
energies ``g_i`` (divided by RT) are fixed numbers here; in a complete
toolkit they come from a thermodynamic database.
"""

import numpy as np

from chemopt import (
    Hessian,
    ObjectiveResult,
    OptimumOptions,
    OptimumProblem,
    OptimumSolver,
    OptimumState,
    OutputterOptions,
    kkt_residuals,
)

SPECIES = ["H2O", "H2", "O2"]
ELEMENTS = ["H", "O"]

# Formula matrix: rows are elements, columns are species
FORMULA = np.array(
    [
        [2.0, 2.0, 0.0],
        [1.0, 0.0, 2.0],
    ]
)

# Standard Gibbs energies of formation divided by RT at 3000 K
G0 = np.array([-3.095, 0.0, 0.0])
PRESSURE = 1.0  # bar


def gibbs_energy(n: np.ndarray) -> ObjectiveResult:
    """Dimensionless Gibbs energy of an ideal gas mixture."""
    total = n.sum()
    mu = G0 + np.log(n / total) + np.log(PRESSURE)
    hessian = np.diag(1.0 / n) - 1.0 / total
    return ObjectiveResult(val=float(n @ mu), grad=mu, hessian=Hessian.from_dense(hessian))


def example_water_dissociation():
    """Example: equilibrium of one mole of water vapour."""
    print("=" * 60)
    print("Example 1: Water dissociation at 3000 K")
    print("=" * 60)

    initial = np.array([1.0, 0.0, 0.0])
    problem = OptimumProblem(
        A=FORMULA,
        b=FORMULA @ initial,
        l=np.full(len(SPECIES), 1e-12),
        objective=gibbs_energy,
    )

    # A rough guess consistent with the element amounts
    state = OptimumState(x=[0.9, 0.1, 0.05])
    result = OptimumSolver("actnewton").solve(problem, state, OptimumOptions(tolerance=1e-10))

    print(f"Converged: {result.succeeded}")
    print(f"Iterations: {result.iterations}")
    print(f"Error: {result.error:.2e}")
    print("Equilibrium composition (mol):")
    for name, amount in zip(SPECIES, state.x):
        print(f"  {name:>4}: {amount:.6f}")
    print("Element potentials (RT units):")
    for name, potential in zip(ELEMENTS, state.y):
        print(f"  {name:>4}: {potential:.6f}")

    residuals = kkt_residuals(problem, state)
    print(f"Mass balance residual: {residuals['feasibility']:.2e}")
    print()


def example_iteration_table():
    """Example: print the iteration table of a small problem."""
    print("=" * 60)
    print("Example 2: Iteration table")
    print("=" * 60)

    def objective(x):
        return ObjectiveResult(val=float(x @ x), grad=2 * x, hessian=Hessian.from_diagonal(2 * np.ones(2)))

    problem = OptimumProblem(A=[[1.0, 1.0]], b=[1.0], l=[0.0, 0.0], objective=objective)
    options = OptimumOptions(output=OutputterOptions(active=True, width=10, precision=4))
    OptimumSolver().solve(problem, OptimumState(x=[-1.0, -1.0]), options)
    print()


if __name__ == "__main__":
    example_water_dissociation()
    example_iteration_table()
