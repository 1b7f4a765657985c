import numpy as np
import pytest

import chemopt.optimization.actnewton as actnewton_module
from chemopt.optimization import (
    ActiveSetIteration,
    Hessian,
    HessianMode,
    KktMethod,
    KktOptions,
    KktSolver,
    ObjectiveResult,
    OptimumConfigurationError,
    OptimumOptions,
    OptimumProblem,
    OptimumResult,
    OptimumSolverActNewton,
    OptimumState,
    is_kkt_optimal,
)
from chemopt.optimization.utils import norminf


def _sum_of_squares(mode: HessianMode = HessianMode.DENSE):
    def objective(x: np.ndarray) -> ObjectiveResult:
        if mode is HessianMode.DIAGONAL:
            hessian = Hessian.from_diagonal(2.0 * np.ones(x.size))
        else:
            hessian = Hessian.from_dense(2.0 * np.eye(x.size))
        return ObjectiveResult(val=float(x @ x), grad=2.0 * x, hessian=hessian)

    return objective


def _simplex_problem(mode: HessianMode = HessianMode.DENSE) -> OptimumProblem:
    return OptimumProblem(
        A=np.array([[1.0, 1.0]]),
        b=np.array([1.0]),
        l=np.zeros(2),
        objective=_sum_of_squares(mode),
    )


@pytest.mark.parametrize("mode", [HessianMode.DENSE, HessianMode.DIAGONAL])
def test_actnewton_bound_constrained_quadratic(mode):
    problem = _simplex_problem(mode)
    state = OptimumState(x=np.array([0.2, 0.8]))
    options = OptimumOptions()
    result = OptimumSolverActNewton().solve(problem, state, options)
    assert result.succeeded
    assert np.allclose(state.x, [0.5, 0.5], atol=1e-8)
    assert pytest.approx(1.0, abs=1e-8) == state.y[0]
    assert result.error < options.tolerance
    assert norminf(problem.A @ state.x - problem.b) < options.tolerance
    assert is_kkt_optimal(problem, state, tol=1e-8)


def test_actnewton_clamps_infeasible_start():
    problem = _simplex_problem(HessianMode.DIAGONAL)
    state = OptimumState(x=np.array([-1.0, -1.0]))
    result = OptimumSolverActNewton().solve(problem, state)
    assert result.succeeded
    assert np.allclose(state.x, [0.5, 0.5], atol=1e-8)
    assert pytest.approx(1.0, abs=1e-8) == state.y[0]


def test_actnewton_initialization_clamps_to_bounds():
    problem = _simplex_problem()
    state = OptimumState(x=np.array([-1.0, -1.0]))
    iteration = ActiveSetIteration(problem, state, KktSolver(), OptimumResult())
    assert np.array_equal(state.x, [0.0, 0.0])
    free, bound = iteration.partition()
    assert free == []
    assert bound == [0, 1]
    assert state.y.shape == (1,)
    assert state.z.shape == (2,)


def test_actnewton_sizes_empty_state():
    problem = _simplex_problem()
    state = OptimumState()
    result = OptimumSolverActNewton().solve(problem, state)
    assert result.succeeded
    assert state.x.shape == (2,)
    assert np.allclose(state.x, [0.5, 0.5], atol=1e-8)


def test_actnewton_resolve_from_converged_state_is_idempotent():
    problem = _simplex_problem()
    state = OptimumState(x=np.array([0.9, 0.1]))
    solver = OptimumSolverActNewton()
    first = solver.solve(problem, state)
    assert first.succeeded
    x_first = state.x.copy()
    second = solver.solve(problem, state)
    assert second.succeeded
    assert second.iterations <= 1
    assert np.allclose(state.x, x_first, atol=1e-10)


def test_actnewton_non_finite_gradient_fails_on_first_iteration():
    def objective(x: np.ndarray) -> ObjectiveResult:
        return ObjectiveResult(
            val=0.0,
            grad=np.full(x.size, np.nan),
            hessian=Hessian.from_dense(np.eye(x.size)),
        )

    problem = OptimumProblem(A=[[1.0, 1.0]], b=[1.0], l=[0.0, 0.0], objective=objective)
    result = OptimumSolverActNewton().solve(problem, OptimumState(x=[0.3, 0.7]))
    assert not result.succeeded
    assert result.iterations == 1
    assert "non-finite" in result.message


def test_actnewton_zero_iteration_cap_computes_no_step(monkeypatch):
    calls = []
    original = ActiveSetIteration.compute_newton_step

    def spy(self):
        calls.append(1)
        return original(self)

    monkeypatch.setattr(ActiveSetIteration, "compute_newton_step", spy)
    problem = _simplex_problem()
    state = OptimumState(x=np.array([0.2, 0.8]))
    result = OptimumSolverActNewton().solve(problem, state, OptimumOptions(max_iterations=0))
    assert not result.succeeded
    assert result.iterations == 0
    assert calls == []
    assert np.array_equal(state.x, [0.2, 0.8])


def test_actnewton_iteration_cap_reports_failure():
    problem = _simplex_problem()
    state = OptimumState(x=np.array([-1.0, -1.0]))
    result = OptimumSolverActNewton().solve(problem, state, OptimumOptions(max_iterations=1))
    assert not result.succeeded
    assert result.iterations == 1
    assert result.message == "Maximum number of iterations reached"


def test_actnewton_unsupported_hessian_is_configuration_error():
    def objective(x: np.ndarray) -> ObjectiveResult:
        return ObjectiveResult(
            val=float(x @ x),
            grad=2.0 * x,
            hessian=Hessian(mode=HessianMode.INVERSE, inverse=0.5 * np.eye(x.size)),
        )

    problem = OptimumProblem(A=[[1.0, 1.0]], b=[1.0], l=[0.0, 0.0], objective=objective)
    with pytest.raises(OptimumConfigurationError):
        OptimumSolverActNewton().solve(problem, OptimumState(x=[0.2, 0.8]))


def test_actnewton_unsupported_hessian_raises_without_iterations():
    def objective(x: np.ndarray) -> ObjectiveResult:
        return ObjectiveResult(
            val=float(x @ x),
            grad=2.0 * x,
            hessian=Hessian(mode=HessianMode.INVERSE, inverse=0.5 * np.eye(x.size)),
        )

    problem = OptimumProblem(A=[[1.0, 1.0]], b=[1.0], l=[0.0, 0.0], objective=objective)
    with pytest.raises(OptimumConfigurationError):
        OptimumSolverActNewton().solve(
            problem, OptimumState(x=[0.2, 0.8]), OptimumOptions(max_iterations=0)
        )


def test_actnewton_unsupported_hessian_raises_before_finiteness_check():
    def objective(x: np.ndarray) -> ObjectiveResult:
        return ObjectiveResult(
            val=0.0,
            grad=np.full(x.size, np.nan),
            hessian=Hessian(mode=HessianMode.INVERSE, inverse=np.eye(x.size)),
        )

    problem = OptimumProblem(A=[[1.0, 1.0]], b=[1.0], l=[0.0, 0.0], objective=objective)
    with pytest.raises(OptimumConfigurationError):
        OptimumSolverActNewton().solve(problem, OptimumState(x=[0.3, 0.7]))


@pytest.mark.parametrize("mode", [HessianMode.DENSE, HessianMode.DIAGONAL])
def test_actnewton_zero_hessian_entry(mode):
    # minimize x1^2 subject to x0 + x1 = 1, x >= 0; x0 enters linearly
    def objective(x: np.ndarray) -> ObjectiveResult:
        diag = np.array([0.0, 2.0])
        if mode is HessianMode.DIAGONAL:
            hessian = Hessian.from_diagonal(diag)
        else:
            hessian = Hessian.from_dense(np.diag(diag))
        grad = np.array([0.0, 2.0 * x[1]])
        return ObjectiveResult(val=float(x[1] ** 2), grad=grad, hessian=hessian)

    problem = OptimumProblem(A=[[1.0, 1.0]], b=[1.0], l=[0.0, 0.0], objective=objective)
    state = OptimumState(x=[0.5, 0.5])
    result = OptimumSolverActNewton().solve(problem, state)
    assert result.succeeded
    assert np.allclose(state.x, [1.0, 0.0], atol=1e-10)


def test_actnewton_singular_step_reports_failure():
    # Linear objective with two free variables and one constraint: singular KKT matrix
    cost = np.array([1.0, 2.0])

    def objective(x: np.ndarray) -> ObjectiveResult:
        return ObjectiveResult(
            val=float(cost @ x),
            grad=cost.copy(),
            hessian=Hessian.from_diagonal(np.zeros(x.size)),
        )

    problem = OptimumProblem(A=[[1.0, 1.0]], b=[2.0], l=[0.0, 0.0], objective=objective)
    result = OptimumSolverActNewton().solve(problem, OptimumState(x=[0.5, 0.5]))
    assert not result.succeeded
    assert result.message == "Newton step has non-finite entries"


def test_actnewton_active_bound_at_solution():
    # minimize (x0 - 2)^2 + (x1 + 1)^2 subject to x0 + x1 = 1, x >= 0
    target = np.array([2.0, -1.0])

    def objective(x: np.ndarray) -> ObjectiveResult:
        diff = x - target
        return ObjectiveResult(
            val=float(diff @ diff),
            grad=2.0 * diff,
            hessian=Hessian.from_diagonal(2.0 * np.ones(2)),
        )

    problem = OptimumProblem(A=[[1.0, 1.0]], b=[1.0], l=[0.0, 0.0], objective=objective)
    state = OptimumState(x=[0.5, 0.5])
    result = OptimumSolverActNewton().solve(problem, state)
    assert result.succeeded
    assert np.allclose(state.x, [1.0, 0.0], atol=1e-8)
    assert state.x[1] == 0.0
    # Positive bound multiplier on the active variable
    assert state.z[1] > 0.0
    assert is_kkt_optimal(problem, state, tol=1e-8)


@pytest.mark.parametrize("method", list(KktMethod))
def test_actnewton_kkt_methods_agree(method):
    problem = _simplex_problem()
    state = OptimumState(x=np.array([0.7, 0.3]))
    options = OptimumOptions(kkt=KktOptions(method=method))
    result = OptimumSolverActNewton().solve(problem, state, options)
    assert result.succeeded
    assert np.allclose(state.x, [0.5, 0.5], atol=1e-8)


def test_actnewton_accumulates_linear_system_time():
    problem = _simplex_problem()
    state = OptimumState(x=np.array([0.7, 0.3]))
    result = OptimumSolverActNewton().solve(problem, state)
    assert result.time_linear_systems >= 0.0
    assert result.time >= result.time_linear_systems


def test_actnewton_partition_invariant_at_every_iteration():
    # Quadratic with a bound that becomes active during the iterations
    target = np.array([2.0, -1.0, 1.0])

    def objective(x: np.ndarray) -> ObjectiveResult:
        diff = x - target
        return ObjectiveResult(
            val=float(diff @ diff),
            grad=2.0 * diff,
            hessian=Hessian.from_dense(2.0 * np.eye(3)),
        )

    problem = OptimumProblem(
        A=[[1.0, 1.0, 1.0]], b=[1.5], l=[0.0, 0.0, 0.0], objective=objective
    )
    state = OptimumState(x=[0.5, 0.5, 0.5])
    result = OptimumResult()
    iteration = ActiveSetIteration(problem, state, KktSolver(), result)

    def check_partition():
        free, bound = iteration.partition()
        assert set(free).isdisjoint(bound)
        assert sorted(free + bound) == list(range(problem.n))
        for i in bound:
            assert state.x[i] == problem.l[i]

    assert iteration.update_state()
    check_partition()
    for _ in range(20):
        assert iteration.compute_newton_step()
        iteration.update_iterates()
        assert iteration.update_state()
        check_partition()
        iteration.update_errors()
        if iteration.converged(1e-10):
            break
    assert result.succeeded
    assert np.allclose(state.x, [1.25, 0.0, 0.25], atol=1e-8)


def test_actnewton_pricing_releases_most_negative_multiplier():
    # Linear gradient with all variables at their bounds: only the variable
    # with the most negative multiplier is released.
    grad = np.array([-1.0, -3.0, -2.0])

    def objective(x: np.ndarray) -> ObjectiveResult:
        return ObjectiveResult(
            val=float(grad @ x),
            grad=grad.copy(),
            hessian=Hessian.from_diagonal(np.ones(3)),
        )

    problem = OptimumProblem(
        A=np.zeros((0, 3)), b=np.zeros(0), l=np.zeros(3), objective=objective
    )
    state = OptimumState(x=np.zeros(3))
    iteration = ActiveSetIteration(problem, state, KktSolver(), OptimumResult())
    assert iteration.update_state()
    free, bound = iteration.partition()
    assert free == [1]
    assert sorted(bound) == [0, 2]


def test_actnewton_pricing_breaks_ties_by_first_occurrence():
    grad = np.array([-2.0, -2.0])

    def objective(x: np.ndarray) -> ObjectiveResult:
        return ObjectiveResult(
            val=float(grad @ x),
            grad=grad.copy(),
            hessian=Hessian.from_diagonal(np.ones(2)),
        )

    problem = OptimumProblem(
        A=np.zeros((0, 2)), b=np.zeros(0), l=np.zeros(2), objective=objective
    )
    iteration = ActiveSetIteration(
        problem, OptimumState(x=np.zeros(2)), KktSolver(), OptimumResult()
    )
    assert iteration.update_state()
    free, _ = iteration.partition()
    assert free == [0]


def test_actnewton_bootstraps_zero_multipliers_by_least_squares():
    problem = _simplex_problem()
    state = OptimumState(x=np.array([0.2, 0.8]), y=np.zeros(1))
    iteration = ActiveSetIteration(problem, state, KktSolver(), OptimumResult())
    assert iteration.update_state()
    # Least-squares solution of [1, 1]^T y = [0.4, 1.6]
    assert pytest.approx(1.0) == state.y[0]


def test_actnewton_keeps_nonzero_multipliers():
    problem = _simplex_problem()
    state = OptimumState(x=np.array([0.2, 0.8]), y=np.array([3.0]))
    iteration = ActiveSetIteration(problem, state, KktSolver(), OptimumResult())
    assert iteration.update_state()
    assert state.y[0] == 3.0


def test_actnewton_limiting_variable_is_pinned():
    problem = _simplex_problem()
    state = OptimumState(x=np.array([0.2, 0.8]))
    iteration = ActiveSetIteration(problem, state, KktSolver(), OptimumResult())
    # Hand-made step that drives x0 exactly to its bound
    iteration.update_state()
    iteration.sol = actnewton_module.KktSolution(
        dx=np.array([-0.4, 0.4]), dy=np.zeros(1), dz=np.zeros(2)
    )
    iteration.update_iterates()
    free, bound = iteration.partition()
    assert bound == [0]
    assert free == [1]
    assert iteration.alpha == pytest.approx(0.5)


def test_actnewton_independent_states_do_not_alias():
    problem = _simplex_problem()
    solver = OptimumSolverActNewton()
    state_a = OptimumState(x=np.array([0.2, 0.8]))
    state_b = state_a.copy()
    solver.solve(problem, state_a)
    assert np.array_equal(state_b.x, [0.2, 0.8])
    clone = solver.clone()
    result = clone.solve(problem, state_b)
    assert result.succeeded
    assert np.allclose(state_a.x, state_b.x)


def test_actnewton_ideal_mixture_equilibrium():
    # A = B with equilibrium constant K: x_B / x_A = K at equilibrium
    K = 2.0
    g0 = np.array([0.0, -np.log(K)])

    def gibbs(n: np.ndarray) -> ObjectiveResult:
        total = n.sum()
        mu = g0 + np.log(n / total)
        hessian = np.diag(1.0 / n) - 1.0 / total
        return ObjectiveResult(val=float(n @ mu), grad=mu, hessian=Hessian.from_dense(hessian))

    problem = OptimumProblem(A=[[1.0, 1.0]], b=[1.0], l=[1e-10, 1e-10], objective=gibbs)
    state = OptimumState(x=[0.5, 0.5])
    result = OptimumSolverActNewton().solve(problem, state, OptimumOptions(tolerance=1e-10))
    assert result.succeeded
    assert np.allclose(state.x, [1.0 / 3.0, 2.0 / 3.0], atol=1e-8)
    assert pytest.approx(np.log(1.0 / 3.0), abs=1e-8) == state.y[0]


def test_actnewton_output_table(capsys):
    from chemopt.optimization import OutputterOptions

    problem = _simplex_problem()
    options = OptimumOptions(output=OutputterOptions(active=True, xnames=["A", "B"]))
    result = OptimumSolverActNewton().solve(problem, OptimumState(x=[0.2, 0.8]), options)
    assert result.succeeded
    out = capsys.readouterr().out
    assert "iter" in out
    assert "A" in out and "B" in out
    assert "y[0]" in out
    assert "errorf" in out
    assert "---" in out


def test_actnewton_regularization_option_still_converges():
    problem = _simplex_problem()
    state = OptimumState(x=np.array([0.4, 0.6]))
    result = OptimumSolverActNewton().solve(
        problem, state, OptimumOptions(regularization=1e-8, tolerance=1e-6)
    )
    assert result.succeeded
    assert np.allclose(state.x, [0.5, 0.5], atol=1e-6)
