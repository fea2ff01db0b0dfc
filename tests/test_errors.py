import dataclasses
import math

import numpy as np
import pytest

from downhill import (
    BFGS,
    DescentError,
    DimensionMismatch,
    DomainError,
    NonDescentDirectionError,
    SolverConfig,
    SteepestDescent,
    along_ray,
    optimize,
    solver,
)
from objectives import rosenbrock_fdf


def barrier(x):
    """``f(x) = x - log(x)``, defined for ``x > 0``, minimum at ``x = 1``."""
    if np.any(x <= 0):
        raise DomainError(f"log undefined at {x}")
    return float(np.sum(x - np.log(x))), 1 - 1 / x


def test_error_taxonomy():
    assert issubclass(DimensionMismatch, DescentError)
    assert issubclass(DimensionMismatch, ValueError)
    assert issubclass(NonDescentDirectionError, ValueError)
    assert issubclass(DomainError, ArithmeticError)


def test_dimension_mismatch_at_init():
    with pytest.raises(DimensionMismatch):
        optimize(rosenbrock_fdf, BFGS(np.zeros(3)), np.zeros(2))


def test_dimension_mismatch_from_gradient():
    def bad(x, alpha, d):
        return 0.0, np.zeros(len(x) + 1)

    with pytest.raises(DimensionMismatch):
        optimize(bad, SteepestDescent, np.zeros(2))


def test_constructor_requires_vector():
    with pytest.raises(DimensionMismatch):
        BFGS(np.zeros((2, 2)))


@pytest.mark.parametrize("method", (SteepestDescent, BFGS))
def test_domain_errors_degrade_to_finite_steps(method):
    x0 = np.array([3.0])
    res = optimize(along_ray(barrier), method, x0, maxiter=200)
    assert np.all(np.isfinite(res.argument))
    assert res.converged
    assert res.argument == pytest.approx([1.0], abs=1e-5)


def test_domain_error_at_starting_point_propagates():
    with pytest.raises(DomainError):
        optimize(along_ray(barrier), SteepestDescent, np.array([-1.0]))


def test_unknown_method_type():
    with pytest.raises(TypeError):
        optimize(rosenbrock_fdf, "bfgs", np.zeros(2))
    with pytest.raises(TypeError):
        solver(dict, np.zeros(2))


def test_solver_class_requires_argument():
    with pytest.raises(ValueError):
        solver(BFGS)


def test_solver_config_validation():
    with pytest.raises(TypeError):
        SolverConfig(maxiter=1.5)
    with pytest.raises(TypeError):
        SolverConfig(maxcalls=True)
    with pytest.raises(TypeError):
        SolverConfig(convcond=3)
    with pytest.raises(TypeError):
        SolverConfig(constrain_step="inf")
    with pytest.raises(ValueError):
        SolverConfig(gtol=math.nan)


def test_solver_config_is_frozen():
    config = SolverConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.gtol = 1.0
    assert config.iter_limit == 100
    assert config.call_limit == math.inf


def test_limits_never_raise():
    res = optimize(rosenbrock_fdf, SteepestDescent, np.array([-1.0, -1.0]), maxiter=1)
    assert not res.converged
    assert res.iterations == 1
