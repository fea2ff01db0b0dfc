import math

import numpy as np
import pytest

from downhill import (
    BFGS,
    CGDescent,
    CholBFGS,
    FixedRateDescent,
    HyperGradDescent,
    MomentumDescent,
    NesterovMomentum,
    SteepestDescent,
    optimize,
)
from objectives import quadratic, rosenbrock_fdf

METHODS = (
    SteepestDescent,
    CGDescent,
    BFGS,
    CholBFGS,
    HyperGradDescent,
    MomentumDescent,
    NesterovMomentum,
)


def unconstrained(x0, d):
    return math.inf


def small_step(x, xpre, y, ypre, g):
    return np.linalg.norm(x - xpre) <= 1e-6


def flat(x, xpre, y, ypre, g):
    return abs(y - ypre) <= 1000 * np.finfo(float).eps


@pytest.mark.parametrize("method", METHODS)
@pytest.mark.parametrize("convcond", [None, small_step, flat], ids=["gradient", "step", "value"])
def test_rosenbrock_minimum(method, convcond):
    x0 = np.array([-1.0, -1.0])
    res = optimize(
        rosenbrock_fdf,
        method,
        x0,
        maxiter=1000,
        constrain_step=unconstrained,
        convcond=convcond,
    )
    assert np.allclose(res.argument, np.ones(2), rtol=0.05)
    if method is not SteepestDescent:
        assert res.converged


@pytest.mark.parametrize("method", (CGDescent, BFGS, CholBFGS))
def test_rosenbrock_gradient_tolerance_reached(method):
    x0 = np.array([-1.0, -1.0])
    res = optimize(rosenbrock_fdf, method, x0, maxiter=1000, constrain_step=unconstrained)
    assert res.converged
    assert np.linalg.norm(res.gradient) <= 1e-6


def test_result_reports_counts_and_value():
    x0 = np.array([-1.0, -1.0])
    res = optimize(rosenbrock_fdf, BFGS, x0, maxiter=1000, maxcalls=-1)
    assert 0 < res.iterations <= 1000
    assert res.calls > res.iterations
    assert res.fun == pytest.approx(0.0, abs=1e-10)


A = np.diag([1.0, 3.0])
B = np.array([1.0, 1.0])
X_MIN = np.linalg.solve(A, B)


@pytest.mark.parametrize(
    "make",
    [
        lambda x: FixedRateDescent(x, alpha=0.1),
        lambda x: MomentumDescent(x),
        lambda x: NesterovMomentum(x),
        lambda x: HyperGradDescent(x, mu=1e-3),
        SteepestDescent,
        CGDescent,
        BFGS,
        CholBFGS,
    ],
)
def test_quadratic_minimum(make):
    x0 = np.zeros(2)
    res = optimize(quadratic(A, B), make(x0), x0, maxiter=5000)
    assert res.converged
    assert np.allclose(res.argument, X_MIN, atol=1e-5)


def test_bfgs_on_random_quadratic(rng):
    dim = 5
    a = rng.random((dim, dim))
    Q = a @ a.T + np.eye(dim)
    b = rng.random(dim)
    res = optimize(quadratic(Q, b), BFGS, np.zeros(dim), gtol=1e-8, maxiter=50)
    assert res.converged
    assert np.allclose(res.argument, np.linalg.solve(Q, b), atol=1e-6)
