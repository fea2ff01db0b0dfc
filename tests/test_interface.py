import numpy as np
import pytest

from downhill import (
    BFGS,
    CGDescent,
    CholBFGS,
    CoreMethod,
    FixedRateDescent,
    HyperGradDescent,
    MomentumDescent,
    NesterovMomentum,
    OptimizeResult,
    SteepestDescent,
    optimize,
    solver,
)
from objectives import rosenbrock_fdf

METHODS = (
    SteepestDescent,
    HyperGradDescent,
    FixedRateDescent,
    MomentumDescent,
    NesterovMomentum,
    CGDescent,
    BFGS,
    CholBFGS,
)


@pytest.mark.parametrize("method", METHODS)
def test_constructors_from_float_and_int_vectors(method):
    for x in ([1.0, 0.0], [1, 0], np.array([1, 0], dtype=np.int32)):
        m = method(x)
        assert isinstance(m, CoreMethod)
        assert m.argumentvec().dtype == np.float64


@pytest.mark.parametrize("method", METHODS)
def test_accessors_have_argument_shape(method):
    init_vec = np.array([1.0, 0.0])
    m = method(init_vec)
    for accessor in (m.argumentvec, m.gradientvec, m.step_origin):
        assert accessor().shape == init_vec.shape
    for accessor in (m.fnval, m.fnval_origin):
        assert isinstance(accessor(), float)
    assert m.iter_count() < 0
    assert m.call_count() < 0


@pytest.mark.parametrize("method", METHODS)
def test_solver_objects_run(method):
    init_vec = np.array([1.0, 0.0])
    chain = solver(
        method,
        init_vec,
        gtol=1e-3,
        maxiter=100,
        maxcalls=1000,
        constrain_step=lambda x, d: np.inf,
    )
    res = optimize(rosenbrock_fdf, chain, init_vec)
    assert isinstance(res, OptimizeResult)
    assert 0 < res.iterations <= 100
    assert res.argument.shape == init_vec.shape


@pytest.mark.parametrize("method", METHODS)
def test_core_instance_is_accepted(method):
    x0 = np.array([0.5, 0.5])
    res = optimize(rosenbrock_fdf, method(x0), x0, maxiter=5)
    assert res.iterations <= 5
    assert np.isfinite(res.fun)


def test_result_arrays_are_copies():
    x0 = np.array([-1.0, -1.0])
    m = BFGS(x0)
    res = optimize(rosenbrock_fdf, m, x0, maxiter=3)
    res.argument[:] = 42.0
    res.gradient[:] = 42.0
    assert not np.any(m.argumentvec() == 42.0)
    assert not np.any(m.gradientvec() == 42.0)
