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
    OptFunc,
    SteepestDescent,
    optimize,
)
from objectives import rosenbrock_fdf


class RecordingObjective:
    def __init__(self, fdf):
        self.fdf = fdf
        self.points = []

    def __call__(self, x, alpha, d):
        self.points.append(x + alpha * d)
        return self.fdf(x, alpha, d)


@pytest.mark.parametrize(
    "method",
    [
        SteepestDescent,
        lambda x: FixedRateDescent(x, alpha=0.05),
        MomentumDescent,
        NesterovMomentum,
        lambda x: HyperGradDescent(x, mu=1e-6),
        CGDescent,
        BFGS,
        CholBFGS,
    ],
)
def test_reset_reproduces_trajectory(method):
    x0 = np.array([-1.0, -1.0])
    m = method(x0)
    first = RecordingObjective(rosenbrock_fdf)
    res1 = optimize(first, m, x0, maxiter=30)
    m.reset()
    second = RecordingObjective(rosenbrock_fdf)
    res2 = optimize(second, m, x0, maxiter=30)
    assert len(first.points) == len(second.points)
    for p, q in zip(first.points, second.points):
        assert np.array_equal(p, q)
    assert np.array_equal(res1.argument, res2.argument)


def test_hypergradient_rate_persists_without_reset():
    x0 = np.array([-1.0, -1.0])
    m = HyperGradDescent(x0, mu=1e-6)
    optimize(rosenbrock_fdf, m, x0, maxiter=10)
    assert m.alpha != m.alpha0
    m.reset(alpha=0.01)
    assert m.alpha == m.alpha0 == 0.01


def test_bfgs_reset_sets_scaled_identity():
    m = BFGS(np.zeros(2))
    m.reset(np.array([1.0, 2.0]), scale=0.5)
    assert np.array_equal(m.invH, 0.5 * np.eye(2))
    assert np.array_equal(m.argumentvec(), [1.0, 2.0])


def test_bfgs_init_without_reset_keeps_inverse_hessian():
    x0 = np.array([-1.0, -1.0])
    m = BFGS(x0)
    m.reset(x0, scale=0.25)
    m.init(OptFunc(rosenbrock_fdf, m), x0, reset=False)
    assert np.array_equal(m.invH, 0.25 * np.eye(2))
    assert np.array_equal(m.argumentvec(), x0)
    assert np.array_equal(m.step_origin(), x0)


def test_bfgs_init_seeds_curvature_scale():
    A = np.diag([2.0, 2.0])

    def fdf(x, alpha, d):
        z = x + alpha * d
        return float(z @ A @ z / 2), A @ z

    x0 = np.array([1.0, -1.0])
    m = BFGS(x0)
    m.init(OptFunc(fdf, m), x0)
    assert np.allclose(m.invH, 0.5 * np.eye(2))


def test_reset_resizes_buffers():
    m = BFGS(np.zeros(2))
    m.reset(np.ones(3))
    assert m.invH.shape == (3, 3)
    assert m.argumentvec().shape == (3,)

    c = CholBFGS(np.zeros(2))
    c.reset(np.ones(4))
    assert c.hess.size == 4
    assert c.gradientvec().shape == (4,)


def test_cholbfgs_reset_with_scale_and_matrix():
    m = CholBFGS(np.zeros(2))
    m.reset(None, 4.0)
    assert np.allclose(m.hess.matrix(), 0.25 * np.eye(2))
    H = np.array([[2.0, 0.5], [0.5, 1.0]])
    m.reset(None, H)
    assert np.allclose(m.hess.matrix(), H)
    m.reset()
    assert np.allclose(m.hess.matrix(), np.eye(2))


def test_cg_reset_changes_initial_step():
    m = CGDescent(np.zeros(2), alpha=0.01)
    m.reset(alpha=0.5)
    assert m.alpha == m.alpha0 == 0.5
