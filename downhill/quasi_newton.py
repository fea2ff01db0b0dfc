"""Quasi-Newton descent methods (BFGS and Cholesky-factored BFGS)."""

from __future__ import annotations

import math
from typing import Any, Union

import numpy as np

from .core import Array, ObjectiveRay, StepConstraint, infstep
from .gradient import LineSearchDescent
from .logging import get_logger
from .utils import CholeskyFactor, sqmatr

logger = get_logger(__name__)

# initial trial step of the curvature-seeding probe
PROBE_ALPHA = 1e-4


class BFGS(LineSearchDescent):
    """BFGS with an explicit dense inverse Hessian approximation ``invH``."""

    ls_beta = 0.01
    ls_sigma = 0.9

    def __init__(self, x: Any) -> None:
        self._allocate(x, "d", "xdiff", "gdiff")
        self.invH = sqmatr(self.x)
        self.reset()

    def init(
        self,
        fdf: ObjectiveRay,
        x0: Array,
        *,
        reset: Any = True,
        constrain_step: StepConstraint = infstep,
    ) -> None:
        """Evaluate ``x0``; with ``reset`` also probe along the antigradient.

        The probe step seeds ``invH = s*I`` with ``s = (dx.dg)/(dg.dg)``, so that
        the first real step has a sensible length.
        """
        self._init_point(fdf, x0)
        if not reset:
            return
        self._start_step()
        np.negative(self.gpre, out=self.d)
        self.d *= float(reset)
        self._search(fdf, self.d, constrain_step, alpha=PROBE_ALPHA, beta=0.01, sigma=0.9)
        np.subtract(self.x, self.xpre, out=self.xdiff)
        np.subtract(self.g, self.gpre, out=self.gdiff)
        dg = float(np.dot(self.xdiff, self.gdiff))
        gg = float(np.dot(self.gdiff, self.gdiff))
        scale = dg / gg if gg > 0 else math.nan
        if not (scale > 0 and math.isfinite(scale)):
            logger.debug("%r: probe step gave no curvature information, invH = I", self)
            scale = 1.0
        self.invH.fill(0.0)
        np.fill_diagonal(self.invH, scale)

    def reset(self, x0: Any = None, scale: float = 1.0) -> None:
        """Reset ``invH`` to ``scale * I``; optionally copy ``x0`` into the argument."""
        if x0 is not None:
            x0 = self._resize(x0, "d", "xdiff", "gdiff")
            if self.invH.shape[0] != x0.shape[0]:
                self.invH = sqmatr(self.x)
            self.x[...] = x0
        self.invH.fill(0.0)
        np.fill_diagonal(self.invH, scale)

    def descent_dir(self) -> Array:
        np.matmul(self.invH, self.gpre, out=self.d)
        np.negative(self.d, out=self.d)
        return self.d

    def step(self, fdf: ObjectiveRay, *, constrain_step: StepConstraint = infstep) -> float:
        self._start_step()
        d = self.descent_dir()
        alpha = self._search(fdf, d, constrain_step, alpha=1.0)
        if alpha > 0:
            self._update_inverse_hessian()
        return alpha

    def _update_inverse_hessian(self) -> None:
        r"""
        BFGS update:
                     dx Bg' + Bg dx'   (     g'Bg )  dx dx'
            B <- B - --------------- + ( 1 + ---- )  ------
                          dx'g         (     dx'g )   dx'g
        """
        delta, gamma = self.xdiff, self.gdiff
        np.subtract(self.x, self.xpre, out=delta)
        np.subtract(self.g, self.gpre, out=gamma)
        denom = float(np.dot(delta, gamma))
        if not denom > 0:
            logger.debug("%r: non-positive curvature dx.dg = %g, update skipped", self, denom)
            return
        Bg = self.invH @ gamma
        dscale = 1 + float(np.dot(gamma, Bg)) / denom
        self.invH -= (np.outer(delta, Bg) + np.outer(Bg, delta)) / denom
        self.invH += dscale * np.outer(delta, delta) / denom


class CholBFGS(LineSearchDescent):
    """BFGS keeping the Hessian approximation as a Cholesky factor ``H = U'U``.

    Positive definiteness is structural: directions come from two triangular
    solves and the curvature update is a rank-one update plus a rank-one
    downdate of the factor.
    """

    ls_beta = 0.01
    ls_sigma = 0.9

    def __init__(self, x: Any) -> None:
        self._allocate(x, "d", "xdiff", "gdiff")
        self.hess = CholeskyFactor.identity(self.x.size)

    def init(
        self,
        fdf: ObjectiveRay,
        x0: Array,
        *,
        reset: Any = True,
        constrain_step: StepConstraint = infstep,
    ) -> None:
        self._init_point(fdf, x0)
        self.xdiff[...] = np.abs(self.x) + 1
        if not reset:
            return
        self._start_step()
        np.negative(self.gpre, out=self.d)
        self.d *= float(reset)
        alpha = self._search(fdf, self.d, constrain_step, alpha=1.0, beta=0.01, sigma=0.1)
        np.subtract(self.x, self.xpre, out=self.xdiff)
        np.subtract(self.g, self.gpre, out=self.gdiff)
        dg = float(np.dot(self.xdiff, self.gdiff))
        gg = float(np.dot(self.gdiff, self.gdiff))
        scale = gg / dg if alpha > 0 and dg != 0 else math.nan
        if not (gg > 0 and math.isfinite(scale)):
            logger.debug("%r: probe step gave no curvature information, H = I", self)
            scale = 1.0
        self.hess.set_diagonal(math.sqrt(abs(scale)))

    def reset(self, x0: Any = None, init_H: Union[float, Array] = 1.0) -> None:
        """Reset the factor.

        A scalar ``init_H`` gives ``H = I / init_H`` (the inverse Hessian is
        ``init_H * I``, as in :meth:`BFGS.reset`); a matrix is factored with
        the modified Cholesky decomposition.
        """
        if x0 is not None:
            x0 = self._resize(x0, "d", "xdiff", "gdiff")
            if self.hess.size != x0.shape[0]:
                self.hess = CholeskyFactor.identity(x0.shape[0])
            self.x[...] = x0
        if np.ndim(init_H) == 0:
            self.hess.set_diagonal(1 / math.sqrt(float(init_H)))
        else:
            self.hess.assign(np.asarray(init_H, dtype=float))

    def descent_dir(self) -> Array:
        self.d[...] = self.hess.solve(self.gpre)
        np.negative(self.d, out=self.d)
        return self.d

    def step(self, fdf: ObjectiveRay, *, constrain_step: StepConstraint = infstep) -> float:
        self._start_step()
        d = self.descent_dir()
        alpha = self._search(fdf, d, constrain_step, alpha=1.0)
        if alpha > 0:
            self._update_factor()
        else:
            # no progress: signals the position-change stop condition
            self.xdiff.fill(0.0)
        return alpha

    def _update_factor(self) -> None:
        r"""
        BFGS update:
                     H dx dx' H    g g'
            H <- H - ---------- + -----
                      dx' H dx    dx'g
        """
        delta, gamma = self.xdiff, self.gdiff
        np.subtract(self.g, self.gpre, out=gamma)
        np.subtract(self.x, self.xpre, out=delta)
        dg = float(np.dot(delta, gamma))
        Ud = self.hess.mul_upper(delta)
        dHd = float(np.dot(Ud, Ud))
        if not (dg > 0 and dHd > 0):
            logger.debug("%r: non-positive curvature dx.dg = %g, update skipped", self, dg)
            return
        Hd = self.hess.matvec(delta)
        self.hess.lowrankupdate(gamma / math.sqrt(dg))
        w = Hd / math.sqrt(dHd)
        if not self.hess.lowrankdowndate(w):
            logger.warning("%r: Cholesky downdate lost definiteness, refactoring", self)
            self.hess.assign(self.hess.matrix() - np.outer(w, w))

    def stopcond(self) -> bool:
        """True when the last step did not move the argument measurably."""
        rtol_x = 16 * float(np.finfo(self.x.dtype).eps)
        return bool(np.all(np.abs(self.xdiff) <= rtol_x * np.abs(self.xpre)))


__all__ = ["BFGS", "CholBFGS"]
