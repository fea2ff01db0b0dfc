"""Gradient-based descent methods.

``SteepestDescent`` searches along the antigradient with the strong Wolfe
line search. The remaining methods take fixed-form steps whose length is
governed by learning rates: plain fixed rate, heavy-ball momentum, Nesterov
momentum, and the hyper-gradient rule which adapts its own learning rate.
"""

from __future__ import annotations

from typing import Any, Optional

import numpy as np

from .core import Array, CoreMethod, ObjectiveRay, StepConstraint, infstep
from .line_search import strong_backtracking
from .logging import get_logger

logger = get_logger(__name__)


class LineSearchDescent(CoreMethod):
    """Core method whose steps are chosen by :func:`strong_backtracking`.

    ``ls_beta`` and ``ls_sigma`` are the sufficient-decrease and curvature
    coefficients used by :meth:`step`.
    """

    ls_beta: float = 1e-4
    ls_sigma: float = 0.1

    def _search(
        self,
        fdf: ObjectiveRay,
        d: Array,
        constrain_step: StepConstraint,
        alpha: float = 1.0,
        beta: Optional[float] = None,
        sigma: Optional[float] = None,
    ) -> float:
        if not np.any(self.gpre):
            # stationary point: no descent direction exists, hold position
            logger.debug("%r: zero gradient, step skipped", self)
            self.x[...] = self.xpre
            self.g[...] = self.gpre
            self.y = self.ypre
            return 0.0
        alpha_max = constrain_step(self.xpre, d)
        return strong_backtracking(
            fdf,
            self.xpre,
            d,
            self.ypre,
            self.gpre,
            alpha=alpha,
            alpha_max=alpha_max,
            beta=self.ls_beta if beta is None else beta,
            sigma=self.ls_sigma if sigma is None else sigma,
        )


class SteepestDescent(LineSearchDescent):
    """Minimizes the objective along the antigradient at each step."""

    def __init__(self, x: Any, alpha: float = 1.0) -> None:
        self._allocate(x, "d")
        self.alpha0 = self.alpha = float(alpha)

    def init(
        self,
        fdf: ObjectiveRay,
        x0: Array,
        *,
        reset: Any = True,
        constrain_step: StepConstraint = infstep,
    ) -> None:
        self._init_point(fdf, x0)

    def reset(self, x0: Any = None, alpha: Optional[float] = None) -> None:
        if alpha is not None:
            self.alpha0 = float(alpha)
        self.alpha = self.alpha0
        if x0 is not None:
            self.x[...] = self._resize(x0, "d")

    def descent_dir(self) -> Array:
        np.negative(self.gpre, out=self.d)
        return self.d

    def step(self, fdf: ObjectiveRay, *, constrain_step: StepConstraint = infstep) -> float:
        self._start_step()
        d = self.descent_dir()
        return self._search(fdf, d, constrain_step, alpha=self.alpha)


class FixedRateDescent(CoreMethod):
    """Antigradient steps of constant length ``alpha``."""

    def __init__(self, x: Any, alpha: float = 0.01) -> None:
        self._allocate(x, "d")
        self.alpha0 = self.alpha = float(alpha)

    def init(
        self,
        fdf: ObjectiveRay,
        x0: Array,
        *,
        reset: Any = True,
        constrain_step: StepConstraint = infstep,
    ) -> None:
        self._init_point(fdf, x0)

    def reset(self, x0: Any = None, alpha: Optional[float] = None) -> None:
        if alpha is not None:
            self.alpha0 = float(alpha)
        self.alpha = self.alpha0
        if x0 is not None:
            self.x[...] = self._resize(x0, "d")

    def step(self, fdf: ObjectiveRay, *, constrain_step: StepConstraint = infstep) -> float:
        self._start_step()
        np.negative(self.gpre, out=self.d)
        maxstep = constrain_step(self.xpre, self.d)
        s = self.alpha if self.alpha <= maxstep else maxstep / 2
        fdf(self.xpre, s, self.d)
        return s


class MomentumDescent(CoreMethod):
    """Heavy-ball momentum: ``v <- decay_rate*v - learn_rate*g``, ``x <- x + v``."""

    def __init__(self, x: Any, learn_rate: float = 0.01, decay_rate: float = 0.9) -> None:
        self._allocate(x, "v")
        self.learn_rate0 = self.learn_rate = float(learn_rate)
        self.decay_rate0 = self.decay_rate = float(decay_rate)

    def init(
        self,
        fdf: ObjectiveRay,
        x0: Array,
        *,
        reset: Any = True,
        constrain_step: StepConstraint = infstep,
    ) -> None:
        self._init_point(fdf, x0)
        self.v.fill(0.0)

    def reset(
        self,
        x0: Any = None,
        learn_rate: Optional[float] = None,
        decay_rate: Optional[float] = None,
    ) -> None:
        if learn_rate is not None:
            self.learn_rate0 = float(learn_rate)
        if decay_rate is not None:
            self.decay_rate0 = float(decay_rate)
        self.learn_rate = self.learn_rate0
        self.decay_rate = self.decay_rate0
        if x0 is not None:
            self.x[...] = self._resize(x0, "v")
        self.v.fill(0.0)

    def step(self, fdf: ObjectiveRay, *, constrain_step: StepConstraint = infstep) -> float:
        self._start_step()
        self.v *= self.decay_rate
        self.v -= self.learn_rate * self.gpre
        maxstep = constrain_step(self.xpre, self.v)
        s = 1.0 if maxstep > 1 else maxstep / 2
        fdf(self.xpre, s, self.v)
        return self.learn_rate


class NesterovMomentum(CoreMethod):
    """Nesterov accelerated gradient: the gradient is taken at ``x + decay_rate*v``."""

    def __init__(self, x: Any, learn_rate: float = 0.01, decay_rate: float = 0.9) -> None:
        self._allocate(x, "v", "d")
        self.learn_rate0 = self.learn_rate = float(learn_rate)
        self.decay_rate0 = self.decay_rate = float(decay_rate)

    def init(
        self,
        fdf: ObjectiveRay,
        x0: Array,
        *,
        reset: Any = True,
        constrain_step: StepConstraint = infstep,
    ) -> None:
        self._init_point(fdf, x0)
        self.v.fill(0.0)

    def reset(
        self,
        x0: Any = None,
        learn_rate: Optional[float] = None,
        decay_rate: Optional[float] = None,
    ) -> None:
        if learn_rate is not None:
            self.learn_rate0 = float(learn_rate)
        if decay_rate is not None:
            self.decay_rate0 = float(decay_rate)
        self.learn_rate = self.learn_rate0
        self.decay_rate = self.decay_rate0
        if x0 is not None:
            self.x[...] = self._resize(x0, "v", "d")
        self.v.fill(0.0)

    def step(self, fdf: ObjectiveRay, *, constrain_step: StepConstraint = infstep) -> float:
        self._start_step()
        # look-ahead point
        maxstep = constrain_step(self.xpre, self.v)
        s = self.decay_rate if maxstep > self.decay_rate else maxstep / 2
        fdf(self.xpre, s, self.v)
        self.v *= self.decay_rate
        self.v -= self.learn_rate * self.g
        np.negative(self.g, out=self.d)
        maxstep = constrain_step(self.x, self.d)
        s = self.learn_rate if maxstep > self.learn_rate else maxstep / 2
        fdf(self.x, s, self.d)
        return self.learn_rate


class HyperGradDescent(CoreMethod):
    """Gradient descent adapting its learning rate by hyper-gradient descent.

    Baydin et al., *Online Learning Rate Adaptation with Hypergradient
    Descent* (2018): ``alpha <- alpha + mu * g_k . g_{k-1}``.
    """

    def __init__(self, x: Any, alpha: float = 0.0, mu: float = 1e-4) -> None:
        self._allocate(x)
        self.alpha0 = self.alpha = float(alpha)
        self.mu0 = self.mu = float(mu)

    def init(
        self,
        fdf: ObjectiveRay,
        x0: Array,
        *,
        reset: Any = True,
        constrain_step: StepConstraint = infstep,
    ) -> None:
        self._init_point(fdf, x0)

    def reset(
        self, x0: Any = None, alpha: Optional[float] = None, mu: Optional[float] = None
    ) -> None:
        if alpha is not None:
            self.alpha0 = float(alpha)
        if mu is not None:
            self.mu0 = float(mu)
        self.alpha = self.alpha0
        self.mu = self.mu0
        if x0 is not None:
            self.x[...] = self._resize(x0)

    def step(self, fdf: ObjectiveRay, *, constrain_step: StepConstraint = infstep) -> float:
        # after the swap g holds the gradient of the previous step
        self._start_step()
        self.alpha += self.mu * float(np.dot(self.g, self.gpre))
        fdf(self.xpre, -self.alpha, self.gpre)
        return self.alpha


__all__ = [
    "FixedRateDescent",
    "HyperGradDescent",
    "LineSearchDescent",
    "MomentumDescent",
    "NesterovMomentum",
    "SteepestDescent",
]
