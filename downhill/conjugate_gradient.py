"""Nonlinear conjugate gradient method.

Hager & Zhang, *A new conjugate gradient method with guaranteed descent and
an efficient line search*, SIAM J. Optim. 16 (2005) 170-192.
"""

from __future__ import annotations

from typing import Any, Optional

import numpy as np

from .core import Array, ObjectiveRay, StepConstraint, infstep
from .gradient import LineSearchDescent
from .logging import get_logger

logger = get_logger(__name__)

# lower-bound parameter of the Hager-Zhang beta
ETA = 0.01


class CGDescent(LineSearchDescent):
    """Conjugate gradient descent (Hager-Zhang version).

    The initial trial step of each line search is adapted from the previous
    decrease of the objective: ``alpha = 2 * df / (d . g)``.
    """

    ls_beta = 0.01
    ls_sigma = 0.1

    def __init__(self, x: Any, alpha: float = 0.01) -> None:
        self._allocate(x, "gdiff", "dir")
        self.alpha0 = self.alpha = float(alpha)

    def descent_dir(self) -> Array:
        """Update ``dir`` in place from the latest gradient ``g`` and ``gdiff``."""
        d, y, g = self.dir, self.gdiff, self.g
        dty = float(np.dot(d, y))
        if dty == 0:
            # d'y == 0 only at the first iteration, when gdiff is zero
            beta = 0.0
        else:
            beta = (float(np.dot(y, g)) - 2 * float(np.dot(d, g)) * float(np.dot(y, y)) / dty) / dty
        bound = float(np.linalg.norm(d)) * min(ETA, float(np.linalg.norm(g)))
        if bound > 0:
            beta = max(beta, -1 / bound)
        d *= beta
        d -= g
        if not np.dot(d, g) < 0:
            logger.debug("%r: direction lost descent, restarting along antigradient", self)
            np.negative(g, out=d)
        return d

    def init(
        self,
        fdf: ObjectiveRay,
        x0: Array,
        *,
        reset: Any = True,
        constrain_step: StepConstraint = infstep,
    ) -> None:
        self._init_point(fdf, x0)
        np.negative(self.g, out=self.dir)
        self.gdiff.fill(0.0)
        self.alpha = self.alpha0

    def reset(self, x0: Any = None, alpha: Optional[float] = None) -> None:
        if alpha is not None:
            self.alpha0 = float(alpha)
        self.alpha = self.alpha0
        if x0 is not None:
            self.x[...] = self._resize(x0, "gdiff", "dir")
        self.dir.fill(0.0)
        self.gdiff.fill(0.0)

    def step(self, fdf: ObjectiveRay, *, constrain_step: StepConstraint = infstep) -> float:
        # the direction is built from the latest gradient before the rotation
        np.subtract(self.g, self.gpre, out=self.gdiff)
        d = self.descent_dir()
        self._start_step()
        alpha = self._search(fdf, d, constrain_step, alpha=self.alpha)
        fdiff = self.y - self.ypre
        if fdiff < 0:
            self.alpha = 2 * fdiff / float(np.dot(d, self.gpre))
        return alpha


__all__ = ["CGDescent"]
