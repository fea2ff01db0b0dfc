"""Wrappers layering stop conditions, counters and tracking over a descent method.

Every wrapper stores one inner method in ``descent`` and forwards all
operations to it, overriding only what it changes. The chain used by
:func:`downhill.optimize` is, from the outside in::

    StopByGradient | BasicConvergenceStats
      LimitIters
        LimitCalls
          ConstrainStepSize
            TrackCalls
              <core method>
"""

from __future__ import annotations

import math
from contextlib import nullcontext
from typing import Any, ContextManager, TextIO, Tuple

import numpy as np

from .core import (
    Array,
    ConvergencePredicate,
    DescentMethod,
    ObjectiveRay,
    StepConstraint,
    Wrapper,
    infstep,
)
from .logging import get_logger, tracking_handler


class OptFunc:
    """Objective handed to a method's ``init``/``step``.

    Routes every evaluation through ``method.callfn`` so that each wrapper of
    the chain sees it.
    """

    __slots__ = ("fdf", "method")

    def __init__(self, fdf: ObjectiveRay, method: DescentMethod) -> None:
        if not callable(fdf):
            raise TypeError(f"Objective must be callable, got {type(fdf).__name__}")
        self.fdf = fdf
        self.method = method

    def __call__(self, x: Array, alpha: float, d: Array) -> Tuple[float, Array]:
        return self.method.callfn(self.fdf, x, alpha, d)


class StopByGradient(Wrapper):
    """Stop when the gradient 2-norm drops to ``gtol``.

    Convergence is reported when the largest gradient component is within
    ``gtol``, which always holds at a stop triggered here.
    """

    def __init__(self, descent: DescentMethod, gtol: float) -> None:
        super().__init__(descent)
        gtol = float(gtol)
        if not gtol >= 0:
            raise ValueError(f"Gradient tolerance must be non-negative, got {gtol}")
        self.gtol = gtol
        self.converged = False

    def init(
        self,
        fdf: ObjectiveRay,
        x0: Array,
        *,
        reset: Any = True,
        constrain_step: StepConstraint = infstep,
    ) -> None:
        self.converged = False
        self.descent.init(fdf, x0, reset=reset, constrain_step=constrain_step)

    def reset(self, *args: Any, **kwargs: Any) -> None:
        self.converged = False
        self.descent.reset(*args, **kwargs)

    def stopcond(self) -> bool:
        g = self.gradientvec()
        self.converged = bool(np.max(np.abs(g), initial=0.0) <= self.gtol)
        if float(np.linalg.norm(g)) <= self.gtol:
            return True
        return self.descent.stopcond()

    def conv_success(self) -> bool:
        return self.converged or self.descent.conv_success()


class LimitCalls(Wrapper):
    """Count objective evaluations and stop once ``max_calls`` is reached.

    The limit is checked between steps: a step in progress completes, so the
    final count may exceed ``max_calls`` by the evaluations of that step.
    """

    def __init__(self, descent: DescentMethod, max_calls: float = math.inf) -> None:
        super().__init__(descent)
        self.call_limit = max_calls
        self.calls = 0

    def init(
        self,
        fdf: ObjectiveRay,
        x0: Array,
        *,
        reset: Any = True,
        constrain_step: StepConstraint = infstep,
    ) -> None:
        self.calls = 0
        self.descent.init(fdf, x0, reset=reset, constrain_step=constrain_step)

    def reset(self, *args: Any, **kwargs: Any) -> None:
        self.calls = 0
        self.descent.reset(*args, **kwargs)

    def callfn(self, fdf: ObjectiveRay, x: Array, alpha: float, d: Array) -> Tuple[float, Array]:
        result = self.descent.callfn(fdf, x, alpha, d)
        self.calls += 1
        return result

    def stopcond(self) -> bool:
        return self.calls >= self.call_limit or self.descent.stopcond()

    def call_count(self) -> int:
        return self.calls


class LimitIters(Wrapper):
    """Count steps and stop once ``max_iters`` is reached."""

    def __init__(self, descent: DescentMethod, max_iters: float = math.inf) -> None:
        super().__init__(descent)
        self.iter_limit = max_iters
        self.iters = 0

    def init(
        self,
        fdf: ObjectiveRay,
        x0: Array,
        *,
        reset: Any = True,
        constrain_step: StepConstraint = infstep,
    ) -> None:
        self.iters = 0
        self.descent.init(fdf, x0, reset=reset, constrain_step=constrain_step)

    def reset(self, *args: Any, **kwargs: Any) -> None:
        self.iters = 0
        self.descent.reset(*args, **kwargs)

    def step(self, fdf: ObjectiveRay, *, constrain_step: StepConstraint = infstep) -> float:
        alpha = self.descent.step(fdf, constrain_step=constrain_step)
        self.iters += 1
        return alpha

    def stopcond(self) -> bool:
        return self.iters >= self.iter_limit or self.descent.stopcond()

    def iter_count(self) -> int:
        return self.iters


class ConstrainStepSize(Wrapper):
    """Bound the steps of the inner method by ``constraint(origin, direction)``."""

    def __init__(self, descent: DescentMethod, constraint: StepConstraint = infstep) -> None:
        super().__init__(descent)
        if not callable(constraint):
            raise TypeError(f"Step constraint must be callable, got {type(constraint).__name__}")
        self.constraint = constraint

    def init(
        self,
        fdf: ObjectiveRay,
        x0: Array,
        *,
        reset: Any = True,
        constrain_step: StepConstraint = infstep,
    ) -> None:
        self.descent.init(fdf, x0, reset=reset, constrain_step=self.constraint)

    def step(self, fdf: ObjectiveRay, *, constrain_step: StepConstraint = infstep) -> float:
        return self.descent.step(fdf, constrain_step=self.constraint)


class BasicConvergenceStats(Wrapper):
    """User convergence predicate combined with call and iteration limits.

    ``convcond(x, xpre, y, ypre, g)`` is evaluated on every stop check; a run
    stopped by one of the limits is not reported as converged.
    """

    def __init__(
        self,
        descent: DescentMethod,
        convcond: ConvergencePredicate,
        call_limit: float = math.inf,
        iter_limit: float = math.inf,
    ) -> None:
        super().__init__(descent)
        if not callable(convcond):
            raise TypeError(f"Convergence predicate must be callable, got {type(convcond).__name__}")
        self.convcond = convcond
        self.call_limit = call_limit
        self.iter_limit = iter_limit
        self.converged = False
        self.calls = 0
        self.iters = 0

    def _clear(self) -> None:
        self.converged = False
        self.calls = 0
        self.iters = 0

    def init(
        self,
        fdf: ObjectiveRay,
        x0: Array,
        *,
        reset: Any = True,
        constrain_step: StepConstraint = infstep,
    ) -> None:
        self._clear()
        self.descent.init(fdf, x0, reset=reset, constrain_step=constrain_step)

    def reset(self, *args: Any, **kwargs: Any) -> None:
        self._clear()
        self.descent.reset(*args, **kwargs)

    def callfn(self, fdf: ObjectiveRay, x: Array, alpha: float, d: Array) -> Tuple[float, Array]:
        result = self.descent.callfn(fdf, x, alpha, d)
        self.calls += 1
        return result

    def step(self, fdf: ObjectiveRay, *, constrain_step: StepConstraint = infstep) -> float:
        alpha = self.descent.step(fdf, constrain_step=constrain_step)
        self.iters += 1
        return alpha

    def stopcond(self) -> bool:
        self.converged = bool(
            self.convcond(
                self.argumentvec(),
                self.step_origin(),
                self.fnval(),
                self.fnval_origin(),
                self.gradientvec(),
            )
        )
        if self.converged or self.calls >= self.call_limit or self.iters >= self.iter_limit:
            return True
        return self.descent.stopcond()

    def conv_success(self) -> bool:
        return self.converged or self.descent.conv_success()

    def iter_count(self) -> int:
        return self.iters

    def call_count(self) -> int:
        return self.calls


class TrackCalls(Wrapper):
    """Write every evaluation of the objective to a text ``sink``.

    Each line holds the components of the evaluated point, the objective value
    and the gradient components, separated by spaces; every step is headed
    by ``# Iteration n``. With ``verbosity >= 2`` the line search trace is
    written to the same sink. ``verbosity <= 0`` writes nothing.
    """

    def __init__(self, descent: DescentMethod, sink: TextIO, verbosity: int = 1) -> None:
        super().__init__(descent)
        self.sink = sink
        self.verbosity = int(verbosity)
        self.niter = 0

    def _write(self, text: str) -> None:
        if self.verbosity > 0:
            self.sink.write(text + "\n")

    def _traced(self) -> ContextManager[Any]:
        if self.verbosity >= 2:
            return tracking_handler(get_logger("downhill.line_search"), self.sink)
        return nullcontext()

    def init(
        self,
        fdf: ObjectiveRay,
        x0: Array,
        *,
        reset: Any = True,
        constrain_step: StepConstraint = infstep,
    ) -> None:
        self.niter = 0
        n = np.size(x0)
        plural = "" if n == 1 else "s"
        self._write(
            "==OPTIMIZATION START==\n"
            f"# First {n} value{plural} - argument vector\n"
            "# next value - function value\n"
            f"# last {n} value{plural} - gradient vector\n"
            "==SOLVER INITIALIZATION=="
        )
        with self._traced():
            self.descent.init(fdf, x0, reset=reset, constrain_step=constrain_step)
        self._write("==SOLVER INITIALIZED==")

    def callfn(self, fdf: ObjectiveRay, x: Array, alpha: float, d: Array) -> Tuple[float, Array]:
        # built before the call, which may overwrite x in place
        point = x + alpha * d
        y, g = self.descent.callfn(fdf, x, alpha, d)
        if self.verbosity > 0:
            fields = [repr(v) for v in point.tolist()]
            fields.append(repr(float(y)))
            fields.extend(repr(v) for v in np.asarray(g).tolist())
            self._write(" ".join(fields))
        return y, g

    def step(self, fdf: ObjectiveRay, *, constrain_step: StepConstraint = infstep) -> float:
        self.niter += 1
        self._write(f"# Iteration {self.niter}")
        with self._traced():
            return self.descent.step(fdf, constrain_step=constrain_step)


__all__ = [
    "BasicConvergenceStats",
    "ConstrainStepSize",
    "LimitCalls",
    "LimitIters",
    "OptFunc",
    "StopByGradient",
    "TrackCalls",
]
