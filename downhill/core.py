"""Core interfaces shared across descent methods and their wrappers.

A descent method is split into two layers. A :class:`CoreMethod` owns the
numeric state (argument, gradient, curvature estimates) and knows how to take
one step. A :class:`Wrapper` holds exactly one inner method and forwards every
operation to it, overriding only what it changes: stop conditions, call and
iteration counting, step constraints, tracking. Wrappers nest freely.

The objective handed to every method has the form::

    fdf(x, alpha, d) -> (f(x + alpha * d), grad f(x + alpha * d))
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Tuple

import numpy as np

Array = np.ndarray
ObjectiveRay = Callable[[Array, float, Array], Tuple[float, Array]]
StepConstraint = Callable[[Array, Array], float]
ConvergencePredicate = Callable[[Array, Array, float, float, Array], bool]


class DescentError(Exception):
    """Base class for errors raised by downhill."""


class DimensionMismatch(DescentError, ValueError):
    """Input size does not match the buffers of a descent method."""


class NonDescentDirectionError(DescentError, ValueError):
    """The search direction does not decrease the objective."""


class DomainError(DescentError, ArithmeticError):
    """Raised by an objective at a point outside its domain.

    The line search treats it as "step too large" and retreats toward the
    last valid trial instead of propagating it.
    """


def infstep(x0: Array, d: Array) -> float:
    """Step constraint that never limits the step."""
    return math.inf


def stop_by_gradient(tol: float) -> ConvergencePredicate:
    """Return a convergence predicate testing ``||g||_2 <= tol``."""

    def convcond(x: Array, xpre: Array, y: float, ypre: float, g: Array) -> bool:
        return float(np.linalg.norm(g)) <= tol

    return convcond


def along_ray(fg: Callable[[Array], Tuple[float, Array]]) -> ObjectiveRay:
    """Adapt ``fg(x) -> (f(x), grad f(x))`` to the ray form ``fdf(x, alpha, d)``."""

    def fdf(x: Array, alpha: float, d: Array) -> Tuple[float, Array]:
        return fg(x + alpha * d)

    return fdf


def _as_float_vector(x: Any) -> Array:
    arr = np.asarray(x)
    if arr.ndim != 1:
        raise DimensionMismatch(f"Expected a 1-D argument vector, got shape {arr.shape}")
    if not np.issubdtype(arr.dtype, np.floating):
        arr = arr.astype(float)
    return arr


@dataclass
class OptimizeResult:
    """Final statistics of an optimization run.

    Attributes:
        converged: Whether the convergence criterion was met (``False`` when the
            run was stopped by a call or iteration limit).
        argument: Final argument vector (a copy).
        gradient: Gradient at ``argument`` (a copy).
        iterations: Number of outer steps, negative if not tracked.
        calls: Number of objective evaluations, negative if not tracked.
        fun: Objective value at ``argument``.
    """

    converged: bool
    argument: Array
    gradient: Array
    iterations: int
    calls: int
    fun: float = math.nan


class DescentMethod(ABC):
    """Protocol shared by core methods and wrappers."""

    @abstractmethod
    def argumentvec(self) -> Array:
        """Current argument (the buffer itself, not a copy)."""

    @abstractmethod
    def gradientvec(self) -> Array:
        """Gradient at the current argument."""

    @abstractmethod
    def step_origin(self) -> Array:
        """Point the last step was taken from."""

    @abstractmethod
    def fnval(self) -> float:
        """Objective value at the current argument."""

    @abstractmethod
    def fnval_origin(self) -> float:
        """Objective value at :meth:`step_origin`."""

    @abstractmethod
    def callfn(self, fdf: ObjectiveRay, x: Array, alpha: float, d: Array) -> Tuple[float, Array]:
        """Evaluate ``fdf`` at ``x + alpha * d`` and store the result."""

    @abstractmethod
    def init(
        self,
        fdf: ObjectiveRay,
        x0: Array,
        *,
        reset: Any = True,
        constrain_step: StepConstraint = infstep,
    ) -> None:
        """Establish the first point of a run."""

    @abstractmethod
    def step(self, fdf: ObjectiveRay, *, constrain_step: StepConstraint = infstep) -> float:
        """Take one outer iteration and return the accepted step length."""

    @abstractmethod
    def reset(self, *args: Any, **kwargs: Any) -> None:
        """Restore the initial internal state."""

    def stopcond(self) -> bool:
        return False

    def conv_success(self) -> bool:
        return False

    def iter_count(self) -> int:
        return -1

    def call_count(self) -> int:
        return -1


class CoreMethod(DescentMethod):
    """Descent method owning its numeric buffers.

    Subclasses allocate at least ``x``, ``xpre``, ``g``, ``gpre``, ``y`` and
    ``ypre``. The default accessors and :meth:`callfn` operate on these.
    """

    x: Array
    xpre: Array
    g: Array
    gpre: Array
    y: float
    ypre: float

    def _allocate(self, x: Any, *names: str) -> Array:
        x = _as_float_vector(x)
        self.x = np.zeros_like(x)
        self.xpre = np.zeros_like(x)
        self.g = np.zeros_like(x)
        self.gpre = np.zeros_like(x)
        for name in names:
            setattr(self, name, np.zeros_like(x))
        self.y = 0.0
        self.ypre = 0.0
        return x

    def _resize(self, x0: Any, *names: str) -> Array:
        """Reallocate the buffers when ``x0`` has a different length."""
        x0 = _as_float_vector(x0)
        if x0.shape != self.x.shape or x0.dtype != self.x.dtype:
            self._allocate(x0, *names)
        return x0

    def _check_shape(self, v: Array) -> None:
        if np.shape(v) != self.x.shape:
            raise DimensionMismatch(
                f"{type(self).__name__} holds vectors of shape {self.x.shape}, "
                f"got {np.shape(v)}"
            )

    def argumentvec(self) -> Array:
        return self.x

    def gradientvec(self) -> Array:
        return self.g

    def step_origin(self) -> Array:
        return self.xpre

    def fnval(self) -> float:
        return self.y

    def fnval_origin(self) -> float:
        return self.ypre

    def callfn(self, fdf: ObjectiveRay, x: Array, alpha: float, d: Array) -> Tuple[float, Array]:
        self._check_shape(x)
        self._check_shape(d)
        y, g = fdf(x, alpha, d)
        self._check_shape(g)
        # x may alias self.x, so the right-hand side is built first
        self.x[...] = x + alpha * d
        if g is not self.g:
            np.copyto(self.g, g)
        self.y = float(y)
        return self.y, self.g

    def _init_point(self, fdf: ObjectiveRay, x0: Any) -> None:
        """Evaluate the starting point and mirror it into the ``*pre`` buffers."""
        x0 = _as_float_vector(x0)
        self._check_shape(x0)
        fdf(x0, 0.0, x0)
        np.copyto(self.xpre, self.x)
        np.copyto(self.gpre, self.g)
        self.ypre = self.y

    def _start_step(self) -> None:
        # argument and gradient from the end of the last iteration move to xpre/gpre
        self.x, self.xpre = self.xpre, self.x
        self.g, self.gpre = self.gpre, self.g
        self.ypre = self.y

    def __repr__(self) -> str:
        return f"{type(self).__name__}(dim={self.x.size})"


class Wrapper(DescentMethod):
    """Decorator over one inner method; forwards everything by default."""

    descent: DescentMethod

    def __init__(self, descent: DescentMethod) -> None:
        if not isinstance(descent, DescentMethod):
            raise TypeError(
                f"{type(self).__name__} wraps a DescentMethod, got {type(descent).__name__}"
            )
        self.descent = descent

    def base_method(self) -> DescentMethod:
        return self.descent

    def core_method(self) -> CoreMethod:
        """Innermost core method of the chain."""
        inner = self.descent
        while isinstance(inner, Wrapper):
            inner = inner.descent
        assert isinstance(inner, CoreMethod)
        return inner

    def argumentvec(self) -> Array:
        return self.descent.argumentvec()

    def gradientvec(self) -> Array:
        return self.descent.gradientvec()

    def step_origin(self) -> Array:
        return self.descent.step_origin()

    def fnval(self) -> float:
        return self.descent.fnval()

    def fnval_origin(self) -> float:
        return self.descent.fnval_origin()

    def callfn(self, fdf: ObjectiveRay, x: Array, alpha: float, d: Array) -> Tuple[float, Array]:
        return self.descent.callfn(fdf, x, alpha, d)

    def init(
        self,
        fdf: ObjectiveRay,
        x0: Array,
        *,
        reset: Any = True,
        constrain_step: StepConstraint = infstep,
    ) -> None:
        self.descent.init(fdf, x0, reset=reset, constrain_step=constrain_step)

    def step(self, fdf: ObjectiveRay, *, constrain_step: StepConstraint = infstep) -> float:
        return self.descent.step(fdf, constrain_step=constrain_step)

    def reset(self, *args: Any, **kwargs: Any) -> None:
        self.descent.reset(*args, **kwargs)

    def stopcond(self) -> bool:
        return self.descent.stopcond()

    def conv_success(self) -> bool:
        return self.descent.conv_success()

    def iter_count(self) -> int:
        return self.descent.iter_count()

    def call_count(self) -> int:
        return self.descent.call_count()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.descent!r})"


__all__ = [
    "Array",
    "ConvergencePredicate",
    "CoreMethod",
    "DescentError",
    "DescentMethod",
    "DimensionMismatch",
    "DomainError",
    "NonDescentDirectionError",
    "ObjectiveRay",
    "OptimizeResult",
    "StepConstraint",
    "Wrapper",
    "along_ray",
    "infstep",
    "stop_by_gradient",
]
