"""Driver assembling a wrapper chain around a core method and running it."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Any, Optional, TextIO, Union

import numpy as np

from .core import (
    ConvergencePredicate,
    CoreMethod,
    DescentMethod,
    ObjectiveRay,
    OptimizeResult,
    StepConstraint,
    Wrapper,
)
from .logging import get_logger
from .wrappers import (
    BasicConvergenceStats,
    ConstrainStepSize,
    LimitCalls,
    LimitIters,
    OptFunc,
    StopByGradient,
    TrackCalls,
)

logger = get_logger(__name__)

Tracking = Union[None, TextIO, str, "os.PathLike[str]"]


@dataclass(frozen=True)
class SolverConfig:
    """
    Stop conditions and step bounds of a solver chain.

    Args:
        gtol: Stop when the gradient 2-norm is at most ``gtol``. ``None`` or a
            non-positive value disables the gradient test.
        maxiter: Stop after this many steps. ``None`` omits the counter, a
            negative value installs an unlimited one.
        maxcalls: Stop after this many objective evaluations, with the same
            conventions as ``maxiter``.
        convcond: Predicate ``(x, xpre, y, ypre, g) -> bool`` replacing the
            gradient test; the limits are then enforced by the same layer.
        constrain_step: ``(origin, direction) -> alpha_max`` bounding each step.
    """

    gtol: Optional[float] = 1e-6
    maxiter: Optional[int] = 100
    maxcalls: Optional[int] = None
    convcond: Optional[ConvergencePredicate] = None
    constrain_step: Optional[StepConstraint] = None

    def __post_init__(self) -> None:
        if self.gtol is not None and math.isnan(float(self.gtol)):
            raise ValueError("Gradient tolerance must be a number, got NaN")
        for name in ("maxiter", "maxcalls"):
            value = getattr(self, name)
            if value is not None and (isinstance(value, bool) or not isinstance(value, (int, np.integer))):
                raise TypeError(f"{name} must be an integer or None, got {value!r}")
        for name in ("convcond", "constrain_step"):
            value = getattr(self, name)
            if value is not None and not callable(value):
                raise TypeError(f"{name} must be callable or None, got {type(value).__name__}")

    @property
    def iter_limit(self) -> float:
        return _limit(self.maxiter)

    @property
    def call_limit(self) -> float:
        return _limit(self.maxcalls)


def _limit(value: Optional[int]) -> float:
    if value is None or value < 0:
        return math.inf
    return value


def _core_method(method: Any, x: Any) -> DescentMethod:
    if isinstance(method, type) and issubclass(method, CoreMethod):
        if x is None:
            raise ValueError(f"An argument vector is needed to construct {method.__name__}")
        return method(x)
    if isinstance(method, DescentMethod):
        return method
    raise TypeError(
        "method must be a CoreMethod subclass or a DescentMethod instance, "
        f"got {method!r}"
    )


def _wrap(method: DescentMethod, config: SolverConfig) -> DescentMethod:
    """Add the layers requested by ``config`` around ``method``, innermost first."""
    if config.constrain_step is not None:
        method = ConstrainStepSize(method, config.constrain_step)
    if config.convcond is not None:
        return BasicConvergenceStats(
            method,
            config.convcond,
            call_limit=config.call_limit,
            iter_limit=config.iter_limit,
        )
    if config.maxcalls is not None:
        method = LimitCalls(method, config.call_limit)
    if config.maxiter is not None:
        method = LimitIters(method, config.iter_limit)
    if config.gtol is not None and config.gtol > 0:
        method = StopByGradient(method, config.gtol)
    return method


def solver(method: Any, x: Any = None, **kwargs: Any) -> DescentMethod:
    """Return the wrapper chain for ``method`` without running it.

    ``method`` is a core method class (constructed from ``x``) or an instance.
    Keyword arguments are the fields of :class:`SolverConfig`.

    Example:
        >>> from downhill import BFGS, solver
        >>> chain = solver(BFGS, [0.0, 0.0], gtol=1e-8, maxiter=500)
    """
    config = SolverConfig(**kwargs)
    return _wrap(_core_method(method, x), config)


def _final_statistics(method: DescentMethod, result: OptimizeResult) -> str:
    return (
        "==FINAL STATISTICS==\n"
        f"# converged: {result.converged}\n"
        f"# final gradient: {result.gradient.tolist()}\n"
        f"# final argument: {result.argument.tolist()}\n"
        f"# previous argument: {method.step_origin().tolist()}\n"
        f"# final func value: {result.fun}\n"
        f"# previous func value: {method.fnval_origin()}\n"
        f"# number of iterations: {result.iterations}\n"
        f"# number of function calls: {result.calls}"
    )


def convstat(method: DescentMethod) -> OptimizeResult:
    """Collect the final state of ``method`` into an :class:`OptimizeResult`.

    Negative ``iterations`` or ``calls`` mean that the chain does not count
    them.
    """
    result = OptimizeResult(
        converged=bool(method.conv_success()),
        argument=np.array(method.argumentvec(), copy=True),
        gradient=np.array(method.gradientvec(), copy=True),
        iterations=method.iter_count(),
        calls=method.call_count(),
        fun=float(method.fnval()),
    )
    logger.info("\n%s", _final_statistics(method, result))
    return result


def _run(
    fdf: ObjectiveRay,
    method: DescentMethod,
    x0: Any,
    reset: Any,
    sink: Optional[TextIO],
    verbosity: int,
) -> OptimizeResult:
    optfn = OptFunc(fdf, method)
    method.init(optfn, x0, reset=reset)
    while True:
        method.step(optfn)
        if method.stopcond():
            break
    result = convstat(method)
    if sink is not None and verbosity > 0:
        sink.write(_final_statistics(method, result) + "\n")
    return result


def optimize(
    fdf: ObjectiveRay,
    method: Any,
    x0: Any,
    *,
    gtol: Optional[float] = 1e-6,
    convcond: Optional[ConvergencePredicate] = None,
    maxiter: Optional[int] = 100,
    maxcalls: Optional[int] = None,
    constrain_step: Optional[StepConstraint] = None,
    reset: Any = True,
    tracking: Tracking = None,
    verbosity: int = 1,
) -> OptimizeResult:
    """
    Minimize ``fdf`` starting from ``x0``.

    Args:
        fdf: Objective ``fdf(x, alpha, d) -> (f(x + alpha*d), grad f(x + alpha*d))``;
            use :func:`downhill.along_ray` to adapt a plain ``fg(x)``.
        method: Core method class (constructed from ``x0``), core method
            instance, or a prepared wrapper chain. A chain is used as is and
            the stopping keywords are ignored.
        x0: Starting point.
        gtol, convcond, maxiter, maxcalls, constrain_step: See
            :class:`SolverConfig`.
        reset: Passed to the method's ``init``. ``True`` resets the curvature
            estimates; for the quasi-Newton methods a number scales the
            initial probe step.
        tracking: Text stream or file path receiving every evaluation.
        verbosity: ``1`` writes evaluations, ``2`` adds the line search trace.

    Returns:
        OptimizeResult. Running into a limit is reported by ``converged=False``,
        never by an exception.

    Raises:
        TypeError: If ``method`` is not a descent method or class.
        DimensionMismatch: If ``x0`` does not fit the method's buffers.
    """
    if isinstance(tracking, (str, os.PathLike)):
        with open(tracking, "w") as sink:
            return optimize(
                fdf,
                method,
                x0,
                gtol=gtol,
                convcond=convcond,
                maxiter=maxiter,
                maxcalls=maxcalls,
                constrain_step=constrain_step,
                reset=reset,
                tracking=sink,
                verbosity=verbosity,
            )

    if isinstance(method, Wrapper):
        chain: DescentMethod = method
        if tracking is not None:
            chain = TrackCalls(chain, tracking, verbosity)
    else:
        config = SolverConfig(
            gtol=gtol,
            maxiter=maxiter,
            maxcalls=maxcalls,
            convcond=convcond,
            constrain_step=constrain_step,
        )
        core = _core_method(method, x0)
        if tracking is not None:
            core = TrackCalls(core, tracking, verbosity)
        chain = _wrap(core, config)

    logger.debug("Starting %r from %r", chain, x0)
    return _run(fdf, chain, x0, reset, tracking, verbosity)


__all__ = ["SolverConfig", "convstat", "optimize", "solver"]
