"""Descent methods for unconstrained minimization of smooth functions.

downhill provides line-search based methods (steepest descent, conjugate
gradient, BFGS and its Cholesky-factored variant), learning-rate methods
(fixed rate, momentum, Nesterov, hyper-gradient), and a composable layer of
wrappers for stop conditions, limits, step constraints and tracking.

Example:
    >>> import numpy as np
    >>> import downhill
    >>> def fg(x):
    ...     return float(x @ x), 2 * x
    >>> result = downhill.optimize(downhill.along_ray(fg), downhill.BFGS, np.ones(3))
    >>> result.converged
    True
"""

from .conjugate_gradient import CGDescent
from .core import (
    CoreMethod,
    DescentError,
    DescentMethod,
    DimensionMismatch,
    DomainError,
    NonDescentDirectionError,
    OptimizeResult,
    Wrapper,
    along_ray,
    infstep,
    stop_by_gradient,
)
from .gradient import (
    FixedRateDescent,
    HyperGradDescent,
    MomentumDescent,
    NesterovMomentum,
    SteepestDescent,
)
from .line_search import strong_backtracking
from .logging import configure_logging, get_logger, set_log_level
from .optimize import SolverConfig, convstat, optimize, solver
from .quasi_newton import BFGS, CholBFGS
from .utils import CholeskyFactor, mcholesky
from .wrappers import (
    BasicConvergenceStats,
    ConstrainStepSize,
    LimitCalls,
    LimitIters,
    OptFunc,
    StopByGradient,
    TrackCalls,
)

__version__ = "0.1.0"

__all__ = [
    "BFGS",
    "BasicConvergenceStats",
    "CGDescent",
    "CholBFGS",
    "CholeskyFactor",
    "ConstrainStepSize",
    "CoreMethod",
    "DescentError",
    "DescentMethod",
    "DimensionMismatch",
    "DomainError",
    "FixedRateDescent",
    "HyperGradDescent",
    "LimitCalls",
    "LimitIters",
    "MomentumDescent",
    "NesterovMomentum",
    "NonDescentDirectionError",
    "OptFunc",
    "OptimizeResult",
    "SolverConfig",
    "SteepestDescent",
    "StopByGradient",
    "TrackCalls",
    "Wrapper",
    "__version__",
    "along_ray",
    "configure_logging",
    "convstat",
    "get_logger",
    "infstep",
    "mcholesky",
    "optimize",
    "set_log_level",
    "solver",
    "stop_by_gradient",
    "strong_backtracking",
]
