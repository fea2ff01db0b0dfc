"""Strong Wolfe line search with cubic-interpolation bracketing and zoom.

Follows Nocedal & Wright, *Numerical Optimization* (2nd ed.), Algorithms 3.5
and 3.6, with the Hager-Zhang approximate Armijo test near the optimum where
``f(x0 + alpha*d) - f(x0)`` is dominated by rounding errors.
"""

from __future__ import annotations

import math
from typing import Optional, Tuple

import numpy as np

from .core import Array, DomainError, NonDescentDirectionError, ObjectiveRay
from .logging import get_logger

logger = get_logger(__name__)

NBRACKET_MAX = 200
NZOOM_MAX = 200
# minimal factor by which an extrapolated trial must exceed the current one
MIN_FACTOR = 17 / 16


def strong_backtracking(
    fdf: ObjectiveRay,
    x0: Array,
    d: Array,
    y0: Optional[float] = None,
    grad0: Optional[Array] = None,
    *,
    alpha: float = 1.0,
    alpha_max: float = math.inf,
    beta: float = 1e-4,
    sigma: float = 0.5,
) -> float:
    """Find a step satisfying the strong Wolfe conditions.

    Finds ``alpha`` such that ``f(x0 + alpha*d) <= f(x0) + beta*alpha*d.grad f(x0)``
    and ``|d.grad f(x0 + alpha*d)| <= sigma*|d.grad f(x0)|``.

    Args:
        fdf: Objective in ray form, ``fdf(x, alpha, d) -> (f(x + alpha*d), grad)``.
        x0: Origin of the search.
        d: Search direction. Must be a descent direction, ``d.grad f(x0) < 0``.
        y0: ``f(x0)`` if already known.
        grad0: ``grad f(x0)`` if already known.
        alpha: Initial trial step.
        alpha_max: Upper bound on the step; trials stay below it.
        beta: Sufficient-decrease coefficient.
        sigma: Curvature coefficient.

    Returns:
        A finite step ``alpha >= 0``. When the search stalls (undefined
        objective, bracket underflow) the best available step is returned and
        a warning is logged. The last evaluation of ``fdf`` is always at the
        returned step.

    Raises:
        NonDescentDirectionError: If ``d`` is not a descent direction.
    """
    if not (0 < beta < 1 and 0 < sigma < 1):
        raise ValueError("Line search coefficients must lie in (0, 1)")

    last_alpha: Optional[float] = None

    def trial(a: float) -> Optional[Tuple[float, float]]:
        """Evaluate at step ``a``; ``None`` means the objective is undefined there."""
        nonlocal last_alpha
        try:
            y, grad = fdf(x0, a, d)
        except (DomainError, ArithmeticError) as err:
            logger.debug("objective undefined at alpha = %r: %s", a, err)
            return None
        y = float(y)
        slope = float(np.dot(grad, d))
        if not (math.isfinite(y) and math.isfinite(slope)):
            logger.debug("objective not finite at alpha = %r", a)
            return None
        last_alpha = a
        return y, slope

    def finish(a: float) -> float:
        if last_alpha != a:
            trial(a)
        return a

    if y0 is None or grad0 is None:
        y0, grad0 = fdf(x0, 0.0, d)
        last_alpha = 0.0
    y0 = float(y0)
    g0 = float(np.dot(grad0, d))
    if not g0 < 0:
        raise NonDescentDirectionError(f"derivative is non-negative: {g0}")

    logger.debug("==LINE SEARCH START==\nx0 = %r\n d = %r\ny0 = %r\ng0 = %r", x0, d, y0, grad0)

    alpha = min(float(alpha), alpha_max / 2)
    if not alpha > 0:
        logger.warning("Non-positive step bound (alpha = %r); line search skipped", alpha)
        return finish(0.0)

    alpha_prev = 0.0
    y_prev = y0
    g_prev = g0

    mag = max(abs(y0), -alpha * g0)
    noise = math.sqrt(float(np.finfo(float).eps)) * mag

    wolfe1 = beta * g0
    wolfe2 = -sigma * g0

    def delta_y(a: float, y: float, g: float) -> float:
        dyp = (g + g0) * a / 2  # parabolic approximation
        if abs(dyp) < noise:
            logger.debug("  dy_parabolic = %r (*)\n  dy = %r", dyp, y - y0)
            return dyp
        logger.debug("  dy_parabolic = %r\n  dy = %r (*)", dyp, y - y0)
        return y - y0

    # bracketing phase; retreats from undefined points use up the budget too
    logger.debug("==BRACKETING THE MINIMUM==")
    for nbracket in range(1, NBRACKET_MAX + 1):
        result = trial(alpha)
        if result is None:
            stalled = alpha - alpha_prev <= 32 * np.spacing(alpha_prev or alpha)
            if stalled or nbracket == NBRACKET_MAX:
                logger.warning(
                    "Bracketing failed near alpha = %r, last valid step %r returned",
                    alpha,
                    alpha_prev,
                )
                return finish(alpha_prev)
            alpha = (alpha + alpha_prev) / 2
            continue
        y, g = result
        dy = delta_y(alpha, y, g)

        if dy > alpha * wolfe1 or y >= y_prev + noise:
            alo, ahi, ylo, yhi, glo, ghi = alpha_prev, alpha, y_prev, y, g_prev, g
            logger.debug("==BRACKETING SUCCESS: FUNCTION CHANGE== alpha = %r", alpha)
            break
        if abs(g) <= wolfe2:
            logger.debug("==BRACKETING SUCCESS==\n==LINE SEARCH SUCCESS== alpha = %r", alpha)
            return alpha
        if g >= 0:
            alo, ahi, ylo, yhi, glo, ghi = alpha_prev, alpha, y_prev, y, g_prev, g
            logger.debug("==BRACKETING SUCCESS: SLOPE SIGN== alpha = %r", alpha)
            break

        if nbracket == NBRACKET_MAX:
            logger.warning("Failed to bracket the minimum, last step %r returned", alpha)
            return alpha

        d_alpha = alpha - alpha_prev
        if d_alpha == 0:
            logger.warning("Bracketing step vanished, last step %r returned", alpha)
            return alpha

        # cubic interpolation (Nocedal & Wright 2nd ed., p.59)
        growth = min(2.0, math.sqrt(alpha_max / alpha))
        d1 = g_prev + g - 3 * (y - y_prev) / d_alpha
        det = d1 * d1 - g * g_prev
        alpha_new = growth * alpha
        if det >= 0:
            d2 = math.sqrt(det)
            denom = g - g_prev + 2 * d2
            if denom != 0:
                alpha_new = alpha - d_alpha * (g + d2 - d1) / denom
        if not (alpha < alpha_new < alpha_max and MIN_FACTOR * alpha < alpha_new):
            alpha_new = growth * alpha
        alpha_prev, alpha = alpha, alpha_new
        y_prev, g_prev = y, g

    # zoom phase, alo < ahi throughout
    small = math.sqrt(float(np.finfo(float).eps))
    logger.debug("==ZOOM PHASE== alo = %r, ahi = %r", alo, ahi)
    for nzoom in range(1, NZOOM_MAX + 1):
        d_alpha = ahi - alo
        if d_alpha < 32 * np.spacing(ahi):
            logger.warning("Step too small; interrupting line search (d_alpha = %r, alpha_hi = %r)", d_alpha, ahi)
            return finish(alo + d_alpha / 2)

        alpha = alo + d_alpha / 2
        d1 = ghi + glo - 3 * (yhi - ylo) / d_alpha
        det = d1 * d1 - ghi * glo
        if det >= 0:
            d2 = math.sqrt(det)
            denom = ghi - glo + 2 * d2
            if denom != 0:
                cubic = ahi - d_alpha * (ghi + d2 - d1) / denom
                # keep the trial inside the bracket and away from its ends
                if cubic - alo > small * alo and ahi - cubic > small * ahi:
                    alpha = cubic

        result = trial(alpha)
        if result is None:
            # undefined inside the bracket: shrink it from above
            ahi, yhi, ghi = alpha, math.inf, math.inf
            logger.debug("Zoom iteration %d: undefined at %r", nzoom, alpha)
            continue
        y, g = result
        dy = delta_y(alpha, y, g)
        if dy > alpha * wolfe1 or y >= ylo + noise:
            ahi, yhi, ghi = alpha, y, g
        elif abs(g) <= wolfe2:
            logger.debug("==ZOOM PHASE SUCCESS==\n==LINE SEARCH SUCCESS== alpha = %r", alpha)
            return alpha
        elif g > 0:
            ahi, yhi, ghi = alpha, y, g
        else:
            alo, ylo, glo = alpha, y, g
        logger.debug("Zoom iteration %d: alo = %r, ahi = %r, alpha = %r", nzoom, alo, ahi, alpha)

    logger.warning("Zoom phase did not converge, lower bracket %r returned", alo)
    return finish(alo)


__all__ = ["strong_backtracking"]
