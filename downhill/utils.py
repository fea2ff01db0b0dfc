"""Matrix helpers behind the quasi-Newton methods.

The modified Cholesky factorization and the rank-one factor updates are
written against NumPy alone, without SciPy.
"""

from __future__ import annotations

import math
from typing import Optional, Tuple

import numpy as np

from .core import Array, DimensionMismatch
from .logging import get_logger

logger = get_logger(__name__)


def sqmatr(vec: Array, dtype: Optional[np.dtype] = None) -> Array:
    """Create an uninitialized ``N x N`` matrix for a length-``N`` vector.

    The element type defaults to that of ``vec``.
    """
    vec = np.asarray(vec)
    if vec.ndim != 1:
        raise DimensionMismatch(f"Expected a 1-D vector, got shape {vec.shape}")
    n = vec.shape[0]
    return np.empty((n, n), dtype=vec.dtype if dtype is None else dtype)


def checksquare(A: Array) -> int:
    """Return the size of square matrix ``A``; raise for any other shape."""
    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        raise DimensionMismatch(f"Matrix is not square: shape {A.shape}")
    return A.shape[0]


def gamma_xi(A: Array) -> Tuple[float, float]:
    """Return the maximum absolute values of diagonal and off-diagonal elements of ``A``."""
    n = checksquare(A)
    gamma = float(np.abs(np.diag(A)).max()) if n > 0 else 0.0
    if n > 1:
        xi = float(np.abs(A[np.triu_indices(n, k=1)]).max())
    else:
        xi = 0.0
    return gamma, xi


def mcholesky(A: Array, delta: float = 1e-3, overwrite: bool = False) -> Array:
    """Modified Cholesky decomposition of a symmetric matrix.

    Gill, Murray, Wright, *Practical Optimization* (1981), p. 111. Returns an
    upper-triangular ``U`` such that ``U.T @ U = A + E`` where ``E`` is a
    non-negative diagonal perturbation, zero when ``A`` is sufficiently
    positive definite. Only the upper triangle of ``A`` is read.

    Args:
        A: Symmetric square matrix.
        delta: Relative lower bound for the pivots.
        overwrite: Store the factor in ``A`` (its strict lower triangle is
            zeroed) instead of a new array.
    """
    A = np.asarray(A)
    n = checksquare(A)
    dtype = A.dtype if np.issubdtype(A.dtype, np.floating) else np.float64
    eps = float(np.finfo(dtype).eps)

    gamma, xi = gamma_xi(A)
    nu = max(1.0, math.sqrt(max(n * n - 1, 0)))
    beta2 = max(gamma, xi / nu, eps)
    pivot_floor = max(delta * min(1.0, gamma), eps)

    # c holds the reduced matrix; row j of U is written as column j is eliminated
    c = np.triu(A).astype(dtype, copy=True)
    U = A if overwrite and A.dtype == dtype else np.zeros((n, n), dtype=dtype)
    for j in range(n):
        row = c[j, j + 1 :]
        theta = float(np.abs(row).max()) if row.size else 0.0
        d_j = max(abs(float(c[j, j])), theta * theta / beta2, pivot_floor)
        if d_j != c[j, j]:
            logger.debug("mcholesky: pivot %d perturbed from %g to %g", j, c[j, j], d_j)
        # L[i, j] = c[j, i] / d_j, U[j, i] = sqrt(d_j) * L[i, j]
        l_col = row / d_j
        c[j + 1 :, j + 1 :] -= np.triu(np.outer(row, l_col))
        U[j, :j] = 0.0
        U[j, j] = math.sqrt(d_j)
        U[j, j + 1 :] = row / math.sqrt(d_j)
    return U


def _solve_upper(U: Array, b: Array) -> Array:
    n = U.shape[0]
    x = np.array(b, dtype=U.dtype, copy=True)
    for i in range(n - 1, -1, -1):
        x[i] = (x[i] - U[i, i + 1 :] @ x[i + 1 :]) / U[i, i]
    return x


def _solve_lower(L: Array, b: Array) -> Array:
    n = L.shape[0]
    x = np.array(b, dtype=L.dtype, copy=True)
    for i in range(n):
        x[i] = (x[i] - L[i, :i] @ x[:i]) / L[i, i]
    return x


class CholeskyFactor:
    """Upper-triangular Cholesky factor ``U`` of ``H = U.T @ U``.

    Only the upper triangle is meaningful; every in-place update keeps the
    strict lower triangle at zero.
    """

    __slots__ = ("U",)

    def __init__(self, U: Array) -> None:
        U = np.asarray(U, dtype=float)
        checksquare(U)
        if np.any(np.tril(U, k=-1)):
            raise ValueError("CholeskyFactor expects an upper-triangular matrix")
        self.U = U

    @classmethod
    def identity(cls, n: int, scale: float = 1.0) -> "CholeskyFactor":
        """Factor of ``scale**2 * I``."""
        return cls(np.eye(n) * scale)

    @classmethod
    def from_matrix(cls, A: Array, delta: float = 1e-3) -> "CholeskyFactor":
        """Factor a symmetric, possibly indefinite, matrix with :func:`mcholesky`."""
        return cls(mcholesky(np.asarray(A, dtype=float), delta=delta))

    @property
    def size(self) -> int:
        return self.U.shape[0]

    def set_diagonal(self, value: float) -> None:
        """Reset the factor to ``value * I``."""
        self.U.fill(0.0)
        np.fill_diagonal(self.U, value)

    def assign(self, A: Array, delta: float = 1e-3) -> None:
        """Overwrite the factor with the modified Cholesky factor of ``A``."""
        if np.shape(A) != self.U.shape:
            raise DimensionMismatch(f"Expected a {self.U.shape} matrix, got {np.shape(A)}")
        self.U[...] = mcholesky(np.asarray(A, dtype=float), delta=delta)

    def matrix(self) -> Array:
        """Dense ``H = U.T @ U``."""
        return self.U.T @ self.U

    def mul_upper(self, v: Array) -> Array:
        """Return ``U @ v``."""
        return self.U @ v

    def matvec(self, v: Array) -> Array:
        """Return ``H @ v`` without forming ``H``."""
        return self.U.T @ (self.U @ v)

    def solve(self, b: Array) -> Array:
        """Solve ``H x = b`` with two triangular solves."""
        return _solve_upper(self.U, _solve_lower(self.U.T, b))

    def lowrankupdate(self, v: Array) -> None:
        """In-place update so that the factor represents ``H + v v^T``."""
        U = self.U
        x = np.array(v, dtype=U.dtype, copy=True)
        n = U.shape[0]
        for k in range(n):
            ukk = U[k, k]
            r = math.hypot(ukk, x[k])
            c = r / ukk
            s = x[k] / ukk
            U[k, k] = r
            if k + 1 < n:
                U[k, k + 1 :] = (U[k, k + 1 :] + s * x[k + 1 :]) / c
                x[k + 1 :] = c * x[k + 1 :] - s * U[k, k + 1 :]

    def lowrankdowndate(self, v: Array) -> bool:
        """In-place update so that the factor represents ``H - v v^T``.

        Returns ``False`` and leaves the factor untouched when the result
        would not be positive definite.
        """
        U = self.U.copy()
        x = np.array(v, dtype=U.dtype, copy=True)
        n = U.shape[0]
        for k in range(n):
            ukk = U[k, k]
            r2 = (ukk - x[k]) * (ukk + x[k])
            if not r2 > 0.0:
                return False
            r = math.sqrt(r2)
            c = r / ukk
            s = x[k] / ukk
            U[k, k] = r
            if k + 1 < n:
                U[k, k + 1 :] = (U[k, k + 1 :] - s * x[k + 1 :]) / c
                x[k + 1 :] = c * x[k + 1 :] - s * U[k, k + 1 :]
        self.U[...] = U
        return True

    def __repr__(self) -> str:
        return f"CholeskyFactor(size={self.size})"


__all__ = [
    "CholeskyFactor",
    "checksquare",
    "gamma_xi",
    "mcholesky",
    "sqmatr",
]
