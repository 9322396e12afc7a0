"""LU factorization of the state-Jacobian, computed once per steady state and then
reused for all the linear solves of the F-1 method, both direct (for the sensitivity of
the state) and transposed (for the adjoint vector)."""

import warnings

import numpy as np
import numpy.typing as npt
from scipy.linalg import LinAlgWarning, get_lapack_funcs, lu_factor, lu_solve

from ..errors import DimensionMismatchError, FactorizationError

EPS = np.finfo(float).eps


class LuFactorization:
    """LU factorization of a square matrix with partial pivoting.

    Parameters
    ----------
    A : array_like
        The square matrix to factorize.
    rcond_tol : float, optional
        Threshold on the estimate of the reciprocal condition number (in 1-norm) below
        which the matrix is deemed numerically singular. By default, machine epsilon.

    Raises
    ------
    DimensionMismatchError
        Raises if the matrix is not square.
    FactorizationError
        Raises if the matrix has non-finite entries, is singular, or is too
        ill-conditioned.
    """

    def __init__(self, A: npt.ArrayLike, rcond_tol: float = EPS) -> None:
        A = np.asarray(A, dtype=float)
        if A.ndim != 2 or A.shape[0] != A.shape[1]:
            raise DimensionMismatchError("A", ("n", "n"), A.shape)
        if not np.isfinite(A).all():
            raise FactorizationError("Matrix has non-finite entries.")
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", LinAlgWarning)
            lu, piv = lu_factor(A, check_finite=False)
        if (np.diag(lu) == 0.0).any():
            raise FactorizationError("Matrix is singular (zero pivot).", 0.0)
        (gecon,) = get_lapack_funcs(("gecon",), (lu,))
        rcond, info = gecon(lu, np.linalg.norm(A, 1), norm="1")
        if info != 0:
            raise FactorizationError(f"Condition estimation failed (info={info}).")
        if rcond < rcond_tol:
            raise FactorizationError(
                f"Matrix is ill-conditioned (rcond={rcond:.3e} < {rcond_tol:.3e}).",
                rcond,
            )
        self.shape: tuple[int, int] = A.shape
        self.rcond: float = float(rcond)
        self._lu_piv = lu, piv

    def solve(self, b: npt.ArrayLike) -> np.ndarray:
        """Solves ``A x = b``. ``b`` can be a vector or a matrix, in which case each of
        its columns is solved for."""
        return lu_solve(self._lu_piv, b, trans=0, check_finite=False)

    def solve_transposed(self, b: npt.ArrayLike) -> np.ndarray:
        """Solves ``A^T x = b`` with the same factorization."""
        return lu_solve(self._lu_piv, b, trans=1, check_finite=False)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(shape={self.shape},rcond={self.rcond:.3e})>"
