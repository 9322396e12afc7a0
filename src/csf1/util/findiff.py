"""Central finite-difference approximations of gradients and Jacobians, meant for
checking the derivatives computed by the F-1 method (or those supplied by the user) on
small problems. Each evaluation of the objective requires a steady-state solve, so these
are not meant to be used in place of the F-1 method itself."""

from typing import Callable

import numpy as np
import numpy.typing as npt


def _step(p: np.ndarray, h: float, i: int) -> float:
    """Step size along the ``i``-th entry, scaled by the magnitude of the entry."""
    return h * max(1.0, abs(p[i]))


def gradient(
    fun: Callable[[np.ndarray], float], p: npt.ArrayLike, h: float = 1e-6
) -> np.ndarray:
    """Approximates the gradient of a scalar function by central differences.

    Parameters
    ----------
    fun : callable
        The scalar function of a 1D array.
    p : array_like
        The point at which the gradient is approximated.
    h : float, optional
        The relative step size. By default, ``1e-6``.

    Returns
    -------
    1D array
        The approximated gradient.
    """
    p = np.array(p, dtype=float).ravel()
    g = np.empty(p.size)
    for i in range(p.size):
        hi = _step(p, h, i)
        e = np.zeros(p.size)
        e[i] = hi
        g[i] = (float(fun(p + e)) - float(fun(p - e))) / (2 * hi)
    return g


def jacobian(
    fun: Callable[[np.ndarray], npt.ArrayLike], p: npt.ArrayLike, h: float = 1e-6
) -> np.ndarray:
    """Approximates the Jacobian of a vector function by central differences. Applied
    to a gradient function, it approximates the Hessian.

    Parameters
    ----------
    fun : callable
        The function of a 1D array, returning an array. Its output is flattened.
    p : array_like
        The point at which the Jacobian is approximated.
    h : float, optional
        The relative step size. By default, ``1e-6``.

    Returns
    -------
    2D array
        The approximated Jacobian, with as many rows as outputs of ``fun`` and as many
        columns as entries of ``p``.
    """
    p = np.array(p, dtype=float).ravel()
    columns = []
    for i in range(p.size):
        hi = _step(p, h, i)
        e = np.zeros(p.size)
        e[i] = hi
        plus = np.asarray(fun(p + e), dtype=float).ravel()
        minus = np.asarray(fun(p - e), dtype=float).ravel()
        columns.append((plus - minus) / (2 * hi))
    return np.stack(columns, axis=1)
