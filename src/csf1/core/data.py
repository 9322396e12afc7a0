"""A collection of functions for moving data between the caller's callables, CasADi
and numpy. Numeric callables may return numpy arrays, lists, scalars or
:class:`casadi.DM`, while symbolic ones may return CasADi expressions or lists of them.
These helpers bring all of them to a common, shape-checked form."""

from typing import Union

import casadi as cs
import numpy as np
import numpy.typing as npt

from ..errors import DimensionMismatchError


def array2cs(x: Union[list, tuple, np.ndarray]) -> Union[cs.SX, cs.MX]:
    """Converts a sequence (or a numpy array of objects) of scalar symbolic
    expressions to a single symbolic column vector.

    Parameters
    ----------
    x : list, tuple or numpy array of casadi.SX or MX
        The collection of symbolic scalars. Can already be a symbolic variable, in
        which case it is returned as is.

    Returns
    -------
    casadi.SX or MX
        A single SX or MX column vector whose entries are the ``x``'s entries.
    """
    if isinstance(x, (cs.SX, cs.MX, cs.DM)):
        return x
    if isinstance(x, np.ndarray):
        x = x.ravel(order="F").tolist()
    return cs.vertcat(*x)


def symbolic_vector(
    value: Union[cs.SX, cs.MX, list, tuple, np.ndarray], name: str, size: int
) -> Union[cs.SX, cs.MX]:
    """Brings the symbolic output of a caller's function to a column vector and checks
    its size.

    Parameters
    ----------
    value : casadi.SX or MX, or collection of them
        The output to convert.
    name : str
        Name of the quantity, used in the error message.
    size : int
        Expected number of entries.

    Returns
    -------
    casadi.SX or MX
        The output as a ``(size, 1)`` symbolic vector.

    Raises
    ------
    DimensionMismatchError
        Raises if the output does not have ``size`` entries.
    """
    value = cs.vec(array2cs(value))
    if value.shape != (size, 1):
        raise DimensionMismatchError(name, (size,), value.shape)
    return value


def as_vector(
    value: Union[npt.ArrayLike, cs.DM], name: str, size: int
) -> npt.NDArray[np.floating]:
    """Converts a numerical vector-like quantity to a 1D float array of the given size.
    Row and column vectors, e.g., ``(1, n)`` or ``(n, 1)``, are flattened.

    Parameters
    ----------
    value : array_like or casadi.DM
        The value to convert.
    name : str
        Name of the quantity, used in the error message.
    size : int
        Expected number of entries.

    Returns
    -------
    array of floats
        A copy of the value as an array of shape ``(size,)``.

    Raises
    ------
    DimensionMismatchError
        Raises if the value is not a vector with ``size`` entries.
    """
    if isinstance(value, cs.DM):
        value = value.full()
    arr = np.array(value, dtype=float)
    shape = arr.shape
    if arr.ndim > 2 or (arr.ndim == 2 and 1 not in shape) or arr.size != size:
        raise DimensionMismatchError(name, (size,), shape)
    return arr.reshape(size)


def as_matrix(
    value: Union[npt.ArrayLike, cs.DM], name: str, shape: tuple[int, int]
) -> npt.NDArray[np.floating]:
    """Converts a numerical matrix-like quantity to a 2D float array of the given
    shape. A vector is accepted in place of a matrix with a singleton dimension.

    Parameters
    ----------
    value : array_like or casadi.DM
        The value to convert.
    name : str
        Name of the quantity, used in the error message.
    shape : tuple of 2 ints
        Expected shape.

    Returns
    -------
    array of floats
        The value as an array of shape ``shape``.

    Raises
    ------
    DimensionMismatchError
        Raises if the value cannot be seen as a matrix of shape ``shape``.
    """
    if isinstance(value, cs.DM):
        value = value.full()
    arr = np.array(value, dtype=float)
    if arr.shape != shape:
        if arr.ndim > 2 or arr.size != shape[0] * shape[1] or 1 not in shape:
            raise DimensionMismatchError(name, shape, arr.shape)
        arr = arr.reshape(shape)
    return arr


def as_scalar(value: Union[npt.ArrayLike, cs.DM], name: str) -> float:
    """Converts a numerical scalar-like quantity, e.g., a ``1x1`` :class:`casadi.DM`,
    to a Python float."""
    if isinstance(value, cs.DM):
        value = value.full()
    arr = np.asarray(value, dtype=float)
    if arr.size != 1:
        raise DimensionMismatchError(name, (), arr.shape)
    return arr.item()
