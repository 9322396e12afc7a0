"""Exceptions raised by the package. All of them derive from :class:`F1MethodError`,
and each one also inherits from the closest built-in (or numpy) exception, so that
generic handlers such as ``except ValueError`` keep working."""

from typing import Any, Optional

from numpy.linalg import LinAlgError


class F1MethodError(Exception):
    """Base class of all errors raised by :mod:`csf1`."""


class ConvergenceError(F1MethodError, RuntimeError):
    """Raised when the steady-state solver fails to reach the requested tolerance
    within its iteration budget.

    Parameters
    ----------
    msg : str
        The error message.
    stats : dict, optional
        Statistics of the failed solver run (see :attr:`SteadyStateSolver.stats`).
    """

    def __init__(self, msg: str, stats: Optional[dict[str, Any]] = None) -> None:
        super().__init__(msg)
        self.stats = {} if stats is None else stats


class FactorizationError(F1MethodError, LinAlgError):
    """Raised when the state-Jacobian at the steady state is singular, non-finite or
    too ill-conditioned to be factorized. In this case, the implicit function theorem
    does not apply, and no derivative can be computed.

    Parameters
    ----------
    msg : str
        The error message.
    rcond : float, optional
        Estimate of the reciprocal condition number of the Jacobian, if available.
    """

    def __init__(self, msg: str, rcond: Optional[float] = None) -> None:
        super().__init__(msg)
        self.rcond = rcond


class DimensionMismatchError(F1MethodError, ValueError):
    """Raised when a vector or matrix disagrees with the dimensions of the problem,
    i.e., the ones fixed by :func:`csf1.initialize`.

    Parameters
    ----------
    name : str
        Name of the offending quantity.
    expected : tuple of int
        The expected shape.
    got : tuple of int
        The shape that was received instead.
    """

    def __init__(
        self, name: str, expected: tuple[int, ...], got: tuple[int, ...]
    ) -> None:
        super().__init__(
            f"Dimension mismatch for `{name}`: expected shape {expected}, got {got}."
        )
        self.name = name
        self.expected = expected
        self.got = got
