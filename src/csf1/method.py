r"""Public entry points of the F-1 method. Given a state function :math:`F(x,p)`, whose
root :math:`s(p)` is the steady state, and an objective :math:`f(x,p)`, they compute

- :func:`objective`: :math:`\hat{f}(p) = f(s(p), p)`
- :func:`gradient`: :math:`\nabla \hat{f}(p)`
- :func:`hessian`: :math:`\nabla^2 \hat{f}(p)`

sharing the same cache (see :func:`initialize`), so that the steady state is solved for
and its Jacobian factorized at most once per parameter value, regardless of how many of
the three quantities are requested and in which order. :class:`F1Method` bundles the
functions and the cache of a run into a single object.
"""

from functools import lru_cache
from typing import Callable, Literal, Optional

import numpy as np
import numpy.typing as npt

from .core.cache import Memory
from .core.data import as_scalar
from .core.derivatives import CasadiDerivatives, DerivativeProvider
from .core.implicit import update_gradient, update_hessian
from .core.solvers import NewtonSolver, SteadyStateSolver
from .core.state import resolve
from .errors import DimensionMismatchError


def initialize(
    x0: npt.ArrayLike, p0: npt.ArrayLike, atol: float = 0.0, rtol: float = 0.0
) -> Memory:
    """Creates the cache of an optimization run, with all tiers invalid.

    Parameters
    ----------
    x0 : array_like
        Initial guess of the steady state, fixing the state dimension.
    p0 : array_like
        Initial parameter, fixing the parameter dimension.
    atol : float, optional
        Absolute tolerance for matching a queried parameter with a cached one. By
        default, ``0``.
    rtol : float, optional
        Relative tolerance for the same purpose. By default, ``0``. When both are zero,
        parameters must be exactly equal for the cache to be hit.

    Returns
    -------
    Memory
        The cache, to be passed to :func:`objective`, :func:`gradient` and
        :func:`hessian`.
    """
    return Memory(x0, p0, atol, rtol)


@lru_cache(maxsize=32)
def _default_derivatives(
    f: Callable, F: Callable, nx: int, np_: int
) -> CasadiDerivatives:
    return CasadiDerivatives(f, F, nx, np_)


def _derivatives_or_default(
    derivatives: Optional[DerivativeProvider], f: Callable, F: Callable, mem: Memory
) -> DerivativeProvider:
    if derivatives is None:
        return _default_derivatives(f, F, mem.nx, mem.np)
    if derivatives.nx != mem.nx or derivatives.np != mem.np:
        raise DimensionMismatchError(
            "derivatives", (mem.nx, mem.np), (derivatives.nx, derivatives.np)
        )
    return derivatives


def objective(
    f: Callable,
    F: Callable,
    dFdx: Callable,
    mem: Memory,
    p: npt.ArrayLike,
    alg: SteadyStateSolver,
) -> float:
    """Computes the objective at the steady state, i.e., ``f(s(p), p)``.

    Parameters
    ----------
    f : callable
        The objective ``f(x, p)``, returning a scalar.
    F : callable
        The state function ``F(x, p)``, returning a vector of size ``nx``.
    dFdx : callable
        The Jacobian of ``F`` w.r.t. the state, returning a ``(nx, nx)`` matrix.
    mem : Memory
        The cache of the run, see :func:`initialize`.
    p : array_like
        The parameter.
    alg : SteadyStateSolver
        The steady-state solver, e.g., :class:`csf1.NewtonSolver`.

    Returns
    -------
    float
        The value of the objective.

    Raises
    ------
    DimensionMismatchError
        Raises if ``p`` does not have the dimension fixed at initialization.
    ConvergenceError
        Raises if the steady state could not be found.
    FactorizationError
        Raises if the state-Jacobian at the steady state is singular.
    """
    x = resolve(F, dFdx, mem, p, alg)
    return as_scalar(f(x, mem.check_parameter(p)), "f")


def gradient(
    f: Callable,
    F: Callable,
    dfdx: Callable,
    dFdx: Callable,
    mem: Memory,
    p: npt.ArrayLike,
    alg: SteadyStateSolver,
    derivatives: Optional[DerivativeProvider] = None,
) -> np.ndarray:
    """Computes the gradient of the objective at the steady state w.r.t. the parameters
    via the adjoint method.

    Parameters
    ----------
    f : callable
        The objective ``f(x, p)``.
    F : callable
        The state function ``F(x, p)``.
    dfdx : callable
        The gradient of ``f`` w.r.t. the state, returning ``nx`` entries (as a vector
        or a row).
    dFdx : callable
        The Jacobian of ``F`` w.r.t. the state.
    mem : Memory
        The cache of the run.
    p : array_like
        The parameter.
    alg : SteadyStateSolver
        The steady-state solver.
    derivatives : DerivativeProvider, optional
        Provider of the parameter Jacobians of ``f`` and ``F``. If ``None``, these are
        computed by automatic differentiation of ``f`` and ``F`` through
        :class:`csf1.core.derivatives.CasadiDerivatives`, in which case the two
        functions must support CasADi symbolic arguments. The automatic provider is
        memoized on the identity of ``f`` and ``F`` (for the last 32 pairs), so
        lambdas or closures created anew at each call rebuild it every time; in that
        case, pass ``derivatives`` explicitly or use :class:`F1Method`, which builds
        it once.

    Returns
    -------
    2D array
        The gradient, as a row of shape ``(1, np)``.

    Raises
    ------
    DimensionMismatchError, ConvergenceError, FactorizationError
        See :func:`objective`. The first is also raised if ``derivatives`` has
        dimensions other than the cache's.
    """
    derivatives = _derivatives_or_default(derivatives, f, F, mem)
    grad = update_gradient(F, dfdx, dFdx, mem, p, alg, derivatives)
    return grad.reshape(1, -1).copy()


def hessian(
    f: Callable,
    F: Callable,
    dfdx: Callable,
    dFdx: Callable,
    mem: Memory,
    p: npt.ArrayLike,
    alg: SteadyStateSolver,
    derivatives: Optional[DerivativeProvider] = None,
) -> np.ndarray:
    """Computes the Hessian of the objective at the steady state w.r.t. the parameters.
    See :func:`gradient` for the parameters, including the memoization of the default
    ``derivatives``; here, ``derivatives`` must also provide the second derivatives.

    Returns
    -------
    2D array
        The Hessian, of shape ``(np, np)``.

    Warns
    -----
    RuntimeWarning
        Warns if the Hessian is not symmetric up to numerical tolerance.
    """
    derivatives = _derivatives_or_default(derivatives, f, F, mem)
    return update_hessian(F, dfdx, dFdx, mem, p, alg, derivatives).copy()


class F1Method:
    """Binds the functions of a steady-state problem, its solver and the cache of an
    optimization run, so that the objective, gradient and Hessian can be called with
    the parameter alone.

    Parameters
    ----------
    f : callable
        The objective ``f(x, p)``.
    F : callable
        The state function ``F(x, p)``.
    dfdx : callable or None
        The gradient of ``f`` w.r.t. the state. If ``None``, it is computed by
        automatic differentiation (requires ``derivatives=None``).
    dFdx : callable or None
        The Jacobian of ``F`` w.r.t. the state. If ``None``, it is computed by
        automatic differentiation (requires ``derivatives=None``).
    x0 : array_like
        Initial guess of the steady state.
    p0 : array_like
        Initial parameter.
    alg : SteadyStateSolver, optional
        The steady-state solver. By default, :class:`csf1.NewtonSolver` with its
        default options.
    derivatives : DerivativeProvider, optional
        Provider of the parameter and second-order derivatives. If ``None``, a
        :class:`csf1.core.derivatives.CasadiDerivatives` is built from ``f`` and ``F``.
    sym_type : {"SX", "MX"}, optional
        The CasADi symbolic type used when the derivatives are computed automatically.
        By default, ``"SX"``.
    atol, rtol : float, optional
        Tolerances for matching parameters in the cache, see :func:`initialize`.
    """

    def __init__(
        self,
        f: Callable,
        F: Callable,
        dfdx: Optional[Callable],
        dFdx: Optional[Callable],
        x0: npt.ArrayLike,
        p0: npt.ArrayLike,
        alg: Optional[SteadyStateSolver] = None,
        derivatives: Optional[DerivativeProvider] = None,
        sym_type: Literal["SX", "MX"] = "SX",
        atol: float = 0.0,
        rtol: float = 0.0,
    ) -> None:
        self.memory = initialize(x0, p0, atol, rtol)
        if derivatives is None:
            derivatives = CasadiDerivatives(
                f, F, self.memory.nx, self.memory.np, sym_type
            )
            if dfdx is None:
                dfdx = derivatives.dfdx
            if dFdx is None:
                dFdx = derivatives.dFdx
        elif dfdx is None or dFdx is None:
            raise ValueError(
                "`dfdx` and `dFdx` must be given when `derivatives` is provided."
            )
        self.f = f
        self.F = F
        self.dfdx = dfdx
        self.dFdx = dFdx
        self.alg = NewtonSolver() if alg is None else alg
        self.derivatives = derivatives

    @property
    def state(self) -> np.ndarray:
        """Gets the last converged steady state (or the initial guess, if no state has
        been computed yet)."""
        return self.memory.x.copy()

    def objective(self, p: npt.ArrayLike) -> float:
        """See :func:`csf1.objective`."""
        return objective(self.f, self.F, self.dFdx, self.memory, p, self.alg)

    def gradient(self, p: npt.ArrayLike) -> np.ndarray:
        """See :func:`csf1.gradient`."""
        return gradient(
            self.f,
            self.F,
            self.dfdx,
            self.dFdx,
            self.memory,
            p,
            self.alg,
            self.derivatives,
        )

    def hessian(self, p: npt.ArrayLike) -> np.ndarray:
        """See :func:`csf1.hessian`."""
        return hessian(
            self.f,
            self.F,
            self.dfdx,
            self.dFdx,
            self.memory,
            p,
            self.alg,
            self.derivatives,
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.alg!r}, {self.memory!r}>"
