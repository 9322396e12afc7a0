"""Resolution of the steady state ``s(p)``, i.e., the tier 0 of the cache. The state is
obtained from the solver warm-started at the last converged state, and the
state-Jacobian at the solution is factorized once and stored for all the subsequent
derivative computations at the same parameter."""

import logging
from typing import Callable

import numpy as np
import numpy.typing as npt

from .cache import Memory, Tier
from .data import as_matrix, as_vector
from .linalg import LuFactorization
from .solvers import SteadyStateSolver

logger = logging.getLogger(__name__)


def resolve(
    F: Callable,
    dFdx: Callable,
    mem: Memory,
    p: npt.ArrayLike,
    alg: SteadyStateSolver,
) -> np.ndarray:
    """Gets the steady state for the given parameter, solving for it only if the cache
    does not already hold it.

    Parameters
    ----------
    F : callable
        The state function ``F(x, p)``.
    dFdx : callable
        The Jacobian of ``F`` w.r.t. the state, ``dFdx(x, p)``.
    mem : Memory
        The cache of the run.
    p : array_like
        The parameter.
    alg : SteadyStateSolver
        The solver to use if the state is not cached.

    Returns
    -------
    1D array
        The steady state ``x`` such that ``F(x, p) = 0``.

    Raises
    ------
    DimensionMismatchError
        Raises if ``p``, or the outputs of ``F`` and ``dFdx``, have wrong dimensions.
    ConvergenceError
        Raises if the solver fails to converge.
    FactorizationError
        Raises if the state-Jacobian at the solution cannot be factorized.

    Notes
    -----
    On failure, the cache's last converged state and factorization are left untouched
    (tier 0 is, however, no longer valid, as a different parameter was queried).
    """
    p = mem.check_parameter(p)
    if mem.ensure(Tier.STATE, p):
        return mem.x
    nx = mem.nx

    def residual(x: np.ndarray) -> np.ndarray:
        return as_vector(F(x, p), "F", nx)

    def jacobian(x: np.ndarray) -> np.ndarray:
        return as_matrix(dFdx(x, p), "dFdx", (nx, nx))

    x = as_vector(alg.solve(residual, jacobian, mem.x.copy(), alg.tol), "x", nx)
    factorization = LuFactorization(jacobian(x))
    logger.debug("Steady state resolved (%r, %r).", alg, factorization)
    mem.commit(Tier.STATE, p, x=x, factorization=factorization)
    return x
