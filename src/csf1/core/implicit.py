r"""First- and second-order total derivatives of :math:`\hat{f}(p) = f(s(p), p)` via
the implicit function theorem and the adjoint method, i.e., tiers 1 and 2 of the
cache.

Differentiating :math:`F(s(p), p) = 0` gives :math:`J \frac{ds}{dp} = -\nabla_p F`,
where :math:`J = \nabla_x F` is the state-Jacobian at the steady state. Hence,

.. math::
    \nabla \hat{f} = \nabla_p f - \lambda^\top \nabla_p F, \quad
    J^\top \lambda = \nabla_x f^\top,

which costs one transposed solve with the cached factorization of :math:`J`,
regardless of the number of parameters. The Hessian instead needs the full
sensitivity :math:`S = \frac{ds}{dp} = -J^{-1} \nabla_p F`, i.e., one solve per
parameter with the same factorization, and reads

.. math::
    \nabla^2 \hat{f} = S^\top \nabla_{xx} L S + S^\top \nabla_{xp} L
        + \nabla_{px} L S + \nabla_{pp} L,

where :math:`L = f - \lambda^\top F` with :math:`\lambda` held fixed.
"""

import warnings
from typing import Callable

import numpy as np
import numpy.typing as npt

from .cache import Memory, Tier
from .data import as_vector
from .derivatives import DerivativeProvider
from .solvers import SteadyStateSolver
from .state import resolve

SYMMETRY_RTOL = 1e-6
SYMMETRY_ATOL = 1e-8


def update_gradient(
    F: Callable,
    dfdx: Callable,
    dFdx: Callable,
    mem: Memory,
    p: npt.ArrayLike,
    alg: SteadyStateSolver,
    derivatives: DerivativeProvider,
) -> np.ndarray:
    """Makes sure tiers 0 and 1 of the cache are valid for ``p``, computing the adjoint
    vector and the gradient if needed.

    Parameters
    ----------
    F : callable
        The state function ``F(x, p)``.
    dfdx : callable
        The gradient of the objective w.r.t. the state, ``dfdx(x, p)``.
    dFdx : callable
        The Jacobian of ``F`` w.r.t. the state, ``dFdx(x, p)``.
    mem : Memory
        The cache of the run.
    p : array_like
        The parameter.
    alg : SteadyStateSolver
        The steady-state solver.
    derivatives : DerivativeProvider
        Provider of the parameter Jacobians of ``f`` and ``F``.

    Returns
    -------
    1D array
        The gradient of the objective, of shape ``(np,)``.
    """
    x = resolve(F, dFdx, mem, p, alg)
    if mem.ensure(Tier.GRADIENT, p):
        return mem.grad
    p = mem.check_parameter(p)
    fx = as_vector(dfdx(x, p), "dfdx", mem.nx)
    lam = mem.factorization.solve_transposed(fx)
    fp, Fp = derivatives.parameter_jacobians(x, p)
    grad = fp - lam @ Fp
    mem.commit(Tier.GRADIENT, p, lam=lam, fp=fp, Fp=Fp, grad=grad)
    return grad


def update_hessian(
    F: Callable,
    dfdx: Callable,
    dFdx: Callable,
    mem: Memory,
    p: npt.ArrayLike,
    alg: SteadyStateSolver,
    derivatives: DerivativeProvider,
) -> np.ndarray:
    """Makes sure all tiers of the cache are valid for ``p``, computing the sensitivity
    of the state and the Hessian if needed. See :func:`update_gradient` for the
    parameters.

    Returns
    -------
    2D array
        The Hessian of the objective, of shape ``(np, np)``.

    Warns
    -----
    RuntimeWarning
        Warns if the Hessian is not symmetric up to numerical tolerance, which hints at
        inconsistent second derivatives. Only asymmetric ``Lxx`` or ``Lpp`` can be
        detected, since the mixed terms enter the Hessian in symmetric pairs. The
        Hessian is not symmetrized.
    """
    update_gradient(F, dfdx, dFdx, mem, p, alg, derivatives)
    if mem.ensure(Tier.HESSIAN, p):
        return mem.hess
    p = mem.check_parameter(p)
    S = -mem.factorization.solve(mem.Fp)
    Lxx, Lxp, Lpp = derivatives.lagrangian_hessians(mem.x, p, mem.lam)
    SLxp = S.T @ Lxp
    hess = S.T @ Lxx @ S + SLxp + SLxp.T + Lpp
    if not np.allclose(hess, hess.T, rtol=SYMMETRY_RTOL, atol=SYMMETRY_ATOL):
        warnings.warn(
            "Hessian is not symmetric (max asymmetry "
            f"{np.abs(hess - hess.T).max():.3e}); check the second derivatives.",
            RuntimeWarning,
            stacklevel=3,
        )
    mem.commit(Tier.HESSIAN, p, S=S, hess=hess)
    return hess
