r"""**C**\ a\ **s**\ ADi-**F1** (**csf1**, for short) is a library that efficiently
computes the objective, gradient and Hessian of a function
:math:`\hat{f}(p) = f(s(p), p)` defined implicitly through the steady state
:math:`s(p)`, i.e., the root of :math:`F(x, p) = 0`, via the F-1 method: the steady
state and its factorized Jacobian are cached and reused across calls at the same
parameter, and derivatives follow from the implicit function theorem and the adjoint
method, never by differentiating through the solver's iterations.

Usage
=====

.. code-block:: python

    import csf1

    mem = csf1.initialize(x0, p0)
    alg = csf1.NewtonSolver(tol=1e-10)
    f_hat = csf1.objective(f, F, dFdx, mem, p, alg)
    grad = csf1.gradient(f, F, dfdx, dFdx, mem, p, alg)
    hess = csf1.hessian(f, F, dfdx, dFdx, mem, p, alg)
"""

__version__ = "0.1.0"

__all__ = [
    "CasadiDerivatives",
    "ConvergenceError",
    "DimensionMismatchError",
    "ExplicitDerivatives",
    "F1Method",
    "F1MethodError",
    "FactorizationError",
    "Memory",
    "NewtonSolver",
    "ScipyRootSolver",
    "SteadyStateSolver",
    "Tier",
    "gradient",
    "hessian",
    "initialize",
    "objective",
    "util",
]

import logging

from . import util
from .core.cache import Memory, Tier
from .core.derivatives import CasadiDerivatives, ExplicitDerivatives
from .core.solvers import NewtonSolver, ScipyRootSolver, SteadyStateSolver
from .errors import (
    ConvergenceError,
    DimensionMismatchError,
    F1MethodError,
    FactorizationError,
)
from .method import F1Method, gradient, hessian, initialize, objective

logging.getLogger(__name__).addHandler(logging.NullHandler())
