r"""
Objective, gradient and Hessian of a steady-state-constrained function
======================================================================

This example illustrates the basic usage of :mod:`csf1` in computing the derivatives of
an objective that depends on the parameters :math:`p` through the steady state
:math:`s(p)` of a model, i.e., the root of

.. math::

    F(x, p) = \begin{bmatrix}
        -2 (p_1 - x_1) - 4 p_2 (x_2 - x_1^2) x_1 \\
        p_2 (x_2 - x_1^2)
    \end{bmatrix} = 0,

where the objective is a mismatch function

.. math::

    f(x, p) = \frac{1}{2} \lVert x - 1 \rVert^2 + \frac{1}{2} \lVert \log p \rVert^2.
"""

# %%
# Defining the model
# ------------------
# The state function and the objective are written with CasADi functions (here,
# :func:`casadi.log`), so that they can be evaluated both numerically and symbolically.
# The latter allows :mod:`csf1` to compute the derivatives w.r.t. the parameters via
# automatic differentiation.

import casadi as cs
import numpy as np

import csf1
from csf1.util import findiff


def F(x, p):
    return [
        -2 * (p[0] - x[0]) - 4 * p[1] * (x[1] - x[0] ** 2) * x[0],
        p[1] * (x[1] - x[0] ** 2),
    ]


def f(x, p):
    return 0.5 * ((x[0] - 1) ** 2 + (x[1] - 1) ** 2) + 0.5 * (
        cs.log(p[0]) ** 2 + cs.log(p[1]) ** 2
    )


# %%
# The F-1 method needs the derivatives of ``F`` and ``f`` w.r.t. the state. These can be
# hand-written, or obtained by automatic differentiation as well.

derivatives = csf1.CasadiDerivatives(f, F, 2, 2)
dFdx = derivatives.dFdx
dfdx = derivatives.dfdx

# %%
# Computing objective, gradient and Hessian
# -----------------------------------------
# We pick an initial guess for the state and the parameters, and create the cache that
# will be shared by all the calls. The steady state is solved for (with Newton's method)
# and its Jacobian factorized only once for the parameter ``p0``, even though all three
# quantities are requested.

x0, p0 = np.array([1.0, 2.0]), np.array([3.0, 4.0])
mem = csf1.initialize(x0, p0)
alg = csf1.NewtonSolver(tol=1e-10)

f_hat = csf1.objective(f, F, dFdx, mem, p0, alg)
grad = csf1.gradient(f, F, dfdx, dFdx, mem, p0, alg, derivatives)
hess = csf1.hessian(f, F, dfdx, dFdx, mem, p0, alg, derivatives)
print("objective:", f_hat)
print("gradient:", grad)
print("Hessian:", hess, sep="\n")

# %%
# Checking against finite differences
# -----------------------------------
# Finite differences need a steady-state solve per evaluation, which is what the F-1
# method avoids; still, they are useful to validate the derivatives on small problems.

method = csf1.F1Method(f, F, dfdx, dFdx, x0, p0, alg=alg, derivatives=derivatives)
grad_fd = findiff.gradient(method.objective, p0)
hess_fd = findiff.jacobian(method.gradient, p0, h=1e-5)
print("gradient error:", np.abs(grad.ravel() - grad_fd).max())
print("Hessian error:", np.abs(hess - hess_fd).max())

# %%
# Moving the parameters
# ---------------------
# When the parameters change, e.g., along the iterations of an optimizer, all the cached
# quantities are invalidated, and the solver is warm-started from the last steady state.

for p in np.linspace(p0, [2.0, 5.0], 5):
    print(p, method.objective(p), alg.stats["iterations"], "Newton iterations")
