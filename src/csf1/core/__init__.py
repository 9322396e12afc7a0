r"""This module contains the core components of the F-1 method, on top of which the
public functions in :mod:`csf1.method` are built.

Overview
========

It contains the following submodules:

- :mod:`csf1.core.cache`: the tiered cache :class:`csf1.core.cache.Memory`, holding the
  steady state and its factorized Jacobian (tier 0), the adjoint vector and gradient
  (tier 1), and the state sensitivity and Hessian (tier 2), each keyed to the last
  parameter it was computed for.
- :mod:`csf1.core.data`: a collection of functions for converting the outputs of the
  caller's functions (numpy, CasADi, lists) to shape-checked arrays and vectors.
- :mod:`csf1.core.derivatives`: providers of the parameter and second-order derivatives
  of the objective and state function, either computed via CasADi's automatic
  differentiation or supplied explicitly.
- :mod:`csf1.core.implicit`: the implicit function theorem and the adjoint method,
  producing the gradient and Hessian from the cached factorization.
- :mod:`csf1.core.linalg`: LU factorization of the state-Jacobian, with checks on its
  conditioning.
- :mod:`csf1.core.solvers`: the steady-state solver interface and its Newton and SciPy
  strategies.
- :mod:`csf1.core.state`: resolution of the steady state, warm-started from the last
  converged one.

Submodules
==========

.. autosummary::
   :toctree: generated
   :template: module.rst

   cache
   data
   derivatives
   implicit
   linalg
   solvers
   state
"""
