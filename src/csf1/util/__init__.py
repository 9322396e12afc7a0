r"""A collection of utility functions.

Overview
========

It contains the following submodules:

- :mod:`csf1.util.findiff`: central finite-difference approximations of gradients and
  Jacobians, for checking the derivatives of the F-1 method on small problems.

Submodules
==========

.. autosummary::
   :toctree: generated
   :template: module.rst

   findiff
"""

__all__ = ["findiff"]

from . import findiff
