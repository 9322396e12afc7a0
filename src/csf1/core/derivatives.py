r"""Providers of the local derivatives of the state function :math:`F(x,p)` and of the
objective :math:`f(x,p)` that the F-1 method needs on top of the state derivatives
:math:`\nabla_x F` and :math:`\nabla_x f` supplied by the caller, i.e.,

- for the gradient, the parameter Jacobians :math:`\nabla_p f` and :math:`\nabla_p F`
- for the Hessian, the second derivatives of the Lagrangian
  :math:`L(x,p) = f(x,p) - \lambda^\top F(x,p)`, with the adjoint vector
  :math:`\lambda` held fixed, w.r.t. combinations of :math:`x` and :math:`p`.

Two providers are available: :class:`CasadiDerivatives`, which obtains them by
automatic differentiation of ``f`` and ``F`` in CasADi (and is the default), and
:class:`ExplicitDerivatives`, which takes them from the caller."""

from abc import ABC, abstractmethod
from functools import cached_property
from typing import Callable, Literal, Optional, Union

import casadi as cs
import numpy as np
import numpy.typing as npt

from ..errors import DimensionMismatchError
from .data import array2cs, as_matrix, as_vector, symbolic_vector


class DerivativeProvider(ABC):
    """Base class of the providers of the local derivatives.

    Parameters
    ----------
    nx : int
        Dimension of the state.
    np_ : int
        Dimension of the parameters.
    """

    def __init__(self, nx: int, np_: int) -> None:
        self.nx = nx
        self.np = np_

    @abstractmethod
    def parameter_jacobians(
        self, x: np.ndarray, p: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray]:
        r"""Computes the parameter Jacobians of the objective and state function.

        Parameters
        ----------
        x : 1D array
            The state.
        p : 1D array
            The parameters.

        Returns
        -------
        tuple of 2 arrays
            :math:`\nabla_p f`, of shape ``(np,)``, and :math:`\nabla_p F`, of shape
            ``(nx, np)``.
        """

    @abstractmethod
    def lagrangian_hessians(
        self, x: np.ndarray, p: np.ndarray, lam: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        r"""Computes the second derivatives of :math:`L = f - \lambda^\top F`.

        Parameters
        ----------
        x : 1D array
            The state.
        p : 1D array
            The parameters.
        lam : 1D array
            The adjoint vector.

        Returns
        -------
        tuple of 3 arrays
            :math:`\nabla_{xx} L` of shape ``(nx, nx)``, :math:`\nabla_{xp} L` of shape
            ``(nx, np)`` and :math:`\nabla_{pp} L` of shape ``(np, np)``.
        """


class CasadiDerivatives(DerivativeProvider):
    """Computes the derivatives by tracing ``f`` and ``F`` with CasADi symbolic
    variables and differentiating them algorithmically. The symbolic functions are
    built lazily, once per instance.

    Parameters
    ----------
    f : callable
        The objective ``f(x, p)``, returning a scalar.
    F : callable
        The state function ``F(x, p)``, returning a vector of size ``nx``.
    nx : int
        Dimension of the state.
    np_ : int
        Dimension of the parameters.
    sym_type : {"SX", "MX"}, optional
        The CasADi symbolic type to trace the functions with. By default, ``"SX"``.

    Notes
    -----
    ``f`` and ``F`` must accept CasADi column vectors of symbols for both ``x`` and
    ``p``, i.e., they must be written with indexing, arithmetic and CasADi functions
    (e.g., :func:`casadi.log` rather than :func:`numpy.log`). ``F`` can return a CasADi
    vector, or a list or tuple of scalar expressions.
    """

    def __init__(
        self,
        f: Callable,
        F: Callable,
        nx: int,
        np_: int,
        sym_type: Literal["SX", "MX"] = "SX",
    ) -> None:
        super().__init__(nx, np_)
        if sym_type not in ("SX", "MX"):
            raise ValueError(f"Invalid symbolic type '{sym_type}'.")
        self.sym_type = sym_type
        self._f = f
        self._F = F

    @cached_property
    def _symbols(self) -> dict[str, Union[cs.SX, cs.MX]]:
        """Symbols and traced expressions of ``f`` and ``F``."""
        sym = getattr(cs, self.sym_type)
        x = sym.sym("x", self.nx, 1)
        p = sym.sym("p", self.np, 1)
        lam = sym.sym("lam", self.nx, 1)
        F = symbolic_vector(self._F(x, p), "F", self.nx)
        f = self._f(x, p)
        if isinstance(f, (list, tuple, np.ndarray)):
            f = array2cs(f)
        elif not isinstance(f, (cs.SX, cs.MX)):
            f = sym(f)  # constant objective
        if f.numel() != 1:
            raise DimensionMismatchError("f", (), f.shape)
        return {"x": x, "p": p, "lam": lam, "F": F, "f": f}

    @cached_property
    def _state_jacobians(self) -> cs.Function:
        s = self._symbols
        x, p = s["x"], s["p"]
        return cs.Function(
            "state_jacobians",
            (x, p),
            (cs.jacobian(s["f"], x), cs.jacobian(s["F"], x)),
            ("x", "p"),
            ("fx", "Fx"),
        )

    @cached_property
    def _parameter_jacobians(self) -> cs.Function:
        s = self._symbols
        x, p = s["x"], s["p"]
        return cs.Function(
            "parameter_jacobians",
            (x, p),
            (cs.jacobian(s["f"], p), cs.jacobian(s["F"], p)),
            ("x", "p"),
            ("fp", "Fp"),
        )

    @cached_property
    def _lagrangian_hessians(self) -> cs.Function:
        s = self._symbols
        x, p, lam = s["x"], s["p"], s["lam"]
        L = s["f"] - cs.dot(lam, s["F"])
        Lx = cs.gradient(L, x)
        Lp = cs.gradient(L, p)
        return cs.Function(
            "lagrangian_hessians",
            (x, p, lam),
            (cs.jacobian(Lx, x), cs.jacobian(Lx, p), cs.jacobian(Lp, p)),
            ("x", "p", "lam"),
            ("Lxx", "Lxp", "Lpp"),
        )

    def dFdx(self, x: npt.ArrayLike, p: npt.ArrayLike) -> np.ndarray:
        """Jacobian of ``F`` w.r.t. the state, of shape ``(nx, nx)``. Can be passed to
        the F-1 method as the state-Jacobian provider."""
        return self._state_jacobians(x, p)[1].full()

    def dfdx(self, x: npt.ArrayLike, p: npt.ArrayLike) -> np.ndarray:
        """Gradient of ``f`` w.r.t. the state, as a row of shape ``(1, nx)``. Can be
        passed to the F-1 method as the objective's state-gradient provider."""
        return self._state_jacobians(x, p)[0].full()

    def parameter_jacobians(self, x, p):
        fp, Fp = self._parameter_jacobians(x, p)
        return fp.full().reshape(self.np), Fp.full()

    def lagrangian_hessians(self, x, p, lam):
        Lxx, Lxp, Lpp = self._lagrangian_hessians(x, p, lam)
        return Lxx.full(), Lxp.full(), Lpp.full()


class ExplicitDerivatives(DerivativeProvider):
    r"""Takes the derivatives from callables supplied by the caller. All callables take
    ``(x, p)`` as arguments.

    Parameters
    ----------
    nx : int
        Dimension of the state.
    np_ : int
        Dimension of the parameters.
    dfdp : callable
        :math:`\nabla_p f`, returning ``np`` entries.
    dFdp : callable
        :math:`\nabla_p F`, returning a ``(nx, np)`` matrix.
    d2fdx2 : callable, optional
        :math:`\nabla_{xx} f`, returning a ``(nx, nx)`` matrix.
    d2fdxdp : callable, optional
        :math:`\nabla_{xp} f`, returning a ``(nx, np)`` matrix.
    d2fdp2 : callable, optional
        :math:`\nabla_{pp} f`, returning a ``(np, np)`` matrix.
    d2Fdx2 : callable, optional
        :math:`\nabla_{xx} F`, returning a ``(nx, nx, nx)`` array whose entry
        ``(i, j, k)`` is the derivative of ``F[i]`` w.r.t. ``x[j]`` and ``x[k]``.
    d2Fdxdp : callable, optional
        :math:`\nabla_{xp} F`, returning a ``(nx, nx, np)`` array.
    d2Fdp2 : callable, optional
        :math:`\nabla_{pp} F`, returning a ``(nx, np, np)`` array.

    Notes
    -----
    The second-order callables are only needed for the Hessian. If any of them is
    missing, the corresponding term is taken as zero, e.g., a state function that is
    linear in the parameters needs no ``d2Fdp2``.
    """

    def __init__(
        self,
        nx: int,
        np_: int,
        dfdp: Callable,
        dFdp: Callable,
        d2fdx2: Optional[Callable] = None,
        d2fdxdp: Optional[Callable] = None,
        d2fdp2: Optional[Callable] = None,
        d2Fdx2: Optional[Callable] = None,
        d2Fdxdp: Optional[Callable] = None,
        d2Fdp2: Optional[Callable] = None,
    ) -> None:
        super().__init__(nx, np_)
        self.dfdp = dfdp
        self.dFdp = dFdp
        self.d2fdx2 = d2fdx2
        self.d2fdxdp = d2fdxdp
        self.d2fdp2 = d2fdp2
        self.d2Fdx2 = d2Fdx2
        self.d2Fdxdp = d2Fdxdp
        self.d2Fdp2 = d2Fdp2

    def parameter_jacobians(self, x, p):
        fp = as_vector(self.dfdp(x, p), "dfdp", self.np)
        Fp = as_matrix(self.dFdp(x, p), "dFdp", (self.nx, self.np))
        return fp, Fp

    def lagrangian_hessians(self, x, p, lam):
        nx, np_ = self.nx, self.np
        Lxx = self._term(self.d2fdx2, self.d2Fdx2, "x2", (nx, nx), x, p, lam)
        Lxp = self._term(self.d2fdxdp, self.d2Fdxdp, "xdp", (nx, np_), x, p, lam)
        Lpp = self._term(self.d2fdp2, self.d2Fdp2, "p2", (np_, np_), x, p, lam)
        return Lxx, Lxp, Lpp

    def _term(
        self,
        fun_f: Optional[Callable],
        fun_F: Optional[Callable],
        which: str,
        shape: tuple[int, int],
        x: np.ndarray,
        p: np.ndarray,
        lam: np.ndarray,
    ) -> np.ndarray:
        """Assembles one second derivative of the Lagrangian, i.e.,
        ``d2f - sum_i lam_i d2F_i``."""
        out = np.zeros(shape)
        if fun_f is not None:
            out += as_matrix(fun_f(x, p), f"d2fd{which}", shape)
        if fun_F is not None:
            T = np.asarray(fun_F(x, p), dtype=float)
            expected = (self.nx, *shape)
            if T.shape != expected:
                raise DimensionMismatchError(f"d2Fd{which}", expected, T.shape)
            out -= np.tensordot(lam, T, axes=1)
        return out
