"""Steady-state solvers, i.e., root-finding strategies for ``F(x) = 0`` given the
residual ``F`` and its Jacobian ``dFdx``. The F-1 method only relies on the interface
of :class:`SteadyStateSolver`, so any strategy can be plugged in by subclassing it.
Two strategies are provided:

- :class:`NewtonSolver`: a plain Newton iteration, optionally with a backtracking line
  search
- :class:`ScipyRootSolver`: an adapter of :func:`scipy.optimize.root`.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import numpy as np
import numpy.typing as npt
from scipy.optimize import root

from ..errors import ConvergenceError

logger = logging.getLogger(__name__)


class SteadyStateSolver(ABC):
    """Base class of the steady-state solvers.

    Parameters
    ----------
    tol : float, optional
        Tolerance on the norm of the residual ``F`` at convergence. By default,
        ``1e-10``.
    max_iter : int, optional
        Maximum number of iterations. By default, ``50``.
    """

    def __init__(self, tol: float = 1e-10, max_iter: int = 50) -> None:
        if tol <= 0:
            raise ValueError("Tolerance must be positive.")
        if max_iter < 1:
            raise ValueError("Maximum number of iterations must be positive.")
        self.tol = tol
        self.max_iter = max_iter
        self.stats: dict[str, Any] = {}

    @abstractmethod
    def solve(
        self,
        F: Callable[[np.ndarray], np.ndarray],
        dFdx: Callable[[np.ndarray], np.ndarray],
        x0: npt.NDArray[np.floating],
        tol: Optional[float] = None,
    ) -> np.ndarray:
        """Solves ``F(x) = 0`` for ``x``.

        Parameters
        ----------
        F : callable
            The residual, mapping a 1D array to a 1D array of the same size.
        dFdx : callable
            The Jacobian of the residual, mapping a 1D array to a square matrix.
        x0 : 1D array
            The initial guess. It is not modified.
        tol : float, optional
            Tolerance on the norm of the residual. If ``None``, :attr:`tol` is used.

        Returns
        -------
        1D array
            The converged state.

        Raises
        ------
        ConvergenceError
            Raises if the tolerance is not met within :attr:`max_iter` iterations.

        Notes
        -----
        After each call, :attr:`stats` holds the ``"success"`` flag, the number of
        ``"iterations"``, the final ``"residual"`` norm and the ``"return_status"``.
        """

    def _converged(self, iterations: int, residual: float) -> None:
        self.stats = {
            "success": True,
            "iterations": iterations,
            "residual": residual,
            "return_status": "converged",
        }
        logger.debug(
            "%s converged in %d iterations (residual=%.3e).",
            self.__class__.__name__,
            iterations,
            residual,
        )

    def _failure(
        self, iterations: int, residual: float, tol: float, status: str
    ) -> ConvergenceError:
        self.stats = {
            "success": False,
            "iterations": iterations,
            "residual": residual,
            "return_status": status,
        }
        return ConvergenceError(
            f"{self.__class__.__name__} failed to converge: {status} (iterations="
            f"{iterations}, residual={residual:.3e}, tol={tol:.3e}).",
            self.stats,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(tol={self.tol},max_iter={self.max_iter})"


class NewtonSolver(SteadyStateSolver):
    """Newton's method, i.e., ``x <- x - dFdx(x)^{-1} F(x)`` until the norm of ``F``
    falls below the tolerance.

    Parameters
    ----------
    tol : float, optional
        Tolerance on the norm of the residual. By default, ``1e-10``.
    max_iter : int, optional
        Maximum number of Newton steps. By default, ``50``.
    linesearch : bool, optional
        If ``True``, each step is damped by backtracking until the residual norm
        decreases sufficiently (Armijo condition on ``0.5 ||F||^2``). By default,
        ``False``, i.e., full steps are taken.
    """

    def __init__(
        self, tol: float = 1e-10, max_iter: int = 50, linesearch: bool = False
    ) -> None:
        super().__init__(tol, max_iter)
        self.linesearch = linesearch

    def solve(self, F, dFdx, x0, tol=None):
        if tol is None:
            tol = self.tol
        x = np.array(x0, dtype=float)
        Fx = F(x)
        norm = np.linalg.norm(Fx)
        k = 0
        while not norm < tol:
            if not np.isfinite(norm):
                raise self._failure(k, norm, tol, "non-finite residual")
            if k >= self.max_iter:
                raise self._failure(k, norm, tol, "maximum iterations reached")
            try:
                dx = np.linalg.solve(dFdx(x), Fx)
            except np.linalg.LinAlgError as ex:
                raise self._failure(
                    k, norm, tol, "singular Jacobian during iterations"
                ) from ex
            k += 1
            if self.linesearch:
                x, Fx, norm = self._backtrack(F, x, dx, norm)
            else:
                x = x - dx
                Fx = F(x)
                norm = np.linalg.norm(Fx)
        self._converged(k, norm)
        return x

    @staticmethod
    def _backtrack(
        F: Callable[[np.ndarray], np.ndarray],
        x: np.ndarray,
        dx: np.ndarray,
        norm: float,
        c: float = 1e-4,
        shrink: float = 0.5,
        min_step: float = 1e-8,
    ) -> tuple[np.ndarray, np.ndarray, float]:
        """Backtracks along the Newton direction on the merit ``0.5 ||F||^2``."""
        t = 1.0
        while True:
            x_new = x - t * dx
            F_new = F(x_new)
            norm_new = np.linalg.norm(F_new)
            # the Newton direction has directional derivative -||F||^2 on the merit
            if norm_new**2 <= (1 - 2 * c * t) * norm**2 or t <= min_step:
                return x_new, F_new, norm_new
            t *= shrink


class ScipyRootSolver(SteadyStateSolver):
    """Adapter of :func:`scipy.optimize.root` as a steady-state solver.

    Parameters
    ----------
    method : str, optional
        The method of :func:`scipy.optimize.root` to use, e.g., ``"hybr"``, ``"lm"``.
        By default, ``"hybr"``.
    tol : float, optional
        Tolerance on the norm of the residual, checked after SciPy returns. By default,
        ``1e-10``.
    max_iter : int, optional
        Maximum number of iterations (or function evaluations, depending on the
        method). By default, ``200``. The Jacobian is only passed to the methods that
        use it, i.e., ``"hybr"`` and ``"lm"``.
    scipy_tol : float, optional
        Tolerance passed to :func:`scipy.optimize.root`, whose meaning depends on the
        method (for ``"hybr"``, it bounds the relative step). By default, ``1e-12``.
    options : dict, optional
        Additional options passed to :func:`scipy.optimize.root`. They take precedence
        over the iteration budget derived from ``max_iter``.
    """

    _BUDGET_KEY = {"hybr": "maxfev", "lm": "maxiter", "df-sane": "maxfev"}
    _USES_JACOBIAN = frozenset(("hybr", "lm"))

    def __init__(
        self,
        method: str = "hybr",
        tol: float = 1e-10,
        max_iter: int = 200,
        scipy_tol: float = 1e-12,
        options: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(tol, max_iter)
        self.method = method
        self.scipy_tol = scipy_tol
        self.options = {} if options is None else options

    def solve(self, F, dFdx, x0, tol=None):
        if tol is None:
            tol = self.tol
        budget_key = self._BUDGET_KEY.get(self.method, "maxiter")
        options = {budget_key: self.max_iter, **self.options}
        sol = root(
            F,
            np.array(x0, dtype=float),
            jac=dFdx if self.method in self._USES_JACOBIAN else None,
            method=self.method,
            tol=self.scipy_tol,
            options=options,
        )
        x = np.asarray(sol.x, dtype=float)
        norm = np.linalg.norm(F(x))
        iterations = int(getattr(sol, "nit", getattr(sol, "nfev", 0)))
        if not (np.isfinite(norm) and norm < tol):
            raise self._failure(iterations, norm, tol, str(sol.message))
        self._converged(iterations, norm)
        return x

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(method={self.method},tol={self.tol},"
            f"max_iter={self.max_iter})"
        )
