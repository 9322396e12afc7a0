"""Tiered memoization of the quantities computed by the F-1 method. The cache has
exactly three tiers, each depending on the ones below it:

- tier 0 (:attr:`Tier.STATE`): the steady state and the factorized state-Jacobian
- tier 1 (:attr:`Tier.GRADIENT`): the adjoint vector, the parameter Jacobians and the
  gradient of the objective
- tier 2 (:attr:`Tier.HESSIAN`): the sensitivity of the state w.r.t. the parameters
  and the Hessian of the objective.

Each tier remembers the parameter it was last computed for. Querying a tier at a
different parameter invalidates that tier and all those above it, so that they are
recomputed before being read. Artifacts are only ever replaced as a whole on a
successful recomputation (see :meth:`Memory.commit`), so a failure never leaves a tier
half-updated."""

import logging
from enum import IntEnum
from typing import TYPE_CHECKING, Any, Optional

import numpy as np
import numpy.typing as npt

from ..errors import DimensionMismatchError
from .data import as_vector

if TYPE_CHECKING:
    from .linalg import LuFactorization

logger = logging.getLogger(__name__)


class Tier(IntEnum):
    """The tiers of the cache, in order of dependency."""

    STATE = 0
    GRADIENT = 1
    HESSIAN = 2


_ARTIFACTS: dict[Tier, tuple[str, ...]] = {
    Tier.STATE: ("x", "factorization"),
    Tier.GRADIENT: ("lam", "fp", "Fp", "grad"),
    Tier.HESSIAN: ("S", "hess"),
}


class Memory:
    """Cache record of the F-1 method, holding one slot per tier. Create it via
    :func:`csf1.initialize`, and pass it to every call of :func:`csf1.objective`,
    :func:`csf1.gradient` and :func:`csf1.hessian` of the same optimization run.

    Parameters
    ----------
    x0 : array_like
        Initial guess of the steady state. It fixes the state dimension, and is used
        to (cold) start the first solver run. Subsequent runs are warm-started from the
        last converged state.
    p0 : array_like
        Initial parameter. It fixes the parameter dimension. No tier is valid for it
        until it is queried.
    atol : float, optional
        Absolute tolerance for deciding whether a queried parameter is the same as the
        cached one. By default, ``0``.
    rtol : float, optional
        Relative tolerance for the same purpose. By default, ``0``. When both
        tolerances are zero, parameters are compared by exact equality.

    Notes
    -----
    The instance is mutated in place by every call, and is not thread safe. It must be
    owned by a single optimization run; concurrent calls with different parameters
    race on the validity of the tiers and are not supported.
    """

    def __init__(
        self,
        x0: npt.ArrayLike,
        p0: npt.ArrayLike,
        atol: float = 0.0,
        rtol: float = 0.0,
    ) -> None:
        x0 = np.array(x0, dtype=float)
        p0 = np.array(p0, dtype=float)
        if x0.ndim != 1 or x0.size == 0:
            raise DimensionMismatchError("x0", ("nx",), x0.shape)
        if p0.ndim != 1 or p0.size == 0:
            raise DimensionMismatchError("p0", ("np",), p0.shape)
        if atol < 0 or rtol < 0:
            raise ValueError("Tolerances must be non-negative.")
        self.nx = x0.size
        self.np = p0.size
        self.atol = atol
        self.rtol = rtol
        self.x0 = x0
        self.p0 = p0
        self._params: list[Optional[np.ndarray]] = [None] * len(Tier)
        self._pending: list[Optional[np.ndarray]] = [None] * len(Tier)
        # tier 0
        self.x: np.ndarray = x0.copy()
        self.factorization: Optional["LuFactorization"] = None
        # tier 1
        self.lam: Optional[np.ndarray] = None
        self.fp: Optional[np.ndarray] = None
        self.Fp: Optional[np.ndarray] = None
        self.grad: Optional[np.ndarray] = None
        # tier 2
        self.S: Optional[np.ndarray] = None
        self.hess: Optional[np.ndarray] = None

    @property
    def exact(self) -> bool:
        """Gets whether parameters are compared by exact equality."""
        return self.atol == 0.0 and self.rtol == 0.0

    def check_parameter(self, p: npt.ArrayLike) -> np.ndarray:
        """Converts the parameter to a 1D float array and checks its dimension.

        Raises
        ------
        DimensionMismatchError
            Raises if ``p`` does not have the dimension fixed at initialization.
        """
        return as_vector(p, "p", self.np)

    def _same(self, p: np.ndarray, q: Optional[np.ndarray]) -> bool:
        if q is None:
            return False
        if self.exact:
            return np.array_equal(p, q)
        return np.allclose(p, q, rtol=self.rtol, atol=self.atol)

    def is_valid(self, tier: Tier, p: npt.ArrayLike) -> bool:
        """Checks, without side effects, whether the given tier is valid for ``p``.

        Parameters
        ----------
        tier : Tier
            The tier to check.
        p : array_like
            The parameter to check validity for.

        Returns
        -------
        bool
            ``True`` if the tier's artifacts were computed for ``p``.
        """
        return self._same(self.check_parameter(p), self._params[tier])

    def ensure(self, tier: Tier, p: npt.ArrayLike) -> bool:
        """Compares ``p`` to the parameter cached for the given tier.

        Parameters
        ----------
        tier : Tier
            The tier to query.
        p : array_like
            The queried parameter.

        Returns
        -------
        bool
            ``True`` if the tier is valid for ``p``, and its artifacts can be read.
            Otherwise, ``False``, in which case the tier and all those above it are now
            marked as stale, ``p`` is recorded as the tier's pending parameter, and the
            tier must be recomputed and committed via :meth:`commit`.
        """
        p = self.check_parameter(p)
        if self._same(p, self._params[tier]):
            logger.debug("Cache hit at tier %s.", tier.name)
            return True
        logger.debug("Cache miss at tier %s.", tier.name)
        self.invalidate(tier)
        self._pending[tier] = p.copy()
        return False

    def invalidate(self, tier: Tier = Tier.STATE) -> None:
        """Marks the given tier and all those above it as stale. Artifacts are kept
        (e.g., the last converged state, used for warm starts), but cannot be read
        until recomputed.

        Parameters
        ----------
        tier : Tier, optional
            The lowest tier to invalidate. By default, all tiers are invalidated.
        """
        for t in range(tier, len(Tier)):
            self._params[t] = None

    def commit(self, tier: Tier, p: npt.ArrayLike, **artifacts: Any) -> None:
        """Stores the freshly computed artifacts of the given tier and marks it valid
        for ``p``.

        Parameters
        ----------
        tier : Tier
            The tier to commit.
        p : array_like
            The parameter the artifacts were computed for.
        artifacts
            The artifacts of the tier, all of which must be provided, i.e.,
            ``x, factorization`` for tier 0; ``lam, fp, Fp, grad`` for tier 1; and
            ``S, hess`` for tier 2.

        Raises
        ------
        ValueError
            Raises if the artifacts do not match the tier, or if a lower tier is not
            valid for ``p``.
        """
        names = _ARTIFACTS[tier]
        if set(artifacts) != set(names):
            raise ValueError(
                f"Tier {tier.name} expects artifacts {names}; got {tuple(artifacts)}."
            )
        p = self.check_parameter(p)
        for t in range(tier):
            if not self._same(p, self._params[t]):
                raise ValueError(
                    f"Cannot commit tier {tier.name}: tier {Tier(t).name} is not valid "
                    "for the same parameter."
                )
        for name in names:
            setattr(self, name, artifacts[name])
        self._params[tier] = p.copy()
        self._pending[tier] = None

    def parameter(self, tier: Tier) -> Optional[np.ndarray]:
        """Gets the parameter the given tier is valid for, or ``None`` if stale."""
        p = self._params[tier]
        return None if p is None else p.copy()

    def pending(self, tier: Tier) -> Optional[np.ndarray]:
        """Gets the parameter the given tier is waiting to be recomputed for, if any."""
        p = self._pending[tier]
        return None if p is None else p.copy()

    def __repr__(self) -> str:
        valid = ",".join(t.name for t in Tier if self._params[t] is not None)
        return f"<{self.__class__.__name__}(nx={self.nx},np={self.np},valid=[{valid}])>"
