# radau_engine/src/radau_engine/jacobian.py
"""Jacobian cache and staleness policy.

The :class:`JacobianManager` owns the last-evaluated Jacobian and decides when
it must be re-evaluated. Refreshing bumps the cache ``version`` and notifies
registered listeners (the iteration-matrix builder), so factorizations built
from an older Jacobian are never reused.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from .errors import JacobianEvaluationError

if TYPE_CHECKING:
    from .config import JacobianPolicy
    from .matrix_ops import Operator
    from .newton import NewtonIterationRecord
    from .problem import ODEProblem
    from .statistics import Statistics

logger = logging.getLogger(__name__)

_FD_THRESHOLD = 1e-5
_FD_NONFINITE_ERROR_MSG = "finite-difference jacobian is non-finite at x={x}"
_NO_JACOBIAN_ERROR_MSG = "jacobian has not been evaluated yet"


def numerical_jacobian(
    problem: ODEProblem,
    x: float,
    y: NDArray[np.floating],
    f0: NDArray[np.floating],
) -> NDArray[np.floating]:
    """
    Forward-difference approximation of ``df/dy``.

    Column ``j`` is perturbed by ``sqrt(eps * max(1e-5, |y_j|))``.

    Args:
        problem: Problem providing the right-hand side.
        x: Independent variable.
        y: State vector.
        f0: ``f(x, y)``.

    Raises:
        JacobianEvaluationError: If the approximation is non-finite.

    Returns:
        Dense Jacobian of shape (n, n).
    """
    n = problem.n
    eps = float(np.finfo(float).eps)
    jac = np.empty((n, n), dtype=np.float64)
    y_pert = np.array(y, dtype=np.float64, copy=True)
    for j in range(n):
        yj = y_pert[j]
        delta = float(np.sqrt(eps * max(_FD_THRESHOLD, abs(yj))))
        y_pert[j] = yj + delta
        jac[:, j] = (problem.eval_rhs(x, y_pert) - f0) / delta
        y_pert[j] = yj
    if not np.all(np.isfinite(jac)):
        raise JacobianEvaluationError(_FD_NONFINITE_ERROR_MSG.format(x=x))
    return jac


@dataclass(slots=True)
class JacobianCache:
    """Last-evaluated Jacobian and its bookkeeping.

    Attributes:
        matrix: Jacobian (dense ndarray or CSR), None before the first evaluation.
        x: Independent variable at which it was evaluated.
        valid: Whether the matrix may be used.
        version: Identity counter, incremented on every refresh.
        age: Accepted steps since the last refresh.
        forced_stale: Set after persistent Newton divergence.
        last_iterations: Newton iterations of the last attempt.
        last_rate: Newton contraction rate of the last attempt.
    """

    matrix: Operator | None = None
    x: float = float("nan")
    valid: bool = False
    version: int = 0
    age: int = 0
    forced_stale: bool = False
    last_iterations: int = 0
    last_rate: float = 0.0


class JacobianManager:
    """Owns the Jacobian cache and applies the staleness policy."""

    def __init__(
        self,
        problem: ODEProblem,
        policy: JacobianPolicy,
        statistics: Statistics,
    ) -> None:
        """
        Initialize the manager.

        Args:
            problem: Problem providing the Jacobian (or rhs for finite differences).
            policy: Staleness policy.
            statistics: Run statistics to update.
        """
        self.problem = problem
        self.policy = policy
        self.statistics = statistics
        self.cache = JacobianCache()
        self._listeners: list[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Listener registration
    # ------------------------------------------------------------------

    def add_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback invoked after every refresh."""
        self._listeners.append(callback)

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    @property
    def matrix(self) -> Operator:
        """Current Jacobian.

        Raises:
            JacobianEvaluationError: If no Jacobian has been evaluated yet.
        """
        if self.cache.matrix is None:
            raise JacobianEvaluationError(_NO_JACOBIAN_ERROR_MSG)
        return self.cache.matrix

    @property
    def version(self) -> int:
        """Identity counter of the cached Jacobian."""
        return self.cache.version

    def needs_refresh(self) -> bool:
        """Return True if the cached Jacobian must be re-evaluated."""
        cache = self.cache
        if not cache.valid or cache.matrix is None:
            return True
        if self.problem.constant_jacobian:
            return False
        if cache.forced_stale:
            return True
        if self.policy.max_age is not None and cache.age >= self.policy.max_age:
            return True
        return cache.last_iterations > 2 and cache.last_rate > self.policy.rate_threshold

    def is_current(self, x: float) -> bool:
        """Return True if the cached Jacobian is valid and was evaluated at x."""
        return self.cache.valid and self.cache.x == x

    def force_stale(self) -> None:
        """Require a refresh before the next attempt."""
        self.cache.forced_stale = True

    def note_newton(self, record: NewtonIterationRecord) -> None:
        """Remember the Newton convergence of the last accepted step."""
        self.cache.last_iterations = record.iterations
        self.cache.last_rate = record.rate

    def note_accepted(self) -> None:
        """Age the cached Jacobian by one accepted step."""
        self.cache.age += 1

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def refresh(
        self,
        x: float,
        y: NDArray[np.floating],
        f: NDArray[np.floating] | None = None,
    ) -> Operator:
        """
        Evaluate a fresh Jacobian at (x, y).

        Args:
            x: Independent variable.
            y: State vector.
            f: ``f(x, y)`` if already known (used by finite differences).

        Raises:
            JacobianEvaluationError: If the callback fails or returns non-finite data.

        Returns:
            The new Jacobian.
        """
        with self.statistics.timer("jacobian"):
            if self.problem.has_jacobian:
                matrix = self.problem.eval_jacobian(x, y)
            else:
                if f is None:
                    f = self.problem.eval_rhs(x, y)
                    self.statistics.n_function_eval += 1
                matrix = numerical_jacobian(self.problem, x, y, f)
                self.statistics.n_function_eval += self.problem.n

        self.statistics.n_jacobian_eval += 1
        self.cache = JacobianCache(
            matrix=matrix,
            x=float(x),
            valid=True,
            version=self.cache.version + 1,
        )
        logger.debug(
            "%s: jacobian refreshed at x=%.6g (version %d)",
            self.problem.name,
            x,
            self.cache.version,
        )

        for callback in self._listeners:
            callback()
        return matrix
