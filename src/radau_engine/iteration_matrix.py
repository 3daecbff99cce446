# radau_engine/src/radau_engine/iteration_matrix.py
"""Assembly and factorization of the transformed Radau iteration matrices.

The 3-stage implicit system is decoupled into

- one real matrix ``(mu_real / h) M - J`` and
- one complex matrix ``(mu_complex / h) M - J``,

each of the problem's own dimension. Both are factorized once and reused for
every Newton correction (and across steps) while ``h`` stays within ``eps_h``
relative tolerance and the Jacobian version is unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .matrix_ops import build_shifted_operator
from .radau_tables import MU_COMPLEX, MU_REAL

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from .linear_solver import FactorizationHandle, LinearSolverBackend
    from .matrix_ops import Operator
    from .statistics import Statistics

logger = logging.getLogger(__name__)

_H_ERROR_MSG = "step size must be positive and finite; got {h}"


@dataclass(slots=True, frozen=True)
class IterationHandles:
    """Pair of factorizations used by one step attempt."""

    real: FactorizationHandle
    complex: FactorizationHandle

    @property
    def h(self) -> float:
        """Step size both matrices were assembled for."""
        return self.real.h

    @property
    def jacobian_version(self) -> int:
        """Jacobian version both matrices were assembled from."""
        return self.real.jacobian_version

    @property
    def valid(self) -> bool:
        """True while neither handle has been invalidated."""
        return self.real.valid and self.complex.valid


class IterationMatrixBuilder:
    """Builds, factorizes and caches the real and complex iteration matrices."""

    def __init__(
        self,
        backend: LinearSolverBackend,
        statistics: Statistics,
        *,
        mass: Operator | None = None,
        eps_h: float = 1e-3,
    ) -> None:
        """
        Initialize the builder.

        Args:
            backend: Linear-solver backend used for factorization.
            statistics: Run statistics to update.
            mass: Optional mass matrix (identity when None).
            eps_h: Relative tolerance on h for handle reuse.
        """
        self.backend = backend
        self.statistics = statistics
        self.mass = mass
        self.eps_h = float(eps_h)
        self._handles: IterationHandles | None = None
        self.last_reused = False

    @property
    def handles(self) -> IterationHandles | None:
        """Currently cached handles, if any."""
        return self._handles

    def invalidate(self) -> None:
        """Drop cached handles (Jacobian refresh or new run)."""
        if self._handles is not None:
            self._handles.real.invalidate()
            self._handles.complex.invalidate()
        self._handles = None

    def can_reuse(self, h: float, jacobian_version: int) -> bool:
        """Return True if cached handles match (h, jacobian_version)."""
        cached = self._handles
        if cached is None or not cached.valid:
            return False
        if cached.jacobian_version != jacobian_version:
            return False
        return abs(h - cached.h) <= self.eps_h * abs(cached.h)

    def _sparse_output(self) -> bool | None:
        name = getattr(self.backend, "name", None)
        if name == "dense":
            return False
        if name == "sparse":
            return True
        return None

    def build(self, jac: Operator, h: float) -> tuple[Operator, Operator]:
        """
        Assemble the real and complex iteration matrices for step size h.

        Args:
            jac: Jacobian.
            h: Step size.

        Raises:
            ValueError: If h is not positive and finite.

        Returns:
            (real_matrix, complex_matrix).
        """
        if not (h > 0.0 and h < float("inf")):
            raise ValueError(_H_ERROR_MSG.format(h=h))
        sparse = self._sparse_output()
        real = build_shifted_operator(MU_REAL / h, jac, self.mass, sparse=sparse)
        cplx = build_shifted_operator(MU_COMPLEX / h, jac, self.mass, sparse=sparse)
        return real, cplx

    def build_and_factorize(
        self,
        jac: Operator,
        h: float,
        jacobian_version: int,
    ) -> IterationHandles:
        """
        Return factorized iteration matrices for (jac, h), reusing cached ones.

        Args:
            jac: Jacobian.
            h: Step size.
            jacobian_version: Version of jac as reported by the JacobianManager.

        Raises:
            SingularMatrixError: If a matrix is singular.
            FactorizationError: If the backend fails to factorize.

        Returns:
            The real and complex handles.
        """
        if self.can_reuse(h, jacobian_version):
            self.last_reused = True
            return self._handles  # type: ignore[return-value]

        self.invalidate()
        self.last_reused = False
        real_mat, cplx_mat = self.build(jac, h)

        with self.statistics.timer("factor"):
            real = self.backend.factorize(real_mat)
        self.statistics.n_factorizations += 1
        with self.statistics.timer("factor"):
            cplx = self.backend.factorize(cplx_mat)
        self.statistics.n_factorizations += 1

        for handle in (real, cplx):
            handle.h = float(h)
            handle.jacobian_version = int(jacobian_version)

        self._handles = IterationHandles(real=real, complex=cplx)
        logger.debug("refactorized iteration matrices (h=%.6g, jacobian v%d)", h, jacobian_version)
        return self._handles

    def solve(self, handle: FactorizationHandle, rhs: NDArray[Any]) -> NDArray[Any]:
        """Solve with one of the cached handles, counting and timing the solve.

        Raises:
            SolveError: If the backend solve fails.
        """
        with self.statistics.timer("solve"):
            out = self.backend.solve(handle, rhs)
        self.statistics.n_linear_solves += 1
        return out
