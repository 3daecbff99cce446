# radau_engine/src/radau_engine/problem.py
"""Problem definition: right-hand side, Jacobian and mass matrix.

An :class:`ODEProblem` describes ``M y' = f(x, y)`` with ``M = I`` when no mass
matrix is given. A singular (diagonal) mass matrix turns the corresponding rows
into algebraic constraints (index-1 DAE).

The Jacobian ``df/dy`` may be supplied as:

- a callback ``jacobian(x, y)`` returning a dense array, a SciPy sparse matrix,
  or ``(rows, cols, values)`` triplets (duplicates are summed),
- a constant matrix in any of those forms (never re-evaluated),
- nothing, in which case a forward-difference approximation is used.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeAlias

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import issparse

from .errors import JacobianEvaluationError, RhsEvaluationError
from .matrix_ops import Operator, as_operator, operator_is_finite

RHSFunction: TypeAlias = Callable[[float, NDArray[np.floating]], NDArray[np.floating]]
JacobianFunction: TypeAlias = Callable[[float, NDArray[np.floating]], Any]

# =============================================================================
# Errors / messages
# =============================================================================

_N_ERROR_MSG = "n must be a positive integer; got {n}"
_RHS_CALLABLE_ERROR_MSG = "rhs must be callable"
_RHS_RAISED_ERROR_MSG = "rhs callback raised at x={x}: {exc!r}"
_RHS_SHAPE_ERROR_MSG = "rhs shape {actual} does not match expected ({n},)"
_RHS_NONFINITE_ERROR_MSG = "rhs returned non-finite values at x={x}"
_JAC_RAISED_ERROR_MSG = "jacobian callback raised at x={x}: {exc!r}"
_JAC_INVALID_ERROR_MSG = "jacobian at x={x} is invalid: {exc}"
_JAC_NONFINITE_ERROR_MSG = "jacobian returned non-finite entries at x={x}"
_MASS_ERROR_MSG = "mass matrix is invalid: {exc}"
_MASS_NONFINITE_ERROR_MSG = "mass matrix must be finite"


@dataclass(slots=True)
class ODEProblem:
    """System ``M y' = f(x, y)``.

    Attributes:
        rhs: Right-hand side ``f(x, y) -> (n,)``.
        n: Problem dimension.
        jacobian: Jacobian callback, constant Jacobian, or None for finite differences.
        mass: Optional constant mass matrix (dense, sparse, or triplets).
        name: Label used in log records.
    """

    rhs: RHSFunction
    n: int
    jacobian: JacobianFunction | Operator | tuple[Any, Any, Any] | None = None
    mass: Operator | tuple[Any, Any, Any] | None = None
    name: str = "ode"
    _mass_op: Operator | None = field(init=False, default=None, repr=False)
    _const_jac: Operator | None = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        """Validate the problem definition.

        Raises:
            ValueError: If n is invalid, rhs is not callable, or the mass matrix
                (or a constant Jacobian) has the wrong shape or non-finite entries.
        """
        if int(self.n) != self.n or self.n < 1:
            raise ValueError(_N_ERROR_MSG.format(n=self.n))
        self.n = int(self.n)
        if not callable(self.rhs):
            raise ValueError(_RHS_CALLABLE_ERROR_MSG)

        if self.mass is not None:
            try:
                self._mass_op = as_operator(self.mass, self.n)
            except (TypeError, ValueError) as exc:
                raise ValueError(_MASS_ERROR_MSG.format(exc=exc)) from exc
            if not operator_is_finite(self._mass_op):
                raise ValueError(_MASS_NONFINITE_ERROR_MSG)

        if self.jacobian is not None and not callable(self.jacobian):
            try:
                self._const_jac = as_operator(self.jacobian, self.n)
            except (TypeError, ValueError) as exc:
                raise ValueError(_JAC_INVALID_ERROR_MSG.format(x="*", exc=exc)) from exc
            if not operator_is_finite(self._const_jac):
                raise ValueError(_JAC_NONFINITE_ERROR_MSG.format(x="*"))

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def mass_matrix(self) -> Operator | None:
        """Normalized mass matrix, or None for the identity."""
        return self._mass_op

    @property
    def has_jacobian(self) -> bool:
        """True if an analytic (callback or constant) Jacobian is available."""
        return self.jacobian is not None

    @property
    def constant_jacobian(self) -> bool:
        """True if the Jacobian was given as a constant matrix."""
        return self._const_jac is not None

    @property
    def sparse_jacobian(self) -> bool:
        """True if the Jacobian (constant) or mass matrix is sparse.

        A callback Jacobian is treated as sparse when it returns triplets or a
        sparse matrix; that can only be known after the first evaluation, so the
        integrator also consults :meth:`eval_jacobian` results.
        """
        if self._const_jac is not None:
            return bool(issparse(self._const_jac))
        return self._mass_op is not None and bool(issparse(self._mass_op))

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def eval_rhs(
        self,
        x: float,
        y: NDArray[np.floating],
        *,
        check_finite: bool = True,
    ) -> NDArray[np.floating]:
        """
        Evaluate ``f(x, y)``.

        Args:
            x: Independent variable.
            y: State vector of shape (n,).
            check_finite: Raise on non-finite output. Newton iterations pass False
                and treat non-finite output as divergence instead.

        Raises:
            RhsEvaluationError: If the callback raises, returns the wrong shape,
                or (with check_finite) returns non-finite values.

        Returns:
            f as a float64 array of shape (n,).
        """
        try:
            out = self.rhs(x, y)
        except Exception as exc:  # noqa: BLE001
            raise RhsEvaluationError(_RHS_RAISED_ERROR_MSG.format(x=x, exc=exc)) from exc

        f = np.asarray(out, dtype=np.float64)
        if f.shape != (self.n,):
            raise RhsEvaluationError(_RHS_SHAPE_ERROR_MSG.format(actual=f.shape, n=self.n))
        if check_finite and not np.all(np.isfinite(f)):
            raise RhsEvaluationError(_RHS_NONFINITE_ERROR_MSG.format(x=x))
        return f

    def eval_jacobian(self, x: float, y: NDArray[np.floating]) -> Operator:
        """
        Evaluate the analytic Jacobian ``df/dy``.

        Args:
            x: Independent variable.
            y: State vector of shape (n,).

        Raises:
            JacobianEvaluationError: If no analytic Jacobian exists, the callback
                raises, or the result is malformed or non-finite.

        Returns:
            Jacobian as float64 ndarray or CSR matrix of shape (n, n).
        """
        if self._const_jac is not None:
            return self._const_jac
        if self.jacobian is None:
            raise JacobianEvaluationError(
                _JAC_INVALID_ERROR_MSG.format(x=x, exc="no analytic jacobian")
            )

        try:
            raw = self.jacobian(x, y)  # type: ignore[operator]
        except Exception as exc:  # noqa: BLE001
            raise JacobianEvaluationError(
                _JAC_RAISED_ERROR_MSG.format(x=x, exc=exc)
            ) from exc

        try:
            jac = as_operator(raw, self.n)
        except (TypeError, ValueError) as exc:
            raise JacobianEvaluationError(_JAC_INVALID_ERROR_MSG.format(x=x, exc=exc)) from exc
        if not operator_is_finite(jac):
            raise JacobianEvaluationError(_JAC_NONFINITE_ERROR_MSG.format(x=x))
        return jac
