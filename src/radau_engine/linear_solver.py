"""
Pluggable linear-solver backends for the Radau iteration matrices.

The integrator only ever talks to a backend through two calls:

- ``factorize(matrix) -> FactorizationHandle``
- ``solve(handle, rhs) -> x``

Concrete factorization kernels are SciPy's: dense LU (``scipy.linalg``) and the
sparse-direct factorizer (``scipy.sparse.linalg.factorized``). Their ordering and
scaling heuristics stay inside SciPy; the integrator never inspects them.

Failures are translated into the package error taxonomy:

- :class:`SingularMatrixError` for exactly (or numerically) singular matrices,
- :class:`FactorizationError` for any other factorization failure,
- :class:`SolveError` for failing solves or non-finite solutions.
"""

from __future__ import annotations

import warnings
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, cast, runtime_checkable

import numpy as np
from numpy.typing import NDArray
from scipy.linalg import LinAlgWarning, lu_factor, lu_solve
from scipy.sparse import csc_matrix, issparse
from scipy.sparse.linalg import factorized as sparse_factorized

from .errors import FactorizationError, SingularMatrixError, SolveError
from .matrix_ops import _DISPATCH_THRESHOLD, Operator

# =============================================================================
# Error message constants
# =============================================================================

_SQUARE_ERROR_MSG = "matrix must be square; got shape {shape}"
_SINGULAR_ERROR_MSG = "{backend} backend: matrix of size {n} is singular"
_FACTOR_ERROR_MSG = "{backend} backend: factorization failed: {reason}"
_INVALID_HANDLE_ERROR_MSG = "factorization handle was invalidated"
_RHS_SHAPE_ERROR_MSG = "rhs leading dimension {m} does not match matrix size {n}"
_SOLVE_ERROR_MSG = "{backend} backend: solve failed: {reason}"
_NONFINITE_SOLVE_ERROR_MSG = "{backend} backend: solve produced non-finite values"
_UNKNOWN_BACKEND_ERROR_MSG = "Unknown linear solver backend: {name!r}"


# =============================================================================
# Handle + protocol
# =============================================================================


@dataclass(slots=True)
class FactorizationHandle:
    """Opaque factorization token returned by a backend.

    Attributes:
        backend: Name of the backend that produced the handle.
        n: Matrix dimension.
        dtype: Matrix dtype (float64 or complex128).
        payload: Backend-private factorization data.
        h: Step size the iteration matrix was assembled for (set by the builder).
        jacobian_version: Jacobian version the matrix was built from.
        valid: False once the handle has been invalidated.
    """

    backend: str
    n: int
    dtype: np.dtype[Any]
    payload: Any
    h: float = float("nan")
    jacobian_version: int = -1
    valid: bool = True

    def invalidate(self) -> None:
        """Mark the handle as unusable."""
        self.valid = False


@runtime_checkable
class LinearSolverBackend(Protocol):
    """Capability interface for factorize/solve backends."""

    name: str

    def factorize(self, matrix: Operator) -> FactorizationHandle:
        """Factorize a square matrix."""
        ...

    def solve(self, handle: FactorizationHandle, rhs: NDArray[Any]) -> NDArray[Any]:
        """Solve with a previously computed factorization."""
        ...


def _check_square(matrix: Operator) -> int:
    shape = tuple(matrix.shape)
    if len(shape) != 2 or shape[0] != shape[1]:
        raise FactorizationError(_SQUARE_ERROR_MSG.format(shape=shape))
    return int(shape[0])


def _check_rhs(handle: FactorizationHandle, rhs: NDArray[Any]) -> NDArray[Any]:
    if not handle.valid:
        raise SolveError(_INVALID_HANDLE_ERROR_MSG)
    rhs_arr = np.asarray(rhs)
    if rhs_arr.ndim not in {1, 2} or rhs_arr.shape[0] != handle.n:
        raise SolveError(_RHS_SHAPE_ERROR_MSG.format(m=rhs_arr.shape[:1], n=handle.n))
    return rhs_arr.astype(np.result_type(rhs_arr.dtype, handle.dtype), copy=False)


def _check_solution(backend: str, out: NDArray[Any]) -> NDArray[Any]:
    if not np.all(np.isfinite(out)):
        raise SolveError(_NONFINITE_SOLVE_ERROR_MSG.format(backend=backend))
    return out


# =============================================================================
# Dense LU backend
# =============================================================================


class DenseLUBackend:
    """Dense LU with partial pivoting (``scipy.linalg.lu_factor``)."""

    name = "dense"

    def factorize(self, matrix: Operator) -> FactorizationHandle:
        """
        Factorize a dense (or densified sparse) matrix.

        Args:
            matrix: Square real or complex matrix.

        Raises:
            SingularMatrixError: If a pivot is exactly zero.
            FactorizationError: If the input is non-finite or LAPACK fails.

        Returns:
            Handle wrapping the (lu, piv) pair.
        """
        n = _check_square(matrix)
        dense = matrix.toarray() if issparse(matrix) else np.asarray(matrix)
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", LinAlgWarning)
                lu, piv = lu_factor(dense, check_finite=True)
        except (ValueError, np.linalg.LinAlgError) as exc:
            raise FactorizationError(
                _FACTOR_ERROR_MSG.format(backend=self.name, reason=exc)
            ) from exc

        diag = np.diag(lu)
        if np.any(diag == 0.0) or not np.all(np.isfinite(diag)):
            raise SingularMatrixError(_SINGULAR_ERROR_MSG.format(backend=self.name, n=n))

        return FactorizationHandle(
            backend=self.name,
            n=n,
            dtype=np.dtype(dense.dtype),
            payload=(lu, piv),
        )

    def solve(self, handle: FactorizationHandle, rhs: NDArray[Any]) -> NDArray[Any]:
        """
        Solve ``A x = rhs`` for one or several right-hand sides.

        Args:
            handle: Handle from :meth:`factorize`.
            rhs: 1D or 2D right-hand side.

        Raises:
            SolveError: If the handle is invalid or the solution is non-finite.

        Returns:
            Solution with the same shape as rhs.
        """
        rhs_arr = _check_rhs(handle, rhs)
        try:
            out = lu_solve(handle.payload, rhs_arr, check_finite=False)
        except (ValueError, np.linalg.LinAlgError) as exc:
            raise SolveError(_SOLVE_ERROR_MSG.format(backend=self.name, reason=exc)) from exc
        return _check_solution(self.name, np.asarray(out))


# =============================================================================
# Sparse-direct backend
# =============================================================================


class SparseLUBackend:
    """Sparse-direct factorization (``scipy.sparse.linalg.factorized``)."""

    name = "sparse"

    def factorize(self, matrix: Operator) -> FactorizationHandle:
        """
        Factorize a sparse (or sparsified dense) matrix.

        Args:
            matrix: Square real or complex matrix.

        Raises:
            SingularMatrixError: If the factorizer reports a singular matrix.
            FactorizationError: If the input is non-finite or the factorizer fails.

        Returns:
            Handle wrapping the factorized solve callable.
        """
        n = _check_square(matrix)
        csc = csc_matrix(matrix)
        csc.sum_duplicates()
        if not np.all(np.isfinite(csc.data)):
            raise FactorizationError(
                _FACTOR_ERROR_MSG.format(backend=self.name, reason="non-finite entries")
            )

        try:
            solve_fn = sparse_factorized(csc)
        except RuntimeError as exc:
            if "singular" in str(exc).lower():
                raise SingularMatrixError(
                    _SINGULAR_ERROR_MSG.format(backend=self.name, n=n)
                ) from exc
            raise FactorizationError(
                _FACTOR_ERROR_MSG.format(backend=self.name, reason=exc)
            ) from exc
        except ValueError as exc:
            raise FactorizationError(
                _FACTOR_ERROR_MSG.format(backend=self.name, reason=exc)
            ) from exc

        return FactorizationHandle(
            backend=self.name,
            n=n,
            dtype=np.dtype(csc.dtype),
            payload=solve_fn,
        )

    def solve(self, handle: FactorizationHandle, rhs: NDArray[Any]) -> NDArray[Any]:
        """
        Solve ``A x = rhs`` for one or several right-hand sides.

        Args:
            handle: Handle from :meth:`factorize`.
            rhs: 1D or 2D right-hand side.

        Raises:
            SolveError: If the handle is invalid, the solve fails, or the solution
                is non-finite.

        Returns:
            Solution with the same shape as rhs.
        """
        rhs_arr = _check_rhs(handle, rhs)
        solve_fn = cast("Callable[[NDArray[Any]], NDArray[Any]]", handle.payload)
        try:
            if rhs_arr.ndim == 1:
                out = np.asarray(solve_fn(rhs_arr))
            else:
                out = np.empty(rhs_arr.shape, dtype=rhs_arr.dtype)
                for j in range(rhs_arr.shape[1]):
                    out[:, j] = np.asarray(solve_fn(np.ascontiguousarray(rhs_arr[:, j])))
        except (RuntimeError, ValueError) as exc:
            raise SolveError(_SOLVE_ERROR_MSG.format(backend=self.name, reason=exc)) from exc
        return _check_solution(self.name, out)


# =============================================================================
# Backend selection
# =============================================================================


def select_backend(
    spec: str | LinearSolverBackend,
    *,
    n: int,
    sparse_jacobian: bool,
) -> LinearSolverBackend:
    """
    Resolve a backend name (or instance) to a backend object.

    Args:
        spec: "auto", "dense", "sparse", or an object with factorize/solve.
        n: Problem dimension.
        sparse_jacobian: Whether the problem supplies a sparse Jacobian.

    Raises:
        ValueError: If spec names an unknown backend.

    Returns:
        Backend instance.
    """
    if not isinstance(spec, str):
        return spec
    if spec == "dense":
        return DenseLUBackend()
    if spec == "sparse":
        return SparseLUBackend()
    if spec == "auto":
        if sparse_jacobian and n >= _DISPATCH_THRESHOLD:
            return SparseLUBackend()
        return DenseLUBackend()
    raise ValueError(_UNKNOWN_BACKEND_ERROR_MSG.format(name=spec))
