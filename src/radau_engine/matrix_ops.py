"""
Matrix assembly utilities for the Radau IIA iteration matrices.

This module provides the small amount of linear-operator assembly the integrator
needs, and nothing more:

- Normalization of user Jacobians (dense arrays, SciPy sparse matrices, or
  coordinate triplets) into a backend-friendly operator type.
- Construction of shifted operators ``shift * M - J`` for real and complex
  shifts, which become the iteration matrices of the simplified Newton solve.
- 1D Laplacian / Kronecker helpers used to build sample problems
  (e.g. 2D reaction-diffusion systems on tensor grids).

Design notes:
    * CPU-first: dense paths rely on NumPy; sparse paths keep CSR throughout.
    * Backend-friendly surface: every public function returns either a plain
      ndarray or a CSR matrix, never a solver object. Factorization lives in
      :mod:`radau_engine.linear_solver`.
    * Dense/sparse autodispatch uses a single size threshold.
"""

from __future__ import annotations

from typing import TypeAlias, cast

import numpy as np
from numpy.typing import DTypeLike, NDArray
from scipy.sparse import coo_matrix, csr_matrix, diags, identity, issparse, kron

# =============================================================================
# Public operator types (backend-friendly)
# =============================================================================

DenseOperator: TypeAlias = NDArray[np.floating] | NDArray[np.complexfloating]
SparseOperator: TypeAlias = csr_matrix
Operator: TypeAlias = DenseOperator | SparseOperator
Triplets: TypeAlias = tuple[NDArray[np.integer], NDArray[np.integer], NDArray[np.floating]]

# === Internal autodispatch threshold (tuned empirically) ===
# Below this size, dense ops tend to be faster; above it, sparse is preferred.
_DISPATCH_THRESHOLD = 350


# =============================================================================
# Error message constants
# =============================================================================

_UNKNOWN_BC_ERROR = "Unknown bc: {bc}"
_OPERATOR_SHAPE_ERROR = "Operator shape {shape} does not match expected ({n}, {n})"
_OPERATOR_TYPE_ERROR = (
    "Operator must be a dense ndarray, a scipy sparse matrix, or (rows, cols, values) "
    "triplets; got {typ}"
)
_TRIPLETS_LENGTH_ERROR = "rows, cols and values must have equal lengths; got {lens}"
_TRIPLETS_INDEX_ERROR = "triplet indices out of bounds for shape {shape}"
_KRON_EMPTY_ERROR = "ops must contain at least one operator"
_KRON_INCOMPATIBLE_ERROR = "All operators must be square; got shapes: {shapes}"
_SHIFT_ERROR = "shift must be finite; got {shift}"


# =============================================================================
# Normalization
# =============================================================================


def triplets_to_csr(
    rows: NDArray[np.integer],
    cols: NDArray[np.integer],
    values: NDArray[np.floating],
    shape: tuple[int, int],
) -> csr_matrix:
    """
    Assemble coordinate triplets into a CSR matrix (duplicates are summed).

    Args:
        rows: Row indices.
        cols: Column indices.
        values: Entry values.
        shape: Matrix shape.

    Raises:
        ValueError: If lengths differ or indices are out of bounds.

    Returns:
        CSR matrix of the given shape.
    """
    rows_arr = np.asarray(rows, dtype=np.int64).ravel()
    cols_arr = np.asarray(cols, dtype=np.int64).ravel()
    vals_arr = np.asarray(values, dtype=np.float64).ravel()

    lens = (rows_arr.size, cols_arr.size, vals_arr.size)
    if len(set(lens)) != 1:
        raise ValueError(_TRIPLETS_LENGTH_ERROR.format(lens=lens))
    if rows_arr.size and (
        rows_arr.min() < 0
        or cols_arr.min() < 0
        or rows_arr.max() >= shape[0]
        or cols_arr.max() >= shape[1]
    ):
        raise ValueError(_TRIPLETS_INDEX_ERROR.format(shape=shape))

    return coo_matrix((vals_arr, (rows_arr, cols_arr)), shape=shape).tocsr()


def as_operator(op: object, n: int) -> Operator:
    """
    Normalize a matrix-like object into a dense ndarray or CSR matrix of shape (n, n).

    Args:
        op: Dense array-like, SciPy sparse matrix, or (rows, cols, values) triplets.
        n: Expected dimension.

    Raises:
        TypeError: If op is of an unsupported type.
        ValueError: If the shape does not match (n, n).

    Returns:
        Operator as float64 ndarray or CSR matrix.
    """
    if issparse(op):
        out: Operator = cast("csr_matrix", op).tocsr().astype(np.float64)
    elif isinstance(op, tuple) and len(op) == 3:
        rows, cols, values = op
        out = triplets_to_csr(rows, cols, values, (n, n))
    elif isinstance(op, (np.ndarray, list)):
        out = np.asarray(op, dtype=np.float64)
    else:
        raise TypeError(_OPERATOR_TYPE_ERROR.format(typ=type(op)))

    if tuple(out.shape) != (n, n):
        raise ValueError(_OPERATOR_SHAPE_ERROR.format(shape=out.shape, n=n))
    return out


def operator_is_finite(op: Operator) -> bool:
    """Return True if every stored entry of op is finite."""
    if issparse(op):
        return bool(np.all(np.isfinite(cast("csr_matrix", op).data)))
    return bool(np.all(np.isfinite(np.asarray(op))))


# =============================================================================
# Shifted operators
# =============================================================================


def build_shifted_operator(
    shift: complex,
    jac: Operator,
    mass: Operator | None = None,
    *,
    sparse: bool | None = None,
) -> Operator:
    """
    Build ``shift * M - J`` (M = I when mass is None).

    The result is complex when shift has a non-zero imaginary part.

    Args:
        shift: Real or complex scalar multiplying the mass matrix.
        jac: Jacobian operator J.
        mass: Optional mass matrix M.
        sparse: Force sparse (True) or dense (False) output; None follows jac.

    Raises:
        ValueError: If shift is not finite.

    Returns:
        Shifted operator as ndarray or CSR matrix.
    """
    if not np.isfinite(shift):
        raise ValueError(_SHIFT_ERROR.format(shift=shift))

    n = int(jac.shape[0])
    use_sparse = issparse(jac) if sparse is None else bool(sparse)
    dtype = np.complex128 if np.iscomplexobj(shift) and complex(shift).imag != 0.0 else np.float64
    shift_val = complex(shift) if dtype == np.complex128 else float(np.real(shift))

    if use_sparse:
        jac_csr = jac.tocsr() if issparse(jac) else csr_matrix(np.asarray(jac))
        if mass is None:
            mass_csr = identity(n, format="csr", dtype=np.float64)
        else:
            mass_csr = mass.tocsr() if issparse(mass) else csr_matrix(np.asarray(mass))
        out_sparse = (shift_val * mass_csr.astype(dtype)) - jac_csr.astype(dtype)
        return cast("csr_matrix", out_sparse.tocsr())

    jac_arr = jac.toarray() if issparse(jac) else np.asarray(jac)
    if mass is None:
        mass_arr = np.eye(n, dtype=np.float64)
    else:
        mass_arr = mass.toarray() if issparse(mass) else np.asarray(mass)
    return cast("DenseOperator", shift_val * mass_arr.astype(dtype) - jac_arr.astype(dtype))


def apply_operator(op: Operator | None, x: NDArray[np.generic]) -> NDArray[np.generic]:
    """Return op @ x, treating None as the identity."""
    if op is None:
        return x
    return np.asarray(op @ x)


# =============================================================================
# Laplacian + Kronecker composition (sample-problem assembly)
# =============================================================================


def build_laplacian_tridiag(
    n: int,
    dx: float,
    coeff: float,
    dtype: DTypeLike = np.float64,
    bc: str = "neumann",
) -> csr_matrix:
    """Build a 1D Laplacian matrix for a given boundary condition.

    The resulting operator corresponds to `coeff * Δ_h`, where `Δ_h` is the
    standard second-order central-difference Laplacian in 1D.

    Args:
        n: Number of grid points.
        dx: Grid spacing.
        coeff: Diffusion coefficient.
        dtype: Floating dtype (e.g. np.float64).
        bc: Boundary condition; "neumann" (zero flux), "absorbing" or "periodic".

    Raises:
        ValueError: If an unknown boundary condition is provided.

    Returns:
        Sparse CSR matrix representing the Laplacian operator.
    """
    dtype_obj = np.dtype(dtype)
    factor = coeff / dx**2

    main_diag = -2.0 * np.ones(n, dtype=dtype_obj)
    off_diag = np.ones(n - 1, dtype=dtype_obj)

    if bc == "neumann":
        main_diag[0] = -1.0
        main_diag[-1] = -1.0
    elif bc in {"absorbing", "periodic"}:
        pass
    else:
        msg = _UNKNOWN_BC_ERROR.format(bc=bc)
        raise ValueError(msg)

    laplacian = diags(
        [off_diag.tolist(), main_diag.tolist(), off_diag.tolist()],
        [-1, 0, 1],
        shape=(n, n),
        dtype=dtype_obj,
    ).tolil()

    if bc == "periodic" and n > 2:
        laplacian[0, n - 1] = 1.0
        laplacian[n - 1, 0] = 1.0

    scaled = laplacian.tocsr() * factor
    return cast("csr_matrix", scaled.tocsr())


def kron_prod(a: Operator, b: Operator) -> Operator:
    """
    Compute the Kronecker product of two operators.

    Args:
        a: First operator.
        b: Second operator.

    Returns:
        The Kronecker product operator.
    """
    if issparse(a) or issparse(b):
        a_csr = a if issparse(a) else csr_matrix(np.asarray(a))
        b_csr = b if issparse(b) else csr_matrix(np.asarray(b))
        return kron(a_csr, b_csr, format="csr")
    return cast("DenseOperator", np.kron(np.asarray(a), np.asarray(b)))


def kron_sum(ops: list[Operator]) -> Operator:
    """
    Compute a Kronecker sum of square operators.

    For ops = [A, B] this is ``A ⊗ I + I ⊗ B``, i.e. the 2D operator acting on a
    tensor grid whose fastest-varying axis is the last one.

    Args:
        ops: List of 2D square operators.

    Raises:
        ValueError: If ops is empty or if operators are not square.

    Returns:
        The Kronecker sum operator.
    """
    if not ops:
        raise ValueError(_KRON_EMPTY_ERROR)

    shapes = [tuple(np.asarray(op).shape) if not issparse(op) else op.shape for op in ops]

    if any(s[0] != s[1] for s in shapes):
        raise ValueError(_KRON_INCOMPATIBLE_ERROR.format(shapes=shapes))

    any_sparse = any(issparse(op) for op in ops)
    sizes = [s[0] for s in shapes]
    dtype_obj = np.result_type(
        *[(op.dtype if issparse(op) else np.asarray(op).dtype) for op in ops]
    )

    def _eye(n: int) -> Operator:
        if any_sparse:
            return identity(n, format="csr", dtype=dtype_obj)
        return cast("DenseOperator", np.eye(n, dtype=dtype_obj))

    total: Operator | None = None
    n_ops = len(ops)

    for i, op_i in enumerate(ops):
        term: Operator = op_i
        for j in range(i - 1, -1, -1):
            term = kron_prod(_eye(sizes[j]), term)
        for j in range(i + 1, n_ops):
            term = kron_prod(term, _eye(sizes[j]))
        total = term if total is None else cast("Operator", total + term)

    if total is None:
        raise ValueError(_KRON_EMPTY_ERROR)
    return total
