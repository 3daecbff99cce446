"""Unit tests for radau_engine.iteration_matrix."""

from __future__ import annotations

import numpy as np
import pytest
from scipy.sparse import issparse

from radau_engine.iteration_matrix import IterationMatrixBuilder
from radau_engine.linear_solver import DenseLUBackend, SparseLUBackend
from radau_engine.matrix_ops import build_laplacian_tridiag
from radau_engine.radau_tables import MU_COMPLEX, MU_REAL
from radau_engine.statistics import Statistics

JAC = np.array([[-2.0, 1.0], [0.5, -3.0]])


def test_build_matches_shift_formula() -> None:
    builder = IterationMatrixBuilder(DenseLUBackend(), Statistics())
    real, cplx = builder.build(JAC, 0.1)
    np.testing.assert_allclose(real, MU_REAL / 0.1 * np.eye(2) - JAC)
    np.testing.assert_allclose(cplx, MU_COMPLEX / 0.1 * np.eye(2) - JAC)
    assert np.iscomplexobj(cplx)


def test_build_with_mass_and_sparse_backend() -> None:
    mass = np.diag([1.0, 0.0])
    builder = IterationMatrixBuilder(SparseLUBackend(), Statistics(), mass=mass)
    real, _ = builder.build(JAC, 0.5)
    assert issparse(real)
    np.testing.assert_allclose(real.toarray(), MU_REAL / 0.5 * mass - JAC)


@pytest.mark.parametrize("h", [0.0, -1.0, float("inf"), float("nan")])
def test_build_rejects_bad_step(h: float) -> None:
    builder = IterationMatrixBuilder(DenseLUBackend(), Statistics())
    with pytest.raises(ValueError, match="positive and finite"):
        builder.build(JAC, h)


def test_factorizations_reused_within_eps_h() -> None:
    stats = Statistics()
    builder = IterationMatrixBuilder(DenseLUBackend(), stats, eps_h=1e-3)

    first = builder.build_and_factorize(JAC, 0.1, 1)
    assert stats.n_factorizations == 2
    assert not builder.last_reused
    assert first.h == 0.1
    assert first.jacobian_version == 1

    again = builder.build_and_factorize(JAC, 0.10005, 1)
    assert again is first
    assert builder.last_reused
    assert stats.n_factorizations == 2

    builder.build_and_factorize(JAC, 0.2, 1)
    assert stats.n_factorizations == 4
    assert not first.valid


def test_new_jacobian_version_forces_refactorization() -> None:
    stats = Statistics()
    builder = IterationMatrixBuilder(DenseLUBackend(), stats)
    builder.build_and_factorize(JAC, 0.1, 1)
    assert builder.can_reuse(0.1, 1)
    assert not builder.can_reuse(0.1, 2)
    builder.build_and_factorize(JAC, 0.1, 2)
    assert stats.n_factorizations == 4


def test_invalidate_drops_handles() -> None:
    builder = IterationMatrixBuilder(DenseLUBackend(), Statistics())
    handles = builder.build_and_factorize(JAC, 0.1, 1)
    builder.invalidate()
    assert builder.handles is None
    assert not handles.valid
    assert not builder.can_reuse(0.1, 1)


def test_solve_counts_and_matches_numpy() -> None:
    stats = Statistics()
    jac = build_laplacian_tridiag(5, 1.0, 1.0)
    builder = IterationMatrixBuilder(SparseLUBackend(), stats)
    handles = builder.build_and_factorize(jac, 0.05, 1)
    rhs = np.arange(5.0)

    out_real = builder.solve(handles.real, rhs)
    out_cplx = builder.solve(handles.complex, rhs.astype(complex))
    assert stats.n_linear_solves == 2

    dense = jac.toarray()
    np.testing.assert_allclose(out_real, np.linalg.solve(MU_REAL / 0.05 * np.eye(5) - dense, rhs))
    np.testing.assert_allclose(
        out_cplx, np.linalg.solve(MU_COMPLEX / 0.05 * np.eye(5) - dense, rhs)
    )
