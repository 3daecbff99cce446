"""Unit tests for radau_engine.samples reference problems."""

from __future__ import annotations

from collections.abc import Callable

import numpy as np
import pytest
from scipy.sparse import issparse

from radau_engine.jacobian import numerical_jacobian
from radau_engine.samples import (
    SampleProblem,
    brusselator_pde,
    exponential_decay,
    index1_dae,
    robertson,
    van_der_pol,
)


@pytest.mark.parametrize(
    "factory",
    [exponential_decay, van_der_pol, robertson, index1_dae],
)
def test_analytic_jacobians_match_finite_differences(
    factory: Callable[[], SampleProblem],
) -> None:
    sample = factory()
    problem = sample.problem
    y = sample.y0 + 0.1
    f0 = problem.eval_rhs(0.3, y)
    jac = problem.eval_jacobian(0.3, y)
    jac = jac.toarray() if issparse(jac) else jac
    approx = numerical_jacobian(problem, 0.3, y, f0)
    scale = max(1.0, float(np.abs(jac).max()))
    np.testing.assert_allclose(approx, jac, atol=1e-5 * scale)


def test_exponential_decay_exact() -> None:
    sample = exponential_decay(2.0, x_end=3.0)
    assert sample.problem.constant_jacobian
    assert sample.x_end == 3.0
    np.testing.assert_allclose(sample.exact(0.5), [np.exp(-1.0)])


def test_dae_initial_state_is_consistent() -> None:
    sample = index1_dae()
    problem = sample.problem
    np.testing.assert_allclose(problem.mass_matrix, np.diag([1.0, 0.0]))
    f0 = problem.eval_rhs(sample.x0, sample.y0)
    assert f0[1] == pytest.approx(0.0)
    # Exact solution satisfies the differential row: y0' = y1 - y0.
    x = 0.7
    dy0 = 0.5 * (np.cos(x) + np.sin(x))
    assert dy0 == pytest.approx(problem.eval_rhs(x, sample.exact(x))[0])


def test_brusselator_layout() -> None:
    sample = brusselator_pde(npoint=4)
    problem = sample.problem
    assert problem.n == 32
    assert sample.y0.shape == (32,)
    # u0 = 0.5 + y varies along the first grid axis, v0 = 1 + 5 x along the second.
    u0 = sample.y0[:16].reshape(4, 4)
    v0 = sample.y0[16:].reshape(4, 4)
    np.testing.assert_allclose(u0[:, 0], 0.5 + np.linspace(0.0, 1.0, 4))
    np.testing.assert_allclose(v0[0, :], 1.0 + 5.0 * np.linspace(0.0, 1.0, 4))

    jac = problem.eval_jacobian(0.0, sample.y0)
    assert issparse(jac)
    f0 = problem.eval_rhs(0.0, sample.y0)
    approx = numerical_jacobian(problem, 0.0, sample.y0, f0)
    np.testing.assert_allclose(approx, jac.toarray(), atol=1e-5)


def test_brusselator_requires_three_points() -> None:
    with pytest.raises(ValueError, match="npoint"):
        brusselator_pde(npoint=2)
