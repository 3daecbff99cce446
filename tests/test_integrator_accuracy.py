# tests/test_integrator_accuracy.py
"""Accuracy tests for radau_engine.integrator.RadauIntegrator.

Reference values come from analytic solutions where available, otherwise from
``scipy.integrate.solve_ivp(method="Radau")`` run at much tighter tolerances.

Key test design choices:
    - Tolerance convergence fits log10(error) against log10(tol). With a
      fourth-order local estimate driving a fifth-order method the slope sits
      near 5/4; a lower-order scheme would land well under 1.
    - Stiff benchmarks (van der Pol, Robertson, Brusselator) compare end states
      only; the step sequences of two different codes are not comparable.
"""

from __future__ import annotations

import numpy as np
import pytest
from scipy.integrate import solve_ivp

from radau_engine.config import IntegratorConfig, StepBounds, Tolerances
from radau_engine.integrator import RadauIntegrator
from radau_engine.problem import ODEProblem
from radau_engine.samples import (
    SampleProblem,
    brusselator_pde,
    exponential_decay,
    index1_dae,
    robertson,
    van_der_pol,
)

# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------


def _config(rtol: float, atol: float | np.ndarray, **kwargs: object) -> IntegratorConfig:
    return IntegratorConfig(tolerances=Tolerances(rtol=rtol, atol=atol), **kwargs)


def _reference(sample: SampleProblem, rtol: float, atol: float | np.ndarray) -> np.ndarray:
    problem = sample.problem
    sol = solve_ivp(
        problem.eval_rhs,
        (sample.x0, sample.x_end),
        sample.y0,
        method="Radau",
        jac=problem.eval_jacobian,
        rtol=rtol,
        atol=atol,
    )
    assert sol.success, sol.message
    return sol.y[:, -1]


# ---------------------------------------------------------------------
# Linear problems with analytic solutions
# ---------------------------------------------------------------------


def test_error_follows_tolerance_with_fifth_order_slope() -> None:
    sample = exponential_decay(50.0)
    tols = np.array([1e-4, 1e-5, 1e-6, 1e-7, 1e-8])
    errors = []
    for tol in tols:
        traj, _ = RadauIntegrator(sample.problem, _config(tol, tol)).run(
            sample.x0, sample.y0, sample.x_end
        )
        errors.append(float(np.max(np.abs(traj.y[:, 0] - np.exp(-50.0 * traj.x)))))

    assert all(a > b for a, b in zip(errors, errors[1:]))
    slope = np.polyfit(np.log10(tols), np.log10(errors), 1)[0]
    assert 0.85 < slope < 1.7
    assert errors[-1] < 1e-6


def test_large_initial_step_is_rejected_then_recovers() -> None:
    """y' = -1000 (y - cos x) from y(0) = 0 with h_initial = 1."""
    k = 1000.0

    def rhs(x: float, y: np.ndarray) -> np.ndarray:
        return -k * (y - np.cos(x))

    problem = ODEProblem(rhs=rhs, n=1, jacobian=np.array([[-k]]))
    cfg = _config(1e-6, 1e-6, step_bounds=StepBounds(h_initial=1.0))
    traj, stats = RadauIntegrator(problem, cfg).run(0.0, [0.0], 2.0)

    first = traj.attempts[0]
    assert first.h == 1.0
    assert not first.accepted
    assert first.error_norm > 1.0
    assert stats.n_rejected == len(traj.rejected_attempts) >= 1

    k2 = k * k
    exact = (k2 * np.cos(2.0) + k * np.sin(2.0)) / (k2 + 1.0)
    assert traj.y[-1, 0] == pytest.approx(exact, abs=1e-4)


def test_index1_dae_tracks_constraint() -> None:
    sample = index1_dae()
    traj, stats = RadauIntegrator(sample.problem, _config(1e-6, 1e-6)).run(
        sample.x0, sample.y0, sample.x_end, h_out=0.5
    )
    assert traj.x[-1] == sample.x_end
    assert np.max(np.abs(traj.y[:, 1] - np.sin(traj.x))) < 1e-8
    np.testing.assert_allclose(traj.y[-1], sample.exact(sample.x_end), atol=1e-4)

    # Dense output interpolates the algebraic component too.
    np.testing.assert_allclose(traj.dense_x, np.arange(0.0, 3.01, 0.5), atol=1e-12)
    np.testing.assert_allclose(traj.dense_y[:, 1], np.sin(traj.dense_x), atol=1e-4)
    assert stats.n_rejected <= stats.n_accepted


# ---------------------------------------------------------------------
# Stiff benchmarks against scipy
# ---------------------------------------------------------------------


def test_van_der_pol_matches_reference() -> None:
    sample = van_der_pol(1000.0)
    traj, stats = RadauIntegrator(sample.problem, _config(1e-8, 1e-8)).run(
        sample.x0, sample.y0, sample.x_end
    )
    assert traj.x[-1] == sample.x_end
    assert 1.99 < traj.y[-1, 0] < 2.0
    np.testing.assert_allclose(traj.y[-1], _reference(sample, 1e-10, 1e-10), rtol=1e-4, atol=1e-6)
    assert stats.n_rejected < stats.n_accepted


def test_robertson_conserves_mass_and_matches_reference() -> None:
    sample = robertson()
    atol = np.array([1e-10, 1e-14, 1e-10])
    traj, _ = RadauIntegrator(sample.problem, _config(1e-8, atol)).run(
        sample.x0, sample.y0, sample.x_end
    )
    np.testing.assert_allclose(traj.y.sum(axis=1), 1.0, atol=1e-9)
    assert traj.y[-1, 0] == pytest.approx(0.7158, abs=1e-3)

    ref = _reference(sample, 1e-10, np.array([1e-12, 1e-16, 1e-12]))
    np.testing.assert_allclose(traj.y[-1], ref, rtol=1e-5, atol=1e-10)


def test_brusselator_sparse_and_dense_backends_agree() -> None:
    sample = brusselator_pde(npoint=5, x_end=1.0)
    finals = {}
    for backend in ("dense", "sparse"):
        traj, _ = RadauIntegrator(
            sample.problem, _config(1e-6, 1e-6, linear_solver=backend)
        ).run(sample.x0, sample.y0, sample.x_end)
        finals[backend] = traj.y[-1]

    np.testing.assert_allclose(finals["sparse"], finals["dense"], rtol=1e-5, atol=1e-5)
    np.testing.assert_allclose(
        finals["sparse"], _reference(sample, 1e-10, 1e-10), rtol=1e-4, atol=1e-4
    )


@pytest.mark.slow
def test_brusselator_full_grid_auto_backend() -> None:
    sample = brusselator_pde(npoint=14, x_end=1.5)
    traj, stats = RadauIntegrator(sample.problem, _config(1e-4, 1e-4)).run(
        sample.x0, sample.y0, sample.x_end
    )
    assert traj.x[-1] == sample.x_end
    assert np.all(np.isfinite(traj.y))
    np.testing.assert_allclose(
        traj.y[-1], _reference(sample, 1e-8, 1e-8), rtol=1e-2, atol=1e-2
    )
    assert stats.n_jacobian_eval >= 1
