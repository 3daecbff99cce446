"""Unit tests for radau_engine.step_controller."""

from __future__ import annotations

import pytest

from radau_engine.config import StepBounds, StiffnessPolicy
from radau_engine.errors import StepSizeTooSmall, TooManyRejections
from radau_engine.step_controller import ControllerState, StepController


def _controller(**bounds: float) -> StepController:
    return StepController(StepBounds(**bounds), StiffnessPolicy(), max_iterations=7)


# -----------------------------------------------------------------------------
# Proposals
# -----------------------------------------------------------------------------


def test_safety_depends_on_newton_iterations() -> None:
    ctrl = _controller()
    assert ctrl.suggest_factor(0.1, 1.0, 1) == pytest.approx(0.9)
    assert ctrl.suggest_factor(0.1, 1.0, 7) == pytest.approx(0.9 * 15 / 21)
    assert ctrl.suggest_factor(0.1, 1.0 / 32.0, 1) == pytest.approx(0.9 * 2.0)


def test_error_floor_avoids_division_by_zero() -> None:
    ctrl = _controller()
    assert ctrl.suggest_factor(0.1, 0.0, 1) == pytest.approx(0.9 * 1e-10 ** (-0.2))


def test_accept_clamps_growth() -> None:
    ctrl = _controller()
    decision = ctrl.accept(0.1, 0.0, 1)
    assert decision.accepted
    assert decision.factor == 8.0
    assert decision.h_new == pytest.approx(0.8)
    assert ctrl.state is ControllerState.ACCEPTED


def test_accept_respects_h_max() -> None:
    ctrl = _controller(h_max=0.3)
    assert ctrl.accept(0.1, 0.0, 1).h_new == pytest.approx(0.3)


def test_keep_band_holds_step_size() -> None:
    ctrl = _controller()
    err = (0.9 / 1.1) ** 5  # factor 1.1
    decision = ctrl.accept(0.1, err, 1)
    assert decision.kept
    assert decision.h_new == 0.1

    fresh = _controller()
    pending = fresh.accept(0.1, err, 1, refresh_pending=True)
    assert not pending.kept
    assert pending.h_new == pytest.approx(0.11)


def test_predictive_correction_only_shrinks() -> None:
    ctrl = _controller()
    ctrl.accept(0.1, 0.5, 1)
    # err grew from 0.5 to 0.9 with the same h: multiplier (0.5 / 0.9)^0.2 < 1.
    plain = 0.9 * 0.9 ** (-0.2)
    assert ctrl.suggest_factor(0.1, 0.9, 1) == pytest.approx(plain * (0.5 / 0.9) ** 0.2)
    # Error decreased: multiplier > 1 is capped at 1.
    assert ctrl.suggest_factor(0.1, 0.1, 1) == pytest.approx(0.9 * 0.1 ** (-0.2))

    off = StepController(StepBounds(predictive=False), StiffnessPolicy())
    off.accept(0.1, 0.5, 1)
    assert off.suggest_factor(0.1, 0.9, 1) == pytest.approx(plain)


# -----------------------------------------------------------------------------
# Rejections
# -----------------------------------------------------------------------------


def test_reject_shrinks_between_fac_min_and_reject_shrink() -> None:
    ctrl = _controller()
    mild = ctrl.reject(1.0, 1.5, 1, 0.0)
    assert not mild.accepted
    assert mild.factor == pytest.approx(0.8)
    assert ctrl.state is ControllerState.REJECTED

    severe = ctrl.reject(1.0, 1e10, 1, 0.0)
    assert severe.factor == pytest.approx(0.2)
    assert severe.h_new == pytest.approx(0.2)

    mid = ctrl.reject(1.0, 100.0, 1, 0.0)
    assert mid.factor == pytest.approx(0.9 * 100.0 ** (-0.2))


def test_newton_rejection_halves() -> None:
    ctrl = _controller()
    decision = ctrl.reject_newton(0.4, 0.0)
    assert decision.h_new == pytest.approx(0.2)
    assert decision.factor == 0.5


def test_too_many_consecutive_rejections() -> None:
    ctrl = StepController(StepBounds(), StiffnessPolicy(), max_rejections=3)
    ctrl.reject_newton(1.0, 0.0)
    ctrl.reject_newton(0.5, 0.0)
    with pytest.raises(TooManyRejections, match="3 consecutive"):
        ctrl.reject_newton(0.25, 0.0)


def test_accept_resets_rejection_count() -> None:
    ctrl = StepController(StepBounds(), StiffnessPolicy(), max_rejections=2)
    ctrl.reject_newton(1.0, 0.0)
    ctrl.accept(0.5, 0.5, 1)
    assert ctrl.consecutive_rejections == 0
    ctrl.reject_newton(0.5, 0.5)


def test_step_size_floor() -> None:
    ctrl = _controller(h_min=1e-3)
    assert ctrl.h_floor(0.0) == 1e-3
    with pytest.raises(StepSizeTooSmall):
        ctrl.reject_newton(1.5e-3, 0.0)
    with pytest.raises(StepSizeTooSmall):
        _controller().check_step_size(1e-20, 1e6)
    _controller().check_step_size(1e-9, 1.0)


def test_clamp() -> None:
    ctrl = _controller(h_min=0.01, h_max=1.0)
    assert ctrl.clamp(5.0) == 1.0
    assert ctrl.clamp(1e-5) == 0.01
    assert ctrl.clamp(0.5) == 0.5


# -----------------------------------------------------------------------------
# Stiffness diagnostic
# -----------------------------------------------------------------------------


def test_stiffness_requires_full_window() -> None:
    ctrl = StepController(StepBounds(), StiffnessPolicy(window=3, threshold=0.5))
    assert ctrl.stiffness_ratio == 0.0
    ctrl.accept(0.1, 0.5, 5)
    ctrl.accept(0.1, 0.5, 5)
    assert not ctrl.is_stiff
    ctrl.accept(0.1, 0.5, 5)
    assert ctrl.is_stiff
    assert ctrl.stiffness_ratio == pytest.approx(5 / 7)

    for _ in range(3):
        ctrl.accept(0.1, 0.5, 1)
    assert not ctrl.is_stiff
