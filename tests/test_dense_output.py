"""Unit tests for radau_engine.dense_output."""

from __future__ import annotations

import numpy as np
import pytest

from radau_engine.dense_output import DenseOutputInterpolant
from radau_engine.errors import StaleInterpolant
from radau_engine.radau_tables import C


def _linear() -> DenseOutputInterpolant:
    # y(x) = 1 + s, s = (x - 1) / 2, on [1, 3]
    return DenseOutputInterpolant(1.0, 2.0, np.array([1.0]), np.array([[1.0, 0.0, 0.0]]))


def test_interval_properties() -> None:
    interp = _linear()
    assert interp.x_prev == 1.0
    assert interp.x_new == 3.0
    assert interp.h == 2.0
    assert interp.is_current
    np.testing.assert_array_equal(interp.coefficients, [[1.0, 1.0, 0.0, 0.0]])


def test_scalar_and_array_evaluation() -> None:
    interp = _linear()
    np.testing.assert_allclose(interp.evaluate(2.0), [1.5])
    assert interp.evaluate(2.0).shape == (1,)
    out = interp(np.array([1.0, 2.0, 3.0]))
    assert out.shape == (3, 1)
    np.testing.assert_allclose(out[:, 0], [1.0, 1.5, 2.0])


def test_outside_interval_raises() -> None:
    interp = _linear()
    with pytest.raises(ValueError, match="outside"):
        interp.evaluate(3.5)
    with pytest.raises(ValueError, match="outside"):
        interp.evaluate(np.array([2.0, 0.5]))
    # Round-off at the endpoints is tolerated.
    interp.evaluate(3.0 + 1e-15)


def test_from_stages_interpolates_stage_values() -> None:
    """The collocation polynomial passes through y_prev and y_prev + Z_i at c_i."""
    rng = np.random.default_rng(7)
    y_prev = rng.normal(size=4)
    Z = rng.normal(size=(3, 4))
    interp = DenseOutputInterpolant.from_stages(0.5, 0.25, y_prev, Z)

    np.testing.assert_allclose(interp.evaluate(0.5), y_prev, rtol=1e-13, atol=1e-13)
    nodes = 0.5 + 0.25 * C
    np.testing.assert_allclose(interp.evaluate(nodes), y_prev + Z, rtol=1e-10, atol=1e-10)
    np.testing.assert_allclose(interp.evaluate(0.75), y_prev + Z[-1], rtol=1e-10, atol=1e-10)


def test_invalidated_interpolant_refuses_evaluation() -> None:
    interp = _linear()
    snap = interp.snapshot()
    interp.invalidate()
    assert not interp.is_current
    with pytest.raises(StaleInterpolant, match="snapshot"):
        interp.evaluate(2.0)
    with pytest.raises(StaleInterpolant):
        interp.snapshot()
    np.testing.assert_allclose(snap(2.0), [1.5])


def test_predict_stages_extrapolates() -> None:
    interp = _linear()
    guess = interp.predict_stages(1.0)
    assert guess.shape == (3, 1)
    # slope 1/2 per unit x
    np.testing.assert_allclose(guess[:, 0], 0.5 * C)


def test_non_positive_step_rejected() -> None:
    with pytest.raises(ValueError, match="positive"):
        DenseOutputInterpolant(0.0, 0.0, np.zeros(1), np.zeros((1, 3)))
