# radau_engine/src/radau_engine/state.py
"""Integrator state and trajectory history.

This module provides the small containers the integrator mutates at step
boundaries:

- :class:`IntegratorState` holds ``(x, y, h, h_prev, step_index)`` and only
  changes on acceptance or an explicit reset.
- :class:`Trajectory` records the accepted grid, optional equidistant dense
  output, and a :class:`StepAttempt` log of every attempt.

The containers do not evaluate anything; they only validate shapes and keep
history in a solver-friendly manner.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, cast

import numpy as np
import numpy.typing as npt

# Error / message constants -------------------------------------------------

_Y0_SHAPE_ERROR = "Initial state shape {actual} mismatch vs. ({expected},)"
_Y0_FINITE_ERROR = "Initial state must be finite"
_NEXT_STATE_SHAPE_ERROR = "Next state shape {actual} does not match expected ({expected},)"
_X_MONOTONE_ERROR = "Accepted x={x_new} does not advance past x={x}"
_NOT_INITIALIZED_ERROR = "State has not been initialized; call set_initial_state first"
_STEP_OOB_ERROR = "Step index out of bounds: {idx}"


# Typing helpers ------------------------------------------------------------

FloatArray = npt.NDArray[np.floating[Any]]


class IntegratorState:
    """Current ``(x, y, h)`` of a run, owned by the integrator."""

    def __init__(self, n: int) -> None:
        """
        Initialize an empty state for an n-dimensional problem.

        Args:
            n: Problem dimension.
        """
        self.n = int(n)
        self.x = float("nan")
        self.y: FloatArray = np.zeros(self.n, dtype=np.float64)
        self.h = float("nan")
        self.h_prev = float("nan")
        self.step_index = 0
        self._initialized = False

    @property
    def initialized(self) -> bool:
        """True once :meth:`set_initial_state` has been called."""
        return self._initialized

    def set_initial_state(self, x0: float, y0: npt.ArrayLike, h: float) -> None:
        """
        Reset the state to the initial condition.

        Args:
            x0: Initial independent variable.
            y0: Initial state, shape (n,).
            h: Initial step size.

        Raises:
            ValueError: if y0 has incorrect shape or is not finite.
        """
        y0_arr = np.asarray(y0, dtype=np.float64)
        if y0_arr.shape != (self.n,):
            raise ValueError(_Y0_SHAPE_ERROR.format(actual=y0_arr.shape, expected=self.n))
        if not np.all(np.isfinite(y0_arr)):
            raise ValueError(_Y0_FINITE_ERROR)

        self.x = float(x0)
        self.y = np.array(y0_arr, copy=True)
        self.h = float(h)
        self.h_prev = float("nan")
        self.step_index = 0
        self._initialized = True

    def advance(self, x_new: float, y_new: npt.ArrayLike, h_used: float, h_next: float) -> None:
        """
        Move the state to an accepted step end.

        Args:
            x_new: End of the accepted step.
            y_new: Accepted solution, shape (n,).
            h_used: Size of the accepted step.
            h_next: Proposed size of the next step.

        Raises:
            RuntimeError: if the state was never initialized.
            ValueError: if y_new has incorrect shape or x does not increase.
        """
        if not self._initialized:
            raise RuntimeError(_NOT_INITIALIZED_ERROR)
        y_arr = np.asarray(y_new, dtype=np.float64)
        if y_arr.shape != (self.n,):
            raise ValueError(
                _NEXT_STATE_SHAPE_ERROR.format(actual=y_arr.shape, expected=self.n)
            )
        if not x_new > self.x:
            raise ValueError(_X_MONOTONE_ERROR.format(x_new=x_new, x=self.x))

        self.x = float(x_new)
        np.copyto(self.y, y_arr)
        self.h_prev = float(h_used)
        self.h = float(h_next)
        self.step_index += 1


@dataclass(slots=True, frozen=True)
class StepAttempt:
    """One step attempt, accepted or not.

    Attributes:
        x: Start of the attempt.
        h: Attempted step size.
        accepted: Whether the attempt was accepted.
        error_norm: Scaled error norm (nan if Newton failed first).
        newton_iterations: Newton iterations used.
        verdict: Newton verdict ("converged", "diverged" or "stalled").
        n_factorizations: Factorization counter after the attempt.
        jacobian_version: Jacobian version used by the attempt.
    """

    x: float
    h: float
    accepted: bool
    error_norm: float
    newton_iterations: int
    verdict: str
    n_factorizations: int
    jacobian_version: int = 0


@dataclass(slots=True)
class Trajectory:
    """Accepted solution points, optional dense output and the attempt log.

    Attributes:
        n: Problem dimension.
        x_points: Accepted grid (including the initial point).
        y_points: Solutions on the accepted grid.
        dense_x_points: Equidistant output abscissae (when requested).
        dense_y_points: Interpolated solutions at dense_x_points.
        attempts: Log of every step attempt.
    """

    n: int
    x_points: list[float] = field(default_factory=list)
    y_points: list[FloatArray] = field(default_factory=list)
    dense_x_points: list[float] = field(default_factory=list)
    dense_y_points: list[FloatArray] = field(default_factory=list)
    attempts: list[StepAttempt] = field(default_factory=list)

    def append(self, x: float, y: FloatArray) -> None:
        """Record an accepted point (y is copied)."""
        self.x_points.append(float(x))
        self.y_points.append(np.array(y, dtype=np.float64, copy=True))

    def append_dense(self, x: float, y: FloatArray) -> None:
        """Record an equidistant dense-output point (y is copied)."""
        self.dense_x_points.append(float(x))
        self.dense_y_points.append(np.array(y, dtype=np.float64, copy=True))

    def record_attempt(self, attempt: StepAttempt) -> None:
        """Append to the attempt log."""
        self.attempts.append(attempt)

    @staticmethod
    def _stack(points: list[FloatArray], n: int) -> FloatArray:
        if not points:
            return np.zeros((0, n), dtype=np.float64)
        return cast("FloatArray", np.vstack(points))

    @property
    def x(self) -> FloatArray:
        """Accepted grid, shape (m,)."""
        return np.asarray(self.x_points, dtype=np.float64)

    @property
    def y(self) -> FloatArray:
        """Accepted solutions, shape (m, n)."""
        return self._stack(self.y_points, self.n)

    @property
    def dense_x(self) -> FloatArray:
        """Dense-output abscissae, shape (k,)."""
        return np.asarray(self.dense_x_points, dtype=np.float64)

    @property
    def dense_y(self) -> FloatArray:
        """Dense-output solutions, shape (k, n)."""
        return self._stack(self.dense_y_points, self.n)

    @property
    def n_points(self) -> int:
        """Number of accepted points (including the initial point)."""
        return len(self.x_points)

    def get_state_at(self, idx: int) -> tuple[float, FloatArray]:
        """
        Return (x, y) of an accepted point.

        Raises:
            IndexError: if idx is out of bounds.
        """
        if not (-self.n_points <= idx < self.n_points):
            raise IndexError(_STEP_OOB_ERROR.format(idx=idx))
        return self.x_points[idx], self.y_points[idx]

    @property
    def rejected_attempts(self) -> list[StepAttempt]:
        """Attempts that were not accepted."""
        return [a for a in self.attempts if not a.accepted]
