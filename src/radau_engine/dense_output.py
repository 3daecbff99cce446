# radau_engine/src/radau_engine/dense_output.py
"""Continuous extension over the last accepted step.

The Radau IIA collocation polynomial through ``y_prev`` and the three stage
values is a cubic in ``s = (x - x_prev) / h``::

    y(x) = y_prev + Q[:, 0] s + Q[:, 1] s^2 + Q[:, 2] s^3,   Q = Z^T P

so each component carries four coefficients (``y_prev`` and the three columns
of ``Q``). The interpolant is replaced on every accepted step; the replaced
instance is invalidated and refuses evaluation unless a :meth:`snapshot` was
taken while it was current.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .errors import StaleInterpolant
from .radau_tables import C, P

_STALE_ERROR_MSG = (
    "interpolant for [{x0}, {x1}] was replaced by a newer step; take a snapshot() "
    "before accepting further steps to keep it"
)
_DOMAIN_ERROR_MSG = "x={x} is outside the interpolation interval [{x0}, {x1}]"
_H_ERROR_MSG = "interpolation step must be positive; got {h}"


class DenseOutputInterpolant:
    """Cubic collocation polynomial valid on ``[x_prev, x_prev + h]``."""

    def __init__(
        self,
        x_prev: float,
        h: float,
        y_prev: NDArray[np.floating],
        Q: NDArray[np.floating],
    ) -> None:
        """
        Initialize from polynomial coefficients.

        Args:
            x_prev: Start of the step.
            h: Step size.
            y_prev: Solution at x_prev, shape (n,).
            Q: Coefficients of s, s^2, s^3, shape (n, 3).

        Raises:
            ValueError: If h is not positive.
        """
        if not h > 0.0:
            raise ValueError(_H_ERROR_MSG.format(h=h))
        self._x_prev = float(x_prev)
        self._h = float(h)
        self._y_prev = np.array(y_prev, dtype=np.float64, copy=True)
        self._Q = np.array(Q, dtype=np.float64, copy=True)
        self._current = True

    @classmethod
    def from_stages(
        cls,
        x_prev: float,
        h: float,
        y_prev: NDArray[np.floating],
        Z: NDArray[np.floating],
    ) -> DenseOutputInterpolant:
        """Build the interpolant from converged stage increments Z (3, n)."""
        return cls(x_prev, h, y_prev, Z.T.dot(P))

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def x_prev(self) -> float:
        """Start of the interval."""
        return self._x_prev

    @property
    def x_new(self) -> float:
        """End of the interval."""
        return self._x_prev + self._h

    @property
    def h(self) -> float:
        """Interval length."""
        return self._h

    @property
    def is_current(self) -> bool:
        """False once a newer step replaced this interpolant."""
        return self._current

    @property
    def coefficients(self) -> NDArray[np.floating]:
        """Per-component coefficients of [1, s, s^2, s^3], shape (n, 4)."""
        return np.column_stack([self._y_prev, self._Q])

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def invalidate(self) -> None:
        """Mark this interpolant as replaced."""
        self._current = False

    def snapshot(self) -> DenseOutputInterpolant:
        """
        Return a detached copy that stays valid after this one is replaced.

        Raises:
            StaleInterpolant: If this interpolant was already replaced.
        """
        self._check_current()
        return DenseOutputInterpolant(self._x_prev, self._h, self._y_prev, self._Q)

    def _check_current(self) -> None:
        if not self._current:
            raise StaleInterpolant(
                _STALE_ERROR_MSG.format(x0=self._x_prev, x1=self.x_new)
            )

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _polyval(self, x: NDArray[np.floating]) -> NDArray[np.floating]:
        s = (x - self._x_prev) / self._h
        powers = np.stack([s, s * s, s * s * s])  # (3, m)
        return self._y_prev[None, :] + (self._Q @ powers).T

    def evaluate(self, x: ArrayLike) -> NDArray[np.floating]:
        """
        Evaluate the interpolant.

        Args:
            x: Scalar or 1D array of points in [x_prev, x_prev + h].

        Raises:
            StaleInterpolant: If a newer step replaced this interpolant.
            ValueError: If any point lies outside the interval.

        Returns:
            Shape (n,) for scalar x, else (m, n).
        """
        self._check_current()
        x_arr = np.asarray(x, dtype=np.float64)
        scalar = x_arr.ndim == 0
        x_arr = np.atleast_1d(x_arr)

        x0, x1 = self._x_prev, self.x_new
        slack = 64.0 * float(np.finfo(float).eps) * max(1.0, abs(x0), abs(x1))
        if np.any(x_arr < x0 - slack) or np.any(x_arr > x1 + slack):
            bad = x_arr[(x_arr < x0 - slack) | (x_arr > x1 + slack)][0]
            raise ValueError(_DOMAIN_ERROR_MSG.format(x=bad, x0=x0, x1=x1))

        out = self._polyval(x_arr)
        return out[0] if scalar else out

    def __call__(self, x: ArrayLike) -> NDArray[np.floating]:
        return self.evaluate(x)

    def predict_stages(self, h_next: float) -> NDArray[np.floating]:
        """
        Extrapolate stage increments for the step starting at x_new.

        Used as the Newton initial guess; evaluation outside the interval is
        intentional here.

        Args:
            h_next: Size of the next step.

        Returns:
            Initial guess for Z, shape (3, n).
        """
        y_new = self._polyval(np.array([self.x_new]))[0]
        return self._polyval(self.x_new + h_next * C) - y_new
