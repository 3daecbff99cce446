"""Weighted RMS error scaling."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

_TOL_SHAPE_ERROR_MSG = "tolerance shape {shape} is not broadcastable to ({n},)"


@dataclass(slots=True, frozen=True)
class ErrorNorm:
    """Per-component weights ``atol + rtol * max(|y|, |y_new|)`` and RMS norm.

    Attributes:
        rtol: Relative tolerance, scalar or shape (n,).
        atol: Absolute tolerance, scalar or shape (n,).
    """

    rtol: float | NDArray[np.floating]
    atol: float | NDArray[np.floating]

    def check_size(self, n: int) -> None:
        """Raise ValueError if the tolerances cannot apply to n components."""
        for tol in (self.rtol, self.atol):
            arr = np.asarray(tol, dtype=float)
            if arr.ndim > 1 or (arr.ndim == 1 and arr.shape[0] not in {1, n}):
                raise ValueError(_TOL_SHAPE_ERROR_MSG.format(shape=arr.shape, n=n))

    def weights(
        self,
        y: NDArray[np.floating],
        y_new: NDArray[np.floating] | None = None,
    ) -> NDArray[np.floating]:
        """Return the error weights for the current (and proposed) solution."""
        mag = np.abs(y) if y_new is None else np.maximum(np.abs(y), np.abs(y_new))
        return np.asarray(self.atol + self.rtol * mag, dtype=float)

    @staticmethod
    def norm(v: NDArray[np.generic], weights: NDArray[np.floating]) -> float:
        """RMS of ``v / weights`` over all entries; ``inf`` if non-finite.

        ``v`` may be a vector of shape (n,) or a stack of shape (k, n); complex
        entries contribute their modulus.
        """
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            scaled = np.abs(np.asarray(v)) / weights
            if scaled.size == 0:
                return 0.0
            value = float(np.sqrt(np.mean(scaled * scaled)))
        return value if np.isfinite(value) else float("inf")
