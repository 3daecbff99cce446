# radau_engine/src/radau_engine/error_estimator.py
"""Embedded (order 3) local error estimate for Radau IIA.

The raw estimate ``f0 + M (Z^T E) / h`` is filtered through the real iteration
matrix, which damps its stiff components:

    err = ((mu_real / h) M - J)^{-1} (f0 + M Z^T E / h)

On very stiff problems this can still overestimate the error. With
stabilization enabled and a norm above one, a single extra correction

    err = ((mu_real / h) M - J)^{-1} (f(x, y + err) + M Z^T E / h)

is applied before the accept test.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from .matrix_ops import apply_operator
from .radau_tables import E

if TYPE_CHECKING:
    from .error_norm import ErrorNorm
    from .iteration_matrix import IterationHandles, IterationMatrixBuilder
    from .problem import ODEProblem
    from .statistics import Statistics


@dataclass(slots=True, frozen=True)
class ErrorEstimate:
    """Scaled error of one attempted step.

    Attributes:
        norm: Weighted RMS norm of the error estimate.
        accept_suggested: ``norm <= 1``.
        stabilized: Whether the corrective iteration was applied.
    """

    norm: float
    accept_suggested: bool
    stabilized: bool = False


class ErrorEstimator:
    """Computes the scaled embedded error of an attempted step."""

    def __init__(
        self,
        problem: ODEProblem,
        builder: IterationMatrixBuilder,
        error_norm: ErrorNorm,
        statistics: Statistics,
    ) -> None:
        self.problem = problem
        self.builder = builder
        self.error_norm = error_norm
        self.statistics = statistics

    def raw_error(
        self,
        f0: NDArray[np.floating],
        Z: NDArray[np.floating],
        h: float,
        handles: IterationHandles,
    ) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
        """Return (err, M Z^T E / h) for the attempted step."""
        mze = apply_operator(self.problem.mass_matrix, Z.T.dot(E) / h)
        err = np.real(self.builder.solve(handles.real, f0 + mze))
        return err, mze

    def estimate(
        self,
        x: float,
        y: NDArray[np.floating],
        y_new: NDArray[np.floating],
        f0: NDArray[np.floating],
        Z: NDArray[np.floating],
        h: float,
        handles: IterationHandles,
        *,
        stabilize: bool = False,
    ) -> ErrorEstimate:
        """
        Estimate the local error of the step ``y -> y_new``.

        Args:
            x: Start of the step.
            y: Solution at x.
            y_new: Proposed solution at x + h.
            f0: ``f(x, y)``.
            Z: Converged stage increments, shape (3, n).
            h: Step size.
            handles: Factorizations used by the step attempt.
            stabilize: Allow the corrective iteration when the norm exceeds one.

        Raises:
            RhsEvaluationError: If the correction's rhs evaluation fails.
            SolveError: If a backend solve fails.

        Returns:
            The error estimate.
        """
        weights = self.error_norm.weights(y, y_new)
        err, mze = self.raw_error(f0, Z, h, handles)
        norm = self.error_norm.norm(err, weights)

        stabilized = False
        if stabilize and norm > 1.0:
            f_corr = self.problem.eval_rhs(x, y + err, check_finite=False)
            self.statistics.n_function_eval += 1
            if np.all(np.isfinite(f_corr)):
                err = np.real(self.builder.solve(handles.real, f_corr + mze))
                norm = self.error_norm.norm(err, weights)
                stabilized = True

        return ErrorEstimate(norm=norm, accept_suggested=norm <= 1.0, stabilized=stabilized)
