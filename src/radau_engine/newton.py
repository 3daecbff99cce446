# radau_engine/src/radau_engine/newton.py
"""Simplified Newton iteration on the transformed collocation system.

With stage increments ``Z = (z_1, z_2, z_3)`` and ``W = T^{-1} Z``, each
iteration solves

    ((mu_real / h) M - J) dW_0            = F^T TI_real    - (mu_real / h) M W_0
    ((mu_complex / h) M - J) (dW_1 + i dW_2) = F^T TI_complex - (mu_complex / h) M (W_1 + i W_2)

with ``F_i = f(x + c_i h, y + z_i)`` and fixed factorizations for the whole
attempt, then sets ``W += dW`` and ``Z = T W``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from .error_norm import ErrorNorm
from .matrix_ops import apply_operator
from .radau_tables import C, MU_COMPLEX, MU_REAL, TI, TI_COMPLEX, TI_REAL, T

if TYPE_CHECKING:
    from .iteration_matrix import IterationHandles, IterationMatrixBuilder
    from .problem import ODEProblem
    from .statistics import Statistics


class NewtonVerdict(StrEnum):
    """Outcome of one Newton attempt."""

    CONVERGED = "converged"
    DIVERGED = "diverged"
    STALLED = "stalled"


@dataclass(slots=True)
class NewtonIterationRecord:
    """Result of one simplified Newton attempt.

    Attributes:
        iterations: Iterations performed.
        norm: Scaled norm of the last correction.
        rate: Contraction-rate estimate (nan until two corrections exist).
        verdict: Converged, diverged or stalled.
        Z: Stage increments, shape (3, n).
    """

    iterations: int
    norm: float
    rate: float
    verdict: NewtonVerdict
    Z: NDArray[np.floating]

    @property
    def converged(self) -> bool:
        """True if the iteration converged."""
        return self.verdict is NewtonVerdict.CONVERGED


class NewtonSolver:
    """Runs simplified Newton iterations with fixed factorizations."""

    def __init__(
        self,
        problem: ODEProblem,
        builder: IterationMatrixBuilder,
        statistics: Statistics,
        *,
        max_iterations: int = 7,
        tol: float = 0.03,
    ) -> None:
        """
        Initialize the solver.

        Args:
            problem: Problem providing f and the mass matrix.
            builder: Builder whose handles are used for the correction solves.
            statistics: Run statistics to update.
            max_iterations: Iteration budget per attempt.
            tol: Convergence tolerance on the scaled correction norm.
        """
        self.problem = problem
        self.builder = builder
        self.statistics = statistics
        self.max_iterations = int(max_iterations)
        self.tol = float(tol)

    def iterate(
        self,
        x: float,
        y: NDArray[np.floating],
        h: float,
        handles: IterationHandles,
        z0: NDArray[np.floating],
        scale: NDArray[np.floating],
    ) -> NewtonIterationRecord:
        """
        Solve the collocation system for one step attempt.

        Args:
            x: Start of the step.
            y: Solution at x.
            h: Step size.
            handles: Factorized real and complex iteration matrices for h.
            z0: Initial guess for the stage increments, shape (3, n).
            scale: Error weights for the correction norm, shape (n,).

        Raises:
            RhsEvaluationError: If the rhs callback raises or returns a bad shape.
            SolveError: If a backend solve fails.

        Returns:
            Record with iterations, last norm, rate, verdict and Z.
        """
        n = y.shape[0]
        mass = self.problem.mass_matrix
        max_iter = self.max_iterations
        tol = self.tol

        Z = np.array(z0, dtype=np.float64, copy=True)
        W = TI.dot(Z)
        F = np.empty((3, n))
        dW = np.empty_like(W)
        ch = h * C

        dW_norm = float("inf")
        dW_norm_old: float | None = None
        rate: float | None = None
        verdict = NewtonVerdict.DIVERGED
        iterations = 0

        for k in range(max_iter):
            for i in range(3):
                F[i] = self.problem.eval_rhs(x + ch[i], y + Z[i], check_finite=False)
            self.statistics.n_function_eval += 3

            if not np.all(np.isfinite(F)):
                verdict = NewtonVerdict.DIVERGED
                break

            f_real = F.T.dot(TI_REAL) - MU_REAL / h * apply_operator(mass, W[0])
            f_complex = F.T.dot(TI_COMPLEX) - MU_COMPLEX / h * apply_operator(
                mass, W[1] + 1j * W[2]
            )

            dW_real = self.builder.solve(handles.real, f_real)
            dW_complex = self.builder.solve(handles.complex, f_complex)
            iterations = k + 1

            dW[0] = np.real(dW_real)
            dW[1] = dW_complex.real
            dW[2] = dW_complex.imag

            dW_norm = ErrorNorm.norm(dW, scale)
            if dW_norm_old is not None:
                rate = dW_norm / dW_norm_old

            if rate is not None:
                if rate >= 1.0:
                    verdict = NewtonVerdict.DIVERGED
                    break
                if rate ** (max_iter - k) / (1.0 - rate) * dW_norm > tol:
                    verdict = NewtonVerdict.STALLED
                    break

            W += dW
            Z = T.dot(W)

            if dW_norm == 0.0 or (rate is not None and rate / (1.0 - rate) * dW_norm < tol):
                verdict = NewtonVerdict.CONVERGED
                break

            dW_norm_old = dW_norm
        else:
            verdict = NewtonVerdict.DIVERGED

        self.statistics.note_newton(iterations)
        return NewtonIterationRecord(
            iterations=iterations,
            norm=dW_norm,
            rate=float("nan") if rate is None else float(rate),
            verdict=verdict,
            Z=Z,
        )
