# radau_engine/src/radau_engine/errors.py
"""Error taxonomy for radau_engine.

Errors fall in two groups:

- Fatal errors propagate out of :meth:`RadauIntegrator.run`. Before re-raising,
  the integrator attaches the partial trajectory (up to the last accepted step)
  and the run statistics to the exception.
- Recoverable errors (:class:`NewtonDivergence`, :class:`StepRejected`) are used
  as internal control flow inside the step-retry loop and never reach the caller
  of an adaptive run.

Every error carries a machine-readable :class:`ErrorCode` so callers can log or
branch on the failure kind without matching on exception classes.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .state import Trajectory
    from .statistics import Statistics


class ErrorCode(StrEnum):
    """Machine-readable classification for radau_engine failures."""

    USER_CALLBACK = "user_callback"
    RHS_EVALUATION = "rhs_evaluation"
    JACOBIAN_EVALUATION = "jacobian_evaluation"
    SINGULAR_MATRIX = "singular_matrix"
    FACTORIZATION = "factorization"
    SOLVE = "solve"
    NEWTON_DIVERGENCE = "newton_divergence"
    STEP_REJECTED = "step_rejected"
    STEP_SIZE_TOO_SMALL = "step_size_too_small"
    TOO_MANY_REJECTIONS = "too_many_rejections"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    MAX_STEPS_EXCEEDED = "max_steps_exceeded"
    STALE_INTERPOLANT = "stale_interpolant"
    INVALID_CONFIGURATION = "invalid_configuration"


class RadauEngineError(Exception):
    """Base exception for radau_engine failures.

    Attributes:
        code: Machine-readable error code.
        trajectory: Partial trajectory attached by the integrator for fatal errors.
        statistics: Run statistics attached by the integrator for fatal errors.
    """

    default_code: ErrorCode = ErrorCode.USER_CALLBACK
    fatal: bool = True

    def __init__(self, message: str, *, code: ErrorCode | None = None) -> None:
        """
        Initialize a RadauEngineError.

        Args:
            message: Human-readable error message.
            code: Optional error code; defaults to the class default.
        """
        super().__init__(message)
        self.code: ErrorCode = code if code is not None else self.default_code
        self.trajectory: Trajectory | None = None
        self.statistics: Statistics | None = None

    def attach(self, *, trajectory: Trajectory, statistics: Statistics) -> None:
        """Attach the partial trajectory and statistics of the failed run."""
        self.trajectory = trajectory
        self.statistics = statistics


# -----------------------------------------------------------------------------
# User callback failures (fatal)
# -----------------------------------------------------------------------------


class UserCallbackError(RadauEngineError):
    """Raised when a user-supplied callback fails or returns invalid data."""

    default_code = ErrorCode.USER_CALLBACK


class RhsEvaluationError(UserCallbackError):
    """Raised when the right-hand side callback fails or returns non-finite data."""

    default_code = ErrorCode.RHS_EVALUATION


class JacobianEvaluationError(UserCallbackError):
    """Raised when the Jacobian callback fails or returns non-finite data."""

    default_code = ErrorCode.JACOBIAN_EVALUATION


# -----------------------------------------------------------------------------
# Linear-solver backend failures
# -----------------------------------------------------------------------------


class LinearSolverError(RadauEngineError):
    """Base class for failures reported by a linear-solver backend."""

    default_code = ErrorCode.FACTORIZATION


class SingularMatrixError(LinearSolverError):
    """Raised when an iteration matrix is (numerically) singular."""

    default_code = ErrorCode.SINGULAR_MATRIX


class FactorizationError(LinearSolverError):
    """Raised when a backend cannot factorize an iteration matrix."""

    default_code = ErrorCode.FACTORIZATION


class SolveError(LinearSolverError):
    """Raised when a backend solve fails or produces non-finite output."""

    default_code = ErrorCode.SOLVE


# -----------------------------------------------------------------------------
# Recoverable step-control signals
# -----------------------------------------------------------------------------


class NewtonDivergence(RadauEngineError):
    """Simplified Newton failed to converge; the step is retried with smaller h."""

    default_code = ErrorCode.NEWTON_DIVERGENCE
    fatal = False


class StepRejected(RadauEngineError):
    """Internal signal: the error estimate rejected the attempted step.

    Attributes:
        h_new: Step size to retry with.
        error_norm: Scaled error norm of the rejected attempt.
    """

    default_code = ErrorCode.STEP_REJECTED
    fatal = False

    def __init__(self, message: str, *, h_new: float, error_norm: float) -> None:
        """
        Initialize a StepRejected signal.

        Args:
            message: Human-readable message.
            h_new: Step size to retry with.
            error_norm: Scaled error norm of the rejected attempt.
        """
        super().__init__(message)
        self.h_new = float(h_new)
        self.error_norm = float(error_norm)


# -----------------------------------------------------------------------------
# Fatal step-control failures
# -----------------------------------------------------------------------------


class StepSizeTooSmall(RadauEngineError):
    """Raised when the step size falls below the admissible minimum."""

    default_code = ErrorCode.STEP_SIZE_TOO_SMALL


class TooManyRejections(RadauEngineError):
    """Raised when the consecutive-rejection limit is reached."""

    default_code = ErrorCode.TOO_MANY_REJECTIONS


class DeadlineExceeded(RadauEngineError):
    """Raised when the cooperative wall-time deadline is exceeded."""

    default_code = ErrorCode.DEADLINE_EXCEEDED


class MaxStepsExceeded(DeadlineExceeded):
    """Raised when the maximum number of step attempts is exceeded."""

    default_code = ErrorCode.MAX_STEPS_EXCEEDED


# -----------------------------------------------------------------------------
# Caller errors
# -----------------------------------------------------------------------------


class StaleInterpolant(RadauEngineError):
    """Raised when a dense-output interpolant is evaluated after it was replaced."""

    default_code = ErrorCode.STALE_INTERPOLANT


class ConfigurationError(RadauEngineError, ValueError):
    """Raised when an integrator configuration is invalid."""

    default_code = ErrorCode.INVALID_CONFIGURATION

