"""Unit tests for radau_engine.errors."""

from __future__ import annotations

import pytest

from radau_engine.errors import (
    ConfigurationError,
    DeadlineExceeded,
    ErrorCode,
    FactorizationError,
    JacobianEvaluationError,
    LinearSolverError,
    MaxStepsExceeded,
    NewtonDivergence,
    RadauEngineError,
    RhsEvaluationError,
    SingularMatrixError,
    SolveError,
    StaleInterpolant,
    StepRejected,
    StepSizeTooSmall,
    TooManyRejections,
    UserCallbackError,
)
from radau_engine.state import Trajectory
from radau_engine.statistics import Statistics


@pytest.mark.parametrize(
    ("cls", "code"),
    [
        (UserCallbackError, ErrorCode.USER_CALLBACK),
        (RhsEvaluationError, ErrorCode.RHS_EVALUATION),
        (JacobianEvaluationError, ErrorCode.JACOBIAN_EVALUATION),
        (SingularMatrixError, ErrorCode.SINGULAR_MATRIX),
        (FactorizationError, ErrorCode.FACTORIZATION),
        (SolveError, ErrorCode.SOLVE),
        (NewtonDivergence, ErrorCode.NEWTON_DIVERGENCE),
        (StepSizeTooSmall, ErrorCode.STEP_SIZE_TOO_SMALL),
        (TooManyRejections, ErrorCode.TOO_MANY_REJECTIONS),
        (DeadlineExceeded, ErrorCode.DEADLINE_EXCEEDED),
        (MaxStepsExceeded, ErrorCode.MAX_STEPS_EXCEEDED),
        (StaleInterpolant, ErrorCode.STALE_INTERPOLANT),
        (ConfigurationError, ErrorCode.INVALID_CONFIGURATION),
    ],
)
def test_default_codes(cls: type[RadauEngineError], code: ErrorCode) -> None:
    err = cls("boom")
    assert err.code is code
    assert str(err) == "boom"
    assert err.trajectory is None
    assert err.statistics is None


def test_explicit_code_overrides_default() -> None:
    err = UserCallbackError("x", code=ErrorCode.RHS_EVALUATION)
    assert err.code is ErrorCode.RHS_EVALUATION


def test_hierarchy() -> None:
    assert issubclass(RhsEvaluationError, UserCallbackError)
    assert issubclass(JacobianEvaluationError, UserCallbackError)
    assert issubclass(SingularMatrixError, LinearSolverError)
    assert issubclass(FactorizationError, LinearSolverError)
    assert issubclass(SolveError, LinearSolverError)
    assert issubclass(MaxStepsExceeded, DeadlineExceeded)
    assert issubclass(ConfigurationError, ValueError)


def test_recoverable_signals_are_not_fatal() -> None:
    assert NewtonDivergence.fatal is False
    assert StepRejected.fatal is False
    assert StepSizeTooSmall.fatal is True
    assert SingularMatrixError.fatal is True


def test_step_rejected_carries_retry_data() -> None:
    err = StepRejected("rejected", h_new=0.25, error_norm=3.5)
    assert err.h_new == 0.25
    assert err.error_norm == 3.5
    assert err.code is ErrorCode.STEP_REJECTED


def test_attach_sets_partial_results() -> None:
    err = StepSizeTooSmall("tiny")
    traj = Trajectory(2)
    stats = Statistics(n_steps=3)
    err.attach(trajectory=traj, statistics=stats)
    assert err.trajectory is traj
    assert err.statistics is stats
