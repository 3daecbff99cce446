"""radau_engine adaptive Radau IIA integrator for stiff ODEs and index-1 DAEs."""

from __future__ import annotations

from .config import (
    IntegratorConfig,
    JacobianPolicy,
    NewtonConfig,
    StepBounds,
    StiffnessPolicy,
    Tolerances,
)
from .dense_output import DenseOutputInterpolant
from .error_estimator import ErrorEstimate, ErrorEstimator
from .error_norm import ErrorNorm
from .errors import (
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
from .integrator import RadauIntegrator
from .iteration_matrix import IterationHandles, IterationMatrixBuilder
from .jacobian import JacobianCache, JacobianManager, numerical_jacobian
from .linear_solver import (
    DenseLUBackend,
    FactorizationHandle,
    LinearSolverBackend,
    SparseLUBackend,
    select_backend,
)
from .matrix_ops import Operator, build_laplacian_tridiag, kron_prod, kron_sum
from .newton import NewtonIterationRecord, NewtonSolver, NewtonVerdict
from .problem import ODEProblem, RHSFunction
from .settings import IntegratorSettings, load_settings
from .state import IntegratorState, StepAttempt, Trajectory
from .statistics import Statistics
from .step_controller import ControllerState, StepController, StepDecision

__all__ = [
    "ConfigurationError",
    "ControllerState",
    "DeadlineExceeded",
    "DenseLUBackend",
    "DenseOutputInterpolant",
    "ErrorCode",
    "ErrorEstimate",
    "ErrorEstimator",
    "ErrorNorm",
    "FactorizationError",
    "FactorizationHandle",
    "IntegratorConfig",
    "IntegratorSettings",
    "IntegratorState",
    "IterationHandles",
    "IterationMatrixBuilder",
    "JacobianCache",
    "JacobianEvaluationError",
    "JacobianManager",
    "JacobianPolicy",
    "LinearSolverBackend",
    "LinearSolverError",
    "MaxStepsExceeded",
    "NewtonConfig",
    "NewtonDivergence",
    "NewtonIterationRecord",
    "NewtonSolver",
    "NewtonVerdict",
    "ODEProblem",
    "Operator",
    "RHSFunction",
    "RadauEngineError",
    "RadauIntegrator",
    "RhsEvaluationError",
    "SingularMatrixError",
    "SolveError",
    "SparseLUBackend",
    "StaleInterpolant",
    "Statistics",
    "StepAttempt",
    "StepBounds",
    "StepController",
    "StepDecision",
    "StepRejected",
    "StepSizeTooSmall",
    "StiffnessPolicy",
    "Tolerances",
    "TooManyRejections",
    "Trajectory",
    "UserCallbackError",
    "build_laplacian_tridiag",
    "kron_prod",
    "kron_sum",
    "load_settings",
    "numerical_jacobian",
    "select_backend",
]

__version__ = "0.1.0"
