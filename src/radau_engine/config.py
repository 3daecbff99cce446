# radau_engine/src/radau_engine/config.py
"""Immutable configuration objects for the Radau IIA integrator.

All tunables are grouped in small frozen dataclasses and bundled into one
:class:`IntegratorConfig`. The integrator receives the configuration at
construction (or through :meth:`RadauIntegrator.configure`) and never reads
ambient/global state, so independent runs cannot interfere with each other.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal, TypeAlias

import numpy as np
from numpy.typing import NDArray

from .errors import ConfigurationError

if TYPE_CHECKING:
    from .linear_solver import LinearSolverBackend


BackendName: TypeAlias = Literal["auto", "dense", "sparse"]

# =============================================================================
# Error messages
# =============================================================================

_RTOL_ERROR_MSG = "rtol must be positive and finite; got {rtol}"
_ATOL_ERROR_MSG = "atol must be non-negative and finite; got {atol}"
_H_BOUNDS_ERROR_MSG = "step bounds must satisfy 0 <= h_min <= h_max; got ({h_min}, {h_max})"
_H_INITIAL_ERROR_MSG = "h_initial must be positive and finite; got {h_initial}"
_FAC_ERROR_MSG = "factor bounds must satisfy 0 < fac_min < 1 < fac_max; got ({lo}, {hi})"
_SAFETY_ERROR_MSG = "safety must be in (0, 1]; got {safety}"
_EXPONENT_ERROR_MSG = "error exponent must be positive; got {exponent}"
_REJECT_SHRINK_ERROR_MSG = "reject_shrink must be in (0, 1); got {value}"
_KEEP_BAND_ERROR_MSG = "keep_band must be >= 1; got {value}"
_NEWTON_ITER_ERROR_MSG = "max_iterations must be >= 1; got {value}"
_NEWTON_TOL_ERROR_MSG = "newton tolerance must be positive; got {value}"
_EPS_H_ERROR_MSG = "eps_h must be non-negative; got {value}"
_WINDOW_ERROR_MSG = "stiffness window must be >= 1; got {value}"
_THRESHOLD_ERROR_MSG = "stiffness threshold must be in (0, 1]; got {value}"
_MAX_AGE_ERROR_MSG = "jacobian max_age must be >= 1 or None; got {value}"
_MAX_STEPS_ERROR_MSG = "max_steps must be >= 1; got {value}"
_MAX_REJECT_ERROR_MSG = "max_rejections must be >= 1; got {value}"
_DEADLINE_ERROR_MSG = "deadline must be positive or None; got {value}"
_RETRIES_ERROR_MSG = "singular_retries must be >= 0; got {value}"
_BACKEND_ERROR_MSG = "linear_solver must be 'auto', 'dense', 'sparse' or a backend; got {value!r}"


# =============================================================================
# Configuration dataclasses
# =============================================================================


@dataclass(slots=True, frozen=True)
class Tolerances:
    """Error tolerances.

    Attributes:
        rtol: Relative tolerance (scalar or per-component array).
        atol: Absolute tolerance (scalar or per-component array).
    """

    rtol: float | NDArray[np.floating] = 1e-6
    atol: float | NDArray[np.floating] = 1e-6

    def validate(self) -> None:
        """Validate tolerance values.

        Raises:
            ConfigurationError: If any tolerance is out of range.
        """
        rtol = np.asarray(self.rtol, dtype=float)
        atol = np.asarray(self.atol, dtype=float)
        if not np.all(np.isfinite(rtol)) or np.any(rtol <= 0.0):
            raise ConfigurationError(_RTOL_ERROR_MSG.format(rtol=self.rtol))
        if not np.all(np.isfinite(atol)) or np.any(atol < 0.0):
            raise ConfigurationError(_ATOL_ERROR_MSG.format(atol=self.atol))

    @property
    def min_rtol(self) -> float:
        """Smallest relative tolerance over all components."""
        return float(np.min(np.asarray(self.rtol, dtype=float)))


@dataclass(slots=True, frozen=True)
class StepBounds:
    """Step-size bounds and controller parameters.

    Attributes:
        h_initial: Initial step size guess.
        h_min: Minimum admissible step size (0 means "10 ulps of x").
        h_max: Maximum admissible step size.
        safety: Safety factor applied to the step proposal.
        fac_min: Minimum multiplicative change of h per decision.
        fac_max: Maximum multiplicative change of h per decision.
        error_exponent: Exponent applied to the error norm in the proposal.
        reject_shrink: Largest factor applied to h after a rejection.
        keep_band: Accepted proposals in [1, keep_band] keep h unchanged.
        predictive: Use the Gustafsson predictive (PI) correction.
    """

    h_initial: float = 1e-4
    h_min: float = 0.0
    h_max: float = float("inf")
    safety: float = 0.9
    fac_min: float = 0.2
    fac_max: float = 8.0
    error_exponent: float = 0.2
    reject_shrink: float = 0.8
    keep_band: float = 1.2
    predictive: bool = True

    def validate(self) -> None:
        """Validate step bounds.

        Raises:
            ConfigurationError: If any bound is out of range.
        """
        if not (0.0 <= self.h_min <= self.h_max):
            raise ConfigurationError(
                _H_BOUNDS_ERROR_MSG.format(h_min=self.h_min, h_max=self.h_max)
            )
        if not (np.isfinite(self.h_initial) and self.h_initial > 0.0):
            raise ConfigurationError(_H_INITIAL_ERROR_MSG.format(h_initial=self.h_initial))
        if not (0.0 < self.fac_min < 1.0 < self.fac_max):
            raise ConfigurationError(_FAC_ERROR_MSG.format(lo=self.fac_min, hi=self.fac_max))
        if not (0.0 < self.safety <= 1.0):
            raise ConfigurationError(_SAFETY_ERROR_MSG.format(safety=self.safety))
        if self.error_exponent <= 0.0:
            raise ConfigurationError(_EXPONENT_ERROR_MSG.format(exponent=self.error_exponent))
        if not (0.0 < self.reject_shrink < 1.0):
            raise ConfigurationError(_REJECT_SHRINK_ERROR_MSG.format(value=self.reject_shrink))
        if self.keep_band < 1.0:
            raise ConfigurationError(_KEEP_BAND_ERROR_MSG.format(value=self.keep_band))


@dataclass(slots=True, frozen=True)
class NewtonConfig:
    """Simplified Newton iteration parameters.

    Attributes:
        max_iterations: Iteration budget per step attempt.
        tol: Convergence tolerance on the scaled correction norm; None derives
            it from rtol as max(10 eps / rtol, min(0.03, sqrt(rtol))).
        use_extrapolation: Start from the previous step's collocation polynomial.
        eps_h: Relative h tolerance within which factorizations are reused.
    """

    max_iterations: int = 7
    tol: float | None = None
    use_extrapolation: bool = True
    eps_h: float = 1e-3

    def validate(self) -> None:
        """Validate Newton parameters.

        Raises:
            ConfigurationError: If any parameter is out of range.
        """
        if self.max_iterations < 1:
            raise ConfigurationError(_NEWTON_ITER_ERROR_MSG.format(value=self.max_iterations))
        if self.tol is not None and not (self.tol > 0.0):
            raise ConfigurationError(_NEWTON_TOL_ERROR_MSG.format(value=self.tol))
        if self.eps_h < 0.0:
            raise ConfigurationError(_EPS_H_ERROR_MSG.format(value=self.eps_h))

    def resolve_tol(self, rtol: float) -> float:
        """Return the Newton tolerance for the given (smallest) rtol."""
        if self.tol is not None:
            return float(self.tol)
        eps = float(np.finfo(float).eps)
        return max(10.0 * eps / rtol, min(0.03, rtol**0.5))


@dataclass(slots=True, frozen=True)
class StiffnessPolicy:
    """Stiffness-detection diagnostic parameters.

    Attributes:
        window: Number of most recent accepted steps considered.
        threshold: Mean Newton-iterations-to-budget ratio flagging stiffness.
        stabilize_error: Apply the error-estimate correction while stiff.
    """

    window: int = 15
    threshold: float = 0.5
    stabilize_error: bool = True

    def validate(self) -> None:
        """Validate stiffness policy.

        Raises:
            ConfigurationError: If any parameter is out of range.
        """
        if self.window < 1:
            raise ConfigurationError(_WINDOW_ERROR_MSG.format(value=self.window))
        if not (0.0 < self.threshold <= 1.0):
            raise ConfigurationError(_THRESHOLD_ERROR_MSG.format(value=self.threshold))


@dataclass(slots=True, frozen=True)
class JacobianPolicy:
    """Jacobian staleness policy.

    Attributes:
        max_age: Re-evaluate after this many accepted steps (None: never by age).
        rate_threshold: Re-evaluate after a step whose Newton contraction rate
            exceeded this value with more than two iterations.
    """

    max_age: int | None = None
    rate_threshold: float = 1e-3

    def validate(self) -> None:
        """Validate Jacobian policy.

        Raises:
            ConfigurationError: If max_age is invalid.
        """
        if self.max_age is not None and self.max_age < 1:
            raise ConfigurationError(_MAX_AGE_ERROR_MSG.format(value=self.max_age))


@dataclass(slots=True, frozen=True)
class IntegratorConfig:
    """Full configuration for :class:`RadauIntegrator`.

    Attributes:
        tolerances: Error tolerances.
        step_bounds: Step-size bounds and controller parameters.
        newton: Simplified Newton parameters.
        stiffness: Stiffness-detection diagnostic parameters.
        jacobian: Jacobian staleness policy.
        max_steps: Maximum number of step attempts per run.
        max_rejections: Maximum number of consecutive rejections.
        deadline: Optional wall-time budget in seconds per run.
        singular_retries: Retries with halved h after a factorization failure.
        linear_solver: Backend name or backend instance.
    """

    tolerances: Tolerances = field(default_factory=Tolerances)
    step_bounds: StepBounds = field(default_factory=StepBounds)
    newton: NewtonConfig = field(default_factory=NewtonConfig)
    stiffness: StiffnessPolicy = field(default_factory=StiffnessPolicy)
    jacobian: JacobianPolicy = field(default_factory=JacobianPolicy)
    max_steps: int = 100_000
    max_rejections: int = 25
    deadline: float | None = None
    singular_retries: int = 1
    linear_solver: BackendName | LinearSolverBackend = "auto"

    def validate(self) -> None:
        """Validate the whole configuration.

        Raises:
            ConfigurationError: If any part is invalid.
        """
        self.tolerances.validate()
        self.step_bounds.validate()
        self.newton.validate()
        self.stiffness.validate()
        self.jacobian.validate()
        if self.max_steps < 1:
            raise ConfigurationError(_MAX_STEPS_ERROR_MSG.format(value=self.max_steps))
        if self.max_rejections < 1:
            raise ConfigurationError(_MAX_REJECT_ERROR_MSG.format(value=self.max_rejections))
        if self.deadline is not None and not (self.deadline > 0.0):
            raise ConfigurationError(_DEADLINE_ERROR_MSG.format(value=self.deadline))
        if self.singular_retries < 0:
            raise ConfigurationError(_RETRIES_ERROR_MSG.format(value=self.singular_retries))
        if isinstance(self.linear_solver, str):
            if self.linear_solver not in {"auto", "dense", "sparse"}:
                raise ConfigurationError(_BACKEND_ERROR_MSG.format(value=self.linear_solver))
        elif not (
            hasattr(self.linear_solver, "factorize") and hasattr(self.linear_solver, "solve")
        ):
            raise ConfigurationError(_BACKEND_ERROR_MSG.format(value=self.linear_solver))
