# radau_engine/src/radau_engine/integrator.py
"""Adaptive Radau IIA (order 5) integrator for stiff ODEs and index-1 DAEs.

:class:`RadauIntegrator` advances ``M y' = f(x, y)`` from ``x0`` to ``x_end``.
Each step attempt runs

    JacobianManager -> IterationMatrixBuilder -> NewtonSolver
        -> ErrorEstimator -> StepController

and ends in one of three outcomes:

- accept: the state advances, a new dense-output interpolant replaces the old
  one, and the rejection counter resets;
- reject: Newton failed (``NewtonDivergence``) or the error test failed
  (``StepRejected``); ``h`` shrinks and the same ``x`` is retried without
  touching the state;
- fatal: any other :class:`RadauEngineError` stops the run. The partial
  trajectory (up to the last accepted step) and the statistics are attached to
  the exception before it propagates.

Equal-step mode (``h_equal``):
    Runs ``ceil((x_end - x0) / h_equal)`` equal steps without error control.
    Since ``h`` cannot change, Newton failure is fatal in this mode.

Cooperative cancellation:
    ``max_steps`` (attempts) and ``deadline`` (wall seconds) are checked once
    per attempt and surface as :class:`MaxStepsExceeded` / :class:`DeadlineExceeded`.

Every run owns its Jacobian cache, factorizations and statistics; nothing is
shared between runs or integrator instances.
"""

from __future__ import annotations

import logging
import math
import time
import warnings
from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING, Any

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.sparse import issparse

from .config import IntegratorConfig
from .dense_output import DenseOutputInterpolant
from .error_estimator import ErrorEstimate, ErrorEstimator
from .error_norm import ErrorNorm
from .errors import (
    DeadlineExceeded,
    LinearSolverError,
    MaxStepsExceeded,
    NewtonDivergence,
    RadauEngineError,
    StaleInterpolant,
    StepRejected,
    UserCallbackError,
)
from .iteration_matrix import IterationMatrixBuilder
from .jacobian import JacobianManager
from .linear_solver import SparseLUBackend, select_backend
from .matrix_ops import _DISPATCH_THRESHOLD
from .newton import NewtonIterationRecord, NewtonSolver
from .state import IntegratorState, StepAttempt, Trajectory
from .statistics import Statistics
from .step_controller import StepController

if TYPE_CHECKING:
    from .config import StepBounds, StiffnessPolicy, Tolerances
    from .problem import ODEProblem

logger = logging.getLogger(__name__)

OutputStepCallback = Callable[[int, float, float, NDArray[np.floating]], bool]

# =============================================================================
# Errors / messages
# =============================================================================

_X_RANGE_ERROR_MSG = "x_end must be finite and greater than x0; got x0={x0}, x_end={x_end}"
_H_OUT_ERROR_MSG = "h_out must be positive and finite; got {h_out}"
_H_EQUAL_ERROR_MSG = "h_equal must be positive and finite; got {h_equal}"
_H_OUT_EQUAL_WARNING_MSG = (
    "h_out combined with h_equal: dense output interpolates steps taken without "
    "error control"
)
_NO_INTERPOLANT_MSG = "no interpolant available; run() has not accepted any step"
_MAX_STEPS_MSG = "exceeded max_steps={max_steps} step attempts at x={x}"
_DEADLINE_MSG = "exceeded deadline of {deadline}s at x={x}"
_NEWTON_MSG = "newton iteration {verdict} after {iterations} iterations at x={x}, h={h:.3e}"
_NEWTON_EQUAL_MSG = "newton iteration {verdict} at x={x} in equal-step mode (h={h:.3e})"
_REJECT_MSG = "error norm {err:.3g} > 1 at x={x}, h={h:.3e}"
_OUTPUT_STEP_ERROR_MSG = "output_step callback raised at x={x}: {exc!r}"

# Final-step stretch: a step ending within 1% of x_end is stretched onto x_end.
_LAST_STEP_STRETCH = 1.01
_OUTPUT_SLACK = 64.0 * float(np.finfo(float).eps)


class RadauIntegrator:
    """Adaptive implicit Runge-Kutta integrator (Radau IIA, 3 stages, order 5)."""

    def __init__(self, problem: ODEProblem, config: IntegratorConfig | None = None) -> None:
        """
        Initialize the integrator.

        Args:
            problem: System to integrate.
            config: Immutable configuration; defaults to IntegratorConfig().

        Raises:
            ConfigurationError: If the configuration is invalid.
        """
        cfg = config if config is not None else IntegratorConfig()
        cfg.validate()
        self.problem = problem
        self._config = cfg
        self.statistics = Statistics()
        self._interpolant: DenseOutputInterpolant | None = None
        self._run_ctx: _RunContext | None = None

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> IntegratorConfig:
        """Current immutable configuration."""
        return self._config

    def configure(
        self,
        tolerances: Tolerances | None = None,
        step_bounds: StepBounds | None = None,
        max_steps: int | None = None,
        stiffness_policy: StiffnessPolicy | None = None,
        **overrides: Any,
    ) -> IntegratorConfig:
        """
        Replace parts of the configuration.

        Args:
            tolerances: New tolerances.
            step_bounds: New step bounds.
            max_steps: New step-attempt budget.
            stiffness_policy: New stiffness diagnostic policy.
            **overrides: Any other IntegratorConfig field.

        Raises:
            ConfigurationError: If the resulting configuration is invalid.

        Returns:
            The new configuration (also stored on the integrator).
        """
        changes: dict[str, Any] = dict(overrides)
        if tolerances is not None:
            changes["tolerances"] = tolerances
        if step_bounds is not None:
            changes["step_bounds"] = step_bounds
        if max_steps is not None:
            changes["max_steps"] = max_steps
        if stiffness_policy is not None:
            changes["stiffness"] = stiffness_policy

        new_cfg = replace(self._config, **changes)
        new_cfg.validate()
        self._config = new_cfg
        return new_cfg

    # ------------------------------------------------------------------
    # Dense output access
    # ------------------------------------------------------------------

    @property
    def interpolant(self) -> DenseOutputInterpolant | None:
        """Interpolant of the most recent accepted step (None before any step)."""
        return self._interpolant

    def sample(self, x: ArrayLike) -> NDArray[np.floating]:
        """
        Evaluate the last interpolant of the most recent run.

        Args:
            x: Scalar or 1D array inside the last accepted step.

        Raises:
            StaleInterpolant: If no step has been accepted yet.
            ValueError: If x lies outside the last accepted step.

        Returns:
            Interpolated solution(s).
        """
        if self._interpolant is None:
            raise StaleInterpolant(_NO_INTERPOLANT_MSG)
        return self._interpolant.evaluate(x)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(
        self,
        x0: float,
        y0: ArrayLike,
        x_end: float,
        *,
        h_out: float | None = None,
        h_equal: float | None = None,
        output_step: OutputStepCallback | None = None,
    ) -> tuple[Trajectory, Statistics]:
        """
        Integrate from x0 to x_end.

        Args:
            x0: Initial independent variable.
            y0: Initial state, shape (n,).
            x_end: Final independent variable (> x0).
            h_out: Optional spacing of equidistant dense output.
            h_equal: Optional equal step size (disables error control).
            output_step: Optional ``(step_index, h, x, y) -> stop`` callback
                invoked after every accepted step; returning True ends the run.

        Raises:
            ValueError: If the arguments are invalid.
            RadauEngineError: Fatal failure, with trajectory/statistics attached.

        Returns:
            (trajectory, statistics) of the run.
        """
        cfg = self._config
        problem = self.problem
        n = problem.n
        x0 = float(x0)
        x_end = float(x_end)

        if not (math.isfinite(x0) and math.isfinite(x_end) and x_end > x0):
            raise ValueError(_X_RANGE_ERROR_MSG.format(x0=x0, x_end=x_end))
        if h_out is not None and not (h_out > 0.0 and math.isfinite(h_out)):
            raise ValueError(_H_OUT_ERROR_MSG.format(h_out=h_out))
        if h_equal is not None and not (h_equal > 0.0 and math.isfinite(h_equal)):
            raise ValueError(_H_EQUAL_ERROR_MSG.format(h_equal=h_equal))
        if h_out is not None and h_equal is not None:
            warnings.warn(_H_OUT_EQUAL_WARNING_MSG, RuntimeWarning, stacklevel=2)

        error_norm = ErrorNorm(cfg.tolerances.rtol, cfg.tolerances.atol)
        error_norm.check_size(n)

        # Per-run components
        stats = Statistics()
        self.statistics = stats
        controller = StepController(
            cfg.step_bounds,
            cfg.stiffness,
            max_iterations=cfg.newton.max_iterations,
            max_rejections=cfg.max_rejections,
        )

        if h_equal is not None:
            n_equal = max(1, math.ceil((x_end - x0) / h_equal))
            h0 = (x_end - x0) / n_equal
        else:
            h0 = controller.clamp(min(cfg.step_bounds.h_initial, x_end - x0))

        state = IntegratorState(n)
        state.set_initial_state(x0, y0, h0)
        trajectory = Trajectory(n)
        trajectory.append(x0, state.y)
        if h_out is not None:
            trajectory.append_dense(x0, state.y)

        backend = select_backend(
            cfg.linear_solver, n=n, sparse_jacobian=problem.sparse_jacobian
        )
        builder = IterationMatrixBuilder(
            backend, stats, mass=problem.mass_matrix, eps_h=cfg.newton.eps_h
        )
        jac_mgr = JacobianManager(problem, cfg.jacobian, stats)

        def _on_refresh() -> None:
            builder.invalidate()
            if (
                cfg.linear_solver == "auto"
                and builder.backend.name != "sparse"
                and issparse(jac_mgr.cache.matrix)
                and n >= _DISPATCH_THRESHOLD
            ):
                builder.backend = SparseLUBackend()

        jac_mgr.add_listener(_on_refresh)

        self._run_ctx = _RunContext(
            problem=problem,
            config=cfg,
            stats=stats,
            state=state,
            trajectory=trajectory,
            controller=controller,
            builder=builder,
            jac_mgr=jac_mgr,
            newton=NewtonSolver(
                problem,
                builder,
                stats,
                max_iterations=cfg.newton.max_iterations,
                tol=cfg.newton.resolve_tol(cfg.tolerances.min_rtol),
            ),
            estimator=ErrorEstimator(problem, builder, error_norm, stats),
            error_norm=error_norm,
        )

        if self._interpolant is not None:
            self._interpolant.invalidate()
        self._interpolant = None

        logger.debug(
            "%s: run x0=%.6g x_end=%.6g n=%d backend=%s%s",
            problem.name,
            x0,
            x_end,
            n,
            backend.name,
            "" if h_equal is None else f" h_equal={h0:.6g}",
        )

        t_start = time.perf_counter()
        try:
            self._loop(
                x0,
                x_end,
                h_out=h_out,
                equal_steps=h_equal is not None,
                output_step=output_step,
                wall_start=time.monotonic(),
            )
        except RadauEngineError as exc:
            stats.time_total = time.perf_counter() - t_start
            exc.attach(trajectory=trajectory, statistics=stats)
            logger.info(
                "%s: run failed at x=%.6g (%s)\n%s",
                problem.name,
                state.x,
                exc.code,
                stats.summary(),
            )
            raise
        finally:
            self._run_ctx = None

        stats.time_total = time.perf_counter() - t_start
        logger.info("%s: run finished at x=%.6g\n%s", problem.name, state.x, stats.summary())
        return trajectory, stats

    # ------------------------------------------------------------------
    # Step loop
    # ------------------------------------------------------------------

    def _loop(
        self,
        x0: float,
        x_end: float,
        *,
        h_out: float | None,
        equal_steps: bool,
        output_step: OutputStepCallback | None,
        wall_start: float,
    ) -> None:
        ctx = self._run_ctx
        cfg = ctx.config
        stats = ctx.stats
        state = ctx.state
        controller = ctx.controller
        jac_mgr = ctx.jac_mgr

        f0 = ctx.problem.eval_rhs(state.x, state.y)
        stats.n_function_eval += 1

        first_step = True
        after_rejection = False
        newton_failures = 0
        singular_retries_left = cfg.singular_retries
        n_out = 1
        was_stiff = False

        while state.x < x_end:
            self._check_budget(wall_start)

            x = state.x
            h = state.h
            last = x + _LAST_STEP_STRETCH * h >= x_end
            if last:
                h = x_end - x
            controller.check_step_size(h, x)

            stabilize = cfg.stiffness.stabilize_error and (
                first_step or after_rejection or controller.is_stiff
            )

            stats.n_steps += 1
            controller.begin_attempt()
            try:
                with stats.timer("step"):
                    y_new, record, estimate = self._attempt_step(
                        x, f0, h, stabilize=stabilize, error_control=not equal_steps
                    )
            except NewtonDivergence as exc:
                stats.n_rejected += 1
                if equal_steps:
                    exc.fatal = True
                    raise
                newton_failures += 1
                if newton_failures >= 2 and not jac_mgr.is_current(x):
                    jac_mgr.force_stale()
                decision = controller.reject_newton(h, x)
                state.h = decision.h_new
                after_rejection = True
                logger.debug("%s: %s; retrying with h=%.3e", ctx.problem.name, exc, state.h)
                continue
            except StepRejected as exc:
                stats.n_rejected += 1
                newton_failures = 0
                state.h = exc.h_new
                after_rejection = True
                logger.debug("%s: %s; retrying with h=%.3e", ctx.problem.name, exc, state.h)
                continue
            except LinearSolverError as exc:
                if equal_steps or singular_retries_left <= 0:
                    raise
                singular_retries_left -= 1
                stats.n_rejected += 1
                ctx.builder.invalidate()
                decision = controller.reject_newton(h, x)
                state.h = decision.h_new
                after_rejection = True
                logger.debug("%s: %s; retrying with h=%.3e", ctx.problem.name, exc, state.h)
                continue

            # Accepted. Only accepted steps feed the convergence-rate rule.
            jac_mgr.note_newton(record)
            jac_mgr.note_accepted()
            if equal_steps:
                h_next = h
            else:
                decision = controller.accept(
                    h,
                    estimate.norm,
                    record.iterations,
                    refresh_pending=jac_mgr.needs_refresh(),
                )
                h_next = decision.h_new

            interpolant = DenseOutputInterpolant.from_stages(x, h, state.y, record.Z)
            if self._interpolant is not None:
                self._interpolant.invalidate()
            self._interpolant = interpolant

            x_new = x_end if last else x + h
            if h_out is not None:
                while True:
                    x_out = x0 + n_out * h_out
                    if x_out > x_new + _OUTPUT_SLACK * max(1.0, abs(x_new)):
                        break
                    x_out = min(x_out, x_new)
                    ctx.trajectory.append_dense(x_out, interpolant.evaluate(x_out))
                    n_out += 1

            state.advance(x_new, y_new, h, h_next)
            ctx.trajectory.append(x_new, state.y)
            stats.n_accepted += 1
            stats.h_last_accepted = h

            first_step = False
            after_rejection = False
            newton_failures = 0
            singular_retries_left = cfg.singular_retries

            if controller.is_stiff != was_stiff:
                was_stiff = controller.is_stiff
                logger.debug(
                    "%s: stiffness diagnostic %s at x=%.6g (ratio %.2f)",
                    ctx.problem.name,
                    "raised" if was_stiff else "cleared",
                    x_new,
                    controller.stiffness_ratio,
                )

            if output_step is not None and self._call_output_step(output_step, h):
                break

            if state.x < x_end:
                f0 = ctx.problem.eval_rhs(state.x, state.y)
                stats.n_function_eval += 1

    def _check_budget(self, wall_start: float) -> None:
        ctx = self._run_ctx
        cfg = ctx.config
        if ctx.stats.n_steps >= cfg.max_steps:
            raise MaxStepsExceeded(_MAX_STEPS_MSG.format(max_steps=cfg.max_steps, x=ctx.state.x))
        if cfg.deadline is not None and time.monotonic() - wall_start > cfg.deadline:
            raise DeadlineExceeded(_DEADLINE_MSG.format(deadline=cfg.deadline, x=ctx.state.x))

    def _call_output_step(self, output_step: OutputStepCallback, h: float) -> bool:
        state = self._run_ctx.state
        try:
            return bool(output_step(state.step_index, h, state.x, state.y.copy()))
        except Exception as exc:  # noqa: BLE001
            raise UserCallbackError(
                _OUTPUT_STEP_ERROR_MSG.format(x=state.x, exc=exc)
            ) from exc

    def _attempt_step(
        self,
        x: float,
        f0: NDArray[np.floating],
        h: float,
        *,
        stabilize: bool,
        error_control: bool,
    ) -> tuple[NDArray[np.floating], NewtonIterationRecord, ErrorEstimate]:
        """
        Attempt one step of size h from the current state.

        Raises:
            NewtonDivergence: If the simplified Newton iteration fails.
            StepRejected: If the error test fails (adaptive mode only).
            UserCallbackError: If the rhs or Jacobian callback fails.
            LinearSolverError: If factorization or a solve fails.

        Returns:
            (y_new, newton_record, error_estimate).
        """
        ctx = self._run_ctx
        cfg = ctx.config
        y = ctx.state.y
        jac_mgr = ctx.jac_mgr

        if jac_mgr.needs_refresh():
            jac_mgr.refresh(x, y, f0)
        handles = ctx.builder.build_and_factorize(jac_mgr.matrix, h, jac_mgr.version)

        if cfg.newton.use_extrapolation and self._interpolant is not None:
            z0 = self._interpolant.predict_stages(h)
        else:
            z0 = np.zeros((3, y.shape[0]))

        scale = ctx.error_norm.weights(y)
        record = ctx.newton.iterate(x, y, h, handles, z0, scale)

        if not record.converged:
            self._log_attempt(x, h, accepted=False, err=float("nan"), record=record)
            raise NewtonDivergence(
                _NEWTON_EQUAL_MSG.format(verdict=record.verdict, x=x, h=h)
                if not error_control
                else _NEWTON_MSG.format(
                    verdict=record.verdict, iterations=record.iterations, x=x, h=h
                )
            )

        y_new = y + record.Z[-1]

        if not error_control:
            estimate = ErrorEstimate(norm=float("nan"), accept_suggested=True)
            self._log_attempt(x, h, accepted=True, err=estimate.norm, record=record)
            return y_new, record, estimate

        estimate = ctx.estimator.estimate(
            x, y, y_new, f0, record.Z, h, handles, stabilize=stabilize
        )
        if not estimate.accept_suggested:
            self._log_attempt(x, h, accepted=False, err=estimate.norm, record=record)
            decision = ctx.controller.reject(h, estimate.norm, record.iterations, x)
            raise StepRejected(
                _REJECT_MSG.format(err=estimate.norm, x=x, h=h),
                h_new=decision.h_new,
                error_norm=estimate.norm,
            )

        self._log_attempt(x, h, accepted=True, err=estimate.norm, record=record)
        return y_new, record, estimate

    def _log_attempt(
        self,
        x: float,
        h: float,
        *,
        accepted: bool,
        err: float,
        record: NewtonIterationRecord,
    ) -> None:
        ctx = self._run_ctx
        ctx.trajectory.record_attempt(
            StepAttempt(
                x=x,
                h=h,
                accepted=accepted,
                error_norm=err,
                newton_iterations=record.iterations,
                verdict=str(record.verdict),
                n_factorizations=ctx.stats.n_factorizations,
                jacobian_version=ctx.jac_mgr.version,
            )
        )


class _RunContext:
    """Components owned by one run."""

    __slots__ = (
        "builder",
        "config",
        "error_norm",
        "estimator",
        "jac_mgr",
        "newton",
        "problem",
        "state",
        "stats",
        "controller",
        "trajectory",
    )

    def __init__(
        self,
        *,
        problem: ODEProblem,
        config: IntegratorConfig,
        stats: Statistics,
        state: IntegratorState,
        trajectory: Trajectory,
        controller: StepController,
        builder: IterationMatrixBuilder,
        jac_mgr: JacobianManager,
        newton: NewtonSolver,
        estimator: ErrorEstimator,
        error_norm: ErrorNorm,
    ) -> None:
        self.problem = problem
        self.config = config
        self.stats = stats
        self.state = state
        self.trajectory = trajectory
        self.controller = controller
        self.builder = builder
        self.jac_mgr = jac_mgr
        self.newton = newton
        self.estimator = estimator
        self.error_norm = error_norm
