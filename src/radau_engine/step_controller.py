# radau_engine/src/radau_engine/step_controller.py
"""Step-size control for the Radau IIA integrator (fixed order 5).

State machine::

    PROBING --accept--> ACCEPTED --begin_attempt--> PROBING
    PROBING --reject--> REJECTED --begin_attempt--> PROBING

Proposal for an attempt with scaled error ``err`` and ``n_iter`` Newton iterations::

    safety_eff = safety * (2 N + 1) / (2 N + n_iter)
    factor     = safety_eff * err^(-exponent)
    factor    *= min(1, (h / h_prev) * (err_prev / err)^exponent)   # Gustafsson

where ``N`` is the Newton iteration budget and the predictive factor only
applies once a previous step has been accepted.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

import numpy as np

from .errors import StepSizeTooSmall, TooManyRejections

if TYPE_CHECKING:
    from .config import StepBounds, StiffnessPolicy

_ERR_FLOOR = 1e-10

_TOO_MANY_REJECTIONS_ERROR_MSG = "{count} consecutive rejected steps at x={x}"
_STEP_TOO_SMALL_ERROR_MSG = "step size {h:.3e} fell below the minimum {h_floor:.3e} at x={x}"


class ControllerState(StrEnum):
    """Step-controller state."""

    PROBING = "probing"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(slots=True, frozen=True)
class StepDecision:
    """Outcome of an accept/reject decision.

    Attributes:
        accepted: Whether the attempted step was accepted.
        h_new: Step size for the next attempt.
        factor: Multiplicative change applied to h.
        kept: True if h was kept exactly (keep band).
    """

    accepted: bool
    h_new: float
    factor: float
    kept: bool = False


class StepController:
    """PI step-size controller with rejection bookkeeping and stiffness diagnostic."""

    def __init__(
        self,
        bounds: StepBounds,
        stiffness: StiffnessPolicy,
        *,
        max_iterations: int = 7,
        max_rejections: int = 25,
    ) -> None:
        """
        Initialize the controller.

        Args:
            bounds: Step bounds and controller parameters.
            stiffness: Stiffness diagnostic parameters.
            max_iterations: Newton iteration budget (N in safety_eff).
            max_rejections: Consecutive rejections that abort the run.
        """
        self.bounds = bounds
        self.stiffness = stiffness
        self.max_iterations = int(max_iterations)
        self.max_rejections = int(max_rejections)
        self.state = ControllerState.PROBING
        self.h_prev: float | None = None
        self.err_prev: float | None = None
        self.consecutive_rejections = 0
        self._newton_ratios: deque[float] = deque(maxlen=stiffness.window)

    # ------------------------------------------------------------------
    # Bounds
    # ------------------------------------------------------------------

    def h_floor(self, x: float) -> float:
        """Smallest admissible step at x: max(h_min, 10 ulps of x)."""
        return max(self.bounds.h_min, 10.0 * float(np.spacing(abs(x))))

    def clamp(self, h: float) -> float:
        """Clamp h to [h_min, h_max]."""
        return float(min(self.bounds.h_max, max(self.bounds.h_min, h)))

    def check_step_size(self, h: float, x: float) -> None:
        """
        Ensure h is admissible at x.

        Raises:
            StepSizeTooSmall: If h is below :meth:`h_floor`.
        """
        h_floor = self.h_floor(x)
        if not (h >= h_floor):
            raise StepSizeTooSmall(_STEP_TOO_SMALL_ERROR_MSG.format(h=h, h_floor=h_floor, x=x))

    # ------------------------------------------------------------------
    # Proposals
    # ------------------------------------------------------------------

    def begin_attempt(self) -> None:
        """Enter PROBING for a new attempt."""
        self.state = ControllerState.PROBING

    def suggest_factor(self, h: float, err: float, n_iter: int) -> float:
        """Unclamped step-size factor for an attempt with error err."""
        n_max = self.max_iterations
        safety_eff = self.bounds.safety * (2 * n_max + 1) / (2 * n_max + max(n_iter, 1))
        exponent = self.bounds.error_exponent
        err_eff = max(err, _ERR_FLOOR)

        factor = safety_eff * err_eff ** (-exponent)
        if self.bounds.predictive and self.h_prev is not None and self.err_prev is not None:
            multiplier = (h / self.h_prev) * (self.err_prev / err_eff) ** exponent
            factor *= min(1.0, multiplier)
        return float(factor)

    def accept(
        self,
        h: float,
        err: float,
        n_iter: int,
        *,
        refresh_pending: bool = False,
    ) -> StepDecision:
        """
        Record an accepted step and propose the next step size.

        Args:
            h: Accepted step size.
            err: Scaled error norm (<= 1).
            n_iter: Newton iterations used.
            refresh_pending: True if the Jacobian will be refreshed before the
                next attempt (disables the keep band).

        Returns:
            Decision with the proposed step size.
        """
        factor = self.suggest_factor(h, err, n_iter)
        factor = min(self.bounds.fac_max, max(self.bounds.fac_min, factor))

        kept = False
        if not refresh_pending and 1.0 <= factor <= self.bounds.keep_band:
            factor = 1.0
            kept = True

        h_new = h if kept else self.clamp(h * factor)
        self.h_prev = h
        self.err_prev = max(err, _ERR_FLOOR)
        self.consecutive_rejections = 0
        self._newton_ratios.append(n_iter / self.max_iterations)
        self.state = ControllerState.ACCEPTED
        return StepDecision(accepted=True, h_new=h_new, factor=factor, kept=kept)

    def reject(self, h: float, err: float, n_iter: int, x: float) -> StepDecision:
        """
        Record a rejected step and propose a smaller step size.

        Args:
            h: Rejected step size.
            err: Scaled error norm (> 1).
            n_iter: Newton iterations used.
            x: Start of the rejected step.

        Raises:
            TooManyRejections: If the consecutive-rejection limit is reached.
            StepSizeTooSmall: If the proposed step is below the minimum.

        Returns:
            Decision with the retry step size.
        """
        suggestion = self.suggest_factor(h, err, n_iter)
        factor = max(self.bounds.fac_min, min(self.bounds.reject_shrink, suggestion))
        return self._shrink(h, factor, x)

    def reject_newton(self, h: float, x: float) -> StepDecision:
        """
        Record a Newton failure and halve the step size.

        Raises:
            TooManyRejections: If the consecutive-rejection limit is reached.
            StepSizeTooSmall: If the halved step is below the minimum.
        """
        return self._shrink(h, 0.5, x)

    def _shrink(self, h: float, factor: float, x: float) -> StepDecision:
        self.consecutive_rejections += 1
        self.state = ControllerState.REJECTED
        if self.consecutive_rejections >= self.max_rejections:
            raise TooManyRejections(
                _TOO_MANY_REJECTIONS_ERROR_MSG.format(count=self.consecutive_rejections, x=x)
            )
        h_new = min(self.bounds.h_max, h * factor)
        self.check_step_size(h_new, x)
        return StepDecision(accepted=False, h_new=h_new, factor=factor)

    # ------------------------------------------------------------------
    # Stiffness diagnostic
    # ------------------------------------------------------------------

    @property
    def stiffness_ratio(self) -> float:
        """Mean Newton-iterations-to-budget ratio over the window (0 if empty)."""
        if not self._newton_ratios:
            return 0.0
        return float(np.mean(self._newton_ratios))

    @property
    def is_stiff(self) -> bool:
        """True once a full window averages at or above the threshold."""
        return (
            len(self._newton_ratios) == self._newton_ratios.maxlen
            and self.stiffness_ratio >= self.stiffness.threshold
        )
