# radau_engine/src/radau_engine/statistics.py
"""Run statistics: monotone counters and per-phase timings."""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Any, Literal

Phase = Literal["step", "jacobian", "factor", "solve"]

_UNKNOWN_PHASE_ERROR_MSG = "Unknown timing phase: {phase}"


def _format_seconds(seconds: float) -> str:
    if seconds >= 1.0:
        return f"{seconds:.3f}s"
    if seconds >= 1e-3:
        return f"{seconds * 1e3:.3f}ms"
    return f"{seconds * 1e6:.3f}µs"


@dataclass(slots=True)
class Statistics:
    """Counters and timings accumulated over one integration run.

    Counters never decrease within a run; the integrator creates a fresh
    instance for every run.

    Attributes:
        n_function_eval: Right-hand side evaluations.
        n_jacobian_eval: Jacobian evaluations (analytic or finite-difference).
        n_factorizations: Matrix factorizations (real and complex counted separately).
        n_linear_solves: Linear solves (real and complex counted separately).
        n_steps: Step attempts performed.
        n_accepted: Accepted steps.
        n_rejected: Rejected step attempts (error test or Newton failure).
        n_newton_last: Newton iterations of the last attempt.
        n_newton_max: Maximum Newton iterations over all attempts.
        h_last_accepted: Size of the last accepted step.
        time_step_max: Longest wall time of a single step attempt (seconds).
        time_jacobian_max: Longest Jacobian evaluation (seconds).
        time_factor_max: Longest factorization (seconds).
        time_solve_max: Longest linear solve (seconds).
        time_total: Total wall time of the run (seconds).
    """

    n_function_eval: int = 0
    n_jacobian_eval: int = 0
    n_factorizations: int = 0
    n_linear_solves: int = 0
    n_steps: int = 0
    n_accepted: int = 0
    n_rejected: int = 0
    n_newton_last: int = 0
    n_newton_max: int = 0
    h_last_accepted: float = 0.0
    time_step_max: float = 0.0
    time_jacobian_max: float = 0.0
    time_factor_max: float = 0.0
    time_solve_max: float = 0.0
    time_total: float = 0.0

    def note_newton(self, iterations: int) -> None:
        """Record the Newton iteration count of one attempt."""
        self.n_newton_last = int(iterations)
        self.n_newton_max = max(self.n_newton_max, self.n_newton_last)

    def note_time(self, phase: Phase, seconds: float) -> None:
        """Fold one phase duration into its running maximum.

        Raises:
            ValueError: If phase is unknown.
        """
        attr = f"time_{phase}_max"
        if not hasattr(self, attr):
            raise ValueError(_UNKNOWN_PHASE_ERROR_MSG.format(phase=phase))
        setattr(self, attr, max(getattr(self, attr), float(seconds)))

    @contextmanager
    def timer(self, phase: Phase) -> Iterator[None]:
        """Time the enclosed block as one occurrence of phase."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.note_time(phase, time.perf_counter() - start)

    def copy(self) -> Statistics:
        """Return an independent copy."""
        return Statistics(**asdict(self))

    def as_dict(self) -> dict[str, Any]:
        """Return the statistics as a plain dict."""
        return asdict(self)

    def counters(self) -> dict[str, Any]:
        """Return the deterministic part of the statistics (timings excluded)."""
        return {k: v for k, v in asdict(self).items() if not k.startswith("time_")}

    def summary(self) -> str:
        """Human-readable multi-line summary."""
        rows = [
            ("Number of function evaluations", str(self.n_function_eval)),
            ("Number of Jacobian evaluations", str(self.n_jacobian_eval)),
            ("Number of performed steps", str(self.n_steps)),
            ("Number of accepted steps", str(self.n_accepted)),
            ("Number of rejected steps", str(self.n_rejected)),
            ("Number of matrix factorizations", str(self.n_factorizations)),
            ("Number of linear solves", str(self.n_linear_solves)),
            ("Number of iterations (last step)", str(self.n_newton_last)),
            ("Number of iterations (maximum)", str(self.n_newton_max)),
            ("Last accepted stepsize (h)", repr(self.h_last_accepted)),
            ("Max time spent on a step", _format_seconds(self.time_step_max)),
            ("Max time spent on the Jacobian", _format_seconds(self.time_jacobian_max)),
            ("Max time spent on factorization", _format_seconds(self.time_factor_max)),
            ("Max time spent on lin solution", _format_seconds(self.time_solve_max)),
            ("Total time", _format_seconds(self.time_total)),
        ]
        width = max(len(label) for label, _ in rows)
        return "\n".join(f"{label:<{width}} = {value}" for label, value in rows)

    def __str__(self) -> str:
        return self.summary()
