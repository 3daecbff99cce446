"""Global pytest configuration and shared fixtures for radau_engine."""

from __future__ import annotations

import importlib.util
from collections.abc import Callable
from typing import Final

import pytest

from radau_engine.config import IntegratorConfig, StepBounds, Tolerances
from radau_engine.samples import SampleProblem, exponential_decay

# -----------------------------------------------------------------------------
# Optional dependency detection
# -----------------------------------------------------------------------------


def _module_available(name: str) -> bool:
    """Return True if `name` is importable; a missing parent package counts as absent."""
    try:
        return importlib.util.find_spec(name) is not None
    except ModuleNotFoundError:
        return False


HAS_UMFPACK: Final[bool] = _module_available("scikits.umfpack")


# -----------------------------------------------------------------------------
# Global markers registration safety (for local pytest runs)
# -----------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used by the test suite."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as a longer end-to-end integration run",
    )


# -----------------------------------------------------------------------------
# Shared fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def decay() -> SampleProblem:
    """y' = -50 y on [0, 1] with a constant Jacobian."""
    return exponential_decay(50.0, x_end=1.0)


@pytest.fixture
def tight_config() -> IntegratorConfig:
    """Configuration with rtol = atol = 1e-8."""
    return IntegratorConfig(
        tolerances=Tolerances(rtol=1e-8, atol=1e-8),
        step_bounds=StepBounds(h_initial=1e-4),
    )


@pytest.fixture(scope="session")
def require_no_umfpack() -> None:
    """
    Skip tests whose singular-matrix detection assumes SuperLU.

    Usage:
        def test_x(require_no_umfpack):
            ...
    """
    if HAS_UMFPACK:
        pytest.skip("scikit-umfpack replaces SuperLU in scipy.sparse.linalg.factorized")


@pytest.fixture
def module_available() -> Callable[[str], bool]:
    """Optional-dependency lookup used by the conftest itself."""
    return _module_available
