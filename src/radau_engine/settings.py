# radau_engine/src/radau_engine/settings.py
"""Pydantic settings for radau_engine, suitable for YAML/dict-driven drivers.

This module defines a flat, YAML-friendly configuration schema and translates
it into the native (frozen dataclass) :class:`IntegratorConfig`.

Notes:
    - Unknown fields are allowed and ignored (`extra="allow"`), so a settings
      block can live inside a larger driver configuration file.
    - Custom linear-solver backends cannot be expressed in YAML; pass them to
      :class:`RadauIntegrator` directly instead.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field

from .config import (
    IntegratorConfig,
    JacobianPolicy,
    NewtonConfig,
    StepBounds,
    StiffnessPolicy,
    Tolerances,
)
from .errors import ConfigurationError

_SETTINGS_ROOT_ERROR_MSG = "settings file {path} must contain a mapping; got {typ}"
_SETTINGS_KEY_ERROR_MSG = "settings file {path} has no '{key}' section"


class IntegratorSettings(BaseModel):
    """Configuration schema for :class:`RadauIntegrator`.

    Mirrors the :class:`IntegratorConfig` fields with YAML-friendly defaults
    and validation behavior.
    """

    model_config = ConfigDict(extra="allow")

    # Tolerances
    rtol: float = Field(default=1e-6, gt=0.0)
    atol: float = Field(default=1e-6, ge=0.0)

    # Step bounds / controller
    h_initial: float = Field(default=1e-4, gt=0.0)
    h_min: float = Field(default=0.0, ge=0.0)
    h_max: float = Field(default=float("inf"), gt=0.0)
    safety: float = Field(default=0.9, gt=0.0, le=1.0)
    fac_min: float = Field(default=0.2, gt=0.0, lt=1.0)
    fac_max: float = Field(default=8.0, gt=1.0)
    error_exponent: float = Field(default=0.2, gt=0.0)
    reject_shrink: float = Field(default=0.8, gt=0.0, lt=1.0)
    keep_band: float = Field(default=1.2, ge=1.0)
    predictive: bool = Field(
        default=True,
        description="Use the Gustafsson predictive step-size correction",
    )

    # Simplified Newton
    max_newton_iterations: int = Field(default=7, ge=1)
    newton_tol: float | None = Field(default=None, gt=0.0)
    use_extrapolation: bool = True
    eps_h: float = Field(default=1e-3, ge=0.0)

    # Stiffness diagnostic
    stiffness_window: int = Field(default=15, ge=1)
    stiffness_threshold: float = Field(default=0.5, gt=0.0, le=1.0)
    stabilize_error: bool = True

    # Jacobian staleness
    jacobian_max_age: int | None = Field(default=None, ge=1)
    jacobian_rate_threshold: float = Field(default=1e-3, gt=0.0)

    # Run limits
    max_steps: int = Field(default=100_000, ge=1)
    max_rejections: int = Field(default=25, ge=1)
    deadline: float | None = Field(default=None, gt=0.0)
    singular_retries: int = Field(default=1, ge=0)
    linear_solver: Literal["auto", "dense", "sparse"] = Field(
        default="auto",
        description="Linear-solver backend",
    )

    def to_config(self) -> IntegratorConfig:
        """Convert these settings to a native IntegratorConfig.

        Returns:
            Fully constructed and validated IntegratorConfig instance.
        """
        config = IntegratorConfig(
            tolerances=Tolerances(rtol=self.rtol, atol=self.atol),
            step_bounds=StepBounds(
                h_initial=self.h_initial,
                h_min=self.h_min,
                h_max=self.h_max,
                safety=self.safety,
                fac_min=self.fac_min,
                fac_max=self.fac_max,
                error_exponent=self.error_exponent,
                reject_shrink=self.reject_shrink,
                keep_band=self.keep_band,
                predictive=self.predictive,
            ),
            newton=NewtonConfig(
                max_iterations=self.max_newton_iterations,
                tol=self.newton_tol,
                use_extrapolation=self.use_extrapolation,
                eps_h=self.eps_h,
            ),
            stiffness=StiffnessPolicy(
                window=self.stiffness_window,
                threshold=self.stiffness_threshold,
                stabilize_error=self.stabilize_error,
            ),
            jacobian=JacobianPolicy(
                max_age=self.jacobian_max_age,
                rate_threshold=self.jacobian_rate_threshold,
            ),
            max_steps=self.max_steps,
            max_rejections=self.max_rejections,
            deadline=self.deadline,
            singular_retries=self.singular_retries,
            linear_solver=self.linear_solver,
        )
        config.validate()
        return config


def load_settings(path: str | Path, *, key: str | None = None) -> IntegratorSettings:
    """Load integrator settings from a YAML file.

    Args:
        path: YAML file path.
        key: Optional top-level section holding the settings mapping.

    Raises:
        ConfigurationError: If the file does not contain a mapping or the
            requested section is missing.

    Returns:
        Parsed IntegratorSettings.
    """
    path = Path(path)
    with path.open(encoding="utf-8") as fh:
        data: Any = yaml.safe_load(fh)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            _SETTINGS_ROOT_ERROR_MSG.format(path=path, typ=type(data).__name__)
        )
    if key is not None:
        if key not in data:
            raise ConfigurationError(_SETTINGS_KEY_ERROR_MSG.format(path=path, key=key))
        data = data[key] or {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                _SETTINGS_ROOT_ERROR_MSG.format(path=path, typ=type(data).__name__)
            )

    return IntegratorSettings.model_validate(data)
