"""Unit tests for radau_engine.settings (pydantic schema + YAML loading)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from radau_engine.config import IntegratorConfig
from radau_engine.errors import ConfigurationError
from radau_engine.settings import IntegratorSettings, load_settings

if TYPE_CHECKING:
    from pathlib import Path


def test_default_settings_match_default_config() -> None:
    assert IntegratorSettings().to_config() == IntegratorConfig()


def test_settings_map_onto_nested_config() -> None:
    settings = IntegratorSettings(
        rtol=1e-8,
        atol=1e-10,
        h_initial=1e-3,
        h_max=0.5,
        keep_band=1.5,
        max_newton_iterations=10,
        newton_tol=0.01,
        stiffness_window=5,
        jacobian_max_age=4,
        max_steps=500,
        deadline=2.0,
        linear_solver="dense",
    )
    cfg = settings.to_config()
    assert cfg.tolerances.rtol == 1e-8
    assert cfg.tolerances.atol == 1e-10
    assert cfg.step_bounds.h_initial == 1e-3
    assert cfg.step_bounds.h_max == 0.5
    assert cfg.step_bounds.keep_band == 1.5
    assert cfg.newton.max_iterations == 10
    assert cfg.newton.tol == 0.01
    assert cfg.stiffness.window == 5
    assert cfg.jacobian.max_age == 4
    assert cfg.max_steps == 500
    assert cfg.deadline == 2.0
    assert cfg.linear_solver == "dense"


@pytest.mark.parametrize(
    "bad",
    [
        {"rtol": 0.0},
        {"atol": -1.0},
        {"safety": 1.5},
        {"max_steps": 0},
        {"linear_solver": "cholesky"},
    ],
)
def test_field_validation(bad: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        IntegratorSettings(**bad)


def test_cross_field_validation_happens_in_to_config() -> None:
    settings = IntegratorSettings(h_min=1.0, h_max=0.5)
    with pytest.raises(ConfigurationError):
        settings.to_config()


def test_extra_fields_allowed() -> None:
    settings = IntegratorSettings.model_validate({"rtol": 1e-5, "driver_label": "demo"})
    assert settings.rtol == 1e-5
    assert settings.model_extra == {"driver_label": "demo"}


def test_load_settings_from_yaml(tmp_path: Path) -> None:
    path = tmp_path / "solver.yaml"
    path.write_text("rtol: 1.0e-7\natol: 1.0e-9\nmax_rejections: 10\n", encoding="utf-8")
    settings = load_settings(path)
    assert settings.rtol == 1e-7
    assert settings.atol == 1e-9
    assert settings.to_config().max_rejections == 10


def test_load_settings_section(tmp_path: Path) -> None:
    path = tmp_path / "driver.yaml"
    path.write_text(
        "name: demo\nintegrator:\n  rtol: 1.0e-4\n  linear_solver: sparse\n",
        encoding="utf-8",
    )
    settings = load_settings(path, key="integrator")
    assert settings.rtol == 1e-4
    assert settings.linear_solver == "sparse"


def test_load_settings_empty_file_gives_defaults(tmp_path: Path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_settings(path) == IntegratorSettings()


def test_load_settings_rejects_non_mapping(tmp_path: Path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="mapping"):
        load_settings(path)


def test_load_settings_missing_section(tmp_path: Path) -> None:
    path = tmp_path / "driver.yaml"
    path.write_text("other: {}\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="integrator"):
        load_settings(path, key="integrator")
