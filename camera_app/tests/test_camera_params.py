from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from camera_app.engine.camera_params import (
    DEFAULT_PRESET_PATH,
    CameraParameters,
    MZTolerance,
    load_preset,
    save_preset,
)


def test_default_parameters_are_valid():
    assert CameraParameters().validate() == []


def test_default_preset_matches_builtin_defaults() -> None:
    with DEFAULT_PRESET_PATH.open("r", encoding="utf-8") as handle:
        preset = yaml.safe_load(handle)

    assert preset.get("module") == "camera"
    assert preset["params"]["isotopes"]["mz_tolerance"] == {"mz": 0.005, "ppm": 10.0}
    assert load_preset() == CameraParameters()


def test_validation_flags_out_of_range_values():
    params = CameraParameters(
        fwhm_sigma=-1.0,
        fwhm_percentage=1.5,
        isotopes_max_charge=0,
        isotopes_maximum=0,
        isotopes_mz_tolerance=MZTolerance(mz=-0.1, ppm=-2.0),
        correlation_threshold=1.2,
        correlation_p_value=0.0,
    )
    errs = params.validate()
    assert "FWHM sigma must be positive" in errs
    assert "FWHM percentage must be in (0, 1]" in errs
    assert "Isotope max charge must be at least 1" in errs
    assert "Isotope maximum count must be at least 1" in errs
    assert "Isotope m/z tolerance must not be negative" in errs
    assert "Isotope ppm tolerance must not be negative" in errs
    assert "Correlation threshold must be between 0 and 1" in errs
    assert "Correlation p-value must be in (0, 1]" in errs


def test_from_mapping_keeps_defaults_for_missing_keys():
    params = CameraParameters.from_mapping(
        {"isotopes": {"max_charge": "2", "mz_tolerance": {"ppm": 3}}, "correlation": None}
    )

    assert params.isotopes_max_charge == 2
    assert params.isotopes_mz_tolerance == MZTolerance(mz=0.005, ppm=3.0)
    assert params.fwhm_sigma == 0.2
    assert params.correlation_threshold == 0.9


def test_from_mapping_rejects_non_numeric_values():
    with pytest.raises(ValueError, match="'sigma' must be numeric"):
        CameraParameters.from_mapping({"fwhm": {"sigma": "wide"}})


@pytest.mark.parametrize(
    "params, key",
    [
        ({"fwhm": "bad"}, "fwhm"),
        ({"correlation": [0.9, 0.05]}, "correlation"),
        ({"isotopes": {"mz_tolerance": 0.005}}, "mz_tolerance"),
    ],
)
def test_from_mapping_rejects_scalar_sections(params, key):
    with pytest.raises(ValueError, match=f"section '{key}' must be a mapping"):
        CameraParameters.from_mapping(params)


def test_preset_with_flattened_section_is_rejected(tmp_path: Path) -> None:
    target = tmp_path / "flat.yaml"
    target.write_text("module: camera\nparams:\n  fwhm: 0.2\n", encoding="utf-8")

    with pytest.raises(ValueError, match="section 'fwhm' must be a mapping"):
        load_preset(target)


def test_saved_preset_can_be_reloaded(tmp_path: Path) -> None:
    params = CameraParameters(fwhm_sigma=0.4, isotopes_maximum=6, correlation_p_value=0.01)
    target = tmp_path / "presets" / "custom.yaml"

    save_preset(params, target)

    assert load_preset(target) == params


def test_preset_must_be_a_mapping(tmp_path: Path) -> None:
    target = tmp_path / "broken.yaml"
    target.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="must contain a mapping"):
        load_preset(target)
