from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

DEFAULT_PRESET_PATH = Path(__file__).resolve().parent.parent / "config" / "presets" / "camera_default.yaml"


@dataclass(frozen=True)
class MZTolerance:
    """m/z tolerance with an absolute and a relative (ppm) component."""

    mz: float = 0.005
    ppm: float = 10.0


@dataclass
class CameraParameters:
    fwhm_sigma: float = 0.2
    fwhm_percentage: float = 0.6
    isotopes_max_charge: int = 3
    isotopes_maximum: int = 4
    isotopes_mz_tolerance: MZTolerance = field(default_factory=MZTolerance)
    correlation_threshold: float = 0.9
    correlation_p_value: float = 0.05

    def validate(self) -> list[str]:
        errs = []
        if self.fwhm_sigma <= 0:
            errs.append("FWHM sigma must be positive")
        if not 0 < self.fwhm_percentage <= 1:
            errs.append("FWHM percentage must be in (0, 1]")
        if self.isotopes_max_charge < 1:
            errs.append("Isotope max charge must be at least 1")
        if self.isotopes_maximum < 1:
            errs.append("Isotope maximum count must be at least 1")
        if self.isotopes_mz_tolerance.mz < 0:
            errs.append("Isotope m/z tolerance must not be negative")
        if self.isotopes_mz_tolerance.ppm < 0:
            errs.append("Isotope ppm tolerance must not be negative")
        if not 0 <= self.correlation_threshold <= 1:
            errs.append("Correlation threshold must be between 0 and 1")
        if not 0 < self.correlation_p_value <= 1:
            errs.append("Correlation p-value must be in (0, 1]")
        return errs

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fwhm": {"sigma": self.fwhm_sigma, "percentage": self.fwhm_percentage},
            "isotopes": {
                "max_charge": self.isotopes_max_charge,
                "maximum": self.isotopes_maximum,
                "mz_tolerance": {
                    "mz": self.isotopes_mz_tolerance.mz,
                    "ppm": self.isotopes_mz_tolerance.ppm,
                },
            },
            "correlation": {
                "threshold": self.correlation_threshold,
                "p_value": self.correlation_p_value,
            },
        }

    @classmethod
    def from_mapping(cls, params: Mapping[str, Any]) -> "CameraParameters":
        """Build parameters from the nested layout written by :meth:`to_dict`.

        Missing keys keep their defaults; sections that are not mappings and
        values that cannot be converted raise ``ValueError`` naming the
        offending key.
        """

        defaults = cls()

        def _section(parent: Mapping[str, Any], key: str) -> Mapping[str, Any]:
            value = parent.get(key)
            if value is None:
                return {}
            if not isinstance(value, Mapping):
                raise ValueError(f"CAMERA parameter section '{key}' must be a mapping, got {value!r}")
            return value

        fwhm = _section(params, "fwhm")
        isotopes = _section(params, "isotopes")
        tolerance = _section(isotopes, "mz_tolerance")
        correlation = _section(params, "correlation")

        def _num(section: Mapping[str, Any], key: str, default, kind):
            value = section.get(key, default)
            try:
                return kind(value)
            except (TypeError, ValueError):
                raise ValueError(f"CAMERA parameter '{key}' must be numeric, got {value!r}") from None

        return cls(
            fwhm_sigma=_num(fwhm, "sigma", defaults.fwhm_sigma, float),
            fwhm_percentage=_num(fwhm, "percentage", defaults.fwhm_percentage, float),
            isotopes_max_charge=_num(isotopes, "max_charge", defaults.isotopes_max_charge, int),
            isotopes_maximum=_num(isotopes, "maximum", defaults.isotopes_maximum, int),
            isotopes_mz_tolerance=MZTolerance(
                mz=_num(tolerance, "mz", defaults.isotopes_mz_tolerance.mz, float),
                ppm=_num(tolerance, "ppm", defaults.isotopes_mz_tolerance.ppm, float),
            ),
            correlation_threshold=_num(correlation, "threshold", defaults.correlation_threshold, float),
            correlation_p_value=_num(correlation, "p_value", defaults.correlation_p_value, float),
        )


def load_preset(path: str | Path = DEFAULT_PRESET_PATH) -> CameraParameters:
    with Path(path).open("r", encoding="utf-8") as handle:
        content = yaml.safe_load(handle) or {}
    if not isinstance(content, dict):
        raise ValueError(f"Preset {path} must contain a mapping")
    return CameraParameters.from_mapping(content.get("params", content))


def save_preset(parameters: CameraParameters, path: str | Path) -> None:
    path = Path(path)
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump({"module": "camera", "params": parameters.to_dict()}, handle, sort_keys=False)
