"""Pseudo-spectra identification with the Bioconductor CAMERA package.

The grouping itself runs in R. This module feeds CAMERA the peak list,
runs groupFWHM, findIsotopes and groupCorr in that order, and turns the
resulting ``pcgroup``/``isotopes`` columns into row identities.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, List, Optional, Sequence

import numpy as np

from camera_app.engine import audit as audit_log
from camera_app.engine.camera_params import CameraParameters
from camera_app.engine.errors import CameraConfigurationError, CameraEngineError
from camera_app.engine.peak_matrix import COLUMN_HEADINGS, CameraInput, build_camera_input
from camera_app.engine.peak_model import PeakList, RawDataFile
from camera_app.engine.pseudo_spectra import add_pseudo_spectra_identities
from camera_app.engine.r_bridge import R_SEMAPHORE, REngine, get_r_engine, require_package
from camera_app.engine.task_control import AbstractTask, TaskCancelled, TaskStatus

__all__ = [
    "CAMERA_VERSION",
    "STAGE_PROGRESS",
    "CameraResult",
    "run_camera",
    "CameraSearchTask",
]

logger = logging.getLogger(__name__)

CAMERA_VERSION = "1.12"
STAGE_PROGRESS = 0.25


@dataclass
class CameraResult:
    spectra: List[int]
    isotopes: Optional[List[str]]


def _r_vector(values: Sequence[str]) -> str:
    return "c(" + ", ".join(f"'{value}'" for value in values) + ")"


def _load_inputs(engine: REngine, camera_input: CameraInput, sample_name: str) -> None:
    engine.assign("scantime", camera_input.scantime)
    engine.assign("scanindex", camera_input.scanindex)
    engine.assign("mass", camera_input.mass)
    engine.assign("intensity", camera_input.intensity)
    engine.assign("peaks", camera_input.peaks.to_numpy(dtype=float).reshape(-1, len(COLUMN_HEADINGS)))
    engine.eval(f"colnames(peaks) <- {_r_vector(COLUMN_HEADINGS)}")
    engine.assign("sampleName", sample_name)

    # xcmsRaw with scan times already in seconds.
    engine.eval('xRaw <- new("xcmsRaw")')
    engine.eval("xRaw@tic <- intensity")
    engine.eval("xRaw@scantime <- scantime")
    engine.eval("xRaw@scanindex <- as.integer(scanindex)")
    engine.eval("xRaw@env$mz <- mass")
    engine.eval("xRaw@env$intensity <- intensity")

    engine.eval("xs <- new('xcmsSet')")
    engine.eval("xs@peaks <- peaks")
    engine.eval("xs@filepaths <- ''")
    engine.eval("sampnames(xs) <- sampleName")

    engine.eval("an <- xsAnnotate(xs, sample=1)")


def run_camera(
    engine: REngine,
    camera_input: CameraInput,
    parameters: CameraParameters,
    sample_name: str,
    on_stage: Optional[Callable[[str], None]] = None,
) -> CameraResult:
    """Run the three CAMERA stages on ``camera_input``.

    Must be called with :data:`R_SEMAPHORE` held; the R objects built here
    are shared between the statements.
    """

    tolerance = parameters.isotopes_mz_tolerance
    stages = (
        (
            "groupFWHM",
            f"an <- groupFWHM(an, sigma={parameters.fwhm_sigma}, perfwhm={parameters.fwhm_percentage})",
        ),
        (
            "findIsotopes",
            f"an <- findIsotopes(an, maxcharge={parameters.isotopes_max_charge}, "
            f"maxiso={parameters.isotopes_maximum}, ppm={tolerance.ppm}, mzabs={tolerance.mz})",
        ),
        (
            # Splitting by peak shape needs the raw trace.
            "groupCorr",
            f"an <- groupCorr(an, calcIso=TRUE, xraw=xRaw, "
            f"cor_eic_th={parameters.correlation_threshold}, pval={parameters.correlation_p_value})",
        ),
    )

    _load_inputs(engine, camera_input, sample_name)
    for name, expression in stages:
        logger.debug("Running CAMERA %s", name)
        engine.eval(expression)
        if on_stage is not None:
            on_stage(name)

    engine.eval("peakList <- getPeaklist(an)")
    spectra = engine.eval("as.integer(peakList$pcgroup)")
    isotopes = engine.eval("peakList$isotopes")

    if spectra is None:
        raise CameraEngineError("CAMERA returned no pseudo-spectra", "peakList$pcgroup")
    spectra = [int(value) for value in spectra]
    if len(spectra) != camera_input.peak_count:
        raise CameraEngineError(
            f"CAMERA returned {len(spectra)} pseudo-spectra for {camera_input.peak_count} peaks",
            "peakList$pcgroup",
        )
    if isotopes is not None:
        isotopes = ["" if value is None else str(value) for value in isotopes]
        if len(isotopes) != camera_input.peak_count:
            raise CameraEngineError(
                f"CAMERA returned {len(isotopes)} isotope values for {camera_input.peak_count} peaks",
                "peakList$isotopes",
            )
    return CameraResult(spectra=spectra, isotopes=isotopes)


class CameraSearchTask(AbstractTask):
    """Identify pseudo-spectra of a single-file peak list with CAMERA."""

    def __init__(
        self,
        parameters: CameraParameters,
        peak_list: PeakList,
        engine_factory: Callable[[], REngine] = get_r_engine,
    ):
        super().__init__()
        self.parameters = parameters
        self.peak_list = peak_list
        self._engine_factory = engine_factory
        self.audit: List[str] = audit_log.start_audit(str(peak_list))

    @property
    def description(self) -> str:
        return f"Identification of pseudo-spectra in {self.peak_list}"

    def run(self) -> None:
        if self.is_canceled():
            return
        try:
            self.set_status(TaskStatus.PROCESSING)

            if self.peak_list.number_of_raw_files != 1:
                raise CameraConfigurationError(
                    "CAMERA can only process peak lists for a single raw data file, "
                    "i.e. non-aligned peak lists."
                )
            errs = self.parameters.validate()
            if errs:
                raise CameraConfigurationError("; ".join(errs))

            self._camera_search(self.peak_list.get_raw_file(0))

            if not self.is_canceled():
                self.set_status(TaskStatus.FINISHED)
                audit_log.log_step(self.audit, "CAMERA search completed")
                logger.info(
                    "CAMERA search completed for %s (%d warnings)",
                    self.peak_list,
                    len(audit_log.warnings_in(self.audit)),
                )
        except TaskCancelled:
            self.set_status(TaskStatus.CANCELED)
            audit_log.log_step(self.audit, "CAMERA search cancelled")
            logger.info("CAMERA search cancelled for %s", self.peak_list)
        except Exception as exc:
            logger.exception("CAMERA search error")
            self.error_message = str(exc)
            audit_log.log_step(self.audit, f"ERROR: {exc}")
            self.set_status(TaskStatus.ERROR)

    def _camera_search(self, raw_file: RawDataFile) -> None:
        engine = self._engine_factory()
        peaks = self.peak_list.get_peaks(raw_file)

        with R_SEMAPHORE:
            require_package(engine, "CAMERA", CAMERA_VERSION)
            camera_input = build_camera_input(peaks, raw_file, self.is_canceled)
            audit_log.log_step(
                self.audit,
                f"Prepared {camera_input.peak_count} peaks over {camera_input.scan_count} scans",
            )
            result = run_camera(
                engine,
                camera_input,
                self.parameters,
                self.peak_list.name,
                on_stage=self._stage_finished,
            )

        add_pseudo_spectra_identities(
            self.peak_list,
            peaks,
            result.spectra,
            result.isotopes,
            audit=self.audit,
        )
        groups = np.unique(np.asarray(result.spectra, dtype=int)).size if result.spectra else 0
        audit_log.log_step(self.audit, f"Annotated {len(peaks)} peaks in {groups} pseudo-spectra")
        self.set_progress(self.progress + STAGE_PROGRESS)

    def _stage_finished(self, stage: str) -> None:
        audit_log.log_step(self.audit, f"CAMERA {stage} finished")
        self.set_progress(self.progress + STAGE_PROGRESS)
