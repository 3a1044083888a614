"""Translate a peak list into the matrices CAMERA works on.

CAMERA expects an ``xcmsSet`` peak table plus an ``xcmsRaw`` trace for the
correlation stage. The trace is rebuilt from the peaks themselves: every MS1
scan of the raw file holds the peaks' data points observed in that scan.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from camera_app.engine.errors import CameraConfigurationError
from camera_app.engine.peak_model import DataPoint, Feature, GapDataPoint, RawDataFile
from camera_app.engine.task_control import TaskCancelled

__all__ = [
    "MS_LEVEL",
    "SECONDS_PER_MINUTE",
    "SIGNAL_TO_NOISE",
    "COLUMN_HEADINGS",
    "CameraInput",
    "build_peak_row",
    "build_camera_input",
]

logger = logging.getLogger(__name__)

MS_LEVEL = 1
SECONDS_PER_MINUTE = 60.0
SIGNAL_TO_NOISE = 10.0
COLUMN_HEADINGS = ("mz", "mzmin", "mzmax", "rt", "rtmin", "rtmax", "into", "intb", "maxo", "sn")

# Placeholder opening every scan so no scan is empty.
_EMPTY_POINT = DataPoint(mz=0.0, intensity=0.0)


@dataclass
class CameraInput:
    peaks: pd.DataFrame
    scantime: np.ndarray
    scanindex: np.ndarray
    mass: np.ndarray
    intensity: np.ndarray

    @property
    def peak_count(self) -> int:
        return int(len(self.peaks))

    @property
    def scan_count(self) -> int:
        return int(self.scantime.size)


def _peak_gap_points(peak: Feature, raw_file: RawDataFile) -> List[GapDataPoint]:
    points: List[GapDataPoint] = []
    for scan_number in peak.scan_numbers:
        scan = raw_file.get_scan(scan_number)
        if scan.ms_level != MS_LEVEL:
            raise CameraConfigurationError(
                f"CAMERA can only process peak lists from MS-level {MS_LEVEL}"
            )
        data_point = peak.get_data_point(scan_number)
        if data_point is None:
            continue
        points.append(
            GapDataPoint(
                scan_number=scan_number,
                mz=peak.mz,
                rt=scan.retention_time,
                intensity=data_point.intensity,
            )
        )
    return points


def build_peak_row(peak: Feature, points: Sequence[GapDataPoint]) -> Dict[str, float]:
    """Return the ``xcmsSet`` peak-table row for ``peak``, times in seconds."""

    if points:
        rts = [point.rt for point in points]
        rt_min, rt_max = min(rts), max(rts)
        maxo = max(point.intensity for point in points)
    else:
        rt_min, rt_max = peak.raw_rt_range
        maxo = peak.height
    return {
        "mz": peak.mz,
        "mzmin": peak.mz,
        "mzmax": peak.mz,
        "rt": peak.rt * SECONDS_PER_MINUTE,
        "rtmin": rt_min * SECONDS_PER_MINUTE,
        "rtmax": rt_max * SECONDS_PER_MINUTE,
        # intb does not affect CAMERA's result, use the area for both.
        "into": peak.area,
        "intb": peak.area,
        "maxo": maxo,
        "sn": SIGNAL_TO_NOISE,
    }


def build_camera_input(
    peaks: Sequence[Feature],
    raw_file: RawDataFile,
    is_canceled: Optional[Callable[[], bool]] = None,
) -> CameraInput:
    """Build the peak table and raw trace for ``peaks`` of ``raw_file``.

    Raises :class:`CameraConfigurationError` when a peak was observed in a
    scan that is not MS1, and :class:`TaskCancelled` when ``is_canceled``
    reports true between peaks.
    """

    scan_numbers = raw_file.get_scan_numbers(MS_LEVEL)
    points_by_scan: Dict[int, Dict[float, float]] = {
        number: {_EMPTY_POINT.mz: _EMPTY_POINT.intensity} for number in scan_numbers
    }

    rows = []
    for peak in peaks:
        if is_canceled is not None and is_canceled():
            raise TaskCancelled()
        points = _peak_gap_points(peak, raw_file)
        for point in points:
            # First point at a given m/z wins within a scan.
            points_by_scan[point.scan_number].setdefault(point.mz, point.intensity)
        rows.append(build_peak_row(peak, points))

    table = pd.DataFrame(rows, columns=list(COLUMN_HEADINGS), dtype=float)

    scantime = np.empty(len(scan_numbers), dtype=float)
    scanindex = np.empty(len(scan_numbers), dtype=int)
    masses: List[float] = []
    intensities: List[float] = []
    for idx, number in enumerate(scan_numbers):
        scantime[idx] = raw_file.get_scan(number).retention_time * SECONDS_PER_MINUTE
        # One-based offset of the scan's first point in the flattened arrays.
        scanindex[idx] = len(masses) + 1
        for mz in sorted(points_by_scan[number]):
            masses.append(mz)
            intensities.append(points_by_scan[number][mz])

    logger.debug(
        "Prepared %d peaks over %d MS%d scans (%d data points)",
        len(table),
        len(scan_numbers),
        MS_LEVEL,
        len(masses),
    )
    return CameraInput(
        peaks=table,
        scantime=scantime,
        scanindex=scanindex,
        mass=np.asarray(masses, dtype=float),
        intensity=np.asarray(intensities, dtype=float),
    )
