"""Peak-list data model shared by the identification modules.

These are light projections of the host application's peak lists: raw data
files with their scans, detected peaks (features), and the peak-list rows
that carry identification annotations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

__all__ = [
    "DataPoint",
    "GapDataPoint",
    "Scan",
    "RawDataFile",
    "Feature",
    "RowAnnotation",
    "PeakListRow",
    "PeakList",
    "PROPERTY_NAME",
    "PROPERTY_METHOD",
    "PROPERTY_ISOTOPE",
]

PROPERTY_NAME = "Name"
PROPERTY_METHOD = "Identification method"
PROPERTY_ISOTOPE = "Isotope"


@dataclass(frozen=True)
class DataPoint:
    mz: float = 0.0
    intensity: float = 0.0


@dataclass
class GapDataPoint:
    """Data point extended with retention time and scan number."""

    scan_number: int
    mz: float
    rt: float
    intensity: float

    def as_data_point(self) -> DataPoint:
        return DataPoint(mz=self.mz, intensity=self.intensity)


@dataclass
class Scan:
    """One spectrum of a raw data file.

    ``mz`` and ``intensity`` are parallel arrays; retention time is in minutes.
    """

    scan_number: int
    ms_level: int
    retention_time: float
    mz: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=float))
    intensity: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=float))
    precursor_mz: float = 0.0
    centroided: bool = True
    parent_scan_number: int = -1
    fragment_scan_numbers: Optional[List[int]] = None

    def __post_init__(self) -> None:
        self.mz = np.asarray(self.mz, dtype=float)
        self.intensity = np.asarray(self.intensity, dtype=float)
        if self.mz.shape != self.intensity.shape:
            raise ValueError("Scan m/z and intensity arrays must have the same length")

    @property
    def number_of_data_points(self) -> int:
        return int(self.mz.size)

    @property
    def mz_range(self) -> Tuple[float, float]:
        if not self.mz.size:
            return (0.0, 0.0)
        return (float(self.mz.min()), float(self.mz.max()))

    @property
    def base_peak(self) -> Optional[DataPoint]:
        if not self.intensity.size:
            return None
        idx = int(np.argmax(self.intensity))
        return DataPoint(mz=float(self.mz[idx]), intensity=float(self.intensity[idx]))

    def data_points(self) -> List[DataPoint]:
        return [DataPoint(float(m), float(i)) for m, i in zip(self.mz, self.intensity)]


class RawDataFile:
    def __init__(self, name: str, scans: Iterable[Scan] = ()):
        self.name = name
        self._scans: Dict[int, Scan] = {}
        for scan in scans:
            self.add_scan(scan)

    def __repr__(self) -> str:
        return f"RawDataFile({self.name!r})"

    def __str__(self) -> str:
        return self.name

    def add_scan(self, scan: Scan) -> None:
        if scan.scan_number in self._scans:
            raise ValueError(f"Duplicate scan number {scan.scan_number} in {self.name}")
        self._scans[scan.scan_number] = scan

    def get_scan(self, scan_number: int) -> Scan:
        try:
            return self._scans[scan_number]
        except KeyError:
            raise KeyError(f"Scan {scan_number} not found in {self.name}") from None

    def get_scan_numbers(self, ms_level: Optional[int] = None) -> List[int]:
        return sorted(
            number
            for number, scan in self._scans.items()
            if ms_level is None or scan.ms_level == ms_level
        )

    def get_num_of_scans(self, ms_level: Optional[int] = None) -> int:
        return len(self.get_scan_numbers(ms_level))


@dataclass
class Feature:
    """A chromatographic peak detected in one raw data file.

    ``data_points`` maps scan numbers to the peak's data point in that scan;
    scans where the peak was not observed are simply absent.
    """

    raw_file: RawDataFile
    mz: float
    rt: float
    area: float
    height: float
    data_points: Dict[int, DataPoint] = field(default_factory=dict)
    raw_rt_range: Tuple[float, float] = (0.0, 0.0)

    @property
    def scan_numbers(self) -> List[int]:
        return sorted(self.data_points)

    def get_data_point(self, scan_number: int) -> Optional[DataPoint]:
        return self.data_points.get(scan_number)


@dataclass
class RowAnnotation:
    name: str
    properties: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.properties = dict(self.properties)
        self.properties.setdefault(PROPERTY_NAME, self.name)

    def get_property(self, key: str) -> Optional[str]:
        return self.properties.get(key)

    def set_property(self, key: str, value: str) -> None:
        self.properties[key] = value

    def __str__(self) -> str:
        return self.name


@dataclass
class PeakListRow:
    row_id: int
    peaks: Dict[str, Feature] = field(default_factory=dict)
    identities: List[RowAnnotation] = field(default_factory=list)
    preferred_identity: Optional[RowAnnotation] = None

    def add_peak(self, peak: Feature) -> None:
        self.peaks[peak.raw_file.name] = peak

    def add_identity(self, identity: RowAnnotation, preferred: bool = False) -> None:
        self.identities.append(identity)
        if preferred or self.preferred_identity is None:
            self.preferred_identity = identity

    @property
    def average_mz(self) -> float:
        if not self.peaks:
            return float("nan")
        return float(np.mean([peak.mz for peak in self.peaks.values()]))

    @property
    def average_rt(self) -> float:
        if not self.peaks:
            return float("nan")
        return float(np.mean([peak.rt for peak in self.peaks.values()]))


class PeakList:
    def __init__(self, name: str, raw_files: Sequence[RawDataFile]):
        self.name = name
        self.raw_files: List[RawDataFile] = list(raw_files)
        self.rows: List[PeakListRow] = []
        self._row_by_peak: Dict[int, PeakListRow] = {}

    def __repr__(self) -> str:
        return f"PeakList({self.name!r})"

    def __str__(self) -> str:
        return self.name

    @property
    def number_of_raw_files(self) -> int:
        return len(self.raw_files)

    def get_raw_file(self, index: int) -> RawDataFile:
        return self.raw_files[index]

    def add_row(self, row: PeakListRow) -> None:
        for raw_name in row.peaks:
            if raw_name not in {raw.name for raw in self.raw_files}:
                raise ValueError(f"Row {row.row_id} references unknown raw file {raw_name}")
        self.rows.append(row)
        for peak in row.peaks.values():
            self._row_by_peak[id(peak)] = row

    def get_peaks(self, raw_file: RawDataFile) -> List[Feature]:
        """Return the peaks detected in ``raw_file`` in row order."""
        return [row.peaks[raw_file.name] for row in self.rows if raw_file.name in row.peaks]

    def get_peak_row(self, peak: Feature) -> PeakListRow:
        try:
            return self._row_by_peak[id(peak)]
        except KeyError:
            raise KeyError("Peak does not belong to this peak list") from None

    @classmethod
    def from_features(cls, name: str, raw_file: RawDataFile, features: Iterable[Feature]) -> "PeakList":
        peak_list = cls(name, [raw_file])
        for row_id, feature in enumerate(features, start=1):
            row = PeakListRow(row_id=row_id)
            row.add_peak(feature)
            peak_list.add_row(row)
        return peak_list
