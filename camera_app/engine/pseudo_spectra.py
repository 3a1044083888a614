from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional, Sequence

import pandas as pd

from camera_app.engine import audit as audit_log
from camera_app.engine.peak_model import (
    PROPERTY_ISOTOPE,
    PROPERTY_METHOD,
    Feature,
    PeakList,
    RowAnnotation,
)

__all__ = [
    "IDENTIFICATION_METHOD",
    "ISOTOPE_PATTERN",
    "pseudo_spectrum_name",
    "parse_isotope",
    "add_pseudo_spectra_identities",
    "annotations_frame",
    "write_annotations_csv",
]

logger = logging.getLogger(__name__)

IDENTIFICATION_METHOD = "Bioconductor CAMERA"
ISOTOPE_PATTERN = re.compile(r"\[\d+\](.*)")

_NAME_PREFIX = "Pseudo-spectrum #"
_FRAME_COLUMNS = ["row_id", "mz", "rt", "pseudo_spectrum", "isotope"]


def pseudo_spectrum_name(group: int) -> str:
    return f"{_NAME_PREFIX}{int(group):03d}"


def parse_isotope(text: Optional[str]) -> Optional[str]:
    """Return the isotope descriptor of a CAMERA tag such as ``[12][M+1]+``.

    ``None`` for blank text; raises ``ValueError`` for text that is not of
    the ``[<id>]<descriptor>`` form.
    """

    value = (text or "").strip()
    if not value:
        return None
    match = ISOTOPE_PATTERN.fullmatch(value)
    if match is None:
        raise ValueError(f"Irregular isotope value: {value}")
    return match.group(1)


def add_pseudo_spectra_identities(
    peak_list: PeakList,
    peaks: Sequence[Feature],
    spectra: Sequence[int],
    isotopes: Optional[Sequence[str]] = None,
    audit: Optional[List[str]] = None,
) -> List[RowAnnotation]:
    """Attach a pseudo-spectrum identity to the row of every peak.

    ``spectra`` and ``isotopes`` are positional: entry ``i`` belongs to
    ``peaks[i]``. Irregular and empty isotope tags are recorded in ``audit``
    and skipped.
    """

    annotations: List[RowAnnotation] = []
    for index, peak in enumerate(peaks):
        identity = RowAnnotation(pseudo_spectrum_name(spectra[index]))
        identity.set_property(PROPERTY_METHOD, IDENTIFICATION_METHOD)

        if isotopes is not None:
            try:
                isotope = parse_isotope(isotopes[index])
            except ValueError as exc:
                logger.warning("%s", exc)
                if audit is not None:
                    audit_log.log_warning(audit, str(exc))
            else:
                if isotope is not None:
                    identity.set_property(PROPERTY_ISOTOPE, isotope)
                else:
                    row_id = peak_list.get_peak_row(peak).row_id
                    message = f"Empty isotope value for row {row_id}"
                    logger.debug("%s", message)
                    if audit is not None:
                        audit_log.log_warning(audit, message)

        peak_list.get_peak_row(peak).add_identity(identity, preferred=True)
        annotations.append(identity)
    return annotations


def annotations_frame(peak_list: PeakList) -> pd.DataFrame:
    """One line per CAMERA identity in ``peak_list``, in row order."""

    records = []
    for row in peak_list.rows:
        for identity in row.identities:
            if identity.get_property(PROPERTY_METHOD) != IDENTIFICATION_METHOD:
                continue
            records.append(
                {
                    "row_id": row.row_id,
                    "mz": row.average_mz,
                    "rt": row.average_rt,
                    "pseudo_spectrum": int(identity.name[len(_NAME_PREFIX):]),
                    "isotope": identity.get_property(PROPERTY_ISOTOPE),
                }
            )
    return pd.DataFrame.from_records(records, columns=_FRAME_COLUMNS)


def write_annotations_csv(peak_list: PeakList, path: str | Path) -> Path:
    path = Path(path)
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    annotations_frame(peak_list).to_csv(path, index=False)
    return path
