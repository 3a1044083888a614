"""Access to the shared R engine used by the CAMERA search.

R runs embedded in the process through rpy2, so there is exactly one engine
and it is not reentrant. Every caller must hold :data:`R_SEMAPHORE` for the
whole sequence of assignments and evaluations that belong together.
"""

from __future__ import annotations

import logging
import threading
from importlib.util import find_spec
from typing import Any, Optional, Protocol

import numpy as np

from camera_app.engine.errors import CameraEngineError, CameraEnvironmentError

__all__ = [
    "R_SEMAPHORE",
    "REngine",
    "RPy2Engine",
    "get_r_engine",
    "is_true",
    "require_package",
]

logger = logging.getLogger(__name__)

# Held for a full multi-statement session against the engine.
R_SEMAPHORE = threading.Lock()

_ENGINE: Optional["RPy2Engine"] = None
_ENGINE_LOCK = threading.Lock()


class REngine(Protocol):
    def assign(self, name: str, value: Any) -> None:
        ...

    def eval(self, expression: str) -> Any:
        ...


class RPy2Engine:
    """:class:`REngine` backed by the embedded R interpreter of rpy2.

    Values read back are converted to plain Python: atomic vectors become
    lists, ``NULL`` becomes ``None`` and missing strings become ``""``.
    ``robjects`` and ``runtime_error`` default to the rpy2 modules.
    """

    def __init__(self, robjects=None, runtime_error=None):
        if robjects is None:
            import rpy2.robjects as robjects
        if runtime_error is None:
            from rpy2.rinterface_lib.embedded import RRuntimeError as runtime_error

        self._ro = robjects
        self._runtime_error = runtime_error

    def assign(self, name: str, value: Any) -> None:
        self._ro.globalenv[name] = self._to_r(value)

    def eval(self, expression: str) -> Any:
        logger.debug("R eval: %s", expression)
        try:
            result = self._ro.r(expression)
        except self._runtime_error as exc:
            raise CameraEngineError(f"R evaluation failed: {exc}", expression) from exc
        return self._to_python(result)

    def _to_r(self, value: Any):
        ro = self._ro
        if isinstance(value, str):
            return ro.StrVector([value])
        arr = np.asarray(value)
        if arr.ndim == 2:
            nrow, ncol = arr.shape
            flat = ro.FloatVector(np.asarray(arr, dtype=float).ravel(order="F").tolist())
            return ro.r["matrix"](flat, nrow=nrow, ncol=ncol)
        if arr.ndim != 1:
            raise ValueError(f"Cannot assign a {arr.ndim}-dimensional array to R")
        if np.issubdtype(arr.dtype, np.integer):
            return ro.IntVector(arr.astype(int).tolist())
        if np.issubdtype(arr.dtype, np.bool_):
            return ro.BoolVector(arr.tolist())
        if np.issubdtype(arr.dtype, np.number):
            return ro.FloatVector(arr.astype(float).tolist())
        return ro.StrVector([str(v) for v in arr.tolist()])

    def _to_python(self, result: Any) -> Any:
        ro = self._ro
        if result is ro.NULL:
            return None
        if isinstance(result, ro.vectors.StrVector):
            return ["" if item is ro.NA_Character else str(item) for item in result]
        if isinstance(result, (ro.vectors.BoolVector, ro.vectors.IntVector, ro.vectors.FloatVector)):
            return list(result)
        return result


def get_r_engine() -> RPy2Engine:
    """Return the process-wide R engine, starting R on first use."""

    global _ENGINE
    with _ENGINE_LOCK:
        if _ENGINE is None:
            if find_spec("rpy2") is None:
                raise CameraEnvironmentError(
                    "CAMERA requires R but it couldn't be loaded (rpy2 is not installed)"
                )
            try:
                _ENGINE = RPy2Engine()
            except (ImportError, OSError, RuntimeError) as exc:
                raise CameraEnvironmentError(
                    f"CAMERA requires R but it couldn't be loaded ({exc})"
                ) from exc
            logger.info("Embedded R engine started")
        return _ENGINE


def is_true(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (list, tuple, np.ndarray)):
        return len(value) > 0 and value[0] is not None and bool(value[0])
    return bool(value)


def require_package(engine: REngine, package: str, min_version: str) -> None:
    """Load ``package`` in R and check it is at least ``min_version``.

    Must be called with :data:`R_SEMAPHORE` held.
    """

    if not is_true(engine.eval(f"suppressWarnings(require({package}))")):
        raise CameraEnvironmentError(
            f"The {package} R package couldn't be loaded - is it installed in R?"
        )
    if not is_true(engine.eval(f"packageVersion('{package}') >= '{min_version}'")):
        raise CameraEnvironmentError(
            f"An old version of the {package} package is installed in R - please update "
            f"{package} to version {min_version} or later"
        )
