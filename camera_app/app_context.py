import json
from typing import Optional

from PyQt6.QtCore import QSettings

from camera_app.engine.camera_params import CameraParameters

CAMERA_SETTINGS_KEY = "camera/parameters"


class AppContext:
    def __init__(self, settings: Optional[QSettings] = None):
        # Company/app keys control where QSettings persists per OS
        self.settings = settings if settings is not None else QSettings("CameraLab", "CameraApp")
        self._job_running = False

    def set_job_running(self, running: bool):
        self._job_running = running

    def is_job_running(self) -> bool:
        return self._job_running

    def maybe_close(self) -> bool:
        return not self._job_running

    def camera_parameters(self) -> CameraParameters:
        raw_state = self.settings.value(CAMERA_SETTINGS_KEY, "")
        if isinstance(raw_state, (bytes, bytearray)):
            raw_state = raw_state.decode("utf-8", errors="ignore")
        if not isinstance(raw_state, str) or not raw_state.strip():
            return CameraParameters()
        try:
            payload = json.loads(raw_state)
            if not isinstance(payload, dict):
                return CameraParameters()
            return CameraParameters.from_mapping(payload)
        except ValueError:
            return CameraParameters()

    def save_camera_parameters(self, parameters: CameraParameters):
        self.settings.setValue(CAMERA_SETTINGS_KEY, json.dumps(parameters.to_dict()))
        self.settings.sync()
