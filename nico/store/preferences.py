"""Small JSON-backed preferences: device name and remembered peers."""

import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class PreferenceData(BaseModel):
    device_name: str | None = None
    saved_devices: dict[str, str] = Field(default_factory=dict)  # name -> ip
    connected_ip: str | None = None


class Preferences:
    """Loads and persists user preferences."""

    def __init__(self, path: Path | None = None):
        self._path = path
        self._data = PreferenceData()
        self._load()

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return

        try:
            self._data = PreferenceData(**json.loads(self._path.read_text()))
            logger.info(f"Loaded preferences with {len(self._data.saved_devices)} saved devices.")
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"Failed to load preferences: {e}")

    def _save(self) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(self._data.model_dump(), indent=2))
        except OSError as e:
            logger.error(f"Failed to save preferences: {e}")

    @property
    def device_name(self) -> str | None:
        return self._data.device_name

    @device_name.setter
    def device_name(self, name: str | None) -> None:
        self._data.device_name = name
        self._save()

    @property
    def connected_ip(self) -> str | None:
        return self._data.connected_ip

    @connected_ip.setter
    def connected_ip(self, ip: str | None) -> None:
        self._data.connected_ip = ip
        self._save()

    def save_device_ip(self, ip: str, name: str) -> None:
        """Remember `ip` under `name` for quick reconnects."""
        self._data.saved_devices[name] = ip
        self._save()
        logger.info(f"Saved device {name} at {ip}")

    def get_saved_device_ip(self, name: str) -> str | None:
        return self._data.saved_devices.get(name)
