"""
Persisted provisioning settings.

The active provisioning cycle is the only writer, but other parts of the system may read the
settings at any time. Every update replaces the whole snapshot in one step, so a reader sees
either the old or the new values and never a mix of the two.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field

from rkpm.common.config import RKPMConfig
from rkpm.common.config_misc import SettingsDefaults
from rkpm.common.data import FrozenBaseModel, HttpUrlString, IntegerKeyCount
from rkpm.common.errors import SettingsError
from rkpm.common.parse_utils import duration_to_timedelta, timedelta_to_duration

__author__ = "ft"

logger = logging.getLogger(__name__)


class ProvisioningSettings(FrozenBaseModel):
    """A snapshot of the persisted settings."""

    extra_signed_keys_available: IntegerKeyCount
    expiring_by: timedelta
    provisioning_url: HttpUrlString
    failure_counter: int = Field(default=0, ge=0)

    @classmethod
    def from_defaults(cls, defaults: SettingsDefaults) -> ProvisioningSettings:
        """Create settings holding nothing but the default values."""
        return cls(**defaults.model_dump())

    def to_dict(self) -> dict[str, Any]:
        """Serialise to plain types, with the duration as an ISO8601 string."""
        _data = self.model_dump()
        _data["expiring_by"] = timedelta_to_duration(self.expiring_by)
        return _data

    def updated(self, **kwargs: Any) -> ProvisioningSettings:
        """Return a validated copy with the provided attributes updated."""
        return self.model_validate({**self.model_dump(), **kwargs})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProvisioningSettings:
        """Parse the output of to_dict()."""
        _data = dict(data)  # do not modify the caller's data
        if isinstance(_data.get("expiring_by"), str):
            _data["expiring_by"] = duration_to_timedelta(_data["expiring_by"])
        return cls.model_validate(_data)


class SettingsStore(ABC):
    """Persisted settings used by the provisioning cycle."""

    def __init__(self, defaults: SettingsDefaults | None = None):
        self.defaults = defaults or SettingsDefaults()
        self._lock = threading.Lock()

    @abstractmethod
    def load(self) -> ProvisioningSettings:
        """Return the current settings snapshot."""

    @abstractmethod
    def _write(self, settings: ProvisioningSettings) -> None:
        """Replace the stored snapshot with `settings'."""

    def _update(self, **kwargs: Any) -> ProvisioningSettings:
        with self._lock:
            settings = self.load().updated(**kwargs)
            self._write(settings)
        return settings

    @property
    def extra_signed_keys_available(self) -> int:
        """Number of signed keys to keep available beyond the ones assigned to apps."""
        return self.load().extra_signed_keys_available

    @property
    def expiring_by(self) -> timedelta:
        """Keys expiring within this long are replaced."""
        return self.load().expiring_by

    @property
    def provisioning_url(self) -> str:
        """Base URL of the provisioning server."""
        return self.load().provisioning_url

    @property
    def failure_counter(self) -> int:
        """Number of failed provisioning cycles in a row."""
        return self.load().failure_counter

    def set_device_config(
        self,
        extra_keys: int | None = None,
        expiring_by: timedelta | None = None,
        url: str | None = None,
    ) -> ProvisioningSettings:
        """Store server-directed values. Values given as None are left unchanged."""
        _update: dict[str, Any] = {}
        if extra_keys is not None:
            _update["extra_signed_keys_available"] = extra_keys
        if expiring_by is not None:
            _update["expiring_by"] = expiring_by
        if url is not None:
            _update["provisioning_url"] = url
        if not _update:
            return self.load()
        logger.debug(f"Updating device configuration: {_update}")
        return self._update(**_update)

    def increment_failure_counter(self) -> int:
        """Increment the failure counter and return the new value."""
        with self._lock:
            settings = self.load()
            settings = settings.updated(failure_counter=settings.failure_counter + 1)
            self._write(settings)
        return settings.failure_counter

    def reset_failure_counter(self) -> None:
        """Reset the failure counter, if it is not already zero."""
        if self.failure_counter:
            self._update(failure_counter=0)

    def clear_all(self) -> ProvisioningSettings:
        """Reset all settings to their defaults."""
        logger.warning("Resetting all provisioning settings to defaults")
        settings = ProvisioningSettings.from_defaults(self.defaults)
        with self._lock:
            self._write(settings)
        return settings


class InMemorySettingsStore(SettingsStore):
    """Settings that only live as long as the process. Used in tests."""

    def __init__(self, defaults: SettingsDefaults | None = None, **kwargs: Any):
        super().__init__(defaults)
        self._settings = ProvisioningSettings(**{**self.defaults.model_dump(), **kwargs})

    def load(self) -> ProvisioningSettings:
        return self._settings

    def _write(self, settings: ProvisioningSettings) -> None:
        # rebinding a reference is atomic, readers get either the old or the new snapshot
        self._settings = settings


class FileSettingsStore(SettingsStore):
    """Settings stored in a YAML file, replaced atomically on every update."""

    def __init__(self, filename: Path, defaults: SettingsDefaults | None = None):
        super().__init__(defaults)
        self.filename = Path(filename)

    def __str__(self) -> str:
        """Return settings store as string."""
        return f"<{self.__class__.__name__}: {self.filename}>"

    def load(self) -> ProvisioningSettings:
        """
        Return the settings stored in the file, or the defaults if there is no file.

        :raises SettingsError: If the file can't be read or holds invalid settings
        """
        if not self.filename.exists():
            return ProvisioningSettings.from_defaults(self.defaults)
        try:
            with open(self.filename) as fd:
                data = yaml.safe_load(fd)
            if not data:
                return ProvisioningSettings.from_defaults(self.defaults)
            return ProvisioningSettings.from_dict(data)
        except (OSError, yaml.YAMLError, ValueError, TypeError, NotImplementedError) as exc:
            raise SettingsError(f"Failed to load settings from {self.filename}: {exc}") from exc

    def _write(self, settings: ProvisioningSettings) -> None:
        self.filename.parent.mkdir(parents=True, exist_ok=True)
        fd, tmpname = tempfile.mkstemp(
            dir=self.filename.parent, prefix=f".{self.filename.name}."
        )
        try:
            with os.fdopen(fd, "w") as out:
                yaml.safe_dump(settings.to_dict(), out, default_flow_style=False)
                out.flush()
                os.fsync(out.fileno())
            os.replace(tmpname, self.filename)
        except BaseException:
            os.unlink(tmpname)
            raise
        logger.debug(f"Wrote settings to {self.filename}")


def get_settings_store(config: RKPMConfig) -> SettingsStore:
    """Return the settings store described by the 'settings' section of the configuration."""
    if config.settings.filename is None:
        logger.warning("No settings filename configured, settings will not be persisted")
        return InMemorySettingsStore(config.settings.defaults)
    return FileSettingsStore(config.settings.filename, config.settings.defaults)
