"""Sub-parts of RKPMConfig (in config.py)."""

from datetime import timedelta
from pathlib import Path
from typing import Any

from pydantic import PositiveInt, field_validator

from rkpm.common.data import FrozenBaseModel, HttpUrlString, IntegerKeyCount
from rkpm.common.parse_utils import duration_or_timedelta

__author__ = "ft"


DEFAULT_PROVISIONING_URL = "https://remoteprovisioning.googleapis.com"


class ServerConfig(FrozenBaseModel):
    """
    How to talk to the provisioning server.

    This corresponds to the 'server' section of rkpm.yaml.
    """

    request_timeout: timedelta = timedelta(seconds=30)
    # Fail on non-2xx responses instead of logging them and decoding the body anyway
    strict_http_status: bool = False

    @field_validator("request_timeout", mode="before")
    @classmethod
    def _parse_duration(cls, v: Any) -> timedelta:
        return duration_or_timedelta(v)


class ProvisioningPolicy(FrozenBaseModel):
    """
    Knobs for the provisioning cycle.

    This corresponds to the 'policy' section of rkpm.yaml.
    """

    failure_maximum: PositiveInt = 5
    # How long to wait in between key pair generations to avoid flooding the custodian
    key_generation_pause: timedelta = timedelta(seconds=1)
    # Reject leaf keys of the right length that are not tagged as uncompressed points
    strict_point_format: bool = False
    # Stop storing a batch of chains at the first one that fails validation
    abort_batch_on_invalid_chain: bool = True
    test_mode: bool = False

    @field_validator("key_generation_pause", mode="before")
    @classmethod
    def _parse_duration(cls, v: Any) -> timedelta:
        return duration_or_timedelta(v)


class SettingsDefaults(FrozenBaseModel):
    """Values the persisted settings are reset to."""

    extra_signed_keys_available: IntegerKeyCount = 6
    expiring_by: timedelta = timedelta(days=3)
    provisioning_url: HttpUrlString = DEFAULT_PROVISIONING_URL

    @field_validator("expiring_by", mode="before")
    @classmethod
    def _parse_duration(cls, v: Any) -> timedelta:
        return duration_or_timedelta(v)


class SettingsConfig(FrozenBaseModel):
    """
    Where the persisted settings live.

    This corresponds to the 'settings' section of rkpm.yaml.

    Example:
    -------
        settings:
          filename: /var/lib/rkpm/settings.yaml
          defaults:
            extra_signed_keys_available: 6
            expiring_by: P3D
            provisioning_url: https://remoteprovisioning.googleapis.com
    """

    filename: Path | None = None
    defaults: SettingsDefaults = SettingsDefaults()
