"""Load and parse configuration."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from io import BufferedReader, StringIO
from typing import Any

import yaml

from rkpm.common.config_misc import (
    ProvisioningPolicy,
    ServerConfig,
    SettingsConfig,
)
from rkpm.common.data import FrozenBaseModel
from rkpm.common.integrity import checksum_bytes2str

__author__ = "ft"

logger = logging.getLogger(__name__)


class RKPMConfig(FrozenBaseModel):
    """
    Configuration object.

    Holds configuration loaded from rkpm.yaml. Every section is optional.

    Example:
    -------
        server:
          request_timeout: PT30S
          strict_http_status: false
        policy:
          failure_maximum: 5
          key_generation_pause: PT1S
          strict_point_format: false
          abort_batch_on_invalid_chain: true
        settings:
          filename: /var/lib/rkpm/settings.yaml
    """

    server: ServerConfig = ServerConfig()
    policy: ProvisioningPolicy = ProvisioningPolicy()
    settings: SettingsConfig = SettingsConfig()

    def merge_update(self, data: Mapping[str, Any]) -> RKPMConfig:
        """Merge-update configuration on the fly. Usable in tests."""
        logger.warning(f"Merging configuration (sections {list(data.keys())})")
        _config = self.model_dump()
        for k, v in data.items():
            logger.debug(f"Updating config section {k} with {v}")
            _config[k].update(v)
        return self.from_dict(_config)

    @classmethod
    def from_yaml(cls, stream: BufferedReader | StringIO) -> RKPMConfig:
        """Load configuration from a YAML stream."""
        config = yaml.safe_load(stream)
        return cls.from_dict(config or {})

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> RKPMConfig:
        """Load configuration from a dict, as returned by yaml.safe_load()."""
        return cls.model_validate(dict(config))


def get_config(filename: str | None) -> RKPMConfig:
    """Top-level function to load configuration, or return a default RKPMConfig instance."""
    if not filename:
        # Avoid having Optional[RKPMConfig] everywhere by always having a config, even if it is empty
        logger.warning(
            "No configuration filename provided, using default configuration."
        )
        return RKPMConfig()
    with open(filename, "rb") as fd:
        config_bytes = fd.read()
        logger.info(
            "Loaded configuration from file %s %s",
            filename,
            checksum_bytes2str(config_bytes),
        )
        fd.seek(0)
        return RKPMConfig.from_yaml(fd)
