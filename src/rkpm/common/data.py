"""Data classes shared by the provisioning protocol, the key pool and the orchestrator."""

from abc import ABC
from datetime import timedelta
from enum import Enum
from typing import Annotated, Self

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, model_validator

__author__ = "ft"

# Length of an uncompressed SEC 1 EC point (0x04 | x | y) on a 256 bit curve
UNCOMPRESSED_POINT_LENGTH = 65
UNCOMPRESSED_POINT_TAG = 0x04
RAW_PUBLIC_KEY_LENGTH = UNCOMPRESSED_POINT_LENGTH - 1

HttpUrlString = Annotated[str, StringConstraints(pattern=r"^https?://[^\s?#]+$")]
IntegerKeyCount = Annotated[int, Field(ge=0)]


class FrozenBaseModel(BaseModel, ABC):
    """
    A frozen abstract base class for Pydantic models.

    This variant allows coercion of data - used when loading configuration objects to e.g.
    get time deltas loaded transparently from strings.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")


class FrozenStrictBaseModel(BaseModel, ABC):
    """
    A frozen *strict* abstract base class for Pydantic models.

    This variant does NOT allow coercion of data - used for values decoded from the network.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", strict=True)


class SecurityLevel(Enum):
    """Secure execution environment backing an attestation key."""

    SOFTWARE = 0
    TRUSTED_ENVIRONMENT = 1
    STRONGBOX = 2


class CycleOutcome(Enum):
    """What a provisioning cycle reports back to the scheduler."""

    COMPLETED = "completed"
    RETRY = "retry"
    DISABLED = "disabled"

    @property
    def wants_reschedule(self) -> bool:
        """Return True if the scheduler should run the cycle again soon."""
        return self is CycleOutcome.RETRY


class ImplementationInfo(FrozenStrictBaseModel):
    """A security level instance reported by the key custodian."""

    security_level: SecurityLevel
    supported_curve: int = 0


class PoolStatus(FrozenStrictBaseModel):
    """
    Snapshot of the attestation key pool for one security level.

    Counts are supplied by the key custodian, the invariants are checked here so that
    a misbehaving custodian is caught before the refill arithmetic runs.
    """

    total: int = Field(ge=0)
    attested: int = Field(ge=0)
    unassigned: int = Field(ge=0)
    expiring: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_counts(self) -> Self:
        if self.attested > self.total:
            raise ValueError(f"attested ({self.attested}) > total ({self.total})")
        if self.unassigned > self.attested:
            raise ValueError(
                f"unassigned ({self.unassigned}) > attested ({self.attested})"
            )
        if self.expiring > self.attested:
            raise ValueError(f"expiring ({self.expiring}) > attested ({self.attested})")
        return self

    def __str__(self) -> str:
        """Return pool status as string."""
        return (
            f"total={self.total} attested={self.attested} "
            f"unassigned={self.unassigned} expiring={self.expiring}"
        )


class DeviceConfig(FrozenBaseModel):
    """Server-directed pool policy. Fields left as None keep the device's current value."""

    extra_keys_allowed: int | None = Field(default=None, ge=0)
    refresh_interval: timedelta | None = None
    provisioning_url: HttpUrlString | None = None


class EncryptionKeyResponse(FrozenStrictBaseModel):
    """Decoded response to the encryption key (EEK chain) request."""

    key_material: bytes = Field(repr=False)
    challenge: bytes
    extra_keys_allowed: int = Field(ge=0)
    refresh_interval: timedelta
    provisioning_url: HttpUrlString


class ProvisionedKeyRecord(FrozenStrictBaseModel):
    """A signed attestation key, ready to be handed to the key custodian for storage."""

    raw_public_key: bytes = Field(
        min_length=RAW_PUBLIC_KEY_LENGTH, max_length=RAW_PUBLIC_KEY_LENGTH
    )
    chain: bytes = Field(repr=False)
    expiration_epoch_millis: int
    security_level: SecurityLevel

    def __str__(self) -> str:
        """Return record as string."""
        return (
            f"security_level={self.security_level.name} "
            f"pubkey={self.raw_public_key[:8].hex()}... "
            f"expires={self.expiration_epoch_millis}"
        )
