"""Base exception classes used throughout provisioning."""

__author__ = "ft"


class ProvisioningError(Exception):
    """Base class exception for all provisioning errors."""


class ConfigurationError(ProvisioningError):
    """A caller or configuration error. Never retried."""


class TransportError(ProvisioningError):
    """HTTP or network failure talking to the provisioning server."""


class DecodeError(ProvisioningError):
    """A server response did not have the expected CBOR shape."""


class CustodianError(ProvisioningError):
    """The key custodian failed to perform an operation."""


class ChainValidationError(ProvisioningError):
    """A returned certificate chain could not be parsed, or holds an unusable public key."""


class PublicKeyFormatError(ChainValidationError):
    """The leaf public key is not encoded as an uncompressed 256 bit EC point."""


class SettingsError(ProvisioningError):
    """The persisted settings could not be loaded."""


class ProvisioningStopped(ProvisioningError):
    """The scheduler asked the running cycle to stop."""
