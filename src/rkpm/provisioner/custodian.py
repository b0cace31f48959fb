"""
The key custodian capability.

The key custodian owns the attestation keys: it generates key pairs, builds CSR bundles,
reports on the pool and stores signed certificate chains. The provisioning cycle only ever
talks to it through this interface. Implementations must raise CustodianError on failure.
"""

from abc import ABC, abstractmethod

from rkpm.common.data import ImplementationInfo, PoolStatus, SecurityLevel

__author__ = "ft"


class KeyCustodian(ABC):
    """Interface to the component holding the device attestation keys."""

    @abstractmethod
    def generate_csr(
        self,
        test_mode: bool,
        num_keys: int,
        key_material: bytes,
        challenge: bytes,
        security_level: SecurityLevel,
    ) -> bytes:
        """
        Return a CSR bundle for up to `num_keys' unsigned keys.

        The bundle holds MAC'ed CSRs and an encrypted blob with the MAC key and device
        information, encrypted using the encryption key in `key_material'. The custodian
        does a best-effort: if fewer unsigned keys than requested are available, it covers
        the ones that are.
        """

    @abstractmethod
    def generate_key_pair(self, test_mode: bool, security_level: SecurityLevel) -> None:
        """Generate one new, unsigned, attestation key pair."""

    @abstractmethod
    def get_pool_status(
        self, expiring_by: int, security_level: SecurityLevel
    ) -> PoolStatus:
        """
        Return the key pool status.

        :param expiring_by: Keys with certificates expiring before this time (epoch
                            milliseconds) are counted as expiring.
        """

    @abstractmethod
    def provision_cert_chain(
        self,
        raw_public_key: bytes,
        chain: bytes,
        expiration_epoch_millis: int,
        security_level: SecurityLevel,
    ) -> None:
        """Store a signed certificate chain with the key pair that has `raw_public_key'."""

    @abstractmethod
    def delete_all_keys(self) -> int:
        """Delete all attestation keys, return the number of keys deleted."""

    @abstractmethod
    def get_implementation_info(self) -> list[ImplementationInfo]:
        """Return the security levels the custodian can generate keys for."""
