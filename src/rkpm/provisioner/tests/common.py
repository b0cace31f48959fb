"""A key custodian living in memory, and helpers to fake the provisioning server."""

import logging
from dataclasses import dataclass, field

import cbor2
import requests
from cryptography.hazmat.primitives.asymmetric import ec

from rkpm.certs.tests.common import AttestationCA
from rkpm.common.data import ImplementationInfo, PoolStatus, SecurityLevel
from rkpm.provisioner.custodian import KeyCustodian

__author__ = "ft"

logger = logging.getLogger(__name__)


@dataclass
class StoredChain:
    raw_public_key: bytes
    chain: bytes
    expiration_epoch_millis: int
    security_level: SecurityLevel


@dataclass
class MockedKeyCustodian(KeyCustodian):
    """Record everything asked of the key custodian, and answer with canned data."""

    pool: PoolStatus = field(
        default_factory=lambda: PoolStatus(total=0, attested=0, unassigned=0, expiring=0)
    )
    implementations: list[ImplementationInfo] = field(
        default_factory=lambda: [
            ImplementationInfo(security_level=SecurityLevel.TRUSTED_ENVIRONMENT)
        ]
    )
    csr: bytes = b"csr bundle"
    generated: list[SecurityLevel] = field(default_factory=list)
    csr_requests: list[tuple] = field(default_factory=list)
    pool_requests: list[tuple[int, SecurityLevel]] = field(default_factory=list)
    stored: list[StoredChain] = field(default_factory=list)
    deleted: int = 0

    def generate_csr(
        self,
        test_mode: bool,
        num_keys: int,
        key_material: bytes,
        challenge: bytes,
        security_level: SecurityLevel,
    ) -> bytes:
        self.csr_requests.append(
            (test_mode, num_keys, key_material, challenge, security_level)
        )
        return self.csr

    def generate_key_pair(self, test_mode: bool, security_level: SecurityLevel) -> None:
        self.generated.append(security_level)

    def get_pool_status(
        self, expiring_by: int, security_level: SecurityLevel
    ) -> PoolStatus:
        self.pool_requests.append((expiring_by, security_level))
        return self.pool

    def provision_cert_chain(
        self,
        raw_public_key: bytes,
        chain: bytes,
        expiration_epoch_millis: int,
        security_level: SecurityLevel,
    ) -> None:
        logger.debug(f"Storing chain for {raw_public_key.hex()}")
        self.stored.append(
            StoredChain(raw_public_key, chain, expiration_epoch_millis, security_level)
        )

    def delete_all_keys(self) -> int:
        deleted = len(self.stored)
        self.stored = []
        self.deleted += deleted
        return deleted

    def get_implementation_info(self) -> list[ImplementationInfo]:
        return self.implementations


class FakeServer:
    """Mint the responses of a provisioning server, signing with a test CA."""

    def __init__(self) -> None:
        self.ca = AttestationCA()
        self.raw_keys: list[bytes] = []

    def eek_response(self, headers: dict[str, str] | None = None) -> requests.Response:
        return make_response(
            cbor2.dumps([[b"eek root", b"eek leaf"], b"challenge"]), headers=headers
        )

    def good_leaf(self) -> bytes:
        leaf, raw = self.ca.issue_p256()
        self.raw_keys.append(raw)
        return leaf

    def bad_leaf(self) -> bytes:
        """A leaf with a P-384 key, too long to be an uncompressed P-256 point."""
        return self.ca.issue(ec.generate_private_key(ec.SECP384R1()).public_key())

    def off_curve_leaf(self) -> bytes:
        """A leaf that parses, but with a public key that is not on the curve."""
        return self.ca.issue_off_curve()

    def signed_response(self, leaves: list[bytes]) -> requests.Response:
        return make_response(cbor2.dumps([self.ca.der, leaves]))


def make_response(
    content: bytes, status_code: int = 200, headers: dict[str, str] | None = None
) -> requests.Response:
    response = requests.Response()
    response._content = content
    response.status_code = status_code
    response.url = "https://rkp.example.com"
    if headers:
        response.headers.update(headers)
    return response
