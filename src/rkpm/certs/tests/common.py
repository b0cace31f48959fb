"""Helpers minting certificate chains for tests."""

from datetime import UTC, datetime

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from cryptography.x509.oid import NameOID

NOT_BEFORE = datetime(2021, 1, 1, tzinfo=UTC)
NOT_AFTER = datetime(2031, 1, 1, tzinfo=UTC)


def _name(cn: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])


class AttestationCA:
    """A root CA issuing attestation key certificates."""

    def __init__(self) -> None:
        self.key = ec.generate_private_key(ec.SECP256R1())
        self.name = _name("Test Attestation Root")
        self.cert = (
            x509.CertificateBuilder()
            .subject_name(self.name)
            .issuer_name(self.name)
            .public_key(self.key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(NOT_BEFORE)
            .not_valid_after(NOT_AFTER)
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .sign(self.key, hashes.SHA256())
        )

    @property
    def der(self) -> bytes:
        return self.cert.public_bytes(Encoding.DER)

    def issue(self, public_key, not_after: datetime = NOT_AFTER, cn: str = "Attestation Key") -> bytes:
        """Issue a leaf certificate for `public_key', return it DER encoded."""
        cert = (
            x509.CertificateBuilder()
            .subject_name(_name(cn))
            .issuer_name(self.name)
            .public_key(public_key)
            .serial_number(x509.random_serial_number())
            .not_valid_before(NOT_BEFORE)
            .not_valid_after(not_after)
            .sign(self.key, hashes.SHA256())
        )
        return cert.public_bytes(Encoding.DER)

    def issue_p256(self, not_after: datetime = NOT_AFTER) -> tuple[bytes, bytes]:
        """Issue a leaf for a new P-256 key. Return the leaf DER and the (x | y) public key."""
        key = ec.generate_private_key(ec.SECP256R1())
        numbers = key.public_key().public_numbers()
        raw = numbers.x.to_bytes(32, "big") + numbers.y.to_bytes(32, "big")
        return self.issue(key.public_key(), not_after=not_after), raw

    def issue_off_curve(self) -> bytes:
        """Issue a P-256 leaf, then corrupt its public key so the point is not on the curve."""
        key = ec.generate_private_key(ec.SECP256R1())
        leaf = self.issue(key.public_key())
        point = key.public_key().public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)
        bad_point = point[:-1] + bytes([point[-1] ^ 0x01])
        assert leaf.count(point) == 1
        return leaf.replace(point, bad_point)
