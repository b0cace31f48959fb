"""Turn signed certificate chains from the server into records the key custodian can store."""

import logging

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from rkpm.common.data import (
    UNCOMPRESSED_POINT_LENGTH,
    UNCOMPRESSED_POINT_TAG,
    ProvisionedKeyRecord,
    SecurityLevel,
)
from rkpm.common.errors import ChainValidationError, PublicKeyFormatError

__author__ = "ft"

logger = logging.getLogger(__name__)

_ASN1_SEQUENCE = 0x30


def split_der_certificates(blob: bytes) -> list[bytes]:
    """
    Split a concatenation of DER encoded certificates into the individual certificates.

    Only the outer SEQUENCE header of each certificate is looked at here, the contents are
    parsed by 'cryptography' later.
    """
    res: list[bytes] = []
    offset = 0
    while offset < len(blob):
        if blob[offset] != _ASN1_SEQUENCE:
            raise ChainValidationError(
                f"Expected ASN.1 SEQUENCE at offset {offset}, got 0x{blob[offset]:02x}"
            )
        if offset + 2 > len(blob):
            raise ChainValidationError(f"Truncated certificate header at offset {offset}")
        first = blob[offset + 1]
        header_len = 2
        if first < 0x80:
            length = first
        elif first == 0x80:
            raise ChainValidationError("Indefinite length encoding is not allowed in DER")
        else:
            num_octets = first & 0x7F
            if num_octets > 4 or offset + 2 + num_octets > len(blob):
                raise ChainValidationError(
                    f"Bad certificate length encoding at offset {offset}"
                )
            length = int.from_bytes(blob[offset + 2 : offset + 2 + num_octets], "big")
            header_len += num_octets
        end = offset + header_len + length
        if end > len(blob):
            raise ChainValidationError(
                f"Truncated certificate at offset {offset} ({end - len(blob)} bytes missing)"
            )
        res.append(blob[offset:end])
        offset = end
    return res


def load_certificate_chain(blob: bytes) -> list[x509.Certificate]:
    """Parse a DER encoded certificate chain, leaf first."""
    certs: list[x509.Certificate] = []
    for idx, der in enumerate(split_der_certificates(blob)):
        try:
            certs.append(x509.load_der_x509_certificate(der))
        except ValueError as exc:
            raise ChainValidationError(
                f"Failed to interpret DER encoded certificate {idx} in chain: {exc}"
            ) from exc
    if not certs:
        raise ChainValidationError("No certificates found in chain")
    return certs


def leaf_public_key_point(cert: x509.Certificate) -> bytes:
    """Return the SEC 1 encoded EC point of the public key in `cert'."""
    try:
        pubkey = cert.public_key()
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise PublicKeyFormatError(f"Failed to load leaf public key: {exc}") from exc
    if not isinstance(pubkey, ec.EllipticCurvePublicKey):
        raise PublicKeyFormatError(
            f"Leaf public key is not an EC key ({type(pubkey).__name__})"
        )
    return pubkey.public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)


def raw_public_key(point: bytes, strict: bool = False) -> bytes:
    """
    Strip the format byte from an uncompressed EC point.

    The uncompressed point is (s | x | y) where s is the format byte and x and y make up the
    point, 1 + 32 + 32 bytes. The custodian stores just (x | y), like in a COSE_Key.

    :param strict: Refuse points with the right length but the wrong format byte.
    """
    if len(point) != UNCOMPRESSED_POINT_LENGTH:
        raise PublicKeyFormatError(
            f"Key is not encoded as expected, or corrupted. Length: {len(point)}"
        )
    if point[0] != UNCOMPRESSED_POINT_TAG:
        if strict:
            raise PublicKeyFormatError(f"Key is not uncompressed (0x{point[0]:02x})")
        logger.warning(f"Key is not uncompressed (0x{point[0]:02x}), using it anyway")
    return point[1:]


def process_chain(
    chain: bytes, security_level: SecurityLevel, strict_point_format: bool = False
) -> ProvisionedKeyRecord:
    """
    Extract the public key and expiration time from the leaf of a certificate chain.

    :raises ChainValidationError: If the chain can't be parsed, or the leaf key is unusable.
    """
    # DER chains are ordered leaf to root
    leaf = load_certificate_chain(chain)[0]
    try:
        expiration = leaf.not_valid_after_utc
    except ValueError as exc:
        raise ChainValidationError(f"Bad leaf expiration time: {exc}") from exc
    expiration_ms = int(expiration.timestamp()) * 1000
    point = leaf_public_key_point(leaf)
    record = ProvisionedKeyRecord(
        raw_public_key=raw_public_key(point, strict=strict_point_format),
        chain=chain,
        expiration_epoch_millis=expiration_ms,
        security_level=security_level,
    )
    logger.debug(f"Processed certificate chain for {leaf.subject.rfc4514_string()}: {record}")
    return record
