"""
Decoding of the CBOR messages returned by the provisioning server.

Both decoders fail closed: any deviation from the expected shape raises DecodeError, and no
partially decoded result is ever returned. No other exception escapes from this module.

EEK chain response:

    [
        [* bstr],       ; encryption key certificate chain, passed on re-encoded
        bstr,           ; challenge
    ]

Sign certificates response:

    [
        bstr,           ; DER certificates shared by all chains (the tail of every chain)
        [* bstr],       ; DER leaf certificate(s), one entry per chain
    ]
"""

import logging
from io import BytesIO
from typing import Any

import cbor2
from pydantic import ValidationError

from rkpm.common.data import DeviceConfig, EncryptionKeyResponse
from rkpm.common.errors import DecodeError

__author__ = "ft"

logger = logging.getLogger(__name__)


def _loads_single(data: bytes) -> Any:
    """Decode exactly one CBOR data item from `data'."""
    if not data:
        raise DecodeError("Empty CBOR response")
    fp = BytesIO(data)
    try:
        obj = cbor2.CBORDecoder(fp).decode()
    except (cbor2.CBORDecodeError, EOFError, ValueError, RecursionError) as exc:
        raise DecodeError(f"Failed to decode CBOR response: {exc}") from exc
    if fp.tell() != len(data):
        raise DecodeError(
            f"Unexpected data after CBOR response ({len(data) - fp.tell()} bytes)"
        )
    return obj


def _expect_array(obj: Any, length: int | None, what: str) -> list[Any]:
    if not isinstance(obj, list):
        raise DecodeError(f"{what}: expected array, got {type(obj).__name__}")
    if length is not None and len(obj) != length:
        raise DecodeError(f"{what}: expected array of {length} elements, got {len(obj)}")
    return obj


def _expect_bytes(obj: Any, what: str) -> bytes:
    if not isinstance(obj, bytes):
        raise DecodeError(f"{what}: expected bstr, got {type(obj).__name__}")
    return obj


def _expect_bytes_array(obj: Any, what: str) -> list[bytes]:
    _array = _expect_array(obj, None, what)
    return [_expect_bytes(this, f"{what}[{idx}]") for idx, this in enumerate(_array)]


def decode_encryption_key_response(
    data: bytes, device_config: DeviceConfig
) -> EncryptionKeyResponse:
    """
    Decode the response to the EEK chain request.

    The key material chain is re-encoded on its own, since that is what the key custodian
    wants. The server-directed pool policy does not travel in the CBOR message, it is passed
    in as `device_config' and must have every field set.

    :raises DecodeError: If the response is not exactly [[* bstr], bstr]
    """
    top = _expect_array(_loads_single(data), 2, "EEK response")
    chain = _expect_bytes_array(top[0], "EEK chain")
    challenge = _expect_bytes(top[1], "challenge")
    try:
        key_material = cbor2.dumps(chain)
        return EncryptionKeyResponse(
            key_material=key_material,
            challenge=challenge,
            extra_keys_allowed=device_config.extra_keys_allowed,
            refresh_interval=device_config.refresh_interval,
            provisioning_url=device_config.provisioning_url,
        )
    except (cbor2.CBOREncodeError, ValidationError) as exc:
        raise DecodeError(f"Invalid EEK response: {exc}") from exc


def decode_signed_certificates(data: bytes) -> list[bytes]:
    """
    Decode the response to the sign certificates request into certificate chains.

    Each chain is the unique leaf part followed by the shared part, in the order the server
    sent them.

    :raises DecodeError: If the response is not exactly [bstr, [* bstr]]
    """
    top = _expect_array(_loads_single(data), 2, "signed certificates response")
    shared = _expect_bytes(top[0], "shared certificates")
    unique = _expect_bytes_array(top[1], "unique certificates")
    logger.debug(
        f"Decoded {len(unique)} certificate chain(s), {len(shared)} bytes shared"
    )
    return [this + shared for this in unique]
