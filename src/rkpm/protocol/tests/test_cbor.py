import unittest
from datetime import timedelta

import cbor2

from rkpm.common.data import DeviceConfig
from rkpm.common.errors import DecodeError
from rkpm.protocol.cbor import (
    decode_encryption_key_response,
    decode_signed_certificates,
)

__author__ = "ft"

_DEVICE_CONFIG = DeviceConfig(
    extra_keys_allowed=6,
    refresh_interval=timedelta(days=3),
    provisioning_url="https://rkp.example.com",
)


class TestParseSignedCertificates(unittest.TestCase):
    def test_fake_data(self) -> None:
        """Test that the shared part is appended to every unique part, in order"""
        data = cbor2.dumps([b"\x01\x02\x03", [b"\x04\x05\x06", b"\x07\x08\x09"]])
        chains = decode_signed_certificates(data)
        self.assertEqual(
            [b"\x04\x05\x06\x01\x02\x03", b"\x07\x08\x09\x01\x02\x03"], chains
        )

    def test_no_unique_certs(self) -> None:
        self.assertEqual([], decode_signed_certificates(cbor2.dumps([b"\x01", []])))

    def test_wrong_size(self) -> None:
        with self.assertRaises(DecodeError):
            decode_signed_certificates(cbor2.dumps([1]))

    def test_extra_element(self) -> None:
        data = cbor2.dumps([b"\x01", [b"\x02"], b"\x03"])
        with self.assertRaises(DecodeError):
            decode_signed_certificates(data)

    def test_wrong_type_shared_certs(self) -> None:
        data = cbor2.dumps(["Should be a bstr", [b"\x04\x05\x06", b"\x07\x08\x09"]])
        with self.assertRaises(DecodeError):
            decode_signed_certificates(data)

    def test_wrong_type_unique_certs(self) -> None:
        data = cbor2.dumps(
            [
                b"\x01\x02\x03",
                [b"\x04\x05\x06", "Every entry should be a bstr", b"\x07\x08\x09"],
            ]
        )
        with self.assertRaises(DecodeError):
            decode_signed_certificates(data)

    def test_unique_certs_not_an_array(self) -> None:
        with self.assertRaises(DecodeError):
            decode_signed_certificates(cbor2.dumps([b"\x01", b"\x02"]))

    def test_top_level_not_an_array(self) -> None:
        with self.assertRaises(DecodeError):
            decode_signed_certificates(cbor2.dumps({"shared": b"\x01"}))

    def test_not_cbor(self) -> None:
        """Truncated CBOR, and no data at all"""
        data = cbor2.dumps([b"\x01\x02\x03", [b"\x04\x05\x06"]])
        with self.assertRaises(DecodeError):
            decode_signed_certificates(data[:-2])
        with self.assertRaises(DecodeError):
            decode_signed_certificates(b"")


class TestParseEncryptionKeyResponse(unittest.TestCase):
    def test_fake_data(self) -> None:
        """Test that the key material chain is re-encoded on its own"""
        chain = [b"\x01\x02\x03", b"\x04\x05\x06", b"\x07\x08\x09"]
        data = cbor2.dumps([chain, b"\x0a\x0b\x0c"])
        resp = decode_encryption_key_response(data, _DEVICE_CONFIG)
        self.assertEqual(cbor2.dumps(chain), resp.key_material)
        self.assertEqual(b"\x0a\x0b\x0c", resp.challenge)

    def test_device_config(self) -> None:
        data = cbor2.dumps([[b"\x01"], b"\x0a"])
        resp = decode_encryption_key_response(data, _DEVICE_CONFIG)
        self.assertEqual(6, resp.extra_keys_allowed)
        self.assertEqual(timedelta(days=3), resp.refresh_interval)
        self.assertEqual("https://rkp.example.com", resp.provisioning_url)

    def test_incomplete_device_config(self) -> None:
        data = cbor2.dumps([[b"\x01"], b"\x0a"])
        with self.assertRaises(DecodeError):
            decode_encryption_key_response(data, DeviceConfig(extra_keys_allowed=1))

    def test_wrong_size(self) -> None:
        data = cbor2.dumps(
            [
                [b"\x01\x02\x03", b"\x04\x05\x06", b"\x07\x08\x09"],
                b"\x0a\x0b\x0c",
                "One more entry than there should be",
            ]
        )
        with self.assertRaises(DecodeError):
            decode_encryption_key_response(data, _DEVICE_CONFIG)

    def test_missing_challenge(self) -> None:
        data = cbor2.dumps([[b"\x01\x02\x03"]])
        with self.assertRaises(DecodeError):
            decode_encryption_key_response(data, _DEVICE_CONFIG)

    def test_wrong_type_challenge(self) -> None:
        data = cbor2.dumps([[b"\x01\x02\x03"], "challenge"])
        with self.assertRaises(DecodeError):
            decode_encryption_key_response(data, _DEVICE_CONFIG)

    def test_wrong_type_chain_entry(self) -> None:
        data = cbor2.dumps([[b"\x01\x02\x03", 17], b"\x0a"])
        with self.assertRaises(DecodeError):
            decode_encryption_key_response(data, _DEVICE_CONFIG)

    def test_chain_not_an_array(self) -> None:
        data = cbor2.dumps([b"\x01\x02\x03", b"\x0a"])
        with self.assertRaises(DecodeError):
            decode_encryption_key_response(data, _DEVICE_CONFIG)
