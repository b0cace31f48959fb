"""HTTP client for the remote provisioning server."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from datetime import timedelta

import requests
from pydantic import ValidationError

from rkpm.common.data import DeviceConfig, EncryptionKeyResponse
from rkpm.common.errors import DecodeError, ProvisioningStopped, TransportError
from rkpm.common.integrity import checksum_bytes2str
from rkpm.common.parse_utils import duration_to_timedelta
from rkpm.protocol.cbor import (
    decode_encryption_key_response,
    decode_signed_certificates,
)

__author__ = "ft"

logger = logging.getLogger(__name__)

EEK_PATH = "/v1/eekchain"
SIGN_CERTIFICATES_PATH = "/v1:signCertificates"

CBOR_CONTENT_TYPE = "application/cbor"

# Optional response headers carrying server-directed pool policy
HEADER_EXTRA_KEYS = "X-Extra-Keys-Allowed"
HEADER_REFRESH_INTERVAL = "X-Refresh-Interval"
HEADER_PROVISIONING_URL = "X-Provisioning-Url"


def device_config_from_headers(
    headers: Mapping[str, str], current: DeviceConfig
) -> DeviceConfig:
    """
    Return `current' updated with any pool policy the server sent in the response headers.

    :raises DecodeError: If a header is present but malformed
    """
    _update: dict[str, object] = {}
    try:
        if HEADER_EXTRA_KEYS in headers:
            _update["extra_keys_allowed"] = int(headers[HEADER_EXTRA_KEYS])
        if HEADER_REFRESH_INTERVAL in headers:
            _update["refresh_interval"] = duration_to_timedelta(
                headers[HEADER_REFRESH_INTERVAL]
            )
        if HEADER_PROVISIONING_URL in headers:
            _update["provisioning_url"] = headers[HEADER_PROVISIONING_URL]
        if not _update:
            return current
        return DeviceConfig.model_validate({**current.model_dump(), **_update})
    except (ValueError, NotImplementedError, ValidationError) as exc:
        raise DecodeError(f"Invalid device configuration headers: {exc}") from exc


class ServerInterface:
    """
    Talk to the provisioning server.

    No retries are made here. A failed request raises TransportError and it is up to the
    provisioning cycle to decide what happens next.
    """

    def __init__(
        self,
        base_url: str,
        timeout: timedelta = timedelta(seconds=30),
        strict_http_status: bool = False,
        session: requests.Session | None = None,
        stop_event: threading.Event | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.strict_http_status = strict_http_status
        self.session = session if session is not None else requests.Session()
        self.stop_event = stop_event

    def __str__(self) -> str:
        """Return server interface as string."""
        return f"<{self.__class__.__name__}: {self.base_url}>"

    def _check_stop(self) -> None:
        if self.stop_event is not None and self.stop_event.is_set():
            raise ProvisioningStopped("Stop requested before contacting the server")

    def _check_status(self, response: requests.Response, what: str) -> None:
        if response.ok:
            return
        if self.strict_http_status:
            raise TransportError(
                f"Server connection for {what} failed, response code: {response.status_code}"
            )
        # The body is still handed to the decoder, it will reject anything unexpected
        logger.warning(
            f"Server connection for {what} failed, response code: {response.status_code}"
        )

    def fetch_eek_chain(self) -> tuple[bytes, Mapping[str, str]]:
        """
        Fetch the raw EEK chain response body, and the response headers.

        :raises TransportError: On any HTTP or network failure
        """
        self._check_stop()
        url = self.base_url + EEK_PATH
        logger.debug(f"Fetching EEK chain from {url}")
        try:
            response = self.session.get(
                url,
                headers={"Accept": CBOR_CONTENT_TYPE},
                timeout=self.timeout.total_seconds(),
            )
            self._check_status(response, "EEK")
            body = response.content
        except requests.RequestException as exc:
            raise TransportError(f"Failed to fetch EEK from the server: {exc}") from exc
        logger.debug(f"Received EEK response {checksum_bytes2str(body)}")
        return body, response.headers

    def fetch_encryption_key(self, current: DeviceConfig) -> EncryptionKeyResponse:
        """
        Fetch encryption key material and a challenge from the server.

        The encryption key (EEK) is used by the key custodian in an ECDH computation, to
        encrypt privacy sensitive parts of the CSR bundle. The challenge lets the server check
        the freshness of the follow-up request to get keys signed.

        :param current: The device's current pool policy, used for anything the server
                        does not direct in its response
        :raises TransportError: On any HTTP or network failure
        :raises DecodeError: If the response is malformed
        """
        body, headers = self.fetch_eek_chain()
        device_config = device_config_from_headers(headers, current)
        return decode_encryption_key_response(body, device_config)

    def submit_csr(self, csr: bytes, challenge: bytes) -> bytes:
        """
        Ferry the CSR bundle produced by the key custodian to the server, return the raw response.

        The challenge is included in the request URL even though it is also part of the CSR
        bundle, so that the server can reject bad requests more easily.

        :raises TransportError: On any HTTP or network failure
        """
        self._check_stop()
        url = self.base_url + SIGN_CERTIFICATES_PATH
        logger.debug(f"Submitting CSR bundle {checksum_bytes2str(csr)} to {url}")
        try:
            response = self.session.post(
                url,
                params={"challenge": challenge.decode("utf-8", errors="replace")},
                data=csr,
                headers={
                    "Accept": CBOR_CONTENT_TYPE,
                    "Content-Type": CBOR_CONTENT_TYPE,
                },
                timeout=self.timeout.total_seconds(),
            )
            self._check_status(response, "signing")
            body = response.content
        except requests.RequestException as exc:
            raise TransportError(
                f"Failed to request signed certificates from the server: {exc}"
            ) from exc
        logger.debug(f"Received signing response {checksum_bytes2str(body)}")
        return body

    def request_signed_certificates(self, csr: bytes, challenge: bytes) -> list[bytes]:
        """
        Submit the CSR bundle and decode the certificate chains returned by the server.

        :return: One DER encoded certificate chain (leaf first) per signed key
        :raises TransportError: On any HTTP or network failure
        :raises DecodeError: If the response is malformed
        """
        return decode_signed_certificates(self.submit_csr(csr, challenge))
