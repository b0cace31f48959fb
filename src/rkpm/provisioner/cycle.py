"""
One provisioning cycle, from start to finish.

The cycle fetches encryption key material and a challenge from the provisioning server,
tops up the attestation key pool through the key custodian, has the custodian bundle the
unsigned keys up in a CSR bundle, ferries that to the server and hands the signed certificate
chains that come back to the custodian for storage.

The cycle is run by an external scheduler, which guarantees that only one cycle is active at
a time and honours the outcome (reschedule soon, or not) reported back to it.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

import requests

from rkpm.certs.chain import process_chain
from rkpm.common.config import RKPMConfig
from rkpm.common.data import (
    CycleOutcome,
    DeviceConfig,
    EncryptionKeyResponse,
    SecurityLevel,
)
from rkpm.common.errors import (
    ChainValidationError,
    ConfigurationError,
    CustodianError,
    DecodeError,
    ProvisioningStopped,
    SettingsError,
    TransportError,
)
from rkpm.common.parse_utils import epoch_millis
from rkpm.common.settings import ProvisioningSettings, SettingsStore
from rkpm.pool.estimator import PoolNeedEstimator
from rkpm.protocol.client import ServerInterface
from rkpm.provisioner.custodian import KeyCustodian

__author__ = "ft"

logger = logging.getLogger(__name__)


def device_config_from_settings(settings: ProvisioningSettings) -> DeviceConfig:
    """The pool policy currently in effect, used for anything the server doesn't direct."""
    return DeviceConfig(
        extra_keys_allowed=settings.extra_signed_keys_available,
        refresh_interval=settings.expiring_by,
        provisioning_url=settings.provisioning_url,
    )


class Provisioner:
    """Drive provisioning of attestation certificates."""

    def __init__(
        self,
        custodian: KeyCustodian,
        settings: SettingsStore,
        config: RKPMConfig | None = None,
        session: requests.Session | None = None,
        stop_event: threading.Event | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.custodian = custodian
        self.settings = settings
        self.config = config if config is not None else RKPMConfig()
        self.session = session if session is not None else requests.Session()
        self.stop_event = stop_event if stop_event is not None else threading.Event()
        self.clock = clock

    def stop(self) -> None:
        """Ask a running cycle to stop at the next opportunity."""
        logger.info("Stop of provisioning requested")
        self.stop_event.set()

    def _check_stop(self) -> None:
        if self.stop_event.is_set():
            raise ProvisioningStopped("Stop requested")

    def _server(self, settings: ProvisioningSettings) -> ServerInterface:
        return ServerInterface(
            base_url=settings.provisioning_url,
            timeout=self.config.server.request_timeout,
            strict_http_status=self.config.server.strict_http_status,
            session=self.session,
            stop_event=self.stop_event,
        )

    def run_cycle(self) -> CycleOutcome:
        """
        Run one provisioning cycle.

        Failures talking to the server or the key custodian are logged and reported as
        CycleOutcome.RETRY. Anything already stored with the custodian stays stored.

        :raises ConfigurationError: On caller errors, which are never retried
        """
        # Settings are read once, changes made during the cycle take effect on the next one
        try:
            settings = self.settings.load()
        except SettingsError as exc:
            return self._reset_settings(exc)
        try:
            return self._run(settings)
        except ProvisioningStopped as exc:
            logger.warning(f"Provisioning cycle stopped: {exc}")
            return CycleOutcome.RETRY
        except (TransportError, DecodeError, CustodianError) as exc:
            logger.error(f"Provisioning cycle failed: {exc}")
            self._record_failure()
            return self._retry()
        except ChainValidationError as exc:
            logger.error(f"Provisioning cycle aborted on bad certificate chain: {exc}")
            return self._retry()
        except SettingsError as exc:
            return self._reset_settings(exc)

    def _reset_settings(self, exc: SettingsError) -> CycleOutcome:
        logger.error(f"Unusable provisioning settings, resetting them: {exc}")
        self.settings.clear_all()
        return CycleOutcome.RETRY

    def _record_failure(self) -> None:
        failures = self.settings.increment_failure_counter()
        logger.debug(f"Failure counter now {failures}")

    def _retry(self) -> CycleOutcome:
        # A wedged configuration should not keep the device failing forever
        if self.settings.failure_counter > self.config.policy.failure_maximum:
            logger.warning(
                f"More than {self.config.policy.failure_maximum} failures in a row, "
                "resetting settings"
            )
            self.settings.clear_all()
        return CycleOutcome.RETRY

    def _run(self, settings: ProvisioningSettings) -> CycleOutcome:
        server = self._server(settings)
        current = device_config_from_settings(settings)

        if settings.extra_signed_keys_available == 0:
            # Provisioning is disabled. Check with the server if it's time to turn it back on.
            check = server.fetch_encryption_key(current)
            if check.extra_keys_allowed == 0:
                logger.info("Provisioning is disabled, and the server says it still is")
                return CycleOutcome.COMPLETED
            logger.info(
                f"Server re-enabled provisioning ({check.extra_keys_allowed} extra keys)"
            )

        response = server.fetch_encryption_key(current)
        self.settings.reset_failure_counter()
        self.settings.set_device_config(
            extra_keys=response.extra_keys_allowed,
            expiring_by=response.refresh_interval,
            url=response.provisioning_url,
        )

        if response.extra_keys_allowed == 0:
            # The server has turned provisioning off for this device
            deleted = self.custodian.delete_all_keys()
            logger.warning(f"Provisioning disabled by the server, deleted {deleted} key(s)")
            return CycleOutcome.DISABLED

        impl_infos = self.custodian.get_implementation_info()
        if not impl_infos:
            logger.error("No security levels reported by the key custodian")
            return CycleOutcome.RETRY

        estimator = PoolNeedEstimator(
            self.custodian,
            pause=self.config.policy.key_generation_pause,
            test_mode=self.config.policy.test_mode,
            stop_event=self.stop_event,
        )
        expiring_by = int(self.clock() * 1000) + epoch_millis(settings.expiring_by)
        for info in impl_infos:
            needed = estimator.keys_needed(
                expiring_by, response.extra_keys_allowed, info.security_level
            )
            if needed < 1:
                logger.info(f"No keys need signing for {info.security_level.name}")
                continue
            self.provision_certs(needed, info.security_level, response, server)
        return CycleOutcome.COMPLETED

    def provision_certs(
        self,
        num_keys: int,
        security_level: SecurityLevel,
        key_response: EncryptionKeyResponse | None = None,
        server: ServerInterface | None = None,
    ) -> int:
        """
        Get `num_keys' keys signed by the server and stored with the key custodian.

        :param num_keys: The number of keys to be signed. The custodian does a best-effort
                         to cover the number requested, limited by the number of unsigned
                         keys it has at the time of calling.
        :param key_response: Encryption key material and challenge to use. Fetched from
                             the server if not provided.
        :return: Number of certificate chains stored
        :raises ConfigurationError: If num_keys is less than one. Raised before anything
                                    else is done.
        """
        if num_keys < 1:
            raise ConfigurationError(
                f"Request at least 1 key to be signed. Num requested: {num_keys}"
            )
        if server is None or key_response is None:
            settings = self.settings.load()
            if server is None:
                server = self._server(settings)
            if key_response is None:
                key_response = server.fetch_encryption_key(
                    device_config_from_settings(settings)
                )

        csr = self.custodian.generate_csr(
            self.config.policy.test_mode,
            num_keys,
            key_response.key_material,
            key_response.challenge,
            security_level,
        )
        if not csr:
            raise CustodianError("Key custodian failed to generate a CSR bundle")
        logger.info(f"Requesting {num_keys} key(s) to be signed for {security_level.name}")
        chains = server.request_signed_certificates(csr, key_response.challenge)
        return self._store_chains(chains, security_level)

    def _store_chains(self, chains: list[bytes], security_level: SecurityLevel) -> int:
        stored = 0
        for idx, chain in enumerate(chains):
            try:
                record = process_chain(
                    chain,
                    security_level,
                    strict_point_format=self.config.policy.strict_point_format,
                )
            except ChainValidationError as exc:
                if self.config.policy.abort_batch_on_invalid_chain:
                    logger.error(
                        f"Bad certificate chain {idx + 1}/{len(chains)}, "
                        f"{stored} stored before it are kept"
                    )
                    raise
                logger.error(f"Skipping bad certificate chain {idx + 1}/{len(chains)}: {exc}")
                continue
            self._check_stop()
            self.custodian.provision_cert_chain(
                record.raw_public_key,
                record.chain,
                record.expiration_epoch_millis,
                record.security_level,
            )
            stored += 1
        logger.info(
            f"Provisioned {stored} of {len(chains)} certificate chain(s) "
            f"for {security_level.name}"
        )
        return stored
