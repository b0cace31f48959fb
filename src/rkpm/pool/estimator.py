"""
Attestation key pool sizing.

Enough keys is defined by checking how many keys are currently assigned to apps, and making
sure there are signed keys to cover those plus a buffer of extra keys directed by the server,
once the keys expiring soon are gone. This allows devices to dynamically resize their key
pools as apps using attestation come and go.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import timedelta

from rkpm.common.data import PoolStatus, SecurityLevel
from rkpm.common.errors import ProvisioningStopped
from rkpm.provisioner.custodian import KeyCustodian

__author__ = "ft"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoolDeficit:
    """The quantities derived from a pool status."""

    unattested: int
    valid: int
    in_use: int
    target: int

    @classmethod
    def from_pool(cls, pool: PoolStatus, extra_keys: int) -> "PoolDeficit":
        in_use = pool.attested - pool.unassigned
        return cls(
            unattested=pool.total - pool.attested,
            valid=pool.attested - pool.expiring,
            in_use=in_use,
            target=in_use + extra_keys,
        )

    def keys_to_generate(self) -> int:
        """Number of new key pairs needed to reach the target."""
        return max(0, self.target - self.unattested - self.valid)

    def keys_to_sign(self, generated: int) -> int:
        """Number of keys needing signing, once `generated' new key pairs exist."""
        if self.target - self.valid > 0:
            return generated + self.unattested
        return 0


class PoolNeedEstimator:
    """Work out how many keys need signing, generating new key pairs as needed."""

    def __init__(
        self,
        custodian: KeyCustodian,
        pause: timedelta = timedelta(seconds=1),
        test_mode: bool = False,
        stop_event: threading.Event | None = None,
    ):
        self.custodian = custodian
        self.pause = pause
        self.test_mode = test_mode
        self.stop_event = stop_event if stop_event is not None else threading.Event()

    def _throttle(self) -> None:
        if self.stop_event.wait(self.pause.total_seconds()):
            raise ProvisioningStopped("Stop requested during key generation")

    def estimate(
        self, pool: PoolStatus, extra_keys: int, security_level: SecurityLevel
    ) -> int:
        """
        Generate the key pairs missing from the pool, and return how many keys need signing.

        :param pool: Pool status, counting keys expiring before the expiration horizon
        :param extra_keys: Number of signed keys to keep available beyond the ones in use
        """
        deficit = PoolDeficit.from_pool(pool, extra_keys)
        logger.debug(
            f"Pool {security_level.name}: {pool}, {deficit}, "
            f"{deficit.keys_to_generate()} key pair(s) to generate"
        )
        generated = 0
        while generated + deficit.unattested + deficit.valid < deficit.target:
            if self.stop_event.is_set():
                raise ProvisioningStopped("Stop requested during key generation")
            self.custodian.generate_key_pair(self.test_mode, security_level)
            generated += 1
            # An empty pool means the device is being brought online for the first time,
            # prioritise getting it provisioned
            if pool.total != 0:
                self._throttle()
        if generated:
            logger.info(f"Generated {generated} key pair(s) for {security_level.name}")
        return deficit.keys_to_sign(generated)

    def keys_needed(
        self, expiring_by: int, extra_keys: int, security_level: SecurityLevel
    ) -> int:
        """Fetch the pool status for `security_level' from the custodian, then estimate()."""
        pool = self.custodian.get_pool_status(expiring_by, security_level)
        return self.estimate(pool, extra_keys, security_level)
