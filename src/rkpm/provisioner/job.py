"""Scheduler-facing wrapper running a provisioning cycle on a worker thread."""

import logging
import threading
from collections.abc import Callable

from rkpm.common.data import CycleOutcome
from rkpm.common.errors import ConfigurationError
from rkpm.provisioner.cycle import Provisioner

__author__ = "ft"

logger = logging.getLogger(__name__)

# Called with wants_reschedule when the cycle is done
JobFinishedCallback = Callable[[bool], None]


class ProvisioningJob:
    """
    A provisioning job, as started and stopped by the scheduler.

    The scheduler makes sure only one job runs at a time. It calls start() when it is time to
    check the attestation key pool, and may call stop() at any time to have the running cycle
    give up at its next network call or key generation pause.
    """

    def __init__(self, provisioner: Provisioner, job_finished: JobFinishedCallback):
        self.provisioner = provisioner
        self.job_finished = job_finished
        self.outcome: CycleOutcome | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> bool:
        """Start the provisioning cycle. Return True since work continues in the background."""
        logger.debug("Starting provisioning job")
        self.provisioner.stop_event.clear()
        self.outcome = None
        self._thread = threading.Thread(
            target=self._run, name="rkpm-provisioner", daemon=True
        )
        self._thread.start()
        return True

    def stop(self) -> bool:
        """Stop the running cycle. Return False, the scheduler should not reschedule."""
        self.provisioner.stop()
        return False

    def join(self, timeout: float | None = None) -> CycleOutcome | None:
        """Wait for the running cycle to finish, return its outcome."""
        if self._thread is not None:
            self._thread.join(timeout)
        return self.outcome

    def _run(self) -> None:
        try:
            self.outcome = self.provisioner.run_cycle()
        except ConfigurationError as exc:
            logger.error(f"Provisioning job misconfigured, not rescheduling: {exc}")
            self.job_finished(False)
            return
        except Exception:
            # Reschedule, the next cycle starts over from the persisted settings
            logger.exception("Provisioning job failed unexpectedly")
            self.job_finished(True)
            return
        logger.info(f"Provisioning job finished: {self.outcome.name}")
        self.job_finished(self.outcome.wants_reschedule)
