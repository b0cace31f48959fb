"""Sub-package dealing with sizing of the attestation key pool."""
from rkpm.pool.estimator import PoolDeficit, PoolNeedEstimator  # noqa

__author__ = "ft"
