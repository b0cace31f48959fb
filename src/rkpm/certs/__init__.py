"""Sub-package dealing with certificate chains returned by the provisioning server."""
from rkpm.certs.chain import load_certificate_chain, process_chain  # noqa

__author__ = "ft"
