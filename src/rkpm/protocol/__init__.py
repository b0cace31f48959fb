"""Sub-package dealing with the provisioning server protocol."""
from rkpm.protocol.cbor import (  # noqa
    decode_encryption_key_response,
    decode_signed_certificates,
)
from rkpm.protocol.client import ServerInterface  # noqa

__author__ = "ft"
