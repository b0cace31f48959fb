"""Sub-package driving the provisioning cycle against the key custodian and the server."""

__author__ = "ft"
