"""Remote Key Provisioning Manager."""

__author__ = "ft"
