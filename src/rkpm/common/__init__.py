"""Data model, configuration and settings shared by all of rkpm."""

__author__ = "ft"
