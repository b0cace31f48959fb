"""Command line tools."""

__author__ = "ft"
