"""Shared pytest configuration for the Sham test suite."""

from sham.pytest_plugin import sham, sham_factory  # noqa: F401

pytest_plugins = ["pytester"]
