"""Unattended first-boot provisioning for Raspberry Pi SD cards."""

from .__version__ import __version__


__all__ = ["__version__"]
