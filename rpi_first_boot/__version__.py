"""Version information for rpi-first-boot."""

__version__ = "1.0.0"
