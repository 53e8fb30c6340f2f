"""Provisioning phases built on top of the storage layer."""
