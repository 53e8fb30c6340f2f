"""Configuration resolution for provisioning runs."""
