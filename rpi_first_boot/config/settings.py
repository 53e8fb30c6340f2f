"""Resolution of operator parameters for a provisioning run.

The operator drops a line-oriented key/value file on the boot partition:

    # size of the extra FAT32 partition; 0 = none, minimum 32 for FAT32
    new_partition_size_MB=100
    new_partition_label='logs'
    new_wifi_ssid = "Our network"   # trailing comments are allowed

Parsing never fails: blank lines, comments and malformed lines are skipped,
and every key the file does not set keeps its built-in default.
"""

from __future__ import annotations

import os
import re
from dataclasses import fields
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

from rpi_first_boot.domain.models import ResolvedConfiguration
from rpi_first_boot.logging import LoggerFactory


CONFIG_PATH = Path(
    os.environ.get("RPI_FIRST_BOOT_CONFIG_PATH", "/boot/one-time-script.conf")
)

COMMENT_MARKER = "#"

DEFAULT_SETTINGS: dict[str, Any] = {
    "new_partition_size_MB": 100,
    "new_partition_label": "logs",
    "new_locale": "en_GB.UTF-8",
    "new_timezone": "Europe/London",
    "new_hostname_tag": "",
    "new_ssh_setting": 0,
    "new_wifi_country": "GB",
    "new_wifi_ssid": "Our network",
    "new_wifi_password": "Secret",
    "new_boot_behaviour": "B4",
    "sd_card_number": "XX",
}

# File keys that do not match the field name of ResolvedConfiguration
_FIELD_NAMES = {"new_partition_size_MB": "new_partition_size_mb"}

# Keys whose value may not be blank; the label becomes the mount point /<label>
_NON_BLANK_KEYS = {"new_partition_label"}

# key, then either "=" (optionally padded with blanks) or a run of blanks
_ASSIGNMENT = re.compile(r"^([^=\s]+)(?:[ \t]*=[ \t]*|[ \t]+)(.*)$")

log = LoggerFactory.for_config()


def strip_quotes(value: str) -> str:
    """Remove one layer of matching single or double quotes."""
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def clean_value(raw: str) -> str:
    """Drop an inline comment, trailing blanks and one layer of quotes."""
    value = raw.split(COMMENT_MARKER, 1)[0]
    value = value.rstrip()
    return strip_quotes(value)


def parse_line(line: str) -> Optional[tuple[str, str]]:
    """Parse one config line into (key, value), or None if it is skipped."""
    stripped = line.strip()
    if not stripped or stripped.startswith(COMMENT_MARKER):
        return None
    match = _ASSIGNMENT.match(stripped)
    if not match:
        return None
    return match.group(1), clean_value(match.group(2))


def parse_config_text(text: str) -> dict[str, str]:
    """Parse the whole file; later assignments win."""
    values: dict[str, str] = {}
    for number, line in enumerate(text.splitlines(), start=1):
        parsed = parse_line(line)
        if parsed is None:
            if line.strip() and not line.strip().startswith(COMMENT_MARKER):
                log.debug(f"Skipping malformed config line {number}: {line.strip()!r}")
            continue
        key, value = parsed
        values[key] = value
    return values


def _coerce(key: str, value: Any, default: Any) -> Any:
    if isinstance(default, bool) or not isinstance(default, int):
        value = str(value)
        if key in _NON_BLANK_KEYS and not value.strip():
            log.warning(f"Ignoring blank value for {key}, using {default!r}")
            return default
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        log.warning(f"Ignoring non-numeric value {value!r} for {key}, using {default}")
        return default


def resolve_configuration(
    file_contents: Optional[str],
    defaults: Mapping[str, Any] = DEFAULT_SETTINGS,
) -> ResolvedConfiguration:
    """Merge built-in defaults with the contents of a config file.

    Args:
        file_contents: Text of the config file, or None when there is no file
        defaults: Built-in values keyed by config file key

    Returns:
        Immutable configuration for the run
    """
    parsed = parse_config_text(file_contents) if file_contents else {}

    field_names = {item.name for item in fields(ResolvedConfiguration)}
    values: dict[str, Any] = {}
    extras: dict[str, str] = {}

    for key, default in defaults.items():
        field_name = _FIELD_NAMES.get(key, key)
        if field_name not in field_names:
            continue
        if key in parsed:
            values[field_name] = _coerce(key, parsed[key], default)
        else:
            values[field_name] = default

    for key, value in parsed.items():
        if key not in defaults:
            extras[key] = value

    if extras:
        log.debug(f"Unrecognised config keys kept as extras: {sorted(extras)}")

    return ResolvedConfiguration(extras=MappingProxyType(extras), **values)


def load_configuration(path: Optional[Path] = None) -> ResolvedConfiguration:
    """Resolve the configuration from a file on disk, falling back to defaults."""
    path = path or CONFIG_PATH
    if not path.exists():
        log.info("Using default parameters")
        return resolve_configuration(None)
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as error:
        log.warning(f"Cannot read {path}: {error}; using default parameters")
        return resolve_configuration(None)
    config = resolve_configuration(text)
    log.info(f"Read parameters from {path}")
    return config
