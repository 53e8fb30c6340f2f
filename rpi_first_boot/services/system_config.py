"""Operating-system configuration through raspi-config.

Each setting is one non-interactive raspi-config call recorded as its own
step. The hostname is derived from the board model and CPU serial so that
freshly provisioned boards can be told apart on the network.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from rpi_first_boot.domain.models import PhaseResult, ResolvedConfiguration, StepResult
from rpi_first_boot.logging import LoggerFactory
from rpi_first_boot.storage.command_runners import record_step, run_step


MODEL_PATH = Path("/proc/device-tree/model")
CPUINFO_PATH = Path("/proc/cpuinfo")
SSHD_CONFIG_PATH = Path("/etc/ssh/sshd_config")

RASPI_CONFIG = ["raspi-config", "nonint"]

log = LoggerFactory.for_system()


def read_model_number(model_path: Path = MODEL_PATH) -> str:
    """Model token from e.g. "Raspberry Pi 4 Model B Rev 1.4" -> "4"."""
    try:
        model = model_path.read_text(encoding="utf-8", errors="replace").rstrip("\x00\n")
    except OSError:
        return ""
    match = re.match(r"Raspberry Pi ([^ ]+)", model)
    return match.group(1) if match else ""


def read_cpu_serial(cpuinfo_path: Path = CPUINFO_PATH) -> str:
    """CPU serial without its first 10 (mostly zero) characters."""
    try:
        text = cpuinfo_path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""
    for line in text.splitlines():
        if line.startswith("Serial"):
            _, _, value = line.partition(":")
            return value.strip()[10:]
    return ""


def build_hostname(model: str, serial: str, tag: str = "") -> str:
    """pi<model>-<tag>-<serial>, or pi<model>-<serial> without a tag."""
    if tag:
        return f"pi{model}-{tag}-{serial}"
    return f"pi{model}-{serial}"


def disable_accept_env(sshd_config: Path = SSHD_CONFIG_PATH) -> StepResult:
    """Comment out AcceptEnv LANG LC_* to avoid locale errors over SSH."""
    name = "Avoid language setting problems when logged in through SSH"
    try:
        text = sshd_config.read_text(encoding="utf-8")
        updated = re.sub(
            r"^AcceptEnv LANG LC_\*", "#AcceptEnv LANG LC_*", text, flags=re.MULTILINE
        )
        if updated != text:
            sshd_config.write_text(updated, encoding="utf-8")
    except OSError as error:
        return record_step(StepResult.failure(name, str(error)))
    return record_step(StepResult.success(name))


def configure_system(
    config: ResolvedConfiguration,
    *,
    hostname: Optional[str] = None,
    sshd_config: Path = SSHD_CONFIG_PATH,
) -> PhaseResult:
    """Apply timezone, hostname, SSH, WiFi and locale settings."""
    result = PhaseResult("operating system configuration")

    if hostname is None:
        hostname = build_hostname(
            read_model_number(), read_cpu_serial(), config.new_hostname_tag
        )

    result.add(
        run_step("Change timezone", [*RASPI_CONFIG, "do_change_timezone", config.new_timezone])
    )
    result.add(
        run_step(f"Set hostname to {hostname}", [*RASPI_CONFIG, "do_hostname", hostname])
    )
    ssh_state = "on" if config.ssh_enabled else "off"
    result.add(
        run_step(
            f"Set SSH to {ssh_state}",
            [*RASPI_CONFIG, "do_ssh", str(config.new_ssh_setting)],
        )
    )
    result.add(
        run_step(
            "Set WiFi country",
            [*RASPI_CONFIG, "do_wifi_country", config.new_wifi_country],
        )
    )
    result.add(
        run_step(
            "Set WiFi login",
            [
                *RASPI_CONFIG,
                "do_wifi_ssid_passphrase",
                config.new_wifi_ssid,
                config.new_wifi_password,
            ],
            secrets=[config.new_wifi_password],
        )
    )
    result.add(disable_accept_env(sshd_config))
    result.add(run_step("Change locale", [*RASPI_CONFIG, "do_change_locale", config.new_locale]))
    return result
