"""Permission fixes for the operating user's home directory."""

from __future__ import annotations

import stat
from pathlib import Path

from rpi_first_boot.domain.models import PhaseResult, StepResult
from rpi_first_boot.logging import LoggerFactory
from rpi_first_boot.storage.command_runners import record_step


DEFAULT_HOME = Path("/home/pi")

EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH

log = LoggerFactory.for_system()


def clear_hidden_exec_bits(home: Path) -> StepResult:
    """Unset the executable bits of hidden regular files under ``home``."""
    name = "Unsetting executable-bits of hidden files"
    changed = 0
    try:
        for path in home.rglob(".*"):
            if path.is_symlink() or not path.is_file():
                continue
            mode = path.stat().st_mode
            if mode & EXEC_BITS:
                path.chmod(stat.S_IMODE(mode) & ~EXEC_BITS)
                changed += 1
    except OSError as error:
        return record_step(StepResult.failure(name, str(error)))
    return record_step(StepResult.success(name, f"{changed} file(s) changed"))


def secure_ssh_keys(home: Path) -> StepResult:
    """Make authorized_keys 0600 and .ssh 0700 if keys are installed."""
    name = "Making authorized ssh keys private"
    ssh_dir = home / ".ssh"
    keys = ssh_dir / "authorized_keys"
    if not keys.is_file():
        return record_step(StepResult.skipped(name, "no authorized_keys"))
    try:
        keys.chmod(0o600)
        ssh_dir.chmod(0o700)
    except OSError as error:
        return record_step(StepResult.failure(name, str(error)))
    return record_step(StepResult.success(name))


def setup_user_profile(home: Path = DEFAULT_HOME) -> PhaseResult:
    result = PhaseResult("user profile setup")
    if not home.is_dir():
        log.warning(f"Home directory {home} does not exist")
        result.add(record_step(StepResult.skipped("User profile setup", f"{home} missing")))
        return result
    result.add(clear_hidden_exec_bits(home))
    result.add(secure_ssh_keys(home))
    return result
