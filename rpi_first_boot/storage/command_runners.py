"""Command execution helpers mapping exit status to typed step results."""

from __future__ import annotations

import subprocess
from typing import Optional, Sequence

from rpi_first_boot.domain.models import StepResult, StepStatus
from rpi_first_boot.logging import LoggerFactory
from rpi_first_boot.storage.exceptions import CommandFailedError


log = LoggerFactory.for_system()
output_log = LoggerFactory.for_command()


def _display(command: Sequence[str], secrets: Sequence[str] = ()) -> str:
    return " ".join("***" if part in secrets else part for part in command)


def run_command(
    command: Sequence[str],
    input_text: Optional[str] = None,
    secrets: Sequence[str] = (),
) -> subprocess.CompletedProcess:
    """Run a command to completion without raising on a non-zero exit.

    Arguments listed in ``secrets`` are masked in the log.
    """
    log.debug(f"Running command: {_display(command, secrets)}")
    result = subprocess.run(
        list(command),
        input=input_text,
        text=True,
        capture_output=True,
    )
    if result.stdout:
        output_log.trace(f"stdout: {result.stdout.strip()}")
    if result.stderr:
        output_log.trace(f"stderr: {result.stderr.strip()}")
    log.debug(f"Command completed with return code {result.returncode}")
    return result


def _failure_message(result: subprocess.CompletedProcess) -> str:
    stderr = (result.stderr or "").strip()
    stdout = (result.stdout or "").strip()
    message = stderr or stdout or "Command failed"
    return message.splitlines()[-1]


def run_checked_command(command: Sequence[str], input_text: Optional[str] = None) -> str:
    """Run a command and raise CommandFailedError if it fails."""
    try:
        result = run_command(command, input_text=input_text)
    except OSError as error:
        raise CommandFailedError(command, -1, str(error)) from error
    if result.returncode != 0:
        raise CommandFailedError(command, result.returncode, _failure_message(result))
    return result.stdout


def run_step(
    name: str,
    command: Sequence[str],
    input_text: Optional[str] = None,
    secrets: Sequence[str] = (),
) -> StepResult:
    """Run one provisioning step and log it as OK or FAILED.

    A missing binary counts as a failed step rather than an exception so
    that the next step still runs.
    """
    try:
        result = run_command(command, input_text=input_text, secrets=secrets)
    except OSError as error:
        return record_step(StepResult.failure(name, str(error)))
    if result.returncode != 0:
        detail = f"rc={result.returncode}: {_failure_message(result)}"
        return record_step(StepResult.failure(name, detail))
    return record_step(StepResult.success(name))


def record_step(result: StepResult) -> StepResult:
    """Log a step outcome in the run transcript."""
    message = f"{result.name}: {result.status.value}"
    if result.detail:
        message += f" ({result.detail})"
    if result.status is StepStatus.OK:
        log.success(message)
    elif result.status is StepStatus.SKIPPED:
        log.info(message)
    else:
        log.error(message)
    return result
