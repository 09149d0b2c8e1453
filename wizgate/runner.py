#!/usr/bin/env python3
"""
wizgate scan runner

Runs a validated Wiz CLI invocation inside its workspace. stdout is
captured to the scan output file and copied to the requested artifact;
stderr is captured separately and echoed to the log when the scan fails.
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Mapping, Optional, Union

from wizgate.acquire import CliSetup, acquire_cli, parse_cli_url
from wizgate.commands import build_scan_arguments, validate_command
from wizgate.config import WizGateConfig
from wizgate.errors import ValidationError
from wizgate.logging import sanitize_for_log

logger = logging.getLogger(__name__)

VALIDATION_FAILED_EXIT_CODE = -1


def scan_arguments(user_input: str, setup: CliSetup) -> List[str]:
    """argv for *setup*: absolute executable path, user tokens, output flag."""
    return build_scan_arguments(user_input, str(setup.path.resolve()), setup.version)


def resolve_artifact(workspace: Path, artifact_name: str) -> Path:
    """Artifact path inside *workspace*.

    Raises:
        ValidationError: If the name is empty or resolves outside the workspace.
    """
    if not artifact_name or not artifact_name.strip():
        raise ValidationError("Artifact name must not be empty")
    root = workspace.resolve()
    target = (root / artifact_name).resolve()
    if target == root or not target.is_relative_to(root):
        raise ValidationError(f"Artifact path escapes the workspace: {artifact_name}")
    return target


def copy_output_to_artifact(output_file: Path, workspace: Path, artifact_name: str) -> Path:
    target = resolve_artifact(workspace, artifact_name)
    if target != output_file.resolve():
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(output_file, target)
    logger.debug("Copied scan output to %s", target)
    return target


def run_scan(
    setup: CliSetup,
    user_input: str,
    workspace: Union[str, Path],
    artifact_name: str,
    config: Optional[WizGateConfig] = None,
    env: Optional[Mapping[str, str]] = None,
) -> int:
    """Validate and run one scan.

    Returns:
        The scanner's exit code, or VALIDATION_FAILED_EXIT_CODE when the
        command is rejected. Nothing is started in that case.
    """
    config = config or WizGateConfig()
    workspace = Path(workspace)

    try:
        args = scan_arguments(user_input, setup)
        resolve_artifact(workspace, artifact_name)
    except ValidationError as e:
        logger.error("Command validation failed: %s", e)
        return VALIDATION_FAILED_EXIT_CODE

    output_file = workspace / config.scan.output_filename
    error_file = workspace / config.scan.error_filename

    logger.info("Executing command: %s", sanitize_for_log(" ".join(args)))
    with open(output_file, "wb") as stdout, open(error_file, "wb") as stderr:
        completed = subprocess.run(
            args,
            cwd=workspace,
            env=dict(env) if env is not None else None,
            stdout=stdout,
            stderr=stderr,
            check=False,
        )
    exit_code = completed.returncode

    if exit_code != 0:
        logger.error("Scan failed with exit code %d", exit_code)
        errors = error_file.read_text(encoding="utf-8", errors="replace").strip()
        if errors:
            logger.error("Scan error output:\n%s", errors)

    copy_output_to_artifact(output_file, workspace, artifact_name)
    return exit_code


def execute(
    url: str,
    workspace: Union[str, Path],
    user_input: str,
    artifact_name: str,
    config: Optional[WizGateConfig] = None,
) -> int:
    """Acquire the Wiz CLI from *url* and run one scan with it.

    The command is validated against the URL's CLI version before anything
    is downloaded.
    """
    parsed = parse_cli_url(url)
    try:
        validate_command(user_input, parsed.version)
    except ValidationError as e:
        logger.error("Command validation failed: %s", e)
        return VALIDATION_FAILED_EXIT_CODE

    setup = acquire_cli(url, workspace, config)
    return run_scan(setup, user_input, workspace, artifact_name, config)
