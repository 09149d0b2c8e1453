#!/usr/bin/env python3
"""
wizgate CLI - verified Wiz CLI downloads and guarded scans.

Usage:
    wizgate fetch URL [--workspace DIR]
    wizgate validate COMMAND [--cli-version v0|v1]
    wizgate verify DATA SIGNATURE [--key FILE]
    wizgate digest FILE
    wizgate scan URL COMMAND [--workspace DIR] [--artifact NAME]
"""

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from wizgate import __version__
from wizgate.acquire import PUBLIC_KEY_RESOURCE, acquire_cli
from wizgate.commands import ToolVersion, apply_output_format, validate_command
from wizgate.config import load_config
from wizgate.errors import WizGateError
from wizgate.logging import configure_logging
from wizgate.results import ScanResult
from wizgate.runner import VALIDATION_FAILED_EXIT_CODE, execute
from wizgate.security.checksum import sha256_file
from wizgate.security.pgp import verify_signature_files

logger = logging.getLogger(__name__)

console = Console()

EXIT_ERROR = 1
EXIT_INVALID_COMMAND = 2


def _fail(error: Exception, code: int = EXIT_ERROR):
    console.print(f"[red]✗[/red] {escape(str(error))}", highlight=False)
    raise SystemExit(code)


@click.group()
@click.version_option(version=__version__, prog_name="wizgate")
@click.option("--config", "config_path", type=click.Path(dir_okay=False),
              help="Configuration file (default: ~/.wizgate/config.yaml)")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """wizgate - download, verify and run the Wiz CLI."""
    try:
        config = load_config(config_path)
    except WizGateError as e:
        _fail(e)
    configure_logging(config.log_level.value, verbose=verbose)
    ctx.obj = config


@main.command()
@click.argument("url")
@click.option("--workspace", "-w", type=click.Path(file_okay=False), default=".",
              show_default=True, help="Directory to install the Wiz CLI into")
@click.pass_obj
def fetch(config, url: str, workspace: str):
    """Download and verify the Wiz CLI from URL."""
    try:
        setup = acquire_cli(url, Path(workspace), config)
    except (WizGateError, OSError) as e:
        _fail(e)
    console.print(f"[green]✓[/green] Verified Wiz CLI ({setup.version.value}) at {setup.path}")


@main.command()
@click.argument("command")
@click.option("--cli-version", type=click.Choice([v.value for v in ToolVersion]),
              default=ToolVersion.CURRENT.value, show_default=True,
              help="Wiz CLI generation the command targets")
def validate(command: str, cli_version: str):
    """Check COMMAND against the allow-list without running anything."""
    version = ToolVersion(cli_version)
    try:
        tokens = validate_command(command, version)
    except WizGateError as e:
        _fail(e, EXIT_INVALID_COMMAND)
    console.print(f"[green]✓[/green] Valid {version.value} command")
    console.print(" ".join(apply_output_format(tokens, version)), markup=False, highlight=False)


@main.command()
@click.argument("data", type=click.Path(exists=True, dir_okay=False))
@click.argument("signature", type=click.Path(exists=True, dir_okay=False))
@click.option("--key", "key_path", type=click.Path(exists=True, dir_okay=False),
              help="Armored public key (default: configured or bundled release key)")
@click.pass_obj
def verify(config, data: str, signature: str, key_path: str):
    """Verify a detached OpenPGP SIGNATURE over DATA."""
    key = key_path or config.trust.public_key_path or str(PUBLIC_KEY_RESOURCE)
    try:
        valid = verify_signature_files(data, signature, key)
    except WizGateError as e:
        _fail(e)
    if not valid:
        _fail(f"Signature does not match {data}")
    console.print(f"[green]✓[/green] Good signature over {data}")


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def digest(path: str):
    """Print the SHA-256 of a file in sha256sum format."""
    try:
        value = sha256_file(path)
    except OSError as e:
        _fail(e)
    click.echo(f"{value}  {path}")


@main.command()
@click.argument("url")
@click.argument("command")
@click.option("--workspace", "-w", type=click.Path(file_okay=False), default=".",
              show_default=True, help="Directory to run the scan in")
@click.option("--artifact", default="wizcli_output.json", show_default=True,
              help="File name (inside the workspace) for the scan output")
@click.pass_obj
def scan(config, url: str, command: str, workspace: str, artifact: str):
    """Fetch the Wiz CLI from URL, then run COMMAND with it."""
    try:
        exit_code = execute(url, Path(workspace), command, artifact, config)
    except (WizGateError, OSError) as e:
        _fail(e)

    if exit_code == VALIDATION_FAILED_EXIT_CODE:
        _fail("Invalid command, scan not started", EXIT_INVALID_COMMAND)

    result = ScanResult.from_json_file(Path(workspace) / artifact)
    if result is not None:
        logger.info("Scan finished: %s", result.summary())
        _print_result(result)

    if exit_code != 0:
        console.print(f"[red]✗[/red] Wiz CLI exited with code {exit_code}")
        raise SystemExit(exit_code)


def _print_result(result: ScanResult):
    console.print(f"[bold]{escape(result.scanned_resource or 'Scan')}[/bold]: {result.status}")
    if result.scan_time:
        console.print(f"[dim]{result.scan_time}[/dim]")

    if result.analytics:
        table = Table(title="Findings")
        table.add_column("Type")
        for column in ("Critical", "High", "Medium", "Low", "Info", "Total"):
            table.add_column(column, justify="right")
        for name, counts in result.analytics.items():
            table.add_row(
                name,
                str(counts.critical_count), str(counts.high_count),
                str(counts.medium_count), str(counts.low_count),
                str(counts.info_count), str(counts.total_count),
            )
        console.print(table)

    if result.report_url:
        console.print(f"Report: {result.report_url}", markup=False)


if __name__ == "__main__":
    main()
