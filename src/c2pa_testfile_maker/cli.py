"""CLI entry point for c2pa-testfile-maker."""

from __future__ import annotations

import sys

import click

from c2pa_testfile_maker import registry
from c2pa_testfile_maker.core import run_pipeline
from c2pa_testfile_maker.logs import LOG_LEVELS, configure_logging
from c2pa_testfile_maker.models import SigningResult, VerificationReport

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _echo_verification(report: VerificationReport) -> None:
    if report.valid:
        click.echo("Verification: VALID")
    else:
        click.echo(f"Verification: INVALID: {report.error}")
    if report.active_manifest:
        click.echo(f"  Manifest : {report.active_manifest}")
    for finding in report.findings:
        detail = f" ({finding.explanation})" if finding.explanation else ""
        click.echo(f"  [{finding.code}]{detail}")


def _exit_with(result: SigningResult) -> None:
    if result.failure is not None:
        failure = result.failure
        click.echo(f"Error [{failure.stage}]: {failure.describe()}", err=True)
        sys.exit(int(result.exit_code))


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="c2pa-testfile-maker")
def main() -> None:
    """C2PA Testfile Maker: embed signed C2PA manifests into media assets."""


@main.command("sign")
@click.option(
    "--manifest",
    "-m",
    "manifest_path",
    required=True,
    metavar="FILE",
    help="Path to the JSON manifest definition.",
)
@click.option(
    "--input",
    "-i",
    "input_path",
    required=True,
    metavar="FILE",
    help="Path to the input media asset (JPEG, PNG, WebP, ...).",
)
@click.option(
    "--output",
    "-o",
    "output_path",
    required=True,
    metavar="PATH",
    help="Output file, or an existing directory to write <input name> into.",
)
@click.option(
    "--cert",
    "-c",
    "cert_path",
    required=True,
    metavar="FILE",
    help="Path to the PEM certificate chain.",
)
@click.option(
    "--key",
    "-k",
    "key_path",
    required=True,
    metavar="FILE",
    help="Path to the PEM private key.",
)
@click.option(
    "--algorithm",
    "-a",
    default="es256",
    show_default=True,
    metavar="ALG",
    help=f"Signing algorithm ({', '.join(registry.supported_algorithms())}).",
)
@click.option("--verify", is_flag=True, help="Re-read and verify the signed output.")
@click.option(
    "--tsa-url",
    default=None,
    metavar="URL",
    help="RFC 3161 timestamp authority URL.",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="warning",
    show_default=True,
)
@click.option("--json-logs", is_flag=True, help="Emit log events as JSON lines.")
def sign_command(
    manifest_path: str,
    input_path: str,
    output_path: str,
    cert_path: str,
    key_path: str,
    algorithm: str,
    verify: bool,
    tsa_url: str | None,
    log_level: str,
    json_logs: bool,
) -> None:
    """Sign an asset with a manifest and write the result."""
    configure_logging(log_level, json_logs)

    click.echo("Creating C2PA manifest...")
    click.echo(f"  Input    : {input_path}")
    click.echo(f"  Output   : {output_path}")
    click.echo(f"  Algorithm: {algorithm}")

    result = run_pipeline(
        manifest_path=manifest_path,
        input_path=input_path,
        output_path=output_path,
        cert_path=cert_path,
        key_path=key_path,
        algorithm=algorithm,
        verify=verify,
        tsa_url=tsa_url,
    )

    if result.output_path is not None:
        click.echo("Successfully created and embedded C2PA manifest")
        click.echo(f"  Output file: {result.output_path}")
    if result.verification is not None:
        _echo_verification(result.verification)
    _exit_with(result)


@main.command("algorithms")
def algorithms_command() -> None:
    """List the supported signing algorithms."""
    for spec in registry.specs():
        click.echo(
            f"{spec.identifier:<8} {spec.key_requirement.describe():<22} {spec.hash_name}"
        )


if __name__ == "__main__":
    main()
