"""Command-line inspection and verification of WCAF bundles and attestations."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click

from .attestation import verify_attestation
from .bundle import load_bundle_json, verify_bundle
from .errors import BundleFormatError
from .summary import format_bundle_summary


def _read_bundle(path: Path) -> dict:
    try:
        return load_bundle_json(path.read_text(encoding="utf-8"))
    except BundleFormatError as exc:
        raise click.ClickException(f"{path}: {exc}") from exc


def _read_key(path: Path | None) -> str | None:
    if path is None:
        return None
    return path.read_text(encoding="utf-8")


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
def main(log_level: str) -> None:
    """Inspect and verify tamper-evident audit bundles."""
    logging.basicConfig(level=log_level.upper(), stream=sys.stderr)


@main.command("verify-bundle")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--public-key",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="PEM public key for the bundle signature.",
)
@click.option("--json", "as_json", is_flag=True, default=False)
def verify_bundle_cmd(path: Path, public_key: Path | None, as_json: bool) -> None:
    """Re-verify a bundle's chain and signature. Exits 1 if not ok."""
    bundle = _read_bundle(path)
    result = verify_bundle(bundle, _read_key(public_key))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        signature = result.bundle_signature_verified
        click.echo(f"bundle:    {path}")
        click.echo(f"version:   {'ok' if result.bundle_version_ok else 'UNSUPPORTED'}")
        click.echo(f"chain:     {'verified' if result.chain_verified else 'BROKEN'}")
        click.echo(
            "signature: "
            + {None: "not checked", True: "verified", False: "INVALID"}[signature]
        )
        click.echo(f"attested:  {'yes' if result.attestation_present else 'no'}")
        for problem in result.problems:
            click.echo(f"  - {json.dumps(problem.to_dict(), sort_keys=True)}")
        click.echo("OK" if result.ok else "FAILED")

    sys.exit(0 if result.ok else 1)


@main.command("summary")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def summary_cmd(path: Path) -> None:
    """Print a one-line summary of a bundle (no verification)."""
    click.echo(format_bundle_summary(_read_bundle(path)))


@main.command("verify-attestation")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--public-key",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="PEM public key of the attesting institution.",
)
def verify_attestation_cmd(path: Path, public_key: Path) -> None:
    """Check an attestation document's signature. Exits 1 if invalid."""
    try:
        attestation = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"{path}: not valid JSON ({exc})") from exc

    valid = verify_attestation(attestation, _read_key(public_key))
    click.echo("VALID" if valid else "INVALID")
    sys.exit(0 if valid else 1)


if __name__ == "__main__":
    main()
