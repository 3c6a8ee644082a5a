import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from slsa_builder import __version__
from slsa_builder.build import BuildExecutor
from slsa_builder.codec import encode_list
from slsa_builder.config import parse_config
from slsa_builder.context import run_context_from_env
from slsa_builder.errors import ContextDecodeError, SubprocessError
from slsa_builder.identity import IdentityProvider
from slsa_builder.provenance import generate_provenance, write_provenance
from slsa_builder.settings import (
    DEFAULT_IDENTITY_TOKEN_ENV,
    GITHUB_CONTEXT_ENV,
    GITHUB_OUTPUT_ENV,
    SigstoreEndpoints,
)
from slsa_builder.signing import DSSESigner
from slsa_builder.transparency import RekorTransparencyAnchor

app = typer.Typer(name="slsa-builder", help="SLSA provenance builder for GitHub Actions")
console = Console()
_stderr_console = Console(file=sys.stderr)

logging.basicConfig(
    format="%(message)s", datefmt="[%X]", handlers=[RichHandler(console=_stderr_console)]
)
_logger = logging.getLogger(__name__)

# Configure the package logger only, so third-party libraries stay quiet.
_package_logger = logging.getLogger("slsa_builder")
_package_logger.setLevel(os.environ.get("SLSA_BUILDER_LOGLEVEL", "INFO").upper())


def _emit(payload: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps(payload, sort_keys=True))
        return
    console.print_json(data=payload)


def _set_output(name: str, value: str) -> None:
    output_file = os.environ.get(GITHUB_OUTPUT_ENV)
    if output_file:
        with Path(output_file).open("a", encoding="utf-8") as f:
            f.write(f"{name}={value}\n")
        return
    typer.echo(f"::set-output name={name}::{value}")


@app.command()
def build(
    config: str = typer.Argument(..., help="Path to the build configuration YAML"),
    env_args: str = typer.Argument(
        "", help="Comma-separated NAME:VALUE assignments for declared variables"
    ),
    dry: bool = typer.Option(False, "--dry", help="Resolve the build without running it"),
    compiler: Optional[str] = typer.Option(
        None, help="Compiler path (default: first command token looked up on PATH)"
    ),
    json_output: bool = typer.Option(False, "--json", help="Deterministic JSON output"),
):
    """Resolve and run the configured compiler step."""
    try:
        cfg = parse_config(config)
        _logger.info("build configuration: %s", cfg.model_dump())
        executor = BuildExecutor(cfg, compiler=compiler)
        executor.set_arg_env(env_args)
        resolved = executor.run(dry_run=dry)
        if dry:
            _set_output("command", encode_list(resolved.command))
            _set_output("env", encode_list(resolved.env))
        _emit(
            {
                "ok": True,
                "dry_run": dry,
                "command": resolved.command,
                "env": resolved.env,
            },
            json_output,
        )
    except SubprocessError as e:
        _emit({"ok": False, "error": str(e), "command": "build"}, json_output)
        raise typer.Exit(code=e.returncode or 1)
    except Exception as e:
        _emit({"ok": False, "error": str(e), "command": "build"}, json_output)
        raise typer.Exit(code=1)


@app.command()
def provenance(
    binary_name: str = typer.Option(..., help="Name of the built artifact"),
    digest: str = typer.Option(..., help="Hex sha256 digest of the built artifact"),
    command: str = typer.Option(..., help="base64-encoded JSON array of the build command"),
    env: str = typer.Option("", help="base64-encoded JSON array of the build environment"),
    identity_token: Optional[str] = typer.Option(None, help="OIDC token for keyless signing"),
    identity_token_env: str = typer.Option(
        DEFAULT_IDENTITY_TOKEN_ENV, help="Environment variable containing OIDC token"
    ),
    staging: bool = typer.Option(False, help="Use Sigstore staging instance"),
    offline: bool = typer.Option(False, help="Use the cached Sigstore trust root only"),
    trust_config: Optional[str] = typer.Option(
        None,
        envvar="SLSA_BUILDER_TRUST_CONFIG",
        help="Sigstore client trust config JSON for a private instance",
    ),
    json_output: bool = typer.Option(False, "--json", help="Deterministic JSON output"),
):
    """Generate, sign and publish SLSA provenance for a built artifact."""
    try:
        context_json = os.environ.get(GITHUB_CONTEXT_ENV)
        if context_json is None:
            raise ContextDecodeError(f"environment variable {GITHUB_CONTEXT_ENV} not present")
        endpoints = SigstoreEndpoints(
            staging=staging, offline=offline, trust_config_path=trust_config
        )
        result = generate_provenance(
            binary_name=binary_name,
            digest=digest,
            context_json=context_json,
            command=command,
            env=env,
            identity_provider=IdentityProvider(
                identity_token=identity_token,
                identity_token_env=identity_token_env,
            ),
            signer=DSSESigner(endpoints),
            anchor=RekorTransparencyAnchor(),
        )
        path = write_provenance(result)
        _set_output("signed-provenance-name", result.filename)
        _emit(
            {
                "ok": True,
                "path": str(path),
                "builder_id": result.statement["predicate"]["builder"]["id"],
                "transparency_log": result.record.model_dump(),
            },
            json_output,
        )
    except Exception as e:
        _emit({"ok": False, "error": str(e), "command": "provenance"}, json_output)
        raise typer.Exit(code=1)


@app.command()
def context(
    json_output: bool = typer.Option(False, "--json", help="Deterministic JSON output"),
):
    """Print the run context as it will be recorded, token removed."""
    try:
        ctx = run_context_from_env()
        _emit({"ok": True, "context": ctx.model_dump()}, json_output)
    except Exception as e:
        _emit({"ok": False, "error": str(e), "command": "context"}, json_output)
        raise typer.Exit(code=1)


@app.command()
def version(
    json_output: bool = typer.Option(False, "--json", help="Deterministic JSON output"),
):
    """Print version information."""
    _emit({"ok": True, "version": __version__}, json_output)


if __name__ == "__main__":
    app()
