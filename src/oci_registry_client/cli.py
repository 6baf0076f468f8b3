"""
OCI Registry Client CLI

Implements 3 CLI verbs on top of the Operations facade:
- manifest: Print an image manifest and its config as JSON
- platforms: List the platforms of a multi-platform image
- pull: Download all layers of an image with live progress
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import typer
from rich.logging import RichHandler

from .cli_context import CLIContext
from .download import FailurePolicy
from .operations import Operations, OpsConfig, run_and_exit
from .operations.printers import (
    ProgressRenderer, print_inspect_result, print_platforms, print_pull_summary
)

app = typer.Typer(name="oci-registry", help="OCI / Docker Registry V2 client")


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        handlers=[RichHandler(show_path=False)],
    )


@app.command()
def manifest(
    image: str = typer.Argument(..., help="Repository name, e.g. library/alpine"),
    reference: str = typer.Argument("latest", help="Tag or digest"),
    anonymous: bool = typer.Option(False, "--anonymous", help="Skip token acquisition"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging")
) -> None:
    """Print the image manifest and image config as JSON."""
    _configure_logging(verbose)

    def _manifest() -> None:
        context = CLIContext.from_env()

        async def _inspect():
            async with context.client() as client:
                config = OpsConfig.from_settings(context.settings, anonymous=anonymous)
                ops = Operations(config=config, client=client, settings=context.settings)
                return await ops.inspect(image, reference)

        print_inspect_result(asyncio.run(_inspect()))

    run_and_exit(_manifest)


@app.command()
def platforms(
    image: str = typer.Argument(..., help="Repository name, e.g. library/alpine"),
    reference: str = typer.Argument("latest", help="Tag or digest"),
    anonymous: bool = typer.Option(False, "--anonymous", help="Skip token acquisition"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging")
) -> None:
    """List the platform manifests of a multi-platform image."""
    _configure_logging(verbose)

    def _platforms() -> None:
        context = CLIContext.from_env()

        async def _list():
            async with context.client() as client:
                config = OpsConfig.from_settings(context.settings, anonymous=anonymous)
                ops = Operations(config=config, client=client, settings=context.settings)
                return await ops.platforms(image, reference)

        print_platforms(asyncio.run(_list()), image)

    run_and_exit(_platforms)


@app.command()
def pull(
    image: str = typer.Argument(..., help="Repository name, e.g. library/alpine"),
    reference: str = typer.Argument("latest", help="Tag or digest"),
    dest: str = typer.Option(".", "--dest", "-d", help="Destination directory for layer blobs"),
    platform: Optional[str] = typer.Option(None, "--platform", help="os/arch[/variant] to select from a manifest list"),
    no_verify: bool = typer.Option(False, "--no-verify", help="Skip layer digest verification"),
    fail_fast: bool = typer.Option(False, "--fail-fast", help="Cancel remaining layers after the first failure"),
    anonymous: bool = typer.Option(False, "--anonymous", help="Skip token acquisition"),
    ci: bool = typer.Option(False, "--ci", help="CI mode (suppress live progress)"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging")
) -> None:
    """Download all layers of an image concurrently."""
    _configure_logging(verbose)

    def _pull() -> None:
        context = CLIContext.from_env()
        config = OpsConfig.from_settings(
            context.settings,
            verify=False if no_verify else None,
            failure_policy=FailurePolicy.ABORT if fail_fast else None,
            anonymous=anonymous,
            verbose=verbose,
        )

        async def _download():
            async with context.client() as client:
                ops = Operations(config=config, client=client, settings=context.settings)
                with ProgressRenderer(ci=ci) as renderer:
                    return await ops.pull(image, reference, dest, platform=platform, on_progress=renderer)

        print_pull_summary(asyncio.run(_download()))

    run_and_exit(_pull)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
