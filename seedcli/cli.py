"""seed CLI — build, run and publish Seed-compliant algorithm images."""

from __future__ import annotations

import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from seedcli import __version__
from seedcli.errors import (
    InvalidManifestError,
    OutputValidationError,
    PublishConflictError,
    SeedError,
)

console = Console(soft_wrap=True)
err_console = Console(stderr=True, soft_wrap=True)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.option("--config", "config_path", default=None, help="YAML config file (default ~/.seed/config.yaml)")
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: str | None):
    """seed — package algorithms as Seed-compliant Docker images.

    Validate manifests, build and run job images with bound inputs, and
    publish them to a registry without overwriting existing tags.
    """
    from seedcli.config import load_config
    from seedcli.utils.log import configure_logging

    configure_logging(verbose)
    try:
        ctx.obj = load_config(config_path)
    except SeedError as e:
        _report_error(e)
        sys.exit(e.exit_code)


def _execute(ctx: click.Context, command):
    """Run a command record, turning any SeedError into a message and exit code."""
    from seedcli.commands import execute

    try:
        return execute(command, ctx.obj)
    except SeedError as e:
        _report_error(e)
        sys.exit(e.exit_code)


def _report_error(error: SeedError) -> None:
    if isinstance(error, InvalidManifestError):
        err_console.print(f"[red]Invalid manifest:[/] {escape(str(error))}")
        _print_violations(error.violations)
    elif isinstance(error, OutputValidationError):
        err_console.print(f"[red]{escape(str(error))}[/]")
        for issue in error.report.errors:
            err_console.print(f"  [red]x[/] {escape(str(issue))}")
    elif isinstance(error, PublishConflictError):
        err_console.print(f"[red]Publish conflict for {error.tag}:[/] {escape(str(error))}")
    else:
        err_console.print(f"[red]Error:[/] {escape(str(error))}")


def _print_violations(violations) -> None:
    for v in violations:
        err_console.print(f"  [red]x[/] {escape(str(v))} [dim]({escape(v.constraint)})[/]")


# ── Init / Validate ──────────────────────────────────────────────────


@main.command()
@click.option("--directory", "-d", default=".", help="Directory to create the manifest in")
@click.pass_context
def init(ctx: click.Context, directory: str):
    """Write an example seed.manifest.json to get started."""
    from seedcli.commands import InitCommand

    loaded = _execute(ctx, InitCommand(directory=directory))
    console.print(f"[green]Created[/] {loaded.path}")


@main.command()
@click.option("--directory", "-d", default=".", help="Directory holding seed.manifest.json")
@click.option("--schema", "-s", default=None, help="Validate against this schema instead of the built-in one")
@click.pass_context
def validate(ctx: click.Context, directory: str, schema: str | None):
    """Validate a manifest against the Seed schema."""
    from seedcli.commands import ValidateCommand

    loaded = _execute(ctx, ValidateCommand(directory=directory, schema=schema))
    m = loaded.manifest
    console.print(f"  [green]v[/] {loaded.path} is valid")
    console.print(f"    {m.title} ({m.image_name})")


# ── Build ────────────────────────────────────────────────────────────


@main.command()
@click.option("--directory", "-d", default=".", help="Directory with seed.manifest.json and Dockerfile")
@click.option("--registry", "-r", default="", help="Registry to log in to for private base images")
@click.option("--username", "-u", default="", help="Registry username")
@click.option("--password", "-p", default="", help="Registry password")
@click.pass_context
def build(ctx: click.Context, directory: str, registry: str, username: str, password: str):
    """Build the job image, embedding the manifest as a label."""
    from seedcli.commands import BuildCommand

    console.print(f"\n[bold blue]seed[/] — Building from: {directory}\n")
    result = _execute(
        ctx,
        BuildCommand(directory=directory, registry=registry, username=username, password=password),
    )
    console.print(f"\n[green]Built[/] {result.image}")


# ── Run ──────────────────────────────────────────────────────────────


@main.command()
@click.option("--image", "-in", "image", default="", help="Image to run (manifest read from its label)")
@click.option("--directory", "-d", default="", help="Read the manifest from this directory instead")
@click.option("--input", "-i", "inputs", multiple=True, help="File input NAME=path (repeatable)")
@click.option("--json", "-j", "json_inputs", multiple=True, help="JSON input NAME=value (repeatable)")
@click.option("--setting", "-e", "settings", multiple=True, help="Setting NAME=value (repeatable)")
@click.option("--mount", "-m", "mounts", multiple=True, help="Mount NAME=host_path (repeatable)")
@click.option("--outdir", "-o", default=".", help="Host directory for job outputs")
@click.option("--rm", "remove", is_flag=True, help="Remove the container when it exits")
@click.option("--schema", "-s", default=None, help="Metadata schema for side-car output validation")
@click.pass_context
def run(
    ctx: click.Context,
    image: str,
    directory: str,
    inputs: tuple,
    json_inputs: tuple,
    settings: tuple,
    mounts: tuple,
    outdir: str,
    remove: bool,
    schema: str | None,
):
    """Run a job image with bound inputs, then validate its outputs."""
    from seedcli.commands import RunCommand

    command = RunCommand(
        image=image,
        directory=directory,
        inputs=inputs,
        json_inputs=json_inputs,
        settings=settings,
        mounts=mounts,
        output_dir=outdir,
        remove=remove,
        metadata_schema=schema,
    )
    console.print(f"\n[bold blue]seed[/] — Running: {image or directory}\n")
    result = _execute(ctx, command)

    if result.succeeded:
        console.print("  [green]v[/] Job exited with code 0")
    else:
        console.print(f"  [red]x[/] Job exited with code {result.exit_code} ({result.error_title})")

    console.print(Panel(escape(result.report.summary()), title="Output Validation"))
    for name, paths in result.report.files.items():
        for path in paths:
            console.print(f"  [cyan]{name}[/] {path}")
    for name, value in result.report.json_values.items():
        console.print(f"  [cyan]{name}[/] = {escape(repr(value))}")

    try:
        result.raise_for_failure()
    except SeedError as e:
        _report_error(e)
        sys.exit(e.exit_code)


# ── List / Search / Pull ─────────────────────────────────────────────


@main.command(name="list")
@click.pass_context
def list_images(ctx: click.Context):
    """List locally built Seed images."""
    from seedcli.commands import ListCommand

    images = _execute(ctx, ListCommand())
    if not images:
        console.print("[yellow]No seed images found.[/]")
        return

    table = Table(title=f"Seed images ({len(images)})")
    table.add_column("Repository", style="cyan")
    table.add_column("Tag")
    table.add_column("ID", style="dim")
    table.add_column("Created")
    table.add_column("Size", justify="right")
    for img in images:
        table.add_row(img.repository, img.tag, img.image_id, img.created, img.size)
    console.print(table)


@main.command()
@click.option("--registry", "-r", default="", help="Registry to search (default Docker Hub)")
@click.option("--org", "-o", default="", help="Organization to search within")
@click.option("--filter", "-f", "name_filter", default="", help="Only show repositories containing this text")
@click.option("--username", "-u", default="", help="Registry username")
@click.option("--password", "-p", default="", help="Registry password")
@click.pass_context
def search(
    ctx: click.Context, registry: str, org: str, name_filter: str, username: str, password: str
):
    """Search a registry for Seed images."""
    from seedcli.commands import SearchCommand

    repos = _execute(
        ctx,
        SearchCommand(
            registry=registry, org=org, filter=name_filter, username=username, password=password
        ),
    )
    if not repos:
        console.print("[yellow]No seed images found.[/]")
        return
    for repo in repos:
        console.print(f"  [cyan]{repo}[/]")


@main.command()
@click.option("--image", "-in", "image", required=True, help="Image to pull (name:tag)")
@click.option("--registry", "-r", default="", help="Registry to pull from")
@click.option("--org", "-o", default="", help="Organization the image lives under")
@click.option("--username", "-u", default="", help="Registry username")
@click.option("--password", "-p", default="", help="Registry password")
@click.pass_context
def pull(ctx: click.Context, image: str, registry: str, org: str, username: str, password: str):
    """Pull a Seed image from a registry."""
    from seedcli.commands import PullCommand

    result = _execute(
        ctx,
        PullCommand(image=image, registry=registry, org=org, username=username, password=password),
    )
    console.print(f"[green]Pulled[/] {result.remote} as {result.local}")


# ── Publish ──────────────────────────────────────────────────────────


@main.command()
@click.option("--directory", "-d", default=".", help="Directory holding seed.manifest.json")
@click.option("--image", "-in", "image", default="", help="Local image to publish (default from manifest)")
@click.option("--registry", "-r", default="", help="Target registry")
@click.option("--org", "-o", default="", help="Target organization")
@click.option("--username", "-u", default="", help="Registry username")
@click.option("--password", "-p", default="", help="Registry password")
@click.option("--force", "-f", is_flag=True, help="Publish even if the tag already exists")
@click.option("--pkg-minor", is_flag=True, help="Bump packageVersion minor before publishing")
@click.option("--pkg-major", is_flag=True, help="Bump packageVersion major before publishing")
@click.option("--alg-minor", is_flag=True, help="Bump algorithmVersion minor before publishing")
@click.option("--alg-major", is_flag=True, help="Bump algorithmVersion major before publishing")
@click.option("--schema", "-s", default=None, help="Validate against this schema instead of the built-in one")
@click.pass_context
def publish(
    ctx: click.Context,
    directory: str,
    image: str,
    registry: str,
    org: str,
    username: str,
    password: str,
    force: bool,
    pkg_minor: bool,
    pkg_major: bool,
    alg_minor: bool,
    alg_major: bool,
    schema: str | None,
):
    """Publish the image to a registry, refusing to overwrite an existing tag.

    Version bump flags rewrite seed.manifest.json and rebuild the image
    before pushing.
    """
    from seedcli.commands import PublishCommand
    from seedcli.versioning.resolver import VersionBumpRequest

    bump = VersionBumpRequest.from_flags(pkg_minor, pkg_major, alg_minor, alg_major)
    command = PublishCommand(
        directory=directory,
        image=image,
        registry=registry,
        org=org,
        username=username,
        password=password,
        force=force,
        bump=bump,
        schema=schema,
    )
    console.print(f"\n[bold blue]seed[/] — Publishing from: {directory}\n")
    result = _execute(ctx, command)
    console.print(Panel(escape(result.summary()), title="Published"))


# ── Version / Schema ─────────────────────────────────────────────────


@main.command()
@click.pass_context
def version(ctx: click.Context):
    """Show the CLI and Seed spec versions."""
    from seedcli.commands import VersionCommand

    info = _execute(ctx, VersionCommand())
    console.print(f"seed-cli {info.cli} (Seed spec {info.seed})")


@main.command(name="schema")
@click.option("--metadata", is_flag=True, help="Print the side-car metadata schema instead")
def dump_schema(metadata: bool):
    """Print the built-in JSON Schema for seed.manifest.json."""
    import json

    from seedcli.spec.schema import get_metadata_schema, get_schema

    click.echo(json.dumps(get_metadata_schema() if metadata else get_schema(), indent=2))


if __name__ == "__main__":
    main()
