"""Thin CLI wrapper for monolithic_builder.

This module provides the command-line interface using Typer.
All business logic is delegated to the orchestrators; the CLI loads
settings, configures logging, wires cancellation to SIGINT/SIGTERM and turns
fatal errors into a single JSON diagnostic on stderr.
"""

import json
import os
import signal
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Annotated

import typer
from rich.console import Console

from monolithic_builder import __version__
from monolithic_builder.config import (
    CommonSettings,
    get_build_settings,
    get_index_settings,
    print_settings_json,
)
from monolithic_builder.errors import (
    BuilderError,
    CancellationError,
    ConfigurationError,
    describe_error,
)
from monolithic_builder.image.models import BuildResult
from monolithic_builder.log import setup_logging
from monolithic_builder.process import Capabilities, CancelToken, SubprocessInvoker

PROG_NAME = "monolithic-builder"
COMMAND_ENV = "MONOLITHIC_COMMAND"
COMMANDS = ("build-container", "build-image-index", "config")

EXIT_FAILURE = 1
EXIT_CANCELLED = 130

app = typer.Typer(
    name=PROG_NAME,
    help="Monolithic builder - clone, prefetch, build and push container images",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"monolithic-builder version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Monolithic builder - clone, prefetch, build and push container images."""


@contextmanager
def _cancel_on_signals(cancel: CancelToken) -> Iterator[None]:
    """Set ``cancel`` on SIGINT/SIGTERM for the duration of the block."""

    def handler(signum: int, frame: object) -> None:
        cancel.cancel()

    previous = {
        signum: signal.signal(signum, handler)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield
    finally:
        for signum, old in previous.items():
            signal.signal(signum, old)


def _fail(exc: BuilderError) -> typer.Exit:
    err_console.print(
        json.dumps(describe_error(exc)), markup=False, highlight=False, soft_wrap=True
    )
    code = EXIT_CANCELLED if isinstance(exc, CancellationError) else EXIT_FAILURE
    return typer.Exit(code=code)


def _run(
    load: Callable[[], CommonSettings],
    execute: Callable[[CommonSettings, Capabilities], BuildResult],
) -> None:
    """Load settings, then run one orchestrator with a cancellable invoker."""
    try:
        settings = load()
    except ConfigurationError as e:
        raise _fail(e) from None

    logger = setup_logging(settings.log_level)
    cancel = CancelToken()
    invoker = SubprocessInvoker(cancel=cancel, timeout=settings.command_timeout)
    caps = Capabilities(invoker=invoker, logger=logger)

    with _cancel_on_signals(cancel):
        try:
            result = execute(settings, caps)
        except BuilderError as e:
            raise _fail(e) from None

    console.print(f"[green]✓ {result.image_url}[/green]")
    if result.image_digest:
        console.print(f"  Digest: {result.image_digest}")


@app.command("build-container")
def build_container(
    build_args: Annotated[
        list[str] | None,
        typer.Argument(
            help="Build arguments as KEY=value, appended to BUILD_ARGS",
            show_default=False,
        ),
    ] = None,
) -> None:
    """Clone a repository, build its image and push it to a registry.

    Parameters are read from the environment (IMAGE_URL, GIT_URL,
    GIT_REVISION, ...). Results are written to RESULTS_PATH.
    """
    from monolithic_builder.buildcontainer import BuildContainerBuilder

    extra = list(build_args or [])

    def load():
        invalid = [arg for arg in extra if "=" not in arg]
        if invalid:
            raise ConfigurationError(
                f"Build arguments must be KEY=value: {', '.join(invalid)}"
            )
        settings = get_build_settings()
        if extra:
            settings = settings.model_copy(
                update={"build_args": [*settings.build_args, *extra]}
            )
        return settings

    _run(load, lambda s, caps: BuildContainerBuilder(s, caps).execute())


@app.command("build-image-index")
def build_image_index() -> None:
    """Combine per-architecture images into one image index.

    Parameters are read from the environment (IMAGE, IMAGES,
    ALWAYS_BUILD_INDEX, ...). Results are written to RESULTS_PATH.
    """
    from monolithic_builder.imageindex import ImageIndexBuilder

    _run(get_index_settings, lambda s, caps: ImageIndexBuilder(s, caps).execute())


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
    index: Annotated[
        bool,
        typer.Option("--index", help="Show build-image-index settings"),
    ] = False,
) -> None:
    """Show effective configuration."""
    try:
        settings = get_index_settings() if index else get_build_settings()
    except ConfigurationError as e:
        raise _fail(e) from None

    if json_output:
        console.print(
            print_settings_json(settings), markup=False, highlight=False, soft_wrap=True
        )
        return

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    for name, value in settings.model_dump().items():
        display = value if value not in ("", None, []) else "(unset)"
        console.print(
            f"  {name:<22} {display}", markup=False, highlight=False, soft_wrap=True
        )


def _route(argv: list[str]) -> list[str]:
    """Prepend the MONOLITHIC_COMMAND subcommand when none was given."""
    command = os.environ.get(COMMAND_ENV, "").strip()
    if not command:
        return argv
    if argv and (argv[0] in COMMANDS or argv[0].startswith("-")):
        return argv
    return [command, *argv]


def run(argv: list[str] | None = None) -> None:
    """Entry point for the ``monolithic-builder`` console script."""
    args = list(sys.argv[1:] if argv is None else argv)
    app(args=_route(args), prog_name=PROG_NAME)


def build_container_main() -> None:
    """Entry point for the ``build-container`` console script."""
    app(args=["build-container", *sys.argv[1:]], prog_name=PROG_NAME)


def build_image_index_main() -> None:
    """Entry point for the ``build-image-index`` console script."""
    app(args=["build-image-index", *sys.argv[1:]], prog_name=PROG_NAME)


if __name__ == "__main__":
    run()
