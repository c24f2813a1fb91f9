"""
Root Typer application for the batchproc CLI.

``batchproc run jobs.jsonl --max-concurrent 8`` runs every job in the
file with at most 8 in flight and prints one line per finished job.
"""

from __future__ import annotations

import itertools
import json
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any, TextIO

import typer
from rich.console import Console

from batchproc.core.errors import BatchProcError, InvalidConfigError, InvalidDescriptorError
from batchproc.core.logging import configure_logging
from batchproc.core.settings import get_settings
from batchproc.execution.batch import BatchProcessor
from batchproc.execution.handles import SubprocessHandle

app = typer.Typer(
    name="batchproc",
    help="batchproc — run external commands with a concurrency ceiling.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()
err_console = Console(stderr=True)

EXIT_JOB_FAILED = 1
EXIT_BAD_INPUT = 2


class JobFailedError(BatchProcError):
    """Raised from the completion callback in ``--fail-fast`` mode."""


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from batchproc import __version__

        typer.echo(f"batchproc {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """batchproc CLI — run job files through a bounded process pool."""


# ── Job file reading ─────────────────────────────────────────────────────


def _open_source(path: str) -> TextIO:
    if path == "-":
        return sys.stdin
    return Path(path).open(encoding="utf-8")


def iter_job_file(stream: TextIO) -> Iterator[Any]:
    """Yield descriptors from a JSON array or a JSON-lines stream.

    JSON-lines input is parsed lazily, one line per pulled descriptor.
    Blank lines are skipped.

    Raises:
        InvalidDescriptorError: The stream is not UTF-8 text or not valid JSON.
    """
    try:
        yield from _iter_descriptors(stream)
    except UnicodeDecodeError as exc:
        raise InvalidDescriptorError(
            f"Job file is not valid UTF-8 text: {exc.reason} at byte {exc.start}", cause=exc
        ) from exc


def _iter_descriptors(stream: TextIO) -> Iterator[Any]:
    skipped_lines = 0
    head = stream.read(1)
    while head and head.isspace():
        if head == "\n":
            skipped_lines += 1
        head = stream.read(1)
    if not head:
        return

    if head == "[":
        try:
            jobs = json.loads(head + stream.read())
        except json.JSONDecodeError as exc:
            raise InvalidDescriptorError(f"Job file is not valid JSON: {exc}", cause=exc) from exc
        if not isinstance(jobs, list):
            raise InvalidDescriptorError("Job file must contain a JSON array of objects.")
        yield from jobs
        return

    lines = itertools.chain([head + stream.readline()], stream)
    for lineno, line in enumerate(lines, start=skipped_lines + 1):
        if not line.strip():
            continue
        try:
            descriptor = json.loads(line)
        except json.JSONDecodeError as exc:
            raise InvalidDescriptorError(
                f"Line {lineno} is not valid JSON: {exc.msg}", cause=exc
            ).with_context(line=lineno) from exc
        yield descriptor


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("run")
def run(
    jobs_file: str = typer.Argument(..., help="JSON array or JSON-lines job file ('-' for stdin)"),
    max_concurrent: int | None = typer.Option(None, "--max-concurrent", "-n", min=0, help="Concurrency ceiling"),  # noqa: UP007
    poll_interval: float | None = typer.Option(None, "--poll-interval", min=0.0, help="Seconds between completion scans"),  # noqa: UP007
    timeout: float | None = typer.Option(None, "--timeout", min=0.0, help="Default per-job timeout in seconds (0 disables)"),  # noqa: UP007
    fail_fast: bool = typer.Option(False, "--fail-fast/--no-fail-fast", help="Abort on the first failing job"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON log lines on stderr"),
    log_level: str | None = typer.Option(None, "--log-level", help="Log level (default from settings)"),  # noqa: UP007
    show_output: bool = typer.Option(False, "--show-output", help="Print each job's stdout"),
) -> None:
    """Run every job in JOBS_FILE with at most --max-concurrent in flight.

    Each descriptor is a JSON object with a ``command`` (argv list or shell
    string) and optional ``id``, ``cwd``, ``env``, ``input``, ``timeout``.

    Example::

        batchproc run jobs.jsonl --max-concurrent 4
        cat jobs.json | batchproc run - -n 2 --fail-fast
    """
    settings = get_settings()
    try:
        configure_logging(
            level=log_level or settings.log_level,
            json_format=json_logs or settings.log_format == "json",
        )
    except InvalidConfigError as exc:
        err_console.print(f"[bold red]Error[/bold red]: {exc.message}")
        raise typer.Exit(code=EXIT_BAD_INPUT)

    failures: list[Any] = []

    def on_complete(job_id: Any, handle: Any) -> None:
        exit_code = getattr(handle, "exit_code", None)
        timed_out = getattr(handle, "timed_out", False)
        if timed_out:
            console.print(f"[yellow]⏱[/yellow] {job_id}  timed out")
        elif exit_code == 0:
            console.print(f"[green]✓[/green] {job_id}  exit=0")
        else:
            console.print(f"[red]✗[/red] {job_id}  exit={exit_code}")
        if show_output and isinstance(handle, SubprocessHandle) and handle.output:
            console.print(handle.output, end="", markup=False, highlight=False)

        if timed_out or exit_code != 0:
            failures.append(job_id)
            if fail_fast:
                raise JobFailedError(f"Job {job_id!r} failed (exit={exit_code})").with_context(job_id=job_id)

    try:
        source = _open_source(jobs_file)
    except OSError as exc:
        err_console.print(f"[bold red]Error[/bold red]: cannot read {jobs_file}: {exc}")
        raise typer.Exit(code=EXIT_BAD_INPUT)

    processor = BatchProcessor(
        iter_job_file(source),
        settings.max_concurrent if max_concurrent is None else max_concurrent,
        on_complete=on_complete,
        poll_interval=settings.poll_interval if poll_interval is None else poll_interval,
        default_timeout=settings.default_timeout if timeout is None else (timeout or None),
    )

    try:
        processor.start()
    except InvalidDescriptorError as exc:
        _stop_in_flight(processor)
        err_console.print(f"[bold red]Invalid job[/bold red]: {exc.message} {exc.context.to_dict()}")
        raise typer.Exit(code=EXIT_BAD_INPUT)
    except JobFailedError as exc:
        _stop_in_flight(processor)
        err_console.print(f"[bold red]Aborted[/bold red]: {exc.message}")
        raise typer.Exit(code=EXIT_JOB_FAILED)
    except OSError as exc:
        _stop_in_flight(processor)
        err_console.print(f"[bold red]Cannot start job[/bold red]: {exc}")
        raise typer.Exit(code=EXIT_JOB_FAILED)
    except BaseException:
        _stop_in_flight(processor)
        raise
    finally:
        if source is not sys.stdin:
            source.close()

    stats = processor.stats
    console.print(
        f"[bold]{stats.completed}[/bold] job(s) finished, "
        f"[bold]{len(failures)}[/bold] failed (peak concurrency {stats.peak_in_flight})"
    )
    if failures:
        raise typer.Exit(code=EXIT_JOB_FAILED)


def _stop_in_flight(processor: BatchProcessor) -> None:
    """Terminate jobs the aborted batch left running."""
    for entry in processor.in_flight():
        if isinstance(entry.handle, SubprocessHandle):
            entry.handle.stop()
            err_console.print(f"[yellow]stopped[/yellow] {entry.id}")


if __name__ == "__main__":
    app()
