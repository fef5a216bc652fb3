"""CLI entry point — Click group over the environment-configured filesystem."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable

import click
from rich import box
from rich.console import Console
from rich.table import Table

from flysystem.config import open_filesystem
from flysystem.errors import FilesystemError
from flysystem.filesystem import Filesystem
from flysystem.streams import CHUNK_SIZE

console = Console()


def _run(ctx: click.Context, action: Callable[[Filesystem], Awaitable[Any]]) -> Any:
    """Open the filesystem, run *action*, close it; taxonomy errors exit 1."""
    dotenv_path = ctx.obj.get("env_file") if ctx.obj else None

    async def runner() -> Any:
        async with await open_filesystem(dotenv_path=dotenv_path) as fs:
            return await action(fs)

    try:
        return asyncio.run(runner())
    except FilesystemError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc


async def _read_local(path: Path) -> AsyncIterator[bytes]:
    with path.open("rb") as fh:
        while True:
            chunk = await asyncio.to_thread(fh.read, CHUNK_SIZE)
            if not chunk:
                return
            yield chunk


def _size(value: int | None) -> str:
    return "" if value is None else f"{value:,}"


# ---------------------------------------------------------------------------
# Click group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--debug", is_flag=True, help="Debug logging")
@click.option("--env-file", type=click.Path(dir_okay=False), default=None,
              help="Load configuration from this .env file")
@click.pass_context
def main(ctx: click.Context, debug: bool, env_file: str | None) -> None:
    """flysystem — file operations against the configured storage adapter."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["env_file"] = env_file


@main.command(name="ls")
@click.argument("path", default="")
@click.option("--recursive", "-r", is_flag=True, help="Descend into subdirectories")
@click.pass_context
def ls_cmd(ctx: click.Context, path: str, recursive: bool) -> None:
    """List entries below PATH (default: the root)."""

    async def action(fs: Filesystem) -> list:
        return [entry async for entry in fs.list_contents(path, recursive=recursive)]

    entries = _run(ctx, action)
    if not entries:
        click.echo("(empty)")
        return

    table = Table(border_style="cyan", box=box.SIMPLE, header_style="bold cyan", padding=(0, 1))
    table.add_column("Path", style="bold yellow", no_wrap=True)
    table.add_column("Type", style="magenta", no_wrap=True)
    table.add_column("Size", justify="right")
    table.add_column("Modified", style="dim", no_wrap=True)
    for entry in entries:
        meta = entry.metadata
        modified = meta.last_modified.strftime("%Y-%m-%d %H:%M") if meta.last_modified else ""
        table.add_row(
            f"{entry.path}/" if entry.is_directory else str(entry.path),
            "dir" if entry.is_directory else "file",
            _size(meta.file_size),
            modified,
        )
    console.print(table)


@main.command(name="cat")
@click.argument("path")
@click.pass_context
def cat_cmd(ctx: click.Context, path: str) -> None:
    """Write the content of PATH to stdout."""
    out = click.get_binary_stream("stdout")

    async def action(fs: Filesystem) -> None:
        async for chunk in await fs.read_stream(path):
            out.write(chunk)
        out.flush()

    _run(ctx, action)


@main.command(name="put")
@click.argument("local", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("path")
@click.option("--public", "visibility", flag_value="public", help="Make the file public")
@click.option("--private", "visibility", flag_value="private", help="Make the file private")
@click.option("--no-overwrite", is_flag=True, help="Fail if PATH already exists")
@click.pass_context
def put_cmd(
    ctx: click.Context, local: Path, path: str, visibility: str | None, no_overwrite: bool,
) -> None:
    """Upload the LOCAL file to PATH."""

    async def action(fs: Filesystem) -> None:
        await fs.write_stream(path, _read_local(local), visibility, overwrite=not no_overwrite)

    _run(ctx, action)
    click.echo(f"Uploaded {local} -> {path}")


@main.command(name="rm")
@click.argument("path")
@click.option("--dir", "directory", is_flag=True, help="Delete a directory recursively")
@click.pass_context
def rm_cmd(ctx: click.Context, path: str, directory: bool) -> None:
    """Delete the file (or, with --dir, the directory) at PATH."""

    async def action(fs: Filesystem) -> None:
        if directory:
            await fs.delete_directory(path)
        else:
            await fs.delete(path)

    _run(ctx, action)
    click.echo(f"Deleted {path}")


@main.command(name="mkdir")
@click.argument("path")
@click.pass_context
def mkdir_cmd(ctx: click.Context, path: str) -> None:
    """Create the directory PATH (and its parents)."""
    _run(ctx, lambda fs: fs.create_directory(path))
    click.echo(f"Created {path}/")


@main.command(name="mv")
@click.argument("source")
@click.argument("destination")
@click.pass_context
def mv_cmd(ctx: click.Context, source: str, destination: str) -> None:
    """Move a file."""
    _run(ctx, lambda fs: fs.move(source, destination))
    click.echo(f"Moved {source} -> {destination}")


@main.command(name="cp")
@click.argument("source")
@click.argument("destination")
@click.pass_context
def cp_cmd(ctx: click.Context, source: str, destination: str) -> None:
    """Copy a file."""
    _run(ctx, lambda fs: fs.copy(source, destination))
    click.echo(f"Copied {source} -> {destination}")


@main.command(name="stat")
@click.argument("path")
@click.pass_context
def stat_cmd(ctx: click.Context, path: str) -> None:
    """Show metadata of PATH."""
    meta = _run(ctx, lambda fs: fs.get_metadata(path))

    table = Table(border_style="green", box=box.SIMPLE, show_header=False, padding=(0, 1))
    table.add_column("Field", style="bold green", no_wrap=True)
    table.add_column("Value")
    table.add_row("path", str(meta.path) or "/")
    table.add_row("type", "file" if meta.file_size is not None else "dir")
    table.add_row("size", _size(meta.file_size))
    table.add_row("modified", meta.last_modified.isoformat() if meta.last_modified else "")
    table.add_row("mime type", meta.mime_type or "")
    table.add_row("visibility", meta.visibility.value if meta.visibility else "")
    console.print(table)


@main.command(name="url")
@click.argument("path")
@click.option("--expires", type=click.IntRange(min=1), default=None,
              help="Generate a temporary URL valid for this many seconds")
@click.pass_context
def url_cmd(ctx: click.Context, path: str, expires: int | None) -> None:
    """Print the public (or, with --expires, temporary) URL of PATH."""

    async def action(fs: Filesystem) -> str:
        if expires is not None:
            return await fs.temporary_url(path, expires)
        return await fs.public_url(path)

    click.echo(_run(ctx, action))
