# smart_transfer/cli/main.py

import logging
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from smart_transfer.core.config_manager import DEFAULT_SETTINGS_PATH, load_settings
from smart_transfer.core.errors import CapacityError, TransferEngineError
from smart_transfer.core.filesystem import LocalFileSystem
from smart_transfer.core.models import ListingOptions, Side, SortDirection, SortKey
from smart_transfer.core.sftp_session import DEFAULT_SSH_PORT, SftpSession
from smart_transfer.core.transfer_manager import TransferManager
from smart_transfer.core.transfer_task import TaskStatus, TransferDirection
from smart_transfer.utils.formatting import format_bytes

console = Console()
logger = logging.getLogger(__name__)

# Seconds between progress bar refreshes while transfers run.
PROGRESS_POLL_INTERVAL = 0.2

SIDE_CHOICE = click.Choice([side.value for side in Side], case_sensitive=False)

STATUS_STYLES = {
    TaskStatus.COMPLETED: "green",
    TaskStatus.ERROR: "bold red",
    TaskStatus.PAUSED: "yellow",
    TaskStatus.PENDING: "cyan",
    TaskStatus.TRANSFERRING: "blue",
}


# --- Main Command Group ---

@click.group(context_settings=dict(help_option_names=['-h', '--help']))
@click.version_option(version="1.0.0", prog_name="Smart Transfer")
@click.option('--host', default=None, help="Remote host. Without it the 'remote' side is this machine.")
@click.option('--port', type=int, default=DEFAULT_SSH_PORT, show_default=True, help="SSH port.")
@click.option('--user', default=None, help="SSH user name.")
@click.option('--password', default=None, help="SSH password.")
@click.option('--key', type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None,
              help="Private key file for SSH authentication.")
@click.option('--config', type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Path to a custom settings.json.")
@click.pass_context
def stx(ctx, host, port, user, password, key, config):
    """
    Smart Transfer - browse and move files between this machine and a remote host.

    Use `[COMMAND] --help` for more information on a specific command.
    """
    try:
        settings = load_settings(config or DEFAULT_SETTINGS_PATH)
    except (CapacityError, ValueError, TypeError) as e:
        raise click.BadParameter(str(e), param_hint="--config")

    ctx.obj = {
        "settings": settings,
        "host": host,
        "port": port,
        "user": user,
        "password": password,
        "key": str(key) if key else None,
    }


def _build_remote(options: dict):
    if not options["host"]:
        return LocalFileSystem()
    return SftpSession(
        options["host"],
        port=options["port"],
        username=options["user"],
        password=options["password"],
        key_filename=options["key"],
    )


@contextmanager
def _open_manager(ctx, concurrency: int | None = None):
    """Builds a manager for one command, connected for its duration."""
    settings = ctx.obj["settings"]
    if concurrency is not None:
        settings = replace(settings, max_concurrency=concurrency)
    manager = TransferManager(LocalFileSystem(), _build_remote(ctx.obj), settings)
    try:
        manager.adapter(Side.REMOTE).connect()
    except TransferEngineError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        ctx.exit(1)
    try:
        yield manager
    finally:
        manager.close()


# --- Browsing ---

@stx.command(name="ls")
@click.argument('side', type=SIDE_CHOICE)
@click.argument('path', default=".")
@click.option('-a', '--all', 'show_all', is_flag=True, help="Include hidden entries.")
@click.option('--sort', 'sort_key', type=click.Choice([key.value for key in SortKey]), default=SortKey.NAME.value,
              show_default=True, help="Ordering key.")
@click.option('--desc', is_flag=True, help="Sort in descending order.")
@click.pass_context
def list_directory(ctx, side, path, show_all, sort_key, desc):
    """📂 Lists a local or remote directory, directories first."""
    side = Side(side.lower())
    options = ListingOptions(
        show_hidden=show_all,
        sort_key=SortKey(sort_key),
        direction=SortDirection.DESC if desc else SortDirection.ASC,
    )
    with _open_manager(ctx) as manager:
        manager.set_listing_options(side, options)
        if not manager.navigate(side, path):
            console.print(f"[bold red]❌ {manager.side(side).last_error}[/bold red]")
            ctx.exit(1)
        listing = manager.side(side)

    table = Table(title=f"{side.value}: {listing.current_path}", style="cyan", title_style="bold magenta")
    table.add_column("Name", style="green", no_wrap=True)
    table.add_column("Size", justify="right")
    table.add_column("Permissions", style="blue")
    table.add_column("Modified", style="yellow")
    for entry in listing.entries:
        name = f"[bold]{entry.name}/[/bold]" if entry.is_dir else entry.name
        size = "" if entry.is_dir else format_bytes(entry.size)
        table.add_row(name, size, entry.permissions, entry.modified_at.strftime("%Y-%m-%d %H:%M"))
    console.print(table)
    console.print(f"{len(listing.entries)} entries.")


# --- Transfers ---

def _queue_paths(manager: TransferManager, direction: TransferDirection, paths, destination_dir: str) -> int:
    """Queues every path (files directly, directories expanded). Returns how many tasks were created."""
    if direction is TransferDirection.UPLOAD:
        source, destination = manager.adapter(Side.LOCAL), manager.adapter(Side.REMOTE)
    else:
        source, destination = manager.adapter(Side.REMOTE), manager.adapter(Side.LOCAL)

    destination.mkdir(destination_dir)
    count = 0
    for path in paths:
        entry = source.stat(path)
        if entry.is_dir:
            if direction is TransferDirection.UPLOAD:
                count += len(manager.queue_directory_upload(entry, destination_dir))
            else:
                count += len(manager.queue_directory_download(entry, destination_dir))
        else:
            target = destination.join(destination_dir, entry.name)
            if direction is TransferDirection.UPLOAD:
                manager.queue_upload(entry, target)
            else:
                manager.queue_download(entry, target)
            count += 1
    return count


def _follow_progress(manager: TransferManager):
    """Shows one byte-based progress bar for the whole queue until it is idle."""
    total = sum(task.total_bytes for task in manager.queue.tasks())
    with tqdm(total=total, unit='B', unit_scale=True, unit_divisor=1024, desc="Transferring") as bar:
        while True:
            idle = manager.queue.wait_until_idle(timeout=PROGRESS_POLL_INTERVAL)
            done = sum(task.transferred_bytes for task in manager.queue.tasks())
            bar.update(max(0, done - bar.n))
            if idle:
                break


def _print_summary(manager: TransferManager) -> bool:
    """Prints a per-file summary. Returns True if any task failed."""
    table = Table(title="Transfer Summary", style="cyan", title_style="bold magenta")
    table.add_column("File", style="green", no_wrap=True)
    table.add_column("Direction", style="blue")
    table.add_column("Size", justify="right")
    table.add_column("Status")
    table.add_column("Error", style="red")
    for task in manager.queue.tasks():
        style = STATUS_STYLES.get(task.status, "white")
        table.add_row(task.file_name, task.direction.value, format_bytes(task.total_bytes),
                      f"[{style}]{task.status.value}[/{style}]", task.error or "")
    console.print(table)
    return manager.queue.has_errors()


def _run_transfer(ctx, direction: TransferDirection, paths, destination_dir: str, concurrency: int | None):
    with _open_manager(ctx, concurrency) as manager:
        try:
            count = _queue_paths(manager, direction, paths, destination_dir)
        except (TransferEngineError, OSError) as e:
            console.print(f"[bold red]❌ Could not queue transfers: {e}[/bold red]")
            logger.error(f"CLI {direction.value} failed while queueing.", exc_info=True)
            ctx.exit(1)

        if count == 0:
            console.print("[bold green]✅ Nothing to transfer.[/bold green]")
            return
        console.print(f"[bold cyan]🚀 Starting {count} {direction.value}(s) "
                      f"with up to {manager.queue.effective_concurrency} at a time...[/bold cyan]")
        _follow_progress(manager)
        failed = _print_summary(manager)

    if failed:
        console.print("[bold red]❌ Some transfers failed. See the log for details.[/bold red]")
        ctx.exit(1)
    console.print("[bold green]🎉 All transfers completed.[/bold green]")


@stx.command()
@click.argument('paths', nargs=-1, required=True)
@click.option('--to', 'destination', required=True, help="Remote directory to upload into.")
@click.option('-c', '--concurrency', type=click.IntRange(min=1), default=None,
              help="Maximum simultaneous transfers (overrides the settings file).")
@click.pass_context
def put(ctx, paths, destination, concurrency):
    """⬆️ Uploads local files or directories to the remote side."""
    _run_transfer(ctx, TransferDirection.UPLOAD, paths, destination, concurrency)


@stx.command()
@click.argument('paths', nargs=-1, required=True)
@click.option('--to', 'destination', required=True, help="Local directory to download into.")
@click.option('-c', '--concurrency', type=click.IntRange(min=1), default=None,
              help="Maximum simultaneous transfers (overrides the settings file).")
@click.pass_context
def get(ctx, paths, destination, concurrency):
    """⬇️ Downloads remote files or directories to this machine."""
    _run_transfer(ctx, TransferDirection.DOWNLOAD, paths, destination, concurrency)


# --- Directory Maintenance ---

@stx.command()
@click.argument('side', type=SIDE_CHOICE)
@click.argument('path')
@click.pass_context
def mkdir(ctx, side, path):
    """📁 Creates a directory (and missing parents) on either side."""
    side = Side(side.lower())
    with _open_manager(ctx) as manager:
        try:
            manager.adapter(side).mkdir(path)
        except (TransferEngineError, OSError) as e:
            console.print(f"[bold red]❌ Could not create '{path}': {e}[/bold red]")
            ctx.exit(1)
    console.print(f"[bold green]✅ Created {side.value} directory '{path}'.[/bold green]")


@stx.command()
@click.argument('side', type=SIDE_CHOICE)
@click.argument('path')
@click.option('-y', '--yes', is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def rm(ctx, side, path, yes):
    """🗑️ Deletes a file or a whole directory tree on either side."""
    side = Side(side.lower())
    with _open_manager(ctx) as manager:
        adapter = manager.adapter(side)
        try:
            entry = adapter.stat(path)
        except TransferEngineError as e:
            console.print(f"[bold red]❌ {e}[/bold red]")
            ctx.exit(1)

        if not yes:
            what = "directory tree" if entry.is_dir else "file"
            click.confirm(f"Delete the {side.value} {what} '{entry.path}'?", abort=True)

        try:
            if entry.is_dir:
                adapter.remove_directory(entry.path)
            else:
                adapter.remove(entry.path)
        except (TransferEngineError, OSError) as e:
            console.print(f"[bold red]❌ Could not delete '{path}': {e}[/bold red]")
            logger.error("CLI rm command failed.", exc_info=True)
            ctx.exit(1)
    console.print(f"[bold green]✅ Deleted '{entry.path}'.[/bold green]")
