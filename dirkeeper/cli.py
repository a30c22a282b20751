"""CLI entry point for dirkeeper.

Commands:
    dirkeeper list: filtered, depth-bounded listing of a directory tree
    dirkeeper ls: flat listing of a single directory
    dirkeeper sync: copy new or changed files from a source to a destination
    dirkeeper pairs: show known sync pairs
    dirkeeper jobs: show sync job history
    dirkeeper mv: move a file
    dirkeeper rm: delete a file
"""

import logging
import sys

import click
from pydantic import TypeAdapter

from dirkeeper.config import CATALOG_DB_PATH, CATALOG_INIT_SQL, LIST_DEPTH
from dirkeeper.errors import ConflictError, DirkeeperError, StorageError
from dirkeeper.schemas.files import FileEntry, FileInfo

logger = logging.getLogger("dirkeeper")


def _fail(exc: Exception) -> None:
    click.echo(f"Error: {exc}", err=True)
    sys.exit(1)


def _open_catalog():
    """Open the catalog; failing to open or initialize it is fatal."""
    from dirkeeper.sync.catalog import Catalog

    try:
        return Catalog(CATALOG_DB_PATH, init_script=CATALOG_INIT_SQL or None)
    except StorageError as exc:
        logger.error("Cannot open catalog at %s", CATALOG_DB_PATH)
        _fail(exc)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """dirkeeper: directory listing and content-addressed sync."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


# ------------------------------------------------------------------
# dirkeeper list / ls
# ------------------------------------------------------------------


@cli.command("list")
@click.argument("directory")
@click.option(
    "--depth",
    "-d",
    default=LIST_DEPTH,
    show_default=True,
    help="Levels to descend (0 = root level only, negative = unlimited).",
)
@click.option("--include", "-i", multiple=True, help="Glob files must match (repeatable).")
@click.option("--exclude", "-x", multiple=True, help="Glob to drop or prune (repeatable).")
@click.option("--pattern", "-p", default=None, help="Regex file names must match.")
@click.option("--hidden", is_flag=True, help="Include entries starting with a dot.")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table.")
def list_cmd(
    directory: str,
    depth: int,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    pattern: str | None,
    hidden: bool,
    as_json: bool,
) -> None:
    """List DIRECTORY with hidden/glob/regex filters."""
    from dirkeeper.explorer.lister import list_files
    from dirkeeper.schemas.files import ListOptions

    options = ListOptions(
        depth=depth,
        include=list(include),
        exclude=list(exclude),
        regex_pattern=pattern,
        show_hidden=hidden,
    )
    try:
        files = list_files(directory, options)
    except (DirkeeperError, OSError) as exc:
        _fail(exc)

    if as_json:
        adapter = TypeAdapter(list[FileInfo])
        click.echo(adapter.dump_json(files, by_alias=True, exclude_none=True, indent=2).decode())
        return

    for info in files:
        suffix = "/" if info.is_directory else ""
        click.echo(
            f"{info.permissions} {info.size:>12} "
            f"{info.mod_time:%Y-%m-%d %H:%M} {info.path}{suffix}"
        )
    click.echo(f"{len(files)} entr{'y' if len(files) == 1 else 'ies'}")


@cli.command("ls")
@click.argument("directory")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table.")
def ls_cmd(directory: str, as_json: bool) -> None:
    """Flat, unfiltered listing of DIRECTORY."""
    from dirkeeper.explorer.lister import list_directory

    try:
        entries = list_directory(directory)
    except (DirkeeperError, OSError) as exc:
        _fail(exc)

    if as_json:
        adapter = TypeAdapter(list[FileEntry])
        click.echo(adapter.dump_json(entries, by_alias=True, indent=2).decode())
        return

    for entry in entries:
        kind = "d" if entry.is_dir else "-"
        click.echo(f"{kind} {entry.size:>12} {entry.mod_time:%Y-%m-%d %H:%M} {entry.name}")


# ------------------------------------------------------------------
# dirkeeper sync
# ------------------------------------------------------------------


@cli.command()
@click.argument("source")
@click.argument("destination")
@click.option("--force", is_flag=True, help="Create the sync pair if it is not known yet.")
def sync(source: str, destination: str, force: bool) -> None:
    """Copy new or changed files from SOURCE into DESTINATION."""
    from dirkeeper.sync.service import request_sync

    with _open_catalog() as catalog:
        try:
            report = request_sync(catalog, source, destination, force=force)
        except ConflictError as exc:
            click.echo(f"Error: {exc}", err=True)
            click.echo("Re-run with --force to create the pair.", err=True)
            sys.exit(1)
        except DirkeeperError as exc:
            _fail(exc)

    for name in report.copied:
        click.echo(f"  copied {name}")
    click.echo(
        f"Done. Copied: {len(report.copied)}, Unchanged: {len(report.skipped)}, "
        f"Job: {report.job_id} ({report.status.value})"
    )
    if not report.ok:
        click.echo(f"Error: {report.error_type}: {report.error}", err=True)
        sys.exit(1)


# ------------------------------------------------------------------
# dirkeeper pairs / jobs
# ------------------------------------------------------------------


@cli.command()
def pairs() -> None:
    """Show known sync pairs."""
    with _open_catalog() as catalog:
        try:
            known = catalog.list_pairs()
        except StorageError as exc:
            _fail(exc)

    if not known:
        click.echo("No sync pairs.")
        return
    for pair in known:
        click.echo(f"  [{pair.id}] {pair.source_dir} -> {pair.dest_dir}")


@cli.command()
@click.option("--pair-id", type=int, default=None, help="Only jobs for this pair.")
@click.option("--limit", "-n", default=20, show_default=True, help="Max jobs to show.")
def jobs(pair_id: int | None, limit: int) -> None:
    """Show sync job history, newest first."""
    with _open_catalog() as catalog:
        try:
            history = [
                (job, len(catalog.files_for_job(job.id)))
                for job in catalog.list_jobs(pair_id=pair_id, limit=limit)
            ]
        except StorageError as exc:
            _fail(exc)

    if not history:
        click.echo("No sync jobs.")
        return
    for job, file_count in history:
        finished = f"{job.completed_at:%Y-%m-%d %H:%M:%S}" if job.completed_at else "-"
        click.echo(
            f"  [{job.id}] pair={job.sync_pair_id} {job.status.value:<9} "
            f"started={job.started_at:%Y-%m-%d %H:%M:%S} finished={finished} "
            f"files={file_count}"
        )


# ------------------------------------------------------------------
# dirkeeper mv / rm
# ------------------------------------------------------------------


@cli.command("mv")
@click.argument("src")
@click.argument("dst")
def mv_cmd(src: str, dst: str) -> None:
    """Move SRC to DST."""
    from dirkeeper.explorer.filesystem import move_file

    try:
        move_file(src, dst)
    except (DirkeeperError, OSError) as exc:
        _fail(exc)
    click.echo(f"Moved {src} -> {dst}")


@cli.command("rm")
@click.argument("path")
def rm_cmd(path: str) -> None:
    """Delete the file at PATH."""
    from dirkeeper.explorer.filesystem import delete_file

    try:
        delete_file(path)
    except (DirkeeperError, OSError) as exc:
        _fail(exc)
    click.echo(f"Deleted {path}")
