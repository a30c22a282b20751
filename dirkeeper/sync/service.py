"""Sync request handling: validate the request, resolve the pair, run the engine."""

import logging

from dirkeeper.errors import ConflictError, InvalidPathError, SameSourceDestinationError
from dirkeeper.explorer.filesystem import LocalFilesystem
from dirkeeper.schemas.catalog import SyncPair, SyncReport
from dirkeeper.sync.catalog import Catalog
from dirkeeper.sync.engine import normalize_dir, same_directory, sync_unique_files

logger = logging.getLogger(__name__)


def resolve_pair(catalog: Catalog, source: str, destination: str, *, force: bool) -> SyncPair:
    """Find the pair for (source, destination), creating it only when forced.

    Raises:
        ConflictError: The pair is unknown and ``force`` is not set.
    """
    pair = catalog.find_pair(source, destination)
    if pair is not None:
        return pair
    if not force:
        raise ConflictError(
            f"No sync pair for {source} -> {destination}; confirm to create it"
        )
    return catalog.get_or_create_pair(source, destination)


def request_sync(
    catalog: Catalog,
    source: str | None,
    destination: str | None,
    *,
    force: bool = False,
    fs: LocalFilesystem | None = None,
) -> SyncReport:
    """Run a sync for a (source, destination) request.

    Raises:
        InvalidPathError: ``source`` or ``destination`` is missing.
        ConflictError: The pair is unknown and ``force`` is not set.
        SameSourceDestinationError: Both paths name the same directory.
    """
    missing = [
        field
        for field, value in (("source", source), ("destination", destination))
        if value is None or not value.strip()
    ]
    if missing:
        raise InvalidPathError(f"Missing required field(s): {', '.join(missing)}")

    source = normalize_dir(source)
    destination = normalize_dir(destination)
    if same_directory(source, destination, fs):
        raise SameSourceDestinationError(
            f"Source and destination cannot be the same: {source}"
        )

    pair = resolve_pair(catalog, source, destination, force=force)
    logger.debug("Resolved sync pair %d for %s -> %s", pair.id, source, destination)
    return sync_unique_files(catalog, source, destination, pair.id, fs=fs)
