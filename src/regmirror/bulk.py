"""
Bulk import and export of .reg files.

An import can touch any part of the store, so afterwards the cache is either
invalidated wholesale or, when the caller knows which keys were affected,
pruned at those keys with their parents refreshed in the background.
"""

from __future__ import annotations

from typing import Iterable

from regmirror.key import KeyNode
from regmirror.logging import get_logger
from regmirror.namespace import Registry, get_registry
from regmirror.types import View

logger = get_logger(__name__)


async def import_file(
    file_path: str,
    view: View | str | None = None,
    affected: Iterable[KeyNode] | None = None,
    *,
    registry: Registry | None = None,
) -> bool:
    """Import a .reg file into the store and invalidate the cache.

    Args:
        file_path: .reg file to import, passed through to the tool.
        view: View to import into. The tool's default when None.
        affected: Keys the import is known to change. When given, only these are
            dropped from the cache and each distinct parent is re-read in the
            background; otherwise every root of the view is discarded.
        registry: Registry whose cache to invalidate. Defaults to get_registry().

    Returns:
        True if the import succeeded.
    """
    registry = registry or get_registry()
    args = [str(file_path)]
    if view:
        args.append(registry.coerce_view(view).flag)

    if not await registry.run("IMPORT", args):
        return False

    if affected is None:
        dropped = registry.invalidate(view)
        logger.info("Imported registry file", file=str(file_path), roots_dropped=dropped)
        return True

    parents: set[KeyNode] = set()
    for node in affected:
        parent = node.parent
        if parent is None:
            continue
        node._detach()
        parents.add(parent)

    for parent in parents:
        registry.schedule_reread(parent)

    logger.info(
        "Imported registry file",
        file=str(file_path),
        parents_refreshing=len(parents),
    )
    return True


async def export_key(
    path: str,
    file_path: str,
    view: View | str | None = None,
    *,
    registry: Registry | None = None,
) -> bool:
    """Export a key's subtree to a .reg file."""
    registry = registry or get_registry()
    return await registry.resolve(path, view).export(file_path)
