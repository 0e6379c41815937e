"""
Key path resolution and the root partitions of the cache.

A Registry owns two independent universes of cached keys, one per view, each
mapping a host name ("" for the local machine) to a root KeyNode. Resolving a
path validates it, then walks (creating placeholders) from the matching root
without contacting the store.
"""

from __future__ import annotations

import asyncio
import re
from functools import lru_cache

from regmirror.config import Settings, get_settings
from regmirror.exceptions import (
    ExternalOperationError,
    IllegalHiveError,
    IllegalKeyError,
    IllegalViewError,
    RemoteHiveError,
)
from regmirror.executor import Executor, SubprocessExecutor
from regmirror.key import KeyNode
from regmirror.logging import get_logger
from regmirror.types import HIVES, HIVES_SHORT, REMOTE_HIVES, View

logger = get_logger(__name__)

_KEY_PATTERN = re.compile(r"^(?:\\[\w ]+)*$")


def parse_key_path(path: str) -> tuple[str, str, list[str]]:
    """Split a key path into host, long hive name and sub-key segments.

    Accepts ``\\\\host\\HIVE\\sub\\keys`` and ``HIVE\\sub\\keys`` with short or
    long hive names.

    Raises:
        IllegalHiveError: If the hive is unknown.
        RemoteHiveError: If a remote path names a hive other than HKLM or HKU.
        IllegalKeyError: If the sub-key segments are malformed.
    """
    host = ""
    key = path
    if key.startswith("\\\\"):
        i = key.find("\\", 2)
        if i == -1:
            host, key = key[2:], ""
        else:
            host, key = key[2:i], key[i + 1 :]

    i = key.find("\\")
    if i == -1:
        i = len(key)
    hive, rest = key[:i].upper(), key[i:]

    if hive in HIVES_SHORT:
        hive = HIVES[HIVES_SHORT.index(hive)]
    elif hive not in HIVES:
        raise IllegalHiveError(
            "Illegal hive specified",
            context={"field": "hive", "value": key[:i], "expected": ", ".join(HIVES)},
        )

    if host and hive not in REMOTE_HIVES:
        raise RemoteHiveError(
            "For remote access the root key must be HKLM or HKU",
            context={"host": host, "value": hive},
        )

    rest = rest.rstrip("\\")
    if not _KEY_PATTERN.match(rest):
        raise IllegalKeyError(
            "Illegal key specified",
            context={"field": "key", "value": rest, "expected": "word characters and spaces"},
        )

    return host, hive, [segment for segment in rest.split("\\") if segment]


class Registry:
    """Process-wide cache of registry keys, partitioned by view and host."""

    def __init__(
        self,
        executor: Executor | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the registry cache.

        Args:
            executor: Runs tool commands. Defaults to a SubprocessExecutor.
            settings: Settings to use. Defaults to get_settings().
        """
        self.settings = settings or get_settings()
        self.executor: Executor = executor or SubprocessExecutor(settings=self.settings)
        self._partitions: dict[View, dict[str, KeyNode]] = {View.BIT32: {}, View.BIT64: {}}
        self._refreshes: set[asyncio.Task[object]] = set()

    def coerce_view(self, view: View | str | None) -> View:
        """Validate a view, falling back to the configured default.

        Raises:
            IllegalViewError: If view is not "32" or "64".
        """
        if view is None or view == "":
            return View(self.settings.REG_DEFAULT_VIEW)
        try:
            return View(view)
        except ValueError as e:
            raise IllegalViewError(
                "Illegal view specified (use 32 or 64)",
                context={"field": "view", "value": view},
            ) from e

    def root(self, host: str = "", view: View | str | None = None) -> KeyNode:
        """Get or create the root for a (view, host) pair."""
        resolved = self.coerce_view(view)
        hosts = self._partitions[resolved]
        node = hosts.get(host.casefold())
        if node is None:
            node = hosts[host.casefold()] = KeyNode(host, registry=self, view=resolved)
        return node

    def roots(self, view: View | str | None = None) -> list[KeyNode]:
        """Roots currently cached for a view."""
        return list(self._partitions[self.coerce_view(view)].values())

    def resolve(self, path: str, view: View | str | None = None) -> KeyNode:
        """Resolve a key path to its cached node, creating placeholders as needed.

        Raises:
            ValidationError: If the path or view is invalid.
        """
        host, hive, segments = parse_key_path(path)
        root = self.root(host, view)
        return root.get_child("\\".join([hive, *segments]))

    def invalidate(self, view: View | str | None = None, host: str | None = None) -> int:
        """Discard cached roots of a view, or only the one for host.

        Returns:
            Number of roots discarded.
        """
        hosts = self._partitions[self.coerce_view(view)]
        if host is not None:
            return 1 if hosts.pop(host.casefold(), None) is not None else 0
        count = len(hosts)
        hosts.clear()
        return count

    async def run(self, command: str, args: list[str]) -> bool:
        """Run a tool command that is not scoped to one key."""
        try:
            await self.executor.run(command, args)
        except ExternalOperationError as e:
            logger.warning(
                "Registry command failed",
                command=command,
                exit_code=e.exit_code,
                error=e.message,
            )
            return False
        return True

    def schedule_reread(self, node: KeyNode) -> asyncio.Task[object]:
        """Re-read a key in the background, logging rather than raising failures."""
        task: asyncio.Task[object] = asyncio.ensure_future(node.reread())
        self._refreshes.add(task)
        task.add_done_callback(self._refresh_done)
        return task

    def _refresh_done(self, task: asyncio.Task[object]) -> None:
        self._refreshes.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Background refresh failed", error=str(error))

    async def wait_for_refreshes(self) -> None:
        """Wait until every scheduled background re-read has finished."""
        while self._refreshes:
            await asyncio.gather(*list(self._refreshes), return_exceptions=True)


@lru_cache
def get_registry() -> Registry:
    """Get the process-wide default registry."""
    return Registry()


def clear_registry_cache() -> None:
    """Forget the default registry and everything it cached (useful for testing)."""
    get_registry.cache_clear()


def get_key(path: str, view: View | str | None = None) -> KeyNode:
    """Resolve a key path against the default registry."""
    return get_registry().resolve(path, view)
