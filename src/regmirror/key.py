"""
Cached registry keys.

A KeyNode mirrors one key of the external registry. Nodes form a tree per
(view, host) root; children appear lazily, either when a path is resolved or
when a read of the parent lists them. Each node memoizes the values of its key
as a single asyncio task, which doubles as the lock that keeps concurrent
readers from issuing duplicate queries.
"""

from __future__ import annotations

import asyncio
import functools
import re
from typing import TYPE_CHECKING, Callable, Iterator

from regmirror.exceptions import ExternalOperationError, RegError, ValidationError
from regmirror.executor import ProcessResult
from regmirror.logging import get_logger, log_context
from regmirror.types import HIVES, Existence, View
from regmirror.values import VALUE_TYPES, MultiString, RegValue, value_type

if TYPE_CHECKING:
    from regmirror.namespace import Registry

logger = get_logger(__name__)

ValueSet = dict[str, RegValue]

# How reg.exe names the unnamed value of a key
DEFAULT_VALUE_LABEL = "(Default)"
_VALUE_NOT_SET = "(value not set)"

_TYPE_ALTERNATION = "|".join(
    sorted((f"REG_{name}" for name in VALUE_TYPES), key=len, reverse=True)
)
_ITEM_PATTERN = re.compile(
    rf"^(?P<name>.*?)\s+(?P<type>{_TYPE_ALTERNATION})(?:\s+(?P<data>.*))?$"
)
_PATH_PATTERN = re.compile(
    r"^(?:\\\\[^\\]+\\)?(?:" + "|".join(HIVES) + r")\\.+$",
    re.IGNORECASE,
)


def _name_args(name: str) -> list[str]:
    return ["/v", name] if name else ["/ve"]


def _resolved(task: asyncio.Task[ValueSet]) -> bool:
    return task.done() and not task.cancelled() and task.exception() is None


def _apply_if_resolved(task: asyncio.Task[ValueSet], update: Callable[[ValueSet], object]) -> None:
    if _resolved(task):
        update(task.result())


class KeyNode:
    """One key in the cached registry tree.

    Attributes:
        name: Key name, the host name for a root (empty for the local machine).
        parent: Parent key, None for a root.
        existence: What is known about the key's existence in the store.
    """

    def __init__(
        self,
        name: str,
        parent: KeyNode | None = None,
        *,
        registry: Registry | None = None,
        view: View | None = None,
    ) -> None:
        self.name = name
        self.parent = parent
        self.existence = Existence.UNKNOWN
        self._children: dict[str, KeyNode] = {}
        self._values: asyncio.Task[ValueSet] | None = None
        # Only roots carry these; descendants look them up
        self._registry = registry
        self._view = view

    # ------------------------------------------------------------------
    # Tree navigation
    # ------------------------------------------------------------------

    def _root_and_path(self) -> tuple[KeyNode, str]:
        segments: list[str] = []
        node = self
        while node.parent is not None:
            segments.append(node.name)
            node = node.parent

        path = "\\".join(reversed(segments))
        if node.name:
            path = f"\\\\{node.name}\\{path}" if path else f"\\\\{node.name}"
        return node, path

    @property
    def root(self) -> KeyNode:
        return self._root_and_path()[0]

    @property
    def path(self) -> str:
        """Full path, prefixed with \\\\host for remote keys."""
        return self._root_and_path()[1]

    @property
    def view(self) -> View:
        """View of the partition this node's root belongs to."""
        view = self.root._view
        if view is None:
            raise RegError("Key is not attached to a registry view", context={"key": self.path})
        return view

    @property
    def registry(self) -> Registry:
        registry = self.root._registry
        if registry is None:
            raise RegError("Key is not attached to a registry", context={"key": self.path})
        return registry

    @staticmethod
    def _child_key(name: str) -> str:
        # Registry names are case-insensitive
        return name.casefold()

    def get_child(self, relative_path: str) -> KeyNode:
        """Get (creating placeholders as needed) a descendant by relative path.

        Never contacts the store.
        """
        node = self
        for segment in relative_path.split("\\"):
            if not segment:
                continue
            key = self._child_key(segment)
            child = node._children.get(key)
            if child is None:
                child = node._children[key] = KeyNode(segment, node)
            node = child
        return node

    def has_child(self, name: str) -> bool:
        """Whether a child of this name is currently known."""
        return self._child_key(name) in self._children

    def children(self) -> Iterator[KeyNode]:
        """Iterate over the children discovered so far. Does not read."""
        yield from list(self._children.values())

    def __iter__(self) -> Iterator[KeyNode]:
        return self.children()

    def _add_found_key(self, name: str) -> None:
        if not name:
            return
        self.get_child(name).existence = Existence.CONFIRMED

    def _detach(self) -> bool:
        parent = self.parent
        if parent is None:
            return False
        key = self._child_key(self.name)
        if parent._children.get(key) is self:
            del parent._children[key]
            return True
        return False

    # ------------------------------------------------------------------
    # Existence tracking
    # ------------------------------------------------------------------

    def confirm_ancestors(self) -> None:
        """Mark this key and every ancestor as existing. Idempotent."""
        node: KeyNode | None = self
        while node is not None and node.existence is not Existence.CONFIRMED:
            node.existence = Existence.CONFIRMED
            node = node.parent

    def _mark_absent(self) -> None:
        self.existence = Existence.ABSENT
        self._values = None
        for child in self._children.values():
            child._mark_absent()

    def _listing_known(self) -> bool:
        return self._values is not None and _resolved(self._values)

    # ------------------------------------------------------------------
    # External commands
    # ------------------------------------------------------------------

    async def _run(self, command: str, *args: str) -> ProcessResult:
        path = self.path
        view = self.view
        with log_context(key=path, view=view.value, command=command):
            logger.debug("Running registry command", args=list(args))
            return await self.registry.executor.run(command, [path, *args, view.flag])

    async def _run_ok(self, command: str, *args: str) -> bool:
        try:
            await self._run(command, *args)
        except ExternalOperationError as e:
            logger.warning(
                "Registry command failed",
                key=self.path,
                command=command,
                exit_code=e.exit_code,
                error=e.message,
            )
            return False
        return True

    def _update_values(self, update: Callable[[ValueSet], object]) -> None:
        """Apply update to the memoized values, now or once an in-flight read resolves."""
        task = self._values
        if task is None:
            return
        if task.done():
            _apply_if_resolved(task, update)
        else:
            task.add_done_callback(functools.partial(_apply_if_resolved, update=update))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _query(self) -> ValueSet:
        result = await self._run("QUERY")
        own_path = self.path.casefold()
        values: ValueSet = {}

        # Strip only the indent, trailing blanks are REG_SZ data
        lines = (line.lstrip() for line in result.stdout.splitlines())
        lines = (line for line in lines if line.strip())
        # The first line echoes the queried path
        next(lines, None)

        for line in lines:
            item = _ITEM_PATTERN.match(line)
            if item:
                self._add_value(values, item.group("name"), item.group("type"), item.group("data") or "")
                continue

            path = line.rstrip()
            if _PATH_PATTERN.match(path):
                if path.casefold() != own_path:
                    self._add_found_key(path.rsplit("\\", 1)[1])
                continue

            logger.debug("Skipping unrecognised query output", line=line)

        self.confirm_ancestors()
        return values

    def _add_value(self, values: ValueSet, name: str, type_name: str, data: str) -> None:
        if name == DEFAULT_VALUE_LABEL:
            name = ""
            if data == _VALUE_NOT_SET:
                return
        cls = value_type(type_name)
        if cls is None:
            return
        try:
            values[name] = cls.parse(data)
        except ValidationError as e:
            logger.debug("Skipping unparseable value", name=name, type=type_name, error=e.message)

    def _forget_failed_read(self, task: asyncio.Task[ValueSet]) -> None:
        if self._values is task and not _resolved(task):
            self._values = None

    async def reread(self) -> ValueSet:
        """Query the store again, replacing any memoized values.

        Raises:
            ExternalOperationError: If the query fails.
        """
        task = asyncio.ensure_future(self._query())
        task.add_done_callback(self._forget_failed_read)
        self._values = task
        return await asyncio.shield(task)

    async def read_values(self) -> ValueSet:
        """Get the values of this key, querying the store at most once.

        Concurrent callers share one in-flight query.

        Returns:
            Mapping of value name ("" for the default value) to value.

        Raises:
            ExternalOperationError: If the query fails.
        """
        task = self._values
        if task is None:
            return await self.reread()
        return await asyncio.shield(task)

    async def get_value(self, name: str) -> RegValue | None:
        """Get one value by name ("" for the default value)."""
        return (await self.read_values()).get(name)

    async def exists(self) -> bool:
        """Whether the key exists. Never raises for store failures."""
        if self.existence is Existence.CONFIRMED:
            return True

        parent = self.parent
        if (
            parent is not None
            and parent.existence is Existence.CONFIRMED
            and parent._listing_known()
        ):
            # The parent's listing would have confirmed this key
            return False

        try:
            await self.read_values()
        except ExternalOperationError:
            self._mark_absent()
            return False
        return True

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self) -> KeyNode | None:
        """Create the key if absent.

        Returns:
            This node on success, None if the key could not be created.
        """
        if not await self._run_ok("ADD", "/f"):
            return None
        self.confirm_ancestors()
        return self

    async def clear(self) -> bool:
        """Delete every value of the key.

        The memoized values are purged even if the command fails.
        """
        self._update_values(lambda values: values.clear())
        if not await self._run_ok("DELETE", "/f", "/va"):
            return False
        self.confirm_ancestors()
        return True

    async def destroy(self) -> bool:
        """Delete the key and its subtree, detaching it from the cache on success."""
        if not await self._run_ok("DELETE", "/f"):
            return False
        self._detach()
        self._mark_absent()
        return True

    async def delete_value(self, name: str) -> bool:
        """Delete one value ("" for the default value)."""
        if not await self._run_ok("DELETE", *_name_args(name), "/f"):
            return False
        self._update_values(lambda values: values.pop(name, None))
        return True

    async def set_value(self, name: str, value: RegValue) -> bool:
        """Set one value ("" for the default value), creating the key if needed.

        Raises:
            ValidationError: If a REG_MULTI_SZ element contains the configured
                separator. Nothing is sent to the store.
        """
        separator = self.registry.settings.REG_MULTI_SZ_SEPARATOR
        args = [*_name_args(name), "/t", value.reg_type]
        if isinstance(value, MultiString):
            args += ["/s", separator]
        args += ["/d", value.to_command_data(separator), "/f"]

        if not await self._run_ok("ADD", *args):
            return False
        self.confirm_ancestors()
        self._update_values(lambda values: values.__setitem__(name, value))
        return True

    async def set_value_string(self, name: str, type_name: str, text: str) -> bool:
        """Parse text as the named type and set it.

        Raises:
            ValidationError: If the type is unknown or the text invalid for it.
        """
        cls = value_type(type_name)
        if cls is None:
            raise ValidationError(
                "Unknown value type",
                context={"field": "type", "value": type_name},
            )
        return await self.set_value(name, cls.parse(text))

    async def export(self, file_path: str) -> bool:
        """Export the key's subtree to a .reg file."""
        return await self._run_ok("EXPORT", str(file_path), "/y")

    def __str__(self) -> str:
        return self.path

    def __repr__(self) -> str:
        return f"KeyNode({self.path!r}, existence={self.existence.value})"
