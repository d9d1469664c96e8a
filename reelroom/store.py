"""Hierarchical key/value tree with per-path change subscriptions.

Every piece of room state lives at a slash-separated path (``rooms/AB12CD/status``).
Writes replace a whole subtree; an empty map or ``None`` means "absent", so deleting
the last child of a node deletes the node too.

Readers react to change notifications. Each subscription keeps a mirror of the
subtree it watches and owns a private queue + consumer task, so callbacks for one
subscription run strictly one at a time and in the order the store accepted the
writes. Nothing is ordered across subscriptions.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from reelroom.errors import StoreError

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[None] | None]
ErrorSink = Callable[[Exception], Awaitable[None] | None]


# --- Paths and values ---


def split_path(path: str) -> list[str]:
    segments = [s for s in path.strip("/").split("/")]
    if not segments or any(not s for s in segments):
        raise ValueError(f"Invalid store path: {path!r}")
    return segments


def join_path(segments: list[str]) -> str:
    return "/".join(segments)


def normalize(value: Any) -> Any:
    """Deep-copy a value, dropping ``None`` children and empty maps."""
    if isinstance(value, dict):
        result = {}
        for key, child in value.items():
            child = normalize(child)
            if child is not None:
                result[str(key)] = child
        return result or None
    if isinstance(value, (list, tuple)):
        return [normalize(v) for v in value]
    return value


def get_in(tree: Any, segments: list[str]) -> Any:
    node = tree
    for segment in segments:
        if not isinstance(node, dict):
            return None
        node = node.get(segment)
    return node


def set_in(tree: Any, segments: list[str], value: Any) -> Any:
    """Return a copy of ``tree`` with ``value`` placed at ``segments``.

    Only the nodes along the path are copied; ``value`` must already be normalized.
    """
    if not segments:
        return value
    node = dict(tree) if isinstance(tree, dict) else {}
    head, rest = segments[0], segments[1:]
    child = set_in(node.get(head), rest, value)
    if child is None:
        node.pop(head, None)
    else:
        node[head] = child
    return node or None


def _overlaps(base: list[str], changed: list[str]) -> bool:
    n = min(len(base), len(changed))
    return base[:n] == changed[:n]


def _rebase(base: list[str], current: Any, changed: list[str], value: Any) -> Any:
    """Apply a write at ``changed`` to the mirror of the subtree at ``base``."""
    n = len(base)
    if changed[:n] == base:
        return set_in(current, changed[n:], value)
    if base[: len(changed)] == changed:
        return copy.deepcopy(get_in(value, base[len(changed):]))
    return current


async def invoke(handler: Callable, *args: Any) -> None:
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


# --- Snapshots ---


class Snapshot:
    """Point-in-time view of one subtree."""

    def __init__(self, key: str, value: Any):
        self.key = key
        self.value = value

    @property
    def exists(self) -> bool:
        return self.value is not None

    def child(self, path: str) -> Snapshot:
        segments = split_path(path)
        return Snapshot(segments[-1], get_in(self.value, segments))

    def children(self) -> list[Snapshot]:
        """Children in the store's own order (lexicographic on key)."""
        if not isinstance(self.value, dict):
            return []
        return [Snapshot(key, self.value[key]) for key in sorted(self.value)]

    @property
    def children_count(self) -> int:
        return len(self.value) if isinstance(self.value, dict) else 0

    def __repr__(self) -> str:
        return f"Snapshot({self.key!r}, {self.value!r})"


# --- Subscriptions ---


@dataclass
class ChildListener:
    """Callbacks for child events; each receives ``(key, value)``.

    ``on_removed`` receives the value the child had before removal.
    """

    on_added: Handler | None = None
    on_changed: Handler | None = None
    on_removed: Handler | None = None


class Subscription:
    """A live listener on one path. Detach to stop delivery."""

    def __init__(self, store: TreeStore, path: str, on_error: ErrorSink | None = None):
        self.store = store
        self.path = path
        self.segments = split_path(path)
        self._on_error = on_error
        self._value: Any = None
        self._backlog: list[tuple] = []
        self._queue: asyncio.Queue[tuple] = asyncio.Queue()
        self._pending = 0
        self._task: asyncio.Task | None = None
        self._detached = False

    @property
    def active(self) -> bool:
        return not self._detached

    @property
    def busy(self) -> bool:
        return not self._detached and (self._task is None or self._pending > 0)

    def offer(self, segments: list[str], value: Any) -> None:
        if self._detached or not _overlaps(self.segments, segments):
            return
        item = ("patch", segments, value)
        if self._task is None:
            # Initial read still in flight; replay after it.
            self._backlog.append(item)
        else:
            self._put(item)

    def fail(self, exc: Exception) -> None:
        if not self._detached:
            self._put(("error", None, exc))

    def detach(self) -> None:
        if self._detached:
            return
        self._detached = True
        self.store._forget(self)
        if self._task is not None:
            self._task.cancel()
        logger.debug(f"Detached subscription on {self.path}")

    def _start(self, initial: Any) -> None:
        self._put(("reset", None, initial))
        for item in self._backlog:
            self._put(item)
        self._backlog.clear()
        self._task = asyncio.create_task(self._run(), name=f"subscription:{self.path}")

    def _put(self, item: tuple) -> None:
        self._pending += 1
        self._queue.put_nowait(item)

    async def _run(self) -> None:
        while True:
            kind, segments, payload = await self._queue.get()
            try:
                if kind == "error":
                    await self._report(payload)
                elif kind == "reset":
                    old, self._value = self._value, payload
                    await self._deliver(old, payload, initial=True)
                else:
                    old = self._value
                    self._value = _rebase(self.segments, old, segments, payload)
                    await self._deliver(old, self._value, initial=False)
            except Exception as exc:
                await self._report(exc)
            finally:
                self._pending -= 1
                self._queue.task_done()

    async def _report(self, exc: Exception) -> None:
        if self._on_error is None:
            logger.error(f"Subscription on {self.path} failed: {exc}")
            return
        try:
            await invoke(self._on_error, exc)
        except Exception:
            logger.exception(f"Error sink for {self.path} raised")

    async def _deliver(self, old: Any, new: Any, initial: bool) -> None:
        raise NotImplementedError


class ValueSubscription(Subscription):
    """Delivers the current value, then every subsequent distinct value."""

    def __init__(self, store, path, on_change: Handler, on_error=None):
        super().__init__(store, path, on_error)
        self._on_change = on_change

    async def _deliver(self, old, new, initial):
        if initial or old != new:
            await invoke(self._on_change, copy.deepcopy(new))


class ChildSubscription(Subscription):
    """Delivers one ``on_added`` per existing child, then incremental child events."""

    def __init__(self, store, path, listener: ChildListener, on_error=None):
        super().__init__(store, path, on_error)
        self._listener = listener

    async def _deliver(self, old, new, initial):
        before = old if isinstance(old, dict) else {}
        after = new if isinstance(new, dict) else {}
        listener = self._listener

        for key in sorted(before.keys() - after.keys()):
            if listener.on_removed:
                await invoke(listener.on_removed, key, copy.deepcopy(before[key]))
        for key in sorted(after.keys() - before.keys()):
            if listener.on_added:
                await invoke(listener.on_added, key, copy.deepcopy(after[key]))
        for key in sorted(after.keys() & before.keys()):
            if after[key] != before[key] and listener.on_changed:
                await invoke(listener.on_changed, key, copy.deepcopy(after[key]))


# --- Stores ---


class TreeStore:
    """Backend-independent store adapter.

    Subclasses implement ``_load``, ``_store`` and ``_publish``. Backend failures of
    the types listed in ``transport_errors`` surface as ``StoreError``.
    """

    transport_errors: tuple[type[BaseException], ...] = ()

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    # --- Reads ---

    async def read_once(self, path: str) -> Snapshot:
        segments = split_path(path)
        try:
            value = await self._load(segments)
        except self.transport_errors as exc:
            raise StoreError(f"read {path} failed: {exc}", path=path) from exc
        return Snapshot(segments[-1], value)

    async def exists(self, path: str) -> bool:
        return (await self.read_once(path)).exists

    # --- Writes ---

    async def write(self, path: str, value: Any) -> None:
        """Replace the whole subtree at ``path``."""
        segments = split_path(path)
        value = normalize(value)
        try:
            await self._store(segments, value)
            await self._publish(segments, value)
        except self.transport_errors as exc:
            raise StoreError(f"write {path} failed: {exc}", path=path) from exc
        logger.debug(f"write {path} = {value!r}")

    async def write_field(self, path: str, key: str, value: Any) -> None:
        """Write one child of ``path`` without disturbing its siblings."""
        await self.write(f"{path}/{key}", value)

    async def delete(self, path: str) -> None:
        await self.write(path, None)

    # --- Subscriptions ---

    async def subscribe_value(
        self, path: str, on_change: Handler, on_error: ErrorSink | None = None
    ) -> ValueSubscription:
        return await self._attach(ValueSubscription(self, path, on_change, on_error))

    async def subscribe_children(
        self, path: str, listener: ChildListener, on_error: ErrorSink | None = None
    ) -> ChildSubscription:
        return await self._attach(ChildSubscription(self, path, listener, on_error))

    async def settle(self, timeout: float = 5.0) -> None:
        """Wait until every local subscription has handled everything queued for it."""
        async with asyncio.timeout(timeout):
            while any(sub.busy for sub in list(self._subscriptions)):
                await asyncio.sleep(0.001)

    async def close(self) -> None:
        for sub in list(self._subscriptions):
            sub.detach()

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    async def _attach(self, sub: Subscription) -> Subscription:
        await self._prepare_subscription()
        self._subscriptions.append(sub)
        try:
            initial = await self._load(sub.segments)
        except self.transport_errors as exc:
            self._forget(sub)
            raise StoreError(f"subscribe {sub.path} failed: {exc}", path=sub.path) from exc
        sub._start(initial)
        logger.debug(f"Subscribed to {sub.path}")
        return sub

    def _forget(self, sub: Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    def _dispatch(self, segments: list[str], value: Any) -> None:
        for sub in list(self._subscriptions):
            sub.offer(segments, value)

    def _fail_subscriptions(self, exc: Exception) -> None:
        for sub in list(self._subscriptions):
            sub.fail(exc)

    # --- Backend hooks ---

    async def _prepare_subscription(self) -> None:
        pass

    async def _load(self, segments: list[str]) -> Any:
        raise NotImplementedError

    async def _store(self, segments: list[str], value: Any) -> None:
        raise NotImplementedError

    async def _publish(self, segments: list[str], value: Any) -> None:
        raise NotImplementedError


class MemoryTreeStore(TreeStore):
    """In-process tree. Notifications are dispatched at write time."""

    def __init__(self, data: dict | None = None) -> None:
        super().__init__()
        self._root: Any = normalize(data)

    async def _load(self, segments):
        return copy.deepcopy(get_in(self._root, segments))

    async def _store(self, segments, value):
        self._root = set_in(self._root, segments, value)

    async def _publish(self, segments, value):
        self._dispatch(segments, value)

    def dump(self) -> dict:
        return copy.deepcopy(self._root) or {}
