"""
In-memory realtime key-value store with change subscriptions.

Values live in one JSON-like tree addressed by '/'-separated paths
("rooms/room3/players/p2/presence"). Subscribers receive the value at their
path after every write that changes it, delivered in write order through a
single queue. Writes made from inside a subscriber callback are queued behind
the delivery in progress, so every subscriber observes writes in the order
they were issued.
"""
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional
import copy
import itertools
import logging

logger = logging.getLogger(__name__)

Callback = Callable[[Any], Awaitable[None]]


@dataclass
class TransactionResult:
    committed: bool
    value: Any


class _Subscription:
    def __init__(self, sub_id: int, parts: List[str], callback: Callback):
        self.id = sub_id
        self.parts = parts
        self.callback = callback
        self.active = True


def _split(path: str) -> List[str]:
    return [p for p in path.split("/") if p]


def _overlaps(a: List[str], b: List[str]) -> bool:
    n = min(len(a), len(b))
    return a[:n] == b[:n]


def _prune(value: Any) -> Any:
    """Drop None leaves and empty maps, the way the store never holds them."""
    if isinstance(value, dict):
        cleaned = {}
        for k, v in value.items():
            v = _prune(v)
            if v is not None:
                cleaned[str(k)] = v
        return cleaned or None
    if isinstance(value, (list, tuple)):
        return [_prune(v) for v in value]
    return value


class RealtimeStore:
    def __init__(self):
        self._root: Dict[str, Any] = {}
        self._subscriptions: Dict[int, _Subscription] = {}
        self._ids = itertools.count(1)
        self._pending: deque = deque()
        self._delivering = False
        self._on_disconnect: Dict[str, Dict[str, Any]] = {}

    # --- reads ---

    def _read(self, parts: List[str]) -> Any:
        node: Any = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    async def get(self, path: str) -> Any:
        return copy.deepcopy(self._read(_split(path)))

    # --- writes ---

    def _write(self, parts: List[str], value: Any):
        value = _prune(copy.deepcopy(value))
        if not parts:
            self._root = value if isinstance(value, dict) else {}
            return
        node = self._root
        trail = []
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                if value is None:
                    return
                child = {}
                node[part] = child
            trail.append((node, part))
            node = child
        if value is None:
            node.pop(parts[-1], None)
        else:
            node[parts[-1]] = value
        # Remove parents left empty by a delete
        for parent, key in reversed(trail):
            if parent[key]:
                break
            del parent[key]

    def _affected(self, written: List[List[str]]) -> List[tuple]:
        affected = []
        for sub in self._subscriptions.values():
            if any(_overlaps(sub.parts, parts) for parts in written):
                affected.append((sub, copy.deepcopy(self._read(sub.parts))))
        return affected

    async def _commit(self, writes: List[tuple]):
        written = [parts for parts, _ in writes]
        before = self._affected(written)
        for parts, value in writes:
            self._write(parts, value)
        for sub, old in before:
            new = self._read(sub.parts)
            if new != old:
                self._pending.append((sub, copy.deepcopy(new)))
        await self._deliver()

    async def set(self, path: str, value: Any):
        await self._commit([(_split(path), value)])

    async def update(self, path: str, fields: Dict[str, Any]):
        base = _split(path)
        await self._commit([(base + _split(key), value) for key, value in fields.items()])

    async def transact(self, path: str, fn: Callable[[Any], Any]) -> TransactionResult:
        """Atomic read-modify-write. ``fn`` returns the new value, or None to abort."""
        parts = _split(path)
        current = copy.deepcopy(self._read(parts))
        new_value = fn(current)
        if new_value is None:
            return TransactionResult(False, copy.deepcopy(self._read(parts)))
        await self._commit([(parts, new_value)])
        return TransactionResult(True, copy.deepcopy(self._read(parts)))

    # --- subscriptions ---

    async def subscribe(self, path: str, callback: Callback) -> Callable[[], None]:
        sub = _Subscription(next(self._ids), _split(path), callback)
        self._subscriptions[sub.id] = sub
        self._pending.append((sub, copy.deepcopy(self._read(sub.parts))))

        def unsubscribe():
            sub.active = False
            self._subscriptions.pop(sub.id, None)

        await self._deliver()
        return unsubscribe

    async def _deliver(self):
        if self._delivering:
            return
        self._delivering = True
        try:
            while self._pending:
                sub, value = self._pending.popleft()
                if not sub.active:
                    continue
                try:
                    await sub.callback(value)
                except Exception:
                    logger.exception("Subscriber for '%s' failed", "/".join(sub.parts))
        finally:
            self._delivering = False

    # --- presence ---

    def on_disconnect_set(self, client_id: str, path: str, value: Any):
        self._on_disconnect.setdefault(client_id, {})[path] = value

    def cancel_on_disconnect(self, client_id: str):
        self._on_disconnect.pop(client_id, None)

    async def disconnect(self, client_id: str):
        """Apply every write registered for a dropped client connection."""
        actions = self._on_disconnect.pop(client_id, {})
        if not actions:
            return
        logger.info("Client %s disconnected, applying %d on-disconnect write(s)", client_id, len(actions))
        await self._commit([(_split(path), value) for path, value in actions.items()])

    def clear(self):
        self._root = {}
        self._subscriptions.clear()
        self._pending.clear()
        self._on_disconnect.clear()
