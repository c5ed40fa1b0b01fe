"""Headless view tree used as the mount point for step renderers.

A `Container` is what a browser step would call its DOM element: an ordered
list of JSON-able blocks plus the listeners wired to them. The host
serializes `snapshot()` to clients and feeds user input back through
`dispatch()`. `Window` stands in for window-level listeners (keys, resize).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Block:
    kind: str
    id: str | None = None
    props: dict[str, Any] = field(default_factory=dict)
    children: list["Block"] = field(default_factory=list)

    def walk(self) -> Iterator["Block"]:
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"kind": self.kind, **self.props}
        if self.id is not None:
            out["id"] = self.id
        if self.children:
            out["children"] = [c.to_dict() for c in self.children]
        return out


def block(kind: str, id: str | None = None, *children: Block, **props: Any) -> Block:
    return Block(kind=kind, id=id, props=props, children=list(children))


@dataclass(frozen=True, slots=True)
class UiEvent:
    """User input routed into a player.

    `type` is e.g. "click", "key", "pointer_move", "pointer_down", "submit", "resize".
    `target` is a block id for block-scoped events.
    """

    type: str
    target: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


Handler = Callable[[UiEvent], None]


class Container:
    def __init__(self, name: str = "root") -> None:
        self.name = name
        self.blocks: list[Block] = []
        self.version = 0
        self._listeners: dict[tuple[str, str | None], list[Handler]] = defaultdict(list)
        self._subscribers: list[Callable[["Container"], None]] = []

    # -- painting --------------------------------------------------------

    def render(self, *blocks: Block) -> None:
        """Replace the whole subtree. Listeners bound to vanished blocks go with them."""

        self.blocks = list(blocks)
        live = self._live_ids()
        for key in [k for k in self._listeners if k[1] is not None and k[1] not in live]:
            del self._listeners[key]
        self._changed()

    def append(self, child: Block, *, parent: str | None = None) -> None:
        if parent is None:
            self.blocks.append(child)
        else:
            self.require(parent).children.append(child)
        self._changed()

    def update(self, block_id: str, **props: Any) -> Block:
        target = self.require(block_id)
        target.props.update(props)
        self._changed()
        return target

    def set_children(self, block_id: str, children: list[Block]) -> None:
        self.require(block_id).children = list(children)
        self._changed()

    def remove(self, block_id: str) -> bool:
        def _prune(items: list[Block]) -> bool:
            for i, b in enumerate(items):
                if b.id == block_id:
                    del items[i]
                    return True
                if _prune(b.children):
                    return True
            return False

        removed = _prune(self.blocks)
        if removed:
            self._changed()
        return removed

    def find(self, block_id: str) -> Block | None:
        for top in self.blocks:
            for b in top.walk():
                if b.id == block_id:
                    return b
        return None

    def require(self, block_id: str) -> Block:
        found = self.find(block_id)
        if found is None:
            raise KeyError(f"No block with id {block_id!r} in container {self.name!r}")
        return found

    def clear(self) -> None:
        self.blocks = []
        self._listeners.clear()
        self._changed()

    # -- events ----------------------------------------------------------

    def on(self, event_type: str, handler: Handler, *, target: str | None = None) -> Callable[[], None]:
        key = (event_type, target)
        self._listeners[key].append(handler)

        def _off() -> None:
            handlers = self._listeners.get(key)
            if handlers and handler in handlers:
                handlers.remove(handler)

        return _off

    def listener_count(self) -> int:
        return sum(len(v) for v in self._listeners.values())

    def dispatch(self, event: UiEvent) -> bool:
        handlers: list[Handler] = []
        if event.target is not None:
            target = self.find(event.target)
            if target is None or target.props.get("disabled"):
                return False
            handlers.extend(self._listeners.get((event.type, event.target), ()))
        handlers.extend(self._listeners.get((event.type, None), ()))
        for h in list(handlers):
            h(event)
        return bool(handlers)

    # -- observation -----------------------------------------------------

    def subscribe(self, callback: Callable[["Container"], None]) -> Callable[[], None]:
        self._subscribers.append(callback)
        return lambda: self._subscribers.remove(callback) if callback in self._subscribers else None

    def snapshot(self) -> list[dict[str, Any]]:
        return [b.to_dict() for b in self.blocks]

    def text_content(self) -> str:
        """Flatten every text-like prop; handy in logs and tests."""

        parts: list[str] = []
        for top in self.blocks:
            for b in top.walk():
                for key in ("text", "label", "title"):
                    value = b.props.get(key)
                    if isinstance(value, str) and value:
                        parts.append(value)
        return "\n".join(parts)

    def _live_ids(self) -> set[str]:
        return {b.id for top in self.blocks for b in top.walk() if b.id is not None}

    def _changed(self) -> None:
        self.version += 1
        for cb in list(self._subscribers):
            cb(self)


class Window:
    """Window-level listeners and viewport size shared by every step of a player."""

    def __init__(self, *, width: int = 480, height: int = 600) -> None:
        self.width = width
        self.height = height
        self._listeners: dict[str, list[Handler]] = defaultdict(list)

    def add_listener(self, event_type: str, handler: Handler) -> None:
        self._listeners[event_type].append(handler)

    def remove_listener(self, event_type: str, handler: Handler) -> None:
        handlers = self._listeners.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event_type: str | None = None) -> int:
        if event_type is not None:
            return len(self._listeners.get(event_type, ()))
        return sum(len(v) for v in self._listeners.values())

    def dispatch(self, event: UiEvent) -> bool:
        if event.type == "resize":
            self.width = int(event.data.get("width", self.width))
            self.height = int(event.data.get("height", self.height))
        handlers = list(self._listeners.get(event.type, ()))
        for h in handlers:
            h(event)
        return bool(handlers)


class ScopedWindow:
    """Step-scoped view of a `Window`; `dispose()` removes whatever the step left attached."""

    def __init__(self, window: Window) -> None:
        self._window = window
        self._owned: list[tuple[str, Handler]] = []

    @property
    def width(self) -> int:
        return self._window.width

    @property
    def height(self) -> int:
        return self._window.height

    def add_listener(self, event_type: str, handler: Handler) -> None:
        self._window.add_listener(event_type, handler)
        self._owned.append((event_type, handler))

    def remove_listener(self, event_type: str, handler: Handler) -> None:
        self._window.remove_listener(event_type, handler)
        if (event_type, handler) in self._owned:
            self._owned.remove((event_type, handler))

    def owned_count(self) -> int:
        return len(self._owned)

    def dispose(self) -> int:
        leaked = len(self._owned)
        if leaked:
            logger.warning("Removing %d window listener(s) a step left attached", leaked)
        for event_type, handler in self._owned:
            self._window.remove_listener(event_type, handler)
        self._owned.clear()
        return leaked
