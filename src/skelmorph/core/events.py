"""EventBus for decoupled publish/subscribe communication."""

from enum import Enum, auto
from typing import Any, Callable
from collections import defaultdict


class EventType(Enum):
    MESH_INDEXED = auto()            # data: mesh_key (str), bone_count (int)
    MORPHS_ACCUMULATED = auto()      # data: instance (str), targets (dict), version (int)
    TRANSLATIONS_RESOLVED = auto()   # data: instance (str), translations (dict)
    SKELETON_BAKED = auto()          # data: instance (str), mesh (SkinnedMesh), bone_count (int)
    MESH_SWAPPED = auto()            # data: instance (str), mesh (SkinnedMesh)


class EventBus:
    """Simple publish/subscribe event system."""

    def __init__(self):
        self._handlers: dict[EventType, list[Callable]] = defaultdict(list)

    def subscribe(self, event_type: EventType, handler: Callable) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: EventType, handler: Callable) -> None:
        handlers = self._handlers[event_type]
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event_type: EventType, **data: Any) -> None:
        for handler in self._handlers[event_type]:
            handler(**data)

    def clear(self) -> None:
        self._handlers.clear()
