from __future__ import annotations
import json
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Generic, Optional, Type, TypeVar

from pydantic import BaseModel

from app.schemas import ActionRecord, EventRecord
from settings import get_settings

ModelT = TypeVar("ModelT", bound=BaseModel)


class MockCollection(Generic[ModelT]):
    """Thread-safe keyed document collection with an optional JSON snapshot."""

    def __init__(
        self,
        name: str,
        model: Type[ModelT],
        key_field: str,
        persistence_path: Optional[Path] = None,
    ) -> None:
        self.name = name
        self.model = model
        self.key_field = key_field
        self._items: Dict[str, ModelT] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def put(self, item: ModelT) -> None:
        key = getattr(item, self.key_field)
        with self._lock:
            self._items[key] = item.model_copy(deep=True)
            self._persist()

    def get(self, key: str) -> Optional[ModelT]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            return item.model_copy(deep=True)

    def update(self, key: str, **changes: Any) -> Optional[ModelT]:
        """Apply field changes atomically and return the stored copy."""
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            updated = item.model_copy(update=changes, deep=True)
            self._items[key] = updated
            self._persist()
            return updated.model_copy(deep=True)

    def scan(self) -> list[ModelT]:
        """Return deep copies of all stored items."""

        with self._lock:
            return [item.model_copy(deep=True) for item in self._items.values()]

    def query(
        self,
        order_by: Callable[[ModelT], Any],
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> list[ModelT]:
        items = sorted(self.scan(), key=order_by, reverse=descending)
        if limit is not None:
            return items[:limit]
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {key: item.model_dump(mode="json") for key, item in self._items.items()}
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for key, payload in data.items():
            self._items[key] = self.model.model_validate(payload)


def _path_or_none(value: Optional[str]) -> Optional[Path]:
    return Path(value) if value else None


@lru_cache
def build_default_event_collection(path: Optional[str] = None) -> MockCollection[EventRecord]:
    settings = get_settings()
    events_path = settings.events_path if path is None else path
    return MockCollection(
        name="events",
        model=EventRecord,
        key_field="event_id",
        persistence_path=_path_or_none(events_path),
    )


@lru_cache
def build_default_action_collection(path: Optional[str] = None) -> MockCollection[ActionRecord]:
    settings = get_settings()
    actions_path = settings.actions_path if path is None else path
    return MockCollection(
        name="actions",
        model=ActionRecord,
        key_field="action_id",
        persistence_path=_path_or_none(actions_path),
    )
