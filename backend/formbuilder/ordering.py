from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


class ReorderInProgress(RuntimeError):
    """Raised when a second drag is dropped on a list while the first is still being saved."""
    pass


def _item_id(item: Any) -> Any:
    if isinstance(item, dict):
        return item.get("id")
    return getattr(item, "id", None)


def _with_position(item: Any, position: int) -> Any:
    if isinstance(item, dict):
        return {**item, "position": position}
    if hasattr(item, "model_copy"):
        return item.model_copy(update={"position": position})
    raise TypeError(f"Cannot set a position on {type(item).__name__}")


def _index_of(items: Sequence[Any], item_id: Any) -> int:
    for index, item in enumerate(items):
        if _item_id(item) == item_id:
            return index
    return -1


def renumber(items: Sequence[Any]) -> List[Any]:
    """Give every item its list index as position (0..n-1)."""
    return [_with_position(item, index) for index, item in enumerate(items)]


def reorder(items: Sequence[Any], source_id: Any, dest_id: Any) -> Sequence[Any]:
    """
    Move the item ``source_id`` to the slot currently held by ``dest_id``.

    Items between the two slots shift by one and keep their relative order;
    afterwards every position is renumbered densely. Returns the input
    untouched when the ids are equal or either one is not in the list.
    """
    if source_id == dest_id:
        return items
    old_index = _index_of(items, source_id)
    new_index = _index_of(items, dest_id)
    if old_index == -1 or new_index == -1:
        return items

    moved = list(items)
    item = moved.pop(old_index)
    moved.insert(new_index, item)
    return renumber(moved)


def remove(items: Sequence[Any], item_id: Any) -> List[Any]:
    """Drop one item and close the gap it leaves in the positions."""
    return renumber([item for item in items if _item_id(item) != item_id])


def position_updates(items: Sequence[Any]) -> List[Dict[str, Any]]:
    """The rows to upsert so the backing store matches ``items``."""
    updates = []
    for index, item in enumerate(items):
        updates.append({"id": _item_id(item), "position": index})
    return updates


def next_position(items: Sequence[Any]) -> int:
    positions = []
    for item in items:
        position = item.get("position") if isinstance(item, dict) else getattr(item, "position", None)
        if position is not None:
            positions.append(position)
    return max(positions) + 1 if positions else 0


PersistPositions = Callable[[List[Dict[str, Any]]], Awaitable[Any]]


class SortableList:
    """
    Client-side state of one sortable list (form fields in the editor,
    widgets on a dashboard).

    A move is shown immediately and then saved through ``persist``. Only one
    move may be saving at a time. If saving fails the list goes back to the
    order it had before the move, so it never drifts away from what the
    backend holds. After ``close()`` (the list was unmounted) late results
    are ignored.
    """

    def __init__(self, items: Sequence[Any], persist: PersistPositions):
        self.items: List[Any] = renumber(items)
        self._persist = persist
        self._in_flight: Optional[tuple] = None
        self.closed = False
        self.last_error: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self._in_flight is not None

    def ids(self) -> List[Any]:
        return [_item_id(item) for item in self.items]

    async def move(self, source_id: Any, dest_id: Any) -> bool:
        if self._in_flight is not None:
            raise ReorderInProgress(f"Move {self._in_flight} is still being saved")

        previous = self.items
        moved = reorder(previous, source_id, dest_id)
        if moved is previous:
            return True

        self.items = list(moved)
        self._in_flight = (source_id, dest_id)
        try:
            result = await self._persist(position_updates(self.items))
            error = getattr(result, "error", None)
        except Exception as e:
            error = str(e) or type(e).__name__
        finally:
            self._in_flight = None

        if self.closed:
            return False
        if error:
            logger.error(f"Saving positions failed, restoring previous order: {error}")
            self.items = previous
            self.last_error = str(error)
            return False
        self.last_error = None
        return True

    def close(self) -> None:
        self.closed = True
