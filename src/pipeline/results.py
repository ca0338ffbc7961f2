"""Reducer over the observable result collection.

Every change to the collection is an update value applied by :func:`reduce`,
which returns a new collection. :class:`ResultStore` tags each dispatch with
the generation of the video it was produced for and drops it when the active
video has changed in the meantime.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterator, Optional, Sequence, Tuple, Union

from .types import AnalysisRecord, ItemStatus, ResultItem


@dataclass(frozen=True)
class ReplaceAll:
    items: Tuple[ResultItem, ...]


@dataclass(frozen=True)
class Prepend:
    item: ResultItem


@dataclass(frozen=True)
class AttachThumbnail:
    item_id: str
    thumbnail: bytes


@dataclass(frozen=True)
class MarkReady:
    item_id: str
    record: AnalysisRecord


@dataclass(frozen=True)
class MarkFailed:
    item_id: str
    message: str


Update = Union[ReplaceAll, Prepend, AttachThumbnail, MarkReady, MarkFailed]


class ResultCollection:
    """Immutable, ordered sequence of result items with unique identifiers."""

    __slots__ = ("_items",)

    def __init__(self, items: Sequence[ResultItem] = ()) -> None:
        items = tuple(items)
        ids = [item.id for item in items]
        if len(set(ids)) != len(ids):
            raise ValueError("Result item identifiers must be unique")
        self._items: Tuple[ResultItem, ...] = items

    def __iter__(self) -> Iterator[ResultItem]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> ResultItem:
        return self._items[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResultCollection):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        return f"ResultCollection({len(self._items)} items)"

    @property
    def items(self) -> Tuple[ResultItem, ...]:
        return self._items

    def get(self, item_id: str) -> Optional[ResultItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def _map(self, item_id: str, **changes) -> "ResultCollection":
        if self.get(item_id) is None:
            return self
        return ResultCollection(
            replace(item, **changes) if item.id == item_id else item for item in self._items
        )


def reduce(collection: ResultCollection, update: Update) -> ResultCollection:
    """Produce the next collection from the previous one plus ``update``."""
    if isinstance(update, ReplaceAll):
        return ResultCollection(update.items)
    if isinstance(update, Prepend):
        if collection.get(update.item.id) is not None:
            raise ValueError(f"Duplicate result item id {update.item.id}")
        return ResultCollection((update.item,) + collection.items)
    if isinstance(update, AttachThumbnail):
        return collection._map(update.item_id, thumbnail=update.thumbnail)
    if isinstance(update, MarkReady):
        return collection._map(update.item_id, status=ItemStatus.READY, data=update.record, error=None)
    if isinstance(update, MarkFailed):
        return collection._map(update.item_id, status=ItemStatus.FAILED, data=None, error=update.message)
    raise TypeError(f"Unsupported update {update!r}")


class ResultStore:
    """Holds the active collection and the generation it belongs to."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._collection = ResultCollection()
        self._generation = 0

    @property
    def collection(self) -> ResultCollection:
        return self._collection

    @property
    def generation(self) -> int:
        return self._generation

    def reset(self) -> int:
        """Start a new generation with an empty collection."""
        self._generation += 1
        self._collection = ResultCollection()
        return self._generation

    def dispatch(self, generation: int, update: Update) -> bool:
        if generation != self._generation:
            self._logger.debug(
                "Discarding stale %s for generation %s (active=%s)",
                type(update).__name__,
                generation,
                self._generation,
            )
            return False
        self._collection = reduce(self._collection, update)
        return True


__all__ = [
    "AttachThumbnail",
    "MarkFailed",
    "MarkReady",
    "Prepend",
    "ReplaceAll",
    "ResultCollection",
    "ResultStore",
    "Update",
    "reduce",
]
