"""Read-only, id-indexed view of the catalog supplied by the loader."""

from __future__ import annotations

from typing import Iterable, Iterator

from reactive_dj.models import CatalogItem


class Catalog:
    """Immutable collection of :class:`CatalogItem` keyed by id.

    Iteration order is the order the loader supplied.  Duplicate ids are
    rejected because the play history refers to items by id only.
    """

    def __init__(self, items: Iterable[CatalogItem] = ()) -> None:
        self._items: tuple[CatalogItem, ...] = tuple(items)
        self._by_id: dict[str, CatalogItem] = {}
        for item in self._items:
            if item.id in self._by_id:
                raise ValueError(f"Duplicate catalog item id: {item.id!r}")
            self._by_id[item.id] = item

    def get(self, item_id: str) -> CatalogItem | None:
        return self._by_id.get(item_id)

    def all(self) -> list[CatalogItem]:
        return list(self._items)

    def in_energy_range(self, low: float, high: float) -> list[CatalogItem]:
        """Items with ``low <= energy <= high``."""
        return [item for item in self._items if low <= item.energy <= high]

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._by_id

    def __iter__(self) -> Iterator[CatalogItem]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)
