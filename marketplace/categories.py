"""Active-category lookup consulted when a job request is created."""

from typing import Iterable, Protocol


class CategoryRegistry(Protocol):
    """Source of truth for which job categories are accepting requests."""

    def is_active(self, name: str) -> bool:
        ...


class StaticCategoryRegistry:
    """Category registry backed by a fixed set of names."""

    def __init__(self, categories: Iterable[str]):
        self._active = {c.strip().lower() for c in categories if c and c.strip()}

    def is_active(self, name: str) -> bool:
        if not name:
            return False
        return name.strip().lower() in self._active

    def activate(self, name: str) -> None:
        self._active.add(name.strip().lower())

    def deactivate(self, name: str) -> None:
        self._active.discard(name.strip().lower())

    @property
    def names(self) -> list:
        return sorted(self._active)
