"""Ordered, append-only store of blueprint versions.

One session derives several blueprints (Micro / Medium / Large) from the same
source image.  The store keeps them in generation order together with the
index of the version currently on display.  It does not refuse a second
blueprint of a size already present; callers check :meth:`sizes_present`
before generating.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

from .models import Blueprint, BuildSize

logger = logging.getLogger(__name__)


class BuildStore:
    """Blueprint versions plus a current selection."""

    def __init__(self) -> None:
        self._blueprints: list[Blueprint] = []
        self._current_index: int | None = None

    def __len__(self) -> int:
        return len(self._blueprints)

    def __iter__(self) -> Iterator[Blueprint]:
        return iter(list(self._blueprints))

    def __getitem__(self, index: int) -> Blueprint:
        return self._blueprints[index]

    @property
    def current_index(self) -> int | None:
        return self._current_index

    def append(self, blueprint: Blueprint) -> int:
        """Add a blueprint at the end and return its index.

        The first blueprint appended becomes the current selection.
        """
        self._blueprints.append(blueprint)
        index = len(self._blueprints) - 1
        if self._current_index is None:
            self._current_index = index
        logger.info(f"Stored {blueprint.size.value} blueprint at index {index}")
        return index

    def select(self, index: int) -> bool:
        """Change the current selection.

        Returns:
            ``True`` if the selection changed to ``index``, ``False`` if the
            index is out of range (the selection is left untouched).
        """
        if not 0 <= index < len(self._blueprints):
            logger.warning(f"Ignoring selection of index {index}, store holds {len(self)}")
            return False
        self._current_index = index
        return True

    def current(self) -> Blueprint | None:
        if self._current_index is None:
            return None
        return self._blueprints[self._current_index]

    def sizes_present(self) -> set[BuildSize]:
        return {bp.size for bp in self._blueprints}

    def index_of_size(self, size: BuildSize) -> int | None:
        """Index of the first blueprint of ``size``, if any."""
        for index, blueprint in enumerate(self._blueprints):
            if blueprint.size == size:
                return index
        return None

    def clear(self) -> None:
        self._blueprints.clear()
        self._current_index = None
