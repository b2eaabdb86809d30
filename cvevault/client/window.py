"""Visible-slice computation for long record lists and grids."""

import math
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

DEFAULT_OVERSCAN = 5
FRAME_INTERVAL_SEC = 1 / 60


@dataclass(frozen=True)
class WindowRange:
    """Inclusive row range; empty when end_index < start_index."""

    start_index: int
    end_index: int

    @property
    def is_empty(self) -> bool:
        return self.end_index < self.start_index

    def __len__(self) -> int:
        return 0 if self.is_empty else self.end_index - self.start_index + 1


EMPTY_RANGE = WindowRange(start_index=0, end_index=-1)


def compute_window(
    item_count: int,
    item_extent: float,
    container_extent: float,
    scroll_offset: float,
    overscan: int = DEFAULT_OVERSCAN,
) -> WindowRange:
    """
    Rows to render for a viewport, padded by overscan rows on each side.

    start = max(0, floor(offset / extent) - overscan)
    end = min(count - 1, ceil((offset + container) / extent) + overscan)

    When the offset lies past the last row (e.g. the list shrank under a
    scrolled viewport) the formula yields start > end; the window is then
    pinned to the last rows, [max(0, end - overscan), end], so the caller
    still renders content until the scroll position is corrected.
    """
    if item_count <= 0:
        return EMPTY_RANGE
    if item_extent <= 0:
        raise ValueError("item_extent must be positive")
    offset = max(0.0, scroll_offset)
    start = max(0, math.floor(offset / item_extent) - overscan)
    end = min(item_count - 1, math.ceil((offset + container_extent) / item_extent) + overscan)
    if start > end:
        start = max(0, end - overscan)
    return WindowRange(start_index=start, end_index=end)


@dataclass(frozen=True)
class WindowRow(Generic[T]):
    """One rendered row; grid rows are padded with None up to items_per_row."""

    index: int
    offset: float
    items: tuple[T | None, ...]


class VirtualWindow(Generic[T]):
    """
    Tracks scroll position and viewport size over a full item sequence.

    Extents are per row; with items_per_row > 1 every index refers to a row of
    the grid. The item sequence is referenced, never copied or trimmed, so
    items outside the window stay available to the caller.

    Scroll updates are throttled to one recompute per frame interval; a
    throttled update is kept and applied by flush(). Resizes always recompute.
    """

    def __init__(
        self,
        items: Sequence[T],
        item_extent: float,
        container_extent: float,
        overscan: int = DEFAULT_OVERSCAN,
        items_per_row: int = 1,
        clock: Callable[[], float] = time.monotonic,
        frame_interval: float = FRAME_INTERVAL_SEC,
    ) -> None:
        if item_extent <= 0:
            raise ValueError("item_extent must be positive")
        if items_per_row < 1:
            raise ValueError("items_per_row must be at least 1")
        self._items = items
        self.item_extent = item_extent
        self.container_extent = container_extent
        self.overscan = overscan
        self.items_per_row = items_per_row
        self._clock = clock
        self.frame_interval = frame_interval

        self.scroll_offset = 0.0
        self._pending_offset: float | None = None
        self._last_compute: float | None = None
        self.range = EMPTY_RANGE
        self._recompute()

    @property
    def items(self) -> Sequence[T]:
        return self._items

    @property
    def row_count(self) -> int:
        return math.ceil(len(self._items) / self.items_per_row)

    @property
    def total_extent(self) -> float:
        """Height of the whole scrollable content."""
        return self.row_count * self.item_extent

    @property
    def has_pending(self) -> bool:
        return self._pending_offset is not None

    def row_offset(self, row: int) -> float:
        return row * self.item_extent

    def _recompute(self) -> None:
        self.range = compute_window(
            self.row_count,
            self.item_extent,
            self.container_extent,
            self.scroll_offset,
            self.overscan,
        )
        self._last_compute = self._clock()

    def scroll(self, offset: float) -> bool:
        """Record a scroll position; return True if the window was recomputed now."""
        now = self._clock()
        if self._last_compute is not None and now - self._last_compute < self.frame_interval:
            self._pending_offset = offset
            return False
        self._pending_offset = None
        self.scroll_offset = offset
        self._recompute()
        return True

    def flush(self) -> bool:
        """Apply a throttled scroll position, if any."""
        if self._pending_offset is None:
            return False
        self.scroll_offset = self._pending_offset
        self._pending_offset = None
        self._recompute()
        return True

    def resize(self, container_extent: float, items_per_row: int | None = None) -> None:
        if items_per_row is not None:
            if items_per_row < 1:
                raise ValueError("items_per_row must be at least 1")
            self.items_per_row = items_per_row
        self.container_extent = container_extent
        if self._pending_offset is not None:
            self.scroll_offset = self._pending_offset
            self._pending_offset = None
        self._recompute()

    def set_items(self, items: Sequence[T]) -> None:
        """Swap in a new item sequence (e.g. after a refetch or a filter change)."""
        self._items = items
        self._recompute()

    def rows(self) -> list[WindowRow[T]]:
        """Rows inside the current window, each with its items."""
        rows: list[WindowRow[T]] = []
        if self.range.is_empty:
            return rows
        per_row = self.items_per_row
        for row in range(self.range.start_index, self.range.end_index + 1):
            start = row * per_row
            cells: list[T | None] = list(self._items[start : start + per_row])
            cells.extend([None] * (per_row - len(cells)))
            rows.append(WindowRow(index=row, offset=self.row_offset(row), items=tuple(cells)))
        return rows

    def visible_items(self) -> list[T]:
        """Flat list of the real (non-padding) items inside the window."""
        if self.range.is_empty:
            return []
        start = self.range.start_index * self.items_per_row
        stop = (self.range.end_index + 1) * self.items_per_row
        return list(self._items[start:stop])
