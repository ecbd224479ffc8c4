"""
Typed views into the solver's flat state vector.

The solver owns one numpy vector holding every cohort of every species.
Each species occupies a contiguous block of `count` rows, each row laid
out as `StateLayout.fields`:

    buffer[offset + i * width + layout.index(name)]

The layout width is fixed for a species for the whole run. Every access
is bounds-checked; a mismatch raises ConsistencyError instead of reading
another cohort's memory.
"""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass

import numpy as np

from plantfate.errors import ConsistencyError


@dataclass(frozen=True)
class StateLayout:
    """Ordered field names of one cohort row."""

    fields: tuple[str, ...]

    def __post_init__(self) -> None:
        if len(set(self.fields)) != len(self.fields):
            raise ConsistencyError("state layout", "unique field names", self.fields)

    @property
    def width(self) -> int:
        return len(self.fields)

    def index(self, name: str) -> int:
        try:
            return self.fields.index(name)
        except ValueError:
            raise ConsistencyError("state field", f"one of {self.fields}", name) from None


class StateView:
    """
    Window of `count` rows of a layout, starting at `offset` in `buffer`.

    Rows are numpy views: writing through them writes the solver vector.
    """

    def __init__(self, buffer: np.ndarray, offset: int, layout: StateLayout, count: int):
        end = offset + layout.width * count
        if offset < 0 or end > buffer.shape[0]:
            raise ConsistencyError(
                "state slice",
                f"[{offset}, {end}) within buffer of length {buffer.shape[0]}",
                "out of range",
            )
        self.buffer = buffer
        self.offset = offset
        self.layout = layout
        self.count = count

    def __len__(self) -> int:
        return self.count

    @property
    def end(self) -> int:
        return self.offset + self.layout.width * self.count

    def _check_row(self, i: int) -> None:
        if not 0 <= i < self.count:
            raise ConsistencyError("state row", f"index in [0, {self.count})", i)

    def row(self, i: int) -> np.ndarray:
        self._check_row(i)
        start = self.offset + i * self.layout.width
        return self.buffer[start : start + self.layout.width]

    def rows(self) -> Iterator[np.ndarray]:
        for i in range(self.count):
            yield self.row(i)

    def get(self, i: int, name: str) -> float:
        return float(self.row(i)[self.layout.index(name)])

    def set(self, i: int, name: str, value: float) -> None:
        self.row(i)[self.layout.index(name)] = value

    def write_row(self, i: int, values: Sequence[float]) -> None:
        if len(values) != self.layout.width:
            raise ConsistencyError("state row width", self.layout.width, len(values))
        self.row(i)[:] = values

    def column(self, name: str) -> np.ndarray:
        """Strided view of one field across all rows."""
        j = self.layout.index(name)
        return self.buffer[self.offset + j : self.end : self.layout.width]
