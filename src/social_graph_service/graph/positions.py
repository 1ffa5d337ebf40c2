"""
Default position providers for graph layout.

The graph view persists node positions on each user. Users created
without one (or legacy records missing it) get a position from a
provider; scoring never depends on it.

Providers:
    RandomPositionProvider - uniform point in [0, extent)² (default)
    GridPositionProvider   - deterministic row-major grid with jitter
"""

from __future__ import annotations

import math
import random
from typing import Protocol

from ..models.user import Position


class PositionProvider(Protocol):
    """Capability that supplies a layout position for a node without one."""

    def __call__(self) -> Position: ...


class RandomPositionProvider:
    """Uniformly random position in a square of side ``extent``."""

    def __init__(self, extent: float = 400.0, rng: random.Random | None = None):
        self.extent = extent
        self._rng = rng or random.Random()

    def __call__(self) -> Position:
        return Position(x=self._rng.random() * self.extent, y=self._rng.random() * self.extent)


class GridPositionProvider:
    """
    Row-major grid placement.

    Each call returns the next cell of a grid ``columns`` wide, offset by
    up to ±jitter/2 on each axis. With ``jitter=0`` the sequence is fully
    deterministic.
    """

    def __init__(
        self,
        columns: int = 10,
        spacing: float = 250.0,
        jitter: float = 50.0,
        rng: random.Random | None = None,
    ):
        if columns < 1:
            raise ValueError("columns must be >= 1")
        self.columns = columns
        self.spacing = spacing
        self.jitter = jitter
        self._rng = rng or random.Random()
        self._index = 0

    @classmethod
    def for_total(cls, total: int, **kwargs) -> "GridPositionProvider":
        """Square-ish grid sized for ``total`` nodes."""
        return cls(columns=max(1, math.ceil(math.sqrt(max(total, 1)))), **kwargs)

    def _offset(self) -> float:
        if not self.jitter:
            return 0.0
        return (self._rng.random() - 0.5) * self.jitter

    def __call__(self) -> Position:
        row, col = divmod(self._index, self.columns)
        self._index += 1
        return Position(x=col * self.spacing + self._offset(), y=row * self.spacing + self._offset())


def create_position_provider(
    strategy: str = "random",
    extent: float = 400.0,
    columns: int = 10,
    spacing: float = 250.0,
    jitter: float = 50.0,
) -> PositionProvider:
    """Build the provider named by ``GraphSettings.position_strategy``."""
    if strategy == "random":
        return RandomPositionProvider(extent=extent)
    if strategy == "grid":
        return GridPositionProvider(columns=columns, spacing=spacing, jitter=jitter)
    raise ValueError(f"Unknown position strategy: {strategy}")
