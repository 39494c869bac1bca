from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

import numpy as np

from core.errors import EmptyInput

T = TypeVar("T")


def make_rng(rng: np.random.Generator | int | None = None) -> np.random.Generator:
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


def sample_with_replacement(
    collection: Sequence[T], size: int, rng: np.random.Generator | int | None = None
) -> list[T]:
    """
    Bootstrap sample: `size` elements drawn uniformly with replacement.
    Duplicates are expected.
    """
    size = int(size)
    if size < 0:
        raise ValueError(f"sample size must be >= 0, got {size}")
    if size == 0:
        return []
    items = list(collection)
    if not items:
        raise EmptyInput("cannot sample from an empty collection")
    idx = make_rng(rng).integers(0, len(items), size=size)
    return [items[i] for i in idx]
