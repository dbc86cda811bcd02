"""
Greedy canopy formation.

A single ordered pass over a pool of points: the lowest-index point that is
still available seeds a canopy, and every available point closer than the
loose threshold is consumed by it. Points closer than the tight threshold are
tight members, the rest loose members; both are removed from the pool. The
same routine serves the per-partition map step and the cross-partition merge.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, List

import numpy as np

from ..utils.vectors import as_matrix
from .distance import DimensionMismatchError, DistanceMetric

__all__ = ["Canopy", "find_canopies", "form_canopies", "merge_canopies"]


@dataclass
class Canopy:
    """
    One canopy found by :func:`find_canopies`.

    Parameters
    ----------
    seed_index:
        Row index of the seed point in the input.
    center:
        Copy of the seed vector. Centers are never averaged.
    tight_members:
        Row indices that fell within the tight threshold of the seed.
    loose_members:
        Row indices within the loose threshold but not the tight one.
    """

    seed_index: int
    center: np.ndarray
    tight_members: List[int] = field(default_factory=list)
    loose_members: List[int] = field(default_factory=list)

    @property
    def size(self) -> int:
        return 1 + len(self.tight_members) + len(self.loose_members)


def _check_threshold(name: str, value: float) -> float:
    value = float(value)
    if not math.isfinite(value) or value < 0.0:
        raise ValueError(f"{name} threshold must be finite and non-negative; got {value!r}")
    return value


def find_canopies(points: Any, metric: DistanceMetric, loose: float, tight: float) -> List[Canopy]:
    """Run the greedy pass and return every canopy with its members."""
    loose = _check_threshold("loose", loose)
    tight = _check_threshold("tight", tight)

    pool = as_matrix(points)
    n_rows = pool.shape[0]
    consumed = np.zeros(n_rows, dtype=bool)
    canopies: List[Canopy] = []

    # Consumption only ever grows, so the next seed is always after the last one.
    for seed_index in range(n_rows):
        if consumed[seed_index]:
            continue
        consumed[seed_index] = True
        canopy = Canopy(seed_index=seed_index, center=pool[seed_index].copy())

        candidates = np.flatnonzero(~consumed[seed_index + 1 :]) + seed_index + 1
        if candidates.size:
            distances = metric.distances(canopy.center, pool[candidates])
            tight_mask = distances < tight
            loose_mask = ~tight_mask & (distances < loose)
            canopy.tight_members = candidates[tight_mask].tolist()
            canopy.loose_members = candidates[loose_mask].tolist()
            consumed[candidates[tight_mask | loose_mask]] = True

        canopies.append(canopy)

    return canopies


def form_canopies(points: Any, metric: DistanceMetric, loose: float, tight: float) -> np.ndarray:
    """
    Return the canopy centers of ``points`` as a ``(C, D)`` matrix.

    Rows are seeds in discovery order. Input with no rows yields a ``(0, D)``
    matrix without running the pass; the thresholds are still validated.
    """
    _check_threshold("loose", loose)
    _check_threshold("tight", tight)
    pool = as_matrix(points)
    if pool.shape[0] == 0:
        return np.empty((0, pool.shape[1]), dtype=np.float64)
    canopies = find_canopies(pool, metric, loose, tight)
    return np.vstack([canopy.center for canopy in canopies])


def merge_canopies(
    left: Any, right: Any, metric: DistanceMetric, loose: float, tight: float
) -> np.ndarray:
    """
    Combine two center matrices by re-running canopy formation on ``left`` + ``right``.

    The result depends on argument order: rows of ``left`` get the first chance
    to seed, so ``merge_canopies(a, b)`` and ``merge_canopies(b, a)`` can keep
    different centers. Empty inputs contribute nothing.
    """
    _check_threshold("loose", loose)
    _check_threshold("tight", tight)
    blocks = [block for block in (as_matrix(left), as_matrix(right)) if block.shape[0]]
    if not blocks:
        return np.empty((0, 0), dtype=np.float64)
    if len(blocks) == 2 and blocks[0].shape[1] != blocks[1].shape[1]:
        raise DimensionMismatchError(
            f"Cannot merge centers of dimension {blocks[0].shape[1]} and {blocks[1].shape[1]}"
        )
    return form_canopies(np.vstack(blocks), metric, loose, tight)
