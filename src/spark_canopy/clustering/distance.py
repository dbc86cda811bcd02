"""
Distance metrics addressable by name or numeric code.

Metrics are looked up by a symbolic name on the driver and shipped to
executors as a float code inside a broadcast vector, so every registered
metric carries both identifiers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Type, Union

import numpy as np

__all__ = [
    "DimensionMismatchError",
    "DistanceMetric",
    "UnknownDistanceMetricError",
    "available_metrics",
    "named_metric_lookup",
    "register_metric",
    "select_metric",
]


class UnknownDistanceMetricError(ValueError):
    """Raised when a metric name or code is not registered."""


class DimensionMismatchError(ValueError):
    """Raised when two vectors of different dimensionality are compared."""


_METRICS_BY_NAME: Dict[str, Type["DistanceMetric"]] = {}
_METRICS_BY_CODE: Dict[float, Type["DistanceMetric"]] = {}


def register_metric(cls: Type["DistanceMetric"]) -> Type["DistanceMetric"]:
    """Class decorator adding a metric to the registry."""
    key = cls.name.lower()
    if key in _METRICS_BY_NAME and _METRICS_BY_NAME[key] is not cls:
        raise ValueError(f"Distance metric name already registered: {cls.name}")
    if cls.code in _METRICS_BY_CODE and _METRICS_BY_CODE[cls.code] is not cls:
        raise ValueError(f"Distance metric code already registered: {cls.code}")
    _METRICS_BY_NAME[key] = cls
    _METRICS_BY_CODE[float(cls.code)] = cls
    return cls


def _check_dimensions(a: np.ndarray, b: np.ndarray) -> None:
    if a.shape[-1] != b.shape[-1]:
        raise DimensionMismatchError(
            f"Cannot compare vectors of dimension {a.shape[-1]} and {b.shape[-1]}"
        )


class DistanceMetric(ABC):
    """
    Base interface for distance metrics.

    ``distance`` compares two vectors; ``distances`` compares one vector with
    every row of a matrix and should be overridden with a vectorised form.
    """

    name: str = ""
    code: float = 0.0

    @abstractmethod
    def _distance(self, a: np.ndarray, b: np.ndarray) -> float:
        """Distance between two vectors of equal length."""

    def distance(self, a, b) -> float:
        a = np.asarray(a, dtype=np.float64)
        b = np.asarray(b, dtype=np.float64)
        _check_dimensions(a, b)
        return float(self._distance(a, b))

    def distances(self, point, matrix) -> np.ndarray:
        point = np.asarray(point, dtype=np.float64)
        matrix = np.asarray(matrix, dtype=np.float64)
        if matrix.shape[0] == 0:
            return np.empty(0, dtype=np.float64)
        _check_dimensions(point, matrix)
        return self._distances(point, matrix)

    def _distances(self, point: np.ndarray, matrix: np.ndarray) -> np.ndarray:
        return np.array([self._distance(point, row) for row in matrix], dtype=np.float64)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, DistanceMetric) and other.code == self.code

    def __hash__(self) -> int:
        return hash(self.code)


@register_metric
class ChebyshevDistance(DistanceMetric):
    name = "Chebyshev"
    code = 1.0

    def _distance(self, a: np.ndarray, b: np.ndarray) -> float:
        return np.max(np.abs(a - b)) if a.size else 0.0

    def _distances(self, point: np.ndarray, matrix: np.ndarray) -> np.ndarray:
        if point.size == 0:
            return np.zeros(matrix.shape[0], dtype=np.float64)
        return np.max(np.abs(matrix - point), axis=1)


@register_metric
class CosineDistance(DistanceMetric):
    """``1 - cos(a, b)``; a zero-norm vector is treated as orthogonal to everything."""

    name = "Cosine"
    code = 2.0

    def _distance(self, a: np.ndarray, b: np.ndarray) -> float:
        denom = np.linalg.norm(a) * np.linalg.norm(b)
        if denom == 0.0:
            return 1.0
        return 1.0 - float(np.dot(a, b)) / denom

    def _distances(self, point: np.ndarray, matrix: np.ndarray) -> np.ndarray:
        denom = np.linalg.norm(matrix, axis=1) * np.linalg.norm(point)
        dots = matrix @ point
        result = np.ones(matrix.shape[0], dtype=np.float64)
        nonzero = denom != 0.0
        result[nonzero] = 1.0 - dots[nonzero] / denom[nonzero]
        return result


@register_metric
class EuclideanDistance(DistanceMetric):
    name = "Euclidean"
    code = 3.0

    def _distance(self, a: np.ndarray, b: np.ndarray) -> float:
        return np.sqrt(np.sum((a - b) ** 2))

    def _distances(self, point: np.ndarray, matrix: np.ndarray) -> np.ndarray:
        return np.sqrt(np.sum((matrix - point) ** 2, axis=1))


@register_metric
class SquaredEuclideanDistance(DistanceMetric):
    name = "SquaredEuclidean"
    code = 4.0

    def _distance(self, a: np.ndarray, b: np.ndarray) -> float:
        return np.sum((a - b) ** 2)

    def _distances(self, point: np.ndarray, matrix: np.ndarray) -> np.ndarray:
        return np.sum((matrix - point) ** 2, axis=1)


@register_metric
class ManhattanDistance(DistanceMetric):
    name = "Manhattan"
    code = 5.0

    def _distance(self, a: np.ndarray, b: np.ndarray) -> float:
        return np.sum(np.abs(a - b))

    def _distances(self, point: np.ndarray, matrix: np.ndarray) -> np.ndarray:
        return np.sum(np.abs(matrix - point), axis=1)


def available_metrics() -> Dict[str, float]:
    """Return the registered metric names mapped to their codes."""
    return {cls.name: cls.code for cls in _METRICS_BY_CODE.values()}


def named_metric_lookup(name: str) -> float:
    """Resolve a metric name (case-insensitive) to its transport code."""
    cls = _METRICS_BY_NAME.get(str(name).strip().lower())
    if cls is None:
        known = ", ".join(sorted(available_metrics()))
        raise UnknownDistanceMetricError(f"Unknown distance metric {name!r}. Known: {known}")
    return cls.code


def select_metric(identifier: Union[str, float, int, DistanceMetric]) -> DistanceMetric:
    """Return a metric instance for a name, numeric code, or metric instance."""
    if isinstance(identifier, DistanceMetric):
        return identifier
    if isinstance(identifier, str):
        return _METRICS_BY_CODE[named_metric_lookup(identifier)]()
    try:
        code = float(identifier)
    except (TypeError, ValueError) as exc:
        raise UnknownDistanceMetricError(f"Unknown distance metric {identifier!r}") from exc
    cls = _METRICS_BY_CODE.get(code)
    if cls is None:
        known = ", ".join(f"{c:g}" for c in sorted(_METRICS_BY_CODE))
        raise UnknownDistanceMetricError(f"Unknown distance metric code {identifier!r}. Known: {known}")
    return cls()
