"""Helpers that normalise feature columns and rows into numpy-friendly shapes."""

from __future__ import annotations

from typing import Any, Iterable, Tuple

import numpy as np
from pyspark.ml.functions import array_to_vector
from pyspark.ml.linalg import VectorUDT
from pyspark.sql import DataFrame
from pyspark.sql import functions as F
from pyspark.sql.types import ArrayType, NumericType

from ..clustering.distance import DimensionMismatchError

__all__ = ["as_matrix", "to_array"]


def _check_vector_column(df: DataFrame, column: str) -> str:
    """Return ``"vector"`` or ``"array"`` for a usable features column."""
    if column not in df.columns:
        raise ValueError(f"Features column '{column}' not found; available: {df.columns}")
    dtype = df.schema[column].dataType
    if isinstance(dtype, VectorUDT):
        return "vector"
    if isinstance(dtype, ArrayType) and isinstance(dtype.elementType, NumericType):
        return "array"
    raise TypeError(
        f"Column '{column}' must be an array or VectorUDT column; got {dtype.simpleString()}"
    )


def _ensure_vector_column(df: DataFrame, column: str, output_col: str) -> Tuple[DataFrame, str]:
    """Return ``df`` with ``output_col`` holding ``column`` as an ML vector."""
    kind = _check_vector_column(df, column)
    if kind == "vector":
        if output_col != column:
            df = df.withColumn(output_col, F.col(column))
        return df, output_col
    converted = array_to_vector(F.col(column).cast("array<double>"))
    return df.withColumn(output_col, converted), output_col


def to_array(value: Any) -> np.ndarray:
    """Convert a list, tuple, ndarray or ``pyspark.ml.linalg`` vector to a 1-D float array."""
    if value is None:
        raise ValueError("Feature vectors must not be null")
    # DenseVector and SparseVector both expose toArray()
    if hasattr(value, "toArray"):
        value = value.toArray()
    array = np.asarray(value, dtype=np.float64)
    if array.ndim != 1:
        raise ValueError(f"Expected a 1-D vector; got shape {array.shape}")
    return array


def as_matrix(rows: Any) -> np.ndarray:
    """Stack ``rows`` into a 2-D float matrix, copying so callers keep their data."""
    if isinstance(rows, np.ndarray):
        if rows.ndim == 1 and rows.size == 0:
            return np.empty((0, 0), dtype=np.float64)
        if rows.ndim != 2:
            raise ValueError(f"Expected a 2-D matrix; got shape {rows.shape}")
        return np.array(rows, dtype=np.float64, copy=True)

    vectors = [to_array(row) for row in _iter_rows(rows)]
    if not vectors:
        return np.empty((0, 0), dtype=np.float64)
    width = vectors[0].shape[0]
    for index, vector in enumerate(vectors):
        if vector.shape[0] != width:
            raise DimensionMismatchError(
                f"Row {index} has dimension {vector.shape[0]}; expected {width}"
            )
    return np.vstack(vectors)


def _iter_rows(rows: Any) -> Iterable[Any]:
    if hasattr(rows, "toArray") and not isinstance(rows, (list, tuple)):
        # pyspark.ml.linalg.Matrix
        return list(np.asarray(rows.toArray()))
    return rows
