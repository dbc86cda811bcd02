"""
Fitted canopy model and nearest-center assignment.

The center matrix is usually small, so assignment broadcasts it once and then
labels each row independently on the executors.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Optional, Union

import numpy as np
from pyspark import RDD
from pyspark.ml.linalg import DenseVector, VectorUDT
from pyspark.sql import DataFrame, SparkSession
from pyspark.sql import functions as F
from pyspark.sql.types import IntegerType, StructField, StructType

from ..utils.vectors import _check_vector_column, as_matrix, to_array
from .distance import DistanceMetric, named_metric_lookup, select_metric

__all__ = ["CanopyClusteringModel", "nearest_center"]

_LOGGER = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def _resolve_metric(code: float) -> DistanceMetric:
    """Metric for a broadcast code, resolved once per worker process."""
    return select_metric(code)


def nearest_center(centers: np.ndarray, metric: DistanceMetric, point: Any) -> int:
    """Index of the closest center; on equal distances the lower index wins."""
    vector = to_array(point)
    best_index = 0
    closest = float("inf")
    for index, distance in enumerate(metric.distances(vector, centers)):
        if distance < closest:
            closest = distance
            best_index = index
    return best_index


class CanopyClusteringModel:
    """
    Canopy centers plus the metric they were found with.

    Parameters
    ----------
    centers:
        ``(C, D)`` matrix; row ``n`` is canopy ``n``. A read-only copy is kept.
    distance_measure:
        Metric name or code, normalised to the registered name.
    features_col:
        Default features column used by :meth:`assign` for DataFrames.
    """

    def __init__(
        self,
        centers: Any,
        distance_measure: Union[str, float] = "Cosine",
        *,
        features_col: str = "features",
    ) -> None:
        matrix = as_matrix(centers)
        if matrix.shape[0] == 0:
            raise ValueError("A canopy model needs at least one center")
        matrix.setflags(write=False)
        self._centers = matrix
        self._metric = select_metric(distance_measure)
        self.features_col = features_col

    @property
    def centers(self) -> np.ndarray:
        return self._centers

    @property
    def distance_measure(self) -> str:
        return self._metric.name

    @property
    def metric(self) -> DistanceMetric:
        return self._metric

    @property
    def num_centers(self) -> int:
        return int(self._centers.shape[0])

    @property
    def summary(self) -> str:
        return (
            "CanopyClusteringModel\n"
            f"{self.num_centers} Clusters\n"
            f"{self.distance_measure} distance metric used for calculating distances\n"
            "Canopy centers stored in model.centers where row n corresponds to canopy n"
        )

    def __repr__(self) -> str:
        return (
            f"CanopyClusteringModel(num_centers={self.num_centers}, "
            f"distance_measure={self.distance_measure!r})"
        )

    def predict(self, vector: Any) -> int:
        """Label a single vector on the driver."""
        return nearest_center(self._centers, self._metric, vector)

    def assign(
        self,
        data: Union[DataFrame, RDD],
        features_col: Optional[str] = None,
        output_col: str = "cluster_id",
    ):
        """
        Label every row with the index of its nearest center.

        DataFrames gain ``output_col`` (int); an RDD of vectors maps to an RDD
        of labels with the same partitioning and order.
        """
        if isinstance(data, DataFrame):
            return self._assign_frame(data, features_col or self.features_col, output_col)
        if isinstance(data, RDD):
            return self._assign_rdd(data)
        raise TypeError(f"assign expects a DataFrame or RDD; got {type(data).__name__}")

    def _broadcasts(self, sc):
        centers_bc = sc.broadcast(self._centers)
        metric_bc = sc.broadcast(np.array([named_metric_lookup(self.distance_measure)]))
        return centers_bc, metric_bc

    def _assign_frame(self, df: DataFrame, features_col: str, output_col: str) -> DataFrame:
        _check_vector_column(df, features_col)
        centers_bc, metric_bc = self._broadcasts(df.sparkSession.sparkContext)
        _LOGGER.info(
            "Assigning rows of '%s' to %d canopies (%s)",
            features_col,
            self.num_centers,
            self.distance_measure,
        )

        def _label(vector) -> int:
            metric = _resolve_metric(float(metric_bc.value[0]))
            return nearest_center(centers_bc.value, metric, vector)

        label_udf = F.udf(_label, IntegerType())
        return df.withColumn(output_col, label_udf(F.col(features_col)))

    def _assign_rdd(self, rdd: RDD) -> RDD:
        centers_bc, metric_bc = self._broadcasts(rdd.context)

        def _label_partition(vectors):
            metric = _resolve_metric(float(metric_bc.value[0]))
            centers = centers_bc.value
            for vector in vectors:
                yield nearest_center(centers, metric, vector)

        return rdd.mapPartitions(_label_partition, preservesPartitioning=True)

    def centers_frame(self, spark: SparkSession) -> DataFrame:
        """Return the centers as ``(canopy_id, center)`` rows."""
        schema = StructType(
            [
                StructField("canopy_id", IntegerType(), False),
                StructField("center", VectorUDT(), False),
            ]
        )
        rows = [(index, DenseVector(center)) for index, center in enumerate(self._centers)]
        return spark.createDataFrame(rows, schema=schema)
