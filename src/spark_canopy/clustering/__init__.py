"""
Canopy pre-clustering for PySpark.

Canopy formation reduces a partitioned set of vectors to a bounded set of
centers in one greedy pass per partition plus a pairwise merge, and the
fitted model labels every row with its nearest center.
"""

from .distance import (
    DimensionMismatchError,
    DistanceMetric,
    UnknownDistanceMetricError,
    available_metrics,
    named_metric_lookup,
    register_metric,
    select_metric,
)
from .canopy import Canopy, find_canopies, form_canopies, merge_canopies
from .params import CanopyParams
from .model import CanopyClusteringModel, nearest_center
from .fitter import CanopyClustering
from .partitioners import CanopyPartitioner, Partitioner

__all__ = [
    "Canopy",
    "CanopyClustering",
    "CanopyClusteringModel",
    "CanopyParams",
    "CanopyPartitioner",
    "DimensionMismatchError",
    "DistanceMetric",
    "Partitioner",
    "UnknownDistanceMetricError",
    "available_metrics",
    "find_canopies",
    "form_canopies",
    "merge_canopies",
    "named_metric_lookup",
    "nearest_center",
    "register_metric",
    "select_metric",
]
