"""spark-canopy: distributed canopy pre-clustering on PySpark."""

from .clustering import (
    CanopyClustering,
    CanopyClusteringModel,
    CanopyParams,
    CanopyPartitioner,
    form_canopies,
    merge_canopies,
)

__version__ = "0.1.0"

__all__ = [
    "CanopyClustering",
    "CanopyClusteringModel",
    "CanopyParams",
    "CanopyPartitioner",
    "__version__",
    "form_canopies",
    "merge_canopies",
]
