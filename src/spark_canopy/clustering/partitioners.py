"""
Partitioner implementations that assign cluster identifiers.

``CanopyPartitioner`` fits canopy centers on the DataFrame itself and labels
every row with the index of its nearest center.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Union

from pyspark.sql import DataFrame

from .fitter import CanopyClustering
from .model import CanopyClusteringModel
from .params import DEFAULT_DISTANCE_MEASURE, DEFAULT_T1, DEFAULT_T2, CanopyParams


@dataclass
class Partitioner(ABC):
    """
    Base interface for partitioners.

    ``partition`` should append a cluster identifier column and return the
    augmented DataFrame.
    """

    output_col: str = "cluster_id"

    @abstractmethod
    def partition(self, df: DataFrame, features_col: Optional[str] = None) -> DataFrame:
        """Assign cluster identifiers to each row of the DataFrame."""


@dataclass
class CanopyPartitioner(Partitioner):
    """
    Canopy pre-clustering as a partitioner.

    Parameters
    ----------
    t1, t2:
        Loose and tight thresholds for the per-partition pass.
    t3, t4:
        Loose and tight thresholds for merging partitions; default to ``t1``/``t2``.
    distance_measure:
        Registered metric name or code.
    features_col:
        Explicit features column. Falls back to the runtime argument, then ``features``.
    reduce_depth:
        Depth of the merge tree.
    """

    t1: float = DEFAULT_T1
    t2: float = DEFAULT_T2
    t3: Optional[float] = None
    t4: Optional[float] = None
    distance_measure: Union[str, float] = DEFAULT_DISTANCE_MEASURE
    features_col: Optional[str] = None
    reduce_depth: int = 2
    model_: Optional[CanopyClusteringModel] = field(default=None, init=False, repr=False)

    def params(self) -> CanopyParams:
        return CanopyParams(
            t1=self.t1,
            t2=self.t2,
            t3=self.t3,
            t4=self.t4,
            distance_measure=self.distance_measure,
        )

    def partition(self, df: DataFrame, features_col: Optional[str] = None) -> DataFrame:
        column = features_col or self.features_col or "features"
        fitter = CanopyClustering(self.params(), features_col=column, reduce_depth=self.reduce_depth)
        self.model_ = fitter.fit(df)
        return self.model_.assign(df, features_col=column, output_col=self.output_col)
