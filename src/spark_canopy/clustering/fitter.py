"""
Two-pass distributed canopy fitting.

Each partition is reduced to its own canopy centers with the ``(t1, t2)``
thresholds, then the per-partition matrices are merged pairwise up a
``treeReduce`` tree with ``(t3, t4)``. The merge is order-sensitive, so the
final centers can vary with partition count and tree shape.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable, Iterator, Optional, Union

import numpy as np
from pyspark import RDD
from pyspark.sql import DataFrame

from ..utils.logging import (
    configure_logging,
    console,
    create_progress_tracker,
    log_end,
    log_error,
    log_start,
)
from ..utils.vectors import _ensure_vector_column, as_matrix
from .canopy import form_canopies, merge_canopies
from .distance import select_metric
from .model import CanopyClusteringModel
from .params import CanopyParams

if TYPE_CHECKING:
    from ..config.settings import Settings

__all__ = ["CanopyClustering"]

_LOGGER = logging.getLogger(__name__)

# Positions inside the broadcast threshold vector.
_T1, _T2, _T3, _T4, _METRIC = range(5)


def _partition_centers(rows: Iterable[Any], thresholds: np.ndarray) -> Iterator[np.ndarray]:
    pool = as_matrix(list(rows))
    if pool.shape[0] == 0:
        yield pool
        return
    metric = select_metric(thresholds[_METRIC])
    yield form_canopies(pool, metric, thresholds[_T1], thresholds[_T2])


def _merge_centers(left: np.ndarray, right: np.ndarray, thresholds: np.ndarray) -> np.ndarray:
    metric = select_metric(thresholds[_METRIC])
    return merge_canopies(left, right, metric, thresholds[_T3], thresholds[_T4])


class CanopyClustering:
    """
    Fit canopy centers over a partitioned dataset.

    Parameters
    ----------
    params:
        Thresholds and metric; defaults to :class:`CanopyParams` defaults.
    features_col:
        Features column read from DataFrames (array or ``VectorUDT``).
    reduce_depth:
        Depth of the ``treeReduce`` merge tree.
    show_progress:
        Report the fit stages on the shared Rich console.
    """

    def __init__(
        self,
        params: Optional[CanopyParams] = None,
        *,
        features_col: str = "features",
        reduce_depth: int = 2,
        show_progress: bool = False,
    ) -> None:
        if reduce_depth < 1:
            raise ValueError(f"reduce_depth must be >= 1; got {reduce_depth}")
        self.params = params or CanopyParams()
        self.features_col = features_col
        self.reduce_depth = reduce_depth
        self.show_progress = show_progress

    @classmethod
    def from_settings(cls, settings: Optional["Settings"] = None, **kwargs: Any) -> "CanopyClustering":
        if settings is None:
            from ..config.settings import get_settings

            settings = get_settings()
        configure_logging(settings.logging.level)
        kwargs.setdefault("reduce_depth", settings.spark.reduce_depth)
        kwargs.setdefault("show_progress", settings.logging.show_progress)
        return cls(settings.canopy, **kwargs)

    def _rows(self, data: Union[DataFrame, RDD], features_col: str) -> RDD:
        if isinstance(data, DataFrame):
            frame, column = _ensure_vector_column(data, features_col, features_col)
            return frame.select(column).rdd.map(lambda row: row[0])
        if isinstance(data, RDD):
            return data
        raise TypeError(f"fit expects a DataFrame or RDD; got {type(data).__name__}")

    def fit(
        self,
        data: Union[DataFrame, RDD],
        *,
        features_col: Optional[str] = None,
        **hyperparameters: Any,
    ) -> CanopyClusteringModel:
        """
        Find canopy centers for ``data``.

        Keyword hyperparameters (``t1``..``t4``, ``distanceMeasure``) override
        the configured params for this call only.
        """
        params = self.params.with_overrides(**hyperparameters)
        column = features_col or self.features_col
        tracker = create_progress_tracker(3) if self.show_progress else None
        stage = "prepare"
        thresholds_bc = None

        try:
            if tracker is not None:
                log_start(tracker, console(), "prepare", advance=0)
            rows = self._rows(data, column)
            sc = rows.context
            thresholds_bc = sc.broadcast(params.broadcast_vector())
            _LOGGER.info(
                "Fitting canopies over %d partitions: t1=%s t2=%s t3=%s t4=%s metric=%s",
                rows.getNumPartitions(),
                params.t1,
                params.t2,
                *params.reduce_thresholds,
                params.distance_measure,
            )
            if tracker is not None:
                log_end(tracker, console(), "prepare")

            stage = "canopies"
            if tracker is not None:
                log_start(tracker, console(), stage, advance=0)
            partials = rows.mapPartitions(
                lambda it: _partition_centers(it, thresholds_bc.value)
            )
            centers = partials.treeReduce(
                lambda left, right: _merge_centers(left, right, thresholds_bc.value),
                depth=self.reduce_depth,
            )
            if centers.shape[0] == 0:
                raise ValueError("Cannot fit canopies on a dataset with no rows")
            if tracker is not None:
                log_end(tracker, console(), stage)

            stage = "model"
            model = CanopyClusteringModel(centers, params.distance_measure, features_col=column)
            _LOGGER.info("Found %d canopies", model.num_centers)
            if tracker is not None:
                log_end(tracker, console(), stage)
            return model
        except Exception:
            if tracker is not None:
                log_error(tracker, console(), stage, advance=0)
            raise
        finally:
            # Centers are already on the driver; the model broadcasts its own state.
            if thresholds_bc is not None:
                thresholds_bc.unpersist()
